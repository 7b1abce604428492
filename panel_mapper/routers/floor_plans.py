# panel_mapper/routers/floor_plans.py
from __future__ import annotations
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from panel_mapper.db import get_db
from panel_mapper.repository import FloorPlanRepository
from panel_mapper.schemas.models import FloorPlan, Room

router = APIRouter(prefix="/floor-plans", tags=["floor-plans"])


def get_repo(db: Session = Depends(get_db)) -> FloorPlanRepository:
    """Per-request repository over the request's session."""
    return FloorPlanRepository(db)


# -------------------------------------------------------------------
# MODELS
# -------------------------------------------------------------------
class FloorPlanCreate(BaseModel):
    """
    Request body for creating a floor plan. The browser client sends
    `viewBox` and `svg`; both the camel-case and snake-case names are accepted.
    """
    name: str = Field(..., min_length=1)
    rooms: List[Room] = Field(default_factory=list)
    view_box: Optional[str] = Field(default=None, alias="viewBox")
    svg_content: Optional[str] = Field(default=None, alias="svg")

    model_config = {"populate_by_name": True}


class FloorPlanUpdate(BaseModel):
    name: Optional[str] = None
    rooms: Optional[List[Room]] = None
    view_box: Optional[str] = Field(default=None, alias="viewBox")
    svg_content: Optional[str] = Field(default=None, alias="svg")

    model_config = {"populate_by_name": True}


# -------------------------------------------------------------------
# ENDPOINTS
# -------------------------------------------------------------------
@router.get("", response_model=List[FloorPlan])
def list_floor_plans(repo: FloorPlanRepository = Depends(get_repo)):
    return repo.list_floor_plans()


@router.get("/{floor_plan_id}", response_model=FloorPlan)
def get_floor_plan(floor_plan_id: int, repo: FloorPlanRepository = Depends(get_repo)):
    return repo.get_floor_plan(floor_plan_id)


@router.post("", response_model=FloorPlan, status_code=201)
def create_floor_plan(payload: FloorPlanCreate, repo: FloorPlanRepository = Depends(get_repo)):
    return repo.create_floor_plan(
        name=payload.name,
        rooms=payload.rooms,
        view_box=payload.view_box,
        svg_content=payload.svg_content,
    )


@router.put("/{floor_plan_id}", response_model=FloorPlan)
def update_floor_plan(floor_plan_id: int, payload: FloorPlanUpdate, repo: FloorPlanRepository = Depends(get_repo)):
    return repo.update_floor_plan(floor_plan_id, **payload.model_dump())


@router.delete("/{floor_plan_id}")
def delete_floor_plan(floor_plan_id: int, repo: FloorPlanRepository = Depends(get_repo)) -> Dict[str, Dict[str, int]]:
    """Cascading delete; reports how many rows went from each table."""
    return {"deleted": repo.delete_floor_plan(floor_plan_id)}
