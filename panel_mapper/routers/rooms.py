# panel_mapper/routers/rooms.py
from __future__ import annotations
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from panel_mapper.repository import FloorPlanRepository
from panel_mapper.routers.floor_plans import get_repo
from panel_mapper.schemas.models import Room

router = APIRouter(prefix="/rooms", tags=["rooms"])


class RoomCreate(BaseModel):
    name: str
    svg_ref: Optional[str] = None


@router.get("", response_model=List[Room])
def list_rooms(repo: FloorPlanRepository = Depends(get_repo)):
    return repo.list_rooms()


@router.post("", response_model=Room, status_code=201)
def create_room(payload: RoomCreate, repo: FloorPlanRepository = Depends(get_repo)):
    return repo.create_room(payload.name, payload.svg_ref)


@router.delete("/{room_id}")
def delete_room(room_id: int, repo: FloorPlanRepository = Depends(get_repo)):
    return {"deleted": repo.delete_room(room_id)}
