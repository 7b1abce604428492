# panel_mapper/routers/electrical.py
from __future__ import annotations
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from panel_mapper.repository import FloorPlanRepository
from panel_mapper.routers.floor_plans import get_repo
from panel_mapper.schemas.models import BreakerType, Circuit, Component, Panel

router = APIRouter(prefix="/electrical", tags=["electrical"])


# -------------------------------------------------------------------
# MODELS
# -------------------------------------------------------------------
class PanelCreate(BaseModel):
    floor_plan_id: int
    panel_name: str = Field(..., min_length=1)
    x_position: float = 0
    y_position: float = 0
    panel_type: str = "main"
    main_breaker_amps: Optional[int] = Field(200, ge=0)
    total_positions: int = Field(30, ge=1)


class PanelUpdate(BaseModel):
    floor_plan_id: Optional[int] = None
    panel_name: Optional[str] = None
    x_position: Optional[float] = None
    y_position: Optional[float] = None
    panel_type: Optional[str] = None
    main_breaker_amps: Optional[int] = Field(None, ge=0)
    total_positions: Optional[int] = Field(None, ge=1)


class CircuitCreate(BaseModel):
    """secondary_position applies to double-pole breakers only and defaults to breaker_position + 2."""
    panel_id: int
    breaker_position: int = Field(..., ge=1)
    amperage: int
    breaker_type: BreakerType = "single"
    wire_gauge: Optional[str] = "12 AWG"
    circuit_label: Optional[str] = None
    color_code: Optional[str] = "#000000"
    secondary_position: Optional[int] = Field(None, ge=1)


class CircuitUpdate(BaseModel):
    panel_id: Optional[int] = None
    breaker_position: Optional[int] = Field(None, ge=1)
    amperage: Optional[int] = None
    breaker_type: Optional[BreakerType] = None
    wire_gauge: Optional[str] = None
    circuit_label: Optional[str] = None
    color_code: Optional[str] = None
    secondary_position: Optional[int] = Field(None, ge=1)


class ComponentCreate(BaseModel):
    floor_plan_id: int
    x: float
    y: float
    device_type_id: Optional[int] = None
    room_id: Optional[int] = None
    circuit_id: Optional[int] = None
    label: Optional[str] = None
    voltage: Optional[float] = 120
    amperage: Optional[float] = 15
    gfci: bool = False
    wattage: Optional[float] = Field(None, ge=0)
    properties: Dict[str, Any] = Field(default_factory=dict)


class ComponentUpdate(BaseModel):
    x: Optional[float] = None
    y: Optional[float] = None
    device_type_id: Optional[int] = None
    room_id: Optional[int] = None
    circuit_id: Optional[int] = None
    unassign: bool = False  # clear circuit_id
    clear_room: bool = False  # clear room_id
    label: Optional[str] = None
    voltage: Optional[float] = None
    amperage: Optional[float] = None
    gfci: Optional[bool] = None
    wattage: Optional[float] = Field(None, ge=0)
    properties: Optional[Dict[str, Any]] = None


# -------------------------------------------------------------------
# PANELS
# -------------------------------------------------------------------
@router.get("/panels", response_model=List[Panel])
def list_panels(floor_plan_id: Optional[int] = Query(None), repo: FloorPlanRepository = Depends(get_repo)):
    return repo.list_panels(floor_plan_id)


@router.get("/panels/{panel_id}", response_model=Panel)
def get_panel(panel_id: int, repo: FloorPlanRepository = Depends(get_repo)):
    return repo.get_panel(panel_id)


@router.post("/panels", response_model=Panel, status_code=201)
def create_panel(payload: PanelCreate, repo: FloorPlanRepository = Depends(get_repo)):
    fields = payload.model_dump(exclude={"floor_plan_id", "panel_name"})
    return repo.create_panel(payload.floor_plan_id, payload.panel_name, **fields)


@router.put("/panels/{panel_id}", response_model=Panel)
def update_panel(panel_id: int, payload: PanelUpdate, repo: FloorPlanRepository = Depends(get_repo)):
    return repo.update_panel(panel_id, **payload.model_dump())


@router.delete("/panels/{panel_id}")
def delete_panel(panel_id: int, repo: FloorPlanRepository = Depends(get_repo)):
    return {"deleted": repo.delete_panel(panel_id)}


# -------------------------------------------------------------------
# CIRCUITS
# -------------------------------------------------------------------
@router.get("/circuits", response_model=List[Circuit])
def list_circuits(panel_id: Optional[int] = Query(None), repo: FloorPlanRepository = Depends(get_repo)):
    return repo.list_circuits(panel_id)


@router.get("/circuits/{circuit_id}", response_model=Circuit)
def get_circuit(circuit_id: int, repo: FloorPlanRepository = Depends(get_repo)):
    return repo.get_circuit(circuit_id)


@router.post("/circuits", response_model=Circuit, status_code=201)
def create_circuit(payload: CircuitCreate, repo: FloorPlanRepository = Depends(get_repo)):
    return repo.create_circuit(**payload.model_dump())


@router.put("/circuits/{circuit_id}", response_model=Circuit)
def update_circuit(circuit_id: int, payload: CircuitUpdate, repo: FloorPlanRepository = Depends(get_repo)):
    return repo.update_circuit(circuit_id, **payload.model_dump())


@router.delete("/circuits/{circuit_id}")
def delete_circuit(circuit_id: int, repo: FloorPlanRepository = Depends(get_repo)):
    return {"deleted": repo.delete_circuit(circuit_id)}


# -------------------------------------------------------------------
# COMPONENTS
# -------------------------------------------------------------------
@router.get("/components", response_model=List[Component])
def list_components(
    floor_plan_id: Optional[int] = Query(None),
    circuit_id: Optional[int] = Query(None),
    repo: FloorPlanRepository = Depends(get_repo),
):
    return repo.list_components(floor_plan_id=floor_plan_id, circuit_id=circuit_id)


@router.get("/components/{component_id}", response_model=Component)
def get_component(component_id: int, repo: FloorPlanRepository = Depends(get_repo)):
    return repo.get_component(component_id)


@router.post("/components", response_model=Component, status_code=201)
def create_component(payload: ComponentCreate, repo: FloorPlanRepository = Depends(get_repo)):
    fields = payload.model_dump(exclude={"floor_plan_id"})
    return repo.create_component(payload.floor_plan_id, **fields)


@router.put("/components/{component_id}", response_model=Component)
def update_component(component_id: int, payload: ComponentUpdate, repo: FloorPlanRepository = Depends(get_repo)):
    return repo.update_component(component_id, **payload.model_dump())


@router.delete("/components/{component_id}")
def delete_component(component_id: int, repo: FloorPlanRepository = Depends(get_repo)):
    return {"deleted": repo.delete_component(component_id)}
