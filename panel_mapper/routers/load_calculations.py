# panel_mapper/routers/load_calculations.py
from __future__ import annotations
from typing import List, Optional, Union

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field, model_validator

from panel_mapper import workflows
from panel_mapper.engine import loads
from panel_mapper.repository import FloorPlanRepository
from panel_mapper.routers.floor_plans import get_repo
from panel_mapper.schemas.reports import (
    BestCircuit,
    CapacityCheck,
    CircuitLoad,
    CircuitRecommendations,
    FloorPlanLoadAnalysis,
    PanelAnalysis,
    PanelHealth,
    ServiceSize,
    UnassignedLoad,
    WholeHouseLoad,
)

router = APIRouter(prefix="/load-calculations", tags=["load-calculations"])


class CapacityCheckRequest(BaseModel):
    """The candidate component: a device type, an explicit wattage, or both (wattage wins when > 0)."""
    device_type_id: Optional[int] = None
    wattage: Optional[float] = Field(None, ge=0)

    @model_validator(mode="after")
    def _something_to_add(self):
        if self.device_type_id is None and self.wattage is None:
            raise ValueError("device_type_id or wattage is required")
        return self


class PlacementRequest(CapacityCheckRequest):
    room_id: Optional[int] = None
    prefer_same_room: bool = True
    prefer_same_type: bool = True
    min_safety_margin: float = Field(20.0, ge=0, le=100)


@router.get("/circuit/{circuit_id}", response_model=CircuitLoad)
def circuit_load(circuit_id: int, repo: FloorPlanRepository = Depends(get_repo)):
    return workflows.circuit_load(repo, circuit_id)


@router.get("/panel/{panel_id}", response_model=PanelAnalysis)
def panel_load(panel_id: int, repo: FloorPlanRepository = Depends(get_repo)):
    return workflows.panel_analysis(repo, panel_id)


@router.get("/floor-plan/{floor_plan_id}", response_model=FloorPlanLoadAnalysis)
def floor_plan_load(floor_plan_id: int, repo: FloorPlanRepository = Depends(get_repo)):
    return workflows.floor_plan_analysis(repo, floor_plan_id)


@router.get("/floor-plan/{floor_plan_id}/circuits", response_model=List[Union[CircuitLoad, UnassignedLoad]])
def floor_plan_circuit_loads(floor_plan_id: int, repo: FloorPlanRepository = Depends(get_repo)):
    """Every circuit on the plan, followed by the bucket of unassigned components."""
    return workflows.floor_plan_circuit_loads(repo, floor_plan_id)


@router.get("/recommendations/{circuit_id}", response_model=CircuitRecommendations)
def recommendations(circuit_id: int, repo: FloorPlanRepository = Depends(get_repo)):
    return workflows.circuit_recommendations(repo, circuit_id)


@router.post("/capacity-check/{circuit_id}", response_model=CapacityCheck)
def capacity_check(circuit_id: int, payload: CapacityCheckRequest, repo: FloorPlanRepository = Depends(get_repo)):
    return workflows.capacity_check(repo, circuit_id, payload.device_type_id, payload.wattage)


@router.post("/best-circuit/{floor_plan_id}", response_model=BestCircuit)
def best_circuit(floor_plan_id: int, payload: PlacementRequest, repo: FloorPlanRepository = Depends(get_repo)):
    """Circuits on the plan that can take the component, best first."""
    return workflows.best_circuit(
        repo,
        floor_plan_id,
        payload.device_type_id,
        payload.wattage,
        room_id=payload.room_id,
        prefer_same_room=payload.prefer_same_room,
        prefer_same_type=payload.prefer_same_type,
        min_safety_margin=payload.min_safety_margin,
    )


@router.get("/panel/{panel_id}/health", response_model=PanelHealth)
def panel_health(panel_id: int, repo: FloorPlanRepository = Depends(get_repo)):
    return workflows.panel_health(repo, panel_id)


@router.get("/floor-plan/{floor_plan_id}/whole-house", response_model=WholeHouseLoad)
def whole_house(floor_plan_id: int, repo: FloorPlanRepository = Depends(get_repo)):
    return workflows.whole_house(repo, floor_plan_id)


@router.get("/service-size", response_model=ServiceSize)
def service_size(demand_watts: float = Query(..., ge=0)):
    return loads.recommended_service_size(demand_watts)


@router.get("/wire-gauge")
def wire_gauge(amperage: float = Query(..., gt=0)):
    return {"amperage": amperage, "wire_gauge": loads.suggest_wire_gauge(amperage)}
