# panel_mapper/workflows.py
"""
Glue between storage and the engines: read a snapshot through the repository,
run a pure engine over it, persist the result when there is one to keep.
"""
from __future__ import annotations
import logging
from typing import List, Optional

from panel_mapper.core.settings import settings
from panel_mapper.engine import compliance, loads, materials
from panel_mapper.repository import FloorPlanRepository
from panel_mapper.schemas.models import Component
from panel_mapper.schemas.reports import (
    BestCircuit,
    CapacityCheck,
    CircuitLoad,
    CircuitRecommendations,
    ComplianceReport,
    FloorPlanLoadAnalysis,
    LoadBucket,
    MaterialsList,
    MaterialsOptions,
    PanelAnalysis,
    PanelHealth,
    WholeHouseLoad,
)
from panel_mapper.schemas.standards import CompliancePolicy

logger = logging.getLogger(__name__)


# -------------------------------
# Compliance
# -------------------------------
def check_floor_plan(
    repo: FloorPlanRepository,
    floor_plan_id: int,
    policy: Optional[CompliancePolicy] = None,
) -> ComplianceReport:
    """Evaluate every rule and replace the stored violations. Running it twice gives the same rows."""
    snapshot = repo.load_snapshot(floor_plan_id)
    found = compliance.evaluate(snapshot, policy)
    stored = repo.replace_violations(floor_plan_id, found)
    report = compliance.build_report(floor_plan_id, stored)
    logger.info(
        f"Compliance check on floor plan {floor_plan_id}: {report.total_violations} violations "
        f"({report.critical_violations} critical, {report.warning_violations} warning, "
        f"{report.info_violations} info), score {report.compliance_score}"
    )
    return report


# -------------------------------
# Materials
# -------------------------------
def generate_materials(
    repo: FloorPlanRepository,
    floor_plan_id: int,
    options: Optional[MaterialsOptions] = None,
) -> MaterialsList:
    options = options or MaterialsOptions()
    # configured defaults fill whatever the caller left out
    options = options.model_copy(update={
        "wire_run_factor": options.wire_run_factor or settings.DEFAULT_WIRE_RUN_FACTOR,
        "labor_rate": settings.LABOR_RATE if options.labor_rate is None else options.labor_rate,
    })
    snapshot = repo.load_snapshot(floor_plan_id)
    estimate = materials.estimate(snapshot, options)
    repo.replace_materials(floor_plan_id, estimate.items)
    logger.info(
        f"Materials for floor plan {floor_plan_id}: {estimate.total_items} line items, ${estimate.total_cost:.2f}"
    )
    return estimate


def stored_materials(repo: FloorPlanRepository, floor_plan_id: int, category: Optional[str] = None) -> MaterialsList:
    return materials.summarize(floor_plan_id, repo.list_materials(floor_plan_id, category))


# -------------------------------
# Loads
# -------------------------------
def circuit_load(repo: FloorPlanRepository, circuit_id: int) -> CircuitLoad:
    snapshot = repo.load_snapshot(repo.floor_plan_of_circuit(circuit_id))
    circuit = snapshot.circuit_map()[circuit_id]
    return loads.calculate_circuit_load(circuit, snapshot.components_on(circuit_id), snapshot.device_type_map())


def panel_analysis(repo: FloorPlanRepository, panel_id: int) -> PanelAnalysis:
    snapshot = repo.load_snapshot(repo.floor_plan_of_panel(panel_id))
    panel = next(p for p in snapshot.panels if p.id == panel_id)
    return loads.analyze_panel(panel, snapshot.circuits_of(panel_id), snapshot.components, snapshot.device_type_map())


def floor_plan_analysis(repo: FloorPlanRepository, floor_plan_id: int) -> FloorPlanLoadAnalysis:
    return loads.analyze_floor_plan(repo.load_snapshot(floor_plan_id))


def floor_plan_circuit_loads(repo: FloorPlanRepository, floor_plan_id: int) -> List[LoadBucket]:
    return loads.circuit_loads(repo.load_snapshot(floor_plan_id))


def circuit_recommendations(repo: FloorPlanRepository, circuit_id: int) -> CircuitRecommendations:
    snapshot = repo.load_snapshot(repo.floor_plan_of_circuit(circuit_id))
    circuit = snapshot.circuit_map()[circuit_id]
    load = loads.calculate_circuit_load(circuit, snapshot.components_on(circuit_id), snapshot.device_type_map())
    return loads.recommend(circuit, load)


def capacity_check(
    repo: FloorPlanRepository,
    circuit_id: int,
    device_type_id: Optional[int] = None,
    wattage: Optional[float] = None,
) -> CapacityCheck:
    """Would a new component (by device type and/or explicit wattage) fit on the circuit?"""
    snapshot = repo.load_snapshot(repo.floor_plan_of_circuit(circuit_id))
    circuit = snapshot.circuit_map()[circuit_id]
    dts = _with_device_type(repo, snapshot.device_type_map(), device_type_id)
    candidate = Component(id=0, device_type_id=device_type_id, wattage=wattage or 0, circuit_id=circuit_id)
    return loads.check_capacity(circuit, snapshot.components_on(circuit_id), candidate, dts)


def _with_device_type(repo: FloorPlanRepository, dts, device_type_id: Optional[int]):
    if device_type_id is not None and device_type_id not in dts:
        dt = repo.get_device_type(device_type_id)
        dts[dt.id] = dt
    return dts


# -------------------------------
# Load planning
# -------------------------------
def best_circuit(
    repo: FloorPlanRepository,
    floor_plan_id: int,
    device_type_id: Optional[int] = None,
    wattage: Optional[float] = None,
    room_id: Optional[int] = None,
    prefer_same_room: bool = True,
    prefer_same_type: bool = True,
    min_safety_margin: float = 20.0,
) -> BestCircuit:
    """Rank every circuit on the plan for a new component."""
    snapshot = repo.load_snapshot(floor_plan_id)
    dts = _with_device_type(repo, snapshot.device_type_map(), device_type_id)
    candidate = Component(
        id=0, floor_plan_id=floor_plan_id, device_type_id=device_type_id, wattage=wattage or 0, room_id=room_id,
    )
    result = loads.find_best_circuit(
        snapshot.circuits, snapshot.components, candidate, dts,
        prefer_same_room=prefer_same_room,
        prefer_same_type=prefer_same_type,
        min_safety_margin=min_safety_margin,
    )
    best = result.best.circuit_id if result.best else None
    logger.info(
        f"Best circuit on floor plan {floor_plan_id}: {best} "
        f"({len(result.alternatives)} alternatives, {result.disqualified} disqualified)"
    )
    return result


def panel_health(repo: FloorPlanRepository, panel_id: int) -> PanelHealth:
    snapshot = repo.load_snapshot(repo.floor_plan_of_panel(panel_id))
    panel = next(p for p in snapshot.panels if p.id == panel_id)
    return loads.check_panel_health(panel, snapshot.circuits_of(panel_id), snapshot.components, snapshot.device_type_map())


def whole_house(repo: FloorPlanRepository, floor_plan_id: int) -> WholeHouseLoad:
    return loads.whole_house_load(repo.load_snapshot(floor_plan_id))
