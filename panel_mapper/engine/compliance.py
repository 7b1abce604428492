# panel_mapper/engine/compliance.py
"""
NEC code-compliance rules.

Each rule is a pure function (snapshot, policy) -> list[Violation]. RULES fixes
the evaluation order, which is also the order of the returned violation list.
"""
from __future__ import annotations
import logging
import math
from collections import OrderedDict
from typing import Callable, Dict, List, Optional, Tuple

from panel_mapper.engine.loads import CONTINUOUS_LOAD_FACTOR, calculate_circuit_load
from panel_mapper.schemas.models import Circuit, Component, DeviceType, FloorPlanSnapshot, Room
from panel_mapper.schemas.reports import ComplianceReport, Violation
from panel_mapper.schemas.standards import CompliancePolicy

logger = logging.getLogger(__name__)

SCORE_WEIGHTS = {"critical": 10, "warning": 5, "info": 1}

Rule = Callable[[FloorPlanSnapshot, CompliancePolicy], List[Violation]]


# -------------------------------
# Helpers
# -------------------------------

def _room_name(component: Component, rooms: Dict[int, Room]) -> str:
    room = rooms.get(component.room_id) if component.room_id is not None else None
    return room.name.lower() if room else ""

def _matches_any(name: str, keywords: List[str]) -> bool:
    return any(k.lower() in name for k in keywords)

def _category(component: Component, dts: Dict[int, DeviceType]) -> Optional[str]:
    dt = dts.get(component.device_type_id)
    return dt.category if dt else None

def has_afci_protection(circuit: Optional[Circuit], policy: CompliancePolicy) -> bool:
    """Circuit label containing 'afci' marks AFCI protection; optionally the breaker type too."""
    if circuit is None:
        return False
    if circuit.circuit_label and "afci" in circuit.circuit_label.lower():
        return True
    if policy.afci_from_breaker_type and circuit.breaker_type in ("AFCI", "GFCI_AFCI"):
        return True
    return False

def room_area_sqft(room: Room, policy: CompliancePolicy) -> float:
    width = room.width or policy.default_room_side_px
    height = room.height or policy.default_room_side_px
    return width * height / policy.area_divisor

def required_outlets(room: Room, policy: CompliancePolicy) -> int:
    return max(policy.min_outlets_per_room, math.ceil(room_area_sqft(room, policy) / policy.sqft_per_outlet))

def _receptacles_by_room(snapshot: FloorPlanSnapshot) -> "OrderedDict[int, List[Component]]":
    dts = snapshot.device_type_map()
    grouped: "OrderedDict[int, List[Component]]" = OrderedDict()
    for comp in snapshot.components:
        if _category(comp, dts) != "receptacle" or comp.room_id is None:
            continue
        grouped.setdefault(comp.room_id, []).append(comp)
    return grouped


# -------------------------------
# Rules
# -------------------------------

def check_gfci(snapshot: FloorPlanSnapshot, policy: CompliancePolicy) -> List[Violation]:
    """NEC 210.8: receptacles in wet/damp rooms need GFCI protection."""
    dts = snapshot.device_type_map()
    rooms = snapshot.room_map()
    out: List[Violation] = []
    for comp in snapshot.components:
        dt = dts.get(comp.device_type_id)
        if dt is None or dt.category != "receptacle" or comp.gfci:
            continue
        room_name = _room_name(comp, rooms)
        if not (_matches_any(room_name, policy.gfci_rooms) or dt.requires_gfci):
            continue
        out.append(Violation(
            floor_plan_id=snapshot.floor_plan_id,
            entity_id=comp.id,
            violation_type="gfci_required",
            violation_code="NEC 210.8",
            description=f"GFCI protection required for {dt.name} in {room_name}",
            severity="critical",
        ))
    return out


def check_afci(snapshot: FloorPlanSnapshot, policy: CompliancePolicy) -> List[Violation]:
    """NEC 210.12: outlets and lighting in living areas need AFCI protection."""
    dts = snapshot.device_type_map()
    rooms = snapshot.room_map()
    circuits = snapshot.circuit_map()
    out: List[Violation] = []
    for comp in snapshot.components:
        dt = dts.get(comp.device_type_id)
        if dt is None or dt.category not in ("receptacle", "lighting"):
            continue
        room_name = _room_name(comp, rooms)
        if not (_matches_any(room_name, policy.afci_rooms) or dt.requires_afci):
            continue
        circuit = circuits.get(comp.circuit_id) if comp.circuit_id is not None else None
        if has_afci_protection(circuit, policy):
            continue
        out.append(Violation(
            floor_plan_id=snapshot.floor_plan_id,
            entity_id=comp.id,
            violation_type="afci_required",
            violation_code="NEC 210.12",
            description=f"AFCI protection required for {dt.name} in {room_name}",
            severity="warning",
        ))
    return out


def check_outlet_spacing(snapshot: FloorPlanSnapshot, policy: CompliancePolicy) -> List[Violation]:
    """NEC 210.52: receptacles in a room should be no more than 12 ft apart (pairwise, straight line)."""
    rooms = snapshot.room_map()
    out: List[Violation] = []
    for room_id, outlets in _receptacles_by_room(snapshot).items():
        room = rooms.get(room_id)
        if room is None:
            continue
        for i in range(len(outlets)):
            for j in range(i + 1, len(outlets)):
                a, b = outlets[i], outlets[j]
                feet = math.hypot(a.x - b.x, a.y - b.y) / policy.pixels_per_foot
                if feet > policy.max_outlet_spacing_ft:
                    out.append(Violation(
                        floor_plan_id=snapshot.floor_plan_id,
                        entity_id=a.id,
                        violation_type="outlet_spacing",
                        violation_code="NEC 210.52",
                        description=f"Outlets may be more than {policy.max_outlet_spacing_ft:g} feet apart in {room.name}",
                        severity="warning",
                    ))
    return out


def check_outlet_count(snapshot: FloorPlanSnapshot, policy: CompliancePolicy) -> List[Violation]:
    grouped = _receptacles_by_room(snapshot)
    out: List[Violation] = []
    for room in snapshot.rooms:
        have = len(grouped.get(room.id, []))
        need = required_outlets(room, policy)
        if have < need:
            out.append(Violation(
                floor_plan_id=snapshot.floor_plan_id,
                entity_id=None,
                violation_type="insufficient_outlets",
                violation_code="NEC 210.52",
                description=f"{room.name} may need more outlets (has {have}, recommended {need})",
                severity="info",
            ))
    return out


def check_circuit_overload(snapshot: FloorPlanSnapshot, policy: CompliancePolicy) -> List[Violation]:
    """NEC 210.19: branch circuit load must stay within 80% of the breaker rating."""
    dts = snapshot.device_type_map()
    out: List[Violation] = []
    for circuit in snapshot.circuits:
        load = calculate_circuit_load(circuit, snapshot.components_on(circuit.id), dts)
        if not load.is_overloaded:
            continue
        max_continuous = circuit.amperage * CONTINUOUS_LOAD_FACTOR
        out.append(Violation(
            floor_plan_id=snapshot.floor_plan_id,
            entity_id=None,
            violation_type="circuit_overload",
            violation_code="NEC 210.19",
            description=(
                f"Circuit {circuit.circuit_label or circuit.id} is overloaded "
                f"({round(load.calculated_amperage)}A > {max_continuous:g}A)"
            ),
            severity="critical",
        ))
    return out


def check_wire_gauge(snapshot: FloorPlanSnapshot, policy: CompliancePolicy) -> List[Violation]:
    """NEC 240.4: breaker rating may not exceed the conductor's ampacity."""
    out: List[Violation] = []
    for circuit in snapshot.circuits:
        ceiling = policy.gauge_max_breaker.get(circuit.wire_gauge)
        if ceiling is None or circuit.amperage <= ceiling:
            continue
        out.append(Violation(
            floor_plan_id=snapshot.floor_plan_id,
            entity_id=None,
            violation_type="wire_gauge_mismatch",
            violation_code="NEC 240.4",
            description=f"{circuit.wire_gauge} wire cannot support {circuit.amperage}A breaker (max {ceiling}A)",
            severity="critical",
        ))
    return out


RULES: Tuple[Rule, ...] = (
    check_gfci,
    check_afci,
    check_outlet_spacing,
    check_outlet_count,
    check_circuit_overload,
    check_wire_gauge,
)


# -------------------------------
# Report
# -------------------------------

def evaluate(snapshot: FloorPlanSnapshot, policy: Optional[CompliancePolicy] = None) -> List[Violation]:
    policy = policy or CompliancePolicy()
    violations: List[Violation] = []
    for rule in RULES:
        found = rule(snapshot, policy)
        if found:
            logger.debug(f"{rule.__name__}: {len(found)} violation(s) on floor plan {snapshot.floor_plan_id}")
        violations.extend(found)
    return violations


def compliance_score(critical: int, warning: int, info: int) -> float:
    penalty = (
        critical * SCORE_WEIGHTS["critical"]
        + warning * SCORE_WEIGHTS["warning"]
        + info * SCORE_WEIGHTS["info"]
    )
    return max(0, 100 - penalty)


def build_report(floor_plan_id: int, violations: List[Violation]) -> ComplianceReport:
    critical = sum(1 for v in violations if v.severity == "critical")
    warning = sum(1 for v in violations if v.severity == "warning")
    info = sum(1 for v in violations if v.severity == "info")
    return ComplianceReport(
        floor_plan_id=floor_plan_id,
        total_violations=len(violations),
        critical_violations=critical,
        warning_violations=warning,
        info_violations=info,
        compliance_score=compliance_score(critical, warning, info),
        violations=list(violations),
    )
