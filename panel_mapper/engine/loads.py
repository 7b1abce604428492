# panel_mapper/engine/loads.py
"""
Branch-circuit and panel load calculations.

All functions are pure: they take plain records (or a FloorPlanSnapshot) and
return report models. Nothing here touches storage.
"""
from __future__ import annotations
import math
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from panel_mapper.schemas.models import Circuit, Component, DeviceType, FloorPlanSnapshot, Panel
from panel_mapper.schemas.reports import (
    BestCircuit,
    CapacityCheck,
    CircuitCandidate,
    CircuitHealth,
    CircuitLoad,
    CircuitRecommendations,
    ComponentLoad,
    FloorPlanLoadAnalysis,
    HealthSummary,
    LoadBreakdown,
    LoadBucket,
    PanelAdvice,
    PanelAnalysis,
    PanelHealth,
    PlacementAdvice,
    Recommendation,
    RoomLoad,
    ServiceSize,
    UnassignedLoad,
    WholeHouseLoad,
)

CONTINUOUS_LOAD_FACTOR = 0.8   # NEC 80% rule for continuous loads
SERVICE_VOLTAGE = 240          # panel capacity assumes 240V split-phase service

# NEC Art. 220 general-lighting style schedule: (band width in watts, factor)
DEMAND_SCHEDULE: Tuple[Tuple[float, float], ...] = (
    (3000.0, 1.00),
    (117000.0, 0.35),
    (math.inf, 0.25),
)

RECOMMENDED_BREAKERS = [15, 20, 25, 30, 40, 50, 60, 70, 80, 90, 100]

LIGHTING_CATEGORIES = {"lighting"}
OUTLET_CATEGORIES = {"receptacle"}
APPLIANCE_CATEGORIES = {"appliance", "hvac", "heating"}


def _r2(v: float) -> float:
    return round(v, 2)


def effective_wattage(component: Component, device_type: Optional[DeviceType] = None) -> float:
    """Component wattage if set (>0), else the device type default, else 0."""
    if component.wattage and component.wattage > 0:
        return float(component.wattage)
    if device_type is not None and device_type.default_wattage:
        return float(device_type.default_wattage)
    return 0.0


def total_load(components: Iterable[Component], device_types: Mapping[int, DeviceType]) -> float:
    return sum(effective_wattage(c, device_types.get(c.device_type_id)) for c in components)


def circuit_voltage(circuit: Circuit) -> int:
    return 240 if circuit.is_double_pole else 120


def capacity_percentage(load_watts: float, amperage: float, voltage: float) -> float:
    """
    Percent of the derated (80%) breaker rating drawn by load_watts.
    A zero-rated circuit reports 0% rather than dividing by zero.
    """
    if amperage <= 0 or voltage <= 0:
        return 0.0
    amps = load_watts / voltage
    return amps / (amperage * CONTINUOUS_LOAD_FACTOR) * 100.0


def _component_loads(
    components: Iterable[Component], device_types: Mapping[int, DeviceType]
) -> Tuple[List[ComponentLoad], Dict[str, float]]:
    rows: List[ComponentLoad] = []
    totals = {"total": 0.0, "lighting": 0.0, "outlet": 0.0, "appliance": 0.0}
    for comp in components:
        dt = device_types.get(comp.device_type_id)
        watts = effective_wattage(comp, dt)
        category = dt.category if dt else None
        totals["total"] += watts
        if category in LIGHTING_CATEGORIES:
            totals["lighting"] += watts
        elif category in OUTLET_CATEGORIES:
            totals["outlet"] += watts
        elif category in APPLIANCE_CATEGORIES:
            totals["appliance"] += watts
        dt_name = dt.name if dt else None
        rows.append(ComponentLoad(
            id=comp.id,
            label=comp.label or f"{dt_name or 'Component'} {comp.id}",
            device_type=dt_name,
            category=category,
            wattage=watts,
        ))
    return rows, totals


def calculate_circuit_load(
    circuit: Circuit,
    components: Iterable[Component],
    device_types: Mapping[int, DeviceType],
) -> CircuitLoad:
    rows, totals = _component_loads(components, device_types)
    voltage = circuit_voltage(circuit)
    load = totals["total"]
    pct = capacity_percentage(load, circuit.amperage, voltage)

    return CircuitLoad(
        circuit_id=circuit.id,
        panel_id=circuit.panel_id,
        circuit_label=circuit.circuit_label,
        breaker_type=circuit.breaker_type,
        breaker_amperage=circuit.amperage,
        wire_gauge=circuit.wire_gauge,
        voltage=voltage,
        total_load_watts=_r2(load),
        lighting_load=_r2(totals["lighting"]),
        outlet_load=_r2(totals["outlet"]),
        appliance_load=_r2(totals["appliance"]),
        calculated_amperage=_r2(load / voltage),
        capacity_percentage=_r2(pct),
        safety_margin=_r2(100.0 - pct),
        is_overloaded=pct > 100.0,
        component_count=len(rows),
        components=rows,
    )


def calculate_unassigned_load(
    components: Iterable[Component], device_types: Mapping[int, DeviceType]
) -> UnassignedLoad:
    rows, totals = _component_loads(components, device_types)
    return UnassignedLoad(
        total_load_watts=_r2(totals["total"]),
        lighting_load=_r2(totals["lighting"]),
        outlet_load=_r2(totals["outlet"]),
        appliance_load=_r2(totals["appliance"]),
        component_count=len(rows),
        components=rows,
    )


def _banded(load: float, schedule: Iterable[Tuple[float, float]]) -> float:
    remaining = max(0.0, float(load))
    out = 0.0
    for width, factor in schedule:
        band = min(remaining, width)
        out += band * factor
        remaining -= band
        if remaining <= 0:
            break
    return out


def calculate_demand_load(total_connected_load: float) -> float:
    """
    Apply the demand schedule band by band:
    first 3 kW at 100%, next 117 kW at 35%, remainder at 25%.
    """
    return _banded(total_connected_load, DEMAND_SCHEDULE)


def analyze_panel(
    panel: Panel,
    circuits: Iterable[Circuit],
    components: Iterable[Component],
    device_types: Mapping[int, DeviceType],
) -> PanelAnalysis:
    components = list(components)
    by_circuit: List[CircuitLoad] = []
    connected = 0.0
    for circuit in circuits:
        on_circuit = [c for c in components if c.circuit_id == circuit.id]
        cl = calculate_circuit_load(circuit, on_circuit, device_types)
        by_circuit.append(cl)
        connected += cl.total_load_watts

    demand = calculate_demand_load(connected)
    demand_factor = demand / connected if connected > 0 else 1.0
    main_amps = panel.main_breaker_amps or 0
    panel_watts = main_amps * SERVICE_VOLTAGE
    pct = demand / panel_watts * 100.0 if panel_watts > 0 else 0.0

    return PanelAnalysis(
        panel_id=panel.id,
        panel_name=panel.panel_name,
        main_breaker_amps=panel.main_breaker_amps,
        total_connected_load=_r2(connected),
        calculated_demand=_r2(demand),
        demand_factor=_r2(demand_factor),
        capacity_percentage=_r2(pct),
        overloaded_circuits=sum(1 for cl in by_circuit if cl.is_overloaded),
        circuits=by_circuit,
    )


def _unassigned_components(snapshot: FloorPlanSnapshot) -> List[Component]:
    # Dangling circuit references are orphans too
    known = {c.id for c in snapshot.circuits}
    return [c for c in snapshot.components if c.circuit_id is None or c.circuit_id not in known]


def circuit_loads(snapshot: FloorPlanSnapshot) -> List[LoadBucket]:
    """Every circuit of the floor plan followed by the unassigned bucket (always present)."""
    dts = snapshot.device_type_map()
    buckets: List[LoadBucket] = [
        calculate_circuit_load(circuit, snapshot.components_on(circuit.id), dts)
        for circuit in snapshot.circuits
    ]
    buckets.append(calculate_unassigned_load(_unassigned_components(snapshot), dts))
    return buckets


def analyze_floor_plan(snapshot: FloorPlanSnapshot) -> FloorPlanLoadAnalysis:
    dts = snapshot.device_type_map()
    panels = [
        analyze_panel(panel, snapshot.circuits_of(panel.id), snapshot.components, dts)
        for panel in snapshot.panels
    ]
    return FloorPlanLoadAnalysis(
        floor_plan_id=snapshot.floor_plan_id,
        total_connected_load=_r2(sum(p.total_connected_load for p in panels)),
        total_calculated_demand=_r2(sum(p.calculated_demand for p in panels)),
        panels=panels,
        unassigned=calculate_unassigned_load(_unassigned_components(snapshot), dts),
    )


def recommend(circuit: Circuit, load: CircuitLoad) -> CircuitRecommendations:
    """Load-balancing advice for one circuit."""
    recs: List[Recommendation] = []
    pct = load.capacity_percentage

    if load.is_overloaded:
        recs.append(Recommendation(
            type="overload",
            description="Circuit is overloaded. Consider splitting loads across multiple circuits.",
            priority="high",
        ))
        if circuit.amperage < 20:
            recs.append(Recommendation(
                type="upgrade_breaker",
                description="Consider upgrading to a higher amperage breaker if wire gauge supports it.",
                priority="medium",
            ))
    elif pct > 80:
        recs.append(Recommendation(
            type="near_capacity",
            description="Circuit is near capacity. Monitor for additional loads.",
            priority="medium",
        ))

    if circuit.wire_gauge == "14 AWG" and circuit.amperage > 15:
        recs.append(Recommendation(
            type="wire_gauge_mismatch",
            description="14 AWG wire should not be used with breakers over 15A.",
            priority="high",
        ))
    if circuit.wire_gauge == "12 AWG" and circuit.amperage > 20:
        recs.append(Recommendation(
            type="wire_gauge_mismatch",
            description="12 AWG wire should not be used with breakers over 20A.",
            priority="high",
        ))

    if not recs:
        recs.append(Recommendation(
            type="good",
            description="Circuit load is within safe operating parameters.",
            priority="low",
        ))

    return CircuitRecommendations(
        circuit_id=circuit.id,
        current_load=load.total_load_watts,
        capacity_percentage=pct,
        recommendations=recs,
    )


def recommended_breaker_size(amps: float) -> int:
    for size in RECOMMENDED_BREAKERS:
        if size >= amps:
            return size
    return RECOMMENDED_BREAKERS[-1]


def check_capacity(
    circuit: Circuit,
    existing: Iterable[Component],
    new_component: Component,
    device_types: Mapping[int, DeviceType],
) -> CapacityCheck:
    """Would adding new_component keep the circuit within its continuous rating?"""
    voltage = circuit_voltage(circuit)
    max_capacity = circuit.amperage * voltage
    max_continuous = max_capacity * CONTINUOUS_LOAD_FACTOR

    existing_load = total_load(existing, device_types)
    new_load = effective_wattage(new_component, device_types.get(new_component.device_type_id))
    combined = existing_load + new_load
    utilization = combined / max_continuous * 100.0 if max_continuous > 0 else 0.0
    can_add = max_continuous > 0 and combined <= max_continuous

    recommended = None
    if utilization <= 60 and can_add:
        severity, text = "success", "Safe to add - circuit has plenty of capacity"
    elif utilization <= 80 and can_add:
        severity, text = "info", "Can add, but circuit will be moderately loaded"
    elif can_add:
        severity, text = "warning", "Can add, but circuit will be near capacity (80-100% NEC rule)"
    else:
        severity = "error"
        over = combined - max_continuous
        recommended = recommended_breaker_size(math.ceil((combined / voltage) / CONTINUOUS_LOAD_FACTOR))
        text = (
            f"Cannot safely add - would overload circuit by {format_load(over)}. "
            f"Consider: (1) Moving some loads to another circuit, (2) Installing a {recommended}A circuit, "
            f"or (3) Using a 240V heater on a double-pole breaker."
        )

    return CapacityCheck(
        can_add=can_add,
        severity=severity,
        recommendation=text,
        existing_load=_r2(existing_load),
        new_load=_r2(new_load),
        total_load=_r2(combined),
        max_capacity=_r2(max_capacity),
        max_continuous=_r2(max_continuous),
        capacity_remaining=_r2(max_continuous - combined),
        utilization_percent=round(utilization, 1),
        voltage=voltage,
        breaker_size=circuit.amperage,
        recommended_breaker=recommended,
    )


def format_load(watts: float) -> str:
    if watts >= 1000:
        return f"{watts / 1000:.1f}kW"
    return f"{round(watts)}W"


# -------------------------------------------------------------------
# Load planning
# -------------------------------------------------------------------
# Ampacity by conductor size, smallest conductor first
WIRE_AMPACITY: Tuple[Tuple[str, int], ...] = (
    ("14", 15), ("12", 20), ("10", 30), ("8", 40), ("6", 55), ("4", 70),
    ("2", 95), ("1", 110), ("1/0", 125), ("2/0", 145), ("3/0", 165), ("4/0", 195),
)

SERVICE_SIZES: Tuple[Tuple[int, str], ...] = (
    (100, "100A Service - Small homes, basic loads"),
    (150, "150A Service - Medium homes, moderate electric loads"),
    (200, "200A Service - Large homes, significant electric loads"),
    (300, "300A Service - Very large homes, heavy electric loads"),
    (400, "400A Service - Mansion/commercial grade"),
)
SERVICE_HEADROOM = 1.25

LIGHTING_DEMAND = ((3000.0, 1.0), (math.inf, 0.35))
OUTLET_DEMAND = ((10000.0, 1.0), (math.inf, 0.5))
APPLIANCE_DEMAND = (1.0, 0.75)    # largest, second largest
APPLIANCE_DEMAND_REST = 0.25
DEDICATED_CIRCUIT_DEFAULT_WATTS = 1500.0


def suggest_wire_gauge(amperage: float) -> str:
    """Smallest conductor whose ampacity covers `amperage`."""
    for gauge, ampacity in WIRE_AMPACITY:
        if ampacity >= amperage:
            return f"{gauge} AWG"
    return f"{WIRE_AMPACITY[-1][0]} AWG"


def recommended_service_size(demand_watts: float) -> ServiceSize:
    """Smallest standard 240V service with 25% headroom over the demand."""
    demand_amps = max(0.0, demand_watts) / SERVICE_VOLTAGE
    amps, description = next(
        ((a, d) for a, d in SERVICE_SIZES if a >= demand_amps * SERVICE_HEADROOM),
        SERVICE_SIZES[-1],
    )
    return ServiceSize(
        demand_amps=round(demand_amps),
        recommended_amps=amps,
        description=description,
        utilization_percent=round(demand_amps / amps * 100),
        adequate=demand_amps <= amps * CONTINUOUS_LOAD_FACTOR,
    )


def appliance_demand(loads: Iterable[float]) -> float:
    """100% of the largest appliance, 75% of the second, 25% of the rest."""
    out = 0.0
    for i, watts in enumerate(sorted(loads, reverse=True)):
        factor = APPLIANCE_DEMAND[i] if i < len(APPLIANCE_DEMAND) else APPLIANCE_DEMAND_REST
        out += watts * factor
    return out


def _breakdown(components: Iterable[Component], device_types: Mapping[int, DeviceType]) -> Tuple[LoadBreakdown, List[float]]:
    lighting = outlets = 0.0
    appliances: List[float] = []
    for comp in components:
        dt = device_types.get(comp.device_type_id)
        category = dt.category if dt else None
        watts = effective_wattage(comp, dt)
        if category in LIGHTING_CATEGORIES:
            lighting += watts
        elif category in OUTLET_CATEGORIES:
            outlets += watts
        elif category in APPLIANCE_CATEGORIES:
            appliances.append(watts)
    total = lighting + outlets + sum(appliances)
    return LoadBreakdown(lighting=_r2(lighting), outlets=_r2(outlets), appliances=_r2(sum(appliances)), total=_r2(total)), appliances


def whole_house_load(snapshot: FloorPlanSnapshot) -> WholeHouseLoad:
    """
    Connected and demand load of the whole plan by category, with a service
    size recommendation and a per-room breakdown (rooms matched by room_id).
    Only lighting, receptacle and appliance-type loads are counted.
    """
    dts = snapshot.device_type_map()
    connected, appliance_loads = _breakdown(snapshot.components, dts)

    lighting = _banded(connected.lighting, LIGHTING_DEMAND)
    outlets = _banded(connected.outlets, OUTLET_DEMAND)
    appliances = appliance_demand(appliance_loads)
    demand_total = lighting + outlets + appliances
    demand = LoadBreakdown(
        lighting=_r2(lighting), outlets=_r2(outlets), appliances=_r2(appliances), total=_r2(demand_total),
    )
    diversity = (connected.total - demand_total) / connected.total * 100 if connected.total > 0 else 0.0

    counts = {"lights": 0, "outlets": 0, "appliances": 0, "total": len(snapshot.components)}
    for comp in snapshot.components:
        dt = dts.get(comp.device_type_id)
        category = dt.category if dt else None
        if category in LIGHTING_CATEGORIES:
            counts["lights"] += 1
        elif category in OUTLET_CATEGORIES:
            counts["outlets"] += 1
        elif category in APPLIANCE_CATEGORIES:
            counts["appliances"] += 1

    rooms = []
    for room in snapshot.rooms:
        in_room = [c for c in snapshot.components if c.room_id == room.id]
        loads, _ = _breakdown(in_room, dts)
        rooms.append(RoomLoad(
            room_id=room.id,
            room_name=room.name or f"Room {room.id}",
            component_count=len(in_room),
            loads=loads,
        ))

    return WholeHouseLoad(
        floor_plan_id=snapshot.floor_plan_id,
        connected_load=connected,
        demand_load=demand,
        diversity_factor=round(diversity, 1),
        recommended_service=recommended_service_size(demand_total),
        component_counts=counts,
        rooms=rooms,
    )


def _placement_advice(new_watts: float, qualified: int) -> List[PlacementAdvice]:
    if qualified == 0:
        watts = new_watts or DEDICATED_CIRCUIT_DEFAULT_WATTS
        amps_120 = math.ceil(watts / 120 / CONTINUOUS_LOAD_FACTOR)
        amps_240 = math.ceil(watts / 240 / CONTINUOUS_LOAD_FACTOR)
        return [
            PlacementAdvice(
                type="error",
                message="No existing circuits can safely accommodate this component",
                action="Install a new dedicated circuit",
            ),
            PlacementAdvice(
                type="info",
                message=f"Recommended circuit: {amps_120}A @ 120V or {amps_240}A @ 240V",
                action="Consult electrician for new circuit installation",
            ),
        ]
    if qualified == 1:
        return [PlacementAdvice(
            type="warning",
            message="Only one circuit available with sufficient capacity",
            action="Consider installing additional circuits for future flexibility",
        )]
    return [PlacementAdvice(
        type="success",
        message=f"{qualified} circuits available with sufficient capacity",
        action="Choose based on proximity and existing loads",
    )]


def find_best_circuit(
    circuits: Iterable[Circuit],
    components: Iterable[Component],
    new_component: Component,
    device_types: Mapping[int, DeviceType],
    prefer_same_room: bool = True,
    prefer_same_type: bool = True,
    min_safety_margin: float = 20.0,
) -> BestCircuit:
    """
    Rank the circuits that can take `new_component`.

    Score: twice the headroom left after adding it, +50 when the circuit already
    serves the same room, +30 when it already feeds the same device category,
    +20 when utilization stays under (100 - min_safety_margin), -10 for an empty
    circuit. Circuits that would exceed their continuous rating are disqualified.
    """
    components = list(components)
    new_dt = device_types.get(new_component.device_type_id)
    new_category = new_dt.category if new_dt else None

    qualified: List[CircuitCandidate] = []
    disqualified = 0
    for circuit in circuits:
        on_circuit = [c for c in components if c.circuit_id == circuit.id]
        check = check_capacity(circuit, on_circuit, new_component, device_types)
        if not check.can_add:
            disqualified += 1
            continue

        score = (100.0 - check.utilization_percent) * 2
        if prefer_same_room and new_component.room_id is not None:
            if any(c.room_id == new_component.room_id for c in on_circuit):
                score += 50
        if prefer_same_type and new_category is not None:
            if any(getattr(device_types.get(c.device_type_id), "category", None) == new_category for c in on_circuit):
                score += 30
        if check.utilization_percent < 100.0 - min_safety_margin:
            score += 20
        if not on_circuit:
            score -= 10
        qualified.append(CircuitCandidate(
            circuit_id=circuit.id, circuit_label=circuit.circuit_label, score=_r2(score), check=check,
        ))

    qualified.sort(key=lambda c: c.score, reverse=True)
    new_watts = effective_wattage(new_component, new_dt)
    return BestCircuit(
        best=qualified[0] if qualified else None,
        alternatives=qualified[1:4],
        disqualified=disqualified,
        recommendations=_placement_advice(new_watts, len(qualified)),
    )


def _health_status(utilization: float) -> Tuple[str, str]:
    if utilization > 100:
        return "overloaded", "error"
    if utilization > 80:
        return "near_capacity", "warning"
    if utilization > 60:
        return "moderate", "info"
    return "good", "success"


def _breaker_name(health: CircuitHealth) -> str:
    return f"Breaker {health.breaker_position} ({health.circuit_label or 'unlabeled'})"


def check_panel_health(
    panel: Panel,
    circuits: Iterable[Circuit],
    components: Iterable[Component],
    device_types: Mapping[int, DeviceType],
) -> PanelHealth:
    """Status band per circuit, an overall grade, and balancing advice."""
    components = list(components)
    rows: List[CircuitHealth] = []
    for circuit in circuits:
        on_circuit = [c for c in components if c.circuit_id == circuit.id]
        voltage = circuit_voltage(circuit)
        max_continuous = circuit.amperage * voltage * CONTINUOUS_LOAD_FACTOR
        load = total_load(on_circuit, device_types)
        utilization = load / max_continuous * 100.0 if max_continuous > 0 else 0.0
        status, severity = _health_status(utilization)
        rows.append(CircuitHealth(
            circuit_id=circuit.id,
            breaker_position=circuit.breaker_position,
            circuit_label=circuit.circuit_label,
            total_load=_r2(load),
            amperage=_r2(load / voltage),
            utilization=round(utilization, 1),
            max_continuous=_r2(max_continuous),
            available_capacity=_r2(max_continuous - load),
            status=status,
            severity=severity,
            component_count=len(on_circuit),
        ))

    overloaded = [h for h in rows if h.status == "overloaded"]
    near = [h for h in rows if h.status == "near_capacity"]
    spare = [h for h in rows if h.status in ("good", "moderate")]

    if overloaded:
        overall = "critical"
    elif len(near) > 2:
        overall = "warning"
    elif near:
        overall = "caution"
    else:
        overall = "good"

    advice: List[PanelAdvice] = []
    if overloaded:
        advice.append(PanelAdvice(
            priority="high",
            type="overload",
            message=f"{len(overloaded)} circuit(s) are overloaded and pose a safety risk",
            action="Immediately redistribute loads or install additional circuits",
            circuits=[_breaker_name(h) for h in overloaded],
        ))
    if near:
        advice.append(PanelAdvice(
            priority="medium",
            type="capacity",
            message=f"{len(near)} circuit(s) are near capacity (>80%)",
            action="Monitor these circuits and avoid adding more loads",
            circuits=[_breaker_name(h) for h in near],
        ))
    if spare and (overloaded or near):
        advice.append(PanelAdvice(
            priority="medium",
            type="balancing",
            message=f"{len(spare)} circuit(s) are available for load redistribution",
            action="Consider moving components from overloaded circuits to these circuits",
            circuits=[f"Breaker {h.breaker_position}" for h in spare],
        ))

    return PanelHealth(
        panel_id=panel.id,
        overall_health=overall,
        total_load=_r2(sum(h.total_load for h in rows)),
        summary=HealthSummary(
            total=len(rows),
            overloaded=len(overloaded),
            near_capacity=len(near),
            moderate=sum(1 for h in rows if h.status == "moderate"),
            good=sum(1 for h in rows if h.status == "good"),
        ),
        circuits=rows,
        recommendations=advice,
    )
