# panel_mapper/engine/materials.py
"""
Bill-of-materials estimate for a floor plan: devices, panels and breakers,
wire, conduit and (optionally) labor, priced from fixed unit-cost tables.
"""
from __future__ import annotations
import math
from collections import OrderedDict
from typing import Dict, Iterable, List, Optional

from panel_mapper.schemas.models import Circuit, Component, DeviceType, FloorPlanSnapshot, Panel
from panel_mapper.schemas.reports import MaterialCategory, MaterialItem, MaterialsList, MaterialsOptions

SUPPLIER = "Electrical Supply"
DEFAULT_WIRE_RUN_FACTOR = 1.2
DEFAULT_LABOR_RATE = 75.0

BASE_RUN_FT = 50          # home run to the panel
RUN_PER_COMPONENT_FT = 20
CONDUIT_FT_PER_CIRCUIT = 10
CONDUIT_STICK_FT = 10
FITTINGS_PER_CIRCUIT = 2
HOURS_PER_COMPONENT = 0.5
HOURS_PER_CIRCUIT = 1.0

CONDUIT_COST = 8.50
FITTING_COST = 1.25

# (substring, unit cost); first match wins
COMPONENT_COSTS = [
    ("gfci", 25.00),
    ("outlet", 3.50),
    ("receptacle", 3.50),
    ("switch", 2.75),
    ("light", 15.00),
    ("fan", 45.00),
]
DEFAULT_COMPONENT_COST = 5.00

BREAKER_COSTS = [
    ("gfci", 45.00),
    ("afci", 35.00),
    ("double", 25.00),
]
DEFAULT_BREAKER_COST = 15.00

WIRE_COSTS = {
    "14 AWG": 0.75,
    "12 AWG": 1.25,
    "10 AWG": 2.00,
}
DEFAULT_WIRE_COST = 1.00


def _lookup(text: str, table, default: float) -> float:
    t = text.lower()
    for needle, cost in table:
        if needle in t:
            return cost
    return default

def component_material_type(device_type_name: str) -> str:
    t = device_type_name.lower()
    if "outlet" in t or "receptacle" in t:
        return "outlet"
    if "switch" in t:
        return "switch"
    if "light" in t:
        return "lighting"
    return "component"

def component_unit_cost(device_type_name: str) -> float:
    return _lookup(device_type_name, COMPONENT_COSTS, DEFAULT_COMPONENT_COST)

def panel_unit_cost(total_positions: int) -> float:
    if total_positions <= 12:
        return 125.00
    if total_positions <= 24:
        return 175.00
    if total_positions <= 30:
        return 225.00
    return 300.00

def breaker_unit_cost(breaker_key: str) -> float:
    return _lookup(breaker_key, BREAKER_COSTS, DEFAULT_BREAKER_COST)

def wire_unit_cost(wire_key: str) -> float:
    for gauge, cost in WIRE_COSTS.items():
        if wire_key.upper().startswith(gauge):
            return cost
    return DEFAULT_WIRE_COST


def _item(material_type: str, description: str, quantity: int, unit: str, unit_cost: float,
          supplier: str = SUPPLIER) -> MaterialItem:
    return MaterialItem(
        material_type=material_type,
        description=description,
        quantity=quantity,
        unit=unit,
        unit_cost=unit_cost,
        total_cost=round(quantity * unit_cost, 2),
        supplier=supplier,
        part_number=None,
    )


def component_materials(components: Iterable[Component], device_types: Dict[int, DeviceType]) -> List[MaterialItem]:
    counts: "OrderedDict[str, int]" = OrderedDict()
    for comp in components:
        dt = device_types.get(comp.device_type_id)
        name = dt.name if dt and dt.name else "Unknown Device"
        counts[name] = counts.get(name, 0) + 1
    return [
        _item(component_material_type(name), name, count, "each", component_unit_cost(name))
        for name, count in counts.items()
    ]


def panel_materials(panels: Iterable[Panel], circuits: List[Circuit]) -> List[MaterialItem]:
    items: List[MaterialItem] = []
    for panel in panels:
        items.append(_item(
            "panel",
            f"{panel.panel_type} Panel - {panel.total_positions} Position",
            1, "each", panel_unit_cost(panel.total_positions),
        ))
        breakers: "OrderedDict[str, int]" = OrderedDict()
        for circuit in circuits:
            if circuit.panel_id != panel.id:
                continue
            key = f"{circuit.amperage}A {circuit.breaker_type}"
            breakers[key] = breakers.get(key, 0) + 1
        for key, count in breakers.items():
            items.append(_item("breaker", f"{key} Breaker", count, "each", breaker_unit_cost(key)))
    return items


def wire_materials(circuits: Iterable[Circuit], components: List[Component], wire_run_factor: float) -> List[MaterialItem]:
    runs: "OrderedDict[str, float]" = OrderedDict()
    for circuit in circuits:
        gauge = circuit.wire_gauge or "12 AWG"
        wire_type = "3-wire" if circuit.breaker_type == "double" else "2-wire"
        key = f"{gauge} {wire_type}"
        n = sum(1 for c in components if c.circuit_id == circuit.id)
        runs[key] = runs.get(key, 0.0) + (BASE_RUN_FT + RUN_PER_COMPONENT_FT * n) * wire_run_factor
    return [
        _item("wire", f"{key} Romex Cable", math.ceil(length), "feet", wire_unit_cost(key))
        for key, length in runs.items()
    ]


def conduit_materials(circuit_count: int) -> List[MaterialItem]:
    if circuit_count <= 0:
        return []
    sticks = math.ceil(circuit_count * CONDUIT_FT_PER_CIRCUIT / CONDUIT_STICK_FT)
    fittings = math.ceil(circuit_count * FITTINGS_PER_CIRCUIT)
    return [
        _item("conduit", '1/2" EMT Conduit', sticks, "each", CONDUIT_COST),
        _item("fittings", '1/2" EMT Connectors', fittings, "each", FITTING_COST),
    ]


def labor_estimate(component_count: int, circuit_count: int, labor_rate: float) -> List[MaterialItem]:
    hours = math.ceil(component_count * HOURS_PER_COMPONENT + circuit_count * HOURS_PER_CIRCUIT)
    return [_item("labor", "Electrical Installation Labor", hours, "hours", labor_rate, supplier="Labor")]


def apply_markup(items: List[MaterialItem], markup_percentage: float) -> List[MaterialItem]:
    if not markup_percentage or markup_percentage <= 0:
        return items
    out = []
    for it in items:
        unit_cost = round(it.unit_cost * (1 + markup_percentage / 100.0), 2)
        out.append(it.model_copy(update={
            "unit_cost": unit_cost,
            "total_cost": round(it.quantity * unit_cost, 2),
        }))
    return out


def summarize(floor_plan_id: int, items: List[MaterialItem]) -> MaterialsList:
    """Group line items by material_type with per-category and grand totals."""
    categories: Dict[str, MaterialCategory] = OrderedDict()
    for it in items:
        cat = categories.setdefault(it.material_type, MaterialCategory())
        cat.items.append(it)
        cat.total_cost = round(cat.total_cost + it.total_cost, 2)
        cat.total_quantity += it.quantity
    return MaterialsList(
        floor_plan_id=floor_plan_id,
        total_cost=round(sum(it.total_cost for it in items), 2),
        total_items=len(items),
        categories=categories,
        items=list(items),
    )


def estimate(snapshot: FloorPlanSnapshot, options: Optional[MaterialsOptions] = None) -> MaterialsList:
    options = options or MaterialsOptions()
    wire_run_factor = options.wire_run_factor or DEFAULT_WIRE_RUN_FACTOR
    labor_rate = DEFAULT_LABOR_RATE if options.labor_rate is None else options.labor_rate

    dts = snapshot.device_type_map()
    items: List[MaterialItem] = []
    items += component_materials(snapshot.components, dts)
    items += panel_materials(snapshot.panels, snapshot.circuits)
    items += wire_materials(snapshot.circuits, snapshot.components, wire_run_factor)
    items += conduit_materials(len(snapshot.circuits))
    if options.include_labor:
        items += labor_estimate(len(snapshot.components), len(snapshot.circuits), labor_rate)

    items = apply_markup(items, options.markup_percentage)
    return summarize(snapshot.floor_plan_id, items)
