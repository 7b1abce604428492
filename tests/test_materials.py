"""
Materials estimator and its CSV / XLSX exporters.
"""
import csv
import io

import pytest
from openpyxl import load_workbook

from panel_mapper.engine.materials import (
    apply_markup,
    breaker_unit_cost,
    component_material_type,
    component_unit_cost,
    estimate,
    panel_unit_cost,
    wire_unit_cost,
)
from panel_mapper.io.materials_csv import HEADER, write_materials_csv
from panel_mapper.io.materials_excel import write_materials_xlsx
from panel_mapper.schemas.reports import MaterialsOptions
from tests.test_load_calculator import make_circuit, make_component, make_device_type, make_panel, make_snapshot

OUTLET = make_device_type(2, "Outlet", "receptacle")
LIGHT = make_device_type(1, "Light", "lighting", default_wattage=60)
GFCI_OUTLET = make_device_type(14, "GFCI Outlet", "receptacle", requires_gfci=True)


def by_type(result, material_type):
    return [it for it in result.items if it.material_type == material_type]


# ============================================================================
# Pricing tables
# ============================================================================

@pytest.mark.parametrize("name, material_type, cost", [
    ("Outlet", "outlet", 3.50),
    ("GFCI Outlet", "outlet", 25.00),
    ("USB Receptacle", "outlet", 3.50),
    ("Switch", "switch", 2.75),
    ("Light", "lighting", 15.00),
    ("Ceiling Fan", "component", 45.00),
    ("Smoke Detector", "component", 5.00),
])
def test_component_pricing(name, material_type, cost):
    assert component_material_type(name) == material_type
    assert component_unit_cost(name) == cost


@pytest.mark.parametrize("positions, cost", [(8, 125), (12, 125), (20, 175), (24, 175), (30, 225), (40, 300)])
def test_panel_tiers(positions, cost):
    assert panel_unit_cost(positions) == cost


def test_breaker_and_wire_costs():
    assert breaker_unit_cost("20A GFCI") == 45
    assert breaker_unit_cost("15A AFCI") == 35
    assert breaker_unit_cost("20A GFCI_AFCI") == 45
    assert breaker_unit_cost("30A double") == 25
    assert breaker_unit_cost("20A single") == 15
    assert wire_unit_cost("14 AWG 2-wire") == 0.75
    assert wire_unit_cost("12 AWG 3-wire") == 1.25
    assert wire_unit_cost("10 AWG 2-wire") == 2.00
    assert wire_unit_cost("6 AWG 3-wire") == 1.00


# ============================================================================
# Estimate
# ============================================================================

def test_three_outlets():
    snap = make_snapshot(
        components=[make_component(i, device_type_id=2) for i in (1, 2, 3)],
        device_types=[OUTLET],
    )
    result = estimate(snap)
    assert len(result.items) == 1
    item = result.items[0]
    assert item.description == "Outlet"
    assert item.material_type == "outlet"
    assert item.quantity == 3
    assert item.unit_cost == 3.50
    assert item.total_cost == 10.50
    assert result.total_cost == 10.50
    assert result.total_items == 1
    assert result.categories["outlet"].total_quantity == 3


def test_unknown_device_type():
    result = estimate(make_snapshot(components=[make_component(1), make_component(2, device_type_id=77)]))
    assert [(it.description, it.quantity, it.unit_cost) for it in result.items] == [("Unknown Device", 2, 5.00)]


def test_panel_and_breaker_items():
    snap = make_snapshot(
        panels=[make_panel(1, total_positions=30, panel_type="main")],
        circuits=[
            make_circuit(1, amperage=20),
            make_circuit(2, amperage=20),
            make_circuit(3, amperage=30, breaker_type="double", secondary_position=5),
            make_circuit(4, amperage=20, breaker_type="GFCI"),
        ],
    )
    result = estimate(snap)
    panels = by_type(result, "panel")
    assert [(p.description, p.unit_cost) for p in panels] == [("main Panel - 30 Position", 225.00)]
    breakers = {b.description: (b.quantity, b.unit_cost) for b in by_type(result, "breaker")}
    assert breakers == {
        "20A single Breaker": (2, 15.00),
        "30A double Breaker": (1, 25.00),
        "20A GFCI Breaker": (1, 45.00),
    }


def test_wire_footage_grouped_by_gauge_and_type():
    snap = make_snapshot(
        circuits=[
            make_circuit(1, wire_gauge="12 AWG"),
            make_circuit(2, wire_gauge="12 AWG"),
            make_circuit(3, wire_gauge="10 AWG", amperage=30, breaker_type="double"),
        ],
        components=[make_component(1, circuit_id=1), make_component(2, circuit_id=1), make_component(3, circuit_id=3)],
    )
    result = estimate(snap, MaterialsOptions(wire_run_factor=1.5))
    wire = {w.description: w for w in by_type(result, "wire")}
    # circuit 1: (50 + 40) * 1.5 = 135, circuit 2: 50 * 1.5 = 75
    assert wire["12 AWG 2-wire Romex Cable"].quantity == 210
    assert wire["12 AWG 2-wire Romex Cable"].unit == "feet"
    assert wire["12 AWG 2-wire Romex Cable"].total_cost == 262.50
    # (50 + 20) * 1.5 = 105
    assert wire["10 AWG 3-wire Romex Cable"].quantity == 105
    assert wire["10 AWG 3-wire Romex Cable"].unit_cost == 2.00


def test_default_wire_run_factor():
    result = estimate(make_snapshot(circuits=[make_circuit(1)]))
    assert by_type(result, "wire")[0].quantity == 60


def test_conduit_and_fittings():
    snap = make_snapshot(circuits=[make_circuit(i) for i in (1, 2, 3)])
    result = estimate(snap)
    conduit = by_type(result, "conduit")[0]
    fittings = by_type(result, "fittings")[0]
    assert (conduit.quantity, conduit.total_cost) == (3, 25.50)
    assert (fittings.quantity, fittings.total_cost) == (6, 7.50)


def test_no_conduit_without_circuits():
    assert by_type(estimate(make_snapshot()), "conduit") == []


def test_labor_is_optional():
    snap = make_snapshot(
        circuits=[make_circuit(1), make_circuit(2)],
        components=[make_component(i, circuit_id=1) for i in (1, 2, 3)],
    )
    assert by_type(estimate(snap), "labor") == []

    labor = by_type(estimate(snap, MaterialsOptions(include_labor=True)), "labor")[0]
    # ceil(0.5 * 3 + 1.0 * 2) = 4 hours
    assert labor.quantity == 4
    assert labor.unit == "hours"
    assert labor.total_cost == 300.00

    custom = by_type(estimate(snap, MaterialsOptions(include_labor=True, labor_rate=90)), "labor")[0]
    assert custom.total_cost == 360.00


def test_markup_applies_to_unit_cost_before_totals():
    snap = make_snapshot(components=[make_component(i, device_type_id=2) for i in (1, 2, 3)], device_types=[OUTLET])
    result = estimate(snap, MaterialsOptions(markup_percentage=10))
    item = result.items[0]
    assert item.unit_cost == 3.85
    assert item.total_cost == 11.55
    assert result.total_cost == 11.55


def test_zero_markup_is_identity():
    snap = make_snapshot(components=[make_component(1, device_type_id=1)], device_types=[LIGHT])
    items = estimate(snap).items
    assert apply_markup(items, 0) == items


def test_categories_sum_to_grand_total():
    snap = make_snapshot(
        panels=[make_panel(1)],
        circuits=[make_circuit(1), make_circuit(2, wire_gauge="14 AWG", amperage=15)],
        components=[
            make_component(1, circuit_id=1, device_type_id=2),
            make_component(2, circuit_id=1, device_type_id=14),
            make_component(3, circuit_id=2, device_type_id=1),
        ],
        device_types=[OUTLET, LIGHT, GFCI_OUTLET],
    )
    result = estimate(snap, MaterialsOptions(include_labor=True, markup_percentage=15))
    assert set(result.categories) == {"outlet", "lighting", "panel", "breaker", "wire", "conduit", "fittings", "labor"}
    assert sum(c.total_cost for c in result.categories.values()) == pytest.approx(result.total_cost, abs=0.01)
    assert result.total_items == len(result.items)
    for it in result.items:
        assert it.total_cost == round(it.quantity * it.unit_cost, 2)


# ============================================================================
# Exporters
# ============================================================================

def _sample_items():
    snap = make_snapshot(
        circuits=[make_circuit(1)],
        components=[make_component(i, device_type_id=2, circuit_id=1) for i in (1, 2, 3)],
        device_types=[OUTLET],
    )
    return estimate(snap).items


def test_csv_export():
    text = write_materials_csv(_sample_items())
    rows = list(csv.reader(io.StringIO(text)))
    assert rows[0] == HEADER
    assert rows[0] == ["Material Type", "Description", "Quantity", "Unit", "Unit Cost", "Total Cost", "Supplier", "Part Number"]
    assert rows[1] == ["outlet", "Outlet", "3", "each", "3.50", "10.50", "Electrical Supply", ""]
    assert len(rows) == 1 + len(_sample_items())


def test_csv_export_empty_list_has_header_only():
    rows = list(csv.reader(io.StringIO(write_materials_csv([]))))
    assert rows == [HEADER]


def test_xlsx_export(tmp_path):
    items = _sample_items()
    out = tmp_path / "materials.xlsx"
    data = write_materials_xlsx(items, title="Main Floor", out_path=out)
    assert out.exists()

    wb = load_workbook(io.BytesIO(data))
    ws = wb.active
    assert ws.title == "Main Floor"
    assert [c.value for c in ws[1]] == HEADER
    assert ws["B2"].value == "Outlet"
    assert ws["C2"].value == 3
    total_row = len(items) + 2
    assert ws.cell(row=total_row, column=5).value == "TOTAL"
    assert ws.cell(row=total_row, column=6).value == pytest.approx(sum(it.total_cost for it in items))
