"""
NEC rule checks: each rule in isolation, then the full ordered evaluation and scoring.
"""
import pytest

from panel_mapper.engine.compliance import (
    RULES,
    build_report,
    check_afci,
    check_circuit_overload,
    check_gfci,
    check_outlet_count,
    check_outlet_spacing,
    check_wire_gauge,
    compliance_score,
    evaluate,
    required_outlets,
)
from panel_mapper.schemas.standards import CompliancePolicy
from tests.test_load_calculator import make_circuit, make_component, make_device_type, make_room, make_snapshot

POLICY = CompliancePolicy()

OUTLET = make_device_type(2, "Outlet", "receptacle")
GFCI_OUTLET = make_device_type(14, "GFCI Outlet", "receptacle", requires_gfci=True)
LAMP = make_device_type(20, "Lamp", "lighting", default_wattage=60)
DISHWASHER = make_device_type(11, "Dishwasher", "appliance", default_wattage=1800, requires_gfci=True)
DEVICE_TYPES = [OUTLET, GFCI_OUTLET, LAMP, DISHWASHER]


def snapshot_with(components, rooms=None, circuits=None):
    return make_snapshot(
        rooms=rooms or [],
        components=components,
        circuits=circuits or [],
        device_types=DEVICE_TYPES,
    )


# ============================================================================
# GFCI (NEC 210.8)
# ============================================================================

def test_gfci_required_in_bathroom():
    snap = snapshot_with([make_component(1, room_id=1, device_type_id=2)], rooms=[make_room(1, "Master Bathroom")])
    found = check_gfci(snap, POLICY)
    assert len(found) == 1
    v = found[0]
    assert v.severity == "critical"
    assert v.violation_code == "NEC 210.8"
    assert v.violation_type == "gfci_required"
    assert v.entity_id == 1
    assert "master bathroom" in v.description


def test_gfci_protected_outlet_passes():
    snap = snapshot_with([make_component(1, room_id=1, device_type_id=2, gfci=True)], rooms=[make_room(1, "Kitchen")])
    assert check_gfci(snap, POLICY) == []


def test_gfci_not_required_in_bedroom():
    snap = snapshot_with([make_component(1, room_id=1, device_type_id=2)], rooms=[make_room(1, "Bedroom")])
    assert check_gfci(snap, POLICY) == []


def test_gfci_device_flag_applies_anywhere():
    snap = snapshot_with([make_component(1, room_id=1, device_type_id=14)], rooms=[make_room(1, "Bedroom")])
    assert [v.entity_id for v in check_gfci(snap, POLICY)] == [1]


def test_gfci_only_checks_receptacles():
    snap = snapshot_with([make_component(1, room_id=1, device_type_id=11)], rooms=[make_room(1, "Kitchen")])
    assert check_gfci(snap, POLICY) == []


def test_gfci_room_keywords_come_from_policy():
    snap = snapshot_with([make_component(1, room_id=1, device_type_id=2)], rooms=[make_room(1, "Mudroom")])
    assert check_gfci(snap, POLICY) == []
    assert len(check_gfci(snap, CompliancePolicy(gfci_rooms=["mud"]))) == 1


# ============================================================================
# AFCI (NEC 210.12)
# ============================================================================

def test_afci_required_for_bedroom_lighting():
    snap = snapshot_with(
        [make_component(1, room_id=1, device_type_id=20, circuit_id=1)],
        rooms=[make_room(1, "Bedroom 2")],
        circuits=[make_circuit(1, circuit_label="Bedroom lights")],
    )
    found = check_afci(snap, POLICY)
    assert len(found) == 1
    assert found[0].severity == "warning"
    assert found[0].violation_code == "NEC 210.12"


def test_afci_label_counts_as_protection():
    snap = snapshot_with(
        [make_component(1, room_id=1, device_type_id=2, circuit_id=1)],
        rooms=[make_room(1, "Living Room")],
        circuits=[make_circuit(1, circuit_label="Living AFCI")],
    )
    assert check_afci(snap, POLICY) == []


def test_afci_breaker_type_only_counts_when_enabled():
    snap = snapshot_with(
        [make_component(1, room_id=1, device_type_id=2, circuit_id=1)],
        rooms=[make_room(1, "Den")],
        circuits=[make_circuit(1, breaker_type="AFCI")],
    )
    assert len(check_afci(snap, POLICY)) == 1
    assert check_afci(snap, CompliancePolicy(afci_from_breaker_type=True)) == []


def test_afci_unassigned_component_is_unprotected():
    snap = snapshot_with([make_component(1, room_id=1, device_type_id=2)], rooms=[make_room(1, "Study")])
    assert len(check_afci(snap, POLICY)) == 1


# ============================================================================
# Outlet spacing & count (NEC 210.52)
# ============================================================================

def test_outlets_too_far_apart():
    snap = snapshot_with(
        [
            make_component(1, room_id=1, device_type_id=2, x=0, y=0),
            make_component(2, room_id=1, device_type_id=2, x=200, y=0),
        ],
        rooms=[make_room(1, "Office")],
    )
    found = check_outlet_spacing(snap, POLICY)
    assert len(found) == 1
    assert found[0].entity_id == 1
    assert found[0].severity == "warning"


def test_outlets_within_spacing():
    snap = snapshot_with(
        [
            make_component(1, room_id=1, device_type_id=2, x=0, y=0),
            make_component(2, room_id=1, device_type_id=2, x=60, y=80),  # 100 px = 10 ft
        ],
        rooms=[make_room(1, "Office")],
    )
    assert check_outlet_spacing(snap, POLICY) == []


def test_spacing_is_per_room():
    snap = snapshot_with(
        [
            make_component(1, room_id=1, device_type_id=2, x=0, y=0),
            make_component(2, room_id=2, device_type_id=2, x=500, y=0),
        ],
        rooms=[make_room(1, "Office"), make_room(2, "Hall")],
    )
    assert check_outlet_spacing(snap, POLICY) == []


@pytest.mark.parametrize("width, height, expected", [
    (300, 300, 2),       # 9 sq ft, minimum applies
    (None, None, 2),     # defaults to 100 x 100 px
    (5000, 3000, 15),    # 1500 sq ft
    (2000, 1001, 3),     # 200.2 sq ft rounds up to 3
])
def test_required_outlets(width, height, expected):
    assert required_outlets(make_room(1, "Room", width=width, height=height), POLICY) == expected


def test_outlet_count_reports_every_short_room():
    snap = snapshot_with(
        [make_component(1, room_id=1, device_type_id=2)],
        rooms=[make_room(1, "Office", width=300, height=300), make_room(2, "Closet")],
    )
    found = check_outlet_count(snap, POLICY)
    assert [v.description for v in found] == [
        "Office may need more outlets (has 1, recommended 2)",
        "Closet may need more outlets (has 0, recommended 2)",
    ]
    assert all(v.entity_id is None and v.severity == "info" for v in found)


# ============================================================================
# Circuit overload & wire gauge
# ============================================================================

def test_circuit_overload_rule():
    snap = snapshot_with(
        [make_component(1, circuit_id=1, wattage=2000), make_component(2, circuit_id=2, wattage=500)],
        circuits=[make_circuit(1, circuit_label="Kitchen"), make_circuit(2)],
    )
    found = check_circuit_overload(snap, POLICY)
    assert len(found) == 1
    v = found[0]
    assert v.severity == "critical"
    assert v.violation_code == "NEC 210.19"
    assert v.entity_id is None
    assert v.description == "Circuit Kitchen is overloaded (17A > 16A)"


def test_overload_uses_device_default_wattage():
    snap = snapshot_with(
        [make_component(1, circuit_id=1, device_type_id=11), make_component(2, circuit_id=1, device_type_id=11)],
        circuits=[make_circuit(1)],
    )
    assert len(check_circuit_overload(snap, POLICY)) == 1


def test_overload_rule_catches_load_just_over_the_limit():
    snap = snapshot_with([make_component(1, circuit_id=1, wattage=1920.08)], circuits=[make_circuit(1, circuit_label="Den")])
    found = check_circuit_overload(snap, POLICY)
    assert [v.violation_type for v in found] == ["circuit_overload"]


@pytest.mark.parametrize("gauge, amps, violates", [
    ("14 AWG", 15, False),
    ("14 AWG", 20, True),
    ("12 AWG", 20, False),
    ("12 AWG", 30, True),
    ("10 AWG", 30, False),
    ("10 AWG", 40, True),
    ("8 AWG", 50, False),
])
def test_wire_gauge_rule(gauge, amps, violates):
    snap = snapshot_with([], circuits=[make_circuit(1, wire_gauge=gauge, amperage=amps)])
    found = check_wire_gauge(snap, POLICY)
    assert bool(found) == violates
    if violates:
        assert found[0].violation_code == "NEC 240.4"
        assert found[0].severity == "critical"


def test_wire_gauge_message():
    snap = snapshot_with([], circuits=[make_circuit(1, wire_gauge="14", amperage=20)])
    assert check_wire_gauge(snap, POLICY)[0].description == "14 AWG wire cannot support 20A breaker (max 15A)"


# ============================================================================
# Evaluation & report
# ============================================================================

def test_evaluate_runs_rules_in_order():
    snap = snapshot_with(
        [
            make_component(1, room_id=1, device_type_id=2, circuit_id=1, wattage=2000),
            make_component(2, room_id=2, device_type_id=2, x=0, y=0),
            make_component(3, room_id=2, device_type_id=2, x=300, y=0),
        ],
        rooms=[make_room(1, "Kitchen"), make_room(2, "Bedroom")],
        circuits=[make_circuit(1, wire_gauge="14 AWG", amperage=20)],
    )
    types = [v.violation_type for v in evaluate(snap)]
    assert types == [
        "gfci_required",
        "afci_required",
        "afci_required",
        "outlet_spacing",
        "insufficient_outlets",
        "circuit_overload",
        "wire_gauge_mismatch",
    ]
    assert len(RULES) == 6


def test_clean_plan_has_perfect_score():
    snap = snapshot_with([], circuits=[make_circuit(1)])
    report = build_report(1, evaluate(snap))
    assert report.total_violations == 0
    assert report.compliance_score == 100


def test_report_counts_and_score():
    snap = snapshot_with(
        [make_component(1, room_id=1, device_type_id=2)],
        rooms=[make_room(1, "Garage")],
    )
    report = build_report(1, evaluate(snap))
    # gfci (critical) + one short room (info)
    assert report.critical_violations == 1
    assert report.warning_violations == 0
    assert report.info_violations == 1
    assert report.compliance_score == 100 - 10 - 1


@pytest.mark.parametrize("critical, warning, info, expected", [
    (0, 0, 0, 100),
    (1, 1, 1, 84),
    (10, 0, 0, 0),
    (20, 5, 3, 0),
])
def test_score_is_clamped(critical, warning, info, expected):
    score = compliance_score(critical, warning, info)
    assert score == expected
    assert 0 <= score <= 100
