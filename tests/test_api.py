"""
HTTP surface: routing, status mapping and the origin filter, through TestClient.
"""
import csv
import io

from panel_mapper.core.settings import settings


def create_plan(client, name="House", rooms=None):
    r = client.post("/floor-plans", json={"name": name, "rooms": rooms or [], "viewBox": "0 0 800 600"})
    assert r.status_code == 201, r.text
    return r.json()


def device_type_id(client, name):
    return next(dt["id"] for dt in client.get("/device-types").json() if dt["name"] == name)


def wired_plan(client):
    """Bathroom with one outlet on a 20A circuit, plus one unassigned light."""
    plan = create_plan(client, rooms=[{"id": 1, "name": "Bathroom", "width": 300, "height": 300}])
    panel = client.post("/electrical/panels", json={"floor_plan_id": plan["id"], "panel_name": "Main"}).json()
    circuit = client.post(
        "/electrical/circuits",
        json={"panel_id": panel["id"], "breaker_position": 1, "amperage": 20, "circuit_label": "Bath"},
    ).json()
    outlet = client.post(
        "/electrical/components",
        json={
            "floor_plan_id": plan["id"], "x": 10, "y": 10, "room_id": 1,
            "device_type_id": device_type_id(client, "Outlet"), "circuit_id": circuit["id"], "wattage": 300,
        },
    ).json()
    client.post(
        "/electrical/components",
        json={"floor_plan_id": plan["id"], "x": 50, "y": 50, "device_type_id": device_type_id(client, "Light")},
    )
    return plan, panel, circuit, outlet


# ============================================================================
# Service
# ============================================================================

def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_origin_filter_rejects_unknown_hosts(client, monkeypatch):
    monkeypatch.setattr(settings, "IP_FILTER_ENABLED", True)
    monkeypatch.setattr(settings, "ALLOWED_IPS", ["127.0.0.1"])
    monkeypatch.setattr(settings, "ALLOWED_IP_PREFIXES", [])
    r = client.get("/health")
    assert r.status_code == 403
    assert r.json() == {"error": "Access denied"}


def test_origin_filter_allows_listed_hosts(client, monkeypatch):
    monkeypatch.setattr(settings, "IP_FILTER_ENABLED", True)
    monkeypatch.setattr(settings, "ALLOWED_IPS", ["testclient"])
    assert client.get("/health").status_code == 200

    monkeypatch.setattr(settings, "ALLOWED_IPS", [])
    monkeypatch.setattr(settings, "ALLOWED_IP_PREFIXES", ["test"])
    assert client.get("/health").status_code == 200


# ============================================================================
# Floor plans
# ============================================================================

def test_floor_plan_crud(client):
    plan = create_plan(client, "Main House", rooms=[{"id": 1, "name": "Kitchen"}])
    assert plan["view_box"] == "0 0 800 600"
    assert plan["rooms"][0]["name"] == "Kitchen"

    assert client.post("/floor-plans", json={"name": "main house"}).status_code == 409
    assert client.post("/floor-plans", json={"name": ""}).status_code == 422
    assert [p["name"] for p in client.get("/floor-plans").json()] == ["Main House"]

    r = client.put(f"/floor-plans/{plan['id']}", json={"name": "Renamed", "svg": "<svg/>"})
    assert r.status_code == 200
    assert r.json()["name"] == "Renamed"
    assert r.json()["svg_content"] == "<svg/>"

    assert client.get("/floor-plans/9999").status_code == 404
    r = client.delete("/floor-plans/9999")
    assert r.status_code == 404
    assert "error" in r.json()


def test_delete_floor_plan_reports_counts(client):
    plan, *_ = wired_plan(client)
    client.post(f"/code-compliance/check/{plan['id']}")
    r = client.delete(f"/floor-plans/{plan['id']}")
    assert r.status_code == 200
    deleted = r.json()["deleted"]
    assert deleted["components"] == 2
    assert deleted["circuits"] == 1
    assert deleted["panels"] == 1
    assert deleted["floor_plans"] == 1
    assert deleted["violations"] > 0
    assert client.get(f"/floor-plans/{plan['id']}").status_code == 404
    assert client.get("/electrical/components", params={"floor_plan_id": plan["id"]}).json() == []


# ============================================================================
# Electrical
# ============================================================================

def test_circuit_validation_statuses(client):
    plan = create_plan(client)
    panel = client.post(
        "/electrical/panels", json={"floor_plan_id": plan["id"], "panel_name": "Sub", "total_positions": 12}
    ).json()
    ok = client.post(
        "/electrical/circuits",
        json={"panel_id": panel["id"], "breaker_position": 3, "amperage": 30, "breaker_type": "double", "wire_gauge": "#10"},
    )
    assert ok.status_code == 201
    assert ok.json()["secondary_position"] == 5
    assert ok.json()["wire_gauge"] == "10 AWG"

    conflict = client.post("/electrical/circuits", json={"panel_id": panel["id"], "breaker_position": 5, "amperage": 20})
    assert conflict.status_code == 409
    bad_amps = client.post("/electrical/circuits", json={"panel_id": panel["id"], "breaker_position": 1, "amperage": 25})
    assert bad_amps.status_code == 400
    bad_type = client.post(
        "/electrical/circuits",
        json={"panel_id": panel["id"], "breaker_position": 1, "amperage": 20, "breaker_type": "triple"},
    )
    assert bad_type.status_code == 422
    missing_panel = client.post("/electrical/circuits", json={"panel_id": 999, "breaker_position": 1, "amperage": 20})
    assert missing_panel.status_code == 404


def test_unassign_component(client):
    plan, _, circuit, outlet = wired_plan(client)
    r = client.put(f"/electrical/components/{outlet['id']}", json={"unassign": True})
    assert r.status_code == 200
    assert r.json()["circuit_id"] is None
    assert client.get("/electrical/components", params={"circuit_id": circuit["id"]}).json() == []


def test_delete_circuit_unassigns(client):
    plan, _, circuit, outlet = wired_plan(client)
    r = client.delete(f"/electrical/circuits/{circuit['id']}")
    assert r.json() == {"deleted": {"circuits": 1, "components_unassigned": 1}}
    assert client.get(f"/electrical/components/{outlet['id']}").json()["circuit_id"] is None


def test_double_pole_with_explicit_second_slot(client):
    plan = create_plan(client)
    panel = client.post("/electrical/panels", json={"floor_plan_id": plan["id"], "panel_name": "Sub"}).json()
    body = {"panel_id": panel["id"], "breaker_position": 1, "amperage": 30, "breaker_type": "double"}
    r = client.post("/electrical/circuits", json={**body, "secondary_position": 2})
    assert r.status_code == 201
    assert r.json()["secondary_position"] == 2
    single = {"panel_id": panel["id"], "breaker_position": 5, "amperage": 20, "secondary_position": 7}
    assert client.post("/electrical/circuits", json=single).status_code == 400


def test_clear_component_room(client):
    _, _, circuit, outlet = wired_plan(client)
    r = client.put(f"/electrical/components/{outlet['id']}", json={"clear_room": True})
    assert r.status_code == 200
    assert r.json()["room_id"] is None
    assert r.json()["circuit_id"] == circuit["id"]


def test_moving_panel_unassigns_components(client):
    plan, panel, circuit, outlet = wired_plan(client)
    other = create_plan(client, "Guest House")
    r = client.put(f"/electrical/panels/{panel['id']}", json={"floor_plan_id": other["id"]})
    assert r.status_code == 200
    assert client.get(f"/electrical/components/{outlet['id']}").json()["circuit_id"] is None
    assert client.get(f"/load-calculations/circuit/{circuit['id']}").json()["component_count"] == 0


# ============================================================================
# Load calculations
# ============================================================================

def test_circuit_load_endpoint(client):
    _, _, circuit, _ = wired_plan(client)
    r = client.get(f"/load-calculations/circuit/{circuit['id']}")
    assert r.status_code == 200
    body = r.json()
    assert body["total_load_watts"] == 300
    assert body["outlet_load"] == 300
    assert body["is_overloaded"] is False
    assert client.get("/load-calculations/circuit/999").status_code == 404


def test_floor_plan_circuit_loads_end_with_unassigned(client):
    plan, _, circuit, _ = wired_plan(client)
    buckets = client.get(f"/load-calculations/floor-plan/{plan['id']}/circuits").json()
    assert [b["kind"] for b in buckets] == ["circuit", "unassigned"]
    assert buckets[0]["circuit_id"] == circuit["id"]
    assert buckets[-1]["component_count"] == 1


def test_panel_and_floor_plan_analysis(client):
    plan, panel, _, _ = wired_plan(client)
    analysis = client.get(f"/load-calculations/panel/{panel['id']}").json()
    assert analysis["panel_name"] == "Main"
    assert analysis["total_connected_load"] == 300
    whole = client.get(f"/load-calculations/floor-plan/{plan['id']}").json()
    assert [p["panel_id"] for p in whole["panels"]] == [panel["id"]]
    assert whole["unassigned"]["component_count"] == 1


def test_capacity_check(client):
    _, _, circuit, _ = wired_plan(client)
    assert client.post(f"/load-calculations/capacity-check/{circuit['id']}", json={}).status_code == 422
    r = client.post(f"/load-calculations/capacity-check/{circuit['id']}", json={"wattage": 600})
    assert r.status_code == 200
    body = r.json()
    assert body["can_add"] is True
    assert body["existing_load"] == 300
    assert body["total_load"] == 900
    assert body["breaker_size"] == 20


def test_recommendations(client):
    _, _, circuit, _ = wired_plan(client)
    r = client.get(f"/load-calculations/recommendations/{circuit['id']}")
    assert r.status_code == 200
    assert r.json()["circuit_id"] == circuit["id"]


def test_best_circuit(client):
    plan, _, circuit, _ = wired_plan(client)
    url = f"/load-calculations/best-circuit/{plan['id']}"
    assert client.post(url, json={}).status_code == 422

    r = client.post(url, json={"device_type_id": device_type_id(client, "Outlet"), "wattage": 100, "room_id": 1})
    assert r.status_code == 200
    body = r.json()
    assert body["best"]["circuit_id"] == circuit["id"]
    assert body["best"]["check"]["total_load"] == 400
    assert body["recommendations"][0]["type"] == "warning"

    none_fit = client.post(url, json={"wattage": 5000}).json()
    assert none_fit["best"] is None
    assert none_fit["disqualified"] == 1
    assert client.post("/load-calculations/best-circuit/999", json={"wattage": 100}).status_code == 404


def test_panel_health(client):
    _, panel, circuit, _ = wired_plan(client)
    r = client.get(f"/load-calculations/panel/{panel['id']}/health")
    assert r.status_code == 200
    body = r.json()
    assert body["overall_health"] == "good"
    assert body["summary"]["total"] == 1
    assert body["circuits"][0]["circuit_id"] == circuit["id"]
    assert body["circuits"][0]["status"] == "good"
    assert client.get("/load-calculations/panel/999/health").status_code == 404


def test_whole_house_load(client):
    plan, _, _, _ = wired_plan(client)
    r = client.get(f"/load-calculations/floor-plan/{plan['id']}/whole-house")
    assert r.status_code == 200
    body = r.json()
    # 300 W outlet plus a 60 W light at its default wattage
    assert body["connected_load"]["total"] == 360
    assert body["component_counts"] == {"lights": 1, "outlets": 1, "appliances": 0, "total": 2}
    assert body["recommended_service"]["recommended_amps"] == 100
    assert [(room["room_name"], room["component_count"]) for room in body["rooms"]] == [("Bathroom", 1)]


def test_sizing_helpers(client):
    assert client.get("/load-calculations/wire-gauge", params={"amperage": 20}).json()["wire_gauge"] == "12 AWG"
    assert client.get("/load-calculations/wire-gauge").status_code == 422
    service = client.get("/load-calculations/service-size", params={"demand_watts": 24000}).json()
    assert service["recommended_amps"] == 150


# ============================================================================
# Compliance
# ============================================================================

def test_check_then_resolve(client):
    plan, _, _, outlet = wired_plan(client)
    report = client.post(f"/code-compliance/check/{plan['id']}").json()
    assert report["critical_violations"] >= 1
    gfci = [v for v in report["violations"] if v["violation_type"] == "gfci_required"]
    assert [v["entity_id"] for v in gfci] == [outlet["id"]]

    listed = client.get(f"/code-compliance/violations/{plan['id']}").json()
    assert listed[0]["severity"] == "critical"
    assert len(listed) == report["total_violations"]

    r = client.put(f"/code-compliance/violations/{listed[0]['id']}/resolve")
    assert r.status_code == 200
    assert r.json()["resolved"] is True
    open_ = client.get(f"/code-compliance/violations/{plan['id']}", params={"resolved": "false"}).json()
    assert len(open_) == len(listed) - 1
    assert client.put("/code-compliance/violations/9999/resolve").status_code == 404


def test_check_accepts_policy_body(client):
    plan = create_plan(client, rooms=[{"id": 1, "name": "Mudroom"}])
    outlet = device_type_id(client, "Outlet")
    client.post("/electrical/components", json={"floor_plan_id": plan["id"], "x": 0, "y": 0, "room_id": 1, "device_type_id": outlet})
    default = client.post(f"/code-compliance/check/{plan['id']}").json()
    custom = client.post(f"/code-compliance/check/{plan['id']}", json={"gfci_rooms": ["mud"]}).json()
    assert default["critical_violations"] == 0
    assert custom["critical_violations"] == 1


def test_templates(client):
    assert len(client.get("/code-compliance/templates").json()) == 5
    commercial = client.get("/code-compliance/templates", params={"template_type": "commercial"}).json()
    assert len(commercial) == 2
    assert all(t["template_type"] == "commercial" for t in commercial)


# ============================================================================
# Materials
# ============================================================================

def test_materials_generate_and_export(client):
    plan, *_ = wired_plan(client)
    generated = client.post(f"/materials/generate/{plan['id']}", json={"include_labor": True})
    assert generated.status_code == 200
    body = generated.json()
    assert "labor" in body["categories"]
    assert body["total_items"] == len(body["items"])

    stored = client.get(f"/materials/{plan['id']}").json()
    assert stored["total_items"] == body["total_items"]
    only_wire = client.get(f"/materials/{plan['id']}", params={"category": "wire"}).json()
    assert set(only_wire["categories"]) == {"wire"}

    r = client.get(f"/materials/{plan['id']}/export")
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/csv")
    assert "attachment" in r.headers["content-disposition"]
    rows = list(csv.reader(io.StringIO(r.text)))
    assert rows[0][0] == "Material Type"
    assert len(rows) == 1 + body["total_items"]

    x = client.get(f"/materials/{plan['id']}/export.xlsx")
    assert x.status_code == 200
    assert x.headers["content-type"] == "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    assert x.content[:2] == b"PK"


def test_materials_for_unknown_plan(client):
    assert client.post("/materials/generate/9999").status_code == 404
    assert client.get("/materials/9999").status_code == 404


# ============================================================================
# Device types & rooms
# ============================================================================

def test_device_types(client):
    listed = client.get("/device-types").json()
    assert len(listed) == 20
    categories = {c["category"]: c["count"] for c in client.get("/device-types/categories").json()}
    assert sum(categories.values()) == 20
    assert "receptacle" in categories

    light = device_type_id(client, "Light")
    assert client.put(f"/device-types/{light}", json={"default_wattage": 100}).status_code == 400
    assert client.delete(f"/device-types/{light}").status_code == 400

    created = client.post("/device-types", json={"name": "Hot Tub", "category": "appliance", "default_wattage": 5000})
    assert created.status_code == 201
    assert created.json()["is_custom"] is True
    assert client.post("/device-types", json={"name": "hot tub"}).status_code == 409
    assert client.delete(f"/device-types/{created.json()['id']}").json() == {"deleted": {"device_types": 1}}


def test_rooms(client):
    r = client.post("/rooms", json={"name": "Kitchen", "svg_ref": "kitchen-1"})
    assert r.status_code == 201
    assert client.post("/rooms", json={"name": "Other", "svg_ref": "kitchen-1"}).status_code == 409
    assert [room["name"] for room in client.get("/rooms").json()] == ["Kitchen"]
    assert client.delete(f"/rooms/{r.json()['id']}").status_code == 200
