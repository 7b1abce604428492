# panel_mapper/repository.py
"""
Storage access for floor plans and everything hanging off them.

The repository works on an explicit SQLAlchemy session (one per request) and
hands the engines plain pydantic records. Multi-row writes run inside
`transaction()`: either every statement commits or the session is rolled back
and a PersistenceError is raised with the underlying error chained.
"""
from __future__ import annotations
import json
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set

from pydantic import ValidationError
from sqlalchemy import case, func
from sqlalchemy.orm import Session

from panel_mapper.db import (
    CircuitRow,
    DeviceTypeRow,
    EntityRow,
    FloorPlanRow,
    MaterialRow,
    PanelRow,
    ProjectTemplateRow,
    RoomRow,
    ViolationRow,
)
from panel_mapper.errors import ConflictError, InvalidInputError, NotFoundError, PanelMapperError, PersistenceError
from panel_mapper.schemas.models import (
    BREAKER_AMPERAGES,
    WIRE_GAUGES,
    Circuit,
    Component,
    DeviceType,
    FloorPlan,
    FloorPlanSnapshot,
    Panel,
    Room,
    normalize_gauge,
)
from panel_mapper.schemas.reports import SEVERITY_ORDER, MaterialItem, ProjectTemplate, Violation

logger = logging.getLogger(__name__)

BREAKER_TYPES = ("single", "double", "GFCI", "AFCI", "GFCI_AFCI")
DOUBLE_POLE_OFFSET = 2  # second pole sits on the next slot of the same bus side


# -------------------------------------------------------------------
# Row -> record conversion
# -------------------------------------------------------------------
def _loads(text: Optional[str], default):
    if not text:
        return default
    try:
        return json.loads(text)
    except ValueError:
        logger.warning(f"Unparseable JSON column value, using default: {text[:60]!r}")
        return default

def _parse_rooms(rooms_data: Optional[str], floor_plan_id: int) -> List[Room]:
    rooms: List[Room] = []
    for raw in _loads(rooms_data, []):
        try:
            rooms.append(Room.model_validate(raw))
        except ValidationError as e:
            logger.warning(f"Skipping invalid room on floor plan {floor_plan_id}: {e.errors()[0].get('msg')}")
    return rooms

def _floor_plan(row: FloorPlanRow) -> FloorPlan:
    return FloorPlan(
        id=row.id,
        name=row.name,
        rooms=_parse_rooms(row.rooms_data, row.id),
        view_box=row.view_box,
        svg_content=row.svg_content,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )

def _device_type(row: DeviceTypeRow) -> DeviceType:
    return DeviceType(
        id=row.id,
        name=row.name,
        icon=row.icon,
        category=row.category or "general",
        default_wattage=row.default_wattage or 0,
        default_voltage=row.default_voltage,
        default_amperage=row.default_amperage,
        requires_gfci=bool(row.requires_gfci),
        requires_afci=bool(row.requires_afci),
        fields=_loads(row.fields, {}),
        is_custom=bool(row.is_custom),
    )

def _component(row: EntityRow) -> Component:
    return Component(
        id=row.id,
        x=row.x or 0,
        y=row.y or 0,
        floor_plan_id=row.floor_plan_id,
        room_id=row.room_id,
        circuit_id=row.circuit_id,
        device_type_id=row.device_type_id,
        label=row.label,
        voltage=row.voltage if row.voltage is not None else 120,
        amperage=row.amperage if row.amperage is not None else 15,
        gfci=bool(row.gfci),
        wattage=row.wattage,
        properties=_loads(row.properties, {}),
    )

def _circuit(row: CircuitRow) -> Circuit:
    return Circuit(
        id=row.id,
        panel_id=row.panel_id,
        breaker_position=row.breaker_position,
        breaker_type=row.breaker_type,
        amperage=row.amperage,
        wire_gauge=row.wire_gauge,
        circuit_label=row.circuit_label,
        color_code=row.color_code or "#000000",
        secondary_position=row.secondary_position,
    )

def _panel(row: PanelRow) -> Panel:
    return Panel(
        id=row.id,
        floor_plan_id=row.floor_plan_id,
        panel_name=row.panel_name,
        x_position=row.x_position,
        y_position=row.y_position,
        panel_type=row.panel_type,
        main_breaker_amps=row.main_breaker_amps,
        total_positions=row.total_positions,
    )

def _room(row: RoomRow) -> Room:
    return Room(id=row.id, name=row.name, svg_ref=row.svg_ref)

def _violation(row: ViolationRow) -> Violation:
    return Violation(
        id=row.id,
        floor_plan_id=row.floor_plan_id,
        entity_id=row.entity_id,
        violation_type=row.violation_type,
        violation_code=row.violation_code or "",
        description=row.description,
        severity=row.severity,
        resolved=bool(row.resolved),
        resolved_at=row.resolved_at,
        created_at=row.created_at,
    )

def _material(row: MaterialRow) -> MaterialItem:
    return MaterialItem(
        material_type=row.material_type,
        description=row.description,
        quantity=row.quantity,
        unit=row.unit or "each",
        unit_cost=row.unit_cost or 0.0,
        total_cost=row.total_cost or 0.0,
        supplier=row.supplier,
        part_number=row.part_number,
    )

def _template(row: ProjectTemplateRow) -> ProjectTemplate:
    return ProjectTemplate(
        id=row.id,
        name=row.name,
        description=row.description,
        template_type=row.template_type,
        code_requirements=_loads(row.code_requirements, {}),
    )

def _rooms_json(rooms: Iterable[Any]) -> str:
    out = []
    for r in rooms:
        out.append(r.model_dump() if isinstance(r, Room) else Room.model_validate(r).model_dump())
    return json.dumps(out)


class FloorPlanRepository:
    def __init__(self, session: Session):
        self.session = session

    # ---------------------------------------------------------------
    # plumbing
    # ---------------------------------------------------------------
    @contextmanager
    def transaction(self, action: str):
        try:
            yield
            self.session.commit()
        except PanelMapperError:
            self.session.rollback()
            raise
        except Exception as e:
            self.session.rollback()
            logger.error(f"{action} failed and was rolled back: {e}")
            raise PersistenceError(f"{action} failed") from e

    def _get(self, row_cls, ident: int, kind: str):
        row = self.session.get(row_cls, ident)
        if row is None:
            raise NotFoundError(kind, ident)
        return row

    @staticmethod
    def _apply(row, changes: Dict[str, Any]) -> None:
        for key, value in changes.items():
            setattr(row, key, value)

    # ---------------------------------------------------------------
    # snapshot
    # ---------------------------------------------------------------
    def load_snapshot(self, floor_plan_id: int) -> FloorPlanSnapshot:
        """Read everything the engines need for one floor plan."""
        fp = self._get(FloorPlanRow, floor_plan_id, "Floor plan")
        panels = (
            self.session.query(PanelRow)
            .filter(PanelRow.floor_plan_id == floor_plan_id)
            .order_by(PanelRow.id)
            .all()
        )
        panel_ids = [p.id for p in panels]
        circuits = []
        if panel_ids:
            circuits = (
                self.session.query(CircuitRow)
                .filter(CircuitRow.panel_id.in_(panel_ids))
                .order_by(CircuitRow.id)
                .all()
            )
        components = (
            self.session.query(EntityRow)
            .filter(EntityRow.floor_plan_id == floor_plan_id)
            .order_by(EntityRow.id)
            .all()
        )
        dt_ids = {c.device_type_id for c in components if c.device_type_id is not None}
        device_types = []
        if dt_ids:
            device_types = self.session.query(DeviceTypeRow).filter(DeviceTypeRow.id.in_(dt_ids)).all()

        return FloorPlanSnapshot(
            floor_plan_id=floor_plan_id,
            rooms=_parse_rooms(fp.rooms_data, floor_plan_id),
            components=[_component(r) for r in components],
            circuits=[_circuit(r) for r in circuits],
            panels=[_panel(r) for r in panels],
            device_types=[_device_type(r) for r in device_types],
        )

    def floor_plan_of_circuit(self, circuit_id: int) -> int:
        circuit = self._get(CircuitRow, circuit_id, "Circuit")
        return self._get(PanelRow, circuit.panel_id, "Panel").floor_plan_id

    def floor_plan_of_panel(self, panel_id: int) -> int:
        return self._get(PanelRow, panel_id, "Panel").floor_plan_id

    # ---------------------------------------------------------------
    # floor plans
    # ---------------------------------------------------------------
    def list_floor_plans(self) -> List[FloorPlan]:
        rows = self.session.query(FloorPlanRow).order_by(FloorPlanRow.id).all()
        return [_floor_plan(r) for r in rows]

    def get_floor_plan(self, floor_plan_id: int) -> FloorPlan:
        return _floor_plan(self._get(FloorPlanRow, floor_plan_id, "Floor plan"))

    def _check_name_free(self, name: str, exclude_id: Optional[int] = None) -> None:
        q = self.session.query(FloorPlanRow.id).filter(FloorPlanRow.name_key == name.lower())
        if exclude_id is not None:
            q = q.filter(FloorPlanRow.id != exclude_id)
        if q.first() is not None:
            raise ConflictError(f'A floor plan named "{name}" already exists. Please choose a different name.')

    def create_floor_plan(
        self,
        name: str,
        rooms: Optional[Iterable[Any]] = None,
        view_box: Optional[str] = None,
        svg_content: Optional[str] = None,
    ) -> FloorPlan:
        name = (name or "").strip()
        if not name:
            raise InvalidInputError("Floor plan name is required")
        self._check_name_free(name)
        row = FloorPlanRow(
            name=name,
            name_key=name.lower(),
            rooms_data=_rooms_json(rooms or []),
            view_box=view_box,
            svg_content=svg_content,
        )
        with self.transaction("Create floor plan"):
            self.session.add(row)
            self.session.flush()
        logger.info(f"Created floor plan {row.id} ({name})")
        return _floor_plan(row)

    def update_floor_plan(self, floor_plan_id: int, **changes) -> FloorPlan:
        row = self._get(FloorPlanRow, floor_plan_id, "Floor plan")
        if "name" in changes and changes["name"] is not None:
            name = changes["name"].strip()
            if not name:
                raise InvalidInputError("Floor plan name is required")
            self._check_name_free(name, exclude_id=floor_plan_id)
            row.name = name
            row.name_key = name.lower()
        if changes.get("rooms") is not None:
            row.rooms_data = _rooms_json(changes["rooms"])
        for key in ("view_box", "svg_content"):
            if changes.get(key) is not None:
                setattr(row, key, changes[key])
        row.updated_at = datetime.utcnow()
        with self.transaction(f"Update floor plan {floor_plan_id}"):
            self.session.flush()
        return _floor_plan(row)

    def delete_floor_plan(self, floor_plan_id: int) -> Dict[str, int]:
        """
        Delete a floor plan and everything it owns in one transaction.
        Derived rows go first, then components, circuits, panels and the plan.
        Returns the number of rows removed per table.
        """
        self._get(FloorPlanRow, floor_plan_id, "Floor plan")
        with self.transaction(f"Delete floor plan {floor_plan_id}"):
            counts = {
                "violations": self._delete_violations(floor_plan_id),
                "materials": self._delete_materials(floor_plan_id),
                "components": self._delete_components(floor_plan_id),
                "circuits": self._delete_circuits(floor_plan_id),
                "panels": self._delete_panels(floor_plan_id),
                "floor_plans": self._delete_plan(floor_plan_id),
            }
        logger.info(f"Deleted floor plan {floor_plan_id}: {counts}")
        return counts

    def _delete_violations(self, floor_plan_id: int) -> int:
        return (
            self.session.query(ViolationRow)
            .filter(ViolationRow.floor_plan_id == floor_plan_id)
            .delete(synchronize_session=False)
        )

    def _delete_materials(self, floor_plan_id: int) -> int:
        return (
            self.session.query(MaterialRow)
            .filter(MaterialRow.floor_plan_id == floor_plan_id)
            .delete(synchronize_session=False)
        )

    def _delete_components(self, floor_plan_id: int) -> int:
        return (
            self.session.query(EntityRow)
            .filter(EntityRow.floor_plan_id == floor_plan_id)
            .delete(synchronize_session=False)
        )

    def _panel_ids(self, floor_plan_id: int) -> List[int]:
        return [pid for (pid,) in self.session.query(PanelRow.id).filter(PanelRow.floor_plan_id == floor_plan_id)]

    def _delete_circuits(self, floor_plan_id: int) -> int:
        panel_ids = self._panel_ids(floor_plan_id)
        if not panel_ids:
            return 0
        return (
            self.session.query(CircuitRow)
            .filter(CircuitRow.panel_id.in_(panel_ids))
            .delete(synchronize_session=False)
        )

    def _delete_panels(self, floor_plan_id: int) -> int:
        return (
            self.session.query(PanelRow)
            .filter(PanelRow.floor_plan_id == floor_plan_id)
            .delete(synchronize_session=False)
        )

    def _delete_plan(self, floor_plan_id: int) -> int:
        return (
            self.session.query(FloorPlanRow)
            .filter(FloorPlanRow.id == floor_plan_id)
            .delete(synchronize_session=False)
        )

    # ---------------------------------------------------------------
    # violations
    # ---------------------------------------------------------------
    def replace_violations(self, floor_plan_id: int, violations: Iterable[Violation]) -> List[Violation]:
        self._get(FloorPlanRow, floor_plan_id, "Floor plan")
        rows = [
            ViolationRow(
                floor_plan_id=floor_plan_id,
                entity_id=v.entity_id,
                violation_type=v.violation_type,
                violation_code=v.violation_code,
                description=v.description,
                severity=v.severity,
                resolved=False,
            )
            for v in violations
        ]
        with self.transaction(f"Replace violations for floor plan {floor_plan_id}"):
            self._delete_violations(floor_plan_id)
            self.session.add_all(rows)
            self.session.flush()
        return [_violation(r) for r in rows]

    def list_violations(
        self,
        floor_plan_id: int,
        severity: Optional[str] = None,
        resolved: Optional[bool] = None,
    ) -> List[Violation]:
        self._get(FloorPlanRow, floor_plan_id, "Floor plan")
        q = self.session.query(ViolationRow).filter(ViolationRow.floor_plan_id == floor_plan_id)
        if severity is not None:
            q = q.filter(ViolationRow.severity == severity)
        if resolved is not None:
            q = q.filter(ViolationRow.resolved == resolved)
        rank = case(SEVERITY_ORDER, value=ViolationRow.severity, else_=len(SEVERITY_ORDER))
        return [_violation(r) for r in q.order_by(rank, ViolationRow.id).all()]

    def resolve_violation(self, violation_id: int) -> Violation:
        row = self._get(ViolationRow, violation_id, "Violation")
        with self.transaction(f"Resolve violation {violation_id}"):
            row.resolved = True
            row.resolved_at = datetime.utcnow()
        return _violation(row)

    # ---------------------------------------------------------------
    # materials
    # ---------------------------------------------------------------
    def replace_materials(self, floor_plan_id: int, items: Iterable[MaterialItem]) -> List[MaterialItem]:
        self._get(FloorPlanRow, floor_plan_id, "Floor plan")
        rows = [
            MaterialRow(
                floor_plan_id=floor_plan_id,
                material_type=it.material_type,
                description=it.description,
                quantity=it.quantity,
                unit=it.unit,
                unit_cost=it.unit_cost,
                total_cost=it.total_cost,
                supplier=it.supplier,
                part_number=it.part_number,
            )
            for it in items
        ]
        with self.transaction(f"Replace materials for floor plan {floor_plan_id}"):
            self._delete_materials(floor_plan_id)
            self.session.add_all(rows)
            self.session.flush()
        return [_material(r) for r in rows]

    def list_materials(self, floor_plan_id: int, category: Optional[str] = None) -> List[MaterialItem]:
        self._get(FloorPlanRow, floor_plan_id, "Floor plan")
        q = self.session.query(MaterialRow).filter(MaterialRow.floor_plan_id == floor_plan_id)
        if category:
            q = q.filter(MaterialRow.material_type == category)
        rows = q.order_by(MaterialRow.material_type, MaterialRow.description).all()
        return [_material(r) for r in rows]

    # ---------------------------------------------------------------
    # panels
    # ---------------------------------------------------------------
    def list_panels(self, floor_plan_id: Optional[int] = None) -> List[Panel]:
        q = self.session.query(PanelRow)
        if floor_plan_id is not None:
            q = q.filter(PanelRow.floor_plan_id == floor_plan_id)
        return [_panel(r) for r in q.order_by(PanelRow.id).all()]

    def get_panel(self, panel_id: int) -> Panel:
        return _panel(self._get(PanelRow, panel_id, "Panel"))

    def create_panel(self, floor_plan_id: int, panel_name: str, **fields) -> Panel:
        self._get(FloorPlanRow, floor_plan_id, "Floor plan")
        if not (panel_name or "").strip():
            raise InvalidInputError("Panel name is required")
        row = PanelRow(floor_plan_id=floor_plan_id, panel_name=panel_name.strip())
        self._apply(row, {k: v for k, v in fields.items() if v is not None})
        with self.transaction("Create panel"):
            self.session.add(row)
            self.session.flush()
        return _panel(row)

    def update_panel(self, panel_id: int, **changes) -> Panel:
        """
        Partial update. Moving the panel to another floor plan takes its circuits
        along; components wired to them stay on the old plan and are unassigned.
        """
        row = self._get(PanelRow, panel_id, "Panel")
        changes = {k: v for k, v in changes.items() if v is not None}
        moving = "floor_plan_id" in changes and changes["floor_plan_id"] != row.floor_plan_id
        if moving:
            self._get(FloorPlanRow, changes["floor_plan_id"], "Floor plan")
        if "total_positions" in changes:
            used = self._occupied_positions(panel_id)
            if used and max(used) > changes["total_positions"]:
                raise InvalidInputError(
                    f"Panel has a breaker at position {max(used)}; cannot shrink to {changes['total_positions']} positions"
                )
        with self.transaction(f"Update panel {panel_id}"):
            if moving:
                circuit_ids = [cid for (cid,) in self.session.query(CircuitRow.id).filter(CircuitRow.panel_id == panel_id)]
                unassigned = self._unassign_components(circuit_ids)
                logger.info(
                    f"Moved panel {panel_id} to floor plan {changes['floor_plan_id']}; "
                    f"unassigned {unassigned} component(s)"
                )
            self._apply(row, changes)
            self.session.flush()
        return _panel(row)

    def delete_panel(self, panel_id: int) -> Dict[str, int]:
        """Delete a panel with its circuits; components on those circuits become unassigned."""
        self._get(PanelRow, panel_id, "Panel")
        circuit_ids = [cid for (cid,) in self.session.query(CircuitRow.id).filter(CircuitRow.panel_id == panel_id)]
        with self.transaction(f"Delete panel {panel_id}"):
            unassigned = self._unassign_components(circuit_ids)
            circuits = (
                self.session.query(CircuitRow)
                .filter(CircuitRow.panel_id == panel_id)
                .delete(synchronize_session=False)
            )
            panels = self.session.query(PanelRow).filter(PanelRow.id == panel_id).delete(synchronize_session=False)
        return {"panels": panels, "circuits": circuits, "components_unassigned": unassigned}

    # ---------------------------------------------------------------
    # circuits
    # ---------------------------------------------------------------
    def list_circuits(self, panel_id: Optional[int] = None) -> List[Circuit]:
        q = self.session.query(CircuitRow)
        if panel_id is not None:
            q = q.filter(CircuitRow.panel_id == panel_id)
        return [_circuit(r) for r in q.order_by(CircuitRow.panel_id, CircuitRow.breaker_position).all()]

    def get_circuit(self, circuit_id: int) -> Circuit:
        return _circuit(self._get(CircuitRow, circuit_id, "Circuit"))

    def _occupied_positions(self, panel_id: int, exclude_id: Optional[int] = None) -> Set[int]:
        q = self.session.query(CircuitRow).filter(CircuitRow.panel_id == panel_id)
        if exclude_id is not None:
            q = q.filter(CircuitRow.id != exclude_id)
        taken: Set[int] = set()
        for row in q:
            taken.add(row.breaker_position)
            if row.secondary_position is not None:
                taken.add(row.secondary_position)
        return taken

    def _validate_circuit(self, values: Dict[str, Any], exclude_id: Optional[int] = None) -> Dict[str, Any]:
        """
        Check a full set of circuit values against its panel and return them
        normalized (gauge text, derived secondary position).
        """
        panel = self._get(PanelRow, values["panel_id"], "Panel")
        if values["amperage"] not in BREAKER_AMPERAGES:
            raise InvalidInputError(
                f"Breaker amperage must be one of {', '.join(str(a) for a in BREAKER_AMPERAGES)}"
            )
        gauge = normalize_gauge(values.get("wire_gauge") or "12 AWG")
        if gauge not in WIRE_GAUGES:
            raise InvalidInputError(f"Wire gauge must be one of {', '.join(WIRE_GAUGES)}")
        if values["breaker_type"] not in BREAKER_TYPES:
            raise InvalidInputError(f"Breaker type must be one of {', '.join(BREAKER_TYPES)}")

        position = values["breaker_position"]
        secondary = values.get("secondary_position")
        if values["breaker_type"] == "double":
            if secondary is None:
                secondary = position + DOUBLE_POLE_OFFSET
            elif secondary == position:
                raise InvalidInputError("A double-pole breaker needs two different positions")
        elif secondary is not None:
            raise InvalidInputError("Only double-pole breakers take a secondary position")
        wanted = [position] + ([secondary] if secondary is not None else [])
        for p in wanted:
            if p < 1 or p > panel.total_positions:
                raise InvalidInputError(f"Breaker position {p} is outside 1..{panel.total_positions}")

        taken = self._occupied_positions(panel.id, exclude_id=exclude_id)
        for p in wanted:
            if p in taken:
                raise ConflictError(f"Breaker position {p} is already in use on panel {panel.panel_name}")

        out = dict(values)
        out["wire_gauge"] = gauge
        out["secondary_position"] = secondary
        return out

    def create_circuit(
        self,
        panel_id: int,
        breaker_position: int,
        amperage: int,
        breaker_type: str = "single",
        wire_gauge: Optional[str] = "12 AWG",
        circuit_label: Optional[str] = None,
        color_code: Optional[str] = None,
        secondary_position: Optional[int] = None,
    ) -> Circuit:
        """
        Add a breaker. A double-pole breaker also takes `secondary_position`,
        which defaults to the next slot on the same bus side.
        """
        values = self._validate_circuit({
            "panel_id": panel_id,
            "breaker_position": breaker_position,
            "amperage": amperage,
            "breaker_type": breaker_type,
            "wire_gauge": wire_gauge,
            "secondary_position": secondary_position,
        })
        row = CircuitRow(circuit_label=circuit_label, color_code=color_code or "#000000", **values)
        with self.transaction("Create circuit"):
            self.session.add(row)
            self.session.flush()
        return _circuit(row)

    def update_circuit(self, circuit_id: int, **changes) -> Circuit:
        row = self._get(CircuitRow, circuit_id, "Circuit")
        changes = {k: v for k, v in changes.items() if v is not None}
        breaker_type = changes.get("breaker_type", row.breaker_type)
        secondary = changes.get("secondary_position")
        # a kept double-pole breaker keeps its second slot unless its first slot moves
        if secondary is None and breaker_type == "double" and "breaker_position" not in changes:
            secondary = row.secondary_position
        electrical = {
            "panel_id": changes.get("panel_id", row.panel_id),
            "breaker_position": changes.get("breaker_position", row.breaker_position),
            "amperage": changes.get("amperage", row.amperage),
            "breaker_type": breaker_type,
            "wire_gauge": changes.get("wire_gauge", row.wire_gauge),
            "secondary_position": secondary,
        }
        values = self._validate_circuit(electrical, exclude_id=circuit_id)
        for key in ("circuit_label", "color_code"):
            if key in changes:
                values[key] = changes[key]
        moving = self.floor_plan_of_panel(values["panel_id"]) != self.floor_plan_of_panel(row.panel_id)
        with self.transaction(f"Update circuit {circuit_id}"):
            if moving:
                # components stay on their floor plan; the circuit no longer serves it
                unassigned = self._unassign_components([circuit_id])
                logger.info(f"Moved circuit {circuit_id} to another floor plan; unassigned {unassigned} component(s)")
            self._apply(row, values)
            self.session.flush()
        return _circuit(row)

    def _unassign_components(self, circuit_ids: List[int]) -> int:
        if not circuit_ids:
            return 0
        return (
            self.session.query(EntityRow)
            .filter(EntityRow.circuit_id.in_(circuit_ids))
            .update({EntityRow.circuit_id: None}, synchronize_session=False)
        )

    def delete_circuit(self, circuit_id: int) -> Dict[str, int]:
        self._get(CircuitRow, circuit_id, "Circuit")
        with self.transaction(f"Delete circuit {circuit_id}"):
            unassigned = self._unassign_components([circuit_id])
            deleted = self.session.query(CircuitRow).filter(CircuitRow.id == circuit_id).delete(synchronize_session=False)
        return {"circuits": deleted, "components_unassigned": unassigned}

    # ---------------------------------------------------------------
    # components
    # ---------------------------------------------------------------
    def list_components(self, floor_plan_id: Optional[int] = None, circuit_id: Optional[int] = None) -> List[Component]:
        q = self.session.query(EntityRow)
        if floor_plan_id is not None:
            q = q.filter(EntityRow.floor_plan_id == floor_plan_id)
        if circuit_id is not None:
            q = q.filter(EntityRow.circuit_id == circuit_id)
        return [_component(r) for r in q.order_by(EntityRow.id).all()]

    def get_component(self, component_id: int) -> Component:
        return _component(self._get(EntityRow, component_id, "Component"))

    def _check_component_refs(self, floor_plan_id: int, device_type_id: Optional[int], circuit_id: Optional[int]) -> None:
        self._get(FloorPlanRow, floor_plan_id, "Floor plan")
        if device_type_id is not None:
            self._get(DeviceTypeRow, device_type_id, "Device type")
        if circuit_id is not None:
            if self.floor_plan_of_circuit(circuit_id) != floor_plan_id:
                raise InvalidInputError(f"Circuit {circuit_id} belongs to a different floor plan")

    def create_component(self, floor_plan_id: int, **fields) -> Component:
        self._check_component_refs(floor_plan_id, fields.get("device_type_id"), fields.get("circuit_id"))
        properties = fields.pop("properties", None) or {}
        row = EntityRow(floor_plan_id=floor_plan_id, properties=json.dumps(properties))
        self._apply(row, {k: v for k, v in fields.items() if v is not None})
        with self.transaction("Create component"):
            self.session.add(row)
            self.session.flush()
        return _component(row)

    def update_component(self, component_id: int, **changes) -> Component:
        """
        Partial update. None leaves a field as is; pass unassign=True to clear
        the circuit assignment and clear_room=True to clear the room.
        """
        row = self._get(EntityRow, component_id, "Component")
        unassign = changes.pop("unassign", False)
        clear_room = changes.pop("clear_room", False)
        changes = {k: v for k, v in changes.items() if v is not None}
        self._check_component_refs(
            changes.get("floor_plan_id", row.floor_plan_id),
            changes.get("device_type_id"),
            changes.get("circuit_id"),
        )
        if "properties" in changes:
            changes["properties"] = json.dumps(changes["properties"])
        if unassign:
            changes["circuit_id"] = None
        if clear_room:
            changes["room_id"] = None
        with self.transaction(f"Update component {component_id}"):
            self._apply(row, changes)
            self.session.flush()
        return _component(row)

    def delete_component(self, component_id: int) -> Dict[str, int]:
        self._get(EntityRow, component_id, "Component")
        with self.transaction(f"Delete component {component_id}"):
            violations = (
                self.session.query(ViolationRow)
                .filter(ViolationRow.entity_id == component_id)
                .delete(synchronize_session=False)
            )
            deleted = self.session.query(EntityRow).filter(EntityRow.id == component_id).delete(synchronize_session=False)
        return {"components": deleted, "violations": violations}

    # ---------------------------------------------------------------
    # device types
    # ---------------------------------------------------------------
    def list_device_types(self, category: Optional[str] = None) -> List[DeviceType]:
        q = self.session.query(DeviceTypeRow)
        if category:
            q = q.filter(DeviceTypeRow.category == category)
        return [_device_type(r) for r in q.order_by(DeviceTypeRow.category, DeviceTypeRow.name).all()]

    def device_type_categories(self) -> List[Dict[str, Any]]:
        rows = (
            self.session.query(DeviceTypeRow.category, func.count(DeviceTypeRow.id))
            .group_by(DeviceTypeRow.category)
            .order_by(DeviceTypeRow.category)
            .all()
        )
        return [{"category": cat, "count": n} for cat, n in rows]

    def get_device_type(self, device_type_id: int) -> DeviceType:
        return _device_type(self._get(DeviceTypeRow, device_type_id, "Device type"))

    def _check_device_name_free(self, name: str, exclude_id: Optional[int] = None) -> None:
        q = self.session.query(DeviceTypeRow.id).filter(func.lower(DeviceTypeRow.name) == name.lower())
        if exclude_id is not None:
            q = q.filter(DeviceTypeRow.id != exclude_id)
        if q.first() is not None:
            raise ConflictError(f'Device type "{name}" already exists')

    def create_device_type(self, name: str, **fields) -> DeviceType:
        name = (name or "").strip()
        if not name:
            raise InvalidInputError("Name and category are required")
        self._check_device_name_free(name)
        fields_schema = fields.pop("fields", None) or {}
        row = DeviceTypeRow(name=name, is_custom=True, fields=json.dumps(fields_schema))
        self._apply(row, {k: v for k, v in fields.items() if v is not None})
        with self.transaction("Create device type"):
            self.session.add(row)
            self.session.flush()
        return _device_type(row)

    def update_device_type(self, device_type_id: int, **changes) -> DeviceType:
        row = self._get(DeviceTypeRow, device_type_id, "Device type")
        if not row.is_custom:
            raise InvalidInputError("Cannot modify system device types")
        changes = {k: v for k, v in changes.items() if v is not None}
        if not changes:
            raise InvalidInputError("No fields to update")
        if "name" in changes:
            changes["name"] = changes["name"].strip()
            self._check_device_name_free(changes["name"], exclude_id=device_type_id)
        if "fields" in changes:
            changes["fields"] = json.dumps(changes["fields"])
        with self.transaction(f"Update device type {device_type_id}"):
            self._apply(row, changes)
            self.session.flush()
        return _device_type(row)

    def delete_device_type(self, device_type_id: int) -> Dict[str, int]:
        row = self._get(DeviceTypeRow, device_type_id, "Device type")
        if not row.is_custom:
            raise InvalidInputError("Cannot delete system device types")
        usage = self.session.query(EntityRow).filter(EntityRow.device_type_id == device_type_id).count()
        if usage > 0:
            raise InvalidInputError(f"Cannot delete device type - it is used by {usage} component(s)")
        with self.transaction(f"Delete device type {device_type_id}"):
            deleted = (
                self.session.query(DeviceTypeRow)
                .filter(DeviceTypeRow.id == device_type_id)
                .delete(synchronize_session=False)
            )
        return {"device_types": deleted}

    # ---------------------------------------------------------------
    # rooms (label association table)
    # ---------------------------------------------------------------
    def list_rooms(self) -> List[Room]:
        return [_room(r) for r in self.session.query(RoomRow).order_by(RoomRow.id).all()]

    def create_room(self, name: str, svg_ref: Optional[str] = None) -> Room:
        if svg_ref is not None:
            if self.session.query(RoomRow.id).filter(RoomRow.svg_ref == svg_ref).first() is not None:
                raise ConflictError(f'A room is already linked to "{svg_ref}"')
        row = RoomRow(name=name, svg_ref=svg_ref)
        with self.transaction("Create room"):
            self.session.add(row)
            self.session.flush()
        return _room(row)

    def delete_room(self, room_id: int) -> Dict[str, int]:
        self._get(RoomRow, room_id, "Room")
        with self.transaction(f"Delete room {room_id}"):
            deleted = self.session.query(RoomRow).filter(RoomRow.id == room_id).delete(synchronize_session=False)
        return {"rooms": deleted}

    # ---------------------------------------------------------------
    # project templates
    # ---------------------------------------------------------------
    def list_templates(self, template_type: Optional[str] = None) -> List[ProjectTemplate]:
        q = self.session.query(ProjectTemplateRow).filter(ProjectTemplateRow.is_system_template.is_(True))
        if template_type:
            q = q.filter(ProjectTemplateRow.template_type == template_type)
        return [_template(r) for r in q.order_by(ProjectTemplateRow.template_type, ProjectTemplateRow.name).all()]
