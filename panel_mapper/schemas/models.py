from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, Field, field_validator

BreakerType = Literal["single", "double", "GFCI", "AFCI", "GFCI_AFCI"]
DeviceCategory = Literal[
    "lighting", "receptacle", "appliance", "control",
    "hvac", "heating", "safety", "security", "general",
]

BREAKER_AMPERAGES = (15, 20, 30, 40, 50)
WIRE_GAUGES = ("14 AWG", "12 AWG", "10 AWG", "8 AWG", "6 AWG")


def normalize_gauge(raw: Optional[str]) -> str:
    """
    Normalize wire gauge text to the stored '<n> AWG' form.
    Accepts '12', '12awg', '#12', '12 AWG'.
    """
    if raw is None:
        return ""
    s = str(raw).strip().upper().replace("#", "")
    s = s.replace("AWG", "").strip()
    return f"{s} AWG" if s else ""


class DeviceType(BaseModel):
    id: int
    name: str
    icon: Optional[str] = None
    category: DeviceCategory = "general"
    default_wattage: float = Field(0, ge=0)
    default_voltage: float = 120
    default_amperage: float = 15
    requires_gfci: bool = False
    requires_afci: bool = False
    fields: Dict[str, Any] = Field(default_factory=dict)
    is_custom: bool = False


class Component(BaseModel):
    """A placed electrical device. circuit_id=None means unassigned."""
    id: int
    x: float = 0
    y: float = 0
    floor_plan_id: Optional[int] = None
    room_id: Optional[int] = None
    circuit_id: Optional[int] = None
    device_type_id: Optional[int] = None
    label: Optional[str] = None
    voltage: float = 120
    amperage: float = 15
    gfci: bool = False
    wattage: float = 0
    properties: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("wattage", mode="before")
    @classmethod
    def _null_wattage(cls, v):
        return 0 if v is None else v


class Circuit(BaseModel):
    id: int
    panel_id: int
    breaker_position: int = Field(..., ge=1)
    breaker_type: BreakerType = "single"
    amperage: int = Field(..., ge=0)
    wire_gauge: str = "12 AWG"
    circuit_label: Optional[str] = None
    color_code: str = "#000000"
    secondary_position: Optional[int] = None

    @field_validator("wire_gauge", mode="before")
    @classmethod
    def _gauge(cls, v):
        return normalize_gauge(v) or "12 AWG"

    @property
    def is_double_pole(self) -> bool:
        return self.breaker_type == "double"

    @property
    def positions(self) -> List[int]:
        out = [self.breaker_position]
        if self.secondary_position is not None:
            out.append(self.secondary_position)
        return out


class Panel(BaseModel):
    id: int
    floor_plan_id: int
    panel_name: str
    x_position: float = 0
    y_position: float = 0
    panel_type: str = "main"
    main_breaker_amps: Optional[int] = 200
    total_positions: int = Field(30, ge=1)


class Room(BaseModel):
    id: int
    name: str = ""
    x: float = 0
    y: float = 0
    width: Optional[float] = None
    height: Optional[float] = None
    svg_ref: Optional[str] = None

    @field_validator("name", mode="before")
    @classmethod
    def _null_name(cls, v):
        return "" if v is None else str(v)


class FloorPlan(BaseModel):
    id: int
    name: str
    rooms: List[Room] = Field(default_factory=list)
    view_box: Optional[str] = None
    svg_content: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class FloorPlanSnapshot(BaseModel):
    """
    Everything the engines need for one floor plan, read in one consistent pass.
    Engines never reach back into storage; they only see this snapshot.
    """
    floor_plan_id: int
    rooms: List[Room] = Field(default_factory=list)
    components: List[Component] = Field(default_factory=list)
    circuits: List[Circuit] = Field(default_factory=list)
    panels: List[Panel] = Field(default_factory=list)
    device_types: List[DeviceType] = Field(default_factory=list)

    def device_type_map(self) -> Dict[int, DeviceType]:
        return {dt.id: dt for dt in self.device_types}

    def room_map(self) -> Dict[int, Room]:
        return {r.id: r for r in self.rooms}

    def circuit_map(self) -> Dict[int, Circuit]:
        return {c.id: c for c in self.circuits}

    def components_on(self, circuit_id: int) -> List[Component]:
        return [c for c in self.components if c.circuit_id == circuit_id]

    def circuits_of(self, panel_id: int) -> List[Circuit]:
        return [c for c in self.circuits if c.panel_id == panel_id]
