from __future__ import annotations
from datetime import datetime
from typing import Dict, List, Literal, Optional, Union
from pydantic import BaseModel, Field

Severity = Literal["critical", "warning", "info"]

SEVERITY_ORDER = {"critical": 0, "warning": 1, "info": 2}


# -------------------------------------------------------------------
# LOADS
# -------------------------------------------------------------------
class ComponentLoad(BaseModel):
    id: int
    label: str
    device_type: Optional[str] = None
    category: Optional[str] = None
    wattage: float


class CircuitLoad(BaseModel):
    kind: Literal["circuit"] = "circuit"
    circuit_id: int
    panel_id: int
    circuit_label: Optional[str] = None
    breaker_type: str
    breaker_amperage: int
    wire_gauge: str
    voltage: int
    total_load_watts: float
    lighting_load: float = 0
    outlet_load: float = 0
    appliance_load: float = 0
    calculated_amperage: float
    capacity_percentage: float
    safety_margin: float
    is_overloaded: bool
    component_count: int = 0
    components: List[ComponentLoad] = Field(default_factory=list)


class UnassignedLoad(BaseModel):
    """Components with no (known) circuit. Reported for visibility only; no capacity semantics."""
    kind: Literal["unassigned"] = "unassigned"
    total_load_watts: float = 0
    lighting_load: float = 0
    outlet_load: float = 0
    appliance_load: float = 0
    component_count: int = 0
    components: List[ComponentLoad] = Field(default_factory=list)


LoadBucket = Union[CircuitLoad, UnassignedLoad]


class PanelAnalysis(BaseModel):
    panel_id: int
    panel_name: str
    main_breaker_amps: Optional[int] = None
    total_connected_load: float
    calculated_demand: float
    demand_factor: float
    capacity_percentage: float
    overloaded_circuits: int = 0
    circuits: List[CircuitLoad] = Field(default_factory=list)


class FloorPlanLoadAnalysis(BaseModel):
    floor_plan_id: int
    total_connected_load: float
    total_calculated_demand: float
    panels: List[PanelAnalysis] = Field(default_factory=list)
    unassigned: UnassignedLoad = Field(default_factory=UnassignedLoad)


class Recommendation(BaseModel):
    type: str
    description: str
    priority: Literal["high", "medium", "low"]


class CircuitRecommendations(BaseModel):
    circuit_id: int
    current_load: float
    capacity_percentage: float
    recommendations: List[Recommendation]


class CapacityCheck(BaseModel):
    can_add: bool
    severity: Literal["success", "info", "warning", "error"]
    recommendation: str
    existing_load: float
    new_load: float
    total_load: float
    max_capacity: float
    max_continuous: float
    capacity_remaining: float
    utilization_percent: float
    voltage: int
    breaker_size: int
    recommended_breaker: Optional[int] = None


# -------------------------------------------------------------------
# LOAD PLANNING
# -------------------------------------------------------------------
class PlacementAdvice(BaseModel):
    type: Literal["success", "info", "warning", "error"]
    message: str
    action: str


class CircuitCandidate(BaseModel):
    circuit_id: int
    circuit_label: Optional[str] = None
    score: float
    check: CapacityCheck


class BestCircuit(BaseModel):
    """Circuits that can take a new component, best first; `best` is None when none can."""
    best: Optional[CircuitCandidate] = None
    alternatives: List[CircuitCandidate] = Field(default_factory=list)
    disqualified: int = 0
    recommendations: List[PlacementAdvice] = Field(default_factory=list)


HealthStatus = Literal["good", "moderate", "near_capacity", "overloaded"]


class CircuitHealth(BaseModel):
    circuit_id: int
    breaker_position: int
    circuit_label: Optional[str] = None
    total_load: float
    amperage: float
    utilization: float
    max_continuous: float
    available_capacity: float
    status: HealthStatus
    severity: Literal["success", "info", "warning", "error"]
    component_count: int = 0


class HealthSummary(BaseModel):
    total: int = 0
    overloaded: int = 0
    near_capacity: int = 0
    moderate: int = 0
    good: int = 0


class PanelAdvice(BaseModel):
    priority: Literal["high", "medium", "low"]
    type: str
    message: str
    action: str
    circuits: List[str] = Field(default_factory=list)


class PanelHealth(BaseModel):
    panel_id: int
    overall_health: Literal["good", "caution", "warning", "critical"]
    total_load: float
    summary: HealthSummary
    circuits: List[CircuitHealth] = Field(default_factory=list)
    recommendations: List[PanelAdvice] = Field(default_factory=list)


class ServiceSize(BaseModel):
    demand_amps: int
    recommended_amps: int
    description: str
    utilization_percent: int
    adequate: bool


class LoadBreakdown(BaseModel):
    lighting: float = 0
    outlets: float = 0
    appliances: float = 0
    total: float = 0


class RoomLoad(BaseModel):
    room_id: int
    room_name: str
    component_count: int = 0
    loads: LoadBreakdown = Field(default_factory=LoadBreakdown)


class WholeHouseLoad(BaseModel):
    floor_plan_id: int
    connected_load: LoadBreakdown
    demand_load: LoadBreakdown
    diversity_factor: float
    recommended_service: ServiceSize
    component_counts: Dict[str, int] = Field(default_factory=dict)
    rooms: List[RoomLoad] = Field(default_factory=list)


# -------------------------------------------------------------------
# COMPLIANCE
# -------------------------------------------------------------------
class Violation(BaseModel):
    id: Optional[int] = None
    floor_plan_id: int
    entity_id: Optional[int] = None
    violation_type: str
    violation_code: str
    description: str
    severity: Severity
    resolved: bool = False
    resolved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class ComplianceReport(BaseModel):
    floor_plan_id: int
    total_violations: int
    critical_violations: int
    warning_violations: int
    info_violations: int
    compliance_score: float
    violations: List[Violation] = Field(default_factory=list)


class ProjectTemplate(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    template_type: str
    code_requirements: Dict[str, object] = Field(default_factory=dict)


# -------------------------------------------------------------------
# MATERIALS
# -------------------------------------------------------------------
class MaterialItem(BaseModel):
    material_type: str
    description: str
    quantity: int
    unit: str = "each"
    unit_cost: float
    total_cost: float
    supplier: Optional[str] = None
    part_number: Optional[str] = None


class MaterialCategory(BaseModel):
    items: List[MaterialItem] = Field(default_factory=list)
    total_cost: float = 0
    total_quantity: int = 0


class MaterialsList(BaseModel):
    floor_plan_id: int
    total_cost: float
    total_items: int
    categories: Dict[str, MaterialCategory] = Field(default_factory=dict)
    items: List[MaterialItem] = Field(default_factory=list)


class MaterialsOptions(BaseModel):
    include_labor: bool = False
    markup_percentage: float = Field(0, ge=0)
    wire_run_factor: Optional[float] = Field(None, gt=0)
    labor_rate: Optional[float] = Field(None, ge=0)
