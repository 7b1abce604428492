# panel_mapper/routers/compliance.py
from __future__ import annotations
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query

from panel_mapper import workflows
from panel_mapper.repository import FloorPlanRepository
from panel_mapper.routers.floor_plans import get_repo
from panel_mapper.schemas.reports import ComplianceReport, ProjectTemplate, Severity, Violation
from panel_mapper.schemas.standards import CompliancePolicy

router = APIRouter(prefix="/code-compliance", tags=["code-compliance"])


@router.post("/check/{floor_plan_id}", response_model=ComplianceReport)
def check(
    floor_plan_id: int,
    policy: Optional[CompliancePolicy] = None,
    repo: FloorPlanRepository = Depends(get_repo),
):
    """
    Run every compliance rule against the floor plan and replace its stored violations.
    An optional body overrides the default policy (room keywords, drawing scale, gauge ceilings).
    """
    return workflows.check_floor_plan(repo, floor_plan_id, policy)


@router.get("/violations/{floor_plan_id}", response_model=List[Violation])
def list_violations(
    floor_plan_id: int,
    severity: Optional[Severity] = Query(None),
    resolved: Optional[bool] = Query(None),
    repo: FloorPlanRepository = Depends(get_repo),
):
    return repo.list_violations(floor_plan_id, severity=severity, resolved=resolved)


@router.put("/violations/{violation_id}/resolve", response_model=Violation)
def resolve_violation(violation_id: int, repo: FloorPlanRepository = Depends(get_repo)):
    return repo.resolve_violation(violation_id)


@router.get("/templates", response_model=List[ProjectTemplate])
def list_templates(
    template_type: Optional[Literal["residential", "commercial", "industrial"]] = Query(None),
    repo: FloorPlanRepository = Depends(get_repo),
):
    return repo.list_templates(template_type)
