# panel_mapper/routers/materials.py
from __future__ import annotations
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from panel_mapper import workflows
from panel_mapper.io.materials_csv import write_materials_csv
from panel_mapper.io.materials_excel import write_materials_xlsx
from panel_mapper.repository import FloorPlanRepository
from panel_mapper.routers.floor_plans import get_repo
from panel_mapper.schemas.reports import MaterialsList, MaterialsOptions

router = APIRouter(prefix="/materials", tags=["materials"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@router.post("/generate/{floor_plan_id}", response_model=MaterialsList)
def generate(
    floor_plan_id: int,
    options: Optional[MaterialsOptions] = None,
    repo: FloorPlanRepository = Depends(get_repo),
):
    """Estimate the bill of materials and replace the stored list."""
    return workflows.generate_materials(repo, floor_plan_id, options)


@router.get("/{floor_plan_id}", response_model=MaterialsList)
def get_materials(
    floor_plan_id: int,
    category: Optional[str] = Query(None),
    repo: FloorPlanRepository = Depends(get_repo),
):
    return workflows.stored_materials(repo, floor_plan_id, category)


@router.get("/{floor_plan_id}/export")
def export_csv(floor_plan_id: int, repo: FloorPlanRepository = Depends(get_repo)):
    text = write_materials_csv(repo.list_materials(floor_plan_id))
    return Response(
        content=text,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="materials_floor_plan_{floor_plan_id}.csv"'},
    )


@router.get("/{floor_plan_id}/export.xlsx")
def export_xlsx(floor_plan_id: int, repo: FloorPlanRepository = Depends(get_repo)):
    plan = repo.get_floor_plan(floor_plan_id)
    data = write_materials_xlsx(repo.list_materials(floor_plan_id), title=plan.name)
    return Response(
        content=data,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="materials_floor_plan_{floor_plan_id}.xlsx"'},
    )
