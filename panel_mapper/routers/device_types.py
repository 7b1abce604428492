# panel_mapper/routers/device_types.py
from __future__ import annotations
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from panel_mapper.repository import FloorPlanRepository
from panel_mapper.routers.floor_plans import get_repo
from panel_mapper.schemas.models import DeviceCategory, DeviceType

router = APIRouter(prefix="/device-types", tags=["device-types"])


class DeviceTypeCreate(BaseModel):
    name: str = Field(..., min_length=1)
    category: DeviceCategory = "general"
    icon: Optional[str] = "Device"
    default_wattage: float = Field(0, ge=0)
    default_voltage: float = 120
    default_amperage: float = 15
    requires_gfci: bool = False
    requires_afci: bool = False
    fields: Dict[str, Any] = Field(default_factory=dict)


class DeviceTypeUpdate(BaseModel):
    name: Optional[str] = None
    category: Optional[DeviceCategory] = None
    icon: Optional[str] = None
    default_wattage: Optional[float] = Field(None, ge=0)
    default_voltage: Optional[float] = None
    default_amperage: Optional[float] = None
    requires_gfci: Optional[bool] = None
    requires_afci: Optional[bool] = None
    fields: Optional[Dict[str, Any]] = None


@router.get("", response_model=List[DeviceType])
def list_device_types(category: Optional[str] = Query(None), repo: FloorPlanRepository = Depends(get_repo)):
    return repo.list_device_types(category)


# declared before /{device_type_id} so "categories" is not parsed as an id
@router.get("/categories")
def list_categories(repo: FloorPlanRepository = Depends(get_repo)) -> List[Dict[str, Any]]:
    return repo.device_type_categories()


@router.get("/{device_type_id}", response_model=DeviceType)
def get_device_type(device_type_id: int, repo: FloorPlanRepository = Depends(get_repo)):
    return repo.get_device_type(device_type_id)


@router.post("", response_model=DeviceType, status_code=201)
def create_device_type(payload: DeviceTypeCreate, repo: FloorPlanRepository = Depends(get_repo)):
    fields = payload.model_dump(exclude={"name"})
    return repo.create_device_type(payload.name, **fields)


@router.put("/{device_type_id}", response_model=DeviceType)
def update_device_type(device_type_id: int, payload: DeviceTypeUpdate, repo: FloorPlanRepository = Depends(get_repo)):
    return repo.update_device_type(device_type_id, **payload.model_dump())


@router.delete("/{device_type_id}")
def delete_device_type(device_type_id: int, repo: FloorPlanRepository = Depends(get_repo)):
    return {"deleted": repo.delete_device_type(device_type_id)}
