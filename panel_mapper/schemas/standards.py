# panel_mapper/schemas/standards.py
from pydantic import BaseModel, Field
from typing import Dict, List

class CompliancePolicy(BaseModel):
    # Room-name keywords (lowercase substring match)
    gfci_rooms: List[str] = ["bathroom", "kitchen", "outdoor", "garage", "basement", "laundry"]
    afci_rooms: List[str] = ["bedroom", "living", "family", "den", "parlor", "library", "study"]

    # Treat AFCI / GFCI_AFCI breakers as AFCI protection in addition to the circuit-label match
    afci_from_breaker_type: bool = False

    # Floor-plan drawing scale
    pixels_per_foot: float = Field(10.0, gt=0)
    max_outlet_spacing_ft: float = 12.0

    # Minimum receptacle count: max(min_outlets_per_room, ceil(area_sqft / sqft_per_outlet)),
    # area_sqft = width * height / area_divisor. Missing room dimensions fall back to default_room_side_px.
    min_outlets_per_room: int = 2
    sqft_per_outlet: float = Field(100.0, gt=0)
    area_divisor: float = Field(10000.0, gt=0)
    default_room_side_px: float = 100.0

    # Max breaker amps per wire gauge
    gauge_max_breaker: Dict[str, int] = {
        "14 AWG": 15,
        "12 AWG": 20,
        "10 AWG": 30,
    }
