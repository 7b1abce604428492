# panel_mapper/io/materials_csv.py
from __future__ import annotations
import csv
import io
from typing import Iterable

from panel_mapper.schemas.reports import MaterialItem

HEADER = [
    "Material Type",
    "Description",
    "Quantity",
    "Unit",
    "Unit Cost",
    "Total Cost",
    "Supplier",
    "Part Number",
]

def _row(item: MaterialItem) -> list:
    return [
        item.material_type,
        item.description,
        item.quantity,
        item.unit,
        f"{item.unit_cost:.2f}",
        f"{item.total_cost:.2f}",
        item.supplier or "",
        item.part_number or "",
    ]

def write_materials_csv(items: Iterable[MaterialItem]) -> str:
    """Render a stored materials list as CSV text (header row first, costs to 2 decimals)."""
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(HEADER)
    for item in items:
        writer.writerow(_row(item))
    return buf.getvalue()
