# panel_mapper/io/materials_excel.py
from __future__ import annotations
import io
from pathlib import Path
from typing import Iterable, Optional, Union

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter

from panel_mapper.io.materials_csv import HEADER
from panel_mapper.schemas.reports import MaterialItem

MONEY_FORMAT = '"$"#,##0.00'
COLUMN_WIDTHS = {"A": 14, "B": 40, "C": 10, "D": 8, "E": 12, "F": 12, "G": 20, "H": 14}

def _sanitize_sheet_title(s: str) -> str:
    invalid = set('[]:*?/\\')
    s = "".join("_" if ch in invalid else ch for ch in s).strip() or "MATERIALS"
    return s[:31]

def write_materials_xlsx(
    items: Iterable[MaterialItem],
    title: str = "Materials",
    out_path: Optional[Union[str, Path]] = None,
) -> bytes:
    """
    Build a one-sheet workbook: header row, one row per line item, then a
    bold grand-total row under the Total Cost column.
    Returns the workbook bytes; also saves to out_path when given.
    """
    wb = Workbook()
    ws = wb.active
    ws.title = _sanitize_sheet_title(title)

    ws.append(HEADER)
    for cell in ws[1]:
        cell.font = Font(bold=True)

    grand_total = 0.0
    for item in items:
        ws.append([
            item.material_type,
            item.description,
            item.quantity,
            item.unit,
            item.unit_cost,
            item.total_cost,
            item.supplier or "",
            item.part_number or "",
        ])
        grand_total += item.total_cost

    last = ws.max_row
    total_row = last + 1
    ws.cell(row=total_row, column=5, value="TOTAL").font = Font(bold=True)
    total_cell = ws.cell(row=total_row, column=6, value=round(grand_total, 2))
    total_cell.font = Font(bold=True)

    for r in range(2, total_row + 1):
        for c in (5, 6):
            cell = ws.cell(row=r, column=c)
            if isinstance(cell.value, (int, float)):
                cell.number_format = MONEY_FORMAT

    for idx in range(1, len(HEADER) + 1):
        col = get_column_letter(idx)
        ws.column_dimensions[col].width = COLUMN_WIDTHS.get(col, 12)

    buf = io.BytesIO()
    wb.save(buf)
    data = buf.getvalue()
    if out_path is not None:
        out_p = Path(out_path)
        out_p.parent.mkdir(parents=True, exist_ok=True)
        out_p.write_bytes(data)
    return data
