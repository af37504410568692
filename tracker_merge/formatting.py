from __future__ import annotations

from copy import copy

from openpyxl.styles import Alignment, Border, PatternFill, Side
from openpyxl.utils import get_column_letter

from tracker_merge.config import BLACK, SchemaConfig
from tracker_merge.grid import Grid

THIN_SIDE = Side(style="thin", color=BLACK)
THIN_BORDER = Border(left=THIN_SIDE, right=THIN_SIDE, top=THIN_SIDE, bottom=THIN_SIDE)
HEADER_ALIGNMENT = Alignment(horizontal="center", vertical="center", wrap_text=True)


def _header_fill(argb: str) -> PatternFill:
    return PatternFill("solid", fgColor=argb)


def _font_color_for(column: int, schema: SchemaConfig) -> str:
    for band in schema.header_bands:
        if band.first_column <= column <= band.last_column:
            return band.font_color
    return BLACK


def apply_sheet_formatting(grid: Grid, last_data_row: int, schema: SchemaConfig) -> None:
    """Widths, borders, header colours, frozen header and autofilter.

    Re-running on an already formatted sheet gives the same result, and an
    empty data set (``last_data_row`` == 1) only formats the header.
    """
    grid.truncate_columns(schema.max_columns)
    ws = grid.ws
    max_column = min(schema.max_columns, grid.column_count)
    end_row = max(1, last_data_row)

    for column in range(1, max_column + 1):
        ws.column_dimensions[get_column_letter(column)].width = schema.column_width

    for row in range(1, end_row + 1):
        for column in range(1, max_column + 1):
            ws.cell(row=row, column=column).border = THIN_BORDER

    for band in schema.header_bands:
        for column in range(band.first_column, min(band.last_column, max_column) + 1):
            ws.cell(row=1, column=column).fill = _header_fill(band.fill)

    ws.row_dimensions[1].height = schema.header_height
    for column in range(1, max_column + 1):
        cell = ws.cell(row=1, column=column)
        cell.alignment = HEADER_ALIGNMENT
        font = copy(cell.font)
        font.bold = True
        font.size = schema.header_font_size
        font.color = _font_color_for(column, schema)
        cell.font = font

    for row in range(1, end_row + 1):
        cell = ws.cell(row=row, column=1)
        font = copy(cell.font)
        font.bold = True
        cell.font = font

    ws.freeze_panes = "A2"
    if max_column:
        ws.auto_filter.ref = f"A1:{get_column_letter(max_column)}1"
