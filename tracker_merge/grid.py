"""Addressable (row, column) cell store over an openpyxl worksheet.

openpyxl keeps data validations at sheet level (one rule, many ranges), while
the merge engine reasons about one rule per cell. ``Grid`` hides that
difference: reading a cell's validation finds the covering rule, writing one
carves the cell out of whatever rule covered it before.
"""

from __future__ import annotations

import copy
import pickle
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Any

from openpyxl import Workbook
from openpyxl.utils import column_index_from_string, get_column_letter
from openpyxl.worksheet.cell_range import CellRange, MultiCellRange
from openpyxl.worksheet.datavalidation import DataValidation
from openpyxl.worksheet.worksheet import Worksheet

from tracker_merge.formulas import is_formula

STYLE_PARTS = ("font", "fill", "border", "alignment", "protection")
SHEET_MAX_ROW = 1_048_576
SHEET_MAX_COLUMN = 16_384

VALIDATION_FIELDS = (
    "type",
    "operator",
    "formula1",
    "formula2",
    "allow_blank",
    "showDropDown",
    "showInputMessage",
    "showErrorMessage",
    "errorStyle",
    "errorTitle",
    "error",
    "promptTitle",
    "prompt",
    "imeMode",
)


def clone_blob(blob: Any) -> Any:
    """Structural copy of a style/validation blob.

    Falls back to a pickle round trip when ``copy.deepcopy`` cannot handle
    the object graph. A failure of both propagates to the caller.
    """
    try:
        return copy.deepcopy(blob)
    except Exception:
        return pickle.loads(pickle.dumps(blob))


def to_text(value: Any) -> str:
    """Trimmed display text used for key comparison and emptiness checks."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, float):
        if value != value:
            return ""
        if value.is_integer():
            return str(int(value))
        return str(value)
    if isinstance(value, (datetime, date, time)):
        # pandas NaT is a datetime that is not equal to itself.
        if value != value:
            return ""
        return value.isoformat()
    if is_formula(value):
        # Cached formula results are not loaded, so formula cells carry no key text.
        return ""
    return str(value).strip()


def default_style() -> dict[str, Any]:
    """Style parts of an untouched cell."""
    blank = Workbook().active.cell(row=1, column=1)
    return {part: copy.copy(getattr(blank, part)) for part in STYLE_PARTS}


def validation_signature(rule: DataValidation) -> tuple:
    return tuple(getattr(rule, name, None) for name in VALIDATION_FIELDS)


def detached_validation(rule: DataValidation) -> DataValidation:
    """Copy of ``rule`` that covers no cells yet."""
    return DataValidation(**{name: getattr(rule, name, None) for name in VALIDATION_FIELDS})


def _bounds(rng: CellRange) -> tuple[int, int, int, int]:
    return (
        rng.min_row or 1,
        rng.min_col or 1,
        rng.max_row or SHEET_MAX_ROW,
        rng.max_col or SHEET_MAX_COLUMN,
    )


def _carve(rng: CellRange, row: int, col: int) -> list[CellRange]:
    """Split ``rng`` into at most four ranges that together omit (row, col)."""
    min_row, min_col, max_row, max_col = _bounds(rng)
    pieces = []
    if min_row < row:
        pieces.append(CellRange(min_col=min_col, min_row=min_row, max_col=max_col, max_row=row - 1))
    if max_row > row:
        pieces.append(CellRange(min_col=min_col, min_row=row + 1, max_col=max_col, max_row=max_row))
    if min_col < col:
        pieces.append(CellRange(min_col=min_col, min_row=row, max_col=col - 1, max_row=row))
    if max_col > col:
        pieces.append(CellRange(min_col=col + 1, min_row=row, max_col=max_col, max_row=row))
    return pieces


@dataclass
class CellRecord:
    """Snapshot of one cell. ``value`` and ``formula`` are never both set."""

    value: Any = None
    formula: str | None = None
    style: dict[str, Any] = field(default_factory=dict)
    data_validation: DataValidation | None = None
    number_format: str = "General"

    @property
    def is_formula(self) -> bool:
        return self.formula is not None


class Grid:
    def __init__(self, worksheet: Worksheet) -> None:
        self.ws = worksheet

    @classmethod
    def new(cls, title: str = "Sheet") -> "Grid":
        workbook = Workbook()
        sheet = workbook.active
        sheet.title = title
        return cls(sheet)

    @property
    def title(self) -> str:
        return self.ws.title

    @property
    def max_row(self) -> int:
        return self.ws.max_row

    @property
    def column_count(self) -> int:
        return self.ws.max_column

    @staticmethod
    def coordinate(row: int, column: int) -> str:
        return f"{get_column_letter(column)}{row}"

    # ── values ──────────────────────────────────────────────────────────

    def value(self, row: int, column: int) -> Any:
        return self.ws.cell(row=row, column=column).value

    def text(self, row: int, column: int) -> str:
        return to_text(self.value(row, column))

    def formula(self, row: int, column: int) -> str | None:
        cell = self.ws.cell(row=row, column=column)
        if cell.data_type == "f" and isinstance(cell.value, str):
            return cell.value
        return None

    def set_value(self, row: int, column: int, value: Any) -> None:
        """Store a literal. Strings that look like formulas stay literal text."""
        cell = self.ws.cell(row=row, column=column)
        cell.value = value
        if is_formula(value):
            cell.data_type = "s"

    def set_formula(self, row: int, column: int, formula: str) -> None:
        if not formula.startswith("="):
            formula = "=" + formula
        self.ws.cell(row=row, column=column).value = formula

    def clear(self, row: int, column: int) -> None:
        self.ws.cell(row=row, column=column).value = None

    # ── style / number format ───────────────────────────────────────────

    def style(self, row: int, column: int) -> dict[str, Any]:
        cell = self.ws.cell(row=row, column=column)
        if not cell.has_style:
            return {}
        # copy() unwraps openpyxl's StyleProxy into a plain style object.
        return {part: copy.copy(getattr(cell, part)) for part in STYLE_PARTS}

    def set_style(self, row: int, column: int, style: dict[str, Any]) -> None:
        cell = self.ws.cell(row=row, column=column)
        for part in STYLE_PARTS:
            if part in style:
                setattr(cell, part, style[part])

    def reset_style(self, row: int, column: int) -> None:
        """Put the cell back on the workbook's default style parts."""
        cell = self.ws.cell(row=row, column=column)
        if cell.has_style:
            self.set_style(row, column, default_style())

    def number_format(self, row: int, column: int) -> str:
        return self.ws.cell(row=row, column=column).number_format

    def set_number_format(self, row: int, column: int, number_format: str) -> None:
        self.ws.cell(row=row, column=column).number_format = number_format

    # ── data validation ─────────────────────────────────────────────────

    def _rules(self) -> list[DataValidation]:
        return self.ws.data_validations.dataValidation

    def validation(self, row: int, column: int) -> DataValidation | None:
        for rule in self._rules():
            for rng in rule.sqref.ranges:
                min_row, min_col, max_row, max_col = _bounds(rng)
                if min_row <= row <= max_row and min_col <= column <= max_col:
                    return rule
        return None

    def set_validation(self, row: int, column: int, rule: DataValidation | None) -> None:
        current = self.validation(row, column)
        if rule is None:
            if current is not None:
                self._detach(current, row, column)
            return
        signature = validation_signature(rule)
        if current is not None:
            if validation_signature(current) == signature:
                return
            self._detach(current, row, column)
        for existing in self._rules():
            if validation_signature(existing) == signature:
                self._attach(existing, row, column)
                return
        fresh = detached_validation(rule)
        fresh.add(self.coordinate(row, column))
        self.ws.add_data_validation(fresh)

    def _attach(self, rule: DataValidation, row: int, column: int) -> None:
        """Add (row, column) to ``rule``, growing a vertically adjacent range when there is one."""
        ranges = list(rule.sqref.ranges)
        for index, rng in enumerate(ranges):
            min_row, min_col, max_row, max_col = _bounds(rng)
            if min_col != column or max_col != column:
                continue
            if max_row == row - 1:
                ranges[index] = CellRange(min_col=column, min_row=min_row, max_col=column, max_row=row)
                break
            if min_row == row + 1:
                ranges[index] = CellRange(min_col=column, min_row=row, max_col=column, max_row=max_row)
                break
        else:
            ranges.append(CellRange(self.coordinate(row, column)))
        rule.sqref = MultiCellRange(ranges)

    def _detach(self, rule: DataValidation, row: int, column: int) -> None:
        kept = []
        for rng in rule.sqref.ranges:
            min_row, min_col, max_row, max_col = _bounds(rng)
            if min_row <= row <= max_row and min_col <= column <= max_col:
                kept.extend(_carve(rng, row, column))
            else:
                kept.append(rng)
        if kept:
            rule.sqref = MultiCellRange(kept)
        else:
            self._rules().remove(rule)

    # ── whole-cell snapshot ─────────────────────────────────────────────

    def read(self, row: int, column: int) -> CellRecord:
        formula = self.formula(row, column)
        return CellRecord(
            value=None if formula is not None else self.value(row, column),
            formula=formula,
            style=self.style(row, column),
            data_validation=self.validation(row, column),
            number_format=self.number_format(row, column),
        )

    # ── header / shape ──────────────────────────────────────────────────

    def header(self) -> list[str]:
        return [to_text(self.value(1, column)) for column in range(1, self.column_count + 1)]

    def write_header(self, names: list[str]) -> None:
        for column, name in enumerate(names, start=1):
            self.set_value(1, column, name)

    def truncate_columns(self, max_columns: int) -> int:
        """Drop every column past ``max_columns``. Returns how many were removed."""
        extra = self.ws.max_column - max_columns
        if extra > 0:
            self.ws.delete_cols(max_columns + 1, extra)
        for rule in list(self._rules()):
            kept = []
            for rng in rule.sqref.ranges:
                min_row, min_col, max_row, max_col = _bounds(rng)
                if min_col > max_columns:
                    continue
                kept.append(
                    CellRange(
                        min_col=min_col,
                        min_row=min_row,
                        max_col=min(max_col, max_columns),
                        max_row=max_row,
                    )
                )
            if kept:
                rule.sqref = MultiCellRange(kept)
            else:
                self._rules().remove(rule)
        for letter in list(self.ws.column_dimensions.keys()):
            if column_index_from_string(letter) > max_columns:
                del self.ws.column_dimensions[letter]
        return max(extra, 0)
