from __future__ import annotations

import logging
from typing import Callable

from tracker_merge.errors import StyleCopyError
from tracker_merge.formulas import shift_formula_rows
from tracker_merge.grid import Grid, clone_blob

logger = logging.getLogger(__name__)


def _copy_or_fail(blob, row: int, column: int, what: str):
    try:
        return clone_blob(blob)
    except Exception as exc:
        raise StyleCopyError(row, column, what, exc) from exc


def clone_row_template(
    grid: Grid,
    source_row: int,
    dest_row: int,
    column_count: int,
    is_reset_column: Callable[[int], bool] = lambda column: False,
) -> None:
    """Copy styling, validation, number format and content of ``source_row`` into ``dest_row``.

    Formula cells are re-addressed for the new row. Columns for which
    ``is_reset_column`` returns True come out empty so per-record data is
    never inherited by a new record. ``source_row`` is only read.
    """
    delta = dest_row - source_row
    for column in range(1, column_count + 1):
        source = grid.read(source_row, column)

        if source.style:
            grid.set_style(dest_row, column, _copy_or_fail(source.style, dest_row, column, "style"))
        else:
            grid.reset_style(dest_row, column)
        grid.set_number_format(dest_row, column, source.number_format)
        rule = None
        if source.data_validation is not None:
            rule = _copy_or_fail(source.data_validation, dest_row, column, "data validation")
        grid.set_validation(dest_row, column, rule)

        if is_reset_column(column):
            grid.clear(dest_row, column)
        elif source.is_formula:
            grid.set_formula(dest_row, column, shift_formula_rows(source.formula, delta))
        else:
            grid.set_value(dest_row, column, _copy_or_fail(source.value, dest_row, column, "value"))
    logger.debug("Cloned row %d into row %d (%d columns) on '%s'", source_row, dest_row, column_count, grid.title)
