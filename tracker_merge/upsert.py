"""Keyed upsert of incoming records into a templated sheet.

Matched rows only get their base columns rewritten (plus the derived formula
and validation columns re-stamped for their own row number). Unmatched
records get a new row after the last data row, cloned from that row so the
human-maintained styling, validations and formulas carry over.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Sequence

import pandas as pd

from tracker_merge.cloner import clone_row_template
from tracker_merge.config import SchemaConfig
from tracker_merge.detect import normalize_header
from tracker_merge.errors import MissingKeyColumnError
from tracker_merge.grid import Grid, to_text

logger = logging.getLogger(__name__)

HEADER_ROW = 1


@dataclass
class UpsertOutcome:
    last_data_row: int = HEADER_ROW
    inserted: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    skipped: int = 0
    # key -> earlier rows shadowed by a later row holding the same key
    duplicate_rows: dict[str, list[int]] = field(default_factory=dict)
    columns_removed: int = 0

    def as_metrics(self) -> dict[str, Any]:
        return {
            "last_data_row": self.last_data_row,
            "inserted": len(self.inserted),
            "updated": len(self.updated),
            "skipped_empty_key": self.skipped,
            "duplicate_keys": {key: rows for key, rows in sorted(self.duplicate_rows.items())},
            "columns_removed": self.columns_removed,
        }


def cell_value(value: Any) -> Any:
    """Value as written into a base column: missing, NaN and NaT values become ''."""
    if value is None:
        return ""
    try:
        if pd.isna(value):
            return ""
    except (TypeError, ValueError):
        pass
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    return value


def _column_lookup(header: Sequence[str]) -> dict[str, int]:
    lookup = {}
    for column, name in enumerate(header, start=1):
        normalized = normalize_header(name)
        if normalized:
            lookup[normalized] = column
    return lookup


def _scan(grid: Grid, key_column: int, base_columns: list[tuple[str, int]], outcome: UpsertOutcome) -> dict[str, int]:
    key_rows: dict[str, int] = {}
    for row in range(HEADER_ROW + 1, grid.max_row + 1):
        key = grid.text(row, key_column)
        has_base_data = any(grid.text(row, column) for _, column in base_columns)
        if key:
            if key in key_rows:
                outcome.duplicate_rows.setdefault(key, []).append(key_rows[key])
            key_rows[key] = row
        if key or has_base_data:
            outcome.last_data_row = row
    for key, rows in outcome.duplicate_rows.items():
        logger.warning(
            "Key %r appears on rows %s and %d of '%s'; only row %d is kept up to date",
            key, rows, key_rows[key], grid.title, key_rows[key],
        )
    return key_rows


def restamp_row(grid: Grid, row: int, columns: Mapping[str, int], schema: SchemaConfig) -> None:
    """Rewrite derived formulas, validations and number formats for ``row``."""
    for derived in schema.derived_columns:
        column = columns.get(normalize_header(derived.header))
        if column is None:
            continue
        grid.set_formula(row, column, derived.render(row))
        if derived.number_format:
            grid.set_number_format(row, column, derived.number_format)
    for rule in schema.column_rules:
        column = columns.get(normalize_header(rule.header))
        if column is None:
            continue
        if rule.validation is not None:
            grid.set_validation(row, column, rule.validation.to_data_validation())
        if rule.number_format:
            grid.set_number_format(row, column, rule.number_format)


def upsert_records(
    grid: Grid,
    incoming: Iterable[Mapping[str, Any]],
    header_order: Sequence[str],
    schema: SchemaConfig,
) -> UpsertOutcome:
    header = [to_text(name) for name in header_order][: schema.max_columns]
    columns = _column_lookup(header)
    key_column = columns.get(normalize_header(schema.key_column))
    if key_column is None:
        raise MissingKeyColumnError(grid.title, schema.key_column)
    max_column = len(header)

    outcome = UpsertOutcome()
    grid.write_header(header)
    outcome.columns_removed = grid.truncate_columns(max_column)

    base_columns = [
        (name, columns[normalize_header(name)])
        for name in schema.base_columns
        if normalize_header(name) in columns
    ]
    seed_columns = [
        (name, columns[normalize_header(name)])
        for name in schema.seed_columns
        if normalize_header(name) in columns
    ]
    key_rows = _scan(grid, key_column, base_columns, outcome)

    for record in incoming:
        key = to_text(record.get(schema.key_column))
        if not key:
            outcome.skipped += 1
            continue

        row = key_rows.get(key)
        if row is None:
            template_row = outcome.last_data_row
            row = template_row + 1
            if template_row > HEADER_ROW:
                clone_row_template(grid, template_row, row, max_column, schema.is_reset_column)
            for column in range(1, max_column + 1):
                if schema.is_reset_column(column):
                    grid.clear(row, column)
            for name, column in seed_columns:
                value = record.get(name)
                if to_text(value):
                    grid.set_value(row, column, cell_value(value))
            key_rows[key] = row
            outcome.last_data_row = row
            outcome.inserted.append(key)
            logger.debug("Inserted key %r at row %d", key, row)
        else:
            outcome.updated.append(key)
            logger.debug("Updated key %r at row %d", key, row)

        for name, column in base_columns:
            grid.set_value(row, column, cell_value(record.get(name)))
        restamp_row(grid, row, columns, schema)

    logger.info(
        "Upserted '%s': %d inserted, %d updated, %d skipped (empty key), last data row %d",
        grid.title,
        len(outcome.inserted),
        len(outcome.updated),
        outcome.skipped,
        outcome.last_data_row,
    )
    return outcome


def upsert(
    grid: Grid,
    incoming: Iterable[Mapping[str, Any]],
    header_order: Sequence[str],
    schema: SchemaConfig,
) -> int:
    """Upsert ``incoming`` into ``grid`` and return the last data row."""
    return upsert_records(grid, incoming, header_order, schema).last_data_row
