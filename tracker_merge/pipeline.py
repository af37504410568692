from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from tracker_merge.config import (
    CANDIDATE_SCHEMA,
    DEFAULT_LOCK_POLL_INTERVAL,
    DEFAULT_LOCK_TIMEOUT,
    HEADER_SCAN_ROWS,
    JR_REFERENCE,
    ReferenceConfig,
    SchemaConfig,
)
from tracker_merge.contracts import build_run_summary
from tracker_merge.errors import InputNotFoundError
from tracker_merge.formatting import apply_sheet_formatting
from tracker_merge.grid import Grid
from tracker_merge.locking import output_lock
from tracker_merge.sources import (
    alias_jr_numbers,
    build_header_order,
    pick_latest_by_type,
    read_table,
    to_candidate_records,
)
from tracker_merge.upsert import upsert_records
from tracker_merge.workbook import (
    ensure_output_readable,
    load_output_workbook,
    rewrite_reference_sheet,
    save_workbook_atomically,
    sheet_grid,
)

logger = logging.getLogger(__name__)


def merged_header_order(schema: SchemaConfig, grid: Grid) -> list[str]:
    """Schema order followed by any extra columns a previous output already carries."""
    order = list(schema.header_order)
    for name in grid.header():
        if name and name not in order:
            order.append(name)
    return order


def run_merge(
    in_dir: Path,
    out_file: Path,
    *,
    schema: SchemaConfig = CANDIDATE_SCHEMA,
    reference: ReferenceConfig = JR_REFERENCE,
    lock_timeout: float = DEFAULT_LOCK_TIMEOUT,
    poll_interval: float = DEFAULT_LOCK_POLL_INTERVAL,
    max_scan_rows: int = HEADER_SCAN_ROWS,
) -> dict[str, Any]:
    """Merge the newest candidate and JR exports in ``in_dir`` into ``out_file``.

    The output is written once, at the end, while holding the output lock.
    Any error before that point leaves the previous output untouched.
    """
    in_dir.mkdir(parents=True, exist_ok=True)
    out_file.parent.mkdir(parents=True, exist_ok=True)

    selection = pick_latest_by_type(in_dir, max_scan_rows)
    if selection.candidate is None:
        raise InputNotFoundError("candidate", in_dir, schema.key_column)
    if selection.jr is None:
        raise InputNotFoundError("JR", in_dir, reference.key_column)

    candidate_table = read_table(selection.candidate, max_scan_rows)
    jr_table = read_table(selection.jr, max_scan_rows)
    logger.info("Candidate source: %s (header row %d)", selection.candidate, candidate_table.header_row + 1)
    logger.info("JR source: %s (header row %d)", selection.jr, jr_table.header_row + 1)

    candidate_records = to_candidate_records(candidate_table.records, schema)
    jr_records = alias_jr_numbers(jr_table.records, reference)
    jr_header = build_header_order(jr_records)

    ensure_output_readable(out_file)

    with output_lock(out_file, lock_timeout, poll_interval):
        workbook = load_output_workbook(out_file)
        grid = sheet_grid(workbook, schema.sheet_name)
        outcome = upsert_records(grid, candidate_records, merged_header_order(schema, grid), schema)
        apply_sheet_formatting(grid, outcome.last_data_row, schema)
        rewrite_reference_sheet(workbook, reference, jr_header, jr_records)
        save_workbook_atomically(workbook, out_file)

    warnings = []
    if outcome.skipped:
        warnings.append(f"{outcome.skipped} candidate row(s) without '{schema.key_column}' were skipped")
    for key, rows in sorted(outcome.duplicate_rows.items()):
        warnings.append(f"Key {key} also appears on stale row(s) {', '.join(str(r) for r in rows)}")
    for warning in warnings:
        logger.warning(warning)

    metrics = outcome.as_metrics()
    metrics.update(
        {
            "candidate_header_row": candidate_table.header_row + 1,
            "jr_header_row": jr_table.header_row + 1,
            "candidate_records": len(candidate_records),
            "jr_rows": len(jr_records),
            "sheets": [schema.sheet_name, reference.sheet_name],
        }
    )
    return build_run_summary(
        input_dir=in_dir,
        output_path=out_file,
        sources={"candidate": str(selection.candidate), "jr": str(selection.jr)},
        metrics=metrics,
        warnings=warnings,
    )
