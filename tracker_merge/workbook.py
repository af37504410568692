from __future__ import annotations

import os
import re
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Mapping, Sequence

from openpyxl import Workbook, load_workbook

from tracker_merge.config import ReferenceConfig
from tracker_merge.errors import OutputUnreadableError
from tracker_merge.grid import Grid

DMY_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")


def load_output_workbook(path: Path) -> Workbook:
    """Existing output workbook, or a fresh one with no sheets when there is none yet."""
    if not path.exists():
        workbook = Workbook()
        workbook.remove(workbook.active)
        return workbook
    try:
        return load_workbook(path)
    except Exception as exc:
        raise OutputUnreadableError(path, exc) from exc


def ensure_output_readable(path: Path) -> None:
    if path.exists():
        load_output_workbook(path).close()


def sheet_grid(workbook: Workbook, title: str) -> Grid:
    if title in workbook.sheetnames:
        return Grid(workbook[title])
    return Grid(workbook.create_sheet(title))


def _is_date_header(header: str, reference: ReferenceConfig) -> bool:
    return any(hint in header for hint in reference.date_header_hints)


def parse_day_first(value: Any) -> Any:
    """'d/m/yyyy' text becomes a datetime; anything else is returned unchanged."""
    if not isinstance(value, str):
        return value
    match = DMY_RE.match(value.strip())
    if not match:
        return value
    day, month, year = (int(part) for part in match.groups())
    try:
        return datetime(year, month, day)
    except ValueError:
        return value


def rewrite_reference_sheet(
    workbook: Workbook,
    reference: ReferenceConfig,
    headers: Sequence[str],
    rows: Sequence[Mapping[str, Any]],
) -> Grid:
    """Replace the reference sheet wholesale with ``rows``."""
    if reference.sheet_name in workbook.sheetnames:
        workbook.remove(workbook[reference.sheet_name])
    grid = Grid(workbook.create_sheet(reference.sheet_name))
    columns = list(headers) or ["_"]
    grid.write_header(columns)
    for offset, record in enumerate(rows):
        row = offset + 2
        for column, header in enumerate(columns, start=1):
            value = record.get(header, "")
            if value is None:
                value = ""
            if _is_date_header(header, reference):
                value = parse_day_first(value)
            grid.set_value(row, column, value)
            if isinstance(value, datetime):
                grid.set_number_format(row, column, reference.date_format)
    return grid


def save_workbook_atomically(workbook: Workbook, path: Path) -> None:
    """Save next to ``path`` first so a failed save leaves the previous file intact."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.stem}-", suffix=path.suffix, dir=path.parent)
    os.close(fd)
    try:
        workbook.save(tmp_name)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
