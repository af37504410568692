"""
Input discovery and record reading for candidate and JR exports.

Supports: .xlsx .xlsm .xls .csv

Public API:
    selection = pick_latest_by_type(Path("input"))
    table     = read_table(selection.candidate)
    records   = table.records
"""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Mapping, Sequence

import chardet
import pandas as pd

from tracker_merge.config import HEADER_SCAN_ROWS, ReferenceConfig, SchemaConfig
from tracker_merge.detect import BOTH, CANDIDATE, JR, find_header_row, normalize_header

logger = logging.getLogger(__name__)

EXCEL_FORMATS = {".xlsx", ".xlsm", ".xls"}
TEXT_FORMATS = {".csv"}
SOURCE_FORMATS = EXCEL_FORMATS | TEXT_FORMATS

Record = dict[str, Any]


@dataclass
class SourceTable:
    path: Path
    header_row: int
    headers: list[str]
    source_type: str
    records: list[Record] = field(default_factory=list)


@dataclass
class SourceSelection:
    candidate: Path | None = None
    jr: Path | None = None
    classified: list[dict[str, Any]] = field(default_factory=list)


# ── raw reading ─────────────────────────────────────────────────────────────

def clean_value(value: Any) -> Any:
    """Blank out NaN/NaT and unwrap pandas timestamps."""
    if value is None:
        return ""
    try:
        if pd.isna(value):
            return ""
    except (TypeError, ValueError):
        pass
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    if isinstance(value, str):
        return value.strip()
    return value


def decode_text(raw: bytes) -> str:
    if raw.startswith(b"\xef\xbb\xbf"):
        return raw[3:].decode("utf-8")
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        pass
    detected = chardet.detect(raw).get("encoding") or "cp874"
    try:
        return raw.decode(detected)
    except (LookupError, UnicodeDecodeError):
        return raw.decode("cp874", errors="replace")


def read_raw_rows(path: Path, limit: int | None = None) -> list[list[Any]]:
    """Rows of the first sheet (or the CSV) as plain value lists, no header handling."""
    suffix = path.suffix.lower()
    if suffix in TEXT_FORMATS:
        frame = _read_text_frame(decode_text(path.read_bytes()), limit)
    elif suffix in EXCEL_FORMATS:
        frame = pd.read_excel(path, sheet_name=0, header=None, nrows=limit, dtype=object)
    else:
        raise ValueError(f"Unsupported source file type '{suffix or '[missing extension]'}': {path}")
    return [[clean_value(value) for value in row] for row in frame.itertuples(index=False, name=None)]


def _read_text_frame(text: str, limit: int | None) -> pd.DataFrame:
    # Banner rows are narrower than the table, so the width comes from the widest row.
    width = max((len(row) for row in csv.reader(io.StringIO(text))), default=0)
    if not width:
        return pd.DataFrame()
    try:
        return pd.read_csv(
            io.StringIO(text),
            header=None,
            names=list(range(width)),
            dtype=object,
            nrows=limit,
            keep_default_na=False,
            skip_blank_lines=False,
            engine="python",
        )
    except Exception as exc:
        raise ValueError(f"Could not parse .csv file: {exc}") from exc


def list_source_files(directory: Path) -> list[Path]:
    return sorted(
        path for path in directory.iterdir() if path.is_file() and path.suffix.lower() in SOURCE_FORMATS
    )


def _unique_headers(row: Sequence[Any]) -> list[str]:
    seen: dict[str, int] = {}
    headers = []
    for value in row:
        name = normalize_header(value)
        if not name:
            headers.append("")
            continue
        if name in seen:
            seen[name] += 1
            name = f"{name}_{seen[name]}"
        else:
            seen[name] = 0
        headers.append(name)
    return headers


def rows_to_records(rows: Sequence[Sequence[Any]], header_row: int) -> list[Record]:
    if header_row >= len(rows):
        return []
    headers = _unique_headers(rows[header_row])
    records = []
    for row in rows[header_row + 1 :]:
        if not any(value not in ("", None) for value in row):
            continue
        record = {}
        for index, name in enumerate(headers):
            if not name:
                continue
            record[name] = row[index] if index < len(row) else ""
        records.append(record)
    return records


def read_table(path: Path, max_scan_rows: int = HEADER_SCAN_ROWS) -> SourceTable:
    rows = read_raw_rows(path)
    info = find_header_row(rows, max_scan_rows)
    return SourceTable(
        path=path,
        header_row=info.header_row,
        headers=info.headers,
        source_type=info.source_type,
        records=rows_to_records(rows, info.header_row),
    )


# ── discovery ───────────────────────────────────────────────────────────────

def pick_latest_by_type(directory: Path, max_scan_rows: int = HEADER_SCAN_ROWS) -> SourceSelection:
    """Newest candidate file and newest JR file in ``directory``.

    Files whose headers match both kinds are assigned by a "candidate" or
    "jr" hint in their file name. Unreadable files are skipped.
    """
    candidates: list[tuple[float, Path]] = []
    jrs: list[tuple[float, Path]] = []
    selection = SourceSelection()
    for path in list_source_files(directory):
        try:
            mtime = path.stat().st_mtime
            info = find_header_row(read_raw_rows(path, max_scan_rows), max_scan_rows)
        except Exception as exc:
            logger.warning("Skipping unreadable source %s: %s", path.name, exc)
            continue
        logger.info(
            "Checked %s: type %s, header row %d, headers %s",
            path.name,
            info.source_type,
            info.header_row + 1,
            ", ".join(repr(h) for h in info.headers[:5]),
        )
        selection.classified.append(
            {"file": path.name, "type": info.source_type, "header_row": info.header_row + 1}
        )
        name = path.name.lower()
        if info.source_type == CANDIDATE or (info.source_type == BOTH and "candidate" in name):
            candidates.append((mtime, path))
        if info.source_type == JR or (info.source_type == BOTH and "jr" in name):
            jrs.append((mtime, path))
    if candidates:
        selection.candidate = max(candidates)[1]
    if jrs:
        selection.jr = max(jrs)[1]
    return selection


# ── record shaping ──────────────────────────────────────────────────────────

def to_candidate_records(rows: Iterable[Mapping[str, Any]], schema: SchemaConfig) -> list[Record]:
    """Keep only the columns an incoming candidate record owns or seeds."""
    wanted = list(dict.fromkeys(schema.base_columns + schema.seed_columns))
    return [{column: row.get(column, "") for column in wanted} for row in rows]


def alias_jr_numbers(rows: list[Record], reference: ReferenceConfig) -> list[Record]:
    """Expose the JR id under its alias column when the export lacks it."""
    alias = reference.number_column
    for row in rows:
        if reference.key_column in row and alias not in row:
            row[alias] = row[reference.key_column]
    return rows


def build_header_order(rows: Iterable[Mapping[str, Any]], preferred: Sequence[str] = ()) -> list[str]:
    headers = list(preferred)
    for row in rows:
        for key in row:
            if key not in headers:
                headers.append(key)
    return headers

