"""Classify a source sheet as candidate data, JR data, both, or neither.

Exports often carry banner or title rows above the real header, so the
detector scans a bounded number of leading rows for the first one that
contains a recognised key column.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterable, Sequence

from tracker_merge.config import CANDIDATE_KEY, HEADER_SCAN_ROWS, JR_KEY, JR_NO_ALIAS
from tracker_merge.grid import to_text

CANDIDATE = "CANDIDATE"
JR = "JR"
BOTH = "BOTH"
UNKNOWN = "UNKNOWN"

ZERO_WIDTH_RE = re.compile(r"[\u200b-\u200d\ufeff]")
WHITESPACE_RE = re.compile(r"\s+")


def normalize_header(value: Any) -> str:
    """Header text with BOM/zero-width characters removed and whitespace collapsed."""
    if value is None:
        return ""
    text = ZERO_WIDTH_RE.sub("", str(value))
    return WHITESPACE_RE.sub(" ", text).strip()


def _detection_token(value: Any) -> str:
    # "JR No." and "JR  No" exports both compare equal once all whitespace is gone.
    return WHITESPACE_RE.sub("", normalize_header(value))


@dataclass(frozen=True)
class KeySignature:
    candidate_keys: tuple[str, ...] = (CANDIDATE_KEY,)
    jr_keys: tuple[str, ...] = (JR_KEY, JR_NO_ALIAS, "JR No")


DEFAULT_SIGNATURE = KeySignature()


@dataclass(frozen=True)
class HeaderRowInfo:
    header_row: int
    headers: list[str]
    source_type: str


def detect_type(headers: Iterable[Any], signature: KeySignature = DEFAULT_SIGNATURE) -> str:
    tokens = {_detection_token(header) for header in headers}
    is_candidate = any(_detection_token(key) in tokens for key in signature.candidate_keys)
    is_jr = any(_detection_token(key) in tokens for key in signature.jr_keys)
    if is_candidate and is_jr:
        return BOTH
    if is_candidate:
        return CANDIDATE
    if is_jr:
        return JR
    return UNKNOWN


def headers_at(row: Sequence[Any]) -> list[str]:
    """Normalised, non-empty header names of one raw row."""
    headers = [normalize_header(to_text(value)) for value in row]
    return [header for header in headers if header]


def find_header_row(
    rows: Sequence[Sequence[Any]],
    max_scan_rows: int = HEADER_SCAN_ROWS,
    signature: KeySignature = DEFAULT_SIGNATURE,
) -> HeaderRowInfo:
    """Locate the header among the leading ``rows`` (0-based row index in the result).

    Falls back to row 0 with whatever classification it yields when no
    recognised key column appears within ``max_scan_rows``.
    """
    for index, row in enumerate(rows[:max_scan_rows]):
        headers = headers_at(row)
        source_type = detect_type(headers, signature)
        if source_type != UNKNOWN:
            return HeaderRowInfo(index, headers, source_type)
    default_headers = headers_at(rows[0]) if rows else []
    return HeaderRowInfo(0, default_headers, detect_type(default_headers, signature))
