"""Structured error kinds raised by the merge engine and its collaborators."""

from __future__ import annotations

from pathlib import Path


class TrackerMergeError(Exception):
    """Base error. Carries enough context for the caller to render a precise message."""

    def __init__(
        self,
        message: str,
        *,
        sheet: str | None = None,
        column: str | None = None,
        row: int | None = None,
        key: str | None = None,
    ) -> None:
        super().__init__(message)
        self.sheet = sheet
        self.column = column
        self.row = row
        self.key = key


class MissingKeyColumnError(TrackerMergeError):
    def __init__(self, sheet: str, column: str) -> None:
        super().__init__(
            f"Key column '{column}' not found in sheet '{sheet}'",
            sheet=sheet,
            column=column,
        )


class LockTimeoutError(TrackerMergeError):
    def __init__(self, lock_path: Path, timeout: float) -> None:
        super().__init__(f"Timeout after {timeout:g}s waiting for lock: {lock_path}")
        self.lock_path = lock_path
        self.timeout = timeout


class StyleCopyError(TrackerMergeError):
    """Both deep-copy strategies failed for a cell's style or validation."""

    def __init__(self, row: int, column: int, what: str, cause: Exception) -> None:
        super().__init__(
            f"Could not copy {what} into row {row}, column {column}: {cause}",
            row=row,
        )
        self.column_index = column
        self.what = what


class InputNotFoundError(TrackerMergeError):
    def __init__(self, kind: str, directory: Path, expected_column: str) -> None:
        super().__init__(
            f"No {kind} file (.xlsx/.xlsm/.xls/.csv) with column '{expected_column}' found in {directory}",
            column=expected_column,
        )
        self.kind = kind
        self.directory = directory


class OutputUnreadableError(TrackerMergeError):
    def __init__(self, path: Path, cause: Exception) -> None:
        super().__init__(f"Cannot read existing output file {path}; aborting without changes. Details: {cause}")
        self.path = path
