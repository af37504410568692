"""Versioned contract for the machine-readable merge run summary."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any

CONTRACT_VERSIONS = {
    "tracker_merge.run_summary": "1.0.0",
    "tracker_merge.detect": "1.0.0",
}


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def build_contract(name: str) -> dict[str, str]:
    version = CONTRACT_VERSIONS[name]
    return {"name": name, "version": version}


def build_run_summary(
    *,
    input_dir: Path,
    output_path: Path,
    status: str = "ok",
    sources: dict[str, str | None] | None = None,
    metrics: dict[str, Any] | None = None,
    warnings: list[str] | None = None,
) -> dict[str, Any]:
    return {
        "contract": build_contract("tracker_merge.run_summary"),
        "status": status,
        "generated_at": utc_now_iso(),
        "input_dir": str(input_dir),
        "output_file": str(output_path),
        "sources": sources or {},
        "warnings_count": len(warnings or []),
        "warnings": list(warnings or []),
        "metrics": metrics or {},
    }
