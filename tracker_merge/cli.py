from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any

from tracker_merge import __version__ as TOOL_VERSION
from tracker_merge.config import (
    DEFAULT_INPUT_DIRNAME,
    DEFAULT_LOCK_TIMEOUT,
    DEFAULT_OUTPUT_RELPATH,
    HEADER_SCAN_ROWS,
    LOCK_TIMEOUT_ENV,
)
from tracker_merge.contracts import build_contract
from tracker_merge.errors import (
    InputNotFoundError,
    LockTimeoutError,
    MissingKeyColumnError,
    OutputUnreadableError,
    StyleCopyError,
)

EXIT_SUCCESS = 0
EXIT_COMMAND_ERROR = 1
EXIT_INPUT_ERROR = 2
EXIT_LOCK_TIMEOUT = 3
EXIT_SCHEMA_ERROR = 4


class CliError(Exception):
    def __init__(self, message: str, code: int = EXIT_COMMAND_ERROR) -> None:
        super().__init__(message)
        self.code = code


class TrackerMergeArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        raise CliError(message, EXIT_COMMAND_ERROR)


def eprint(message: str) -> None:
    print(message, file=sys.stderr)


def emit_human(message: str, *, quiet: bool = False) -> None:
    if not quiet:
        eprint(message)


def json_dumps(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, sort_keys=True)


def configure_logging(*, quiet: bool = False, verbose: bool = False) -> None:
    level = logging.INFO
    if quiet:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    logging.basicConfig(level=level, stream=sys.stderr, format="%(levelname)s %(name)s: %(message)s", force=True)


def default_lock_timeout() -> float:
    override = os.environ.get(LOCK_TIMEOUT_ENV)
    if not override:
        return DEFAULT_LOCK_TIMEOUT
    try:
        return float(override)
    except ValueError:
        raise CliError(f"{LOCK_TIMEOUT_ENV} must be a number of seconds, got {override!r}", EXIT_COMMAND_ERROR) from None


def classify_exception(exc: Exception) -> int:
    if isinstance(exc, CliError):
        return exc.code
    if isinstance(exc, LockTimeoutError):
        return EXIT_LOCK_TIMEOUT
    if isinstance(exc, (MissingKeyColumnError, StyleCopyError)):
        return EXIT_SCHEMA_ERROR
    if isinstance(exc, (InputNotFoundError, OutputUnreadableError, FileNotFoundError, ImportError, ValueError)):
        return EXIT_INPUT_ERROR
    return EXIT_COMMAND_ERROR


def render_merge_summary(summary: dict[str, Any]) -> str:
    metrics = summary.get("metrics", {})
    sources = summary.get("sources", {})
    lines = [
        "tracker-merge merge",
        f"Candidate: {sources.get('candidate', '[none]')}",
        f"JR: {sources.get('jr', '[none]')}",
        f"Output: {summary.get('output_file', '[unknown]')}",
        f"Sheets: {', '.join(metrics.get('sheets', []))}",
        f"Inserted: {metrics.get('inserted', 0)}",
        f"Updated: {metrics.get('updated', 0)}",
        f"Skipped (empty key): {metrics.get('skipped_empty_key', 0)}",
        f"Last candidate row: {metrics.get('last_data_row', 1)}",
        f"JR rows: {metrics.get('jr_rows', 0)}",
    ]
    warnings = summary.get("warnings", [])
    if warnings:
        lines.append("Warnings:")
        lines.extend(f"- {warning}" for warning in warnings)
    return "\n".join(lines) + "\n"


def build_parser() -> argparse.ArgumentParser:
    parser = TrackerMergeArgumentParser(prog="tracker-merge")
    subparsers = parser.add_subparsers(dest="command", required=True)

    merge = subparsers.add_parser("merge", help="Merge the newest candidate and JR exports into the tracking workbook.")
    merge.add_argument("--in", dest="in_dir", help="Input directory (default: ./input)")
    merge.add_argument("--out", dest="out_file", help="Output workbook (default: ./output/recruitment-tracking.xlsx)")
    merge.add_argument("--lock-timeout", type=float, help=f"Seconds to wait for the output lock (env: {LOCK_TIMEOUT_ENV})")
    merge.add_argument("--scan-rows", type=int, default=HEADER_SCAN_ROWS, help="Leading rows searched for the header")
    merge.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    merge.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
    merge.add_argument("-v", "--verbose", action="store_true", help="More human logs")

    detect = subparsers.add_parser("detect", help="Show which kind of export a file is and where its header is.")
    detect.add_argument("input", help="Input file path")
    detect.add_argument("--scan-rows", type=int, default=HEADER_SCAN_ROWS, help="Leading rows searched for the header")
    detect.add_argument("--json", action="store_true", help="Write machine JSON to stdout")

    subparsers.add_parser("version", help="Print version")
    return parser


def run_merge_command(args: argparse.Namespace) -> int:
    from tracker_merge.pipeline import run_merge

    configure_logging(quiet=args.quiet or args.json, verbose=args.verbose)
    cwd = Path.cwd()
    in_dir = Path(args.in_dir).resolve() if args.in_dir else cwd / DEFAULT_INPUT_DIRNAME
    out_file = Path(args.out_file).resolve() if args.out_file else cwd.joinpath(*DEFAULT_OUTPUT_RELPATH)
    try:
        lock_timeout = args.lock_timeout if args.lock_timeout is not None else default_lock_timeout()
        emit_human(f"Input directory: {in_dir}", quiet=args.quiet or args.json)
        emit_human(f"Output file: {out_file}", quiet=args.quiet or args.json)
        summary = run_merge(in_dir, out_file, lock_timeout=lock_timeout, max_scan_rows=args.scan_rows)
    except Exception as exc:
        eprint(f"ERROR: {exc}")
        return classify_exception(exc)
    if args.json:
        print(json_dumps(summary))
    else:
        emit_human(render_merge_summary(summary).rstrip(), quiet=args.quiet)
    return EXIT_SUCCESS


def run_detect(args: argparse.Namespace) -> int:
    from tracker_merge.detect import find_header_row
    from tracker_merge.sources import read_raw_rows

    input_path = Path(args.input)
    try:
        if not input_path.exists():
            raise FileNotFoundError(f"Input file not found: {input_path}")
        info = find_header_row(read_raw_rows(input_path, args.scan_rows), args.scan_rows)
    except Exception as exc:
        eprint(str(exc))
        return classify_exception(exc)
    payload = {
        "contract": build_contract("tracker_merge.detect"),
        "file": input_path.name,
        "type": info.source_type,
        "header_row": info.header_row + 1,
        "headers": info.headers,
    }
    if args.json:
        print(json_dumps(payload))
    else:
        print(
            "\n".join(
                [
                    f"File: {payload['file']}",
                    f"Detected type: {payload['type']}",
                    f"Header row: {payload['header_row']}",
                    f"Headers (sample): {', '.join(repr(h) for h in info.headers[:5])}",
                ]
            )
        )
    return EXIT_SUCCESS


def run_version() -> int:
    print(TOOL_VERSION)
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    try:
        parser = build_parser()
        args = parser.parse_args(argv)
        if args.command == "merge":
            return run_merge_command(args)
        if args.command == "detect":
            return run_detect(args)
        if args.command == "version":
            return run_version()
        raise CliError(f"Unknown command: {args.command}", EXIT_COMMAND_ERROR)
    except CliError as exc:
        eprint(str(exc))
        return exc.code


if __name__ == "__main__":
    raise SystemExit(main())
