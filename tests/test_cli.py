from __future__ import annotations

import json
import os
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path

from tracker_merge import __version__
from tracker_merge.cli import (
    EXIT_COMMAND_ERROR,
    EXIT_INPUT_ERROR,
    EXIT_LOCK_TIMEOUT,
    EXIT_SCHEMA_ERROR,
    classify_exception,
)
from tracker_merge.errors import LockTimeoutError, MissingKeyColumnError, OutputUnreadableError

ROOT = Path(__file__).resolve().parents[1]
CLI = [sys.executable, "-m", "tracker_merge.cli"]

CANDIDATE_CSV = "ชื่อ (ไทย),รหัสบัตรประชาชน,JR No.\nสมชาย,1103700000001,JR-01\n"
JR_CSV = "JR export\nรหัสใบร้องขอ/ID,หน่วยธุรกิจ/BU\nJR-01,Retail\n"


def run_cli(*args: str, cwd: Path | None = None, env: dict[str, str] | None = None) -> subprocess.CompletedProcess[str]:
    merged_env = dict(os.environ)
    merged_env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(ROOT), merged_env.get("PYTHONPATH")]))
    merged_env.pop("TRACKER_MERGE_LOCK_TIMEOUT", None)
    if env:
        merged_env.update(env)
    return subprocess.run(
        [*CLI, *args],
        cwd=cwd or ROOT,
        capture_output=True,
        text=True,
        env=merged_env,
    )


class TrackerMergeCliTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.root = Path(self._tmp.name)
        self.in_dir = self.root / "input"
        self.in_dir.mkdir()
        self.out_file = self.root / "output" / "recruitment-tracking.xlsx"

    def write_inputs(self, *, jr: bool = True) -> None:
        (self.in_dir / "candidates.csv").write_text(CANDIDATE_CSV, encoding="utf-8")
        if jr:
            (self.in_dir / "jr.csv").write_text(JR_CSV, encoding="utf-8")

    def test_version(self):
        proc = run_cli("version")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        self.assertEqual(proc.stdout.strip(), __version__)

    def test_missing_command_is_a_usage_error(self):
        proc = run_cli()
        self.assertEqual(proc.returncode, EXIT_COMMAND_ERROR)

    def test_detect_json(self):
        self.write_inputs()
        proc = run_cli("detect", str(self.in_dir / "jr.csv"), "--json")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        payload = json.loads(proc.stdout)
        self.assertEqual(payload["contract"]["name"], "tracker_merge.detect")
        self.assertEqual(payload["type"], "JR")
        self.assertEqual(payload["header_row"], 2)

    def test_detect_human_output(self):
        self.write_inputs()
        proc = run_cli("detect", str(self.in_dir / "candidates.csv"))
        self.assertEqual(proc.returncode, 0, proc.stderr)
        self.assertIn("Detected type: BOTH", proc.stdout)
        self.assertIn("Header row: 1", proc.stdout)

    def test_detect_missing_file_returns_exit_2(self):
        proc = run_cli("detect", str(self.root / "nope.csv"))
        self.assertEqual(proc.returncode, EXIT_INPUT_ERROR)
        self.assertIn("Input file not found", proc.stderr)

    def test_merge_json_stdout_contains_only_json(self):
        self.write_inputs()
        proc = run_cli("merge", "--in", str(self.in_dir), "--out", str(self.out_file), "--json")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        summary = json.loads(proc.stdout)
        self.assertEqual(summary["status"], "ok")
        self.assertEqual(summary["metrics"]["inserted"], 1)
        self.assertTrue(self.out_file.exists())

    def test_merge_default_paths_follow_working_directory(self):
        self.write_inputs()
        proc = run_cli("merge", cwd=self.root)
        self.assertEqual(proc.returncode, 0, proc.stderr)
        self.assertTrue(self.out_file.exists())
        self.assertIn("Inserted: 1", proc.stderr)

    def test_merge_without_jr_export_returns_exit_2(self):
        self.write_inputs(jr=False)
        proc = run_cli("merge", "--in", str(self.in_dir), "--out", str(self.out_file))
        self.assertEqual(proc.returncode, EXIT_INPUT_ERROR)
        self.assertIn("ERROR: No JR file", proc.stderr)
        self.assertFalse(self.out_file.exists())

    def test_merge_lock_timeout_from_environment_returns_exit_3(self):
        self.write_inputs()
        self.out_file.parent.mkdir()
        self.out_file.with_name(self.out_file.name + ".lock").write_text("busy", encoding="utf-8")
        proc = run_cli(
            "merge",
            "--in",
            str(self.in_dir),
            "--out",
            str(self.out_file),
            env={"TRACKER_MERGE_LOCK_TIMEOUT": "0"},
        )
        self.assertEqual(proc.returncode, EXIT_LOCK_TIMEOUT)
        self.assertIn("waiting for lock", proc.stderr)

    def test_bad_lock_timeout_environment_value(self):
        self.write_inputs()
        proc = run_cli(
            "merge",
            "--in",
            str(self.in_dir),
            "--out",
            str(self.out_file),
            env={"TRACKER_MERGE_LOCK_TIMEOUT": "soon"},
        )
        self.assertEqual(proc.returncode, EXIT_COMMAND_ERROR)
        self.assertIn("TRACKER_MERGE_LOCK_TIMEOUT", proc.stderr)


class ClassifyExceptionTests(unittest.TestCase):
    def test_exit_codes(self):
        self.assertEqual(classify_exception(LockTimeoutError(Path("x.lock"), 1)), EXIT_LOCK_TIMEOUT)
        self.assertEqual(classify_exception(MissingKeyColumnError("s", "k")), EXIT_SCHEMA_ERROR)
        self.assertEqual(classify_exception(OutputUnreadableError(Path("x"), ValueError("bad"))), EXIT_INPUT_ERROR)
        self.assertEqual(classify_exception(RuntimeError("other")), EXIT_COMMAND_ERROR)


if __name__ == "__main__":
    unittest.main()
