from __future__ import annotations

import os
import tempfile
import unittest
from datetime import datetime
from pathlib import Path
from unittest import mock

import pandas as pd
from openpyxl import Workbook

from tracker_merge.config import CANDIDATE_SCHEMA, JR_REFERENCE
from tracker_merge.detect import BOTH, JR
from tracker_merge.sources import (
    alias_jr_numbers,
    build_header_order,
    decode_text,
    pick_latest_by_type,
    read_raw_rows,
    read_table,
    to_candidate_records,
)

CANDIDATE_CSV = (
    "Candidate export,,\n"
    ",,\n"
    "ชื่อ (ไทย),รหัสบัตรประชาชน,JR No.\n"
    "สมชาย,1103700000001,JR-01\n"
    ",,\n"
    "สมหญิง,1103700000002,JR-02\n"
)
JR_CSV = "รหัสใบร้องขอ/ID,หน่วยธุรกิจ/BU,วันที่สร้าง/Date\nJR-01,Retail,5/1/2024\n"


class SourceDirTestCase(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.dir = Path(self._tmp.name)

    def write(self, name: str, text: str, mtime: float | None = None, encoding: str = "utf-8") -> Path:
        path = self.dir / name
        path.write_bytes(text.encode(encoding))
        if mtime is not None:
            os.utime(path, (mtime, mtime))
        return path


class DecodeTextTests(unittest.TestCase):
    def test_utf8_with_bom(self):
        self.assertEqual(decode_text("\ufeffรหัส".encode("utf-8")), "รหัส")

    def test_plain_utf8(self):
        self.assertEqual(decode_text("JR No.,ชื่อ".encode("utf-8")), "JR No.,ชื่อ")

    def test_non_utf8_bytes_still_decode(self):
        self.assertIsInstance(decode_text(b"\xff\xfe\xfa name"), str)


class ReadTableTests(SourceDirTestCase):
    def test_csv_header_found_below_banner(self):
        table = read_table(self.write("candidates.csv", CANDIDATE_CSV))
        self.assertEqual(table.header_row, 2)
        self.assertEqual(table.source_type, BOTH)
        self.assertEqual(len(table.records), 2)
        self.assertEqual(table.records[1]["รหัสบัตรประชาชน"], "1103700000002")
        self.assertEqual(table.records[0]["JR No."], "JR-01")

    def test_raw_rows_respect_limit(self):
        rows = read_raw_rows(self.write("candidates.csv", CANDIDATE_CSV), limit=2)
        self.assertEqual(len(rows), 2)
        self.assertEqual(rows[0][0], "Candidate export")

    def test_csv_goes_through_pandas(self):
        path = self.write("candidates.csv", CANDIDATE_CSV)
        with mock.patch("tracker_merge.sources.pd.read_csv", wraps=pd.read_csv) as read_csv:
            rows = read_raw_rows(path, limit=3)
        read_csv.assert_called_once()
        self.assertEqual(read_csv.call_args.kwargs["nrows"], 3)
        self.assertEqual(rows[2], ["ชื่อ (ไทย)", "รหัสบัตรประชาชน", "JR No."])

    def test_narrow_banner_row_above_wider_table(self):
        path = self.write("jr.csv", "JR export\n\nรหัสใบร้องขอ/ID,หน่วยธุรกิจ/BU\nJR-01,Retail\n")
        rows = read_raw_rows(path)
        self.assertEqual(rows[0], ["JR export", ""])
        self.assertEqual(rows[1], ["", ""])
        table = read_table(path)
        self.assertEqual(table.header_row, 2)
        self.assertEqual(table.records, [{"รหัสใบร้องขอ/ID": "JR-01", "หน่วยธุรกิจ/BU": "Retail"}])

    def test_empty_csv(self):
        self.assertEqual(read_raw_rows(self.write("empty.csv", "")), [])

    def test_cells_keep_text_not_inferred_types(self):
        rows = read_raw_rows(self.write("jr.csv", "JR No.,Headcount,NA\n0012,3,NA\n"))
        self.assertEqual(rows[1], ["0012", "3", "NA"])

    def test_duplicate_headers_get_suffixes(self):
        table = read_table(self.write("jr.csv", "JR No.,Note,Note\nJR-1,a,b\n"))
        self.assertEqual(table.records, [{"JR No.": "JR-1", "Note": "a", "Note_1": "b"}])

    def test_xlsx_source(self):
        workbook = Workbook()
        ws = workbook.active
        ws.append(["Monthly report"])
        ws.append(["รหัสใบร้องขอ/ID", "วันที่สร้าง/Date", "Headcount"])
        ws.append(["JR-7", datetime(2024, 3, 4), 3])
        path = self.dir / "jr.xlsx"
        workbook.save(path)

        table = read_table(path)
        self.assertEqual(table.source_type, JR)
        self.assertEqual(table.header_row, 1)
        record = table.records[0]
        self.assertEqual(record["รหัสใบร้องขอ/ID"], "JR-7")
        self.assertEqual(record["วันที่สร้าง/Date"], datetime(2024, 3, 4))
        self.assertEqual(record["Headcount"], 3)

    def test_unsupported_extension(self):
        with self.assertRaises(ValueError):
            read_raw_rows(self.write("notes.txt", "hello"))


class PickLatestTests(SourceDirTestCase):
    def test_newest_file_of_each_kind_wins(self):
        self.write("candidates-old.csv", CANDIDATE_CSV, mtime=1_000)
        newest = self.write("candidates-new.csv", CANDIDATE_CSV, mtime=2_000)
        jr = self.write("jr.csv", JR_CSV, mtime=500)
        self.write("other.csv", "Name,Phone\nA,1\n", mtime=3_000)
        self.write("README.md", "ignored", mtime=4_000)

        selection = pick_latest_by_type(self.dir)

        self.assertEqual(selection.candidate, newest)
        self.assertEqual(selection.jr, jr)
        self.assertEqual(len(selection.classified), 4)

    def test_file_with_both_keys_uses_name_hint(self):
        both = "รหัสบัตรประชาชน,JR No.\n1,JR-1\n"
        candidate = self.write("candidate_export.csv", both, mtime=1_000)
        jr = self.write("jr_requests.csv", both, mtime=1_000)

        selection = pick_latest_by_type(self.dir)
        self.assertEqual(selection.candidate, candidate)
        self.assertEqual(selection.jr, jr)

    def test_unreadable_files_are_skipped(self):
        (self.dir / "broken.xlsx").write_bytes(b"not a workbook")
        jr = self.write("jr.csv", JR_CSV)
        with self.assertLogs("tracker_merge.sources", level="WARNING"):
            selection = pick_latest_by_type(self.dir)
        self.assertIsNone(selection.candidate)
        self.assertEqual(selection.jr, jr)


class RecordShapingTests(unittest.TestCase):
    def test_candidate_records_keep_base_and_seed_columns(self):
        records = to_candidate_records([{"รหัสบัตรประชาชน": "1", "JR No.": "JR-1", "Extra": "x"}], CANDIDATE_SCHEMA)
        record = records[0]
        self.assertNotIn("Extra", record)
        self.assertEqual(record["JR No."], "JR-1")
        self.assertEqual(record["email"], "")
        self.assertEqual(len(record), len(CANDIDATE_SCHEMA.base_columns) + 1)

    def test_jr_alias_added_only_when_missing(self):
        rows = alias_jr_numbers(
            [{"รหัสใบร้องขอ/ID": "JR-1"}, {"รหัสใบร้องขอ/ID": "JR-2", "JR No.": "kept"}],
            JR_REFERENCE,
        )
        self.assertEqual(rows[0]["JR No."], "JR-1")
        self.assertEqual(rows[1]["JR No."], "kept")

    def test_header_order_is_first_seen(self):
        order = build_header_order([{"b": 1, "a": 2}, {"c": 3, "a": 4}], preferred=["z"])
        self.assertEqual(order, ["z", "b", "a", "c"])


if __name__ == "__main__":
    unittest.main()
