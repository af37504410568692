"""Static schema configuration for the tracking workbook.

Everything the engine needs to know about column names, owned columns,
formulas, validations and colours lives in immutable dataclasses so that
the upsert and formatting passes can be exercised against alternate schemas.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from openpyxl.worksheet.datavalidation import DataValidation

DEFAULT_LOCK_TIMEOUT = 120.0
DEFAULT_LOCK_POLL_INTERVAL = 0.5
HEADER_SCAN_ROWS = 30
DEFAULT_INPUT_DIRNAME = "input"
DEFAULT_OUTPUT_RELPATH = ("output", "recruitment-tracking.xlsx")
LOCK_TIMEOUT_ENV = "TRACKER_MERGE_LOCK_TIMEOUT"

# Excel serial for 2020-01-01, the lower bound for tracked pipeline dates.
PIPELINE_DATE_FLOOR = "43831"
DATE_FORMAT = "yyyy-mm-dd"
INTEGER_FORMAT = "0"

WHITE = "FFFFFFFF"
BLACK = "FF000000"


@dataclass(frozen=True)
class ValidationRule:
    """Declarative data-validation rule, materialised as an openpyxl DataValidation."""

    type: str
    operator: str | None = None
    formula1: str | None = None
    formula2: str | None = None
    allow_blank: bool = True
    show_error_message: bool = False
    error_title: str | None = None
    error: str | None = None

    def to_data_validation(self) -> DataValidation:
        return DataValidation(
            type=self.type,
            operator=self.operator,
            formula1=self.formula1,
            formula2=self.formula2,
            allow_blank=self.allow_blank,
            showErrorMessage=self.show_error_message,
            errorTitle=self.error_title,
            error=self.error,
        )


@dataclass(frozen=True)
class DerivedColumn:
    header: str
    formula: str
    number_format: str | None = None

    def render(self, row: int) -> str:
        return self.formula.format(row=row)


@dataclass(frozen=True)
class ColumnRule:
    header: str
    validation: ValidationRule | None = None
    number_format: str | None = None


@dataclass(frozen=True)
class HeaderBand:
    first_column: int
    last_column: int
    fill: str
    font_color: str = BLACK


@dataclass(frozen=True)
class SchemaConfig:
    sheet_name: str
    key_column: str
    base_columns: tuple[str, ...]
    header_order: tuple[str, ...]
    max_columns: int
    reset_range: tuple[int, int] | None = None
    header_bands: tuple[HeaderBand, ...] = ()
    column_width: float = 24
    header_height: float = 32
    header_font_size: float = 14
    derived_columns: tuple[DerivedColumn, ...] = ()
    column_rules: tuple[ColumnRule, ...] = ()
    seed_columns: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.max_columns <= 0:
            raise ValueError("max_columns must be positive")
        if self.reset_range is not None:
            first, last = self.reset_range
            if first < 1 or last < first:
                raise ValueError(f"Invalid reset range: {self.reset_range}")

    def is_reset_column(self, column: int) -> bool:
        if self.reset_range is None:
            return False
        first, last = self.reset_range
        return first <= column <= last

    def resolved_header(self) -> list[str]:
        return list(self.header_order[: self.max_columns])


@dataclass(frozen=True)
class ReferenceConfig:
    """The JR sheet: rewritten wholesale on every run, never merged."""

    sheet_name: str
    key_column: str
    key_aliases: tuple[str, ...] = field(default=())
    date_format: str = "dd/mm/yyyy"
    date_header_hints: tuple[str, ...] = ("Date", "วันที่")

    @property
    def number_column(self) -> str:
        return self.key_aliases[0] if self.key_aliases else self.key_column


# ── Recruitment tracking schema ─────────────────────────────────────────────

CANDIDATE_SHEET = "candidate_master"
JR_SHEET = "JR_Detail"
CANDIDATE_KEY = "รหัสบัตรประชาชน"
JR_KEY = "รหัสใบร้องขอ/ID"
JR_NO_ALIAS = "JR No."

CANDIDATE_BASE_COLUMNS = (
    "คำนำหน้าชื่อ",
    "ชื่อ (ไทย)",
    "สกุล (ไทย)",
    "ชื่อ (อังกฤษ)",
    "สกุล (อังกฤษ)",
    "ชื่อเล่น",
    CANDIDATE_KEY,
    "วันเกิด",
    "เบอร์ติดต่อ",
    "email",
)

CANDIDATE_HEADER_ORDER = CANDIDATE_BASE_COLUMNS + (
    JR_NO_ALIAS,
    "หน่วยธุรกิจ/BU",
    "ตำแหน่งที่ขอรับ/Requested Position",
    "ประเภทการจ้าง/Employment Category",
    "ระดับ/Level",
    "ผู้รับผิดชอบ/Manage by",
    "สถานะล่าสุด/Latest status",
    "วันที่อัพเดทสถานะล่าสุด/Date Latest status",
    "สร้างโดย/Created by",
    "วันที่สร้าง/Date",
    "Candidate Status",
    "Shortlist",
    "1st round interview",
    "2nd round interview",
    "Final round interview",
    "Offering เสนอผลประโยชน์",
    "Hiring",
    "Onboarding",
    "Channel",
    "Turndown Reason",
    "Turndown Date",
    "Resume",
    "SLA by Level",
    "SLA (Shortlist)",
    "SLA (Interview)",
    "SLA (Offering)",
    "SLA (Hiring)",
    "SLA (Onboarding)",
)


def _jr_lookup(header: str, index: int, number_format: str | None = None) -> DerivedColumn:
    return DerivedColumn(
        header,
        f'=IFERROR(VLOOKUP($K{{row}},{JR_SHEET}!$A:$O,{index},0),"")',
        number_format,
    )


def _sla_since_created(header: str, stage_column: str) -> DerivedColumn:
    col = stage_column
    return DerivedColumn(
        header,
        f'=IF({col}{{row}}<>"", IFERROR(VALUE({col}{{row}})-VALUE(T{{row}}), ""), "")',
        INTEGER_FORMAT,
    )


CANDIDATE_DERIVED_COLUMNS = (
    _jr_lookup("หน่วยธุรกิจ/BU", 2),
    _jr_lookup("ตำแหน่งที่ขอรับ/Requested Position", 3),
    _jr_lookup("ประเภทการจ้าง/Employment Category", 4),
    _jr_lookup("ระดับ/Level", 5),
    _jr_lookup("ผู้รับผิดชอบ/Manage by", 11),
    _jr_lookup("สถานะล่าสุด/Latest status", 12),
    _jr_lookup("วันที่อัพเดทสถานะล่าสุด/Date Latest status", 13, DATE_FORMAT),
    _jr_lookup("สร้างโดย/Created by", 14),
    _jr_lookup("วันที่สร้าง/Date", 15, DATE_FORMAT),
    DerivedColumn(
        "Candidate Status",
        '=IF(AD{row}<>"", "Turndown", IFERROR(LOOKUP(2, 1/(V{row}:AB{row}<>""), V$1:AB$1), ""))',
    ),
    DerivedColumn(
        "SLA by Level",
        '=IF(OR(ISNUMBER(SEARCH("Collector", M{row})), ISNUMBER(SEARCH("Underwriting", M{row})), '
        'ISNUMBER(SEARCH("Contact Center", M{row}))), 30, '
        'IF(OR(O{row}="Chief", O{row}="Head of"), 90, '
        'IF(OR(O{row}="Team lead", O{row}="Senior Professional", O{row}="Expert"), 60, '
        'IF(OR(O{row}="Professional", O{row}="Support"), 45, 0))))',
        INTEGER_FORMAT,
    ),
    _sla_since_created("SLA (Shortlist)", "V"),
    DerivedColumn(
        "SLA (Interview)",
        '=IF(Y{row}<>"", IFERROR(VALUE(Y{row})-VALUE(T{row}), ""), '
        'IF(X{row}<>"", IFERROR(VALUE(X{row})-VALUE(T{row}), ""), '
        'IF(W{row}<>"", IFERROR(VALUE(W{row})-VALUE(T{row}), ""), "")))',
        INTEGER_FORMAT,
    ),
    _sla_since_created("SLA (Offering)", "Z"),
    _sla_since_created("SLA (Hiring)", "AA"),
    _sla_since_created("SLA (Onboarding)", "AB"),
)


def _date_only(message: str) -> ValidationRule:
    return ValidationRule(
        type="date",
        operator="greaterThan",
        formula1=PIPELINE_DATE_FLOOR,
        show_error_message=True,
        error_title="Date Only",
        error=message,
    )


def _choice(options: tuple[str, ...]) -> ValidationRule:
    return ValidationRule(type="list", formula1='"' + ",".join(options) + '"', allow_blank=True)


PIPELINE_DATE_COLUMNS = (
    "Shortlist",
    "1st round interview",
    "2nd round interview",
    "Final round interview",
    "Offering เสนอผลประโยชน์",
    "Hiring",
    "Onboarding",
)
CHANNEL_OPTIONS = ("LinkedIn", "JobThai", "Referral", "Agency", "Walk-in")
TURNDOWN_OPTIONS = ("Salary", "Counter Offer", "Culture Fit", "Ghosting", "Skill Mismatch", "Other")

CANDIDATE_COLUMN_RULES = tuple(
    ColumnRule(header, _date_only("กรุณากรอกวันที่ (วว/ดด/ปปปป)"), DATE_FORMAT)
    for header in PIPELINE_DATE_COLUMNS
) + (
    ColumnRule("Channel", _choice(CHANNEL_OPTIONS)),
    ColumnRule("Turndown Reason", _choice(TURNDOWN_OPTIONS)),
    ColumnRule("Turndown Date", _date_only("กรุณากรอกวันที่ Turndown"), DATE_FORMAT),
)

# A-J personal data, K + V-AF recruiter entry, L-U + AG-AL lookups and SLAs.
CANDIDATE_HEADER_BANDS = (
    HeaderBand(1, 10, "FF1CBBD8", WHITE),
    HeaderBand(11, 11, "FF5387D9", WHITE),
    HeaderBand(22, 32, "FF5387D9", WHITE),
    HeaderBand(12, 21, "FFFED243", BLACK),
    HeaderBand(33, 38, "FFFED243", BLACK),
)

CANDIDATE_SCHEMA = SchemaConfig(
    sheet_name=CANDIDATE_SHEET,
    key_column=CANDIDATE_KEY,
    base_columns=CANDIDATE_BASE_COLUMNS,
    header_order=CANDIDATE_HEADER_ORDER,
    max_columns=38,
    reset_range=(22, 31),
    header_bands=CANDIDATE_HEADER_BANDS,
    column_width=24,
    header_height=32,
    derived_columns=CANDIDATE_DERIVED_COLUMNS,
    column_rules=CANDIDATE_COLUMN_RULES,
    seed_columns=(JR_NO_ALIAS,),
)

JR_REFERENCE = ReferenceConfig(
    sheet_name=JR_SHEET,
    key_column=JR_KEY,
    key_aliases=(JR_NO_ALIAS,),
)
