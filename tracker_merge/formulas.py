from __future__ import annotations

import re

# COL (1-3 letters, optional $) + optional $ + ROW, not abutting identifier characters.
CELL_REF_RE = re.compile(r"(?<![A-Za-z0-9_])(\$?[A-Za-z]{1,3})(\$?)(\d+)(?![A-Za-z0-9_(])")


def is_formula(value) -> bool:
    return isinstance(value, str) and value.startswith("=")


def shift_formula_rows(formula: str, row_delta: int) -> str:
    """Move every relative row reference in ``formula`` by ``row_delta``.

    Rows written as ``$5`` are absolute and stay put. Column letters (and a
    ``$`` in front of them) are never touched.
    """
    if row_delta == 0:
        return formula

    def _shift(match: re.Match) -> str:
        column, row_abs, row_text = match.groups()
        if row_abs == "$":
            return match.group(0)
        return f"{column}{row_abs}{int(row_text) + row_delta}"

    return CELL_REF_RE.sub(_shift, formula)
