# src/markform/table.py
# Markdown pipe tables for table fields.
#   | Name | Age |
#   | --- | --- |
#   | Alice | 25 |
#   | Bob | %SKIP% (declined) |
# Cells are typed by their column; "|" inside a cell is written as "\|".

from __future__ import annotations
import re
from typing import Any, List, Mapping, Sequence, Tuple

from .model import ANSWERED, EMPTY, Cell, Column, TableRow
from .sentinels import format_cell_sentinel, parse_cell_sentinel
from .values import format_number, is_date, is_number, is_url, is_year, parse_date, parse_number, parse_url, parse_year

SEPARATOR_CELL_RE = re.compile(r'^:?-+:?$')
_CONTROL_RE = re.compile(r'[\x00-\x1f\x7f]')
# opens a directive in either dialect
_DIRECTIVE_RE = re.compile(r'\{%|<!--')


# ------------------------------ Escaping -------------------------------------

def escape_cell(text: str) -> str:
    # backslashes directly before a pipe are doubled so the pipe escape stays unambiguous
    return re.sub(r'(\\*)\|', lambda m: m.group(1) * 2 + "\\|", text)


def split_row(line: str) -> List[str]:
    """Split one table line into unescaped, trimmed cell texts."""
    s = line.strip()
    if s.startswith("|"):
        s = s[1:]
    cells: List[str] = []
    buf: List[str] = []
    i = 0
    while i < len(s):
        ch = s[i]
        if ch == "\\":
            j = i
            while j < len(s) and s[j] == "\\":
                j += 1
            run = j - i
            if j < len(s) and s[j] == "|":
                buf.append("\\" * (run // 2))
                if run % 2:
                    buf.append("|")
                    i = j + 1
                else:
                    i = j  # the pipe is a separator
                continue
            buf.append(s[i:j])
            i = j
            continue
        if ch == "|":
            cells.append("".join(buf).strip())
            buf = []
            i += 1
            continue
        buf.append(ch)
        i += 1
    tail = "".join(buf).strip()
    # a closing pipe leaves an empty tail that is not a cell
    if tail or not s.rstrip().endswith("|"):
        cells.append(tail)
    return cells


# ------------------------------ Decoding -------------------------------------

def parse_markdown_table(lines: Sequence[str]) -> Tuple[List[str], List[List[str]]]:
    """Return (header cells, data rows) with rows padded/truncated to the header width.

    Raises ValueError when the header or separator row is missing or malformed.
    """
    lines = [ln for ln in lines if ln.strip()]
    if len(lines) < 2:
        raise ValueError("Table must have a header row and a separator row")
    header = split_row(lines[0])
    sep = split_row(lines[1])
    if not sep or not all(SEPARATOR_CELL_RE.match(c) for c in sep):
        raise ValueError("Invalid table separator row (expected '| --- | --- |')")
    width = len(header)
    rows: List[List[str]] = []
    for ln in lines[2:]:
        cells = split_row(ln)
        if len(cells) < width:
            cells = cells + [""] * (width - len(cells))
        rows.append(cells[:width])
    return header, rows


def coerce_cell(raw: Any, column_type: str) -> Cell:
    """Build a cell from raw text (or a typed value). Raises ValueError.

    Blank text and None give an empty cell; only the %SKIP% and %ABORT%
    sentinels mark a cell skipped or aborted.
    """
    if raw is None:
        return Cell(state=EMPTY)
    if isinstance(raw, bool):
        raise ValueError("Boolean values are not allowed in table cells")
    if not isinstance(raw, str):
        if column_type == "number" and is_number(raw):
            return Cell(value=raw)
        if column_type == "year" and is_year(raw):
            return Cell(value=raw)
        raise ValueError(f"Expected {column_type} value, got {type(raw).__name__}")
    if "\n" in raw or "\r" in raw or _CONTROL_RE.search(raw):
        raise ValueError("Cell text must not contain newlines or control characters")
    text = raw.strip()
    if not text:
        return Cell(state=EMPTY)
    sentinel = parse_cell_sentinel(text)
    if sentinel:
        return Cell(state=sentinel.state, reason=sentinel.reason)
    if column_type == "number":
        return Cell(value=parse_number(text))
    if column_type == "url":
        return Cell(value=parse_url(text))
    if column_type == "date":
        return Cell(value=parse_date(text))
    if column_type == "year":
        return Cell(value=parse_year(text))
    return Cell(value=text)


def decode_rows(columns: Sequence[Column], rows: Sequence[Sequence[str]]) -> Tuple[TableRow, ...]:
    out = []
    for r, cells in enumerate(rows):
        decoded = []
        for col, raw in zip(columns, cells):
            try:
                decoded.append(coerce_cell(raw, col.type))
            except ValueError as exc:
                raise ValueError(f"Row {r + 1}, column '{col.id}': {exc}") from exc
        out.append(TableRow(tuple(decoded)))
    return tuple(out)


def coerce_rows(columns: Sequence[Column], rows: Sequence[Any]) -> Tuple[TableRow, ...]:
    """Rows from a patch: mappings of column id to value, or positional sequences."""
    ids = [c.id for c in columns]
    out = []
    for r, row in enumerate(rows):
        if isinstance(row, Mapping):
            unknown = [k for k in row if k not in ids]
            if unknown:
                raise ValueError(f"Row {r + 1}: unknown column '{unknown[0]}'")
            raw_cells = [row.get(cid) for cid in ids]
        elif isinstance(row, (list, tuple)):
            if len(row) != len(ids):
                raise ValueError(f"Row {r + 1}: expected {len(ids)} cells, got {len(row)}")
            raw_cells = list(row)
        else:
            raise ValueError(f"Row {r + 1}: expected an object or array")
        cells = []
        for col, raw in zip(columns, raw_cells):
            try:
                if isinstance(raw, str) and _DIRECTIVE_RE.search(raw):
                    raise ValueError("Cell text must not contain directive markup")
                cells.append(coerce_cell(raw, col.type))
            except ValueError as exc:
                raise ValueError(f"Row {r + 1}, column '{col.id}': {exc}") from exc
        out.append(TableRow(tuple(cells)))
    return tuple(out)


def cell_matches_type(cell: Cell, column_type: str) -> bool:
    if cell.state != ANSWERED:
        return True
    v = cell.value
    if column_type == "number":
        return is_number(v)
    if column_type == "year":
        return is_year(v)
    if column_type == "date":
        return is_date(v)
    if column_type == "url":
        return is_url(v)
    return isinstance(v, str)


# ------------------------------ Encoding -------------------------------------

def format_cell(cell: Cell) -> str:
    if cell.state == EMPTY:
        return ""
    if cell.state != ANSWERED:
        return escape_cell(format_cell_sentinel(cell.state, cell.reason))
    if isinstance(cell.value, (int, float)) and not isinstance(cell.value, bool):
        return format_number(cell.value)
    return escape_cell(str(cell.value))


def _line(cells: Sequence[str]) -> str:
    return "| " + " | ".join(cells) + " |"


def serialize_table(columns: Sequence[Column], rows: Sequence[TableRow]) -> str:
    lines = [
        _line([escape_cell(c.label) for c in columns]),
        _line(["---"] * len(columns)),
    ]
    for row in rows:
        lines.append(_line([format_cell(c) for c in row.cells]))
    return "\n".join(lines)
