import pytest

from markform.model import EMPTY, SKIPPED, Cell, Column, TableRow
from markform.table import (
    coerce_cell, coerce_rows, escape_cell, parse_markdown_table, serialize_table, split_row,
)

COLUMNS = (Column("name", "Name"), Column("age", "Age", "number"))


def test_split_row_handles_escaped_pipes():
    assert split_row(r"| a \| b | c |") == ["a | b", "c"]
    assert split_row("| x | |") == ["x", ""]


def test_escape_keeps_backslash_before_pipe():
    text = "a\\|b"
    assert split_row("| " + escape_cell(text) + " |") == [text]


def test_parse_table_pads_short_rows():
    header, rows = parse_markdown_table(["| A | B |", "| --- | :-: |", "| 1 |"])
    assert header == ["A", "B"]
    assert rows == [["1", ""]]


def test_parse_table_needs_separator():
    with pytest.raises(ValueError, match="separator"):
        parse_markdown_table(["| A |", "| nope |"])


def test_coerce_cell():
    assert coerce_cell("", "string") == Cell(state=EMPTY)
    assert coerce_cell(None, "number") == Cell(state=EMPTY)
    assert coerce_cell("%SKIP% (n/a)", "number") == Cell(state=SKIPPED, reason="n/a")
    assert coerce_cell("%SKIP:later%", "string") == Cell(state=SKIPPED, reason="later")
    assert coerce_cell("%ABORT%", "string").state == "aborted"
    assert coerce_cell(" 7 ", "number") == Cell(value=7)
    assert coerce_cell(1999, "year") == Cell(value=1999)
    with pytest.raises(ValueError):
        coerce_cell("seven", "number")
    with pytest.raises(ValueError):
        coerce_cell("two\nlines", "string")


def test_coerce_rows_from_mappings_and_lists():
    rows = coerce_rows(COLUMNS, [{"name": "Ann", "age": 41}, ["Bo", None]])
    assert rows == (
        TableRow((Cell(value="Ann"), Cell(value=41))),
        TableRow((Cell(value="Bo"), Cell(state=EMPTY))),
    )
    with pytest.raises(ValueError, match="unknown column 'email'"):
        coerce_rows(COLUMNS, [{"email": "x"}])
    with pytest.raises(ValueError, match="expected 2 cells"):
        coerce_rows(COLUMNS, [["only"]])


def test_serialize_table():
    rows = (
        TableRow((Cell(value="Alice"), Cell(value=30))),
        TableRow((Cell(value="B|ob"), Cell(state=SKIPPED, reason="n/a"))),
    )
    assert serialize_table(COLUMNS, rows) == (
        "| Name | Age |\n"
        "| --- | --- |\n"
        "| Alice | 30 |\n"
        "| B\\|ob | %SKIP% (n/a) |"
    )


def test_patch_cells_cannot_hold_directives():
    for text in ("{% /field %}", "see <!-- f:note -->", "<!-- #opt -->"):
        with pytest.raises(ValueError, match="directive markup"):
            coerce_rows(COLUMNS, [[text, 1]])


def test_blank_and_skipped_cells_are_written_differently():
    rows = (
        TableRow((Cell(value="Ann"), Cell(state=EMPTY))),
        TableRow((Cell(state=EMPTY), Cell(state=SKIPPED, reason="a|b"))),
    )
    out = serialize_table(COLUMNS, rows)
    assert out.splitlines()[2:] == ["| Ann |  |", "|  | %SKIP% (a\\|b) |"]
    _, raw = parse_markdown_table(out.splitlines())
    assert [[coerce_cell(c, col.type) for c, col in zip(r, COLUMNS)] for r in raw] == [list(r.cells) for r in rows]
