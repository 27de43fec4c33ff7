# src/markform/validate.py
# Static and semantic checks over a Form.
# Goals:
# - Pure: Form in, ordered list of issues out, never raises.
# - Every issue carries a stable code so callers can act on it.
# - Skipped and aborted fields are not checked for values.

from __future__ import annotations
import re
from dataclasses import dataclass
from typing import Dict, List

from .errors import RefError
from .model import ANSWERED, Field, Form
from .scope_ref import IDENT_RE, CellRef, resolve_ref
from .table import cell_matches_type
from .values import is_date, is_number, is_url, is_year


@dataclass(frozen=True)
class ValidationIssue:
    code: str
    message: str
    ref: str
    severity: str = "error"

    def to_dict(self) -> Dict[str, str]:
        return {"code": self.code, "message": self.message, "ref": self.ref, "severity": self.severity}


def _issue(out: List[ValidationIssue], code: str, message: str, ref: str):
    out.append(ValidationIssue(code, message, ref))


# ------------------------------ Per kind -------------------------------------

def _check_string(f: Field, out: List[ValidationIssue]):
    a, v = f.attrs, f.value
    if not isinstance(v, str):
        _issue(out, "TYPE_MISMATCH", f'"{f.label}" must be text', f.id)
        return
    if a.min_length is not None and len(v) < a.min_length:
        _issue(out, "MIN_LENGTH", f'"{f.label}" must be at least {a.min_length} characters (got {len(v)})', f.id)
    if a.max_length is not None and len(v) > a.max_length:
        _issue(out, "MAX_LENGTH", f'"{f.label}" must be at most {a.max_length} characters (got {len(v)})', f.id)
    if a.pattern:
        try:
            if not re.search(a.pattern, v):
                _issue(out, "PATTERN_MISMATCH", f'"{f.label}" does not match required pattern', f.id)
        except re.error:
            _issue(out, "INVALID_PATTERN", f'Invalid pattern "{a.pattern}" for field "{f.label}"', f.id)


def _check_number(f: Field, out: List[ValidationIssue]):
    a, v = f.attrs, f.value
    if not is_number(v):
        _issue(out, "TYPE_MISMATCH", f'"{f.label}" must be a number', f.id)
        return
    if a.integer and not float(v).is_integer():
        _issue(out, "NOT_INTEGER", f'"{f.label}" must be an integer', f.id)
    if a.min is not None and v < a.min:
        _issue(out, "MIN_VALUE", f'"{f.label}" must be at least {a.min} (got {v})', f.id)
    if a.max is not None and v > a.max:
        _issue(out, "MAX_VALUE", f'"{f.label}" must be at most {a.max} (got {v})', f.id)


def _check_list(f: Field, out: List[ValidationIssue]):
    a, items = f.attrs, list(f.value or ())
    if a.min_items is not None and len(items) < a.min_items:
        _issue(out, "MIN_ITEMS", f'"{f.label}" must have at least {a.min_items} items (got {len(items)})', f.id)
    if a.max_items is not None and len(items) > a.max_items:
        _issue(out, "MAX_ITEMS", f'"{f.label}" must have at most {a.max_items} items (got {len(items)})', f.id)
    for i, item in enumerate(items):
        if f.kind == "url_list" and not is_url(item):
            _issue(out, "INVALID_URL", f'Item {i + 1} in "{f.label}" is not a valid URL', f.id)
        if a.item_min_length is not None and len(item) < a.item_min_length:
            _issue(out, "ITEM_MIN_LENGTH",
                   f'Item {i + 1} in "{f.label}" must be at least {a.item_min_length} characters', f.id)
        if a.item_max_length is not None and len(item) > a.item_max_length:
            _issue(out, "ITEM_MAX_LENGTH",
                   f'Item {i + 1} in "{f.label}" must be at most {a.item_max_length} characters', f.id)
    if a.unique_items:
        seen = set()
        for item in items:
            if item in seen:
                _issue(out, "DUPLICATE_ITEM", f'Duplicate item "{item}" in "{f.label}"', f.id)
            seen.add(item)


def _check_single(f: Field, out: List[ValidationIssue]):
    if f.value not in f.option_ids:
        _issue(out, "INVALID_OPTION", f'Invalid selection "{f.value}" in "{f.label}"', f.id)


def _check_multi(f: Field, out: List[ValidationIssue]):
    a, selected = f.attrs, list(f.value or ())
    for sel in selected:
        if sel not in f.option_ids:
            _issue(out, "INVALID_OPTION", f'Invalid selection "{sel}" in "{f.label}"', f.id)
    if a.min_selections is not None and len(selected) < a.min_selections:
        _issue(out, "MIN_SELECTIONS",
               f'"{f.label}" must have at least {a.min_selections} selections (got {len(selected)})', f.id)
    if a.max_selections is not None and len(selected) > a.max_selections:
        _issue(out, "MAX_SELECTIONS",
               f'"{f.label}" must have at most {a.max_selections} selections (got {len(selected)})', f.id)


def checkbox_counts(f: Field) -> Dict[str, int]:
    """Count done / incomplete / unfilled items the way the field's mode defines them."""
    mode = f.attrs.checkbox_mode
    states = dict(f.value or ())
    done = incomplete = unfilled = 0
    for oid in f.option_ids:
        st = states.get(oid, "unfilled" if mode == "explicit" else "todo")
        if mode == "explicit":
            if st == "unfilled":
                unfilled += 1
            else:
                done += 1
        elif mode == "multi":
            if st in ("done", "na"):
                done += 1
            elif st in ("incomplete", "active"):
                incomplete += 1
        elif st == "done":
            done += 1
    return {"done": done, "incomplete": incomplete, "unfilled": unfilled, "total": len(f.option_ids)}


def checkboxes_complete(f: Field) -> bool:
    c = checkbox_counts(f)
    mode = f.attrs.checkbox_mode
    if mode == "explicit":
        return c["unfilled"] == 0
    if mode == "simple":
        return c["done"] == c["total"]
    if f.attrs.min_done is not None:
        return c["incomplete"] == 0 and c["done"] >= f.attrs.min_done
    return c["incomplete"] == 0 and c["done"] == c["total"]


def _check_checkboxes(f: Field, out: List[ValidationIssue]):
    c = checkbox_counts(f)
    mode = f.attrs.checkbox_mode
    for oid, _ in f.value or ():
        if oid not in f.option_ids:
            _issue(out, "INVALID_OPTION", f'Invalid option "{oid}" in "{f.label}"', f.id)
    if f.required:
        if mode == "explicit" and c["unfilled"]:
            _issue(out, "CHECKBOXES_INCOMPLETE",
                   f'All items in "{f.label}" must be answered ({c["unfilled"]} unfilled)', f.id)
        elif mode == "multi" and (c["incomplete"] or c["done"] == 0):
            _issue(out, "CHECKBOXES_INCOMPLETE", f'All items in "{f.label}" must be completed', f.id)
        elif mode == "simple" and c["done"] < c["total"]:
            _issue(out, "CHECKBOXES_INCOMPLETE",
                   f'All items in "{f.label}" must be checked ({c["total"] - c["done"]} unchecked)', f.id)
    if f.attrs.min_done is not None and c["done"] < f.attrs.min_done:
        _issue(out, "MIN_DONE", f'"{f.label}" requires at least {f.attrs.min_done} items done (got {c["done"]})', f.id)


def _check_scalar(f: Field, out: List[ValidationIssue]):
    v = f.value
    if f.kind == "url" and not is_url(v):
        _issue(out, "INVALID_URL", f'"{f.label}" is not a valid URL', f.id)
    elif f.kind == "date":
        if not is_date(v):
            _issue(out, "INVALID_DATE", f'"{f.label}" must be a YYYY-MM-DD date', f.id)
            return
        a = f.attrs
        if (a.min is not None and v < a.min) or (a.max is not None and v > a.max):
            _issue(out, "DATE_OUT_OF_RANGE", f'"{f.label}" must be between {a.min or "-"} and {a.max or "-"}', f.id)
    elif f.kind == "year":
        if not is_year(v):
            _issue(out, "YEAR_OUT_OF_RANGE", f'"{f.label}" must be a four-digit year', f.id)
            return
        a = f.attrs
        if (a.min is not None and v < a.min) or (a.max is not None and v > a.max):
            _issue(out, "YEAR_OUT_OF_RANGE", f'"{f.label}" must be between {a.min or "-"} and {a.max or "-"}', f.id)


def _check_table_schema(f: Field, out: List[ValidationIssue]):
    a = f.attrs
    for col in a.columns:
        if not IDENT_RE.match(col.id):
            _issue(out, "INVALID_COLUMN_ID", f'Column id "{col.id}" in "{f.label}" is not a valid identifier', f.id)
    if f.required and a.min_rows is not None and a.min_rows < 1:
        _issue(out, "REQUIRED_TABLE_MIN_ROWS",
               f'Required table "{f.label}" must allow at least one row (minRows={a.min_rows})', f.id)


def _check_table(f: Field, out: List[ValidationIssue]):
    a = f.attrs
    rows = list(f.value or ())
    if a.min_rows is not None and len(rows) < a.min_rows:
        _issue(out, "MIN_ROWS_NOT_MET", f'"{f.label}" must have at least {a.min_rows} rows (got {len(rows)})', f.id)
    if a.max_rows is not None and len(rows) > a.max_rows:
        _issue(out, "MAX_ROWS_EXCEEDED", f'"{f.label}" must have at most {a.max_rows} rows (got {len(rows)})', f.id)
    for r, row in enumerate(rows):
        if len(row.cells) != len(a.columns):
            _issue(out, "CELL_COUNT_MISMATCH",
                   f'Row {r} of "{f.label}" has {len(row.cells)} cells, expected {len(a.columns)}', f.id)
            continue
        for col, cell in zip(a.columns, row.cells):
            if not cell_matches_type(cell, col.type):
                _issue(out, "CELL_TYPE_MISMATCH",
                       f'Cell {col.id}[{r}] in "{f.label}" must be of type {col.type}', f"{f.id}.{col.id}[{r}]")


_VALUE_CHECKS = {
    "string": _check_string,
    "number": _check_number,
    "string_list": _check_list,
    "url_list": _check_list,
    "single_select": _check_single,
    "multi_select": _check_multi,
    "checkboxes": _check_checkboxes,
    "url": _check_scalar,
    "date": _check_scalar,
    "year": _check_scalar,
    "table": _check_table,
}


def validate_field(f: Field) -> List[ValidationIssue]:
    out: List[ValidationIssue] = []
    if f.kind == "table":
        _check_table_schema(f, out)
    if f.state == ANSWERED:
        _VALUE_CHECKS[f.kind](f, out)
    elif f.kind == "checkboxes" and f.state == "empty" and f.required:
        _check_checkboxes(f, out)
    elif f.state == "empty" and f.required:
        _issue(out, "REQUIRED_EMPTY", f'Required field "{f.label}" is empty', f.id)
    return out


def _check_column_attrs(f: Field, out: List[ValidationIssue]):
    # ids, labels and types travel together per column; an empty slot means
    # the declaring arrays did not line up
    ids = []
    for i, col in enumerate(f.attrs.columns):
        if not col.id or not col.label or not col.type:
            _issue(out, "ATTRIBUTE_LENGTH_MISMATCH",
                   f'Column {i + 1} of "{f.label}" is missing its id, label or type', f.id)
        elif col.id in ids:
            _issue(out, "INVALID_COLUMN_ID", f'Duplicate column id "{col.id}" in "{f.label}"', f.id)
        ids.append(col.id)


def _check_notes(form: Form, out: List[ValidationIssue]):
    for note in form.notes:
        target = resolve_ref(note.ref, form)
        if isinstance(target, RefError):
            _issue(out, "NOTE_REF_UNRESOLVED", f'Note "{note.id}": {target.message}', note.ref)
            continue
        if isinstance(target, CellRef):
            rows = form.get_field(target.field_id).row_count()
            if target.row >= rows:
                _issue(out, "CELL_ROW_OUT_OF_BOUNDS",
                       f'Note "{note.id}": row index {target.row} is out of bounds (table has {rows} rows)', note.ref)


def validate(form: Form) -> List[ValidationIssue]:
    """Return every rule violation in document order (fields, then notes)."""
    out: List[ValidationIssue] = []
    seen = {form.id}
    for g in form.groups:
        if g.id in seen:
            _issue(out, "DUPLICATE_ID", f'Duplicate id "{g.id}"', g.id)
        seen.add(g.id)
        for f in g.fields:
            if f.id in seen:
                _issue(out, "DUPLICATE_ID", f'Duplicate id "{f.id}"', f.id)
            seen.add(f.id)
            if f.kind == "table":
                _check_column_attrs(f, out)
            out.extend(validate_field(f))
    _check_notes(form, out)
    return out
