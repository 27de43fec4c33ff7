# src/markform/fields.py
# Builds a Field from a {% field %} tag: per-kind attributes are checked into
# their constraint struct here, and the tag body is decoded into a response
# (value fence, option list or table).

from __future__ import annotations
import re
from typing import Any, Dict, List, Optional, Tuple

from .errors import ParseError
from .model import (
    ABORTED, ANSWERED, EMPTY, FIELD_KINDS, LIST_KINDS, MULTI_CHECKBOX_STATES, SELECTION_KINDS,
    SKIPPED, CheckboxAttrs, Column, COLUMN_TYPES, DateAttrs, Field, FieldResponse, ListAttrs,
    NumberAttrs, Option, SelectAttrs, StringAttrs, TableAttrs, UrlAttrs, YearAttrs,
)
from .preprocess import is_fence_close, match_fence_open
from .sentinels import parse_scalar_sentinel
from .settings import (
    APPROVAL_MODES, CHECKBOX_MODES, DEFAULT_APPROVAL_MODE, DEFAULT_CHECKBOX_MODE, DEFAULT_PRIORITY,
    DEFAULT_ROLE, PRIORITIES, ROLES,
)
from .table import decode_rows, parse_markdown_table
from .values import is_date, parse_date, parse_number, parse_url, parse_year

LEGACY_FIELD_TAGS = {
    "string-field": "string", "number-field": "number", "string-list": "string_list",
    "single-select": "single_select", "multi-select": "multi_select", "checkboxes": "checkboxes",
    "url-field": "url", "url-list": "url_list", "date-field": "date", "year-field": "year",
    "table-field": "table",
}

OPTION_RE = re.compile(
    r'^\s*[-*+]\s+\[(?P<mark>.)\]\s*(?P<label>.*?)\s*'
    r'(?:\{%\s*(?P<ann>(?:[#.][A-Za-z_][\w-]*\s*)+)%\})?\s*$'
)
VALUE_INFO_RE = re.compile(r'^\s*value\b(?P<rest>.*)$')

MARKERS = {
    " ": "todo", "x": "done", "X": "done", "/": "incomplete", "*": "active",
    "-": "na", "y": "yes", "Y": "yes", "n": "no", "N": "no",
}

STATE_ATTRS = (EMPTY, ANSWERED, SKIPPED, ABORTED)


class _Ctx:
    """Location info threaded through attribute checks."""

    def __init__(self, field_id: Optional[str], line: Optional[int], column: Optional[int]):
        self.field_id = field_id
        self.line = line
        self.column = column

    def error(self, message: str) -> ParseError:
        return ParseError(message, self.line, self.column, field_id=self.field_id)


# ------------------------------ Attribute checks -----------------------------

def _str(attrs: Dict, key: str, ctx: _Ctx, default: Optional[str] = None) -> Optional[str]:
    v = attrs.get(key, default)
    if v is not None and not isinstance(v, str):
        raise ctx.error(f"Attribute '{key}' must be a string")
    return v


def _bool(attrs: Dict, key: str, ctx: _Ctx, default: bool = False) -> bool:
    v = attrs.get(key, default)
    if not isinstance(v, bool):
        raise ctx.error(f"Attribute '{key}' must be true or false")
    return v


def _int(attrs: Dict, key: str, ctx: _Ctx) -> Optional[int]:
    v = attrs.get(key)
    if v is None:
        return None
    if isinstance(v, bool) or not isinstance(v, int) or v < 0:
        raise ctx.error(f"Attribute '{key}' must be a non-negative integer")
    return v


def _num(attrs: Dict, key: str, ctx: _Ctx):
    v = attrs.get(key)
    if v is None:
        return None
    if isinstance(v, bool) or not isinstance(v, (int, float)):
        raise ctx.error(f"Attribute '{key}' must be a number")
    return v


def _enum(attrs: Dict, key: str, allowed, default: str, ctx: _Ctx) -> str:
    v = attrs.get(key, default)
    if v not in allowed:
        raise ctx.error(f"Attribute '{key}' must be one of {', '.join(allowed)} (got {v!r})")
    return v


def _str_list(attrs: Dict, key: str, ctx: _Ctx) -> Optional[List[str]]:
    v = attrs.get(key)
    if v is None:
        return None
    if not isinstance(v, list) or not all(isinstance(x, str) for x in v):
        raise ctx.error(f"Attribute '{key}' must be an array of strings")
    return v


def _bounds(lo, hi, lo_key: str, hi_key: str, ctx: _Ctx):
    if lo is not None and hi is not None and lo > hi:
        raise ctx.error(f"'{lo_key}' ({lo}) is greater than '{hi_key}' ({hi})")


def _table_attrs(attrs: Dict, ctx: _Ctx) -> TableAttrs:
    ids = _str_list(attrs, "columnIds", ctx)
    if not ids:
        raise ctx.error("Table field requires a non-empty 'columnIds' attribute")
    if len(set(ids)) != len(ids):
        raise ctx.error("Duplicate column id in 'columnIds'")
    labels = _str_list(attrs, "columnLabels", ctx)
    types = _str_list(attrs, "columnTypes", ctx)
    for key, arr in (("columnLabels", labels), ("columnTypes", types)):
        if arr is not None and len(arr) != len(ids):
            raise ctx.error(
                f"'{key}' has {len(arr)} entries but 'columnIds' has {len(ids)}; "
                "column attribute arrays must have equal length"
            )
    for t in types or ():
        if t not in COLUMN_TYPES:
            raise ctx.error(f"Unknown column type '{t}' (expected one of {', '.join(COLUMN_TYPES)})")
    columns = tuple(
        Column(cid, labels[i] if labels else cid, types[i] if types else "string")
        for i, cid in enumerate(ids)
    )
    min_rows, max_rows = _int(attrs, "minRows", ctx), _int(attrs, "maxRows", ctx)
    _bounds(min_rows, max_rows, "minRows", "maxRows", ctx)
    return TableAttrs(columns, min_rows, max_rows)


def kind_attrs(kind: str, attrs: Dict, ctx: _Ctx):
    """Validate kind-specific attributes into their constraint struct."""
    if kind == "string":
        pattern = _str(attrs, "pattern", ctx)
        if pattern is not None:
            try:
                re.compile(pattern)
            except re.error as exc:
                raise ctx.error(f"Invalid pattern '{pattern}': {exc}") from exc
        out = StringAttrs(_bool(attrs, "multiline", ctx), pattern,
                          _int(attrs, "minLength", ctx), _int(attrs, "maxLength", ctx))
        _bounds(out.min_length, out.max_length, "minLength", "maxLength", ctx)
        return out
    if kind == "number":
        out = NumberAttrs(_num(attrs, "min", ctx), _num(attrs, "max", ctx), _bool(attrs, "integer", ctx))
        _bounds(out.min, out.max, "min", "max", ctx)
        return out
    if kind in LIST_KINDS:
        out = ListAttrs(_int(attrs, "minItems", ctx), _int(attrs, "maxItems", ctx),
                        _int(attrs, "itemMinLength", ctx) if kind == "string_list" else None,
                        _int(attrs, "itemMaxLength", ctx) if kind == "string_list" else None,
                        _bool(attrs, "uniqueItems", ctx))
        _bounds(out.min_items, out.max_items, "minItems", "maxItems", ctx)
        return out
    if kind == "single_select":
        return SelectAttrs()
    if kind == "multi_select":
        out = SelectAttrs(_int(attrs, "minSelections", ctx), _int(attrs, "maxSelections", ctx))
        _bounds(out.min_selections, out.max_selections, "minSelections", "maxSelections", ctx)
        return out
    if kind == "checkboxes":
        return CheckboxAttrs(_enum(attrs, "checkboxMode", CHECKBOX_MODES, DEFAULT_CHECKBOX_MODE, ctx),
                             _int(attrs, "minDone", ctx),
                             _enum(attrs, "approvalMode", APPROVAL_MODES, DEFAULT_APPROVAL_MODE, ctx))
    if kind == "url":
        return UrlAttrs()
    if kind == "date":
        lo, hi = _str(attrs, "min", ctx), _str(attrs, "max", ctx)
        for key, v in (("min", lo), ("max", hi)):
            if v is not None and not is_date(v):
                raise ctx.error(f"Attribute '{key}' must be a YYYY-MM-DD date")
        _bounds(lo, hi, "min", "max", ctx)
        return DateAttrs(lo, hi)
    if kind == "year":
        lo, hi = _num(attrs, "min", ctx), _num(attrs, "max", ctx)
        for key, v in (("min", lo), ("max", hi)):
            if v is not None and not isinstance(v, int):
                raise ctx.error(f"Attribute '{key}' must be an integer year")
        _bounds(lo, hi, "min", "max", ctx)
        return YearAttrs(lo, hi)
    return _table_attrs(attrs, ctx)


# ------------------------------ Body decoding --------------------------------

def split_value_fence(content: str, ctx: _Ctx) -> Tuple[Optional[str], List[str]]:
    """Return (fence inner text or None, remaining lines outside any fence)."""
    value: Optional[str] = None
    outside: List[str] = []
    lines = content.split("\n")
    i = 0
    while i < len(lines):
        opened = match_fence_open(lines[i])
        if opened is None:
            outside.append(lines[i])
            i += 1
            continue
        char, length, info = opened
        j = i + 1
        while j < len(lines) and not is_fence_close(lines[j], char, length):
            j += 1
        if j >= len(lines):
            raise ctx.error(f"Unclosed value fence in field '{ctx.field_id}'")
        if VALUE_INFO_RE.match(info):
            if value is not None:
                raise ctx.error(f"Field '{ctx.field_id}' has more than one value fence")
            value = "\n".join(lines[i + 1:j])
        i = j + 1
    return value, outside


def _parse_options(lines: List[str], kind: str, mode: str, ctx: _Ctx) -> Tuple[Tuple[Option, ...], List[Tuple[str, str]]]:
    options: List[Option] = []
    states: List[Tuple[str, str]] = []
    if kind != "checkboxes" or mode == "simple":
        allowed = {"todo", "done"}
    elif mode == "explicit":
        allowed = {"todo", "yes", "no"}
    else:
        allowed = set(MULTI_CHECKBOX_STATES)
    for ln in lines:
        m = OPTION_RE.match(ln)
        if not m:
            continue
        ann = m.group("ann") or ""
        ids = [tok[1:] for tok in ann.split() if tok.startswith("#")]
        if not ids:
            raise ctx.error(
                f"Option '{m.group('label')}' in field '{ctx.field_id}' missing ID annotation. "
                "Use {% #option_id %}"
            )
        opt_id = ids[-1]
        if any(o.id == opt_id for o in options):
            raise ctx.error(f"Duplicate option id '{opt_id}' in field '{ctx.field_id}'")
        state = MARKERS.get(m.group("mark"))
        if state not in allowed:
            raise ctx.error(f"Invalid checkbox marker '[{m.group('mark')}]' for option '{opt_id}'")
        if state == "todo" and mode == "explicit" and kind == "checkboxes":
            state = "unfilled"
        options.append(Option(opt_id, m.group("label")))
        states.append((opt_id, state))
    if not options:
        raise ctx.error(f"Field '{ctx.field_id}' ({kind}) has no options")
    return tuple(options), states


def _selection_value(kind: str, states: List[Tuple[str, str]], ctx: _Ctx):
    if kind == "single_select":
        chosen = [oid for oid, st in states if st == "done"]
        if len(chosen) > 1:
            raise ctx.error(f"Single-select field '{ctx.field_id}' has more than one selected option")
        return chosen[0] if chosen else None
    if kind == "multi_select":
        chosen = tuple(oid for oid, st in states if st == "done")
        return chosen or None
    if all(st in ("todo", "unfilled") for _, st in states):
        return None
    return tuple(states)


def _scalar_value(kind: str, text: str, ctx: _Ctx):
    try:
        if kind == "string":
            return text if text.strip() else None
        if kind in LIST_KINDS:
            items = tuple(ln.strip() for ln in text.split("\n") if ln.strip())
            if kind == "url_list":
                items = tuple(parse_url(x) for x in items)
            return items or None
        if not text.strip():
            return None
        if kind == "number":
            return parse_number(text)
        if kind == "url":
            return parse_url(text)
        if kind == "date":
            return parse_date(text)
        return parse_year(text)
    except ValueError as exc:
        raise ctx.error(f"Field '{ctx.field_id}': {exc}") from exc


def _table_value(attrs: TableAttrs, lines: List[str], labels_given: bool, ctx: _Ctx):
    table_lines = [ln for ln in lines if ln.strip().startswith("|")]
    if not table_lines:
        return attrs, None
    try:
        header, rows = parse_markdown_table(table_lines)
    except ValueError as exc:
        raise ctx.error(f"Table field '{ctx.field_id}': {exc}") from exc
    if len(header) != len(attrs.columns):
        raise ctx.error(
            f"Table field '{ctx.field_id}' header has {len(header)} columns "
            f"but {len(attrs.columns)} are declared"
        )
    if not labels_given:
        cols = tuple(Column(c.id, header[i], c.type) for i, c in enumerate(attrs.columns))
        attrs = TableAttrs(cols, attrs.min_rows, attrs.max_rows)
    try:
        value = decode_rows(attrs.columns, rows)
    except ValueError as exc:
        raise ctx.error(f"Table field '{ctx.field_id}': {exc}") from exc
    return attrs, value or None


# ------------------------------ Entry point ----------------------------------

def build_field(tag_attrs: Dict[str, Any], content: str, line: Optional[int] = None,
                column: Optional[int] = None) -> Field:
    ctx = _Ctx(tag_attrs.get("id"), line, column)
    kind = tag_attrs.get("kind")
    if kind is None:
        raise ctx.error("Field tag missing 'kind' attribute")
    if kind not in FIELD_KINDS:
        raise ctx.error(f"Unknown field kind '{kind}'")
    fid = _str(tag_attrs, "id", ctx)
    if not fid:
        raise ctx.error("Field tag missing 'id' attribute")
    label = _str(tag_attrs, "label", ctx)
    if not label:
        raise ctx.error(f"Field '{fid}' missing 'label' attribute")
    role = _enum(tag_attrs, "role", ROLES, DEFAULT_ROLE, ctx)
    priority = _enum(tag_attrs, "priority", PRIORITIES, DEFAULT_PRIORITY, ctx)
    required = _bool(tag_attrs, "required", ctx)
    state_attr = tag_attrs.get("state")
    if state_attr is not None and state_attr not in STATE_ATTRS:
        raise ctx.error(f"Invalid state '{state_attr}' on field '{fid}'")

    labels_given = kind == "table" and tag_attrs.get("columnLabels") is not None
    attrs = kind_attrs(kind, tag_attrs, ctx)
    if kind == "checkboxes" and attrs.checkbox_mode == "explicit":
        if tag_attrs.get("required") is False:
            raise ctx.error(f"Checkbox field '{fid}' with checkboxMode=\"explicit\" is always required; "
                            "remove required=false")
        required = True

    fence_text, outside = split_value_fence(content, ctx)
    sentinel = parse_scalar_sentinel(fence_text) if fence_text is not None else None

    options: Tuple[Option, ...] = ()
    value = None
    if kind in SELECTION_KINDS:
        mode = attrs.checkbox_mode if kind == "checkboxes" else DEFAULT_CHECKBOX_MODE
        options, states = _parse_options(outside, kind, mode, ctx)
        if fence_text is not None and sentinel is None:
            raise ctx.error(f"Field '{fid}' ({kind}) takes options, not a value fence")
        value = _selection_value(kind, states, ctx)
    elif kind == "table":
        if fence_text is not None and sentinel is None:
            raise ctx.error(f"Table field '{fid}' takes a markdown table, not a value fence")
        attrs, value = _table_value(attrs, outside, labels_given, ctx)
    elif fence_text is not None and sentinel is None:
        value = _scalar_value(kind, fence_text, ctx)

    response = _response(fid, required, state_attr, sentinel, value, ctx)
    return Field(kind=kind, id=fid, label=label, attrs=attrs, role=role, required=required,
                 priority=priority, options=options, response=response)


def _response(fid: str, required: bool, state_attr: Optional[str], sentinel, value, ctx: _Ctx) -> FieldResponse:
    if sentinel is not None:
        if state_attr is not None and state_attr != sentinel.state:
            raise ctx.error(f"Field '{fid}' has state=\"{state_attr}\" but its value is a "
                            f"{sentinel.state} sentinel")
        if value is not None:
            raise ctx.error(f"Field '{fid}' is {sentinel.state} but also has a value")
        state, reason = sentinel.state, sentinel.reason
    elif state_attr in (SKIPPED, ABORTED):
        if value is not None:
            raise ctx.error(f"Field '{fid}' has state=\"{state_attr}\" but contains a value")
        state, reason = state_attr, None
    elif value is not None:
        if state_attr == EMPTY:
            raise ctx.error(f"Field '{fid}' has state=\"empty\" but contains a value")
        return FieldResponse(ANSWERED, value)
    else:
        if state_attr == ANSWERED:
            raise ctx.error(f"Field '{fid}' has state=\"answered\" but no value")
        return FieldResponse(EMPTY)
    if state == SKIPPED and required:
        raise ctx.error(f"Required field '{fid}' cannot be skipped")
    return FieldResponse(state, None, reason)
