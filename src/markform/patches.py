# src/markform/patches.py
# Applies an ordered batch of patches to a Form.
#
# - Each patch is checked against its JSON schema, resolved against the form
#   as left by the earlier patches of the batch, and applied on its own.
# - A rejected patch leaves the form untouched and the batch carries on.
# - Leaving skipped/aborted for answered/empty drops the notes that explained
#   the old state.
#
# Patch payloads are plain dicts, e.g.
#   {"op": "set_string", "fieldId": "company", "value": "ACME"}
#   {"op": "skip_field", "fieldId": "revenue", "role": "agent", "reason": "private"}
#   {"op": "add_note", "ref": "people.age[0]", "role": "user", "text": "estimate"}

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import jsonschema

from .errors import PatchError, RefError
from .model import (
    ABORTED, ANSWERED, EMPTY, EXPLICIT_CHECKBOX_STATES, MULTI_CHECKBOX_STATES, RESPONSE_STATES,
    SIMPLE_CHECKBOX_STATES, SKIPPED, Field, FieldResponse, Form, Note,
)
from .preprocess import has_unclosed_fence
from .scope_ref import CellRef, ref_field_id, resolve_ref
from .sentinels import embedded_sentinel
from .settings import ROLES
from .table import coerce_rows
from .values import is_number, parse_date, parse_number, parse_url, parse_year

logger = logging.getLogger(__name__)

# ----------------------------
# Schemas
# ----------------------------

_NULLABLE_STRING = {"type": ["string", "null"]}
_STRING_OR_LIST = {"anyOf": [{"type": "string"}, {"type": "null"},
                             {"type": "array", "items": {"type": "string"}}]}

_VALUE_SCHEMAS: Dict[str, Any] = {
    "set_string": _NULLABLE_STRING,
    "set_number": {"type": ["number", "string", "null"]},
    "set_string_list": _STRING_OR_LIST,
    "set_single_select": _NULLABLE_STRING,
    "set_multi_select": _STRING_OR_LIST,
    "set_checkboxes": {"anyOf": [
        {"type": "object", "additionalProperties": {"type": ["string", "boolean"]}},
        {"type": "array", "items": {"type": "string"}},
    ]},
    "set_url": _NULLABLE_STRING,
    "set_url_list": _STRING_OR_LIST,
    "set_date": _NULLABLE_STRING,
    "set_year": {"type": ["integer", "string", "null"]},
    "set_table": {"anyOf": [{"type": "null"}, {"type": "array", "items": {"type": ["object", "array"]}}]},
}

_ID = {"type": "string", "minLength": 1}
_ROLE = {"type": "string", "enum": list(ROLES)}


def _op_schema(op: str, required: Sequence[str], props: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "type": "object",
        "required": ["op", *required],
        "properties": {"op": {"const": op}, **props},
        "additionalProperties": False,
    }


PATCH_SCHEMAS: Dict[str, Dict[str, Any]] = {
    op: _op_schema(op, ["fieldId", "value"], {"fieldId": _ID, "value": schema})
    for op, schema in _VALUE_SCHEMAS.items()
}
PATCH_SCHEMAS.update({
    "clear_field": _op_schema("clear_field", ["fieldId"], {"fieldId": _ID}),
    "skip_field": _op_schema("skip_field", ["fieldId", "role"],
                             {"fieldId": _ID, "role": _ROLE, "reason": {"type": "string"}}),
    "abort_field": _op_schema("abort_field", ["fieldId"],
                              {"fieldId": _ID, "role": _ROLE, "reason": {"type": "string"}}),
    "add_note": _op_schema("add_note", ["ref", "role", "text"], {
        "ref": _ID, "role": _ROLE, "text": {"type": "string"}, "id": _ID,
        "state": {"type": "string", "enum": list(RESPONSE_STATES)},
    }),
    "remove_note": _op_schema("remove_note", ["noteId"], {"noteId": _ID}),
})

PATCH_OPS = tuple(PATCH_SCHEMAS)

# op -> field kind it applies to
_SET_KINDS = {op: op[len("set_"):] for op in _VALUE_SCHEMAS}


# ----------------------------
# Results
# ----------------------------

@dataclass(frozen=True)
class PatchOutcome:
    index: int
    op: str
    status: str  # "applied" | "rejected"
    message: Optional[str] = None
    field_id: Optional[str] = None

    @property
    def applied(self) -> bool:
        return self.status == "applied"


@dataclass(frozen=True)
class ApplyResult:
    form: Form
    outcomes: Tuple[PatchOutcome, ...]
    warnings: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def all_applied(self) -> bool:
        return all(o.applied for o in self.outcomes)

    @property
    def rejected(self) -> Tuple[PatchOutcome, ...]:
        return tuple(o for o in self.outcomes if not o.applied)


# ----------------------------
# Value coercion per op
# ----------------------------

def _lf(text: str) -> str:
    # the parser only folds "\r\n", so a lone "\r" would not survive a round trip
    return text.replace("\r\n", "\n").replace("\r", "\n")


def _no_sentinel(f: Field, text: Any):
    kind = embedded_sentinel(text)
    if kind:
        op = "skip_field" if kind == "skip" else "abort_field"
        raise PatchError(f'Value for field "{f.id}" contains a {kind} sentinel. Use {op} instead of '
                         "embedding a sentinel in the value", f.id)


def _as_list(f: Field, value: Any, warnings: List[str]) -> List[Any]:
    if isinstance(value, str):
        warnings.append(f'Coerced single string to a one-item list for field "{f.id}"')
        return [value]
    return list(value)


def _coerce_items(f: Field, value: Any, warnings: List[str]) -> Optional[Tuple[str, ...]]:
    items = []
    for item in _as_list(f, value, warnings):
        _no_sentinel(f, item)
        if "\n" in item or "\r" in item:
            raise PatchError(f'List items for field "{f.id}" must be single lines', f.id)
        item = item.strip()
        if not item:
            continue
        if f.kind == "url_list":
            try:
                item = parse_url(item)
            except ValueError as exc:
                raise PatchError(f'Field "{f.id}": {exc}', f.id) from exc
        items.append(item)
    return tuple(items) or None


def _checkbox_state(f: Field, oid: str, raw: Any, warnings: List[str]) -> str:
    mode = f.attrs.checkbox_mode
    if isinstance(raw, bool):
        warnings.append(f'Coerced boolean to checkbox state for "{f.id}.{oid}"')
        if mode == "explicit":
            return "yes" if raw else "no"
        return "done" if raw else "todo"
    if mode == "explicit":
        allowed = EXPLICIT_CHECKBOX_STATES
        if raw == "todo":
            raw = "unfilled"
    elif mode == "simple":
        allowed = SIMPLE_CHECKBOX_STATES
    else:
        allowed = MULTI_CHECKBOX_STATES
    if raw not in allowed:
        raise PatchError(f'Invalid checkbox state "{raw}" for option "{oid}" '
                         f'({mode} mode allows {", ".join(allowed)})', f.id)
    return raw


def _checkboxes(f: Field, value: Any, warnings: List[str]):
    if isinstance(value, list):
        warnings.append(f'Coerced option list to checkbox states for field "{f.id}"')
        mark = "yes" if f.attrs.checkbox_mode == "explicit" else "done"
        value = {oid: mark for oid in value}
    default = "unfilled" if f.attrs.checkbox_mode == "explicit" else "todo"
    states = dict(f.value or ()) if f.state == ANSWERED else {}
    for oid, raw in value.items():
        if oid not in f.option_ids:
            raise PatchError(f'Invalid option "{oid}" for field "{f.id}"', f.id)
        states[oid] = _checkbox_state(f, oid, raw, warnings)
    merged = tuple((oid, states.get(oid, default)) for oid in f.option_ids)
    if all(st == default for _, st in merged):
        return None
    return merged


def _coerce_value(op: str, f: Field, value: Any, warnings: List[str]):
    """Return the stored value for a set_* op, or None for 'leave empty'."""
    kind = _SET_KINDS[op]
    try:
        if kind == "table":
            rows = coerce_rows(f.attrs.columns, value or [])
            a = f.attrs
            if (a.min_rows is not None and len(rows) < a.min_rows) or (
                    a.max_rows is not None and len(rows) > a.max_rows):
                raise PatchError(
                    f'Table field "{f.id}" needs between {a.min_rows or 0} and '
                    f'{a.max_rows if a.max_rows is not None else "any number of"} rows (got {len(rows)})', f.id)
            return rows or None
        if kind == "checkboxes":
            return _checkboxes(f, value, warnings)
        if value is None:
            return None
        if kind in ("string_list", "url_list"):
            return _coerce_items(f, value, warnings)
        if kind == "multi_select":
            chosen = set(_as_list(f, value, warnings))
            unknown = sorted(chosen - set(f.option_ids))
            if unknown:
                raise PatchError(f'Invalid option "{unknown[0]}" for field "{f.id}"', f.id)
            return tuple(oid for oid in f.option_ids if oid in chosen) or None
        if kind == "single_select":
            if value not in f.option_ids:
                raise PatchError(f'Invalid option "{value}" for field "{f.id}"', f.id)
            return value
        if kind == "number":
            if isinstance(value, str):
                warnings.append(f'Coerced string to number for field "{f.id}"')
                return parse_number(value)
            if not is_number(value):
                raise PatchError(f'Field "{f.id}" needs a finite number', f.id)
            return value
        if kind == "year":
            if isinstance(value, str):
                warnings.append(f'Coerced string to year for field "{f.id}"')
            return parse_year(value)
        _no_sentinel(f, value)
        if kind == "string":
            value = _lf(value)
            return value if value.strip() else None
        if not value.strip():
            return None
        if kind == "url":
            return parse_url(value)
        return parse_date(value)
    except ValueError as exc:
        raise PatchError(f'Field "{f.id}": {exc}', f.id) from exc


# ----------------------------
# Notes
# ----------------------------

def _next_note_id(notes: Sequence[Note]) -> str:
    used = {n.id for n in notes}
    k = 1
    while f"n{k}" in used:
        k += 1
    return f"n{k}"


def _check_note_text(text: str):
    if "{%" in text or "<!--" in text:
        raise PatchError("Note text must not contain directive markup")
    if has_unclosed_fence(text):
        raise PatchError("Note text has an unclosed code fence")


def _upsert_state_note(notes: List[Note], field_id: str, role: str, state: str, text: str) -> List[Note]:
    _check_note_text(text)
    for i, n in enumerate(notes):
        if n.ref == field_id and n.state == state:
            notes[i] = Note(n.id, n.ref, role, text.strip(), state)
            return notes
    notes.append(Note(_next_note_id(notes), field_id, role, text.strip(), state))
    return notes


def _cleanup_notes(notes: Sequence[Note], field_id: str, previous: str) -> List[Note]:
    return [n for n in notes if not (ref_field_id(n.ref) == field_id and n.state == previous)]


# ----------------------------
# Application
# ----------------------------

def _require_field(form: Form, patch: Dict[str, Any]) -> Field:
    f = form.get_field(patch["fieldId"])
    if f is None:
        raise PatchError(f'Field "{patch["fieldId"]}" not found', patch["fieldId"])
    return f


def _transition(form: Form, f: Field, response: FieldResponse, notes: Optional[List[Note]] = None) -> Form:
    notes = list(form.notes) if notes is None else notes
    previous = f.state
    if previous in (SKIPPED, ABORTED) and response.state in (ANSWERED, EMPTY):
        notes = _cleanup_notes(notes, f.id, previous)
    return form.with_field(f.with_response(response)).with_notes(notes)


def apply_patch(form: Form, patch: Dict[str, Any], warnings: List[str]) -> Form:
    """Apply one patch; raises PatchError or jsonschema.ValidationError."""
    if not isinstance(patch, dict):
        raise PatchError("Patch must be an object")
    op = patch.get("op")
    if op not in PATCH_SCHEMAS:
        raise PatchError(f'Unknown patch op "{op}"')
    jsonschema.validate(instance=patch, schema=PATCH_SCHEMAS[op])

    if op == "add_note":
        target = resolve_ref(patch["ref"], form)
        if isinstance(target, RefError):
            raise PatchError(f'Reference "{patch["ref"]}" not found in form: {target.message}')
        if isinstance(target, CellRef):
            rows = form.get_field(target.field_id).row_count()
            if target.row >= rows:
                raise PatchError(f"Row index {target.row} is out of bounds (table has {rows} rows)",
                                 target.field_id)
        if patch.get("id") and form.get_note(patch["id"]) is not None:
            raise PatchError(f'Note id "{patch["id"]}" is already in use')
        text = _lf(patch["text"])
        _check_note_text(text)
        note = Note(patch.get("id") or _next_note_id(form.notes), patch["ref"], patch["role"],
                    text.strip(), patch.get("state"))
        return form.with_notes(form.notes + (note,))
    if op == "remove_note":
        if form.get_note(patch["noteId"]) is None:
            raise PatchError(f'Note with id "{patch["noteId"]}" not found')
        return form.with_notes(n for n in form.notes if n.id != patch["noteId"])

    f = _require_field(form, patch)
    if op in _SET_KINDS:
        if _SET_KINDS[op] != f.kind:
            raise PatchError(f'Cannot apply {op} to {f.kind} field "{f.id}"', f.id)
        value = _coerce_value(op, f, patch["value"], warnings)
        response = FieldResponse(ANSWERED, value) if value is not None else FieldResponse(EMPTY)
        return _transition(form, f, response)
    if op == "clear_field":
        return _transition(form, f, FieldResponse(EMPTY))
    if op == "skip_field":
        if f.required:
            raise PatchError(f'Cannot skip required field "{f.id}"', f.id)
        reason = _lf(patch.get("reason") or "").strip() or None
        notes = list(form.notes)
        if reason:
            notes = _upsert_state_note(notes, f.id, patch["role"], SKIPPED, reason)
        return _transition(form, f, FieldResponse(SKIPPED, None, reason), notes)
    # abort_field
    reason = _lf(patch.get("reason") or "").strip() or None
    notes = list(form.notes)
    if reason:
        notes = _upsert_state_note(notes, f.id, patch.get("role", "agent"), ABORTED, reason)
    return _transition(form, f, FieldResponse(ABORTED, None, reason), notes)


def apply_patches(form: Form, patches: Sequence[Dict[str, Any]]) -> ApplyResult:
    """Apply ``patches`` in order; each one sees the effect of those before it."""
    outcomes: List[PatchOutcome] = []
    warnings: List[str] = []
    for i, patch in enumerate(patches):
        op = patch.get("op") if isinstance(patch, dict) else None
        fid = patch.get("fieldId") if isinstance(patch, dict) else None
        try:
            form = apply_patch(form, patch, warnings)
        except PatchError as exc:
            outcomes.append(PatchOutcome(i, op, "rejected", exc.message, exc.field_id or fid))
            logger.debug("patch %d (%s) rejected: %s", i, op, exc.message)
            continue
        except jsonschema.ValidationError as exc:
            outcomes.append(PatchOutcome(i, op, "rejected", f"Invalid {op} patch: {exc.message}", fid))
            logger.debug("patch %d (%s) failed schema check: %s", i, op, exc.message)
            continue
        outcomes.append(PatchOutcome(i, op, "applied", None, fid))
    for w in warnings:
        logger.warning(w)
    return ApplyResult(form, tuple(outcomes), tuple(warnings))
