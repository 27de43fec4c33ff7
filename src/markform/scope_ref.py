# src/markform/scope_ref.py
# Compact references to a field, an option, a table column or a cell:
#   company              field
#   rating.bullish       option (selection fields) or column (table fields)
#   people.age[2]        cell (table fields, 0-based row)
# Errors are returned as RefError values, never raised.

from __future__ import annotations
import re
from dataclasses import dataclass
from typing import Optional, Union

from .errors import RefError
from .model import SELECTION_KINDS, Form

IDENT = r'[a-zA-Z_][a-zA-Z0-9_-]*'
IDENT_RE = re.compile(rf'^{IDENT}$')
REF_RE = re.compile(rf'^(?P<field>{IDENT})(?:\.(?P<qual>{IDENT})(?:\[(?P<row>[^\]]*)\])?)?$')


@dataclass(frozen=True)
class ParsedRef:
    field_id: str
    qualifier: Optional[str] = None
    row: Optional[int] = None


@dataclass(frozen=True)
class FieldRef:
    field_id: str


@dataclass(frozen=True)
class OptionRef:
    field_id: str
    option_id: str


@dataclass(frozen=True)
class ColumnRef:
    field_id: str
    column_id: str


@dataclass(frozen=True)
class CellRef:
    field_id: str
    column_id: str
    row: int


RefTarget = Union[FieldRef, OptionRef, ColumnRef, CellRef]


def parse_ref(text: str) -> Union[ParsedRef, RefError]:
    if not isinstance(text, str) or not text.strip():
        return RefError(str(text), "Reference must be a non-empty string")
    s = text.strip()
    m = REF_RE.match(s)
    if not m:
        return RefError(s, f"Malformed reference '{s}' (expected field, field.option or field.column[row])")
    row = m.group("row")
    if row is None:
        return ParsedRef(m.group("field"), m.group("qual"))
    if row.strip().startswith("-"):
        return RefError(s, f"Row index must be non-negative (got {row.strip()})")
    if not re.fullmatch(r'\d+', row.strip()):
        return RefError(s, f"Row index must be a non-negative integer (got '{row}')")
    return ParsedRef(m.group("field"), m.group("qual"), int(row))


def serialize_ref(target) -> str:
    if isinstance(target, FieldRef):
        return target.field_id
    if isinstance(target, OptionRef):
        return f"{target.field_id}.{target.option_id}"
    if isinstance(target, ColumnRef):
        return f"{target.field_id}.{target.column_id}"
    if isinstance(target, CellRef):
        return f"{target.field_id}.{target.column_id}[{target.row}]"
    if isinstance(target, ParsedRef):
        if target.qualifier is None:
            return target.field_id
        if target.row is None:
            return f"{target.field_id}.{target.qualifier}"
        return f"{target.field_id}.{target.qualifier}[{target.row}]"
    raise TypeError(f"not a reference: {target!r}")


def resolve_ref(ref: Union[str, ParsedRef], form: Form,
                row_count: Optional[int] = None) -> Union[RefTarget, RefError]:
    """Resolve against the form; qualified refs are disambiguated by field kind.

    On a table, ``field.col`` is a ColumnRef and ``field.col[row]`` a CellRef;
    on a selection field ``field.opt`` is an OptionRef.
    """
    parsed = parse_ref(ref) if isinstance(ref, str) else ref
    if isinstance(parsed, RefError):
        return parsed
    text = serialize_ref(parsed)
    field = form.get_field(parsed.field_id)
    if field is None:
        return RefError(text, f"Field '{parsed.field_id}' not found")
    if parsed.qualifier is None:
        return FieldRef(field.id)
    if field.kind == "table":
        if parsed.qualifier not in field.attrs.column_ids:
            return RefError(text, f"Column '{parsed.qualifier}' not found in table field '{field.id}'")
        if parsed.row is None:
            return ColumnRef(field.id, parsed.qualifier)
        if row_count is not None and parsed.row >= row_count:
            return RefError(text, f"Row index {parsed.row} is out of bounds (table has {row_count} rows)")
        return CellRef(field.id, parsed.qualifier, parsed.row)
    if field.kind in SELECTION_KINDS:
        if parsed.row is not None:
            return RefError(text, f"Option reference '{text}' cannot have a row index")
        if parsed.qualifier not in field.option_ids:
            return RefError(text, f"Option '{parsed.qualifier}' not found in field '{field.id}'")
        return OptionRef(field.id, parsed.qualifier)
    return RefError(text, f"Field '{field.id}' ({field.kind}) does not support qualified references")


def ref_exists(ref: str, form: Form) -> bool:
    return not isinstance(resolve_ref(ref, form), RefError)


def ref_field_id(ref: str) -> Optional[str]:
    parsed = parse_ref(ref)
    return None if isinstance(parsed, RefError) else parsed.field_id
