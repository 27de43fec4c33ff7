# src/markform/model.py
# Immutable form tree. Every engine operation takes these values and returns
# new ones; nothing here is mutated after construction.

from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterator, Optional, Tuple, Union

from .settings import (
    DEFAULT_APPROVAL_MODE,
    DEFAULT_CHECKBOX_MODE,
    DEFAULT_DIALECT,
    DEFAULT_PRIORITY,
    DEFAULT_ROLE,
    SPEC_VERSION,
)

FIELD_KINDS = (
    "string", "number", "string_list", "checkboxes", "single_select",
    "multi_select", "url", "url_list", "date", "year", "table",
)
SELECTION_KINDS = ("single_select", "multi_select", "checkboxes")
LIST_KINDS = ("string_list", "url_list")
COLUMN_TYPES = ("string", "number", "url", "date", "year")

EMPTY = "empty"
ANSWERED = "answered"
SKIPPED = "skipped"
ABORTED = "aborted"
RESPONSE_STATES = (EMPTY, ANSWERED, SKIPPED, ABORTED)

MULTI_CHECKBOX_STATES = ("todo", "done", "incomplete", "active", "na")
SIMPLE_CHECKBOX_STATES = ("todo", "done")
EXPLICIT_CHECKBOX_STATES = ("unfilled", "yes", "no")


# ----------------------------
# Per-kind constraint structs
# ----------------------------

@dataclass(frozen=True)
class StringAttrs:
    multiline: bool = False
    pattern: Optional[str] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None


@dataclass(frozen=True)
class NumberAttrs:
    min: Optional[Union[int, float]] = None
    max: Optional[Union[int, float]] = None
    integer: bool = False


@dataclass(frozen=True)
class ListAttrs:
    min_items: Optional[int] = None
    max_items: Optional[int] = None
    item_min_length: Optional[int] = None
    item_max_length: Optional[int] = None
    unique_items: bool = False


@dataclass(frozen=True)
class SelectAttrs:
    min_selections: Optional[int] = None
    max_selections: Optional[int] = None


@dataclass(frozen=True)
class CheckboxAttrs:
    checkbox_mode: str = DEFAULT_CHECKBOX_MODE
    min_done: Optional[int] = None
    approval_mode: str = DEFAULT_APPROVAL_MODE


@dataclass(frozen=True)
class UrlAttrs:
    pass


@dataclass(frozen=True)
class DateAttrs:
    min: Optional[str] = None
    max: Optional[str] = None


@dataclass(frozen=True)
class YearAttrs:
    min: Optional[int] = None
    max: Optional[int] = None


@dataclass(frozen=True)
class Column:
    id: str
    label: str
    type: str = "string"


@dataclass(frozen=True)
class TableAttrs:
    columns: Tuple[Column, ...] = ()
    min_rows: Optional[int] = None
    max_rows: Optional[int] = None

    @property
    def column_ids(self) -> Tuple[str, ...]:
        return tuple(c.id for c in self.columns)


# ----------------------------
# Responses
# ----------------------------

@dataclass(frozen=True)
class Cell:
    # a blank cell is EMPTY; sentinels give SKIPPED or ABORTED
    state: str = ANSWERED
    value: Any = None
    reason: Optional[str] = None


@dataclass(frozen=True)
class TableRow:
    cells: Tuple[Cell, ...] = ()


@dataclass(frozen=True)
class FieldResponse:
    """Fill state of a field.

    ``value`` per kind: str (string, url, date), int/float (number), int
    (year), tuple of str (string_list, url_list, multi_select option ids),
    option id (single_select), tuple of (option id, state) pairs covering
    every option (checkboxes), tuple of TableRow (table).
    """
    state: str = EMPTY
    value: Any = None
    reason: Optional[str] = None


EMPTY_RESPONSE = FieldResponse()


# ----------------------------
# Tree
# ----------------------------

@dataclass(frozen=True)
class Option:
    id: str
    label: str


@dataclass(frozen=True)
class Field:
    kind: str
    id: str
    label: str
    attrs: Any
    role: str = DEFAULT_ROLE
    required: bool = False
    priority: str = DEFAULT_PRIORITY
    options: Tuple[Option, ...] = ()
    response: FieldResponse = EMPTY_RESPONSE

    @property
    def state(self) -> str:
        return self.response.state

    @property
    def value(self) -> Any:
        return self.response.value

    @property
    def columns(self) -> Tuple[Column, ...]:
        return self.attrs.columns if self.kind == "table" else ()

    @property
    def option_ids(self) -> Tuple[str, ...]:
        return tuple(o.id for o in self.options)

    def row_count(self) -> int:
        if self.kind != "table" or self.response.state != ANSWERED:
            return 0
        return len(self.response.value or ())

    def with_response(self, response: FieldResponse) -> "Field":
        return replace(self, response=response)


@dataclass(frozen=True)
class FieldGroup:
    id: str
    fields: Tuple[Field, ...] = ()
    title: Optional[str] = None
    implicit: bool = False


@dataclass(frozen=True)
class Note:
    id: str
    ref: str
    role: str
    text: str
    state: Optional[str] = None


@dataclass(frozen=True)
class DocBlock:
    tag: str
    ref: str
    body: str


@dataclass(frozen=True)
class Form:
    id: str
    groups: Tuple[FieldGroup, ...] = ()
    title: Optional[str] = None
    notes: Tuple[Note, ...] = ()
    docs: Tuple[DocBlock, ...] = ()
    metadata: Dict[str, Any] = field(default_factory=dict)
    spec_version: str = SPEC_VERSION
    dialect: str = DEFAULT_DIALECT

    def iter_fields(self) -> Iterator[Field]:
        for g in self.groups:
            yield from g.fields

    def get_field(self, field_id: str) -> Optional[Field]:
        for f in self.iter_fields():
            if f.id == field_id:
                return f
        return None

    def get_note(self, note_id: str) -> Optional[Note]:
        for n in self.notes:
            if n.id == note_id:
                return n
        return None

    def with_field(self, new_field: Field) -> "Form":
        groups = []
        for g in self.groups:
            if any(f.id == new_field.id for f in g.fields):
                g = replace(g, fields=tuple(new_field if f.id == new_field.id else f for f in g.fields))
            groups.append(g)
        return replace(self, groups=tuple(groups))

    def with_notes(self, notes) -> "Form":
        return replace(self, notes=sort_notes(notes))


@dataclass(frozen=True)
class ParseResult:
    form: Optional[Form] = None
    error: Any = None

    @property
    def ok(self) -> bool:
        return self.error is None


def note_sort_key(note_id: str) -> Tuple[str, int, str]:
    # n1, n2, n10 rather than n1, n10, n2
    head = note_id.rstrip("0123456789")
    tail = note_id[len(head):]
    return (head, int(tail) if tail else -1, note_id)


def sort_notes(notes) -> Tuple[Note, ...]:
    return tuple(sorted(notes, key=lambda n: note_sort_key(n.id)))
