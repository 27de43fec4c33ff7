# src/markform/errors.py
# Error types. ParseError and PatchError are raised internally and turned
# into result values at the public API edge; RefError is only ever returned.

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional


class MarkformError(Exception):
    pass


class ParseError(MarkformError):
    def __init__(self, message: str, line: Optional[int] = None, column: Optional[int] = None,
                 field_id: Optional[str] = None, note_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.line = line
        self.column = column
        self.field_id = field_id
        self.note_id = note_id

    def __str__(self) -> str:
        if self.line is None:
            return self.message
        if self.column is None:
            return f"{self.message} (line {self.line})"
        return f"{self.message} (line {self.line}, column {self.column})"

    def to_dict(self) -> dict:
        out = {"type": "parse", "message": self.message}
        loc = {k: v for k, v in (("line", self.line), ("column", self.column),
                                 ("fieldId", self.field_id), ("noteId", self.note_id)) if v is not None}
        if loc:
            out["location"] = loc
        return out


class PatchError(MarkformError):
    def __init__(self, message: str, field_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field_id = field_id


@dataclass(frozen=True)
class RefError:
    """A malformed or unresolvable scope reference."""
    ref: str
    message: str
