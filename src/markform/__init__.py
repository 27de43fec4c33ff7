# src/markform/__init__.py
# Public API for parsing, checking, patching and serializing form documents.

from .errors import MarkformError, ParseError, PatchError, RefError
from .frontmatter import split_frontmatter
from .issues import Issue, is_complete, list_issues
from .model import (
    Cell, Column, DocBlock, Field, FieldGroup, FieldResponse, Form, Note, Option, ParseResult,
    TableRow,
)
from .parser import parse, parse_form
from .patches import ApplyResult, PatchOutcome, apply_patches
from .preprocess import detect_dialect, to_comments, to_tags
from .scope_ref import parse_ref, resolve_ref, serialize_ref
from .serialize import Fence, pick_fence, serialize
from .settings import SPEC_VERSION
from .validate import ValidationIssue, validate

__all__ = [
    "ApplyResult", "Cell", "Column", "DocBlock", "Fence", "Field", "FieldGroup", "FieldResponse",
    "Form", "Issue", "MarkformError", "Note", "Option", "ParseError", "ParseResult", "PatchError",
    "PatchOutcome", "RefError", "SPEC_VERSION", "TableRow", "ValidationIssue",
    "apply_patches", "detect_dialect", "is_complete", "list_issues", "parse", "parse_form",
    "parse_ref", "pick_fence", "resolve_ref", "serialize", "serialize_ref", "split_frontmatter",
    "to_comments", "to_tags", "validate",
]
