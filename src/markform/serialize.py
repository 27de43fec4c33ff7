# src/markform/serialize.py
# Canonical pretty-printer: Form -> document text.
# - attributes sorted alphabetically, default values omitted
# - blank line between blocks, notes at the end of the form sorted by id
# - value fences chosen so no line inside the value can close them
# - output written in the form's source dialect unless overridden

from __future__ import annotations
import logging
import re
from typing import Any, Dict, List, NamedTuple, Optional

from .frontmatter import render_frontmatter
from .model import ABORTED, ANSWERED, SKIPPED, DocBlock, Field, FieldGroup, Form, sort_notes
from .preprocess import to_comments
from .sentinels import format_scalar_sentinel
from .settings import (
    DEFAULT_APPROVAL_MODE, DEFAULT_CHECKBOX_MODE, DEFAULT_PRIORITY, DEFAULT_ROLE, DIALECT_COMMENTS,
    DIALECT_TAGS,
)
from .table import serialize_table
from .values import format_number

logger = logging.getLogger(__name__)

_LINE_START_RUN = {
    "`": re.compile(r'^ {0,3}(`+)', re.M),
    "~": re.compile(r'^ {0,3}(~+)', re.M),
}
# directive-like text that must not be reprocessed inside a value
_DIRECTIVE_LIKE_RE = re.compile(r'\{%|<!--\s*(?:f:|/f:|#|\.)')

STATE_MARKERS = {
    "todo": " ", "unfilled": " ", "done": "x", "incomplete": "/", "active": "*",
    "na": "-", "yes": "y", "no": "n",
}


# ------------------------------ Fences ---------------------------------------

class Fence(NamedTuple):
    char: str
    length: int
    literal: bool = False

    @property
    def marker(self) -> str:
        return self.char * self.length


def max_run_at_line_start(value: str, char: str) -> int:
    """Longest run of ``char`` starting a line after at most 3 spaces."""
    return max((len(m.group(1)) for m in _LINE_START_RUN[char].finditer(value or "")), default=0)


def pick_fence(value: str) -> Fence:
    b = max_run_at_line_start(value, "`")
    t = max_run_at_line_start(value, "~")
    back_len = max(3, b + 1)
    tilde_len = max(3, t + 1)
    literal = bool(_DIRECTIVE_LIKE_RE.search(value or ""))
    if back_len > tilde_len:
        fence = Fence("~", tilde_len, literal)
    else:
        fence = Fence("`", back_len, literal)
    if fence.length > 3 or fence.char != "`":
        logger.debug("value needs fence %s", fence.marker)
    return fence


def format_value_fence(content: str) -> str:
    fence = pick_fence(content)
    info = "value {% process=false %}" if fence.literal else "value"
    return f"{fence.marker}{info}\n{content}\n{fence.marker}"


# ------------------------------ Attributes -----------------------------------

def serialize_attr_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if isinstance(value, (int, float)):
        return format_number(value)
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(serialize_attr_value(v) for v in value) + "]"
    escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def serialize_attrs(attrs: Dict[str, Any]) -> str:
    return " ".join(f"{k}={serialize_attr_value(attrs[k])}" for k in sorted(attrs) if attrs[k] is not None)


def _tag(name: str, attrs: Dict[str, Any]) -> str:
    body = serialize_attrs(attrs)
    return "{% " + name + (" " + body if body else "") + " %}"


# ------------------------------ Fields ---------------------------------------

def kind_attr_map(f: Field) -> Dict[str, Any]:
    a = f.attrs
    if f.kind == "string":
        return {"multiline": a.multiline or None, "pattern": a.pattern,
                "minLength": a.min_length, "maxLength": a.max_length}
    if f.kind == "number":
        return {"min": a.min, "max": a.max, "integer": a.integer or None}
    if f.kind in ("string_list", "url_list"):
        return {"minItems": a.min_items, "maxItems": a.max_items, "itemMinLength": a.item_min_length,
                "itemMaxLength": a.item_max_length, "uniqueItems": a.unique_items or None}
    if f.kind == "multi_select":
        return {"minSelections": a.min_selections, "maxSelections": a.max_selections}
    if f.kind == "checkboxes":
        return {
            "checkboxMode": None if a.checkbox_mode == DEFAULT_CHECKBOX_MODE else a.checkbox_mode,
            "minDone": a.min_done,
            "approvalMode": None if a.approval_mode == DEFAULT_APPROVAL_MODE else a.approval_mode,
        }
    if f.kind in ("date", "year"):
        return {"min": a.min, "max": a.max}
    if f.kind == "table":
        cols = a.columns
        return {
            "columnIds": [c.id for c in cols],
            "columnLabels": None if all(c.label == c.id for c in cols) else [c.label for c in cols],
            "columnTypes": None if all(c.type == "string" for c in cols) else [c.type for c in cols],
            "minRows": a.min_rows, "maxRows": a.max_rows,
        }
    return {}


def _field_attrs(f: Field) -> Dict[str, Any]:
    attrs: Dict[str, Any] = {
        "kind": f.kind, "id": f.id, "label": f.label,
        "required": True if f.required else None,
        "role": None if f.role == DEFAULT_ROLE else f.role,
        "priority": None if f.priority == DEFAULT_PRIORITY else f.priority,
    }
    attrs.update(kind_attr_map(f))
    if f.state in (SKIPPED, ABORTED):
        attrs["state"] = f.state
    return attrs


def _value_text(f: Field) -> Optional[str]:
    v = f.value
    if f.kind in ("string", "url", "date"):
        return v
    if f.kind in ("number",):
        return format_number(v)
    if f.kind == "year":
        return str(v)
    if f.kind in ("string_list", "url_list"):
        return "\n".join(v)
    return None


def _options(f: Field) -> str:
    if f.kind == "checkboxes":
        default = "unfilled" if f.attrs.checkbox_mode == "explicit" else "todo"
        states = dict(f.value or ()) if f.state == ANSWERED else {}
        marks = {oid: STATE_MARKERS[states.get(oid, default)] for oid in f.option_ids}
    elif f.kind == "single_select":
        marks = {oid: "x" if f.state == ANSWERED and oid == f.value else " " for oid in f.option_ids}
    else:
        chosen = set(f.value or ()) if f.state == ANSWERED else set()
        marks = {oid: "x" if oid in chosen else " " for oid in f.option_ids}
    return "\n".join(f"- [{marks[o.id]}] {o.label} {{% #{o.id} %}}" for o in f.options)


def serialize_field(f: Field) -> str:
    parts: List[str] = []
    if f.state in (SKIPPED, ABORTED) and f.response.reason:
        parts.append(format_value_fence(format_scalar_sentinel(f.state, f.response.reason)))
    if f.options:
        parts.append(_options(f))
    elif f.kind == "table":
        if f.state == ANSWERED:
            parts.append(serialize_table(f.attrs.columns, f.value))
    elif f.state == ANSWERED:
        parts.append(format_value_fence(_value_text(f)))
    open_tag = _tag("field", _field_attrs(f))
    if not parts:
        return open_tag + "{% /field %}"
    return open_tag + "\n" + "\n".join(parts) + "\n{% /field %}"


# ------------------------------ Blocks ---------------------------------------

def _doc(doc: DocBlock) -> str:
    return f"{_tag(doc.tag, {'ref': doc.ref})}\n{doc.body}\n{{% /{doc.tag} %}}"


def _docs_for(form: Form, ref: str) -> List[str]:
    return [_doc(d) for d in form.docs if d.ref == ref]


def _field_block(form: Form, f: Field) -> List[str]:
    blocks = [serialize_field(f)]
    blocks.extend(_docs_for(form, f.id))
    for o in f.options:
        blocks.extend(_docs_for(form, f"{f.id}.{o.id}"))
    for c in f.columns:
        blocks.extend(_docs_for(form, f"{f.id}.{c.id}"))
    return blocks


def _group_block(form: Form, g: FieldGroup) -> List[str]:
    if g.implicit:
        blocks = _docs_for(form, g.id)
        for f in g.fields:
            blocks.extend(_field_block(form, f))
        return blocks
    inner: List[str] = _docs_for(form, g.id)
    for f in g.fields:
        inner.extend(_field_block(form, f))
    lines = [_tag("group", {"id": g.id, "title": g.title})]
    for block in inner:
        lines.extend(["", block])
    lines.extend(["", "{% /group %}"])
    return ["\n".join(lines)]


def _note(note) -> str:
    attrs = {"id": note.id, "ref": note.ref, "role": note.role, "state": note.state}
    return f"{_tag('note', attrs)}\n{note.text}\n{{% /note %}}"


def serialize_body(form: Form) -> str:
    blocks: List[str] = _docs_for(form, form.id)
    for g in form.groups:
        blocks.extend(_group_block(form, g))
    blocks.extend(_note(n) for n in sort_notes(form.notes))
    lines = [_tag("form", {"id": form.id, "title": form.title})]
    for block in blocks:
        lines.extend(["", block])
    lines.extend(["", "{% /form %}"])
    return "\n".join(lines)


def serialize(form: Form, dialect: Optional[str] = None, spec_version: Optional[str] = None) -> str:
    """Serialize to canonical text in ``dialect`` (default: the form's source dialect)."""
    dialect = dialect or form.dialect or DIALECT_TAGS
    if dialect not in (DIALECT_TAGS, DIALECT_COMMENTS):
        raise ValueError(f"Unknown dialect '{dialect}'")
    body = serialize_body(form)
    if dialect == DIALECT_COMMENTS:
        body = to_comments(body)
    return render_frontmatter(spec_version or form.spec_version, form.metadata) + "\n\n" + body + "\n"
