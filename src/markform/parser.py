# src/markform/parser.py
# Parses a form document into an immutable Form.
# Pipeline: frontmatter split -> dialect normalize -> tokenize -> block stack.
# Nesting:  form > group > field,  form > field,  form > note,
#           form|group > description|instructions|documentation

from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional, Tuple

from .errors import ParseError, RefError
from .fields import LEGACY_FIELD_TAGS, build_field
from .frontmatter import extract_spec_version, split_frontmatter
from .model import (
    RESPONSE_STATES, DocBlock, Field, FieldGroup, Form, Note, ParseResult, sort_notes,
)
from .preprocess import normalize
from .scope_ref import CellRef, ref_exists, resolve_ref
from .settings import DOC_TAGS, IMPLICIT_GROUP_ID, ROLES
from .tokenizer import tokenize

logger = logging.getLogger(__name__)

# allowed child tags per parent (None = document top level)
_CHILDREN = {
    None: ("form",),
    "form": ("group", "field", "note") + DOC_TAGS,
    "group": ("field",) + DOC_TAGS,
    "field": (),
    "note": (),
}
for _t in DOC_TAGS:
    _CHILDREN[_t] = ()

_LEGACY_TAGS = dict(LEGACY_FIELD_TAGS, **{"field-group": None})


def _err(msg: str, tok: Dict, **kw) -> ParseError:
    return ParseError(msg, tok.get("line"), tok.get("column"), **kw)


def _legacy_hint(name: str, tok: Dict) -> ParseError:
    kind = _LEGACY_TAGS[name]
    if kind is None:
        return _err(f"Tag '{{% {name} %}}' is no longer supported. Use {{% group %}} instead", tok)
    return _err(f"Tag '{{% {name} %}}' is no longer supported. Use {{% field kind=\"{kind}\" %}} instead", tok)


class _Frame:
    __slots__ = ("name", "tok", "children")

    def __init__(self, name: str, tok: Dict):
        self.name = name
        self.tok = tok
        self.children: List[Any] = []


def _body(text: str, frame: _Frame, close_tok: Optional[Dict]) -> str:
    if close_tok is None:
        return ""
    return text[frame.tok["end"]:close_tok["start"]]


def _build_tree(text: str) -> Tuple[Dict, List[Any]]:
    """Return (form tag token, form children as (kind, payload, tok) tuples)."""
    tokens = tokenize(text)
    stack: List[_Frame] = []
    form: Optional[_Frame] = None
    for tok in tokens:
        ttype = tok["type"]
        if ttype == "annotation":
            # option ids; they stay in the field body text
            continue
        name = tok["name"]
        if ttype == "close":
            if not stack:
                raise _err(f"Unexpected closing tag '{{% /{name} %}}'", tok)
            if stack[-1].name != name:
                raise _err(f"Mismatched closing tag '{{% /{name} %}}' (expected '{{% /{stack[-1].name} %}}')", tok)
            _close(text, stack, stack.pop(), tok)
            continue
        if name in _LEGACY_TAGS:
            raise _legacy_hint(name, tok)
        parent = stack[-1].name if stack else None
        if name not in _CHILDREN:
            raise _err(f"Unknown tag '{{% {name} %}}'", tok)
        if name not in _CHILDREN[parent]:
            if parent is None:
                raise _err(f"Tag '{{% {name} %}}' must be inside a form", tok)
            raise _err(f"Tag '{{% {name} %}}' is not allowed inside '{{% {parent} %}}'", tok)
        frame = _Frame(name, tok)
        if name == "form":
            if form is not None:
                raise _err("Multiple form tags found; a document holds exactly one form", tok)
            form = frame
        if ttype == "self":
            stack.append(frame)
            _close(text, stack, stack.pop(), None)
        else:
            stack.append(frame)
    if stack:
        top = stack[-1]
        raise _err(f"Unclosed tag '{{% {top.name} %}}'", top.tok)
    if form is None:
        raise ParseError("No form tag found")
    return form.tok, form.children


def _close(text: str, stack: List[_Frame], frame: _Frame, close_tok: Optional[Dict]):
    tok = frame.tok
    attrs = tok["attrs"]
    body = _body(text, frame, close_tok)
    node: Any
    if frame.name == "form":
        return
    if frame.name == "field":
        node = ("field", build_field(attrs, body, tok["line"], tok["column"]), tok)
    elif frame.name == "group":
        node = ("group", frame.children, tok)
    elif frame.name == "note":
        node = ("note", (attrs, body.strip()), tok)
    else:
        node = ("doc", DocBlock(frame.name, attrs.get("ref"), body.strip()), tok)
    stack[-1].children.append(node)


# ------------------------------ Assembly -------------------------------------

def _group_from(tok: Dict, children: List[Any], docs: List) -> FieldGroup:
    gid = tok["attrs"].get("id")
    if not isinstance(gid, str) or not gid:
        raise _err("Group tag missing 'id' attribute", tok)
    title = tok["attrs"].get("title")
    fields: List[Field] = []
    for kind, payload, ctok in children:
        if kind == "field":
            fields.append(payload)
        else:
            docs.append((payload, ctok))
    return FieldGroup(gid, tuple(fields), title if isinstance(title, str) else None)


def _register(ids: Dict[str, Dict], node_id: str, tok: Dict):
    if node_id in ids:
        raise _err(f"Duplicate id '{node_id}'", tok)
    ids[node_id] = tok


def _check_note(attrs: Dict, tok: Dict, form_stub: Form, seen: Dict[str, Note]) -> Tuple[Dict, str]:
    nid = attrs.get("id")
    for key in ("id", "ref", "role"):
        if not isinstance(attrs.get(key), str) or not attrs.get(key):
            raise _err(f"Note missing '{key}' attribute", tok, note_id=nid if isinstance(nid, str) else None)
    if nid in seen:
        raise _err(f"Duplicate note id '{nid}'", tok, note_id=nid)
    if attrs["role"] not in ROLES:
        raise _err(f"Invalid note role '{attrs['role']}'", tok, note_id=nid)
    state = attrs.get("state")
    if state is not None and state not in RESPONSE_STATES:
        raise _err(f"Invalid note state '{state}'", tok, note_id=nid)
    if not ref_exists(attrs["ref"], form_stub):
        raise _err(f"Note '{nid}' references unknown target '{attrs['ref']}'", tok, note_id=nid)
    return attrs, nid


def _doc_ref_ok(ref: str, form: Form) -> bool:
    if ref == form.id or any(g.id == ref for g in form.groups):
        return True
    target = resolve_ref(ref, form)
    return not isinstance(target, (RefError, CellRef))


def _order_docs(docs: List[DocBlock], form: Form) -> Tuple[DocBlock, ...]:
    # canonical order: form docs, then per group (group docs, then per field)
    order: List[str] = [form.id]
    for g in form.groups:
        order.append(g.id)
        for f in g.fields:
            order.append(f.id)
            order.extend(f"{f.id}.{o.id}" for o in f.options)
            order.extend(f"{f.id}.{c.id}" for c in f.columns)
    rank = {ref: i for i, ref in enumerate(order)}
    indexed = list(enumerate(docs))
    indexed.sort(key=lambda p: (rank.get(p[1].ref, len(order)), p[0]))
    return tuple(d for _, d in indexed)


def parse_form(text: str) -> Form:
    """Parse a document, raising ParseError on structural problems."""
    text = (text or "").replace("\r\n", "\n")
    metadata, body = split_frontmatter(text)
    spec_version, metadata = extract_spec_version(metadata)
    line_offset = text[: len(text) - len(body)].count("\n")
    body, dialect = normalize(body)
    try:
        return _assemble(body, metadata, spec_version, dialect)
    except ParseError as exc:
        if exc.line is not None:
            exc.line += line_offset
        raise


def _assemble(body: str, metadata: Dict, spec_version: str, dialect: str) -> Form:
    form_tok, children = _build_tree(body)
    fattrs = form_tok["attrs"]
    form_id = fattrs.get("id")
    if not isinstance(form_id, str) or not form_id:
        raise _err("Form tag missing 'id' attribute", form_tok)
    title = fattrs.get("title") if isinstance(fattrs.get("title"), str) else None

    ids: Dict[str, Dict] = {}
    _register(ids, form_id, form_tok)
    groups: List[FieldGroup] = []
    loose: List[Field] = []
    loose_at: Optional[int] = None
    notes_raw: List[Tuple[Dict, Dict]] = []
    docs: List[Tuple[DocBlock, Dict]] = []
    for kind, payload, tok in children:
        if kind == "group":
            g = _group_from(tok, payload, docs)
            _register(ids, g.id, tok)
            for f, (_, _, ftok) in zip(g.fields, [c for c in payload if c[0] == "field"]):
                _register(ids, f.id, ftok)
            groups.append(g)
        elif kind == "field":
            _register(ids, payload.id, tok)
            if loose_at is None:
                loose_at = len(groups)
            loose.append(payload)
        elif kind == "note":
            notes_raw.append((payload, tok))
        else:
            docs.append((payload, tok))

    if loose:
        existing = next((i for i, g in enumerate(groups) if g.id == IMPLICIT_GROUP_ID), None)
        if existing is not None:
            g = groups[existing]
            groups[existing] = FieldGroup(g.id, g.fields + tuple(loose), g.title)
        else:
            if IMPLICIT_GROUP_ID in ids:
                raise ParseError(f"Id '{IMPLICIT_GROUP_ID}' is reserved for ungrouped fields")
            groups.insert(loose_at, FieldGroup(IMPLICIT_GROUP_ID, tuple(loose), None, implicit=True))

    form = Form(id=form_id, groups=tuple(groups), title=title, metadata=metadata,
                spec_version=spec_version, dialect=dialect)

    notes: Dict[str, Note] = {}
    for (attrs, text), tok in notes_raw:
        attrs, nid = _check_note(attrs, tok, form, notes)
        notes[nid] = Note(nid, attrs["ref"], attrs["role"], text, attrs.get("state"))

    doc_blocks = []
    for doc, tok in docs:
        if not isinstance(doc.ref, str) or not doc.ref:
            raise _err(f"{doc.tag.capitalize()} block missing 'ref' attribute", tok)
        if not _doc_ref_ok(doc.ref, form):
            raise _err(f"{doc.tag.capitalize()} block references unknown target '{doc.ref}'", tok)
        doc_blocks.append(doc)

    form = Form(id=form_id, groups=tuple(groups), title=title, notes=sort_notes(notes.values()),
                docs=_order_docs(doc_blocks, form), metadata=metadata,
                spec_version=spec_version, dialect=dialect)
    logger.debug("parsed form '%s': %d groups, %d notes", form.id, len(form.groups), len(form.notes))
    return form


def parse(text: str) -> ParseResult:
    """Result-returning wrapper around parse_form."""
    try:
        return ParseResult(form=parse_form(text))
    except ParseError as exc:
        return ParseResult(error=exc)
