# src/markform/export.py
# JSON-friendly export of a form's schema and current values.

from __future__ import annotations
from typing import Any, Dict

import jsonschema

from .model import ANSWERED, Field, Form
from .serialize import kind_attr_map

_RESPONSE = {
    "type": "object",
    "required": ["state"],
    "properties": {
        "state": {"enum": ["empty", "answered", "skipped", "aborted"]},
        "reason": {"type": "string"},
    },
}

FORM_EXPORT_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": ["id", "specVersion", "groups", "notes", "values"],
    "properties": {
        "id": {"type": "string"},
        "title": {"type": ["string", "null"]},
        "specVersion": {"type": "string"},
        "metadata": {"type": "object"},
        "groups": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["id", "fields"],
                "properties": {
                    "id": {"type": "string"},
                    "title": {"type": ["string", "null"]},
                    "fields": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "required": ["id", "kind", "label", "role", "required"],
                            "properties": {
                                "id": {"type": "string"},
                                "kind": {"type": "string"},
                                "label": {"type": "string"},
                                "role": {"enum": ["user", "agent"]},
                                "required": {"type": "boolean"},
                                "priority": {"enum": ["high", "medium", "low"]},
                                "options": {"type": "array"},
                                "attrs": {"type": "object"},
                            },
                        },
                    },
                },
            },
        },
        "notes": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["id", "ref", "role", "text"],
            },
        },
        "values": {"type": "object", "additionalProperties": _RESPONSE},
    },
}


def _value_to_json(f: Field) -> Any:
    v = f.value
    if f.kind == "table":
        out = []
        for row in v:
            cells = {}
            for col, cell in zip(f.columns, row.cells):
                entry: Dict[str, Any] = {"state": cell.state}
                if cell.state == ANSWERED:
                    entry["value"] = cell.value
                elif cell.reason:
                    entry["reason"] = cell.reason
                cells[col.id] = entry
            out.append(cells)
        return out
    if f.kind == "checkboxes":
        return dict(v)
    if isinstance(v, tuple):
        return list(v)
    return v


def _field_to_dict(f: Field) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "id": f.id, "kind": f.kind, "label": f.label, "role": f.role,
        "required": f.required, "priority": f.priority,
        "attrs": {k: v for k, v in kind_attr_map(f).items() if v is not None},
    }
    if f.options:
        out["options"] = [{"id": o.id, "label": o.label} for o in f.options]
    return out


def form_to_dict(form: Form) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for f in form.iter_fields():
        entry: Dict[str, Any] = {"state": f.state}
        if f.state == ANSWERED:
            entry["value"] = _value_to_json(f)
        elif f.response.reason:
            entry["reason"] = f.response.reason
        values[f.id] = entry
    return {
        "id": form.id,
        "title": form.title,
        "specVersion": form.spec_version,
        "metadata": form.metadata,
        "groups": [
            {"id": g.id, "title": g.title, "fields": [_field_to_dict(f) for f in g.fields]}
            for g in form.groups
        ],
        "notes": [
            {k: v for k, v in (("id", n.id), ("ref", n.ref), ("role", n.role), ("text", n.text),
                               ("state", n.state)) if v is not None}
            for n in form.notes
        ],
        "values": values,
    }


def validate_export(data: Dict[str, Any]) -> None:
    jsonschema.validate(instance=data, schema=FORM_EXPORT_SCHEMA)
