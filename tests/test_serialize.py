from dataclasses import replace

import pytest

from markform import apply_patches, parse_form, serialize
from markform.model import ANSWERED, EMPTY, FieldResponse

SMALL_DOC = '''{% form id="demo" title="Demo" %}
{% field kind="string" label="Name" id="name" required=true %}
```value
Ada
```
{% /field %}
{% /form %}
'''

SMALL_CANONICAL = '''---
markform:
  spec: "MF/0.1"
---

{% form id="demo" title="Demo" %}

{% field id="name" kind="string" label="Name" required=true %}
```value
Ada
```
{% /field %}

{% /form %}
'''

COMMENT_DOC = '''<!-- f:form id="trip" title="Trip" -->

<!-- f:field kind="single_select" id="mode" label="Mode" -->
- [x] Train <!-- #train -->
- [ ] Plane <!-- #plane -->
<!-- /f:field -->

<!-- f:field kind="string" id="remarks" label="Remarks" --><!-- /f:field -->

<!-- /f:form -->
'''


def _with_string(form, field_id, value):
    return form.with_field(form.get_field(field_id).with_response(FieldResponse(ANSWERED, value)))


def test_canonical_output():
    assert serialize(parse_form(SMALL_DOC)) == SMALL_CANONICAL


def test_round_trip(research_form):
    assert parse_form(serialize(research_form)) == research_form


def test_idempotent(research_doc):
    once = serialize(parse_form(research_doc))
    assert serialize(parse_form(once)) == once


def test_skipped_cell_written_with_reason(research_form):
    out = serialize(research_form)
    assert "| Bob | %SKIP% (not applicable) |" in out
    assert 'columnLabels=["Name", "Age"]' in out
    assert 'columnTypes=["string", "number"]' in out


def test_defaults_are_omitted(research_form):
    out = serialize(research_form)
    assert '{% field id="company" kind="string" label="Company" required=true %}' in out
    assert 'priority="medium"' not in out
    assert "checkboxMode" not in out
    assert 'state="skipped"' in out


def test_notes_and_metadata(research_form):
    out = serialize(research_form)
    assert out.startswith('---\nmarkform:\n  spec: "MF/0.1"\ntitle: Company research\n---\n')
    assert '{% note id="n1" ref="team.age[1]" role="agent" %}\nAge not disclosed.\n{% /note %}' in out


def test_comment_dialect_is_preserved():
    form = parse_form(COMMENT_DOC)
    assert form.dialect == "comments"
    out = serialize(form)
    assert '<!-- f:form id="trip" title="Trip" -->' in out
    assert "- [x] Train <!-- #train -->" in out
    assert '<!-- f:field id="remarks" kind="string" label="Remarks" --><!-- /f:field -->' in out
    assert "{%" not in out
    assert parse_form(out) == form
    assert serialize(parse_form(out)) == out


def test_dialect_override():
    form = parse_form(COMMENT_DOC)
    out = serialize(form, dialect="tags")
    assert '{% form id="trip" title="Trip" %}' in out
    assert "<!--" not in out


def test_value_with_fences_and_directives_round_trips():
    form = parse_form(SMALL_DOC)
    tricky = "before\n```\n{% not a tag %}\n~~~~\nafter"
    form = _with_string(form, "name", tricky)
    out = serialize(form)
    assert "````value {% process=false %}" in out
    again = parse_form(out)
    assert again.get_field("name").value == tricky
    assert serialize(again) == out


def test_five_backtick_line_survives():
    form = _with_string(parse_form(SMALL_DOC), "name", "`````\ncode\n`````")
    out = serialize(form)
    assert "~~~value" in out
    assert parse_form(out).get_field("name").value == "`````\ncode\n`````"


def test_skip_reason_written_as_sentinel():
    doc = '''{% form id="f" %}
{% field kind="url" id="site" label="Site" %}
```value
|SKIP| (offline)
```
{% /field %}
{% /form %}
'''
    out = serialize(parse_form(doc))
    assert '{% field id="site" kind="url" label="Site" state="skipped" %}\n```value\n|SKIP| (offline)\n```' in out
    assert parse_form(out).get_field("site").response.reason == "offline"


BLANK_CELL_DOC = '''{% form id="f" %}
{% field kind="table" id="people" label="People" columnIds=["name", "age"] columnTypes=["string", "number"] %}
| Name | Age |
| --- | --- |
| Alice |  |
{% /field %}
{% /form %}
'''


def test_blank_cell_stays_blank():
    form = parse_form(BLANK_CELL_DOC)
    (row,) = form.get_field("people").value
    assert row.cells[1].state == EMPTY
    out = serialize(form)
    assert "| Alice |  |" in out
    assert "%SKIP%" not in out


PATCHED_CASES = {
    "awkward cells": [{"op": "set_table", "fieldId": "team", "value": [
        {"name": "a|b", "age": None},
        {"name": "back\\|slash \\\\| two", "age": "%SKIP% (a|b)"},
        ["`pipe | in code`", 7],
        {"name": "", "age": 3},
    ]}],
    "directives in a value": [
        {"op": "set_string", "fieldId": "company", "value": "before\n```\n{% field %}\n<!-- f:form -->\n~~~~\nafter"},
    ],
    "form feed before a fence run": [{"op": "set_string", "fieldId": "company", "value": "x\x0c```"}],
    "unicode separators": [{"op": "set_string", "fieldId": "company", "value": "a\u2028```\x85~~~"}],
    "trailing carriage return": [{"op": "set_string", "fieldId": "company", "value": "ends\r"}],
    "list items with fence runs": [
        {"op": "set_string_list", "fieldId": "tags", "value": ["```", "~~~~", "a | b"]},
    ],
    "skip reason with a fence": [
        {"op": "skip_field", "fieldId": "website", "role": "user", "reason": "see\n```\ncode\n```"},
    ],
    "abort reason with parentheses": [
        {"op": "abort_field", "fieldId": "revenue", "reason": "cut off (twice) ~~~"},
    ],
}


@pytest.mark.parametrize("dialect", ["tags", "comments"])
@pytest.mark.parametrize("name", sorted(PATCHED_CASES))
def test_patched_forms_round_trip(research_form, name, dialect):
    result = apply_patches(research_form, PATCHED_CASES[name])
    assert result.all_applied, result.rejected
    form = replace(result.form, dialect=dialect)
    out = serialize(form)
    assert parse_form(out) == form
    assert serialize(parse_form(out)) == out
