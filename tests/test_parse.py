import pytest

from markform import ParseError, parse, parse_form
from markform.model import SKIPPED, Cell

IMPLICIT_DOC = '''{% form id="quick" %}

{% field kind="number" id="count" label="Count" %}
```value
42
```
{% /field %}

{% field kind="number" id="ratio" label="Ratio" %}
```value
1.5
```
{% /field %}

{% /form %}
'''


def _form(body: str) -> str:
    return '{% form id="f" %}\n' + body + '\n{% /form %}\n'


def test_research_doc_structure(research_form):
    form = research_form
    assert form.id == "research"
    assert form.title == "Company research"
    assert form.spec_version == "MF/0.1"
    assert form.metadata == {"title": "Company research"}
    assert form.dialect == "tags"
    assert [g.id for g in form.groups] == ["basics", "people"]
    assert [d.tag for d in form.docs] == ["description"]
    assert form.docs[0].body == "Research the company."


def test_research_doc_values(research_form):
    get = research_form.get_field
    assert get("company").value == "ACME Corp"
    assert get("revenue").state == "empty"
    assert get("tags").value == ("industrial", "anvils")
    assert get("sector").value == "manufacturing"
    assert get("tasks").value == (("filings", "done"), ("ir", "incomplete"), ("site", "todo"))
    website = get("website")
    assert website.state == SKIPPED
    assert website.role == "user"


def test_table_rows_and_labels(research_form):
    team = research_form.get_field("team")
    assert team.row_count() == 2
    assert [c.label for c in team.columns] == ["Name", "Age"]
    alice, bob = team.value
    assert alice.cells == (Cell(value="Alice"), Cell(value=30))
    assert bob.cells[1] == Cell(state=SKIPPED, reason="not applicable")


def test_notes_are_attached(research_form):
    (note,) = research_form.notes
    assert note.id == "n1"
    assert note.ref == "team.age[1]"
    assert note.text == "Age not disclosed."


def test_fields_outside_groups_go_to_implicit_group():
    form = parse_form(IMPLICIT_DOC)
    (group,) = form.groups
    assert group.id == "default"
    assert group.implicit
    assert form.get_field("count").value == 42
    assert isinstance(form.get_field("count").value, int)
    assert form.get_field("ratio").value == 1.5


def test_crlf_input_matches_lf():
    assert parse_form(IMPLICIT_DOC.replace("\n", "\r\n")) == parse_form(IMPLICIT_DOC)


def test_skip_sentinel_in_value_fence():
    form = parse_form(_form(
        '{% field kind="string" id="notes" label="Notes" %}\n```value\n|SKIP| (no data)\n```\n{% /field %}'
    ))
    f = form.get_field("notes")
    assert f.state == "skipped"
    assert f.response.reason == "no data"


def test_literal_fence_keeps_directive_text():
    form = parse_form(_form(
        '{% field kind="string" id="snippet" label="Snippet" %}\n'
        '```value {% process=false %}\nuse {% field %} here\n```\n{% /field %}'
    ))
    assert form.get_field("snippet").value == "use {% field %} here"


def test_explicit_checkboxes_are_required():
    form = parse_form(_form(
        '{% field kind="checkboxes" id="checks" label="Checks" checkboxMode="explicit" %}\n'
        '- [y] Insured {% #insured %}\n- [ ] Licensed {% #licensed %}\n{% /field %}'
    ))
    f = form.get_field("checks")
    assert f.required
    assert f.value == (("insured", "yes"), ("licensed", "unfilled"))


def test_explicit_checkboxes_reject_required_false():
    with pytest.raises(ParseError, match="always required"):
        parse_form(_form(
            '{% field kind="checkboxes" id="checks" label="Checks" checkboxMode="explicit" required=false %}\n'
            '- [ ] Insured {% #insured %}\n{% /field %}'
        ))


def test_required_field_cannot_be_skipped():
    with pytest.raises(ParseError, match="cannot be skipped"):
        parse_form(_form('{% field kind="string" id="a" label="A" required=true state="skipped" %}{% /field %}'))


def test_legacy_tag_gets_hint():
    with pytest.raises(ParseError) as exc:
        parse_form(_form('{% string-field id="a" label="A" %}{% /string-field %}'))
    assert "no longer supported" in exc.value.message
    assert 'kind="string"' in exc.value.message


def test_mismatched_close():
    with pytest.raises(ParseError, match="Mismatched closing tag"):
        parse_form('{% form id="f" %}\n{% field kind="string" id="a" label="A" %}\n{% /form %}\n')


def test_missing_form():
    with pytest.raises(ParseError, match="No form tag found"):
        parse_form("just text\n")


def test_duplicate_ids():
    with pytest.raises(ParseError, match="Duplicate id 'a'"):
        parse_form(_form(
            '{% field kind="string" id="a" label="A" %}{% /field %}\n'
            '{% field kind="number" id="a" label="Again" %}{% /field %}'
        ))


def test_option_without_id():
    with pytest.raises(ParseError, match="missing ID annotation"):
        parse_form(_form('{% field kind="single_select" id="s" label="S" %}\n- [ ] One\n{% /field %}'))


def test_two_selected_options_in_single_select():
    with pytest.raises(ParseError, match="more than one selected"):
        parse_form(_form(
            '{% field kind="single_select" id="s" label="S" %}\n'
            '- [x] One {% #one %}\n- [x] Two {% #two %}\n{% /field %}'
        ))


def test_column_arrays_must_line_up():
    with pytest.raises(ParseError, match="equal length"):
        parse_form(_form(
            '{% field kind="table" id="t" label="T" columnIds=["a", "b"] columnLabels=["A"] %}{% /field %}'
        ))


def test_unknown_kind():
    with pytest.raises(ParseError, match="Unknown field kind 'text'"):
        parse_form(_form('{% field kind="text" id="a" label="A" %}{% /field %}'))


def test_note_with_unknown_ref():
    with pytest.raises(ParseError, match="unknown target"):
        parse_form(_form(
            '{% field kind="string" id="a" label="A" %}{% /field %}\n'
            '{% note id="n1" ref="missing" role="agent" %}\nhi\n{% /note %}'
        ))


def test_doc_block_needs_ref():
    with pytest.raises(ParseError, match="missing 'ref'"):
        parse_form(_form('{% instructions %}\nDo it.\n{% /instructions %}'))


def test_error_line_counts_frontmatter():
    text = '---\ntitle: x\n---\n{% form id="f" %}\n{% bogus %}\n{% /form %}\n'
    with pytest.raises(ParseError) as exc:
        parse_form(text)
    assert exc.value.line == 5
    assert "Unknown tag" in str(exc.value)


def test_parse_returns_result_instead_of_raising():
    result = parse("{% form %}{% /form %}")
    assert not result.ok
    assert result.form is None
    assert isinstance(result.error, ParseError)
    assert result.error.to_dict()["type"] == "parse"

    ok = parse(IMPLICIT_DOC)
    assert ok.ok
    assert ok.form.id == "quick"
