from markform import parse_form, validate
from markform.model import ANSWERED, FieldResponse

DOC = '''{% form id="checks" %}

{% field kind="string" id="code" label="Code" minLength=3 pattern="^[A-Z]+$" %}
```value
ab
```
{% /field %}

{% field kind="number" id="units" label="Units" integer=true max=10 %}
```value
12.5
```
{% /field %}

{% field kind="multi_select" id="colors" label="Colors" minSelections=2 %}
- [x] Red {% #red %}
- [ ] Blue {% #blue %}
{% /field %}

{% field kind="string" id="owner" label="Owner" required=true %}{% /field %}

{% field kind="string_list" id="aliases" label="Aliases" uniqueItems=true %}
```value
acme
acme
```
{% /field %}

{% field kind="checkboxes" id="steps" label="Steps" checkboxMode="simple" required=true %}
- [x] One {% #one %}
- [ ] Two {% #two %}
{% /field %}

{% field kind="table" id="rows" label="Rows" columnIds=["a"] required=true minRows=0 %}{% /field %}

{% field kind="year" id="founded" label="Founded" min=1900 %}
```value
1850
```
{% /field %}

{% /form %}
'''


def _codes(form):
    return [(i.ref, i.code) for i in validate(form)]


def test_rule_codes():
    codes = _codes(parse_form(DOC))
    assert ("code", "MIN_LENGTH") in codes
    assert ("code", "PATTERN_MISMATCH") in codes
    assert ("units", "NOT_INTEGER") in codes
    assert ("units", "MAX_VALUE") in codes
    assert ("colors", "MIN_SELECTIONS") in codes
    assert ("owner", "REQUIRED_EMPTY") in codes
    assert ("aliases", "DUPLICATE_ITEM") in codes
    assert ("steps", "CHECKBOXES_INCOMPLETE") in codes
    assert ("rows", "REQUIRED_TABLE_MIN_ROWS") in codes
    assert ("rows", "REQUIRED_EMPTY") in codes
    assert ("founded", "YEAR_OUT_OF_RANGE") in codes


def test_clean_form_has_no_issues(research_form):
    assert validate(research_form) == []


def test_skipped_fields_are_not_checked():
    form = parse_form(DOC)
    code = form.get_field("code")
    form = form.with_field(code.with_response(FieldResponse("skipped", None, "later")))
    assert ("code", "MIN_LENGTH") not in _codes(form)


def test_wrong_value_type():
    form = parse_form(DOC)
    units = form.get_field("units")
    form = form.with_field(units.with_response(FieldResponse(ANSWERED, "many")))
    assert ("units", "TYPE_MISMATCH") in _codes(form)


def test_note_pointing_past_table_end(research_form):
    team = research_form.get_field("team")
    trimmed = research_form.with_field(team.with_response(FieldResponse(ANSWERED, team.value[:1])))
    issues = validate(trimmed)
    assert [(i.code, i.ref) for i in issues] == [("CELL_ROW_OUT_OF_BOUNDS", "team.age[1]")]
    assert issues[0].to_dict()["severity"] == "error"
