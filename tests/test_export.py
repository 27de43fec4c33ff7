import jsonschema
import pytest

from markform.export import FORM_EXPORT_SCHEMA, form_to_dict, validate_export


def test_export_matches_schema(research_form):
    data = form_to_dict(research_form)
    validate_export(data)
    assert data["id"] == "research"
    assert data["specVersion"] == "MF/0.1"
    assert [g["id"] for g in data["groups"]] == ["basics", "people"]


def test_export_values(research_form):
    values = form_to_dict(research_form)["values"]
    assert values["company"] == {"state": "answered", "value": "ACME Corp"}
    assert values["revenue"] == {"state": "empty"}
    assert values["website"] == {"state": "skipped"}
    assert values["tasks"]["value"] == {"filings": "done", "ir": "incomplete", "site": "todo"}
    assert values["team"]["value"][1]["age"] == {"state": "skipped", "reason": "not applicable"}


def test_export_field_schema(research_form):
    basics = form_to_dict(research_form)["groups"][0]
    company, revenue = basics["fields"][:2]
    assert company["required"] is True
    assert revenue["attrs"] == {"min": 0}
    sector = basics["fields"][3]
    assert sector["options"] == [{"id": "tech", "label": "Tech"}, {"id": "manufacturing", "label": "Manufacturing"}]


def test_schema_rejects_bad_state():
    bad = {"id": "f", "specVersion": "MF/0.1", "groups": [], "notes": [], "values": {"a": {"state": "done"}}}
    with pytest.raises(jsonschema.ValidationError):
        jsonschema.validate(instance=bad, schema=FORM_EXPORT_SCHEMA)
