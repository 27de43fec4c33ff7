import json
from pathlib import Path

from markform import parse_form, serialize
from markform.cli import main


def _write(tmp_path: Path, name: str, text: str) -> Path:
    p = tmp_path / name
    p.write_text(text, encoding="utf-8")
    return p


def test_inspect_json(tmp_path: Path, capsys, research_doc):
    form_path = _write(tmp_path, "research.form.md", research_doc)
    rc = main(["inspect", str(form_path), "--json"])
    assert rc == 0
    report = json.loads(capsys.readouterr().out)
    assert report["form"] == "research"
    assert report["complete"] is True
    assert report["validation"] == []
    assert [i["ref"] for i in report["issues"]] == ["revenue"]


def test_inspect_text(tmp_path: Path, capsys, research_doc):
    form_path = _write(tmp_path, "research.form.md", research_doc)
    assert main(["inspect", str(form_path), "--roles", "user"]) == 0
    out = capsys.readouterr().out
    assert "form: research (Company research)" in out
    assert "complete" in out


def test_inspect_parse_error(tmp_path: Path, capsys):
    form_path = _write(tmp_path, "broken.form.md", '{% form id="f" %}\n{% bogus %}\n{% /form %}\n')
    assert main(["inspect", str(form_path)]) == 1
    assert "Unknown tag" in capsys.readouterr().out


def test_apply_writes_output(tmp_path: Path, capsys, research_doc):
    form_path = _write(tmp_path, "research.form.md", research_doc)
    patches = _write(tmp_path, "patches.json", json.dumps([
        {"op": "set_number", "fieldId": "revenue", "value": 99},
        {"op": "set_string", "fieldId": "missing", "value": "x"},
    ]))
    out_path = tmp_path / "out.form.md"
    rc = main(["apply", str(form_path), str(patches), "-o", str(out_path)])
    assert rc == 1
    printed = capsys.readouterr().out
    assert "#0 set_number: applied" in printed
    assert '#1 set_string: rejected - Field "missing" not found' in printed
    assert parse_form(out_path.read_text(encoding="utf-8")).get_field("revenue").value == 99


def test_format_check(tmp_path: Path, capsys, research_doc):
    messy = _write(tmp_path, "messy.form.md", research_doc)
    assert main(["format", str(messy), "--check"]) == 1
    canonical = _write(tmp_path, "clean.form.md", serialize(parse_form(research_doc)))
    assert main(["format", str(canonical), "--check"]) == 0
    assert main(["format", str(messy), "--write"]) == 0
    assert main(["format", str(messy), "--check"]) == 0


def test_format_to_comments(tmp_path: Path, capsys, research_doc):
    form_path = _write(tmp_path, "research.form.md", research_doc)
    assert main(["format", str(form_path), "--dialect", "comments"]) == 0
    out = capsys.readouterr().out
    assert '<!-- f:form id="research" title="Company research" -->' in out


def test_export(tmp_path: Path, capsys, research_doc):
    form_path = _write(tmp_path, "research.form.md", research_doc)
    assert main(["export", str(form_path)]) == 0
    data = json.loads(capsys.readouterr().out)
    assert data["values"]["company"]["value"] == "ACME Corp"
