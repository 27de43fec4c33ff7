# tests/conftest.py
# Put 'src' on sys.path so `import markform` works without installing the
# package, and share the sample research document between test modules.

import sys
import pathlib

import pytest

ROOT = pathlib.Path(__file__).resolve().parents[1]
SRC_STR = str(ROOT / "src")

if SRC_STR not in sys.path:
    sys.path.insert(0, SRC_STR)

from markform import parse_form  # noqa: E402

RESEARCH_DOC = '''---
markform:
  spec: "MF/0.1"
title: Company research
---

{% form id="research" title="Company research" %}

{% description ref="research" %}
Research the company.
{% /description %}

{% group id="basics" title="Basics" %}

{% field kind="string" id="company" label="Company" required=true %}
```value
ACME Corp
```
{% /field %}

{% field kind="number" id="revenue" label="Revenue" min=0 %}{% /field %}

{% field kind="string_list" id="tags" label="Tags" minItems=1 %}
```value
industrial
anvils
```
{% /field %}

{% field kind="single_select" id="sector" label="Sector" required=true %}
- [ ] Tech {% #tech %}
- [x] Manufacturing {% #manufacturing %}
{% /field %}

{% field kind="checkboxes" id="tasks" label="Tasks" %}
- [x] Read filings {% #filings %}
- [/] Call investor relations {% #ir %}
- [ ] Visit site {% #site %}
{% /field %}

{% /group %}

{% group id="people" title="People" %}

{% field kind="table" id="team" label="Team" columnIds=["name", "age"] columnTypes=["string", "number"] %}
| Name | Age |
| --- | --- |
| Alice | 30 |
| Bob | %SKIP% (not applicable) |
{% /field %}

{% field kind="url" id="website" label="Website" role="user" state="skipped" %}{% /field %}

{% /group %}

{% note id="n1" ref="team.age[1]" role="agent" %}
Age not disclosed.
{% /note %}

{% /form %}
'''


@pytest.fixture
def research_doc():
    return RESEARCH_DOC


@pytest.fixture
def research_form():
    return parse_form(RESEARCH_DOC)
