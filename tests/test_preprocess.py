from markform import detect_dialect, to_comments, to_tags
from markform.preprocess import code_regions, has_unclosed_fence, split_lines

COMMENT_TEXT = '''<!-- f:form id="f" -->
- [x] Yes <!-- #yes -->
<!-- f:note id="n1" ref="a" role="agent" /-->
<!-- /f:form -->
'''

TAG_TEXT = '''{% form id="f" %}
- [x] Yes {% #yes %}
{% note id="n1" ref="a" role="agent" /%}
{% /form %}
'''

FENCED = '''```
<!-- f:field kind="string" -->
```
<!-- f:form id="f" -->
Inline `{% form %}` code.
<!-- /f:form -->
'''


def test_detect_dialect():
    assert detect_dialect(TAG_TEXT) == "tags"
    assert detect_dialect(COMMENT_TEXT) == "comments"
    assert detect_dialect("no directives") == "tags"


def test_detection_skips_code():
    assert detect_dialect("```\n{% form %}\n```\n<!-- f:form -->") == "comments"


def test_comments_to_tags():
    assert to_tags(COMMENT_TEXT) == TAG_TEXT


def test_tags_to_comments():
    assert to_comments(TAG_TEXT) == COMMENT_TEXT


def test_plain_comments_are_left_alone():
    assert to_tags("<!-- just a note -->") == "<!-- just a note -->"


def test_code_is_never_rewritten():
    out = to_tags(FENCED)
    assert '```\n<!-- f:field kind="string" -->\n```' in out
    assert "Inline `{% form %}` code." in out
    assert '{% form id="f" %}' in out


def test_code_regions_cover_fences_and_spans():
    text = "a `b` c\n~~~\nx\n~~~\n"
    spans = [text[s:e] for s, e in code_regions(text)]
    assert spans == ["`b`", "~~~\nx\n~~~\n"]


def test_unclosed_fence():
    assert has_unclosed_fence("```\ncode")
    assert not has_unclosed_fence("```\ncode\n```")
    assert not has_unclosed_fence("````\n```\n````")


def test_only_newline_ends_a_line():
    # a form feed or unicode line separator does not start a fence line
    for text in ("x\x0c```\ny\n", "x\u2028```\ny\n", "x\x85~~~\ny\n"):
        assert code_regions(text) == []
        assert not has_unclosed_fence(text)
    assert split_lines("a\nb") == ["a\n", "b"]
    assert split_lines("a\n") == ["a\n"]
    assert split_lines("") == []
