from markform import pick_fence
from markform.serialize import format_value_fence, max_run_at_line_start


def test_plain_value_uses_three_backticks():
    fence = pick_fence("hello")
    assert fence.marker == "```"
    assert not fence.literal


def test_backtick_fence_inside_switches_to_tildes():
    assert pick_fence("a\n```\nb").marker == "~~~"


def test_tie_prefers_backticks():
    assert pick_fence("```\n~~~").marker == "````"


def test_longer_backtick_run_picks_shorter_tilde_fence():
    assert pick_fence("``````\n~~~").marker == "~~~~"


def test_five_backticks():
    fence = pick_fence("`````")
    assert fence.char == "~" or fence.length >= 6


def test_indented_code_is_ignored():
    assert max_run_at_line_start("    ``````", "`") == 0
    assert max_run_at_line_start("   ````", "`") == 4
    assert pick_fence("    ```").marker == "```"


def test_directive_text_is_literal():
    assert pick_fence("see {% field %}").literal
    assert pick_fence("<!-- f:note -->").literal
    assert not pick_fence("<!-- a plain comment -->").literal


def test_format_value_fence():
    assert format_value_fence("x") == "```value\nx\n```"
    assert format_value_fence("{% x %}") == "```value {% process=false %}\n{% x %}\n```"
