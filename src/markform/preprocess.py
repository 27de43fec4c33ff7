# src/markform/preprocess.py
# Dialect detection and conversion between the two directive syntaxes:
#   tags:      {% field ... %} ... {% /field %}   {% #opt %}
#   comments:  <!-- f:field ... --> ... <!-- /f:field -->   <!-- #opt -->
# Fenced code blocks and inline code spans are never rewritten.

from __future__ import annotations
import logging
import re
from typing import Iterator, List, Tuple

from .settings import DEFAULT_DIALECT, DIALECT_COMMENTS, DIALECT_TAGS

logger = logging.getLogger(__name__)

# ------------------------------ Code regions ---------------------------------

# 0-3 spaces then 3+ backticks or tildes; 4 spaces is an indented code line.
FENCE_OPEN_RE = re.compile(r'^ {0,3}(?P<run>`{3,}|~{3,})(?P<info>.*)$')
_BACKTICK_RUN_RE = re.compile(r'`+')


def split_lines(text: str) -> List[str]:
    """Lines with their "\\n" kept; only "\\n" ends a line, as in value fences."""
    lines = [ln + "\n" for ln in text.split("\n")]
    lines[-1] = lines[-1][:-1]
    if not lines[-1]:
        lines.pop()
    return lines


def is_fence_close(line: str, char: str, length: int) -> bool:
    s = line.rstrip("\r\n")
    indent = len(s) - len(s.lstrip(" "))
    if indent > 3:
        return False
    rest = s[indent:]
    run = len(rest) - len(rest.lstrip(char))
    return run >= length and rest[run:].strip() == ""


def match_fence_open(line: str):
    """Return (char, length, info) when ``line`` opens a fenced block."""
    m = FENCE_OPEN_RE.match(line.rstrip("\r\n"))
    if not m:
        return None
    run, info = m.group("run"), m.group("info")
    if run[0] == "`" and "`" in info:
        return None
    return run[0], len(run), info


def _inline_code_spans(line: str) -> List[Tuple[int, int]]:
    spans: List[Tuple[int, int]] = []
    pos = 0
    while True:
        m = _BACKTICK_RUN_RE.search(line, pos)
        if not m:
            return spans
        n = len(m.group(0))
        closer = re.compile(r'(?<!`)`{%d}(?!`)' % n)
        c = closer.search(line, m.end())
        if c is None:
            pos = m.end()
            continue
        spans.append((m.start(), c.end()))
        pos = c.end()


def code_regions(text: str) -> List[Tuple[int, int]]:
    """Half-open (start, end) offsets of fenced blocks and inline code spans."""
    regions: List[Tuple[int, int]] = []
    pos = 0
    fence = None  # (char, length, start offset)
    for line in split_lines(text):
        start = pos
        pos += len(line)
        if fence is not None:
            if is_fence_close(line, fence[0], fence[1]):
                regions.append((fence[2], pos))
                fence = None
            continue
        opened = match_fence_open(line)
        if opened is not None:
            fence = (opened[0], opened[1], start)
            continue
        for s, e in _inline_code_spans(line):
            regions.append((start + s, start + e))
    if fence is not None:
        # unclosed fence runs to end of document
        regions.append((fence[2], len(text)))
    return regions


def has_unclosed_fence(text: str) -> bool:
    fence = None
    for line in split_lines(text):
        if fence is not None:
            if is_fence_close(line, fence[0], fence[1]):
                fence = None
            continue
        opened = match_fence_open(line)
        if opened is not None:
            fence = opened
    return fence is not None


def iter_segments(text: str) -> Iterator[Tuple[bool, int, str]]:
    """Yield (is_code, offset, chunk) covering ``text`` in order."""
    pos = 0
    for s, e in code_regions(text):
        if s > pos:
            yield False, pos, text[pos:s]
        yield True, s, text[s:e]
        pos = e
    if pos < len(text):
        yield False, pos, text[pos:]


def _rewrite_outside_code(text: str, fn) -> str:
    return "".join(chunk if is_code else fn(chunk) for is_code, _, chunk in iter_segments(text))


# ------------------------------ Detection ------------------------------------

_MARKER_RE = re.compile(r'<!--\s*(?:f:|/f:|#|\.)|\{%')


def detect_dialect(text: str) -> str:
    """First directive marker outside code decides; no marker means tags."""
    for is_code, _, chunk in iter_segments(text):
        if is_code:
            continue
        m = _MARKER_RE.search(chunk)
        if m:
            dialect = DIALECT_TAGS if m.group(0) == "{%" else DIALECT_COMMENTS
            logger.debug("detected %s dialect", dialect)
            return dialect
    return DEFAULT_DIALECT


# ------------------------------ Conversion -----------------------------------

_C_CLOSE_RE = re.compile(r'<!--\s*/f:(?P<name>[A-Za-z][\w-]*)\s*-->')
_C_SELF_RE = re.compile(r'<!--\s*f:(?P<name>[A-Za-z][\w-]*)(?P<attrs>(?:[^-]|-(?!->))*?)\s*/-->')
_C_OPEN_RE = re.compile(r'<!--\s*f:(?P<name>[A-Za-z][\w-]*)(?P<attrs>(?:[^-]|-(?!->))*?)\s*-->')
_C_ANNOT_RE = re.compile(r'<!--\s*(?P<ann>(?:[#.][A-Za-z_][\w-]*\s*)+)-->')

# a quoted string may contain '%' and '}' without ending the tag
_TAG_BODY = r'(?P<attrs>(?:"(?:[^"\\]|\\.)*"|[^"%/]|/(?!\s*%\})|%(?!\}))*?)'
_T_CLOSE_RE = re.compile(r'\{%\s*/(?P<name>[A-Za-z][\w-]*)\s*%\}')
_T_ANNOT_RE = re.compile(r'\{%\s*(?P<ann>(?:[#.][A-Za-z_][\w-]*\s*)+)%\}')
_T_TAG_RE = re.compile(r'\{%\s*(?P<name>[A-Za-z][\w-]*)' + _TAG_BODY + r'\s*(?P<slash>/)?\s*%\}')


def _tag(name: str, attrs: str, closing: str) -> str:
    attrs = attrs.strip()
    return "{% " + name + (" " + attrs if attrs else "") + " " + closing


def _comments_to_tags(chunk: str) -> str:
    chunk = _C_CLOSE_RE.sub(lambda m: "{% /" + m.group("name") + " %}", chunk)
    chunk = _C_SELF_RE.sub(lambda m: _tag(m.group("name"), m.group("attrs"), "/%}"), chunk)
    chunk = _C_OPEN_RE.sub(lambda m: _tag(m.group("name"), m.group("attrs"), "%}"), chunk)
    return _C_ANNOT_RE.sub(lambda m: "{% " + m.group("ann").strip() + " %}", chunk)


def _tags_to_comments(chunk: str) -> str:
    def _open(m: re.Match) -> str:
        attrs = m.group("attrs").strip()
        body = "f:" + m.group("name") + (" " + attrs if attrs else "")
        return "<!-- " + body + (" /-->" if m.group("slash") else " -->")

    chunk = _T_CLOSE_RE.sub(lambda m: "<!-- /f:" + m.group("name") + " -->", chunk)
    chunk = _T_ANNOT_RE.sub(lambda m: "<!-- " + m.group("ann").strip() + " -->", chunk)
    return _T_TAG_RE.sub(_open, chunk)


def to_tags(text: str) -> str:
    return _rewrite_outside_code(text, _comments_to_tags)


def to_comments(text: str) -> str:
    return _rewrite_outside_code(text, _tags_to_comments)


def normalize(text: str) -> Tuple[str, str]:
    """Return (tag-dialect text, detected dialect)."""
    dialect = detect_dialect(text)
    if dialect == DIALECT_COMMENTS:
        return to_tags(text), dialect
    return text, dialect
