# src/markform/tokenizer.py
# Tokenizes tag-dialect text into flat directive tokens.
# Tokens:
#   {"type": "open"|"close"|"self"|"annotation", "name": str, "attrs": dict,
#    "classes": list, "start": int, "end": int, "line": int, "column": int}
# Text between tokens is not tokenized; callers slice the source with
# start/end offsets. Fenced code and inline code are skipped.

from __future__ import annotations
import re
from typing import Any, Dict, List, Tuple

from .errors import ParseError
from .preprocess import iter_segments

# ------------------------------ Patterns -------------------------------------

# {% ... %}, where a quoted string may contain "%}"
TAG_RE = re.compile(r'\{%(?P<inner>(?:"(?:[^"\\]|\\.)*"|[^"%]|%(?!\}))*?)%\}', re.S)

NAME_RE = re.compile(r'\s*(?P<name>[A-Za-z][\w-]*)')

_STRING = r'"(?:[^"\\]|\\.)*"'
_NUMBER = r'-?\d+(?:\.\d+)?(?:[eE][+-]?\d+)?'
_SCALAR = rf'(?:{_STRING}|{_NUMBER}|true|false|null)'
_ARRAY = rf'\[\s*(?:{_SCALAR}\s*(?:,\s*{_SCALAR}\s*)*,?\s*)?\]'

ATTR_RE = re.compile(
    rf'\s*(?:(?P<short>[#.][A-Za-z_][\w-]*)'
    rf'|(?P<key>[A-Za-z_][\w-]*)\s*=\s*(?P<val>{_STRING}|{_ARRAY}|{_NUMBER}|true|false|null))'
)
SCALAR_RE = re.compile(_SCALAR)

# ------------------------------ Values ---------------------------------------


def _scalar(text: str) -> Any:
    if text.startswith('"'):
        return re.sub(r'\\(.)', r'\1', text[1:-1], flags=re.S)
    if text == "true":
        return True
    if text == "false":
        return False
    if text == "null":
        return None
    if re.fullmatch(r'-?\d+', text):
        return int(text)
    return float(text)


def parse_value(text: str) -> Any:
    if text.startswith("["):
        return [_scalar(m.group(0)) for m in SCALAR_RE.finditer(text[1:-1])]
    return _scalar(text)


def parse_attrs(text: str, line: int = None, column: int = None) -> Tuple[Dict[str, Any], List[str]]:
    """Parse ``key=value`` pairs and ``#id``/``.class`` shorthand."""
    attrs: Dict[str, Any] = {}
    classes: List[str] = []
    pos = 0
    rest = text.rstrip()
    while pos < len(rest):
        m = ATTR_RE.match(rest, pos)
        if not m or m.end() == pos:
            raise ParseError(f"Malformed attribute near '{rest[pos:].strip()[:30]}'", line, column)
        if m.group("short"):
            short = m.group("short")
            if short[0] == "#":
                attrs["id"] = short[1:]
            else:
                classes.append(short[1:])
        else:
            key = m.group("key")
            if key in attrs:
                raise ParseError(f"Duplicate attribute '{key}'", line, column)
            attrs[key] = parse_value(m.group("val"))
        pos = m.end()
    return attrs, classes


# ------------------------------ Tokenizer ------------------------------------


def _line_col(text: str, offset: int) -> Tuple[int, int]:
    line = text.count("\n", 0, offset) + 1
    col = offset - (text.rfind("\n", 0, offset) + 1) + 1
    return line, col


def _emit(tokens: List[Dict], t: str, name: str, attrs: Dict, classes: List[str],
          start: int, end: int, loc: Tuple[int, int]):
    tokens.append({
        "type": t, "name": name, "attrs": attrs, "classes": classes,
        "start": start, "end": end, "line": loc[0], "column": loc[1],
    })


def _classify(inner: str, start: int, end: int, loc: Tuple[int, int], tokens: List[Dict]):
    s = inner.strip()
    if not s:
        raise ParseError("Empty tag", *loc)
    if s.startswith("/"):
        m = NAME_RE.fullmatch(s[1:])
        if not m:
            raise ParseError(f"Malformed closing tag '{{% {s} %}}'", *loc)
        _emit(tokens, "close", m.group("name"), {}, [], start, end, loc)
        return
    if s[0] in "#.":
        attrs, classes = parse_attrs(s, *loc)
        _emit(tokens, "annotation", "", attrs, classes, start, end, loc)
        return
    m = NAME_RE.match(s)
    if not m or (m.end() < len(s) and s[m.end()] not in " \t\r\n/"):
        raise ParseError(f"Malformed tag '{{% {s} %}}'", *loc)
    body = s[m.end():]
    kind = "open"
    if body.rstrip().endswith("/"):
        kind = "self"
        body = body.rstrip()[:-1]
    attrs, classes = parse_attrs(body, *loc)
    _emit(tokens, kind, m.group("name"), attrs, classes, start, end, loc)


def tokenize(text: str) -> List[Dict]:
    tokens: List[Dict] = []
    for is_code, offset, chunk in iter_segments(text):
        if is_code:
            continue
        for m in TAG_RE.finditer(chunk):
            start = offset + m.start()
            end = offset + m.end()
            _classify(m.group("inner"), start, end, _line_col(text, start), tokens)
    return tokens
