# src/markform/sentinels.py
# Reserved tokens that stand in for "skipped" / "aborted" instead of a value.
#   scalar value fences:  |SKIP|   |SKIP| (reason)   |ABORT|   |ABORT| (reason)
#   table cells:          %SKIP%   %SKIP% (reason)   %ABORT%   %ABORT% (reason)

from __future__ import annotations
import re
from typing import NamedTuple, Optional

from .model import ABORTED, SKIPPED

SCALAR_SENTINEL_RE = re.compile(r'^\s*\|(?P<tok>SKIP|ABORT)\|(?:\s*\((?P<reason>.*)\))?\s*$', re.I | re.S)
# %SKIP:reason% is accepted on input, never written
CELL_SENTINEL_RE = re.compile(
    r'^\s*%(?P<tok>SKIP|ABORT)(?::(?P<inline>[^%]*))?%(?:\s*\((?P<reason>.*)\))?\s*$', re.I | re.S
)
_EMBEDDED_RE = re.compile(r'^\s*(?:\|(?:SKIP|ABORT)\||%(?:SKIP|ABORT)[%:])', re.I)

_TOKENS = {"SKIP": SKIPPED, "ABORT": ABORTED}


class Sentinel(NamedTuple):
    state: str
    reason: Optional[str]


def _reason(text: Optional[str]) -> Optional[str]:
    if text is None:
        return None
    text = text.strip()
    return text or None


def parse_scalar_sentinel(text: str) -> Optional[Sentinel]:
    m = SCALAR_SENTINEL_RE.match(text or "")
    if not m:
        return None
    return Sentinel(_TOKENS[m.group("tok").upper()], _reason(m.group("reason")))


def parse_cell_sentinel(text: str) -> Optional[Sentinel]:
    m = CELL_SENTINEL_RE.match(text or "")
    if not m:
        return None
    reason = _reason(m.group("reason")) or _reason(m.group("inline"))
    return Sentinel(_TOKENS[m.group("tok").upper()], reason)


def format_scalar_sentinel(state: str, reason: Optional[str] = None) -> str:
    tok = "|SKIP|" if state == SKIPPED else "|ABORT|"
    return f"{tok} ({reason})" if reason else tok


def format_cell_sentinel(state: str, reason: Optional[str] = None) -> str:
    tok = "%SKIP%" if state == SKIPPED else "%ABORT%"
    return f"{tok} ({reason})" if reason else tok


def embedded_sentinel(text) -> Optional[str]:
    """Return 'skip'/'abort' when a patch value smuggles in a sentinel."""
    if not isinstance(text, str):
        return None
    m = _EMBEDDED_RE.match(text)
    if not m:
        return None
    return "skip" if "SKIP" in m.group(0).upper() else "abort"
