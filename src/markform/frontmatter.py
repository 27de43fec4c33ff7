# src/markform/frontmatter.py
# Leading YAML metadata block:
#   ---
#   markform:
#     spec: "MF/0.1"
#   title: ...
#   ---

from __future__ import annotations
import logging
import re
from typing import Any, Dict, Tuple

import yaml

from .settings import FRONTMATTER_KEY, SPEC_VERSION

logger = logging.getLogger(__name__)

_FRONTMATTER_RE = re.compile(r'\A---[ \t]*\r?\n(?P<body>.*?)(?:\r?\n)?^---[ \t]*(?:\r?\n|\Z)', re.S | re.M)


def split_frontmatter(text: str) -> Tuple[Dict[str, Any], str]:
    """Return (metadata, body). Bad or missing metadata degrades to {}."""
    m = _FRONTMATTER_RE.match(text or "")
    if not m:
        return {}, text or ""
    body = text[m.end():]
    raw = m.group("body")
    if not raw.strip():
        return {}, body
    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        logger.warning("ignoring malformed frontmatter: %s", exc)
        return {}, body
    if not isinstance(data, dict):
        logger.warning("ignoring frontmatter that is not a mapping (%s)", type(data).__name__)
        return {}, body
    return data, body


def extract_spec_version(metadata: Dict[str, Any]) -> Tuple[str, Dict[str, Any]]:
    """Pull the reserved ``markform`` block out of the metadata."""
    rest = {k: v for k, v in metadata.items() if k != FRONTMATTER_KEY}
    block = metadata.get(FRONTMATTER_KEY)
    version = SPEC_VERSION
    if isinstance(block, dict) and block.get("spec") is not None:
        version = str(block["spec"])
    return version, rest


def render_frontmatter(spec_version: str, metadata: Dict[str, Any]) -> str:
    lines = ["---", f"{FRONTMATTER_KEY}:", f'  spec: "{spec_version}"']
    if metadata:
        dumped = yaml.safe_dump(metadata, sort_keys=False, default_flow_style=False, allow_unicode=True)
        lines.extend(dumped.rstrip("\n").split("\n"))
    lines.append("---")
    return "\n".join(lines)
