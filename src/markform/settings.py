# src/markform/settings.py
# Engine-wide defaults. Per-document settings live in the frontmatter
# (``markform: {spec: ...}``); everything here is a plain constant.

from __future__ import annotations

SPEC_VERSION = "MF/0.1"
FRONTMATTER_KEY = "markform"

AGENT_ROLE = "agent"
USER_ROLE = "user"
DEFAULT_ROLE = AGENT_ROLE
ROLES = (USER_ROLE, AGENT_ROLE)

DEFAULT_PRIORITY = "medium"
PRIORITIES = ("high", "medium", "low")

DEFAULT_CHECKBOX_MODE = "multi"
CHECKBOX_MODES = ("multi", "simple", "explicit")

DEFAULT_APPROVAL_MODE = "none"
APPROVAL_MODES = ("none", "blocking")

# Fields written directly under the form end up here.
IMPLICIT_GROUP_ID = "default"

DIALECT_TAGS = "tags"
DIALECT_COMMENTS = "comments"
DEFAULT_DIALECT = DIALECT_TAGS

DOC_TAGS = ("description", "instructions", "documentation")

# Issue ordering: field priority weight + reason score -> tier.
PRIORITY_WEIGHTS = {"high": 3, "medium": 2, "low": 1}
REASON_SCORES = {
    "required_missing": 3,
    "validation_error": 2,
    "checkbox_incomplete": 2,
    "min_items_not_met": 2,
    "optional_unanswered": 0,
}
# (minimum score, tier) checked in order
PRIORITY_TIERS = ((5, 1), (4, 2), (3, 3), (2, 4))
LOWEST_TIER = 5
