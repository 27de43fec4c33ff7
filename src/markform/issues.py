# src/markform/issues.py
# Outstanding work for a role: required fields that are unfilled or invalid,
# plus recommended issues for empty optional fields. A blocking approval
# checkpoint (checkboxes with approvalMode="blocking") gates every later field.

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from .model import ABORTED, ANSWERED, EMPTY, Field, Form
from .settings import LOWEST_TIER, PRIORITY_TIERS, PRIORITY_WEIGHTS, REASON_SCORES
from .validate import checkboxes_complete, validate_field


@dataclass(frozen=True)
class Issue:
    ref: str
    scope: str
    reason: str
    message: str
    severity: str
    priority: int
    blocked_by: Optional[str] = None

    def to_dict(self) -> Dict:
        out = {
            "ref": self.ref, "scope": self.scope, "reason": self.reason, "message": self.message,
            "severity": self.severity, "priority": self.priority,
        }
        if self.blocked_by:
            out["blockedBy"] = self.blocked_by
        return out


def priority_tier(field: Field, reason: str) -> int:
    score = PRIORITY_WEIGHTS.get(field.priority, 2) + REASON_SCORES.get(reason, 0)
    for minimum, tier in PRIORITY_TIERS:
        if score >= minimum:
            return tier
    return LOWEST_TIER


def _wants_all(roles: Optional[Iterable[str]]) -> bool:
    return not roles or "*" in roles


def _reason_for(field: Field, codes: List[str]) -> str:
    if field.state == EMPTY and field.kind != "checkboxes":
        return "required_missing"
    if "CHECKBOXES_INCOMPLETE" in codes or (field.kind == "checkboxes" and field.state == EMPTY):
        return "checkbox_incomplete"
    if "MIN_ITEMS" in codes or "MIN_ROWS_NOT_MET" in codes or "MIN_SELECTIONS" in codes:
        return "min_items_not_met"
    return "validation_error"


def _field_issues(field: Field) -> List[Issue]:
    if field.state in ("skipped", ABORTED):
        return []
    problems = validate_field(field)
    if problems:
        reason = _reason_for(field, [p.code for p in problems])
        severity = "required" if field.required or field.state == ANSWERED else "recommended"
        message = "; ".join(p.message for p in problems)
        return [Issue(field.id, "field", reason, message, severity, priority_tier(field, reason))]
    if field.state == EMPTY and not field.required:
        reason = "optional_unanswered"
        return [Issue(field.id, "field", reason, f'Optional field "{field.label}" has no value',
                      "recommended", priority_tier(field, reason))]
    return []


def blocking_checkpoint(form: Form) -> Optional[Field]:
    """First blocking checkboxes field that is not yet complete."""
    for f in form.iter_fields():
        if f.kind == "checkboxes" and f.attrs.approval_mode == "blocking" and not checkboxes_complete(f):
            return f
    return None


def list_issues(form: Form, roles: Optional[Iterable[str]] = None) -> List[Issue]:
    roles = list(roles) if roles is not None else None
    checkpoint = blocking_checkpoint(form)
    passed = False
    out: List[Issue] = []
    for f in form.iter_fields():
        blocked_by = checkpoint.id if checkpoint is not None and passed else None
        if checkpoint is not None and f.id == checkpoint.id:
            passed = True
        if not _wants_all(roles) and f.role not in roles:
            continue
        for issue in _field_issues(f):
            if blocked_by:
                issue = Issue(issue.ref, issue.scope, issue.reason, issue.message, issue.severity,
                              issue.priority, blocked_by)
            out.append(issue)
    return out


def is_complete(form: Form, roles: Optional[Iterable[str]] = None) -> bool:
    """True when nothing is aborted and no required issue remains."""
    if any(f.state == ABORTED for f in form.iter_fields()):
        return False
    return not any(i.severity == "required" for i in list_issues(form, roles))
