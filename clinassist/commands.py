"""Map free text onto the typed action grammar.

Patterns are tried in declaration order and the first match wins; text that
matches nothing returns ``None`` and the caller falls back to free-form chat.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Pattern, Sequence, Tuple

from clinassist.actions import ExecutableAction, NavigateAction, NoteAction, OrderAction, WorkflowAction
from clinassist.procedures import get_procedure
from clinassist.roster import Patient


@dataclass(frozen=True)
class OrderPhrase:
    pattern: Pattern[str]
    sub_type: str
    category: str


def _phrase(regex: str, sub_type: str, category: str) -> OrderPhrase:
    return OrderPhrase(re.compile(regex, re.IGNORECASE), sub_type, category)


ORDER_PHRASES: Tuple[OrderPhrase, ...] = (
    _phrase(r"\border\s+(?:cbc|complete blood count)\b", "cbc", "investigation"),
    _phrase(r"\border\s+(?:lft|liver function)\b", "lft", "investigation"),
    _phrase(r"\border\s+(?:rft|renal function|kidney function)\b", "rft", "investigation"),
    _phrase(r"\border\s+(?:electrolytes|lytes)\b", "electrolytes", "investigation"),
    _phrase(r"\border\s+(?:chest\s*x[\s-]*ray|cxr)\b", "chest_xray", "radiology"),
    _phrase(r"\border\s+(?:ct\s*scan|ct)\b", "ct_scan", "radiology"),
    _phrase(r"\bstart\s+o2\b|\border\s+o2\b|\boxygen\s+therapy\b", "o2_nasal_cannula", "procedure"),
    _phrase(r"\bbi[\s-]*pap\b", "bipap", "procedure"),
    _phrase(r"\bc[\s-]*pap\b", "cpap", "procedure"),
    _phrase(r"\bnebuli[sz]ation\b|\bneb\b", "nebulization", "procedure"),
    _phrase(r"\bfoley\b|\burinary catheter\b", "foley_catheter", "procedure"),
    _phrase(r"\bng\s*tube\b|\bnasogastric\b", "ng_tube", "procedure"),
    _phrase(r"\biv\s*line\b|\biv\s*cannula", "iv_cannulation", "procedure"),
)

WORKFLOW_PHRASES: Tuple[Tuple[Pattern[str], str], ...] = (
    (re.compile(r"\bfever\s*work[\s-]*up\b", re.IGNORECASE), "fever-workup"),
    (re.compile(r"\bacs\s+protocol\b|\bchest\s+pain\s+protocol\b", re.IGNORECASE), "acs-protocol"),
    (re.compile(r"\bdischarge\s+prep(?:aration)?\b", re.IGNORECASE), "discharge-prep"),
)

# (pattern, is_escalation); group 1 carries the note body.
NOTE_PHRASES: Tuple[Tuple[Pattern[str], bool], ...] = (
    (re.compile(r"^\s*escalate\s*[:\-]?\s+(.+)$", re.IGNORECASE | re.DOTALL), True),
    (re.compile(r"^\s*(?:add\s+(?:a\s+)?)?note\s*[:\-]\s*(.+)$", re.IGNORECASE | re.DOTALL), False),
    (re.compile(r"^\s*add\s+(?:a\s+)?note\s+(.+)$", re.IGNORECASE | re.DOTALL), False),
)

NAVIGATION_PHRASES: Tuple[Tuple[Pattern[str], str], ...] = (
    (re.compile(r"\bgo\s+to\s+dashboard\b|\bback\s+to\s+dashboard\b|\bhome\b", re.IGNORECASE), "/"),
    (re.compile(r"\bgo\s+to\s+beds\b|\bbed\s+manager\b", re.IGNORECASE), "/beds"),
    (re.compile(r"\bgo\s+to\s+triage\b", re.IGNORECASE), "/triage"),
)

PATIENT_OPEN = re.compile(r"\bopen\s+(.+)|\bsee\s+(.+)|\bpatient\s+(.+)", re.IGNORECASE)


def target_patient(focused: Optional[Patient], roster: Sequence[Patient]) -> Optional[Patient]:
    """Return the focused patient, else the first roster entry."""

    if focused is not None:
        return focused
    return roster[0] if roster else None


def _parse_order(text: str, target: Optional[Patient]) -> Optional[OrderAction]:
    for phrase in ORDER_PHRASES:
        if not phrase.pattern.search(text):
            continue
        if target is None:
            return None
        procedure = get_procedure(phrase.sub_type)
        return OrderAction(
            patient_id=target.id,
            category=phrase.category,
            sub_type=phrase.sub_type,
            label=procedure.label if procedure else phrase.sub_type,
            priority=procedure.default_priority if procedure else "routine",
        )
    return None


def _matches_order_phrase(text: str) -> bool:
    return any(phrase.pattern.search(text) for phrase in ORDER_PHRASES)


def _parse_workflow(text: str, target: Optional[Patient]) -> Optional[WorkflowAction]:
    for pattern, workflow_id in WORKFLOW_PHRASES:
        if pattern.search(text):
            return WorkflowAction(workflow_id=workflow_id, patient_id=target.id if target else None)
    return None


def _parse_note(text: str, target: Optional[Patient]) -> Tuple[bool, Optional[NoteAction]]:
    for pattern, escalation in NOTE_PHRASES:
        match = pattern.match(text)
        if not match:
            continue
        body = match.group(1).strip()
        if target is None or not body:
            return True, None
        note_type = "Escalation" if escalation else "TeamNote"
        return True, NoteAction(patient_id=target.id, content=body, note_type=note_type, is_escalation=escalation)
    return False, None


def _parse_navigation(text: str) -> Optional[NavigateAction]:
    for pattern, route in NAVIGATION_PHRASES:
        if pattern.search(text):
            return NavigateAction(route=route)
    return None


def _parse_patient_open(text: str, roster: Sequence[Patient]) -> Optional[NavigateAction]:
    match = PATIENT_OPEN.search(text)
    if not match:
        return None
    term = next(group for group in match.groups() if group is not None)
    term = term.strip().rstrip("?.!").strip().lower()
    if not term:
        return None
    for patient in roster:
        if term in patient.name.lower() or term in patient.id.lower():
            return NavigateAction(route=f"/patient/{patient.id}/medview")
    return None


def parse_command(
    text: str,
    focused_patient: Optional[Patient],
    roster: Sequence[Patient],
) -> Optional[ExecutableAction]:
    """Return the first action whose phrase matches ``text``, else ``None``."""

    if not text or not text.strip():
        return None
    target = target_patient(focused_patient, roster)

    if _matches_order_phrase(text):
        return _parse_order(text, target)

    workflow = _parse_workflow(text, target)
    if workflow is not None:
        return workflow

    matched_note, note = _parse_note(text, target)
    if matched_note:
        return note

    navigation = _parse_navigation(text)
    if navigation is not None:
        return navigation

    return _parse_patient_open(text, roster)


def describe_grammar() -> List[str]:
    """Return example phrases for help text."""

    return [
        "order CBC / LFT / RFT / electrolytes / chest x-ray / CT",
        "start O2, BiPAP, CPAP, nebulization, foley, NG tube, IV line",
        "fever workup, ACS protocol, discharge prep",
        "note: <text>, escalate: <text>",
        "go to dashboard / beds / triage",
        "open <patient name or id>",
    ]


__all__ = ["parse_command", "target_patient", "describe_grammar", "ORDER_PHRASES"]
