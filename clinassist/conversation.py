"""Conversation context tracking and pronoun resolution.

The tracker owns the session's focused and last-mentioned patient
references, bounded recent topics/entities and the message history used for
prompt construction.  Resolution is textual augmentation only: a matched
pronoun gets a bracketed hint appended and the model does the rest.
"""

from __future__ import annotations

import re
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Deque, Dict, List, Optional, Pattern, Sequence

import structlog

from clinassist.config import AssistantSettings, get_settings
from clinassist.models import Message, PatientRef
from clinassist.roster import Patient
from clinassist.time_utils import ensure_utc, utc_now
from clinassist.vocabulary import CONDITIONS, LAB_TESTS, MEDICATIONS, find_keywords


logger = structlog.get_logger(__name__)

TOPIC_LIMIT = 10
ENTITY_LIMIT = 5
SUMMARY_TOPIC_COUNT = 5

ENTITY_CATEGORIES = ("names", "lab_tests", "medications", "conditions")

_PATIENT_REFERENCE_PATTERNS: Sequence[Pattern[str]] = (
    re.compile(r"\b(her|him|them|this patient|that patient|the patient)\b", re.IGNORECASE),
    re.compile(r"\bwhat about (her|him|them)\b", re.IGNORECASE),
    re.compile(r"\bhow is (she|he|they)\b", re.IGNORECASE),
    re.compile(r"\b(she|he|they) (has|have|is|are)\b", re.IGNORECASE),
)

_LAB_REFERENCE_PATTERNS: Sequence[Pattern[str]] = (
    re.compile(r"\b(it|that|those results?)\b.*\b(dropped?|increased?|changed?|normal)\b", re.IGNORECASE),
    re.compile(r"\bcheck if (it|that) (dropped?|increased?|changed?)\b", re.IGNORECASE),
    re.compile(r"\bwhat about (it|that|those)\b", re.IGNORECASE),
)


def _push_front(items: List[str], value: str, limit: int, *, casefold: bool = False) -> List[str]:
    """Move ``value`` to the front of ``items`` without duplicates and cap the length."""

    needle = value.lower() if casefold else value
    kept = [item for item in items if (item.lower() if casefold else item) != needle]
    return ([value] + kept)[:limit]


def _name_pattern(name: str) -> Optional[Pattern[str]]:
    name = name.strip()
    if not name:
        return None
    return re.compile(r"\b" + re.escape(name) + r"\b", re.IGNORECASE)


@dataclass
class ConversationContext:
    focused_patient: Optional[PatientRef] = None
    last_mentioned_patient: Optional[PatientRef] = None
    recent_topics: List[str] = field(default_factory=list)
    recent_entities: Dict[str, List[str]] = field(
        default_factory=lambda: {category: [] for category in ENTITY_CATEGORIES}
    )
    session_started_at: datetime = field(default_factory=utc_now)


class ConversationContextTracker:
    """Session-scoped conversation state."""

    def __init__(
        self,
        settings: Optional[AssistantSettings] = None,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._settings = settings or get_settings()
        self._clock = clock
        self.context = ConversationContext(session_started_at=clock())
        self.history: Deque[Message] = deque(maxlen=self._settings.message_history_limit)

    def reset(self) -> None:
        self.context = ConversationContext(session_started_at=self._clock())
        self.history.clear()
        logger.info("conversation_context_reset")

    def is_stale(self, now: Optional[datetime] = None) -> bool:
        now = ensure_utc(now or self._clock())
        limit = timedelta(minutes=self._settings.context_stale_minutes)
        return now - ensure_utc(self.context.session_started_at) > limit

    def add_topic(self, topic: str) -> None:
        self.context.recent_topics = _push_front(
            self.context.recent_topics, topic.lower(), TOPIC_LIMIT, casefold=True
        )

    def _add_entity(self, category: str, value: str) -> None:
        entities = self.context.recent_entities
        entities[category] = _push_front(entities.get(category, []), value, ENTITY_LIMIT)

    def set_focused_patient(self, patient: Optional[Patient]) -> None:
        if patient is None:
            self.context.focused_patient = None
            return
        ref = PatientRef(id=patient.id, name=patient.name)
        self.context.focused_patient = ref
        self.context.last_mentioned_patient = ref
        self._add_entity("names", patient.name)

    def extract_entities(self, text: str, roster: Sequence[Patient]) -> None:
        """Register roster names and vocabulary hits found in ``text``."""

        if not text:
            return
        for patient in roster:
            full = _name_pattern(patient.name)
            first = _name_pattern(patient.first_name)
            if (full and full.search(text)) or (first and first.search(text)):
                self._add_entity("names", patient.name)
                self.context.last_mentioned_patient = PatientRef(id=patient.id, name=patient.name)

        for test in find_keywords(text, LAB_TESTS):
            self._add_entity("lab_tests", test.upper())
            self.add_topic("labs")
        for condition in find_keywords(text, CONDITIONS):
            self._add_entity("conditions", condition)
            self.add_topic(condition)
        for medication in find_keywords(text, MEDICATIONS):
            self._add_entity("medications", medication)
            self.add_topic("medications")

    def reference_patient(self) -> Optional[PatientRef]:
        return self.context.focused_patient or self.context.last_mentioned_patient

    def resolve_pronouns(self, text: str, roster: Sequence[Patient] = ()) -> str:
        """Append a ``[Context: referring to X]`` hint when a reference pattern matches.

        A lab reference takes precedence over a patient reference when both match.
        """

        resolved = text
        reference = self.reference_patient()
        if reference is not None and any(pattern.search(text) for pattern in _PATIENT_REFERENCE_PATTERNS):
            resolved = f"{text} [Context: referring to {reference.name}]"

        labs = self.context.recent_entities.get("lab_tests") or []
        if labs and any(pattern.search(text) for pattern in _LAB_REFERENCE_PATTERNS):
            resolved = f"{text} [Context: referring to {labs[0]}]"
        return resolved

    def record_message(self, message: Message, roster: Sequence[Patient]) -> None:
        self.history.append(message)
        self.extract_entities(message.text, roster)

    def recent_messages(self, limit: Optional[int] = None) -> List[Message]:
        messages = list(self.history)
        if limit is not None:
            messages = messages[-limit:] if limit > 0 else []
        return messages

    def build_context_summary(self) -> str:
        ctx = self.context
        lines: List[str] = []
        if ctx.focused_patient:
            lines.append(f"Current patient in focus: {ctx.focused_patient.name}")
        last = ctx.last_mentioned_patient
        if last and (ctx.focused_patient is None or last.id != ctx.focused_patient.id):
            lines.append(f"Last mentioned patient: {last.name}")
        if ctx.recent_topics:
            lines.append("Recent topics: " + ", ".join(ctx.recent_topics[:SUMMARY_TOPIC_COUNT]))
        labs = ctx.recent_entities.get("lab_tests") or []
        if labs:
            lines.append("Recently discussed labs: " + ", ".join(labs))
        return "".join(line + "\n" for line in lines)


__all__ = ["ConversationContext", "ConversationContextTracker", "TOPIC_LIMIT", "ENTITY_LIMIT"]
