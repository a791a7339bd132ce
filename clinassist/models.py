"""Value types shared across the assistant core."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Set

from clinassist.time_utils import parse_timestamp, utc_now


class Severity(str, enum.Enum):
    """Suggestion severity, totally ordered high > medium > low."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.HIGH: 0, Severity.MEDIUM: 1, Severity.LOW: 2}


class SuggestionCategory(str, enum.Enum):
    VITALS = "vitals"
    DOCUMENTATION = "documentation"
    WAIT = "wait"
    LABS = "labs"
    WORKFLOW = "workflow"
    PATTERN = "pattern"


class Role(str, enum.Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


@dataclass(frozen=True)
class PatientRef:
    """Reference to a roster patient; the roster owns the record."""

    id: str
    name: str


@dataclass(frozen=True)
class SuggestedAction:
    """Shortcut attached to a suggestion (``order``, ``navigate``, ``ask``, ``mark_nkda``)."""

    kind: str
    label: str = ""
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Suggestion:
    id: str
    subject_patient_id: str
    category: SuggestionCategory
    severity: Severity
    message: str
    suggested_action: Optional[SuggestedAction] = None
    personalized: bool = False
    created_at: datetime = field(default_factory=utc_now)
    patient_name: Optional[str] = None


@dataclass(frozen=True)
class Message:
    id: str
    role: Role
    text: str
    created_at: datetime = field(default_factory=utc_now)
    focus_patient_id: Optional[str] = None
    is_error: bool = False


@dataclass
class OrderPattern:
    condition_keyword: str
    usual_order_labels: List[str] = field(default_factory=list)
    frequency_count: int = 1
    last_used_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "conditionKeyword": self.condition_keyword,
            "usualOrderLabels": list(self.usual_order_labels),
            "frequencyCount": self.frequency_count,
            "lastUsedAt": self.last_used_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "OrderPattern":
        return cls(
            condition_keyword=str(data.get("conditionKeyword", "")),
            usual_order_labels=list(dict.fromkeys(data.get("usualOrderLabels") or [])),
            frequency_count=int(data.get("frequencyCount", 1)),
            last_used_at=parse_timestamp(data.get("lastUsedAt")) or utc_now(),
        )


DEFAULT_UI_PREFERENCES: Dict[str, Any] = {
    "darkMode": False,
    "defaultView": "queue",
    "showVitalsTrend": True,
    "briefingStyle": "concise",
    "notificationLevel": "critical",
}


@dataclass
class InteractionHistory:
    accepted_count: int = 0
    rejected_count: int = 0
    dismissal_reasons: List[str] = field(default_factory=list)
    total_interactions: int = 0


@dataclass
class ShiftContext:
    started_at: datetime = field(default_factory=utc_now)
    patients_seen: Set[str] = field(default_factory=set)


@dataclass
class OperatorProfile:
    """Per-operator habits and interaction statistics."""

    id: str
    name: str
    contact: str = ""
    order_patterns: List[OrderPattern] = field(default_factory=list)
    ui_preferences: Dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_UI_PREFERENCES))
    history: InteractionHistory = field(default_factory=InteractionHistory)
    session: ShiftContext = field(default_factory=ShiftContext)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "contact": self.contact,
            "preferences": {
                "orderPatterns": [pattern.to_dict() for pattern in self.order_patterns],
                "uiPrefs": dict(self.ui_preferences),
            },
            "history": {
                "acceptedCount": self.history.accepted_count,
                "rejectedCount": self.history.rejected_count,
                "dismissalReasons": list(self.history.dismissal_reasons),
                "totalInteractions": self.history.total_interactions,
            },
            "session": {
                "startedAt": self.session.started_at.isoformat(),
                "patientsSeen": sorted(self.session.patients_seen),
            },
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "OperatorProfile":
        preferences = data.get("preferences") or {}
        history = data.get("history") or {}
        session = data.get("session") or {}
        ui_prefs = dict(DEFAULT_UI_PREFERENCES)
        ui_prefs.update(preferences.get("uiPrefs") or {})
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", "")),
            contact=str(data.get("contact", "")),
            order_patterns=[OrderPattern.from_dict(item) for item in preferences.get("orderPatterns") or []],
            ui_preferences=ui_prefs,
            history=InteractionHistory(
                accepted_count=int(history.get("acceptedCount", 0)),
                rejected_count=int(history.get("rejectedCount", 0)),
                dismissal_reasons=list(history.get("dismissalReasons") or []),
                total_interactions=int(history.get("totalInteractions", 0)),
            ),
            session=ShiftContext(
                started_at=parse_timestamp(session.get("startedAt")) or utc_now(),
                patients_seen=set(session.get("patientsSeen") or []),
            ),
            created_at=parse_timestamp(data.get("createdAt")) or utc_now(),
            updated_at=parse_timestamp(data.get("updatedAt")) or utc_now(),
        )


__all__ = [
    "Severity",
    "SuggestionCategory",
    "Role",
    "PatientRef",
    "SuggestedAction",
    "Suggestion",
    "Message",
    "OrderPattern",
    "DEFAULT_UI_PREFERENCES",
    "InteractionHistory",
    "ShiftContext",
    "OperatorProfile",
]
