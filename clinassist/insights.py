"""Roster-wide insight aggregation."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Optional

import structlog

from clinassist.config import AssistantSettings
from clinassist.models import OperatorProfile, Severity, SuggestedAction, Suggestion, SuggestionCategory
from clinassist.operator_memory import OperatorMemory
from clinassist.roster import Patient
from clinassist.suggestions import suggestions_for_patient
from clinassist.time_utils import utc_now


logger = structlog.get_logger(__name__)

PATTERN_PREVIEW_LABELS = 2


def pattern_suggestion(patient: Patient, profile: OperatorProfile, now: datetime) -> Optional[Suggestion]:
    """Return a personalised order suggestion when the leading complaint matches a learned pattern."""

    complaint = patient.leading_complaint
    if not complaint:
        return None
    pattern = OperatorMemory.match_pattern(profile, complaint)
    if pattern is None:
        return None
    preview = ", ".join(pattern.usual_order_labels[:PATTERN_PREVIEW_LABELS])
    return Suggestion(
        id=f"{patient.id}:{SuggestionCategory.PATTERN.value}:{pattern.condition_keyword}",
        subject_patient_id=patient.id,
        category=SuggestionCategory.PATTERN,
        severity=Severity.LOW,
        message=f"You usually order {preview} for {pattern.condition_keyword}",
        suggested_action=SuggestedAction(
            kind="order",
            label="Draft Orders",
            payload={"orders": list(pattern.usual_order_labels)},
        ),
        personalized=True,
        created_at=now,
        patient_name=patient.name,
    )


def sort_by_severity(suggestions: Iterable[Suggestion]) -> List[Suggestion]:
    # ``sorted`` is stable, so rule order survives within a severity.
    return sorted(suggestions, key=lambda item: item.severity.rank)


def aggregate(
    patients: Iterable[Patient],
    profile: Optional[OperatorProfile] = None,
    now: Optional[datetime] = None,
    settings: Optional[AssistantSettings] = None,
) -> List[Suggestion]:
    """Recompute every suggestion for ``patients`` and rank high to low."""

    now = now or utc_now()
    collected: List[Suggestion] = []
    seen_ids = set()
    patient_count = 0
    for patient in patients:
        patient_count += 1
        candidates = suggestions_for_patient(patient, now, settings)
        if profile is not None:
            personalised = pattern_suggestion(patient, profile, now)
            if personalised is not None:
                candidates.append(personalised)
        for suggestion in candidates:
            if suggestion.id in seen_ids:
                continue
            seen_ids.add(suggestion.id)
            collected.append(suggestion)
    ranked = sort_by_severity(collected)
    logger.debug("insights_aggregated", patients=patient_count, insights=len(ranked))
    return ranked


__all__ = ["aggregate", "pattern_suggestion", "sort_by_severity"]
