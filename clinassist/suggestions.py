"""Rules that score one patient snapshot against clinical thresholds.

Every rule is a pure function of the snapshot and an explicit ``now``;
re-evaluating an unchanged snapshot yields the same suggestions with the
same ids in the same order.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import List, Optional

from clinassist.config import AssistantSettings, get_settings
from clinassist.models import Severity, SuggestedAction, Suggestion, SuggestionCategory
from clinassist.procedures import label_for
from clinassist.roster import (
    STATUS_DISCHARGED,
    STATUS_IN_TREATMENT,
    STATUS_WAITING_DOCTOR,
    OrderSnapshot,
    Patient,
)
from clinassist.time_utils import minutes_between, utc_now

SPO2_LOW = 92
SPO2_CRITICAL = 88
BP_SYS_HIGH = 180
BP_SYS_LOW = 90
PULSE_HIGH = 120
PULSE_LOW = 50
TEMP_HIGH_C = 38.5
RR_HIGH = 24

_CLOSED_ORDER_STATUSES = {"completed", "resulted", "cancelled", "discontinued"}

# (history field, label, question, severity)
MISSING_FIELD_RULES = (
    ("allergy_history", "Allergy History", "Do you have any known drug allergies?", Severity.HIGH),
    ("drug_history", "Current Medications", "What medications are you currently taking?", Severity.MEDIUM),
    ("complaints", "Chief Complaints", "What brings you in today?", Severity.MEDIUM),
)


def _fmt(value: float) -> str:
    return f"{value:g}"


def _slug(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "_", text.lower()).strip("_") or "item"


def _order_action(sub_type: str, priority: Optional[str] = None) -> SuggestedAction:
    payload = {"subType": sub_type}
    if priority:
        payload["priority"] = priority
    return SuggestedAction(kind="order", label=f"Order {label_for(sub_type)}", payload=payload)


def _suggestion(
    patient: Patient,
    category: SuggestionCategory,
    metric: str,
    severity: Severity,
    message: str,
    now: datetime,
    action: Optional[SuggestedAction] = None,
) -> Suggestion:
    return Suggestion(
        id=f"{patient.id}:{category.value}:{metric}",
        subject_patient_id=patient.id,
        category=category,
        severity=severity,
        message=message,
        suggested_action=action,
        created_at=now,
        patient_name=patient.name,
    )


def check_vitals(patient: Patient, now: Optional[datetime] = None) -> List[Suggestion]:
    """Return one suggestion per breached vital sign."""

    now = now or utc_now()
    vitals = patient.vitals
    if vitals is None:
        return []
    found: List[Suggestion] = []
    vital = SuggestionCategory.VITALS

    if vitals.spo2 is not None:
        if vitals.spo2 < SPO2_CRITICAL:
            found.append(_suggestion(
                patient, vital, "spo2", Severity.HIGH,
                f"SpO2 is {_fmt(vitals.spo2)}% - Critical hypoxemia", now,
                _order_action("o2_nrb", "STAT"),
            ))
        elif vitals.spo2 < SPO2_LOW:
            found.append(_suggestion(
                patient, vital, "spo2", Severity.MEDIUM,
                f"SpO2 is {_fmt(vitals.spo2)}% - Consider O2 therapy?", now,
                _order_action("o2_nasal_cannula"),
            ))

    if vitals.bp_sys is not None:
        reading = _fmt(vitals.bp_sys)
        if vitals.bp_dia is not None:
            reading = f"{reading}/{_fmt(vitals.bp_dia)}"
        if vitals.bp_sys > BP_SYS_HIGH:
            found.append(_suggestion(
                patient, vital, "bp", Severity.HIGH,
                f"BP is {reading} - Hypertensive urgency", now,
                _order_action("bp_management"),
            ))
        elif vitals.bp_sys < BP_SYS_LOW:
            found.append(_suggestion(
                patient, vital, "bp", Severity.HIGH,
                f"BP is {reading} - Hypotension", now,
                _order_action("iv_fluid"),
            ))

    if vitals.pulse is not None:
        if vitals.pulse > PULSE_HIGH:
            found.append(_suggestion(
                patient, vital, "pulse", Severity.MEDIUM,
                f"Heart rate is {_fmt(vitals.pulse)} bpm - Tachycardia", now,
                _order_action("ecg"),
            ))
        elif vitals.pulse < PULSE_LOW:
            found.append(_suggestion(
                patient, vital, "pulse", Severity.MEDIUM,
                f"Heart rate is {_fmt(vitals.pulse)} bpm - Bradycardia", now,
                _order_action("ecg"),
            ))

    if vitals.temp_c is not None and vitals.temp_c > TEMP_HIGH_C:
        found.append(_suggestion(
            patient, vital, "temp", Severity.MEDIUM,
            f"Temperature is {_fmt(vitals.temp_c)}°C - Fever", now,
            _order_action("fever_workup"),
        ))

    if vitals.rr is not None and vitals.rr > RR_HIGH:
        found.append(_suggestion(
            patient, vital, "rr", Severity.MEDIUM,
            f"Respiratory rate is {_fmt(vitals.rr)}/min - Tachypnea", now,
            _order_action("abg"),
        ))
    return found


def detect_missing_fields(patient: Patient, now: Optional[datetime] = None) -> List[Suggestion]:
    now = now or utc_now()
    found: List[Suggestion] = []
    for field_name, label, question, severity in MISSING_FIELD_RULES:
        if patient.has_documented(field_name):
            continue
        if field_name == "allergy_history":
            action = SuggestedAction(kind="mark_nkda", label="Mark NKDA")
        else:
            action = SuggestedAction(kind="ask", label="Ask patient", payload={"question": question})
        found.append(_suggestion(
            patient, SuggestionCategory.DOCUMENTATION, field_name, severity,
            f"{label} not documented", now, action,
        ))
    return found


def _result_matches(order: OrderSnapshot, result_name: str) -> bool:
    name = result_name.strip().lower()
    if not name:
        return False
    candidates = [order.label.lower()]
    if order.sub_type:
        candidates.append(order.sub_type.lower().replace("_", " "))
    return any(candidate and (candidate in name or name in candidate) for candidate in candidates)


def check_time_based(
    patient: Patient,
    now: Optional[datetime] = None,
    settings: Optional[AssistantSettings] = None,
) -> List[Suggestion]:
    """Flag long waits, delayed lab turnaround and missing discharge summaries."""

    now = now or utc_now()
    settings = settings or get_settings()
    found: List[Suggestion] = []
    waited = minutes_between(patient.registration_time, now)

    if patient.status == STATUS_WAITING_DOCTOR and waited is not None and waited > settings.wait_threshold_minutes:
        minutes = int(waited)
        severity = Severity.HIGH if waited > settings.long_wait_minutes else Severity.MEDIUM
        found.append(_suggestion(
            patient, SuggestionCategory.WAIT, "queue", severity,
            f"Waiting {minutes} min", now,
            SuggestedAction(kind="navigate", label="See Patient", payload={"route": f"/patient/{patient.id}/medview"}),
        ))

    if patient.status == STATUS_IN_TREATMENT:
        delayed: List[str] = []
        for order in patient.orders:
            if order.category != "investigation" or order.status.lower() in _CLOSED_ORDER_STATUSES:
                continue
            if any(_result_matches(order, result.name) for result in patient.results):
                continue
            age = minutes_between(order.created_at or patient.registration_time, now)
            if age is not None and age > settings.wait_threshold_minutes:
                delayed.append(order.label or label_for(order.sub_type or ""))
        if delayed:
            found.append(_suggestion(
                patient, SuggestionCategory.LABS, "turnaround", Severity.LOW,
                f"Lab results may be delayed: {', '.join(delayed)}", now,
            ))

    if patient.status == STATUS_DISCHARGED and not patient.discharge_summary:
        found.append(_suggestion(
            patient, SuggestionCategory.WORKFLOW, "discharge_summary", Severity.MEDIUM,
            "Discharge summary not yet created", now,
            SuggestedAction(kind="navigate", label="Write summary", payload={"route": f"/patient/{patient.id}/discharge"}),
        ))
    return found


def check_abnormal_results(patient: Patient, now: Optional[datetime] = None) -> List[Suggestion]:
    now = now or utc_now()
    found: List[Suggestion] = []
    for index, result in enumerate(patient.results):
        if not result.is_abnormal:
            continue
        metric = result.result_id or f"{_slug(result.name)}_{index}"
        value = f"{result.value} {result.unit}".strip() if result.unit else (result.value or "")
        found.append(_suggestion(
            patient, SuggestionCategory.LABS, metric, Severity.MEDIUM,
            f"{result.name}: {value} (abnormal)", now,
        ))
    return found


def suggestions_for_patient(
    patient: Patient,
    now: Optional[datetime] = None,
    settings: Optional[AssistantSettings] = None,
) -> List[Suggestion]:
    """Run every rule for ``patient`` in a fixed order."""

    now = now or utc_now()
    return (
        check_vitals(patient, now)
        + detect_missing_fields(patient, now)
        + check_time_based(patient, now, settings)
        + check_abnormal_results(patient, now)
    )


__all__ = [
    "check_vitals",
    "detect_missing_fields",
    "check_time_based",
    "check_abnormal_results",
    "suggestions_for_patient",
]
