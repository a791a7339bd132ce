"""Start-of-shift briefing built from the roster and the operator profile."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Sequence

from clinassist.models import OperatorProfile
from clinassist.operator_memory import OperatorMemory
from clinassist.roster import STATUS_DISCHARGED, STATUS_WAITING_DOCTOR, Patient
from clinassist.time_utils import minutes_between, utc_now

BUSY_DAY_PATIENTS = 10
TEAMWORK_ACCEPTANCE = 80
TEAMWORK_MIN_INTERACTIONS = 20
CRITICAL_TRIAGE = "Red"


@dataclass(frozen=True)
class PriorityPatient:
    patient_id: str
    patient_name: str
    reason: str


@dataclass(frozen=True)
class Briefing:
    greeting: str
    summary: str
    critical_count: int
    queue_count: int
    discharge_ready_count: int
    top_priority: Optional[PriorityPatient] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "greeting": self.greeting,
            "summary": self.summary,
            "criticalCount": self.critical_count,
            "queueCount": self.queue_count,
            "dischargeReadyCount": self.discharge_ready_count,
        }
        if self.top_priority is not None:
            payload["topPriority"] = {
                "patientId": self.top_priority.patient_id,
                "patientName": self.top_priority.patient_name,
                "reason": self.top_priority.reason,
            }
        return payload


def format_wait(minutes: float) -> str:
    whole = int(minutes)
    if whole < 60:
        return f"{whole} min"
    return f"{whole // 60}h {whole % 60}m"


def greeting_for(operator_name: str, now: datetime, profile: Optional[OperatorProfile] = None) -> str:
    """Return a time-of-day greeting, personalised from the profile when one is given."""

    hour = now.hour
    if hour < 12:
        salutation = "Good morning"
    elif hour < 17:
        salutation = "Good afternoon"
    else:
        salutation = "Good evening"
    first_name = operator_name.split()[0] if operator_name.split() else operator_name
    greeting = f"{salutation}, Dr. {first_name}"
    if profile is None:
        return greeting
    if len(profile.session.patients_seen) > BUSY_DAY_PATIENTS:
        return f"{greeting}. Busy day!"
    if (
        profile.history.total_interactions > TEAMWORK_MIN_INTERACTIONS
        and OperatorMemory.acceptance_rate(profile) > TEAMWORK_ACCEPTANCE
    ):
        return f"{greeting}. Great teamwork!"
    return greeting


def _is_critical(patient: Patient) -> bool:
    return (patient.triage_level or "").lower() == CRITICAL_TRIAGE.lower()


def _wait_key(patient: Patient) -> datetime:
    return patient.registration_time or datetime.max.replace(tzinfo=timezone.utc)


def next_patient(patients: Sequence[Patient]) -> Optional[Patient]:
    """Red triage first, then whoever has waited longest for a doctor."""

    for patient in patients:
        if _is_critical(patient) and patient.status != STATUS_DISCHARGED:
            return patient
    queue = [patient for patient in patients if patient.status == STATUS_WAITING_DOCTOR]
    if not queue:
        return None
    return min(queue, key=_wait_key)


def _is_discharge_ready(patient: Patient) -> bool:
    if patient.status == STATUS_DISCHARGED:
        return True
    summary = patient.discharge_summary
    return isinstance(summary, dict) and summary.get("status") == "finalized"


def generate_briefing(
    operator_name: str,
    patients: Sequence[Patient],
    now: Optional[datetime] = None,
    profile: Optional[OperatorProfile] = None,
) -> Briefing:
    now = now or utc_now()
    critical = [patient for patient in patients if _is_critical(patient) and patient.status != STATUS_DISCHARGED]
    queue = [patient for patient in patients if patient.status == STATUS_WAITING_DOCTOR]
    discharge_ready = [patient for patient in patients if _is_discharge_ready(patient)]

    summary = f"You have {len(patients)} patients today."
    if critical:
        summary += f" {len(critical)} critical requiring attention."
    if discharge_ready:
        summary += f" {len(discharge_ready)} ready for discharge."

    top = next_patient(patients)
    priority = None
    if top is not None:
        if _is_critical(top):
            reason = "Critical - needs immediate attention"
        else:
            waited = minutes_between(top.registration_time, now)
            reason = f"Waiting {format_wait(waited or 0)} - longest in queue"
        priority = PriorityPatient(top.id, top.name, reason)

    return Briefing(
        greeting=greeting_for(operator_name, now, profile),
        summary=summary,
        critical_count=len(critical),
        queue_count=len(queue),
        discharge_ready_count=len(discharge_ready),
        top_priority=priority,
    )


__all__ = ["Briefing", "PriorityPatient", "format_wait", "greeting_for", "generate_briefing", "next_patient"]
