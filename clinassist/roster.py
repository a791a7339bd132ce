"""Read-only patient snapshots supplied by the roster provider."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Union

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from clinassist.time_utils import parse_timestamp


logger = structlog.get_logger(__name__)

STATUS_WAITING_TRIAGE = "Waiting for Triage"
STATUS_WAITING_DOCTOR = "Waiting for Doctor"
STATUS_IN_TREATMENT = "In Treatment"
STATUS_DISCHARGED = "Discharged"

PATIENT_STATUSES = (
    STATUS_WAITING_TRIAGE,
    STATUS_WAITING_DOCTOR,
    STATUS_IN_TREATMENT,
    STATUS_DISCHARGED,
)

ORDER_CATEGORIES = ("investigation", "radiology", "medication", "procedure", "nursing", "referral")


class _Snapshot(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


class Vitals(_Snapshot):
    spo2: Optional[float] = None
    bp_sys: Optional[float] = Field(default=None, alias="bpSys")
    bp_dia: Optional[float] = Field(default=None, alias="bpDia")
    pulse: Optional[float] = None
    temp_c: Optional[float] = Field(default=None, alias="tempC")
    rr: Optional[float] = None

    @model_validator(mode="before")
    @classmethod
    def _accept_legacy_keys(cls, data: Any) -> Any:
        # Blank form inputs count as unrecorded.
        if not isinstance(data, Mapping):
            return data
        payload = {key: _blank_to_none(value) for key, value in data.items()}
        for legacy, names in (("hr", ("pulse",)), ("temp", ("tempC", "temp_c"))):
            if legacy in payload and not any(name in payload for name in names):
                payload[names[0]] = payload.pop(legacy)
        return payload


class ChiefComplaint(_Snapshot):
    complaint: str
    duration_value: Optional[float] = Field(default=None, alias="durationValue")
    duration_unit: Optional[str] = Field(default=None, alias="durationUnit")

    @model_validator(mode="before")
    @classmethod
    def _from_text(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"complaint": data}
        return data


class Allergy(_Snapshot):
    substance: str = ""
    reaction: str = ""
    severity: str = ""


class HistorySection(_Snapshot):
    complaints: List[ChiefComplaint] = Field(default_factory=list)
    drug_history: Optional[str] = None
    allergy_history: Union[List[Allergy], str, None] = None

    @field_validator("complaints", mode="before")
    @classmethod
    def _coerce_complaints(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [value] if value.strip() else []
        return value

    @field_validator("drug_history", "allergy_history", mode="before")
    @classmethod
    def _clean_text(cls, value: Any) -> Any:
        return _blank_to_none(value)


class OrderSnapshot(_Snapshot):
    order_id: Optional[str] = Field(default=None, alias="orderId")
    category: str = "investigation"
    sub_type: Optional[str] = Field(default=None, alias="subType")
    label: str = ""
    status: str = "draft"
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")

    @field_validator("created_at", mode="before")
    @classmethod
    def _parse_created(cls, value: Any) -> Optional[datetime]:
        return parse_timestamp(value)


class LabResult(_Snapshot):
    result_id: Optional[str] = Field(default=None, alias="resultId")
    name: str
    value: Optional[str] = None
    unit: Optional[str] = None
    timestamp: Optional[datetime] = None
    is_abnormal: bool = Field(default=False, alias="isAbnormal")

    @field_validator("value", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        return str(value)

    @field_validator("timestamp", mode="before")
    @classmethod
    def _parse_timestamp(cls, value: Any) -> Optional[datetime]:
        return parse_timestamp(value)


class Patient(_Snapshot):
    """One roster entry as seen by the assistant core."""

    id: str
    name: str
    age: Optional[int] = None
    gender: Optional[str] = None
    status: str = STATUS_WAITING_TRIAGE
    registration_time: Optional[datetime] = Field(default=None, alias="registrationTime")
    triage_level: Optional[str] = Field(default=None, alias="triageLevel")
    vitals: Optional[Vitals] = None
    chief_complaints: List[ChiefComplaint] = Field(default_factory=list, alias="chiefComplaints")
    history: HistorySection = Field(default_factory=HistorySection)
    orders: List[OrderSnapshot] = Field(default_factory=list)
    results: List[LabResult] = Field(default_factory=list)
    discharge_summary: Optional[Any] = Field(default=None, alias="dischargeSummary")

    @model_validator(mode="before")
    @classmethod
    def _lift_nested_fields(cls, data: Any) -> Any:
        """Flatten ``triage.level`` and ``clinicalFile.sections.history``."""

        if not isinstance(data, Mapping):
            return data
        payload = dict(data)
        triage = payload.get("triage")
        if isinstance(triage, Mapping) and "triageLevel" not in payload and "triage_level" not in payload:
            payload["triageLevel"] = triage.get("level")
        clinical_file = payload.get("clinicalFile") or payload.get("clinical_file")
        if "history" not in payload and isinstance(clinical_file, Mapping):
            sections = clinical_file.get("sections") or {}
            if isinstance(sections, Mapping) and isinstance(sections.get("history"), Mapping):
                payload["history"] = sections["history"]
        return payload

    @field_validator("registration_time", mode="before")
    @classmethod
    def _parse_registration(cls, value: Any) -> Optional[datetime]:
        return parse_timestamp(value)

    @field_validator("history", mode="before")
    @classmethod
    def _default_history(cls, value: Any) -> Any:
        return {} if value is None else value

    @property
    def first_name(self) -> str:
        parts = self.name.split()
        return parts[0] if parts else ""

    @property
    def leading_complaint(self) -> Optional[str]:
        """Return the first documented chief complaint text, if any."""

        for complaint in list(self.chief_complaints) + list(self.history.complaints):
            text = (complaint.complaint or "").strip()
            if text:
                return text
        return None

    def has_documented(self, field_name: str) -> bool:
        """Return whether a history field carries content (list non-empty, text non-blank)."""

        if field_name == "complaints":
            return self.leading_complaint is not None
        value = getattr(self.history, field_name, None)
        if value is None:
            return False
        if isinstance(value, str):
            return bool(value.strip())
        return len(value) > 0


def coerce_patient(item: Union[Patient, Mapping[str, Any]]) -> Patient:
    if isinstance(item, Patient):
        return item
    return Patient.model_validate(item)


def coerce_roster(items: Optional[Iterable[Union[Patient, Mapping[str, Any]]]]) -> List[Patient]:
    """Validate a provider snapshot into :class:`Patient` objects.

    Entries that fail validation are logged and dropped so one malformed
    record cannot hide the rest of the roster.
    """

    if not items:
        return []
    patients: List[Patient] = []
    for item in items:
        try:
            patients.append(coerce_patient(item))
        except ValidationError:
            patient_id = item.get("id") if isinstance(item, Mapping) else None
            logger.warning("roster_entry_invalid", patient_id=patient_id, exc_info=True)
    return patients


def find_patient(roster: Sequence[Patient], patient_id: Optional[str]) -> Optional[Patient]:
    if not patient_id:
        return None
    for patient in roster:
        if patient.id == patient_id:
            return patient
    return None


__all__ = [
    "Vitals",
    "ChiefComplaint",
    "Allergy",
    "HistorySection",
    "OrderSnapshot",
    "LabResult",
    "Patient",
    "coerce_patient",
    "coerce_roster",
    "find_patient",
    "PATIENT_STATUSES",
    "ORDER_CATEGORIES",
    "STATUS_WAITING_TRIAGE",
    "STATUS_WAITING_DOCTOR",
    "STATUS_IN_TREATMENT",
    "STATUS_DISCHARGED",
]
