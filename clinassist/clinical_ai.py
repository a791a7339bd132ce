"""Named model call sites and their failure policies.

Chat, checklist and live extraction recover with a fallback; complaint
classification propagates :class:`~clinassist.errors.ModelCallFailed` so the
triage screen can decide how to proceed.
"""

from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from clinassist.errors import ModelCallFailed
from clinassist.gateway import ModelGateway, ModelResponse
from clinassist.prompts import (
    CHECKLIST_INSTRUCTIONS,
    CLASSIFICATION_INSTRUCTIONS,
    DEPARTMENTS,
    EXTRACTION_INSTRUCTIONS,
    TRIAGE_LEVELS,
    checklist_prompt,
    classification_prompt,
    extraction_prompt,
)


logger = structlog.get_logger(__name__)

CHAT_FALLBACK = "I'm having trouble processing that. Could you rephrase?"
CHECKLIST_FALLBACK = ["Failed to generate checklist due to API error."]

_JSON_BLOCK = re.compile(r"\{[\s\S]*\}")


def _parse_json_object(text: str) -> Optional[Dict[str, Any]]:
    """Return the first JSON object embedded in ``text`` or ``None``."""

    if not text:
        return None
    stripped = text.strip()
    candidates = [stripped]
    match = _JSON_BLOCK.search(stripped)
    if match and match.group(0) != stripped:
        candidates.append(match.group(0))
    for candidate in candidates:
        try:
            payload = json.loads(candidate)
        except (TypeError, ValueError):
            continue
        if isinstance(payload, dict):
            return payload
    return None


class TriageSuggestion(BaseModel):
    department: str
    suggested_triage: str
    confidence: float = Field(ge=0.0, le=1.0)

    model_config = ConfigDict(extra="ignore")

    @field_validator("department")
    @classmethod
    def _known_department(cls, value: str) -> str:
        for department in DEPARTMENTS:
            if department.lower() == value.strip().lower():
                return department
        return "Unknown"

    @field_validator("suggested_triage")
    @classmethod
    def _known_level(cls, value: str) -> str:
        for level in TRIAGE_LEVELS:
            if level.lower() == value.strip().lower():
                return level
        raise ValueError(f"unknown triage level: {value!r}")


class ExtractedComplaint(BaseModel):
    symptom: str
    duration: Optional[str] = None

    model_config = ConfigDict(extra="ignore")

    @field_validator("duration", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Optional[str]:
        if value in (None, ""):
            return None
        return str(value)


class QuickExtraction(BaseModel):
    complaints: List[ExtractedComplaint] = Field(default_factory=list)
    vitals_mentioned: Dict[str, Optional[float]] = Field(default_factory=dict)
    keywords: List[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")

    @field_validator("complaints", mode="before")
    @classmethod
    def _drop_blank(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, Mapping) and str(item.get("symptom") or "").strip()]

    @field_validator("vitals_mentioned", mode="before")
    @classmethod
    def _numeric_only(cls, value: Any) -> Dict[str, Optional[float]]:
        if not isinstance(value, Mapping):
            return {}
        cleaned: Dict[str, Optional[float]] = {}
        for key, raw in value.items():
            try:
                cleaned[str(key)] = float(raw) if raw is not None else None
            except (TypeError, ValueError):
                cleaned[str(key)] = None
        return cleaned


async def chat(
    gateway: ModelGateway,
    history: Sequence[Mapping[str, str]],
    system_context: str,
) -> ModelResponse:
    """Multi-turn chat; never cached, falls back to an apology on failure."""

    return await gateway.call(
        list(history),
        system_context,
        operation="chat",
        use_cache=False,
        fallback=CHAT_FALLBACK,
    )


async def classify_complaint(gateway: ModelGateway, complaint: str) -> Tuple[TriageSuggestion, bool]:
    """Return ``(suggestion, from_cache)``; failures propagate as :class:`ModelCallFailed`."""

    response = await gateway.call(
        classification_prompt(complaint),
        CLASSIFICATION_INSTRUCTIONS,
        operation="classify",
    )
    payload = _parse_json_object(response.text)
    if payload is None:
        raise ModelCallFailed("classification reply was not JSON", "classify")
    try:
        return TriageSuggestion.model_validate(payload), response.from_cache
    except ValidationError as exc:
        raise ModelCallFailed(f"classification reply invalid: {exc.error_count()} errors", "classify") from exc


async def generate_checklist(gateway: ModelGateway, diagnosis: str) -> Tuple[List[str], bool]:
    response = await gateway.call(
        checklist_prompt(diagnosis),
        CHECKLIST_INSTRUCTIONS,
        operation="checklist",
        fallback="",
    )
    if response.failed:
        return list(CHECKLIST_FALLBACK), False
    payload = _parse_json_object(response.text) or {}
    items = payload.get("checklist")
    if not isinstance(items, list):
        logger.warning("checklist_reply_unparseable")
        return list(CHECKLIST_FALLBACK), False
    return [str(item) for item in items if str(item).strip()], response.from_cache


async def quick_extract(gateway: ModelGateway, transcript: str) -> Optional[QuickExtraction]:
    """Extract complaints and vitals from a transcript snippet, ``None`` when unusable.

    Growing transcripts share long prefixes, so this call bypasses the cache.
    """

    response = await gateway.call(
        extraction_prompt(transcript),
        EXTRACTION_INSTRUCTIONS,
        operation="extract",
        use_cache=False,
        fallback="",
    )
    if response.failed:
        return None
    payload = _parse_json_object(response.text)
    if payload is None:
        logger.info("quick_extract_no_json")
        return None
    try:
        return QuickExtraction.model_validate(payload)
    except ValidationError:
        logger.info("quick_extract_invalid", exc_info=True)
        return None


__all__ = [
    "CHAT_FALLBACK",
    "CHECKLIST_FALLBACK",
    "TriageSuggestion",
    "ExtractedComplaint",
    "QuickExtraction",
    "chat",
    "classify_complaint",
    "generate_checklist",
    "quick_extract",
]
