"""Live transcription quick-extraction.

While a clinician dictates, :meth:`LiveTranscriptExtractor.feed` receives the
growing transcript.  Extraction runs through the shared model gateway once
the transcript has grown by enough words and input has paused for the
debounce interval.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional

import structlog

from clinassist.clinical_ai import ExtractedComplaint, quick_extract
from clinassist.config import AssistantSettings, get_settings
from clinassist.errors import RateLimited
from clinassist.gateway import ModelGateway
from clinassist.scheduler import DebouncedTask
from clinassist.time_utils import utc_now


logger = structlog.get_logger(__name__)


@dataclass
class ExtractionState:
    complaints: List[ExtractedComplaint] = field(default_factory=list)
    vitals_mentioned: Dict[str, Optional[float]] = field(default_factory=dict)
    keywords: List[str] = field(default_factory=list)
    is_extracting: bool = False
    last_extracted_at: Optional[datetime] = None
    extraction_count: int = 0
    rate_limited_wait_ms: int = 0


class LiveTranscriptExtractor:
    def __init__(
        self,
        gateway: ModelGateway,
        settings: Optional[AssistantSettings] = None,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._gateway = gateway
        self._settings = settings or get_settings()
        self._clock = clock
        self._last_transcript = ""
        self._closed = False
        self.state = ExtractionState()
        self.task = DebouncedTask(self._extract, self._settings.extraction_debounce_seconds, name="quick_extract")

    def feed(self, transcript: str) -> bool:
        """Accept the latest transcript; return ``True`` when an extraction was scheduled."""

        if self._closed:
            return False
        new_words = len(transcript.split())
        last_words = len(self._last_transcript.split())
        if self._last_transcript and new_words - last_words < self._settings.extraction_min_new_words:
            return False
        self.task.schedule(transcript)
        return True

    async def _extract(self, transcript: str) -> None:
        if transcript == self._last_transcript:
            return
        if len(transcript) < self._settings.extraction_min_chars:
            return
        self.state.is_extracting = True
        try:
            result = await quick_extract(self._gateway, transcript)
        except RateLimited as exc:
            # Left unmarked so the same transcript is extracted on the next feed.
            self.state.rate_limited_wait_ms = exc.wait_ms
            logger.info("quick_extract_rate_limited", wait_ms=exc.wait_ms)
            return
        finally:
            self.state.is_extracting = False
        self._last_transcript = transcript
        if self._closed or result is None:
            return
        self.merge(result.complaints, result.vitals_mentioned, result.keywords)

    def merge(
        self,
        complaints: List[ExtractedComplaint],
        vitals: Dict[str, Optional[float]],
        keywords: List[str],
    ) -> None:
        """Fold a new extraction into the running state without duplicate symptoms."""

        seen = {complaint.symptom.lower() for complaint in self.state.complaints}
        for complaint in complaints:
            key = complaint.symptom.strip().lower()
            if key and key not in seen:
                seen.add(key)
                self.state.complaints.append(complaint)
        for name, value in vitals.items():
            if value is not None:
                self.state.vitals_mentioned[name] = value
        known = {keyword.lower() for keyword in self.state.keywords}
        for keyword in keywords:
            if keyword and keyword.lower() not in known:
                known.add(keyword.lower())
                self.state.keywords.append(keyword)
        self.state.rate_limited_wait_ms = 0
        self.state.last_extracted_at = self._clock()
        self.state.extraction_count += 1

    def reset(self) -> None:
        self.task.cancel()
        self._last_transcript = ""
        self.state = ExtractionState()

    def close(self) -> None:
        self._closed = True
        self.task.cancel()


__all__ = ["ExtractionState", "LiveTranscriptExtractor"]
