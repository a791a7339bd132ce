"""Per-operator habits and interaction statistics.

Profiles are created lazily, mutated in place and written through to the
key-value store after every change.  A failed write is logged and the
in-memory profile stays authoritative for the rest of the session.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Dict, Optional

import structlog

from clinassist.errors import PersistenceFailure
from clinassist.models import OperatorProfile, OrderPattern, ShiftContext
from clinassist.storage import PROFILE_NAMESPACE, KeyValueStore
from clinassist.time_utils import utc_now
from clinassist.vocabulary import normalise_text


logger = structlog.get_logger(__name__)

DISMISSAL_HISTORY_LIMIT = 20
PATTERN_MIN_FREQUENCY = 2


class OperatorMemory:
    """Load, mutate and persist :class:`OperatorProfile` records."""

    def __init__(
        self,
        store: KeyValueStore,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._clock = clock
        self._profiles: Dict[str, OperatorProfile] = {}

    async def get_or_create(self, operator_id: str, name: str, contact: str = "") -> OperatorProfile:
        cached = self._profiles.get(operator_id)
        if cached is not None:
            return cached
        stored: Optional[Dict[str, Any]] = None
        try:
            stored = await self._store.load(PROFILE_NAMESPACE, operator_id)
        except PersistenceFailure:
            logger.warning("operator_profile_load_failed", operator_id=operator_id, exc_info=True)
        if stored:
            try:
                profile = OperatorProfile.from_dict(stored)
            except (KeyError, TypeError, ValueError):
                logger.warning("operator_profile_corrupt", operator_id=operator_id, exc_info=True)
                profile = None
            if profile is not None:
                self._profiles[operator_id] = profile
                return profile
        now = self._clock()
        profile = OperatorProfile(
            id=operator_id,
            name=name,
            contact=contact,
            session=ShiftContext(started_at=now),
            created_at=now,
            updated_at=now,
        )
        self._profiles[operator_id] = profile
        logger.info("operator_profile_created", operator_id=operator_id)
        await self._persist(profile)
        return profile

    async def _persist(self, profile: OperatorProfile) -> None:
        profile.updated_at = self._clock()
        try:
            await self._store.save(PROFILE_NAMESPACE, profile.id, profile.to_dict())
        except PersistenceFailure:
            logger.warning("operator_profile_persist_failed", operator_id=profile.id, exc_info=True)

    async def learn_order_pattern(self, profile: OperatorProfile, keyword: str, order_label: str) -> OrderPattern:
        """Associate ``order_label`` with ``keyword``; labels stay unique per pattern."""

        normalised = normalise_text(keyword)
        now = self._clock()
        pattern = next(
            (item for item in profile.order_patterns if item.condition_keyword.lower() == normalised),
            None,
        )
        if pattern is None:
            pattern = OrderPattern(
                condition_keyword=normalised,
                usual_order_labels=[order_label],
                frequency_count=1,
                last_used_at=now,
            )
            profile.order_patterns.append(pattern)
        else:
            if order_label not in pattern.usual_order_labels:
                pattern.usual_order_labels.append(order_label)
            pattern.frequency_count += 1
            pattern.last_used_at = now
        logger.info(
            "order_pattern_learned",
            operator_id=profile.id,
            keyword=normalised,
            frequency=pattern.frequency_count,
        )
        await self._persist(profile)
        return pattern

    async def record_accepted(self, profile: OperatorProfile, reason: Optional[str] = None) -> None:
        profile.history.accepted_count += 1
        profile.history.total_interactions += 1
        await self._persist(profile)

    async def record_rejected(self, profile: OperatorProfile, reason: Optional[str] = None) -> None:
        history = profile.history
        history.rejected_count += 1
        history.total_interactions += 1
        if reason and reason not in history.dismissal_reasons:
            history.dismissal_reasons.append(reason)
        history.dismissal_reasons = history.dismissal_reasons[-DISMISSAL_HISTORY_LIMIT:]
        await self._persist(profile)

    async def record_patient_seen(self, profile: OperatorProfile, patient_id: str) -> None:
        if patient_id in profile.session.patients_seen:
            return
        profile.session.patients_seen.add(patient_id)
        await self._persist(profile)

    async def start_new_shift(self, profile: OperatorProfile) -> None:
        profile.session = ShiftContext(started_at=self._clock())
        await self._persist(profile)

    async def set_ui_preference(self, profile: OperatorProfile, key: str, value: Any) -> None:
        profile.ui_preferences[key] = value
        await self._persist(profile)

    @staticmethod
    def match_pattern(profile: OperatorProfile, complaint_text: str) -> Optional[OrderPattern]:
        """Return the first stored pattern contained in ``complaint_text`` used at least twice.

        First match in storage order wins, even when a later keyword is longer.
        """

        text = (complaint_text or "").lower()
        if not text:
            return None
        for pattern in profile.order_patterns:
            if pattern.condition_keyword and pattern.condition_keyword in text and pattern.frequency_count >= PATTERN_MIN_FREQUENCY:
                return pattern
        return None

    @staticmethod
    def acceptance_rate(profile: OperatorProfile) -> int:
        """Return accepted suggestions as an integer percentage of all decisions."""

        total = profile.history.accepted_count + profile.history.rejected_count
        if total == 0:
            return 0
        # Round half up.
        return int(profile.history.accepted_count * 100 / total + 0.5)


__all__ = ["OperatorMemory", "DISMISSAL_HISTORY_LIMIT", "PATTERN_MIN_FREQUENCY"]
