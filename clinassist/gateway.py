"""Rate-limited, cached gateway to the generative model.

All call sites in a session share one :class:`UsageTracker`, so background
work such as live transcription extraction draws from the same trailing
window as chat.  The order of checks for one call is: cache, rate limit,
model.  A cache hit is served even when the window is full.
"""

from __future__ import annotations

import asyncio
import hashlib
import inspect
import math
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional

import structlog

from clinassist.config import AssistantSettings, get_settings
from clinassist.errors import ModelCallFailed, PersistenceFailure, RateLimited
from clinassist.model_client import PromptOrHistory
from clinassist.observability import CACHE_LOOKUPS, MODEL_CALLS, MODEL_TOKENS, RATE_LIMITED
from clinassist.storage import CACHE_NAMESPACE, USAGE_NAMESPACE, KeyValueStore
from clinassist.time_utils import from_epoch_seconds
from clinassist.vocabulary import normalise_text


logger = structlog.get_logger(__name__)

_PROPAGATE = object()


@dataclass
class UsageRecord:
    timestamp: float
    input_tokens: int
    output_tokens: int
    model: str
    operation: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "inputTokens": self.input_tokens,
            "outputTokens": self.output_tokens,
            "model": self.model,
            "operation": self.operation,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "UsageRecord":
        return cls(
            timestamp=float(data["timestamp"]),
            input_tokens=int(data.get("inputTokens", 0)),
            output_tokens=int(data.get("outputTokens", 0)),
            model=str(data.get("model", "")),
            operation=str(data.get("operation", "")),
        )


@dataclass(frozen=True)
class RateLimitStatus:
    allowed: bool
    wait_ms: int = 0
    reason: Optional[str] = None


@dataclass(frozen=True)
class UsageStats:
    total_input_tokens: int
    total_output_tokens: int
    total_calls: int
    calls_last_hour: int
    calls_today: int
    last_call_at: Optional[datetime]
    estimated_cost: float


@dataclass
class CacheEntry:
    key: str
    value: str
    inserted_at: float


@dataclass(frozen=True)
class ModelResponse:
    text: str
    from_cache: bool
    operation: str
    failed: bool = False


class UsageTracker:
    """Rolling usage history feeding rate-limit decisions and cost totals."""

    def __init__(
        self,
        settings: Optional[AssistantSettings] = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._settings = settings or get_settings()
        self._clock = clock
        self.history: List[UsageRecord] = []
        self.total_input_tokens = 0
        self.total_output_tokens = 0
        self.total_calls = 0
        self.last_call_at: Optional[float] = None

    def estimate_tokens(self, text: str) -> int:
        return int(math.ceil(len(text or "") / self._settings.chars_per_token))

    def prune(self) -> None:
        cutoff = self._clock() - self._settings.usage_retention_hours * 3600
        kept = [record for record in self.history if record.timestamp > cutoff]
        self.history = kept[-self._settings.usage_history_limit:]

    def check_rate_limit(self) -> RateLimitStatus:
        self.prune()
        now = self._clock()
        window = self._settings.rate_window_seconds
        recent = [record.timestamp for record in self.history if record.timestamp > now - window]
        limit = self._settings.rate_limit_per_window
        if len(recent) < limit:
            return RateLimitStatus(allowed=True)
        # Only the calls beyond the limit need to age out.
        expiring = sorted(recent)[len(recent) - limit]
        wait_ms = max(1, int(math.ceil((expiring + window - now) * 1000)))
        reason = f"Rate limit: {limit}/min. Wait {math.ceil(wait_ms / 1000)}s"
        return RateLimitStatus(allowed=False, wait_ms=wait_ms, reason=reason)

    def record_call(self, operation: str, model: str, input_text: str, output_text: str = "") -> UsageRecord:
        record = UsageRecord(
            timestamp=self._clock(),
            input_tokens=self.estimate_tokens(input_text),
            output_tokens=self.estimate_tokens(output_text),
            model=model,
            operation=operation,
        )
        self.history.append(record)
        self.total_input_tokens += record.input_tokens
        self.total_output_tokens += record.output_tokens
        self.total_calls += 1
        self.last_call_at = record.timestamp
        MODEL_TOKENS.labels(direction="input").inc(record.input_tokens)
        if record.output_tokens:
            MODEL_TOKENS.labels(direction="output").inc(record.output_tokens)
        self.prune()
        return record

    def complete_call(self, record: UsageRecord, output_text: str) -> None:
        tokens = self.estimate_tokens(output_text)
        record.output_tokens += tokens
        self.total_output_tokens += tokens
        if tokens:
            MODEL_TOKENS.labels(direction="output").inc(tokens)

    def estimated_cost(self) -> float:
        settings = self._settings
        return (
            self.total_input_tokens / 1_000_000 * settings.input_cost_per_million
            + self.total_output_tokens / 1_000_000 * settings.output_cost_per_million
        )

    def stats(self) -> UsageStats:
        self.prune()
        now = self._clock()
        return UsageStats(
            total_input_tokens=self.total_input_tokens,
            total_output_tokens=self.total_output_tokens,
            total_calls=self.total_calls,
            calls_last_hour=sum(1 for record in self.history if record.timestamp > now - 3600),
            calls_today=sum(1 for record in self.history if record.timestamp > now - 86400),
            last_call_at=from_epoch_seconds(self.last_call_at),
            estimated_cost=self.estimated_cost(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalInputTokens": self.total_input_tokens,
            "totalOutputTokens": self.total_output_tokens,
            "totalCalls": self.total_calls,
            "lastCallAt": self.last_call_at,
            "history": [record.to_dict() for record in self.history],
        }

    def restore(self, data: Mapping[str, Any]) -> None:
        self.total_input_tokens = int(data.get("totalInputTokens", 0))
        self.total_output_tokens = int(data.get("totalOutputTokens", 0))
        self.total_calls = int(data.get("totalCalls", 0))
        last = data.get("lastCallAt")
        self.last_call_at = float(last) if last is not None else None
        self.history = [UsageRecord.from_dict(item) for item in data.get("history") or []]
        self.prune()


def _prompt_text(prompt: PromptOrHistory) -> str:
    if isinstance(prompt, str):
        return prompt
    return "\n".join(str(turn.get("content") or "") for turn in prompt)


class ResponseCache:
    """Model responses keyed by operation and normalised prompt.

    Entries never expire here; eviction belongs to the backing store.
    """

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        settings: Optional[AssistantSettings] = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._settings = settings or get_settings()
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}

    def signature(self, operation: str, prompt: str) -> str:
        normalised = normalise_text(prompt)[: self._settings.cache_prompt_chars]
        return hashlib.sha256(f"{operation}:{normalised}".encode("utf-8")).hexdigest()

    async def get(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is not None:
            return entry.value
        if self._store is None:
            return None
        try:
            stored = await self._store.load(CACHE_NAMESPACE, key)
        except PersistenceFailure:
            logger.warning("model_cache_load_failed", exc_info=True)
            return None
        if not stored or "value" not in stored:
            return None
        entry = CacheEntry(key=key, value=str(stored["value"]), inserted_at=float(stored.get("insertedAt", 0.0)))
        self._entries[key] = entry
        return entry.value

    async def put(self, key: str, value: str) -> None:
        entry = CacheEntry(key=key, value=value, inserted_at=self._clock())
        self._entries[key] = entry
        if self._store is None:
            return
        try:
            await self._store.save(CACHE_NAMESPACE, key, {"value": value, "insertedAt": entry.inserted_at})
        except PersistenceFailure:
            logger.warning("model_cache_persist_failed", exc_info=True)

    def __len__(self) -> int:
        return len(self._entries)


GenerateFn = Callable[[PromptOrHistory, str], Any]


class ModelGateway:
    """Single choke point for generative model calls in a session."""

    def __init__(
        self,
        generate: GenerateFn,
        *,
        store: Optional[KeyValueStore] = None,
        settings: Optional[AssistantSettings] = None,
        clock: Callable[[], float] = time.time,
        model_name: Optional[str] = None,
    ) -> None:
        self._generate = generate
        self._store = store
        self._settings = settings or get_settings()
        self.model_name = model_name or getattr(generate, "model", None) or self._settings.model_name
        self.usage = UsageTracker(self._settings, clock=clock)
        self.cache = ResponseCache(store, self._settings, clock=clock)

    def check_rate_limit(self) -> RateLimitStatus:
        return self.usage.check_rate_limit()

    def usage_stats(self) -> UsageStats:
        return self.usage.stats()

    async def restore_usage(self) -> None:
        if self._store is None:
            return
        try:
            stored = await self._store.load(USAGE_NAMESPACE, "history")
        except PersistenceFailure:
            logger.warning("usage_history_load_failed", exc_info=True)
            return
        if stored:
            try:
                self.usage.restore(stored)
            except (KeyError, TypeError, ValueError):
                logger.warning("usage_history_corrupt", exc_info=True)

    async def _persist_usage(self) -> None:
        if self._store is None:
            return
        try:
            await self._store.save(USAGE_NAMESPACE, "history", self.usage.to_dict())
        except PersistenceFailure:
            logger.warning("usage_history_persist_failed", exc_info=True)

    async def _invoke(self, prompt: PromptOrHistory, context: str) -> str:
        result = self._generate(prompt, context)
        if inspect.isawaitable(result):
            result = await asyncio.wait_for(result, timeout=self._settings.model_timeout_seconds)
        text = "" if result is None else str(result).strip()
        if not text:
            raise RuntimeError("Empty model response")
        return text

    async def call(
        self,
        prompt: PromptOrHistory,
        context: str = "",
        *,
        operation: str = "chat",
        use_cache: bool = True,
        fallback: Any = _PROPAGATE,
    ) -> ModelResponse:
        """Return the model's reply for ``prompt``.

        Raises :class:`RateLimited` when the window is full.  Model failures
        raise :class:`ModelCallFailed` unless ``fallback`` is given, in which
        case the fallback text comes back with ``failed=True``.
        """

        prompt_text = _prompt_text(prompt)
        key = None
        if use_cache:
            key = self.cache.signature(operation, prompt_text)
            cached = await self.cache.get(key)
            if cached is not None:
                CACHE_LOOKUPS.labels(operation=operation, state="hit").inc()
                logger.debug("model_cache_hit", operation=operation)
                return ModelResponse(text=cached, from_cache=True, operation=operation)
            CACHE_LOOKUPS.labels(operation=operation, state="miss").inc()

        status = self.usage.check_rate_limit()
        if not status.allowed:
            RATE_LIMITED.labels(operation=operation).inc()
            logger.info("model_call_rate_limited", operation=operation, wait_ms=status.wait_ms)
            raise RateLimited(status.wait_ms, operation)

        # Reserve the window slot before suspending so concurrent calls see it.
        record = self.usage.record_call(operation, self.model_name, prompt_text + context)
        try:
            text = await self._invoke(prompt, context)
        except Exception as exc:
            MODEL_CALLS.labels(operation=operation, outcome="error").inc()
            logger.warning("model_call_failed", operation=operation, error=type(exc).__name__)
            await self._persist_usage()
            if fallback is _PROPAGATE:
                raise ModelCallFailed(f"{operation} call failed: {exc}", operation) from exc
            return ModelResponse(text=fallback, from_cache=False, operation=operation, failed=True)

        self.usage.complete_call(record, text)
        MODEL_CALLS.labels(operation=operation, outcome="success").inc()
        if key is not None:
            await self.cache.put(key, text)
        await self._persist_usage()
        return ModelResponse(text=text, from_cache=False, operation=operation)


__all__ = [
    "UsageRecord",
    "RateLimitStatus",
    "UsageStats",
    "CacheEntry",
    "ModelResponse",
    "UsageTracker",
    "ResponseCache",
    "ModelGateway",
]
