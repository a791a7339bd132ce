"""Runtime configuration for the assistant core."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from platformdirs import user_data_dir

APP_NAME = "clinassist"
ENV_PREFIX = "CLINASSIST_"


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(ENV_PREFIX + name, default))
    except (TypeError, ValueError):
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(ENV_PREFIX + name, default))
    except (TypeError, ValueError):
        return default


def _env_flag(name: str) -> bool:
    return os.getenv(ENV_PREFIX + name, "").lower() in {"1", "true", "yes"}


def _default_sqlite_path() -> Path:
    data_dir = Path(user_data_dir(APP_NAME, APP_NAME))
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir / "assistant.db"


def _normalise_sqlite_path(path: str) -> Path:
    resolved = Path(path).expanduser()
    if resolved.is_dir():
        resolved = resolved / "assistant.db"
    resolved.parent.mkdir(parents=True, exist_ok=True)
    return resolved


@dataclass(frozen=True)
class AssistantSettings:
    """Resolved tunables for one process.

    Thresholds that clinical rules depend on live here so deployments can
    adjust them without code changes.
    """

    rate_limit_per_window: int = 15
    rate_window_seconds: float = 60.0
    usage_history_limit: int = 100
    usage_retention_hours: float = 24.0
    chars_per_token: int = 4
    input_cost_per_million: float = 0.075
    output_cost_per_million: float = 0.30
    cache_prompt_chars: int = 100
    model_name: str = "gpt-4o-mini"
    model_timeout_seconds: float = 15.0
    wait_threshold_minutes: float = 45.0
    long_wait_minutes: float = 60.0
    context_stale_minutes: float = 60.0
    message_history_limit: int = 20
    chat_history_turns: int = 6
    extraction_debounce_seconds: float = 5.0
    extraction_min_chars: int = 30
    extraction_min_new_words: int = 10
    database_url: str = "sqlite://"
    offline_model: bool = False

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


def _resolve_database_url() -> str:
    url = os.getenv(ENV_PREFIX + "DATABASE_URL")
    if url:
        return url
    path_override = os.getenv(ENV_PREFIX + "DB_PATH")
    if path_override:
        db_path = _normalise_sqlite_path(path_override)
    else:
        db_path = _default_sqlite_path()
    return f"sqlite:///{db_path}"


@lru_cache(maxsize=1)
def get_settings() -> AssistantSettings:
    """Return the active settings derived from the environment."""

    return AssistantSettings(
        rate_limit_per_window=_env_int("RATE_LIMIT", 15),
        rate_window_seconds=_env_float("RATE_WINDOW_SECONDS", 60.0),
        usage_history_limit=_env_int("USAGE_HISTORY_LIMIT", 100),
        usage_retention_hours=_env_float("USAGE_RETENTION_HOURS", 24.0),
        chars_per_token=max(1, _env_int("CHARS_PER_TOKEN", 4)),
        input_cost_per_million=_env_float("INPUT_COST_PER_MILLION", 0.075),
        output_cost_per_million=_env_float("OUTPUT_COST_PER_MILLION", 0.30),
        cache_prompt_chars=_env_int("CACHE_PROMPT_CHARS", 100),
        model_name=os.getenv(ENV_PREFIX + "MODEL", "gpt-4o-mini"),
        model_timeout_seconds=_env_float("MODEL_TIMEOUT_SECONDS", 15.0),
        wait_threshold_minutes=_env_float("WAIT_THRESHOLD_MINUTES", 45.0),
        long_wait_minutes=_env_float("LONG_WAIT_MINUTES", 60.0),
        context_stale_minutes=_env_float("CONTEXT_STALE_MINUTES", 60.0),
        message_history_limit=_env_int("MESSAGE_HISTORY_LIMIT", 20),
        chat_history_turns=_env_int("CHAT_HISTORY_TURNS", 6),
        extraction_debounce_seconds=_env_float("EXTRACTION_DEBOUNCE_SECONDS", 5.0),
        extraction_min_chars=_env_int("EXTRACTION_MIN_CHARS", 30),
        extraction_min_new_words=_env_int("EXTRACTION_MIN_NEW_WORDS", 10),
        database_url=_resolve_database_url(),
        offline_model=_env_flag("OFFLINE_MODEL"),
    )


__all__ = ["APP_NAME", "AssistantSettings", "get_settings"]
