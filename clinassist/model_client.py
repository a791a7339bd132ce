"""
Adapter exposing the OpenAI Chat Completions API as the generative model
collaborator: ``await generate(prompt_or_history, system_context) -> str``.

Behaviour hierarchy:
1. If offline mode is enabled (``CLINASSIST_OFFLINE_MODEL``), return a
   deterministic placeholder without any external calls.
2. Otherwise call the OpenAI API with ``OPENAI_API_KEY``.

Any exception raised by the SDK is converted into a RuntimeError so the
gateway has a single failure path.
"""

from __future__ import annotations

import hashlib
import os
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

# ``openai`` is imported lazily so offline mode works without credentials.

from clinassist.config import AssistantSettings, get_settings

PromptOrHistory = Union[str, Sequence[Mapping[str, Any]]]


def build_messages(prompt_or_history: PromptOrHistory, system_context: str = "") -> List[Dict[str, str]]:
    """Return OpenAI-style messages with the system context first."""

    messages: List[Dict[str, str]] = []
    if system_context:
        messages.append({"role": "system", "content": system_context})
    if isinstance(prompt_or_history, str):
        messages.append({"role": "user", "content": prompt_or_history})
        return messages
    for turn in prompt_or_history:
        role = str(turn.get("role", "user"))
        if role not in {"user", "assistant", "system"}:
            role = "user"
        messages.append({"role": role, "content": str(turn.get("content") or "")})
    return messages


def _deterministic_placeholder(messages: List[Dict[str, str]]) -> str:
    """Return a deterministic placeholder string based on the message content."""
    joined = "\n".join(f"{m.get('role')}:{m.get('content','')}" for m in messages)
    h = hashlib.sha1(joined.encode("utf-8")).hexdigest()[:12]
    return f"Offline response ({h})"


class OpenAIGenerator:
    """Callable generative model backed by ``openai.AsyncOpenAI``."""

    def __init__(
        self,
        model: Optional[str] = None,
        *,
        api_key: Optional[str] = None,
        temperature: float = 0.2,
        settings: Optional[AssistantSettings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self.model = model or self._settings.model_name
        self._api_key = api_key
        self._temperature = temperature
        self._client = None

    @property
    def offline(self) -> bool:
        return self._settings.offline_model

    def _get_client(self):
        if self._client is not None:
            return self._client
        api_key = self._api_key or os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise RuntimeError("OpenAI key not configured.")
        import openai  # type: ignore

        self._client = openai.AsyncOpenAI(api_key=api_key)
        return self._client

    async def __call__(self, prompt_or_history: PromptOrHistory, system_context: str = "") -> str:
        messages = build_messages(prompt_or_history, system_context)
        if self.offline:
            return _deterministic_placeholder(messages)

        client = self._get_client()
        try:
            response = await client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=self._temperature,
            )
        except Exception as exc:  # pragma: no cover - network errors / SDK issues
            raise RuntimeError(f"Error calling OpenAI: {exc}") from exc
        content = response.choices[0].message.content if response.choices else None
        return (content or "").strip()


__all__ = ["OpenAIGenerator", "build_messages", "PromptOrHistory"]
