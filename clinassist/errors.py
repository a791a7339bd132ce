"""Exception taxonomy for the assistant core."""

from __future__ import annotations

import math


class AssistantError(Exception):
    """Base class for failures raised by the assistant core."""


class RateLimited(AssistantError):
    """Raised when the model gateway's trailing window is full."""

    def __init__(self, wait_ms: int, operation: str = "chat"):
        self.wait_ms = max(0, int(wait_ms))
        self.operation = operation
        super().__init__(f"Rate limit reached; retry in {self.wait_seconds}s")

    @property
    def wait_seconds(self) -> int:
        return int(math.ceil(self.wait_ms / 1000.0))


class ModelCallFailed(AssistantError):
    """Raised when the generative model call fails and no fallback applies."""

    def __init__(self, message: str, operation: str = "chat"):
        self.operation = operation
        super().__init__(message)


class PersistenceFailure(AssistantError):
    """Raised by key-value store backends when a read or write fails."""


class ActionExecutionFailed(AssistantError):
    """Raised inside the action executor; never escapes :meth:`ActionExecutor.execute`."""


__all__ = [
    "AssistantError",
    "RateLimited",
    "ModelCallFailed",
    "PersistenceFailure",
    "ActionExecutionFailed",
]
