"""Per-repository failures; the orchestrator turns these into degraded entries."""

from __future__ import annotations


class ContentUnavailableError(Exception):
    """No analysable content could be selected for a repository."""

    NOT_FOUND = "not_found"
    EMPTY = "empty"

    def __init__(self, message: str, *, kind: str = EMPTY) -> None:
        super().__init__(message)
        self.kind = kind


class LLMError(Exception):
    """Base class for LLM call failures."""


class LLMTimeoutError(LLMError):
    pass


class LLMProviderError(LLMError):
    """Transport or HTTP-level failure reported by the LLM endpoint."""


class MalformedResponseError(LLMError):
    """The reply could not be parsed into the expected structure, even after repair."""

    def __init__(self, message: str, *, raw: str = "") -> None:
        super().__init__(message)
        self.raw = raw
