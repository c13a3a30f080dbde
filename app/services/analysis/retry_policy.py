"""Retry decisions for per-repository analysis.

`next_state` is the pure transition table; `call_with_retry` drives it with
tenacity so waits and logging follow the same path as the GitHub client.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt
from tenacity.retry import retry_base

from app.crawlers.github.client import sanitize_log_extra
from app.services.analysis.errors import LLMProviderError, LLMTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_BACKOFF_FACTOR = 8

TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (LLMTimeoutError, LLMProviderError, asyncio.TimeoutError)


class ItemState(str, enum.Enum):
    PENDING = "pending"
    RETRYING = "retrying"
    OK = "ok"
    DEGRADED = "degraded"

    @property
    def is_terminal(self) -> bool:
        return self in (ItemState.OK, ItemState.DEGRADED)


def is_transient(error: Optional[BaseException]) -> bool:
    return isinstance(error, TRANSIENT_ERRORS)


def next_state(attempt: int, error: Optional[BaseException], max_attempts: int) -> ItemState:
    """State after `attempt` (1-based) finished with `error`, or succeeded when None.

    Only timeouts and provider errors earn another attempt; malformed output
    and missing content degrade immediately.
    """

    if error is None:
        return ItemState.OK
    if is_transient(error) and attempt < max_attempts:
        return ItemState.RETRYING
    return ItemState.DEGRADED


def backoff_delay(attempt: int, base_seconds: float) -> float:
    """Exponential wait before attempt `attempt + 1`, capped at `MAX_BACKOFF_FACTOR` times the base."""
    if base_seconds <= 0:
        return 0.0
    return base_seconds * min(2 ** max(attempt - 1, 0), MAX_BACKOFF_FACTOR)


class retry_if_transient(retry_base):
    """Tenacity predicate backed by `next_state`."""

    def __init__(self, max_attempts: int) -> None:
        self.max_attempts = max_attempts

    def __call__(self, retry_state: RetryCallState) -> bool:
        outcome = retry_state.outcome
        if outcome is None or not outcome.failed:
            return False
        state = next_state(retry_state.attempt_number, outcome.exception(), self.max_attempts)
        return state is ItemState.RETRYING


def backoff_wait(base_seconds: float) -> Callable[[RetryCallState], float]:
    """Tenacity wait callable over `backoff_delay`."""

    def _wait(retry_state: RetryCallState) -> float:
        return backoff_delay(retry_state.attempt_number, base_seconds)

    return _wait


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    max_attempts: int,
    backoff_base_seconds: float,
    label: str = "",
) -> T:
    """Run `operation`, retrying transient failures; the last error is re-raised."""

    def _log_retry(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.info(
            "Transient analysis failure, retrying",
            extra=sanitize_log_extra(
                subject=label,
                attempt=retry_state.attempt_number,
                max_attempts=max_attempts,
                error=f"{type(error).__name__}: {error}" if error else None,
            ),
        )

    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(max(max_attempts, 1)),
        wait=backoff_wait(backoff_base_seconds),
        retry=retry_if_transient(max(max_attempts, 1)),
        before_sleep=_log_retry,
        reraise=True,
    ):
        with attempt:
            return await operation()

    raise RuntimeError("retry loop exited without result")
