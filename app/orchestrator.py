"""Batch orchestration of per-repository analysis with bounded concurrency."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional, Sequence, TypeVar

from app.config.settings import settings
from app.crawlers.github.client import sanitize_log_extra
from app.errors import AnalysisDeadlineExceeded
from app.models.analysis import AnalysisSource, ProjectAnalysis
from app.models.repository import RepoSummary
from app.models.request import ProfileRequest
from app.services.analysis.errors import (
    ContentUnavailableError,
    LLMProviderError,
    LLMTimeoutError,
    MalformedResponseError,
)
from app.services.analysis.retry_policy import call_with_retry, next_state

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_CONCURRENT_ANALYSES = 8
DEADLINE_REASON = "deadline exceeded"


class BatchOrchestrator:
    """Analyzes repositories group by group and returns results in input order."""

    def __init__(
        self,
        *,
        content_selector: Any,
        llm_client: Any,
        batch_size: Optional[int] = None,
        item_timeout_seconds: Optional[float] = None,
        max_attempts: Optional[int] = None,
        backoff_base_seconds: Optional[float] = None,
    ) -> None:
        self._content_selector = content_selector
        self._llm_client = llm_client
        requested = batch_size or settings.ANALYSIS_BATCH_SIZE
        self._batch_size = min(max(requested, 1), MAX_CONCURRENT_ANALYSES)
        self._item_timeout_seconds = item_timeout_seconds or settings.ANALYSIS_ITEM_TIMEOUT_SECONDS
        self._max_attempts = max_attempts or settings.ANALYSIS_MAX_ATTEMPTS
        self._backoff_base_seconds = (
            backoff_base_seconds if backoff_base_seconds is not None else settings.ANALYSIS_BACKOFF_BASE_SECONDS
        )

    @property
    def batch_size(self) -> int:
        return self._batch_size

    @staticmethod
    def partition(items: Sequence[T], size: int) -> list[list[tuple[int, T]]]:
        """Split into consecutive groups, each item tagged with its original index."""
        if size <= 0:
            raise ValueError("size must be positive")
        indexed = list(enumerate(items))
        return [indexed[start : start + size] for start in range(0, len(indexed), size)]

    async def run(
        self,
        repos: Sequence[RepoSummary],
        request: ProfileRequest,
        *,
        timeout_seconds: Optional[float] = None,
    ) -> list[ProjectAnalysis]:
        repos = list(repos)
        results: list[Optional[ProjectAnalysis]] = [None] * len(repos)
        groups = self.partition(repos, self._batch_size)

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_seconds if timeout_seconds is not None else None
        completed_groups = 0
        timed_out = False

        logger.info(
            "Repository analysis started",
            extra=sanitize_log_extra(
                username=request.github_username,
                repositories=len(repos),
                groups=len(groups),
                batch_size=self._batch_size,
            ),
        )

        for group_number, group in enumerate(groups, start=1):
            remaining = None if deadline is None else deadline - loop.time()
            if remaining is not None and remaining <= 0:
                timed_out = True
                break

            tasks = {
                asyncio.create_task(self._analyze_item(repo, request.output_language)): index
                for index, repo in group
            }
            try:
                done, pending = await asyncio.wait(tasks, timeout=remaining)
            finally:
                for task in tasks:
                    if not task.done():
                        task.cancel()

            for task in done:
                results[tasks[task]] = task.result()

            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
                timed_out = True
                logger.warning(
                    "Analysis deadline reached mid-group",
                    extra=sanitize_log_extra(
                        group=group_number,
                        finished=len(done),
                        abandoned=len(pending),
                        completed_groups=completed_groups,
                    ),
                )
                break

            completed_groups += 1
            logger.info(
                "Analysis group finished",
                extra=sanitize_log_extra(
                    group=group_number,
                    size=len(group),
                    degraded=sum(1 for index, _ in group if results[index].is_degraded),
                ),
            )

        if timed_out:
            if completed_groups == 0:
                raise AnalysisDeadlineExceeded(
                    f"Analysis of {len(repos)} repositories exceeded the {timeout_seconds}s deadline "
                    "before any batch completed"
                )
            for index, repo in enumerate(repos):
                if results[index] is None:
                    results[index] = ProjectAnalysis.degraded(repo, DEADLINE_REASON)

        return [result for result in results if result is not None]

    async def _analyze_item(self, repo: RepoSummary, output_language: str) -> ProjectAnalysis:
        label = repo.full_name or repo.name
        cached: dict[str, AnalysisSource] = {}

        async def _attempt():
            # content is selected once; only the LLM call is repeated on retry
            if "source" not in cached:
                cached["source"] = await self._content_selector.select(repo)
            return await self._llm_client.analyze(cached["source"], repo, output_language)

        try:
            narrative = await call_with_retry(
                lambda: asyncio.wait_for(_attempt(), timeout=self._item_timeout_seconds),
                max_attempts=self._max_attempts,
                backoff_base_seconds=self._backoff_base_seconds,
                label=label,
            )
        except (
            ContentUnavailableError,
            MalformedResponseError,
            LLMTimeoutError,
            LLMProviderError,
            asyncio.TimeoutError,
        ) as exc:
            reason = self._degraded_reason(exc)
            logger.warning(
                "Repository analysis degraded",
                extra=sanitize_log_extra(
                    repo=label,
                    state=next_state(self._max_attempts, exc, self._max_attempts).value,
                    reason=reason,
                ),
            )
            return ProjectAnalysis.degraded(repo, reason)
        except Exception as exc:
            logger.exception("Unexpected failure while analyzing repository", extra=sanitize_log_extra(repo=label))
            return ProjectAnalysis.degraded(repo, f"unexpected error: {type(exc).__name__}")

        return ProjectAnalysis.ok(repo, narrative)

    def _degraded_reason(self, exc: BaseException) -> str:
        if isinstance(exc, ContentUnavailableError):
            return f"content unavailable ({exc.kind}): {exc}"
        if isinstance(exc, MalformedResponseError):
            return f"malformed LLM response: {exc}"
        if isinstance(exc, LLMProviderError):
            return f"LLM provider error: {exc}"
        if isinstance(exc, LLMTimeoutError):
            return f"LLM timeout: {exc}"
        return f"analysis timed out after {self._item_timeout_seconds}s"
