"""Typed fetch results and errors for the GitHub REST client."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


class FetchState(str, enum.Enum):
    OK = "ok"
    EMPTY = "empty"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    FAILED = "failed"


@dataclass(slots=True)
class FetchResult(Generic[T]):
    """Outcome of one GitHub API call; never raises for HTTP-level failures."""

    state: FetchState
    data: Optional[T] = None
    status_code: Optional[int] = None
    error: Optional[str] = None
    rate_limit_reset: Optional[datetime] = None

    @property
    def is_ok(self) -> bool:
        return self.state == FetchState.OK

    @property
    def is_failed(self) -> bool:
        return self.state in (FetchState.NOT_FOUND, FetchState.RATE_LIMITED, FetchState.FAILED)


UserContract = FetchResult[dict[str, Any]]
RepoListContract = FetchResult[list[dict[str, Any]]]
DirectoryContract = FetchResult[list[dict[str, Any]]]
ContentContract = FetchResult[str]


class GitHubError(Exception):
    """Base error for GitHub lookups that cannot be degraded locally."""


class GitHubNotFoundError(GitHubError):
    pass


class GitHubRateLimitError(GitHubError):
    def __init__(self, message: str, *, reset_at: Optional[datetime] = None) -> None:
        super().__init__(message)
        self.reset_at = reset_at


class GitHubNetworkError(GitHubError):
    pass


def raise_for_state(result: FetchResult[Any], *, subject: str) -> None:
    """Translate a failed fetch into the matching GitHub error."""

    if result.state == FetchState.NOT_FOUND:
        raise GitHubNotFoundError(f"GitHub {subject} not found")
    if result.state == FetchState.RATE_LIMITED:
        raise GitHubRateLimitError(
            f"GitHub API rate limit exceeded while fetching {subject}",
            reset_at=result.rate_limit_reset,
        )
    if result.state == FetchState.FAILED:
        detail = f": {result.error}" if result.error else ""
        raise GitHubNetworkError(f"GitHub request for {subject} failed{detail}")
