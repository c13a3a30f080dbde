"""Resilient async GitHub client for profile analysis."""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import re
import time
from datetime import UTC, datetime
from typing import Any, Optional

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from app.config.settings import settings
from app.crawlers.github.contracts import (
    ContentContract,
    DirectoryContract,
    FetchResult,
    FetchState,
    RepoListContract,
    UserContract,
    raise_for_state,
)
from app.models.repository import RepoSummary, UserProfile

logger = logging.getLogger(__name__)

_REDACTED_VALUE = "***REDACTED***"
_SENSITIVE_KEYS = ("authorization", "token", "api_key", "apikey", "secret", "password", "cookie")
_PAYLOAD_KEYS = ("body", "raw", "content", "payload", "response", "prompt", "readme", "snippet")
_TOKEN_PATTERNS = (
    re.compile(r"(?i)(bearer\s+)[^\s,;]+"),
    re.compile(r"(?i)(token\s*[=:]\s*)[^\s,;]+"),
    re.compile(r"(?i)(access_token=)[^&\s]+"),
    re.compile(r"(?i)(api[_-]?key\s*[=:]\s*)[^\s,;]+"),
    re.compile(r"(?i)(secret\s*[=:]\s*)[^\s,;]+"),
)
_SECRET_LITERALS = (
    re.compile(r"\bgh[pousr]_[A-Za-z0-9]{20,}\b"),
    re.compile(r"\bsk-[A-Za-z0-9_-]{16,}\b"),
)


def sanitize_for_log(value: Any, *, key: Optional[str] = None) -> Any:
    """Return a recursively sanitized copy of log payloads."""

    if isinstance(value, dict):
        sanitized: dict[str, Any] = {}
        for raw_key, raw_value in value.items():
            field = str(raw_key)
            if _contains_keyword(field, _SENSITIVE_KEYS):
                sanitized[field] = _REDACTED_VALUE
                continue
            sanitized[field] = sanitize_for_log(raw_value, key=field)
        return sanitized

    if isinstance(value, (list, tuple, set)):
        return [sanitize_for_log(item, key=key) for item in value]

    if isinstance(value, str):
        if key and _contains_keyword(key, _PAYLOAD_KEYS):
            return _redact_payload(value)
        return _redact_text(value)

    return value


def sanitize_log_extra(**kwargs: Any) -> dict[str, Any]:
    """Helper for `extra=` payloads in structured logging."""

    return {key: sanitize_for_log(value, key=key) for key, value in kwargs.items()}


def _contains_keyword(field_name: str, keywords: tuple[str, ...]) -> bool:
    lowered = field_name.lower()
    return any(keyword in lowered for keyword in keywords)


def _redact_payload(raw: str) -> str:
    if not raw.strip():
        return ""
    return f"<redacted payload ({len(raw)} chars)>"


def _redact_text(raw: str) -> str:
    redacted = raw
    for pattern in _TOKEN_PATTERNS:
        redacted = pattern.sub(rf"\1{_REDACTED_VALUE}", redacted)
    for pattern in _SECRET_LITERALS:
        redacted = pattern.sub(_REDACTED_VALUE, redacted)
    return redacted


class _TransientGitHubError(Exception):
    """Retryable 5xx / secondary rate-limit signal for tenacity."""


class _RateLimitRetry(_TransientGitHubError):
    """Short rate-limit wait; reported as RATE_LIMITED if retries run out."""

    def __init__(self, message: str, *, status_code: int, reset_at: datetime) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.reset_at = reset_at


class GitHubProfileClient:
    """Typed GitHub API client for user, repository listing and content lookups."""

    ACCEPT_JSON = "application/vnd.github+json"
    API_VERSION = "2022-11-28"

    def __init__(
        self,
        *,
        token: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        max_retries: Optional[int] = None,
        backoff_base_seconds: Optional[float] = None,
        backoff_max_seconds: Optional[float] = None,
        rate_limit_max_wait_seconds: Optional[float] = None,
        per_page: Optional[int] = None,
        max_pages: Optional[int] = None,
        include_forks: Optional[bool] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._token = token
        self._base_url = base_url or settings.GITHUB_API_URL
        self._timeout_seconds = timeout_seconds or settings.GITHUB_TIMEOUT_SECONDS
        self._max_retries = max_retries or settings.GITHUB_MAX_RETRIES
        self._backoff_base_seconds = (
            backoff_base_seconds if backoff_base_seconds is not None else settings.GITHUB_BACKOFF_BASE_SECONDS
        )
        self._backoff_max_seconds = backoff_max_seconds or settings.GITHUB_BACKOFF_MAX_SECONDS
        self._rate_limit_max_wait_seconds = (
            rate_limit_max_wait_seconds
            if rate_limit_max_wait_seconds is not None
            else settings.GITHUB_RATE_LIMIT_MAX_WAIT_SECONDS
        )
        self._per_page = per_page or settings.GITHUB_REPOS_PER_PAGE
        self._max_pages = max_pages or settings.GITHUB_MAX_REPO_PAGES
        self._include_forks = settings.GITHUB_INCLUDE_FORKS if include_forks is None else include_forks
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "GitHubProfileClient":
        await self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    # -- high-level operations -------------------------------------------------

    async def fetch_profile(self, username: str) -> UserProfile:
        result = await self.get_user(username)
        raise_for_state(result, subject=f"user '{username}'")
        return UserProfile.from_payload(result.data or {})

    async def list_repositories(self, username: str) -> list[RepoSummary]:
        """Return the user's repositories in API order, following pagination."""

        result = await self.list_user_repos(username)
        raise_for_state(result, subject=f"repositories of '{username}'")

        repos: list[RepoSummary] = []
        for payload in result.data or []:
            if not isinstance(payload, dict):
                continue
            repo = RepoSummary.from_payload(payload)
            if not repo.name or (repo.is_fork and not self._include_forks):
                continue
            repos.append(repo)
        return repos

    # -- contract methods ------------------------------------------------------

    async def get_user(self, username: str) -> UserContract:
        result = await self._request(f"/users/{username}")
        if result.is_ok and not isinstance(result.data, dict):
            return FetchResult(state=FetchState.FAILED, status_code=result.status_code, error="Unexpected user payload")
        return result

    async def list_user_repos(
        self,
        username: str,
        *,
        sort: Optional[str] = None,
    ) -> RepoListContract:
        items: list[dict[str, Any]] = []
        params: dict[str, Any] = {
            "type": "owner",
            "sort": sort or settings.GITHUB_REPO_SORT,
            "per_page": self._per_page,
        }

        for page in range(1, self._max_pages + 1):
            params["page"] = page
            response = await self._request(f"/users/{username}/repos", params=dict(params))
            if response.state == FetchState.EMPTY:
                break
            if response.state != FetchState.OK:
                return response

            page_items = response.data if isinstance(response.data, list) else []
            items.extend(item for item in page_items if isinstance(item, dict))
            if len(page_items) < self._per_page:
                break
        else:
            logger.info(
                "Repository listing reached page cap",
                extra=sanitize_log_extra(username=username, max_pages=self._max_pages, collected=len(items)),
            )

        if not items:
            return FetchResult(state=FetchState.EMPTY, data=[])
        return FetchResult(state=FetchState.OK, data=items, status_code=200)

    async def get_readme(self, owner: str, repo: str) -> ContentContract:
        response = await self._request(f"/repos/{owner}/{repo}/readme")
        return self._decode_content(response)

    async def get_content(self, owner: str, repo: str, path: str) -> ContentContract:
        response = await self._request(f"/repos/{owner}/{repo}/contents/{path}")
        if response.is_ok and isinstance(response.data, list):
            return FetchResult(state=FetchState.FAILED, status_code=response.status_code, error=f"{path} is a directory")
        return self._decode_content(response)

    async def list_directory(self, owner: str, repo: str, path: str = "") -> DirectoryContract:
        api_path = f"/repos/{owner}/{repo}/contents/{path}" if path else f"/repos/{owner}/{repo}/contents"
        response = await self._request(api_path)
        if response.state != FetchState.OK:
            return response
        if isinstance(response.data, dict):
            return FetchResult(state=FetchState.OK, data=[response.data], status_code=response.status_code)
        return response

    # -- transport -------------------------------------------------------------

    @staticmethod
    def _decode_content(response: FetchResult[Any]) -> ContentContract:
        if response.state != FetchState.OK:
            return response

        payload = response.data if isinstance(response.data, dict) else {}
        encoded = payload.get("content") if isinstance(payload.get("content"), str) else ""
        encoding = payload.get("encoding") if isinstance(payload.get("encoding"), str) else ""

        if not encoded:
            return FetchResult(state=FetchState.EMPTY, data="", status_code=response.status_code)

        if encoding == "base64":
            try:
                decoded = base64.b64decode("".join(encoded.split())).decode("utf-8", errors="replace")
            except (binascii.Error, ValueError) as exc:
                return FetchResult(
                    state=FetchState.FAILED,
                    error=f"Failed to decode base64 content: {exc}",
                    status_code=response.status_code,
                )
        else:
            decoded = encoded

        if not decoded.strip():
            return FetchResult(state=FetchState.EMPTY, data=decoded, status_code=response.status_code)
        return FetchResult(state=FetchState.OK, data=decoded, status_code=response.status_code)

    async def _request(self, path: str, *, params: Optional[dict[str, Any]] = None) -> FetchResult[Any]:
        client = await self._ensure_client()

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._max_retries),
                wait=wait_exponential(multiplier=self._backoff_base_seconds, max=self._backoff_max_seconds),
                retry=retry_if_exception_type((_TransientGitHubError, httpx.TransportError)),
                reraise=True,
            ):
                with attempt:
                    response = await client.get(path, params=params)

                    if response.status_code == 404:
                        return FetchResult(state=FetchState.NOT_FOUND, status_code=404, error=f"{path} not found")

                    if self._is_rate_limited(response):
                        wait_seconds = self._compute_rate_limit_wait(response.headers)
                        logger.warning(
                            "GitHub API rate limit encountered",
                            extra=sanitize_log_extra(
                                path=path,
                                status_code=response.status_code,
                                retry_after_seconds=wait_seconds,
                            ),
                        )
                        reset_at = self._reset_time(response.headers, wait_seconds)
                        if wait_seconds > self._rate_limit_max_wait_seconds:
                            return FetchResult(
                                state=FetchState.RATE_LIMITED,
                                status_code=response.status_code,
                                error="GitHub API rate limit exceeded",
                                rate_limit_reset=reset_at,
                            )
                        if wait_seconds > 0:
                            await asyncio.sleep(wait_seconds)
                        raise _RateLimitRetry(
                            f"GitHub rate limit encountered ({response.status_code})",
                            status_code=response.status_code,
                            reset_at=reset_at,
                        )

                    if response.status_code >= 500:
                        raise _TransientGitHubError(f"GitHub server error ({response.status_code})")

                    response.raise_for_status()
                    if response.status_code == 204 or not response.content:
                        return FetchResult(state=FetchState.EMPTY, status_code=response.status_code)

                    payload = response.json()
                    if isinstance(payload, (list, dict)) and len(payload) == 0:
                        return FetchResult(state=FetchState.EMPTY, data=payload, status_code=response.status_code)
                    return FetchResult(state=FetchState.OK, data=payload, status_code=response.status_code)
        except _TransientGitHubError as exc:
            logger.warning(
                "GitHub request failed after retries",
                extra=sanitize_log_extra(path=path, params=params, error=str(exc)),
            )
            if isinstance(exc, _RateLimitRetry):
                return FetchResult(
                    state=FetchState.RATE_LIMITED,
                    status_code=exc.status_code,
                    error="GitHub API rate limit exceeded",
                    rate_limit_reset=exc.reset_at,
                )
            return FetchResult(state=FetchState.FAILED, error=str(exc), status_code=503)
        except httpx.HTTPError as exc:
            status_code = getattr(getattr(exc, "response", None), "status_code", None)
            logger.warning(
                "GitHub request failed",
                extra=sanitize_log_extra(path=path, params=params, error=str(exc), status_code=status_code),
            )
            return FetchResult(state=FetchState.FAILED, error=str(exc), status_code=status_code)
        except ValueError as exc:
            return FetchResult(state=FetchState.FAILED, error=f"Invalid JSON from GitHub: {exc}")

        return FetchResult(state=FetchState.FAILED, error="Unknown GitHub request failure")

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client:
            return self._client

        headers = {
            "Accept": self.ACCEPT_JSON,
            "User-Agent": settings.USER_AGENT,
            "X-GitHub-Api-Version": self.API_VERSION,
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"

        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=headers,
            timeout=self._timeout_seconds,
            transport=self._transport,
        )
        return self._client

    @staticmethod
    def _is_rate_limited(response: httpx.Response) -> bool:
        if response.status_code == 429:
            return True
        if response.status_code != 403:
            return False
        if response.headers.get("x-ratelimit-remaining") == "0":
            return True
        return "rate limit" in response.text.lower()

    def _compute_rate_limit_wait(self, headers: httpx.Headers) -> float:
        retry_after = headers.get("retry-after")
        if retry_after is not None:
            try:
                return max(float(retry_after), 0.0)
            except ValueError:
                pass

        reset_raw = headers.get("x-ratelimit-reset")
        if reset_raw is not None:
            try:
                return float(max(int(reset_raw) - int(time.time()), 0))
            except ValueError:
                pass

        return self._backoff_base_seconds

    @staticmethod
    def _reset_time(headers: httpx.Headers, wait_seconds: float) -> datetime:
        reset_raw = headers.get("x-ratelimit-reset")
        if reset_raw is not None:
            try:
                return datetime.fromtimestamp(int(reset_raw), tz=UTC)
            except ValueError:
                pass
        return datetime.fromtimestamp(time.time() + wait_seconds, tz=UTC)
