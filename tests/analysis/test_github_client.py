from __future__ import annotations

import base64
import time
from typing import Any

import httpx
import pytest

from app.crawlers.github.client import GitHubProfileClient, sanitize_for_log, sanitize_log_extra
from app.crawlers.github.contracts import FetchState, GitHubNotFoundError, GitHubRateLimitError


def _repo_payload(name: str, *, fork: bool = False, language: str = "Python") -> dict[str, Any]:
    return {
        "name": name,
        "full_name": f"octo/{name}",
        "html_url": f"https://github.com/octo/{name}",
        "description": f"{name} description",
        "language": language,
        "stargazers_count": 3,
        "forks_count": 1,
        "default_branch": "main",
        "fork": fork,
        "topics": ["cli"],
        "owner": {"login": "octo"},
    }


def _client(handler, **kwargs: Any) -> GitHubProfileClient:
    options: dict[str, Any] = {
        "token": "ghp_" + "a" * 36,
        "base_url": "https://api.github.test",
        "max_retries": 2,
        "backoff_base_seconds": 0,
        "rate_limit_max_wait_seconds": 0,
        "per_page": 2,
        "max_pages": 5,
        "include_forks": False,
        "transport": httpx.MockTransport(handler),
    }
    options.update(kwargs)
    return GitHubProfileClient(**options)


@pytest.mark.asyncio
async def test_list_repositories_follows_pagination_and_skips_forks() -> None:
    pages = {
        "1": [_repo_payload("alpha"), _repo_payload("forked", fork=True)],
        "2": [_repo_payload("beta")],
    }
    requested: list[dict[str, str]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/users/octo/repos"
        requested.append(dict(request.url.params))
        return httpx.Response(200, json=pages[request.url.params["page"]])

    async with _client(handler) as client:
        repos = await client.list_repositories("octo")

    assert [repo.name for repo in repos] == ["alpha", "beta"]
    assert [params["page"] for params in requested] == ["1", "2"]
    assert requested[0]["type"] == "owner"
    assert repos[0].full_name == "octo/alpha"
    assert repos[0].topics == ("cli",)


@pytest.mark.asyncio
async def test_list_repositories_includes_forks_when_enabled() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[_repo_payload("forked", fork=True)])

    async with _client(handler, include_forks=True) as client:
        repos = await client.list_repositories("octo")

    assert [repo.name for repo in repos] == ["forked"]
    assert repos[0].is_fork is True


@pytest.mark.asyncio
async def test_fetch_profile_maps_payload_and_sends_token() -> None:
    seen: dict[str, str] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers["authorization"]
        return httpx.Response(
            200,
            json={
                "login": "octo",
                "name": "Octo Cat",
                "avatar_url": "https://avatars.test/octo",
                "html_url": "https://github.com/octo",
                "bio": None,
                "public_repos": 8,
            },
        )

    async with _client(handler) as client:
        profile = await client.fetch_profile("octo")

    assert profile.username == "octo"
    assert profile.display_name == "Octo Cat"
    assert profile.bio is None
    assert profile.public_repos == 8
    assert seen["auth"].startswith("Bearer ghp_")


@pytest.mark.asyncio
async def test_fetch_profile_raises_not_found() -> None:
    async with _client(lambda request: httpx.Response(404, json={"message": "Not Found"})) as client:
        with pytest.raises(GitHubNotFoundError):
            await client.fetch_profile("ghost")


@pytest.mark.asyncio
async def test_rate_limit_beyond_wait_budget_is_reported_with_reset() -> None:
    reset_at = int(time.time()) + 600

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            403,
            headers={"x-ratelimit-remaining": "0", "x-ratelimit-reset": str(reset_at)},
            json={"message": "API rate limit exceeded"},
        )

    async with _client(handler) as client:
        result = await client.get_user("octo")
        with pytest.raises(GitHubRateLimitError) as exc_info:
            await client.fetch_profile("octo")

    assert result.state == FetchState.RATE_LIMITED
    assert exc_info.value.reset_at is not None
    assert int(exc_info.value.reset_at.timestamp()) == reset_at


@pytest.mark.asyncio
async def test_short_rate_limit_that_persists_is_reported_as_rate_limited() -> None:
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        return httpx.Response(429, headers={"retry-after": "0"}, json={"message": "slow down"})

    async with _client(handler, max_retries=3, rate_limit_max_wait_seconds=5) as client:
        result = await client.get_user("octo")
        with pytest.raises(GitHubRateLimitError) as exc_info:
            await client.fetch_profile("octo")

    assert result.state == FetchState.RATE_LIMITED
    assert result.status_code == 429
    assert result.rate_limit_reset is not None
    assert exc_info.value.reset_at is not None
    assert calls["count"] == 6


@pytest.mark.asyncio
async def test_server_errors_are_retried_then_succeed() -> None:
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        if calls["count"] == 1:
            return httpx.Response(503, text="unavailable")
        return httpx.Response(200, json={"login": "octo"})

    async with _client(handler) as client:
        result = await client.get_user("octo")

    assert result.state == FetchState.OK
    assert calls["count"] == 2


@pytest.mark.asyncio
async def test_persistent_server_errors_become_failed_result() -> None:
    async with _client(lambda request: httpx.Response(500, text="boom")) as client:
        result = await client.get_user("octo")

    assert result.state == FetchState.FAILED
    assert result.is_failed


@pytest.mark.asyncio
async def test_get_readme_decodes_base64_content() -> None:
    body = "# Title\n\nSome text\n"
    encoded = base64.b64encode(body.encode()).decode()
    chunked = "\n".join(encoded[i : i + 8] for i in range(0, len(encoded), 8))

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/repos/octo/alpha/readme"
        return httpx.Response(200, json={"content": chunked, "encoding": "base64"})

    async with _client(handler) as client:
        result = await client.get_readme("octo", "alpha")

    assert result.state == FetchState.OK
    assert result.data == body


@pytest.mark.asyncio
async def test_list_directory_and_get_content_on_directory() -> None:
    listing = [{"type": "dir", "name": "src", "path": "src"}, {"type": "file", "name": "main.py", "path": "main.py"}]

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=listing)

    async with _client(handler) as client:
        directory = await client.list_directory("octo", "alpha")
        content = await client.get_content("octo", "alpha", "src")

    assert directory.state == FetchState.OK
    assert [entry["name"] for entry in directory.data] == ["src", "main.py"]
    assert content.state == FetchState.FAILED


@pytest.mark.asyncio
async def test_empty_repository_listing_is_empty_result() -> None:
    async with _client(lambda request: httpx.Response(200, json=[])) as client:
        result = await client.list_user_repos("octo")
        repos = await client.list_repositories("octo")

    assert result.state == FetchState.EMPTY
    assert repos == []


def test_sanitize_for_log_redacts_tokens_and_payloads() -> None:
    sanitized = sanitize_for_log(
        {
            "Authorization": "Bearer ghp_" + "x" * 36,
            "url": "https://api.test/?access_token=abc123",
            "note": "used key sk-" + "y" * 24,
            "readme": "long readme body",
        }
    )

    assert sanitized["Authorization"] == "***REDACTED***"
    assert "abc123" not in sanitized["url"]
    assert "sk-" not in sanitized["note"]
    assert sanitized["readme"].startswith("<redacted payload")


def test_sanitize_log_extra_keeps_plain_values() -> None:
    assert sanitize_log_extra(repo="octo/alpha", attempt=2) == {"repo": "octo/alpha", "attempt": 2}
