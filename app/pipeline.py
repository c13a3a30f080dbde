"""End-to-end profile analysis: GitHub listing, hero summary, batched project analysis."""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Callable, Optional, Sequence

from app.config.settings import Settings, settings
from app.crawlers.github.client import GitHubProfileClient, sanitize_log_extra
from app.crawlers.github.contracts import GitHubNetworkError, GitHubNotFoundError, GitHubRateLimitError
from app.errors import InvalidUsernameError, RateLimitedError, UpstreamUnavailableError, UserNotFoundError
from app.models.bundle import HeroSummary, ProfileBundle
from app.models.repository import RepoSummary, UserProfile
from app.models.request import ModelConfig, ProfileRequest
from app.orchestrator import BatchOrchestrator
from app.services.analysis.bundle_assembler import assemble, build_fallback_hero
from app.services.analysis.content_selector import ContentLimits, ContentSelector
from app.services.analysis.errors import LLMError
from app.services.analysis.llm_client import LLMClient
from app.services.analysis.retry_policy import call_with_retry

logger = logging.getLogger(__name__)

GITHUB_USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9]|-(?=[A-Za-z0-9])){0,38}$")


def validate_username(username: str) -> str:
    candidate = (username or "").strip()
    if not candidate:
        raise InvalidUsernameError("GitHub username is required")
    if not GITHUB_USERNAME_PATTERN.match(candidate):
        raise InvalidUsernameError(f"'{candidate}' is not a valid GitHub username")
    return candidate


class ProfilePipeline:
    """Runs one profile analysis request from username to bundle."""

    def __init__(
        self,
        *,
        config: Settings | None = None,
        github_client_factory: Callable[[Optional[str]], Any] | None = None,
        llm_client_factory: Callable[[ModelConfig], Any] | None = None,
    ) -> None:
        self._config = config or settings
        self._github_client_factory = github_client_factory or self._default_github_client
        self._llm_client_factory = llm_client_factory or LLMClient

    def _default_github_client(self, token: Optional[str]) -> GitHubProfileClient:
        cfg = self._config
        return GitHubProfileClient(
            token=token,
            base_url=cfg.GITHUB_API_URL,
            timeout_seconds=cfg.GITHUB_TIMEOUT_SECONDS,
            max_retries=cfg.GITHUB_MAX_RETRIES,
            backoff_base_seconds=cfg.GITHUB_BACKOFF_BASE_SECONDS,
            backoff_max_seconds=cfg.GITHUB_BACKOFF_MAX_SECONDS,
            rate_limit_max_wait_seconds=cfg.GITHUB_RATE_LIMIT_MAX_WAIT_SECONDS,
            per_page=cfg.GITHUB_REPOS_PER_PAGE,
            max_pages=cfg.GITHUB_MAX_REPO_PAGES,
            include_forks=cfg.GITHUB_INCLUDE_FORKS,
        )

    async def run(self, request: ProfileRequest) -> ProfileBundle:
        username = validate_username(request.github_username)
        loop = asyncio.get_running_loop()
        started = loop.time()

        logger.info(
            "Profile analysis started",
            extra=sanitize_log_extra(
                username=username,
                model=request.model_name,
                language=request.output_language,
                authenticated=bool(request.github_token),
            ),
        )

        async with self._github_client_factory(request.github_token) as github:
            profile, repos = await self._fetch_listing(github, username)

            if not repos:
                logger.info("No repositories to analyze", extra=sanitize_log_extra(username=username))
                return assemble(profile, build_fallback_hero(profile, repos), [])

            async with self._llm_client_factory(request.llm_config()) as llm:
                hero = await self._summarize_hero(llm, profile, repos, request.output_language)

                selector = ContentSelector(github, limits=ContentLimits.from_settings(len(repos), self._config))
                orchestrator = BatchOrchestrator(
                    content_selector=selector,
                    llm_client=llm,
                    batch_size=self._config.ANALYSIS_BATCH_SIZE,
                    item_timeout_seconds=self._config.ANALYSIS_ITEM_TIMEOUT_SECONDS,
                    max_attempts=self._config.ANALYSIS_MAX_ATTEMPTS,
                    backoff_base_seconds=self._config.ANALYSIS_BACKOFF_BASE_SECONDS,
                )
                remaining = self._config.ANALYSIS_DEADLINE_SECONDS - (loop.time() - started)
                analyses = await orchestrator.run(repos, request, timeout_seconds=remaining)

        bundle = assemble(profile, hero, analyses)
        logger.info(
            "Profile analysis finished",
            extra=sanitize_log_extra(
                username=username,
                projects=len(bundle.projects),
                degraded=bundle.degraded_count,
                hero_fallback=hero.is_fallback,
                elapsed_seconds=round(loop.time() - started, 2),
            ),
        )
        return bundle

    async def _fetch_listing(self, github: Any, username: str) -> tuple[UserProfile, list[RepoSummary]]:
        try:
            profile = await github.fetch_profile(username)
            repos = await github.list_repositories(username)
        except GitHubNotFoundError as exc:
            raise UserNotFoundError(f"GitHub user '{username}' not found") from exc
        except GitHubRateLimitError as exc:
            raise RateLimitedError(
                "GitHub API rate limit exceeded. Provide a GitHub token to raise the limit or retry later.",
                retry_after=exc.reset_at,
            ) from exc
        except GitHubNetworkError as exc:
            raise UpstreamUnavailableError(f"GitHub is unavailable: {exc}") from exc
        return profile, repos

    async def _summarize_hero(
        self,
        llm: Any,
        profile: UserProfile,
        repos: Sequence[RepoSummary],
        output_language: str,
    ) -> HeroSummary:
        try:
            return await call_with_retry(
                lambda: asyncio.wait_for(
                    llm.analyze_hero(profile, repos, output_language),
                    timeout=self._config.ANALYSIS_ITEM_TIMEOUT_SECONDS,
                ),
                max_attempts=self._config.ANALYSIS_MAX_ATTEMPTS,
                backoff_base_seconds=self._config.ANALYSIS_BACKOFF_BASE_SECONDS,
                label=f"hero:{profile.username}",
            )
        except (LLMError, asyncio.TimeoutError) as exc:
            logger.warning(
                "Hero summary failed, using profile metadata",
                extra=sanitize_log_extra(username=profile.username, error=f"{type(exc).__name__}: {exc}"),
            )
            return build_fallback_hero(profile, repos)


async def run_analysis(request: ProfileRequest, **deps: Any) -> ProfileBundle:
    """Analyze one GitHub profile; raises `PipelineError` subclasses for request-level failures."""
    return await ProfilePipeline(**deps).run(request)
