"""Structured LLM analysis over OpenAI-compatible or Ollama-native chat endpoints"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Sequence, TypeVar

import httpx
import openai
from openai import AsyncOpenAI
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from app.config.settings import settings
from app.crawlers.github.client import sanitize_log_extra
from app.models.analysis import AnalysisSource, ProjectNarrative
from app.models.bundle import HeroSummary
from app.models.repository import RepoSummary, UserProfile
from app.models.request import ModelConfig
from app.services.analysis.errors import LLMProviderError, LLMTimeoutError, MalformedResponseError
from app.services.analysis.prompts import build_hero_prompt, build_project_prompt, repair_message, system_message

logger = logging.getLogger(__name__)

OPENAI_MODE = "openai"
OLLAMA_MODE = "ollama"

# AsyncOpenAI refuses an empty key; keyless local endpoints ignore the header.
_KEYLESS_PLACEHOLDER = "no-key"

_VERSIONED_PATH = re.compile(r"/v\d+$")

CompletionCall = Callable[[list[dict[str, str]]], Awaitable[str]]
PayloadT = TypeVar("PayloadT", bound=BaseModel)


@dataclass(frozen=True, slots=True)
class LLMEndpoint:
    mode: str
    url: str

    @property
    def base_url(self) -> str:
        """Base URL for the OpenAI SDK, which appends `/chat/completions` itself."""
        suffix = "/chat/completions"
        return self.url[: -len(suffix)] if self.url.endswith(suffix) else self.url


def resolve_endpoint(api_url: str) -> LLMEndpoint:
    """Detect the API flavour and full chat endpoint from a user-supplied URL."""

    base = api_url.strip().rstrip("/")

    if base.endswith("/chat/completions"):
        return LLMEndpoint(OPENAI_MODE, base)
    if base.endswith("/api/chat"):
        return LLMEndpoint(OLLAMA_MODE, base)
    if base.endswith("/api/generate"):
        return LLMEndpoint(OLLAMA_MODE, base[: -len("/api/generate")] + "/api/chat")
    if _VERSIONED_PATH.search(base):
        return LLMEndpoint(OPENAI_MODE, f"{base}/chat/completions")
    if base.endswith("/api"):
        return LLMEndpoint(OLLAMA_MODE, f"{base}/chat")
    if ":11434" in base or "ollama" in base:
        return LLMEndpoint(OLLAMA_MODE, f"{base}/api/chat")
    return LLMEndpoint(OPENAI_MODE, f"{base}/v1/chat/completions")


class ProjectNarrativePayload(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    problem_solved: str = Field(min_length=1)
    detailed_description: str = ""
    use_cases: list[str] = Field(default_factory=list)
    tech_stack: list[str] = Field(default_factory=list)

    @field_validator("use_cases", "tech_stack", mode="before")
    @classmethod
    def _coerce_list(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        if isinstance(value, list):
            return [str(item) for item in value if item is not None]
        return value


class HeroPayload(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    hero_title: str = Field(min_length=1)
    bio: str = Field(min_length=1)


def parse_structured(raw: Optional[str], schema: type[PayloadT]) -> PayloadT:
    """Parse an LLM reply into `schema`, tolerating code fences and surrounding prose."""

    content = (raw or "").strip()

    # Remove markdown code blocks if present
    if content.startswith("```"):
        content = content.split("```")[1] if content.count("```") >= 2 else content.strip("`")
        if content.startswith("json"):
            content = content[4:]
        content = content.strip()

    data = _load_json_object(content)
    if data is None:
        raise MalformedResponseError("LLM reply is not a JSON object", raw=raw or "")

    try:
        return schema.model_validate(data)
    except ValidationError as exc:
        raise MalformedResponseError(
            f"LLM reply failed {schema.__name__} validation ({exc.error_count()} errors)",
            raw=raw or "",
        ) from exc


def _load_json_object(content: str) -> Optional[dict[str, Any]]:
    try:
        data = json.loads(content)
    except json.JSONDecodeError:
        start, end = content.find("{"), content.rfind("}")
        if start == -1 or end <= start:
            return None
        try:
            data = json.loads(content[start : end + 1])
        except json.JSONDecodeError:
            return None

    # Some models keep the multi-project envelope even when asked for one object.
    if isinstance(data, dict) and isinstance(data.get("projects"), list) and len(data["projects"]) == 1:
        nested = data["projects"][0]
        if isinstance(nested, dict) and "problem_solved" not in data:
            return nested
    return data if isinstance(data, dict) else None


class LLMClient:
    """Sends analysis prompts and returns validated structured results."""

    def __init__(
        self,
        config: ModelConfig,
        *,
        completion: CompletionCall | None = None,
        openai_client: AsyncOpenAI | None = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._config = config
        self._endpoint = resolve_endpoint(config.api_url)
        self._completion = completion
        self._openai_client = openai_client
        self._owns_openai_client = openai_client is None
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None

    @property
    def endpoint(self) -> LLMEndpoint:
        return self._endpoint

    async def __aenter__(self) -> "LLMClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None
        if self._openai_client is not None and self._owns_openai_client:
            await self._openai_client.close()
            self._openai_client = None

    async def analyze(self, source: AnalysisSource, repo: RepoSummary, output_language: str) -> ProjectNarrative:
        prompt = build_project_prompt(repo, source, output_language)
        payload = await self._complete_structured(
            prompt,
            output_language,
            ProjectNarrativePayload,
            subject=repo.full_name or repo.name,
        )
        return ProjectNarrative(
            problem_solved=payload.problem_solved,
            detailed_description=payload.detailed_description,
            use_cases=tuple(payload.use_cases),
            tech_stack=tuple(payload.tech_stack),
        )

    async def analyze_hero(
        self,
        profile: UserProfile,
        repos: Sequence[RepoSummary],
        output_language: str,
    ) -> HeroSummary:
        prompt = build_hero_prompt(profile, repos, output_language)
        payload = await self._complete_structured(prompt, output_language, HeroPayload, subject=profile.username)
        return HeroSummary(hero_title=payload.hero_title, bio=payload.bio)

    async def _complete_structured(
        self,
        prompt: str,
        language: str,
        schema: type[PayloadT],
        *,
        subject: str,
    ) -> PayloadT:
        messages = [
            {"role": "system", "content": system_message(language)},
            {"role": "user", "content": prompt},
        ]
        raw = await self._complete(messages)
        try:
            return parse_structured(raw, schema)
        except MalformedResponseError as exc:
            logger.info(
                "LLM reply malformed, sending repair request",
                extra=sanitize_log_extra(subject=subject, error=str(exc), response=raw),
            )

        messages.extend(
            [
                {"role": "assistant", "content": raw or ""},
                {"role": "user", "content": repair_message(language)},
            ]
        )
        raw = await self._complete(messages)
        return parse_structured(raw, schema)

    async def _complete(self, messages: list[dict[str, str]]) -> str:
        if self._completion is not None:
            return await self._completion(messages)
        if self._endpoint.mode == OLLAMA_MODE:
            return await self._complete_ollama(messages)
        return await self._complete_openai(messages)

    async def _complete_openai(self, messages: list[dict[str, str]]) -> str:
        client = self._ensure_openai_client()
        try:
            response = await client.chat.completions.create(
                model=self._config.model_name,
                messages=messages,
                temperature=self._config.temperature,
                max_tokens=self._config.max_tokens,
            )
        except openai.APITimeoutError as exc:
            raise LLMTimeoutError(f"LLM request to {self._endpoint.url} timed out") from exc
        except openai.APIError as exc:
            raise LLMProviderError(f"LLM API error: {exc}") from exc

        if not response.choices:
            raise LLMProviderError("LLM response contained no choices")
        return (response.choices[0].message.content or "").strip()

    async def _complete_ollama(self, messages: list[dict[str, str]]) -> str:
        client = self._ensure_http_client()
        body = {
            "model": self._config.model_name,
            "messages": messages,
            "stream": False,
            "options": {"temperature": self._config.temperature},
        }
        try:
            response = await client.post(self._endpoint.url, json=body)
            response.raise_for_status()
            payload = response.json()
        except httpx.TimeoutException as exc:
            raise LLMTimeoutError(f"LLM request to {self._endpoint.url} timed out") from exc
        except httpx.HTTPStatusError as exc:
            raise LLMProviderError(
                f"LLM API error ({exc.response.status_code}): {exc.response.text[:200]}"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise LLMProviderError(f"error sending request for url ({self._endpoint.url}): {exc}") from exc

        message = payload.get("message") if isinstance(payload, dict) else None
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str):
            raise LLMProviderError("Unexpected Ollama response format")
        return content.strip()

    def _ensure_openai_client(self) -> AsyncOpenAI:
        if self._openai_client is None:
            self._openai_client = AsyncOpenAI(
                api_key=self._config.api_key or _KEYLESS_PLACEHOLDER,
                base_url=self._endpoint.base_url,
                timeout=self._config.timeout_seconds,
                max_retries=0,
            )
        return self._openai_client

    def _ensure_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            headers = {"Content-Type": "application/json", "User-Agent": settings.USER_AGENT}
            if self._config.api_key:
                headers["Authorization"] = f"Bearer {self._config.api_key}"
            self._http_client = httpx.AsyncClient(
                headers=headers,
                timeout=self._config.timeout_seconds,
                transport=self._transport,
            )
        return self._http_client
