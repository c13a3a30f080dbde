"""Immutable per-request inputs for one pipeline run."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from app.config.settings import Settings, settings as default_settings


@dataclass(frozen=True, slots=True)
class ModelConfig:
    """Connection and sampling options for the LLM endpoint."""

    api_url: str
    model_name: str
    api_key: Optional[str] = None
    temperature: float = 0.7
    max_tokens: int = 2000
    timeout_seconds: float = 60.0


@dataclass(frozen=True, slots=True)
class ProfileRequest:
    github_username: str
    llm_api_url: str
    model_name: str
    output_language: str
    github_token: Optional[str] = None
    llm_api_key: Optional[str] = None
    temperature: float = 0.7
    max_tokens: int = 2000
    llm_timeout_seconds: float = 60.0

    def llm_config(self) -> ModelConfig:
        return ModelConfig(
            api_url=self.llm_api_url,
            model_name=self.model_name,
            api_key=self.llm_api_key,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            timeout_seconds=self.llm_timeout_seconds,
        )

    @classmethod
    def from_settings(
        cls,
        github_username: str,
        *,
        github_token: Optional[str] = None,
        llm_api_url: Optional[str] = None,
        llm_api_key: Optional[str] = None,
        model_name: Optional[str] = None,
        output_language: Optional[str] = None,
        config: Settings | None = None,
    ) -> "ProfileRequest":
        """Build a request where blank caller values fall back to configured defaults."""

        cfg = config or default_settings
        return cls(
            github_username=github_username.strip(),
            github_token=_value_or(github_token, cfg.GITHUB_TOKEN),
            llm_api_url=_value_or(llm_api_url, cfg.LLM_API_URL),
            llm_api_key=_value_or(llm_api_key, cfg.LLM_API_KEY),
            model_name=_value_or(model_name, cfg.LLM_MODEL),
            output_language=_value_or(output_language, cfg.DEFAULT_OUTPUT_LANGUAGE),
            temperature=cfg.LLM_TEMPERATURE,
            max_tokens=cfg.LLM_MAX_TOKENS,
            llm_timeout_seconds=cfg.LLM_TIMEOUT_SECONDS,
        )


def _value_or(value: Any, fallback: Any) -> Any:
    if isinstance(value, str):
        value = value.strip()
    return value if value else (fallback or None)
