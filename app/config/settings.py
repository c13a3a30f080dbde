"""Application settings and configuration"""

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    APP_NAME: str = "Git2Page Analyzer"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    USER_AGENT: str = "git2page/1.0"

    # GitHub API
    GITHUB_TOKEN: Optional[str] = None
    GITHUB_API_URL: str = "https://api.github.com"
    GITHUB_TIMEOUT_SECONDS: float = 30.0
    GITHUB_MAX_RETRIES: int = 3
    GITHUB_BACKOFF_BASE_SECONDS: float = 1.0
    GITHUB_BACKOFF_MAX_SECONDS: float = 16.0
    GITHUB_RATE_LIMIT_MAX_WAIT_SECONDS: float = 5.0
    GITHUB_REPOS_PER_PAGE: int = 100
    GITHUB_MAX_REPO_PAGES: int = 10
    GITHUB_REPO_SORT: str = "updated"
    GITHUB_INCLUDE_FORKS: bool = False

    # LLM endpoint (OpenAI-compatible or Ollama native)
    LLM_API_URL: str = "https://ollama.com"
    LLM_API_KEY: Optional[str] = None
    LLM_MODEL: str = "llama3"
    LLM_TEMPERATURE: float = 0.7
    LLM_MAX_TOKENS: int = 2000
    LLM_TIMEOUT_SECONDS: float = 60.0
    DEFAULT_OUTPUT_LANGUAGE: str = "Turkish"

    # Analysis pipeline policy
    ANALYSIS_BATCH_SIZE: int = 8
    ANALYSIS_ITEM_TIMEOUT_SECONDS: float = 90.0
    ANALYSIS_MAX_ATTEMPTS: int = 2
    ANALYSIS_BACKOFF_BASE_SECONDS: float = 2.0
    ANALYSIS_DEADLINE_SECONDS: float = 280.0

    # Content selection budgets
    CONTENT_README_MIN_CHARS: int = 200
    CONTENT_README_MAX_CHARS: int = 4000
    CONTENT_SAMPLE_MAX_FILES: int = 3
    CONTENT_SAMPLE_SNIPPET_CHARS: int = 1500
    CONTENT_SAMPLE_MAX_FILE_BYTES: int = 200_000
    CONTENT_SAMPLE_MAX_DIRECTORIES: int = 2
    CONTENT_MANIFEST_MAX_CHARS: int = 300
    CONTENT_INCLUDE_MANIFEST: bool = True
    CONTENT_LARGE_PROFILE_THRESHOLD: int = 15

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",  # Ignore extra fields in .env
    )


settings = Settings()
