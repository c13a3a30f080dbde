"""Request-level pipeline errors surfaced to callers instead of a bundle."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional


class PipelineError(Exception):
    """Fatal failure of one analysis request."""

    kind = "pipeline_error"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, "kind": self.kind}


class UserNotFoundError(PipelineError):
    kind = "user_not_found"
    status_code = 404


class InvalidUsernameError(UserNotFoundError):
    status_code = 400


class RateLimitedError(PipelineError):
    kind = "rate_limited"
    status_code = 429

    def __init__(self, message: str, *, retry_after: Optional[datetime] = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["retry_after"] = self.retry_after.isoformat() if self.retry_after else None
        return payload


class UpstreamUnavailableError(PipelineError):
    kind = "upstream_unavailable"
    status_code = 502


class AnalysisDeadlineExceeded(UpstreamUnavailableError):
    """Overall deadline elapsed before any batch of repositories completed."""

    status_code = 504
