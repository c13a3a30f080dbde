"""Per-repository analysis services."""

from app.services.analysis.bundle_assembler import assemble, build_fallback_hero
from app.services.analysis.content_selector import ContentLimits, ContentSelector
from app.services.analysis.llm_client import LLMClient, resolve_endpoint
from app.services.analysis.retry_policy import ItemState, call_with_retry, next_state

__all__ = [
    "ContentLimits",
    "ContentSelector",
    "LLMClient",
    "resolve_endpoint",
    "ItemState",
    "next_state",
    "call_with_retry",
    "assemble",
    "build_fallback_hero",
]
