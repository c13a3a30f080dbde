"""GitHub user and repository snapshots used throughout one analysis run."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True, slots=True)
class UserProfile:
    """Profile metadata for the analysed GitHub account."""

    username: str
    avatar_url: str
    profile_url: str
    display_name: Optional[str] = None
    bio: Optional[str] = None
    public_repos: int = 0

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "UserProfile":
        login = str(payload.get("login") or "")
        return cls(
            username=login,
            avatar_url=str(payload.get("avatar_url") or ""),
            profile_url=str(payload.get("html_url") or f"https://github.com/{login}"),
            display_name=(payload.get("name") or None),
            bio=(payload.get("bio") or None),
            public_repos=int(payload.get("public_repos") or 0),
        )


@dataclass(frozen=True, slots=True)
class RepoSummary:
    """Read-only repository metadata, fetched once per repository."""

    name: str
    html_url: str
    description: Optional[str] = None
    primary_language: Optional[str] = None
    star_count: int = 0
    fork_count: int = 0
    default_branch: str = "main"
    full_name: str = ""
    topics: tuple[str, ...] = ()
    is_fork: bool = False

    @property
    def owner(self) -> str:
        if "/" in self.full_name:
            return self.full_name.split("/", 1)[0]
        return ""

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "RepoSummary":
        name = str(payload.get("name") or "")
        owner = payload.get("owner") if isinstance(payload.get("owner"), dict) else {}
        full_name = str(payload.get("full_name") or "")
        if not full_name and owner.get("login"):
            full_name = f"{owner['login']}/{name}"
        topics = payload.get("topics") if isinstance(payload.get("topics"), list) else []

        return cls(
            name=name,
            html_url=str(payload.get("html_url") or ""),
            description=(payload.get("description") or None),
            primary_language=(payload.get("language") or None),
            star_count=int(payload.get("stargazers_count") or 0),
            fork_count=int(payload.get("forks_count") or 0),
            default_branch=str(payload.get("default_branch") or "main"),
            full_name=full_name,
            topics=tuple(str(topic).strip() for topic in topics if str(topic).strip()),
            is_fork=bool(payload.get("fork") or False),
        )
