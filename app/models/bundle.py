"""Final response contract for one profile analysis."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from app.models.analysis import ProjectAnalysis


@dataclass(frozen=True, slots=True)
class HeroSummary:
    hero_title: str
    bio: str
    is_fallback: bool = False


@dataclass(frozen=True, slots=True)
class ProfileBundle:
    """Profile hero section plus project analyses in input repository order."""

    avatar_url: str
    username: str
    hero_title: str
    bio: str
    profile_url: str
    projects: tuple[ProjectAnalysis, ...]

    @property
    def degraded_count(self) -> int:
        return sum(1 for project in self.projects if project.is_degraded)

    def to_dict(self) -> dict[str, Any]:
        return {
            "avatar_url": self.avatar_url,
            "username": self.username,
            "hero_title": self.hero_title,
            "bio": self.bio,
            "profile_url": self.profile_url,
            "projects": [project_to_dict(project) for project in self.projects],
        }


def project_to_dict(project: ProjectAnalysis) -> dict[str, Any]:
    repo = project.repo
    return {
        "name": repo.name,
        "html_url": repo.html_url,
        "description": repo.description,
        "problem_solved": project.problem_solved,
        "detailed_description": project.detailed_description,
        "use_cases": list(project.use_cases),
        "tech_stack": list(project.tech_stack),
        "language": repo.primary_language,
        "stars": repo.star_count,
        "forks": repo.fork_count,
        "analysis_status": project.status.value,
        "degraded_reason": project.degraded_reason,
    }
