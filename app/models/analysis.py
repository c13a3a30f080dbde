"""Analysis inputs (selected content) and per-repository analysis results."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Iterable, Optional, Union

from app.models.repository import RepoSummary

NO_DESCRIPTION_PLACEHOLDER = "No description available."


@dataclass(frozen=True, slots=True)
class SourceSnippet:
    """A truncated file body keyed by its repository path."""

    path: str
    snippet: str


@dataclass(frozen=True, slots=True)
class ReadmeSource:
    """README text selected for analysis, prefix-truncated."""

    text: str
    path: str = "README.md"
    manifest: Optional[SourceSnippet] = None


@dataclass(frozen=True, slots=True)
class SampledFilesSource:
    """Ranked source files sampled when no usable README exists."""

    files: tuple[SourceSnippet, ...]
    file_tree: tuple[str, ...] = ()


AnalysisSource = Union[ReadmeSource, SampledFilesSource]


class AnalysisStatus(str, enum.Enum):
    OK = "ok"
    DEGRADED = "degraded"


@dataclass(frozen=True, slots=True)
class ProjectNarrative:
    """LLM-derived narrative fields for one repository."""

    problem_solved: str
    detailed_description: str
    use_cases: tuple[str, ...] = ()
    tech_stack: tuple[str, ...] = ()


def dedupe_labels(values: Iterable[str]) -> tuple[str, ...]:
    """Drop blanks and case-insensitive duplicates, keeping first spelling and order."""
    seen: set[str] = set()
    labels: list[str] = []
    for value in values:
        label = str(value).strip()
        key = label.lower()
        if not label or key in seen:
            continue
        seen.add(key)
        labels.append(label)
    return tuple(labels)


@dataclass(frozen=True, slots=True)
class ProjectAnalysis:
    """Analysis record for one repository; degraded entries keep metadata only."""

    repo: RepoSummary
    problem_solved: str
    detailed_description: str
    use_cases: tuple[str, ...]
    tech_stack: tuple[str, ...]
    status: AnalysisStatus = AnalysisStatus.OK
    degraded_reason: Optional[str] = None

    @property
    def is_degraded(self) -> bool:
        return self.status is AnalysisStatus.DEGRADED

    @classmethod
    def ok(cls, repo: RepoSummary, narrative: ProjectNarrative) -> "ProjectAnalysis":
        return cls(
            repo=repo,
            problem_solved=narrative.problem_solved.strip(),
            detailed_description=narrative.detailed_description.strip(),
            use_cases=tuple(case.strip() for case in narrative.use_cases if case and case.strip()),
            tech_stack=dedupe_labels(narrative.tech_stack),
        )

    @classmethod
    def degraded(cls, repo: RepoSummary, reason: str) -> "ProjectAnalysis":
        return cls(
            repo=repo,
            problem_solved=repo.description or NO_DESCRIPTION_PLACEHOLDER,
            detailed_description="",
            use_cases=(),
            tech_stack=(repo.primary_language,) if repo.primary_language else (),
            status=AnalysisStatus.DEGRADED,
            degraded_reason=reason,
        )
