"""Domain models for profile analysis"""

from app.models.analysis import (
    AnalysisSource,
    AnalysisStatus,
    ProjectAnalysis,
    ProjectNarrative,
    ReadmeSource,
    SampledFilesSource,
    SourceSnippet,
)
from app.models.bundle import HeroSummary, ProfileBundle
from app.models.repository import RepoSummary, UserProfile
from app.models.request import ModelConfig, ProfileRequest

__all__ = [
    "AnalysisSource",
    "AnalysisStatus",
    "ProjectAnalysis",
    "ProjectNarrative",
    "ReadmeSource",
    "SampledFilesSource",
    "SourceSnippet",
    "HeroSummary",
    "ProfileBundle",
    "RepoSummary",
    "UserProfile",
    "ModelConfig",
    "ProfileRequest",
]
