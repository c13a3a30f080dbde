"""Assemble the final profile bundle from the hero summary and per-repo analyses."""

from __future__ import annotations

from typing import Sequence

from app.models.analysis import ProjectAnalysis
from app.models.bundle import HeroSummary, ProfileBundle
from app.models.repository import RepoSummary, UserProfile
from app.services.analysis.prompts import summarize_languages


def build_fallback_hero(profile: UserProfile, repos: Sequence[RepoSummary]) -> HeroSummary:
    """Hero section built from profile metadata when the LLM cannot provide one."""

    bio = (profile.bio or "").strip()
    if not bio:
        languages = summarize_languages(repos)
        count = len(repos)
        noun = "repository" if count == 1 else "repositories"
        name = (profile.display_name or "").strip()
        who = f"{name} ({profile.username})" if name and name != profile.username else profile.username
        bio = f"{who} maintains {count} public {noun} on GitHub"
        bio += f", mostly in {', '.join(languages)}." if languages else "."
    return HeroSummary(hero_title=profile.username, bio=bio, is_fallback=True)


def assemble(profile: UserProfile, hero: HeroSummary, analyses: Sequence[ProjectAnalysis]) -> ProfileBundle:
    if not isinstance(profile, UserProfile):
        raise TypeError(f"profile must be a UserProfile, got {type(profile).__name__}")
    if not isinstance(hero, HeroSummary):
        raise TypeError(f"hero must be a HeroSummary, got {type(hero).__name__}")
    for index, analysis in enumerate(analyses):
        if not isinstance(analysis, ProjectAnalysis):
            raise TypeError(f"analyses[{index}] must be a ProjectAnalysis, got {type(analysis).__name__}")

    return ProfileBundle(
        avatar_url=profile.avatar_url,
        username=profile.username,
        hero_title=hero.hero_title,
        bio=hero.bio,
        profile_url=profile.profile_url,
        projects=tuple(analyses),
    )
