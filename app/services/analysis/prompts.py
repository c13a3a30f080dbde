"""Prompt builders for per-repository and profile-level analysis."""

from __future__ import annotations

from collections import Counter
from typing import Sequence

from app.models.analysis import AnalysisSource, ReadmeSource, SampledFilesSource
from app.models.repository import RepoSummary, UserProfile

HERO_REPO_LIMIT = 30


def system_message(language: str) -> str:
    return (
        "You are a senior software analyst and branding expert. "
        "Respond ONLY with valid JSON. No markdown fences, no extra text. "
        f"All text content must be in {language}."
    )


def repair_message(language: str) -> str:
    return (
        "Your previous reply could not be parsed. Return ONLY the JSON object in the exact "
        "format requested, with no commentary, no markdown fences and no trailing text. "
        f"Keep all text content in {language}."
    )


def format_repo_metadata(repo: RepoSummary) -> str:
    line = (
        f"Repo: {repo.name} | Stars: {repo.star_count} | Forks: {repo.fork_count} | "
        f"Language: {repo.primary_language or 'N/A'} | Description: {repo.description or 'N/A'}"
    )
    if repo.topics:
        line += f" | Topics: {', '.join(repo.topics)}"
    return line


def format_source(source: AnalysisSource) -> str:
    if isinstance(source, ReadmeSource):
        blocks = [f"README ({source.path}, truncated):\n{source.text}"]
        if source.manifest is not None:
            blocks.append(f"{source.manifest.path} (truncated):\n{source.manifest.snippet}")
        return "\n\n".join(blocks)

    if isinstance(source, SampledFilesSource):
        blocks = []
        if source.file_tree:
            blocks.append(f"FILE STRUCTURE: [{', '.join(source.file_tree)}]")
        for item in source.files:
            blocks.append(f"SOURCE CODE ({item.path}):\n{item.snippet}")
        blocks.append("No README is available: infer the purpose from the code, dependencies and metadata.")
        return "\n\n".join(blocks)

    raise TypeError(f"Unsupported analysis source: {type(source).__name__}")


def build_project_prompt(repo: RepoSummary, source: AnalysisSource, language: str) -> str:
    return f"""Analyze the following GitHub repository deeply.

CRITICAL RULES:
- Respond ENTIRELY in {language}.
- If SOURCE CODE is provided, READ and UNDERSTAND the code to determine what the project does.
- Be specific and technical. Do NOT use generic phrases like "this is a project".
- detailed_description must be 3-5 sentences and use_cases must contain at least 2 entries.
- tech_stack lists concrete languages, frameworks and tools, not sentences.
- Respond ONLY with valid JSON. No markdown fences, no extra text.

Repository Data:
{format_repo_metadata(repo)}

{format_source(source)}

Respond in this exact JSON format:
{{
  "problem_solved": "One clear sentence about the core problem this project solves (in {language})",
  "detailed_description": "3-5 sentence technical description of what the project does, its architecture, and key features (in {language})",
  "use_cases": ["Specific use case 1 (in {language})", "Specific use case 2 (in {language})"],
  "tech_stack": ["technology1", "technology2"]
}}"""


def summarize_languages(repos: Sequence[RepoSummary], limit: int = 3) -> list[str]:
    counter = Counter(repo.primary_language for repo in repos if repo.primary_language)
    return [language for language, _ in counter.most_common(limit)]


def build_hero_prompt(profile: UserProfile, repos: Sequence[RepoSummary], language: str) -> str:
    repo_lines = "\n".join(f"- {format_repo_metadata(repo)}" for repo in repos[:HERO_REPO_LIMIT])
    top_languages = ", ".join(summarize_languages(repos)) or "N/A"
    return f"""Write a professional profile headline for this GitHub developer.

CRITICAL RULES:
- Respond ENTIRELY in {language}.
- Base every claim on the repository data below. No hype, no emojis.
- Respond ONLY with valid JSON. No markdown fences, no extra text.

GitHub User: {profile.username}
Name: {profile.display_name or 'N/A'}
Bio: {profile.bio or 'N/A'}
Public repositories: {len(repos)}
Primary languages: {top_languages}

Repositories:
{repo_lines or '- none'}

Respond in this exact JSON format:
{{
  "hero_title": "A short, impactful professional title for this developer (in {language})",
  "bio": "A 3-4 sentence professional biography highlighting their expertise, tech focus, and impact (in {language})"
}}"""
