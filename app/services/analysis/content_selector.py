"""README-first content selection with source-file sampling as fallback."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Sequence
from urllib.parse import urlparse

from app.config.settings import Settings, settings
from app.crawlers.github.client import sanitize_log_extra
from app.crawlers.github.contracts import FetchState
from app.models.analysis import AnalysisSource, ReadmeSource, SampledFilesSource, SourceSnippet
from app.models.repository import RepoSummary
from app.services.analysis.errors import ContentUnavailableError

logger = logging.getLogger(__name__)

SOURCE_EXTENSIONS = (
    ".py", ".js", ".ts", ".rs", ".go", ".java", ".rb", ".php",
    ".cs", ".swift", ".kt", ".dart", ".c", ".cpp", ".h", ".vue",
    ".svelte", ".jsx", ".tsx", ".lua", ".sh", ".pl",
)
ENTRY_POINT_PREFIXES = (
    "main.", "app.", "index.", "server.", "program.", "__main__.",
    "mod.", "lib.", "init.", "cli.", "run.", "start.", "bot.",
)
MANIFEST_FILES = (
    "Cargo.toml",
    "package.json",
    "pyproject.toml",
    "go.mod",
    "requirements.txt",
    "setup.py",
    "build.gradle",
    "pom.xml",
)
PREFERRED_SOURCE_DIRS = ("src", "lib", "app", "cmd", "pkg")
SKIPPED_DIRS = frozenset(
    {"node_modules", "vendor", "dist", "build", "target", "docs", "doc", "test", "tests",
     "examples", "assets", "static", "public", "fixtures"}
)

PRIORITY_ENTRY_POINT = 0
PRIORITY_MANIFEST = 1
PRIORITY_SOURCE = 2

FILE_TREE_LIMIT = 20
LARGE_PROFILE_SCALE = 0.6

_IMAGE_PATTERN = re.compile(r"!\[[^\]]*\]\([^)]*\)")
_LINK_PATTERN = re.compile(r"\[([^\]]*)\]\([^)]*\)")
_REFERENCE_PATTERN = re.compile(r"(?m)^\s*\[[^\]]+\]:\s*\S+.*$")
_HTML_TAG_PATTERN = re.compile(r"<[^>]+>")
_MARKUP_PATTERN = re.compile(r"[#*_>`|~=-]+")


@dataclass(frozen=True, slots=True)
class ContentLimits:
    """Prompt-size budgets for one repository."""

    readme_min_chars: int = 200
    readme_max_chars: int = 4000
    max_files: int = 3
    snippet_chars: int = 1500
    max_file_bytes: int = 200_000
    max_directories: int = 2
    manifest_chars: int = 300
    include_manifest: bool = True

    @classmethod
    def from_settings(cls, repo_count: int = 0, config: Settings | None = None) -> "ContentLimits":
        """Budgets shrink for large profiles so the whole run stays prompt-safe."""

        cfg = config or settings
        scale = LARGE_PROFILE_SCALE if repo_count > cfg.CONTENT_LARGE_PROFILE_THRESHOLD else 1.0
        return cls(
            readme_min_chars=cfg.CONTENT_README_MIN_CHARS,
            readme_max_chars=round(cfg.CONTENT_README_MAX_CHARS * scale),
            max_files=cfg.CONTENT_SAMPLE_MAX_FILES,
            snippet_chars=round(cfg.CONTENT_SAMPLE_SNIPPET_CHARS * scale),
            max_file_bytes=cfg.CONTENT_SAMPLE_MAX_FILE_BYTES,
            max_directories=cfg.CONTENT_SAMPLE_MAX_DIRECTORIES,
            manifest_chars=cfg.CONTENT_MANIFEST_MAX_CHARS,
            include_manifest=cfg.CONTENT_INCLUDE_MANIFEST,
        )


@dataclass(frozen=True, slots=True)
class FileCandidate:
    path: str
    size: int = 0

    @property
    def name(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    @property
    def depth(self) -> int:
        return self.path.count("/")


def visible_text(markdown: str) -> str:
    """Approximate the rendered text of a README, without badges, images and markup."""

    text = _IMAGE_PATTERN.sub(" ", markdown)
    text = _LINK_PATTERN.sub(r"\1", text)
    text = _REFERENCE_PATTERN.sub(" ", text)
    text = _HTML_TAG_PATTERN.sub(" ", text)
    text = _MARKUP_PATTERN.sub(" ", text)
    return " ".join(text.split())


def truncate_prefix(text: str, limit: int) -> str:
    cleaned = text.strip()
    if limit <= 0 or len(cleaned) <= limit:
        return cleaned
    return cleaned[:limit].rstrip()


def is_source_file(name: str) -> bool:
    return name.lower().endswith(SOURCE_EXTENSIONS)


def is_entry_point(name: str) -> bool:
    return name.lower().startswith(ENTRY_POINT_PREFIXES)


def is_manifest(name: str) -> bool:
    return name.lower() in {manifest.lower() for manifest in MANIFEST_FILES}


def classify_file(name: str) -> Optional[int]:
    if is_source_file(name) and is_entry_point(name):
        return PRIORITY_ENTRY_POINT
    if is_manifest(name):
        return PRIORITY_MANIFEST
    if is_source_file(name):
        return PRIORITY_SOURCE
    return None


def rank_candidates(candidates: Iterable[FileCandidate], *, max_file_bytes: int) -> list[FileCandidate]:
    """Order files as entry points, then manifests, then the largest remaining sources."""

    ranked: list[tuple[tuple[int, int, str], FileCandidate]] = []
    seen: set[str] = set()
    for candidate in candidates:
        if candidate.path in seen:
            continue
        seen.add(candidate.path)
        priority = classify_file(candidate.name)
        if priority is None or candidate.size <= 0 or candidate.size > max_file_bytes:
            continue
        secondary = -candidate.size if priority == PRIORITY_SOURCE else candidate.depth
        ranked.append(((priority, secondary, candidate.path), candidate))
    ranked.sort(key=lambda item: item[0])
    return [candidate for _, candidate in ranked]


def choose_directories(names: Sequence[str], *, repo_name: str, limit: int) -> list[str]:
    """Pick first-level directories worth listing, conventional source roots first."""

    eligible = [name for name in names if not name.startswith(".") and name.lower() not in SKIPPED_DIRS]
    package_name = repo_name.lower().replace("-", "_")

    def _rank(name: str) -> tuple[int, int]:
        lowered = name.lower()
        if lowered in PREFERRED_SOURCE_DIRS:
            return (0, PREFERRED_SOURCE_DIRS.index(lowered))
        if lowered == package_name:
            return (1, 0)
        return (2, 0)

    ordered = sorted(eligible, key=_rank)
    return ordered[: max(limit, 0)]


class ContentSelector:
    """Decides what text the LLM reads for one repository."""

    def __init__(self, github_client: Any, *, limits: ContentLimits | None = None) -> None:
        self._client = github_client
        self._limits = limits or ContentLimits.from_settings()

    @property
    def limits(self) -> ContentLimits:
        return self._limits

    async def select(self, repo: RepoSummary) -> AnalysisSource:
        owner, name = split_repo(repo)

        readme = await self._fetch_readme(owner, name)
        if readme is not None:
            manifest = await self._fetch_manifest(owner, name) if self._limits.include_manifest else None
            return ReadmeSource(text=readme, manifest=manifest)

        return await self._sample_source_files(owner, name)

    async def _fetch_readme(self, owner: str, name: str) -> Optional[str]:
        result = await self._client.get_readme(owner, name)
        if result.state != FetchState.OK or not result.data:
            logger.debug(
                "README unavailable, falling back to source sampling",
                extra=sanitize_log_extra(repo=f"{owner}/{name}", state=result.state.value, error=result.error),
            )
            return None

        visible_length = len(visible_text(result.data))
        if visible_length < self._limits.readme_min_chars:
            logger.info(
                "README too short for analysis, sampling source files",
                extra=sanitize_log_extra(repo=f"{owner}/{name}", visible_chars=visible_length),
            )
            return None

        return truncate_prefix(result.data, self._limits.readme_max_chars)

    async def _fetch_manifest(self, owner: str, name: str) -> Optional[SourceSnippet]:
        listing = await self._client.list_directory(owner, name)
        if listing.state != FetchState.OK:
            return None

        present = {
            str(entry.get("name", "")).lower(): str(entry.get("path") or entry.get("name"))
            for entry in listing.data or []
            if entry.get("type") == "file"
        }
        for manifest in MANIFEST_FILES:
            path = present.get(manifest.lower())
            if path is None:
                continue
            result = await self._client.get_content(owner, name, path)
            if result.state == FetchState.OK and result.data:
                return SourceSnippet(path=path, snippet=truncate_prefix(result.data, self._limits.manifest_chars))
        return None

    async def _sample_source_files(self, owner: str, name: str) -> SampledFilesSource:
        full_name = f"{owner}/{name}"
        root = await self._client.list_directory(owner, name)
        if root.state == FetchState.NOT_FOUND:
            raise ContentUnavailableError(f"Repository {full_name} not found", kind=ContentUnavailableError.NOT_FOUND)

        root_entries = root.data if root.state == FetchState.OK else []
        candidates = _file_candidates(root_entries or [])

        directories = choose_directories(
            [str(entry.get("name", "")) for entry in root_entries or [] if entry.get("type") == "dir"],
            repo_name=name,
            limit=self._limits.max_directories,
        )
        for directory in directories:
            listing = await self._client.list_directory(owner, name, directory)
            if listing.state == FetchState.OK:
                candidates.extend(_file_candidates(listing.data or [], parent=directory))

        snippets: list[SourceSnippet] = []
        for candidate in rank_candidates(candidates, max_file_bytes=self._limits.max_file_bytes):
            if len(snippets) >= self._limits.max_files:
                break
            result = await self._client.get_content(owner, name, candidate.path)
            if result.state != FetchState.OK or not (result.data or "").strip():
                continue
            snippets.append(
                SourceSnippet(path=candidate.path, snippet=truncate_prefix(result.data, self._limits.snippet_chars))
            )

        if not snippets:
            raise ContentUnavailableError(
                f"No README or source files retrievable for {full_name}",
                kind=ContentUnavailableError.EMPTY,
            )

        logger.info(
            "Sampled source files for analysis",
            extra=sanitize_log_extra(
                repo=full_name,
                discovered=len(candidates),
                fetched=[snippet.path for snippet in snippets],
            ),
        )
        return SampledFilesSource(
            files=tuple(snippets),
            file_tree=tuple(candidate.path for candidate in candidates[:FILE_TREE_LIMIT]),
        )


def split_repo(repo: RepoSummary) -> tuple[str, str]:
    if "/" in repo.full_name:
        owner, name = repo.full_name.split("/", 1)
        return owner.strip(), name.strip()

    parts = [part for part in urlparse(repo.html_url).path.split("/") if part]
    if len(parts) >= 2:
        return parts[0], parts[1]
    raise ContentUnavailableError(f"Cannot resolve owner for repository {repo.name}", kind=ContentUnavailableError.NOT_FOUND)


def _file_candidates(entries: Iterable[dict[str, Any]], *, parent: str = "") -> list[FileCandidate]:
    candidates: list[FileCandidate] = []
    for entry in entries:
        if not isinstance(entry, dict) or entry.get("type") != "file":
            continue
        entry_name = str(entry.get("name") or "")
        if not entry_name:
            continue
        path = str(entry.get("path") or (f"{parent}/{entry_name}" if parent else entry_name))
        candidates.append(FileCandidate(path=path, size=int(entry.get("size") or 0)))
    return candidates
