from __future__ import annotations

import asyncio
from typing import Any, Optional

import pytest

from app.config.settings import Settings
from app.crawlers.github.contracts import FetchResult, FetchState
from app.models.analysis import ReadmeSource, SampledFilesSource
from app.models.repository import RepoSummary
from app.services.analysis.content_selector import (
    ContentLimits,
    ContentSelector,
    FileCandidate,
    choose_directories,
    rank_candidates,
    split_repo,
    visible_text,
)
from app.services.analysis.errors import ContentUnavailableError


def _file(path: str, size: int = 100) -> dict[str, Any]:
    return {"type": "file", "name": path.rsplit("/", 1)[-1], "path": path, "size": size}


def _dir(path: str) -> dict[str, Any]:
    return {"type": "dir", "name": path.rsplit("/", 1)[-1], "path": path}


class FakeGitHubClient:
    def __init__(
        self,
        *,
        readme: Optional[str] = None,
        directories: Optional[dict[str, list[dict[str, Any]]]] = None,
        contents: Optional[dict[str, str]] = None,
        root_state: FetchState = FetchState.OK,
    ) -> None:
        self.readme = readme
        self.directories = directories or {}
        self.contents = contents or {}
        self.root_state = root_state
        self.listed: list[str] = []
        self.fetched: list[str] = []

    async def get_readme(self, _owner: str, _repo: str) -> FetchResult[str]:
        if self.readme is None:
            return FetchResult(state=FetchState.NOT_FOUND, status_code=404, error="readme not found")
        return FetchResult(state=FetchState.OK, data=self.readme)

    async def list_directory(self, _owner: str, _repo: str, path: str = "") -> FetchResult[list[dict[str, Any]]]:
        self.listed.append(path)
        if path == "" and self.root_state != FetchState.OK:
            return FetchResult(state=self.root_state)
        if path not in self.directories:
            return FetchResult(state=FetchState.NOT_FOUND, status_code=404)
        return FetchResult(state=FetchState.OK, data=self.directories[path])

    async def get_content(self, _owner: str, _repo: str, path: str) -> FetchResult[str]:
        self.fetched.append(path)
        if path not in self.contents:
            return FetchResult(state=FetchState.NOT_FOUND, status_code=404)
        return FetchResult(state=FetchState.OK, data=self.contents[path])


def _repo(name: str = "demo") -> RepoSummary:
    return RepoSummary(name=name, html_url=f"https://github.com/acme/{name}", full_name=f"acme/{name}")


LIMITS = ContentLimits(
    readme_min_chars=200,
    readme_max_chars=120,
    max_files=3,
    snippet_chars=40,
    max_file_bytes=200_000,
    max_directories=2,
    manifest_chars=30,
    include_manifest=True,
)


def test_long_readme_is_selected_and_prefix_truncated() -> None:
    readme = "# Demo\n\n" + "Demo parses build logs and reports flaky tests. " * 10
    client = FakeGitHubClient(
        readme=readme,
        directories={"": [_file("Cargo.toml", 80), _file("src.rs", 10)]},
        contents={"Cargo.toml": '[package]\nname = "demo"\nversion = "0.1.0"\nedition = "2021"'},
    )

    source = asyncio.run(ContentSelector(client, limits=LIMITS).select(_repo()))

    assert isinstance(source, ReadmeSource)
    assert len(source.text) <= LIMITS.readme_max_chars
    assert readme.startswith(source.text)
    assert source.manifest is not None
    assert source.manifest.path == "Cargo.toml"
    assert len(source.manifest.snippet) <= LIMITS.manifest_chars


def test_readme_without_manifest_when_disabled() -> None:
    client = FakeGitHubClient(readme="Useful words about the project. " * 20)
    limits = ContentLimits(include_manifest=False)

    source = asyncio.run(ContentSelector(client, limits=limits).select(_repo()))

    assert isinstance(source, ReadmeSource)
    assert source.manifest is None
    assert client.listed == []


def test_badge_only_readme_falls_back_to_ranked_source_files() -> None:
    client = FakeGitHubClient(
        readme="[![CI](https://img.shields.io/badge/ci-passing-green.svg)](https://ci.example)\n# demo",
        directories={
            "": [
                _file("main.py", 500),
                _file("package.json", 300),
                _file("utils.py", 9000),
                _file("logo.png", 4000),
                _dir("src"),
                _dir("node_modules"),
                _dir(".github"),
            ],
            "src": [_file("src/lib.rs", 800), _file("src/parser.rs", 12000)],
        },
        contents={
            "main.py": "import sys\n\nprint('hello from the entry point of demo')\n",
            "package.json": '{"name": "demo", "dependencies": {"express": "^4"}}',
            "utils.py": "def helper():\n    return 1\n",
            "src/lib.rs": "pub mod parser;\n",
            "src/parser.rs": "pub fn parse() {}\n",
        },
    )

    source = asyncio.run(ContentSelector(client, limits=LIMITS).select(_repo()))

    assert isinstance(source, SampledFilesSource)
    assert [item.path for item in source.files] == ["main.py", "src/lib.rs", "package.json"]
    assert all(len(item.snippet) <= LIMITS.snippet_chars for item in source.files)
    assert client.listed == ["", "src"]
    assert "src/parser.rs" in source.file_tree


def test_missing_repository_content_is_not_found() -> None:
    client = FakeGitHubClient(root_state=FetchState.NOT_FOUND)

    with pytest.raises(ContentUnavailableError) as exc_info:
        asyncio.run(ContentSelector(client, limits=LIMITS).select(_repo()))

    assert exc_info.value.kind == ContentUnavailableError.NOT_FOUND


def test_repository_without_readable_files_is_empty() -> None:
    client = FakeGitHubClient(directories={"": [_file("logo.png", 100), _file("main.py", 50)]})

    with pytest.raises(ContentUnavailableError) as exc_info:
        asyncio.run(ContentSelector(client, limits=LIMITS).select(_repo()))

    assert exc_info.value.kind == ContentUnavailableError.EMPTY
    assert client.fetched == ["main.py"]


def test_rank_candidates_orders_entry_points_manifests_then_largest_sources() -> None:
    ranked = rank_candidates(
        [
            FileCandidate("a.py", 10),
            FileCandidate("b.py", 500),
            FileCandidate("README.md", 100),
            FileCandidate("cmd/main.go", 50),
            FileCandidate("go.mod", 20),
            FileCandidate("huge.py", 300_000),
            FileCandidate("empty.py", 0),
        ],
        max_file_bytes=200_000,
    )

    assert [candidate.path for candidate in ranked] == ["cmd/main.go", "go.mod", "b.py", "a.py"]


def test_choose_directories_prefers_conventional_source_roots() -> None:
    chosen = choose_directories(
        ["docs", "misc", ".git", "mytool", "lib", "src", "node_modules"],
        repo_name="mytool",
        limit=3,
    )

    assert chosen == ["src", "lib", "mytool"]


def test_visible_text_ignores_badges_and_markup() -> None:
    text = visible_text("[![Build](https://img/x.svg)](https://ci)\n# Title\nSome **bold** text")

    assert text == "Title Some bold text"


def test_limits_shrink_for_large_profiles() -> None:
    config = Settings(CONTENT_README_MAX_CHARS=4000, CONTENT_SAMPLE_SNIPPET_CHARS=1500, CONTENT_LARGE_PROFILE_THRESHOLD=15)

    small = ContentLimits.from_settings(5, config)
    large = ContentLimits.from_settings(40, config)

    assert small.readme_max_chars == 4000
    assert large.readme_max_chars == 2400
    assert large.snippet_chars == 900


def test_split_repo_falls_back_to_html_url() -> None:
    repo = RepoSummary(name="demo", html_url="https://github.com/acme/demo")

    assert split_repo(repo) == ("acme", "demo")
