from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import Any

import pytest
from fastapi.testclient import TestClient

import app.main as main_module
from app.errors import RateLimitedError, UserNotFoundError
from app.jobs import profile_analysis
from app.models.analysis import ProjectAnalysis
from app.models.bundle import ProfileBundle
from app.models.repository import RepoSummary

REPO = RepoSummary(name="demo", html_url="https://github.com/octo/demo", primary_language="Go", full_name="octo/demo")


def _bundle() -> ProfileBundle:
    return ProfileBundle(
        avatar_url="https://avatars.test/octo",
        username="octo",
        hero_title="Engineer",
        bio="Bio",
        profile_url="https://github.com/octo",
        projects=(ProjectAnalysis.degraded(REPO, "LLM timeout"),),
    )


@pytest.fixture
def client() -> TestClient:
    return TestClient(main_module.app)


def test_health(client: TestClient) -> None:
    response = client.get("/api/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_config_exposes_defaults_without_secrets(client: TestClient) -> None:
    payload = client.get("/api/config").json()

    assert set(payload) == {"api_url", "model", "language", "has_github_token", "has_api_key"}
    assert isinstance(payload["has_api_key"], bool)


def test_analyze_returns_bundle(client: TestClient, monkeypatch) -> None:
    captured: dict[str, Any] = {}

    async def fake_run_analysis(request):
        captured["request"] = request
        return _bundle()

    monkeypatch.setattr(main_module, "run_analysis", fake_run_analysis)

    response = client.post(
        "/api/analyze",
        json={"github_username": "octo", "model_name": "qwen2.5", "language": "English", "api_url": ""},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["username"] == "octo"
    assert body["projects"][0]["analysis_status"] == "degraded"
    assert captured["request"].model_name == "qwen2.5"
    assert captured["request"].output_language == "English"
    assert captured["request"].llm_api_url == main_module.settings.LLM_API_URL


def test_analyze_maps_pipeline_errors_to_status_codes(client: TestClient, monkeypatch) -> None:
    async def not_found(request):
        raise UserNotFoundError("GitHub user 'ghost' not found")

    monkeypatch.setattr(main_module, "run_analysis", not_found)
    response = client.post("/api/analyze", json={"github_username": "ghost"})

    assert response.status_code == 404
    assert response.json() == {"error": "GitHub user 'ghost' not found", "kind": "user_not_found"}

    reset = datetime(2030, 1, 1, tzinfo=UTC)

    async def limited(request):
        raise RateLimitedError("slow down", retry_after=reset)

    monkeypatch.setattr(main_module, "run_analysis", limited)
    response = client.post("/api/analyze", json={"github_username": "octo"})

    assert response.status_code == 429
    assert response.json()["retry_after"] == reset.isoformat()


def test_analyze_requires_username(client: TestClient) -> None:
    assert client.post("/api/analyze", json={}).status_code == 422


def test_lambda_direct_invocation(monkeypatch) -> None:
    async def fake_run_analysis(request):
        return _bundle()

    monkeypatch.setattr(main_module, "run_analysis", fake_run_analysis)

    result = main_module.lambda_handler({"github_username": "octo", "language": "English"}, None)

    assert result["statusCode"] == 200
    assert result["body"]["username"] == "octo"


def test_cli_writes_bundle_json(tmp_path, monkeypatch) -> None:
    async def fake_run_analysis(request, **_: Any):
        assert request.github_username == "octo"
        return _bundle()

    monkeypatch.setattr(profile_analysis, "run_analysis", fake_run_analysis)
    output = tmp_path / "bundle.json"

    exit_code = profile_analysis.main(["octo", "--language", "English", "--output", str(output)])

    assert exit_code == 0
    assert json.loads(output.read_text(encoding="utf-8"))["projects"][0]["name"] == "demo"


def test_cli_reports_pipeline_error(monkeypatch, capsys) -> None:
    async def fake_run_analysis(request, **_: Any):
        raise UserNotFoundError("GitHub user 'ghost' not found")

    monkeypatch.setattr(profile_analysis, "run_analysis", fake_run_analysis)

    assert profile_analysis.main(["ghost"]) == 1
    assert "user_not_found" in capsys.readouterr().err
