import json
from pathlib import Path

import pytest
import respx
from httpx import Response
from typer.testing import CliRunner

from tokenkeeper.cli import app

runner = CliRunner()

BASE = "https://api.test/v1"


@pytest.fixture()
def token_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    path = tmp_path / "tokens.json"
    monkeypatch.setenv("TOKENKEEPER_TOKEN_FILE", str(path))
    monkeypatch.setenv("TOKENKEEPER_TOKEN_BACKEND", "file")
    monkeypatch.setenv("TOKENKEEPER_BASE_URL", "https://api.test")
    monkeypatch.setenv("TOKENKEEPER_API_VERSION", "/v1")
    monkeypatch.setenv("TOKENKEEPER_REFRESH_PATH", "/auth/refresh")
    monkeypatch.delenv("TOKENKEEPER_DEBUG", raising=False)
    return path


def _save(path: Path, access: str = "ACCESSTOKEN1", refresh: str = "REFRESHTOKEN1") -> None:
    path.write_text(json.dumps({"access_token": access, "refresh_token": refresh}))


def test_set_tokens_then_session(token_file: Path) -> None:
    result = runner.invoke(app, ["set-tokens", "--access", "ACCESSTOKEN1", "--refresh", "R1"])
    assert result.exit_code == 0
    assert json.loads(token_file.read_text()) == {
        "access_token": "ACCESSTOKEN1",
        "refresh_token": "R1",
    }

    masked = runner.invoke(app, ["session"])
    assert masked.exit_code == 0
    assert "ACCESSTOKEN1" not in masked.stdout
    assert "ACCE...KEN1" in masked.stdout

    shown = runner.invoke(app, ["session", "--show-tokens"])
    assert "ACCESSTOKEN1" in shown.stdout


def test_session_without_tokens(token_file: Path) -> None:
    result = runner.invoke(app, ["session"])
    assert result.exit_code == 0
    assert "No cached tokens." in result.stdout


def test_logout_removes_token_file(token_file: Path) -> None:
    _save(token_file)
    result = runner.invoke(app, ["logout"])
    assert result.exit_code == 0
    assert not token_file.exists()


@respx.mock
def test_login_saves_tokens(token_file: Path) -> None:
    respx.post(f"{BASE}/auth/login").mock(
        return_value=Response(200, json={"access_token": "A1", "refresh_token": "R1"})
    )
    result = runner.invoke(
        app, ["login", "--username", "me@example.com", "--password", "pw", "--json"]
    )

    assert result.exit_code == 0
    assert "Authenticated." in result.stdout
    assert '"access_token": "A1"' in result.stdout
    assert json.loads(token_file.read_text())["refresh_token"] == "R1"


@respx.mock
def test_login_failure_exits_1(token_file: Path) -> None:
    respx.post(f"{BASE}/auth/login").mock(
        return_value=Response(401, json={"message": "Invalid credentials"})
    )
    result = runner.invoke(app, ["login", "--username", "me", "--password", "bad"])

    assert result.exit_code == 1
    assert "Login failed" in result.stdout
    assert not token_file.exists()


@respx.mock
def test_request_refreshes_expired_token(token_file: Path) -> None:
    _save(token_file)
    sent: list[str | None] = []

    def _handler(request):
        sent.append(request.headers.get("Authorization"))
        if request.headers.get("Authorization") == "Bearer A2":
            return Response(200, json={"id": 1})
        return Response(401)

    respx.get(f"{BASE}/me").mock(side_effect=_handler)
    respx.post(f"{BASE}/auth/refresh").mock(
        return_value=Response(200, json={"access_token": "A2", "refresh_token": "R2"})
    )
    result = runner.invoke(app, ["request", "get", "/me"])

    assert result.exit_code == 0
    assert '"id": 1' in result.stdout
    assert sent == ["Bearer ACCESSTOKEN1", "Bearer A2"]
    assert json.loads(token_file.read_text()) == {"access_token": "A2", "refresh_token": "R2"}


@respx.mock
def test_request_unauthorized_after_failed_refresh(token_file: Path) -> None:
    _save(token_file)
    respx.get(f"{BASE}/me").mock(return_value=Response(401))
    respx.post(f"{BASE}/auth/refresh").mock(return_value=Response(401))
    result = runner.invoke(app, ["request", "GET", "/me"])

    assert result.exit_code == 1
    assert "not authorized" in result.stdout
    assert not token_file.exists()


@respx.mock
def test_request_posts_json_and_headers(token_file: Path) -> None:
    _save(token_file)
    route = respx.post(f"{BASE}/items").mock(return_value=Response(201, json={"ok": True}))
    result = runner.invoke(
        app,
        ["request", "POST", "/items", "--data", '{"name": "x"}', "-H", "X-Trace: abc", "--no-json"],
    )

    assert result.exit_code == 0
    req = route.calls.last.request
    assert json.loads(req.content) == {"name": "x"}
    assert req.headers["X-Trace"] == "abc"
    assert req.headers["Authorization"] == "Bearer ACCESSTOKEN1"
    assert "'ok': True" in result.stdout


def test_request_rejects_bad_json(token_file: Path) -> None:
    result = runner.invoke(app, ["request", "POST", "/items", "--data", "{nope"])
    assert result.exit_code == 1
    assert "Invalid JSON" in result.stdout


def test_request_rejects_unknown_method(token_file: Path) -> None:
    result = runner.invoke(app, ["request", "FETCH", "/items"])
    assert result.exit_code == 1
    assert "Unsupported method" in result.stdout


@respx.mock
def test_refresh_command(token_file: Path) -> None:
    _save(token_file)
    respx.post(f"{BASE}/auth/refresh").mock(
        return_value=Response(200, json={"access_token": "A2", "refresh_token": "R2"})
    )
    result = runner.invoke(app, ["refresh", "--json"])

    assert result.exit_code == 0
    assert "Tokens refreshed." in result.stdout
    assert json.loads(token_file.read_text())["access_token"] == "A2"


def test_refresh_command_requires_endpoint(token_file: Path, monkeypatch) -> None:
    monkeypatch.delenv("TOKENKEEPER_REFRESH_PATH")
    _save(token_file)
    result = runner.invoke(app, ["refresh"])

    assert result.exit_code == 1
    assert "No refresh endpoint configured" in result.stdout
    assert token_file.exists()


@respx.mock
def test_debug_flag_reaches_commands(token_file: Path) -> None:
    _save(token_file)
    respx.get(f"{BASE}/missing").mock(return_value=Response(404, json={"detail": "gone"}))

    plain = runner.invoke(app, ["request", "GET", "/missing"])
    debug = runner.invoke(app, ["--debug", "request", "GET", "/missing"])

    assert plain.exit_code == debug.exit_code == 1
    assert "failed with HTTP 404" in plain.stdout
    assert "error (debug)" in debug.stdout
    assert "'detail': 'gone'" in debug.stdout
