import json
from unittest.mock import AsyncMock

import pytest
from click.testing import CliRunner

from canvas_sdk import cli as cli_module
from canvas_sdk.auth import AuthManager
from canvas_sdk.client import CanvasClient
from canvas_sdk.rate_limit_middleware import default_bucket_store
from tests.fakes import BASE_URL
from tests.fakes import FakeTransport
from tests.fakes import ScriptedHandler
from tests.fakes import make_response


@pytest.fixture(autouse=True)
def canvas_env(monkeypatch, tmp_path):
    monkeypatch.setenv("CANVAS_BASE_URL", BASE_URL)
    monkeypatch.setenv("CANVAS_API_KEY", "test-key")
    monkeypatch.setenv("CANVAS_TOKEN_CACHE_PATH", str(tmp_path / "token_cache.json"))
    default_bucket_store.reset()
    yield tmp_path
    default_bucket_store.reset()


@pytest.fixture
def transport(monkeypatch):
    transport = FakeTransport(
        ScriptedHandler(make_response(json_data={"id": 42, "name": "Biology"}), raise_for_status=False)
    )
    monkeypatch.setattr(
        cli_module,
        "CanvasClient",
        lambda settings: CanvasClient(settings, transport=transport),
    )
    return transport


def test_get_prints_json(transport):
    result = CliRunner().invoke(cli_module.cli, ["get", "courses/42", "-p", "include[]=term"])

    assert result.exit_code == 0, result.output
    assert json.loads(result.output) == {"id": 42, "name": "Biology"}
    [request] = transport.requests
    assert request.url.path == "/api/v1/courses/42"
    assert request.url.params["include[]"] == "term"


def test_get_rejects_malformed_param(transport):
    result = CliRunner().invoke(cli_module.cli, ["get", "courses", "-p", "novalue"])

    assert result.exit_code != 0
    assert transport.request_count == 0


def test_request_sends_json_body(transport):
    result = CliRunner().invoke(
        cli_module.cli,
        ["request", "put", "courses/42", "--json-body", '{"course": {"name": "Biology"}}'],
    )

    assert result.exit_code == 0, result.output
    assert result.output.startswith("200 OK")
    [request] = transport.requests
    assert request.method == "PUT"
    assert json.loads(request.content) == {"course": {"name": "Biology"}}


def test_request_failure_exits_non_zero(monkeypatch):
    transport = FakeTransport(ScriptedHandler(make_response(404), raise_for_status=False))
    monkeypatch.setattr(
        cli_module, "CanvasClient", lambda settings: CanvasClient(settings, transport=transport)
    )

    result = CliRunner().invoke(cli_module.cli, ["request", "GET", "courses/1"])

    assert result.exit_code == 1
    assert "Request failed" in result.output


def test_refresh_token(monkeypatch):
    monkeypatch.setattr(AuthManager, "refresh_token", AsyncMock(return_value="token-1234567890"))

    result = CliRunner().invoke(cli_module.cli, ["refresh-token"])

    assert result.exit_code == 0, result.output
    assert "Token refreshed: token-1234" in result.output


def test_refresh_token_without_credentials_fails():
    result = CliRunner().invoke(cli_module.cli, ["refresh-token"])

    assert result.exit_code == 1
    assert "Failed to refresh token" in result.output


def test_clear_token_cache(canvas_env):
    cache_file = canvas_env / "token_cache.json"
    cache_file.write_text("{}")

    result = CliRunner().invoke(cli_module.cli, ["clear-token-cache"])

    assert result.exit_code == 0
    assert "Token cache cleared" in result.output
    assert not cache_file.exists()
