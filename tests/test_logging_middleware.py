"""
Tests for LoggingMiddleware: request/response/error records and redaction.
"""

import json
import logging

import httpx
import pytest

from canvas_sdk.logging_middleware import REDACTED
from canvas_sdk.logging_middleware import LoggingMiddleware
from tests.fakes import ScriptedHandler
from tests.fakes import make_request
from tests.fakes import make_response

LOGGER = "canvas_sdk.middleware.logging"


def records(caplog, prefix):
    return [r for r in caplog.records if r.getMessage().startswith(prefix)]


@pytest.mark.asyncio
async def test_logs_request_and_response(caplog: pytest.LogCaptureFixture):
    caplog.set_level(logging.INFO, logger=LOGGER)
    middleware = LoggingMiddleware()
    handler = ScriptedHandler(
        make_response(headers={"X-Rate-Limit-Remaining": "2900", "X-Request-Cost": "12.5"})
    )

    response = await middleware()(handler)(make_request(), {})

    assert response.status_code == 200
    [request_record] = records(caplog, "HTTP Request: GET https://canvas.test/api/v1/courses")
    [response_record] = records(caplog, "HTTP Response: 200 OK")

    assert request_record.http["headers"]["authorization"] == REDACTED
    assert request_record.http["request_id"] == response_record.http["request_id"]
    assert request_record.http["request_id"].startswith("req_")
    assert response_record.http["rate_limit_remaining"] == "2900"
    assert response_record.http["request_cost"] == "12.5"
    assert response_record.http["elapsed_time"].endswith("ms")
    assert "body" not in response_record.http


@pytest.mark.asyncio
async def test_request_body_is_redacted(caplog):
    caplog.set_level(logging.INFO, logger=LOGGER)
    middleware = LoggingMiddleware()
    request = make_request(
        "POST", "/login/oauth2/token", json={"password": "x", "token": "y", "name": "n"}
    )

    await middleware()(ScriptedHandler())(request, {"rate_limit_bucket": "auth"})

    [record] = records(caplog, "HTTP Request")
    body = json.loads(record.http["body"])
    assert body == {"password": REDACTED, "token": REDACTED, "name": "n"}
    assert "x" not in record.http["body"].replace(REDACTED, "")
    assert record.http["rate_limit_bucket"] == "auth"


@pytest.mark.asyncio
async def test_long_bodies_are_truncated(caplog):
    caplog.set_level(logging.INFO, logger=LOGGER)
    middleware = LoggingMiddleware(config={"max_body_length": 20})
    request = make_request("POST", "/api/v1/courses", content=b"a" * 50)

    await middleware()(ScriptedHandler())(request, {})

    [record] = records(caplog, "HTTP Request")
    assert record.http["body"] == "a" * 20 + "... (truncated)"
    assert record.http["body_length"] == 50


@pytest.mark.asyncio
async def test_error_response_is_logged_at_error_level(caplog):
    caplog.set_level(logging.INFO, logger=LOGGER)
    middleware = LoggingMiddleware()
    handler = ScriptedHandler(make_response(404, text="not found"), raise_for_status=False)

    await middleware()(handler)(make_request(), {})

    [record] = records(caplog, "HTTP Response: 404")
    assert record.levelno == logging.ERROR
    assert record.http["body"] == "not found"


@pytest.mark.asyncio
async def test_failures_are_logged_and_reraised(caplog):
    caplog.set_level(logging.INFO, logger=LOGGER)
    middleware = LoggingMiddleware()
    handler = ScriptedHandler(make_response(500, text="boom"))

    with pytest.raises(httpx.HTTPStatusError):
        await middleware()(handler)(make_request(), {})

    [record] = records(caplog, "HTTP Error: HTTPStatusError")
    assert record.levelno == logging.ERROR
    assert record.http["status_code"] == 500
    assert record.http["response_body"] == "boom"


@pytest.mark.asyncio
async def test_connection_errors_are_logged(caplog):
    caplog.set_level(logging.INFO, logger=LOGGER)
    request = make_request()
    handler = ScriptedHandler(httpx.ConnectError("refused", request=request))

    with pytest.raises(httpx.ConnectError):
        await LoggingMiddleware()()(handler)(request, {})

    [record] = records(caplog, "HTTP Error: ConnectError - refused")
    assert "status_code" not in record.http


@pytest.mark.asyncio
async def test_disabled_middleware_logs_nothing(caplog):
    caplog.set_level(logging.DEBUG, logger=LOGGER)
    middleware = LoggingMiddleware(config={"enabled": False})

    await middleware()(ScriptedHandler())(make_request(), {})

    assert records(caplog, "HTTP") == []


@pytest.mark.asyncio
async def test_custom_logger_and_level(caplog):
    caplog.set_level(logging.DEBUG, logger="custom")
    middleware = LoggingMiddleware(logging.getLogger("custom"), config={"log_level": "debug"})

    await middleware()(ScriptedHandler())(make_request(), {})

    assert {r.levelno for r in records(caplog, "HTTP")} == {logging.DEBUG}
    assert {r.name for r in records(caplog, "HTTP")} == {"custom"}


def test_sanitize_headers_is_case_insensitive():
    middleware = LoggingMiddleware()
    headers = {"Authorization": "Bearer abc", "X-Auth-Token": "k", "Accept": "application/json"}
    assert middleware.sanitize_headers(headers) == {
        "Authorization": REDACTED,
        "X-Auth-Token": REDACTED,
        "Accept": "application/json",
    }


def test_sanitize_data_recurses_into_lists_and_dicts():
    middleware = LoggingMiddleware()
    data = {"user": {"name": "a", "client_secret": "s"}, "items": [{"access_token": "t"}]}
    assert middleware.sanitize_data(data) == {
        "user": {"name": "a", "client_secret": REDACTED},
        "items": [{"access_token": REDACTED}],
    }


def test_sanitize_body_form_encoded():
    middleware = LoggingMiddleware()
    body = middleware.sanitize_body("grant_type=refresh_token&client_secret=abc&refresh_token=def")
    assert "abc" not in body
    assert "def" not in body
    assert body.startswith("grant_type=refresh_token&")


def test_sanitize_body_with_custom_fields():
    middleware = LoggingMiddleware(config={"sanitize_fields": ["ssn"]})
    assert middleware.sanitize_body('{"ssn": "123", "password": "p"}') == json.dumps(
        {"ssn": REDACTED, "password": "p"}, indent=4
    )


@pytest.mark.asyncio
async def test_query_string_credentials_are_redacted(caplog):
    caplog.set_level(logging.INFO, logger=LOGGER)
    request = make_request(path="/api/v1/courses?access_token=secret-value&per_page=10")
    handler = ScriptedHandler(make_response(401, text="expired"))

    with pytest.raises(httpx.HTTPStatusError):
        await LoggingMiddleware()()(handler)(request, {})

    [request_record] = records(caplog, "HTTP Request")
    [error_record] = records(caplog, "HTTP Error")
    for record in (request_record, error_record):
        assert "secret-value" not in record.getMessage()
        assert "secret-value" not in record.http["uri"]
        assert "per_page=10" in record.http["uri"]
    assert "access_token=" in request_record.http["uri"]
    assert "secret-value" not in error_record.http["error_message"]


def test_sanitize_url_without_query_is_unchanged():
    middleware = LoggingMiddleware()
    url = httpx.URL("https://canvas.test/api/v1/courses")
    assert middleware.sanitize_url(url) == "https://canvas.test/api/v1/courses"
