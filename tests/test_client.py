"""
Test suite for the CanvasClient class.

This module covers URL building, the default middleware chain, error
conversion, retry, rate limiting, caching and OAuth refresh as seen through
the client. Transports are faked so no real HTTP requests are made.
"""

import httpx
import pytest

from canvas_sdk.auth import AuthManager
from canvas_sdk.client import CanvasClient
from canvas_sdk.client import build_middleware
from canvas_sdk.client_sync import CanvasClientSync
from canvas_sdk.config import CanvasSettings
from canvas_sdk.exceptions import CanvasAPIError
from canvas_sdk.exceptions import MissingCredentialsError
from canvas_sdk.exceptions import RateLimitExceededError
from canvas_sdk.rate_limit_middleware import Bucket
from canvas_sdk.rate_limit_middleware import default_bucket_store
from canvas_sdk.token_store import InMemoryTokenStore
from canvas_sdk.transport import HttpxTransport
from tests.fakes import BASE_URL
from tests.fakes import FakeTransport
from tests.fakes import ScriptedHandler
from tests.fakes import make_response


@pytest.fixture(autouse=True)
def reset_buckets():
    default_bucket_store.reset()
    yield
    default_bucket_store.reset()


@pytest.fixture
def settings():
    return CanvasSettings(_env_file=None, base_url=BASE_URL, api_key="test-key")


def make_client(settings, *script, **kwargs):
    transport = FakeTransport(ScriptedHandler(*script, raise_for_status=False))
    client = CanvasClient(settings, transport=transport, **kwargs)
    retry = client.middleware("retry")
    if retry is not None:
        retry.configure({"delay": 0, "jitter": False})
    return client, transport


def test_default_middleware_order(settings):
    auth = AuthManager(settings)
    names = [m.get_name() for m in build_middleware(settings, auth)]
    assert names == ["oauth2_refresh", "rate-limit", "cache", "retry", "logging"]


def test_settings_flow_into_middleware(settings):
    settings.cache_enabled = True
    settings.retry_enabled = False
    settings.rate_limit_wait_on_limit = False
    client, _ = make_client(settings)

    assert client.middleware("cache").get_config("enabled") is True
    assert client.middleware("retry").get_config("max_attempts") == 1
    assert client.middleware("rate-limit").get_config("wait_on_limit") is False
    assert client.middleware("missing") is None


@pytest.mark.parametrize(
    "path, expected",
    [
        ("courses", f"{BASE_URL}/api/v1/courses"),
        ("/courses/1", f"{BASE_URL}/api/v1/courses/1"),
        ("/api/v1/users/self", f"{BASE_URL}/api/v1/users/self"),
        ("/login/oauth2/token", f"{BASE_URL}/login/oauth2/token"),
        ("https://other.test/x", "https://other.test/x"),
    ],
)
def test_build_url(settings, path, expected):
    client, _ = make_client(settings)
    assert client.build_url(path) == expected


def test_build_url_requires_base_url(settings):
    settings.base_url = ""
    client, _ = make_client(settings)
    with pytest.raises(CanvasAPIError):
        client.build_url("courses")


@pytest.mark.asyncio
async def test_get_json_sends_authorized_request(settings):
    client, transport = make_client(settings, make_response(json_data=[{"id": 1}]))

    data = await client.get_json("courses", params={"per_page": 50})

    assert data == [{"id": 1}]
    [request] = transport.requests
    assert request.headers["Authorization"] == "Bearer test-key"
    assert str(request.url) == f"{BASE_URL}/api/v1/courses?per_page=50"


@pytest.mark.asyncio
async def test_http_errors_are_converted(settings):
    client, _ = make_client(settings, make_response(404, text="not found"))

    with pytest.raises(CanvasAPIError) as exc_info:
        await client.get("courses/999")

    error = exc_info.value
    assert error.status_code == 404
    assert error.details == "not found"
    assert isinstance(error.__cause__, httpx.HTTPStatusError)


@pytest.mark.asyncio
async def test_http_errors_can_be_disabled(settings):
    settings.http_errors = False
    client, _ = make_client(settings, make_response(404))

    response = await client.get("courses/999")

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_transport_errors_are_converted(settings):
    client, transport = make_client(settings, httpx.ConnectError("refused"))

    with pytest.raises(CanvasAPIError) as exc_info:
        await client.get("courses")

    assert isinstance(exc_info.value.__cause__, httpx.ConnectError)
    assert transport.request_count == 3


@pytest.mark.asyncio
async def test_server_errors_are_retried(settings):
    client, transport = make_client(
        settings, make_response(503), make_response(json_data={"id": 1})
    )

    data = await client.get_json("courses/1")

    assert data == {"id": 1}
    assert transport.request_count == 2


@pytest.mark.asyncio
async def test_local_rate_limit_error_surfaces_unchanged(settings):
    settings.rate_limit_wait_on_limit = False
    client, transport = make_client(settings, make_response())
    bucket_key = client.middleware("rate-limit").make_bucket_key(
        httpx.Request("GET", BASE_URL), {}
    )
    default_bucket_store.set(bucket_key, Bucket(remaining=0, timestamp=10**12))

    with pytest.raises(RateLimitExceededError) as exc_info:
        await client.get("courses")

    assert exc_info.value.status_code == 429
    assert transport.request_count == 0


@pytest.mark.asyncio
async def test_cached_get_and_invalidating_put(settings):
    settings.cache_enabled = True
    client, transport = make_client(
        settings,
        make_response(json_data={"name": "Old"}),
        make_response(json_data={"ok": True}),
        make_response(json_data={"name": "New"}),
    )

    assert await client.get_json("courses/42") == {"name": "Old"}
    assert await client.get_json("courses/42") == {"name": "Old"}
    assert transport.request_count == 1

    await client.put("courses/42", json={"course": {"name": "New"}})
    assert await client.get_json("courses/42") == {"name": "New"}
    assert transport.request_count == 3


@pytest.mark.asyncio
async def test_oauth_401_refreshes_token_and_retries(settings):
    def token_endpoint(request):
        return httpx.Response(200, json={"access_token": "fresh", "expires_in": 3600})

    settings.auth_mode = "oauth"
    settings.oauth_token = "stale"
    settings.oauth_refresh_token = "refresh"
    settings.oauth_client_id = "id"
    settings.oauth_client_secret = "secret"
    token_client = httpx.AsyncClient(transport=httpx.MockTransport(token_endpoint))
    token_store = InMemoryTokenStore()
    auth = AuthManager(settings, token_store=token_store, http_client=token_client)
    client, transport = make_client(
        settings, make_response(401), make_response(json_data={"ok": True}), auth=auth
    )

    assert await client.get_json("users/self") == {"ok": True}

    assert [r.headers["Authorization"] for r in transport.requests] == [
        "Bearer stale",
        "Bearer fresh",
    ]
    assert (await token_store.load())["access_token"] == "fresh"
    await token_client.aclose()


@pytest.mark.asyncio
async def test_missing_api_key(settings):
    settings.api_key = None
    client, transport = make_client(settings)

    with pytest.raises(MissingCredentialsError):
        await client.get("courses")

    assert transport.request_count == 0


@pytest.mark.asyncio
async def test_invalid_json_raises(settings):
    client, _ = make_client(settings, make_response(text="<html>"))

    with pytest.raises(CanvasAPIError):
        await client.get_json("courses")


@pytest.mark.asyncio
async def test_custom_middleware_list(settings):
    client, transport = make_client(settings, make_response(500), middlewares=[])

    with pytest.raises(CanvasAPIError):
        await client.get("courses")

    assert transport.request_count == 1


@pytest.mark.asyncio
async def test_async_context_manager_closes_transport(settings):
    transport = FakeTransport()
    async with CanvasClient(settings, transport=transport) as client:
        await client.get("courses")
    assert transport.closed is True


@pytest.mark.asyncio
async def test_httpx_transport_end_to_end(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={"path": request.url.path},
            headers={"X-Rate-Limit-Remaining": "2500"},
        )

    transport = HttpxTransport(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    async with CanvasClient(settings, transport=transport) as client:
        data = await client.get_json("courses/7")
        bucket_key = client.middleware("rate-limit").make_bucket_key(
            httpx.Request("GET", BASE_URL), {}
        )

    assert data == {"path": "/api/v1/courses/7"}
    assert default_bucket_store.peek(bucket_key).remaining == 2500


def test_sync_client(settings):
    transport = FakeTransport(ScriptedHandler(make_response(json_data={"id": 3}), raise_for_status=False))

    with CanvasClientSync(settings, transport=transport) as client:
        assert client.get_json("courses/3") == {"id": 3}
        assert client.get("courses/3").status_code == 200
        assert client.async_client.settings is settings

    assert transport.closed is True


@pytest.mark.asyncio
async def test_oauth_without_token_refreshes_before_first_request(settings):
    def token_endpoint(request):
        return httpx.Response(200, json={"access_token": "first", "expires_in": 3600})

    settings.auth_mode = "oauth"
    settings.oauth_refresh_token = "refresh"
    settings.oauth_client_id = "id"
    settings.oauth_client_secret = "secret"
    token_client = httpx.AsyncClient(transport=httpx.MockTransport(token_endpoint))
    auth = AuthManager(settings, token_store=InMemoryTokenStore(), http_client=token_client)
    client, transport = make_client(settings, make_response(json_data=[]), auth=auth)

    await client.get("courses")

    assert transport.requests[0].headers["Authorization"] == "Bearer first"
    await token_client.aclose()
