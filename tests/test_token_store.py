import json
import stat
import time

import pytest

from canvas_sdk.token_store import FileTokenStore
from canvas_sdk.token_store import InMemoryTokenStore


@pytest.mark.asyncio
async def test_file_token_store_round_trip(tmp_path):
    path = tmp_path / "nested" / "token_cache.json"
    store = FileTokenStore(path)
    expires_at = time.time() + 300

    await store.save("access-123", expires_at)

    assert await store.load() == {"access_token": "access-123", "expires_at": expires_at}
    assert stat.S_IMODE(path.stat().st_mode) == 0o600


@pytest.mark.asyncio
async def test_file_token_store_ignores_expired_and_invalid(tmp_path):
    path = tmp_path / "token_cache.json"
    store = FileTokenStore(path)

    assert await store.load() is None

    path.write_text(json.dumps({"access_token": "old", "expires_at": time.time() - 1}))
    assert await store.load() is None

    path.write_text(json.dumps({"access_token": "no-expiry"}))
    assert await store.load() is None

    path.write_text("{not json")
    assert await store.load() is None


@pytest.mark.asyncio
async def test_file_token_store_clear(tmp_path):
    path = tmp_path / "token_cache.json"
    store = FileTokenStore(path)
    await store.save("access-123", time.time() + 300)

    await store.clear()
    await store.clear()

    assert not path.exists()


@pytest.mark.asyncio
async def test_in_memory_token_store():
    store = InMemoryTokenStore()
    assert await store.load() is None

    await store.save("access-123", time.time() + 300)
    assert (await store.load())["access_token"] == "access-123"

    await store.save("expired", time.time() - 1)
    assert await store.load() is None

    await store.clear()
    assert await store.load() is None
