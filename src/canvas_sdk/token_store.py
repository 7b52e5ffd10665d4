# token_store.py

import json
import logging
import time
from pathlib import Path
from typing import TypedDict

logger = logging.getLogger("canvas_sdk.token_store")


class TokenData(TypedDict):
    access_token: str
    expires_at: float


class TokenStore:
    """Abstract interface for OAuth access token storage."""

    async def load(self) -> TokenData | None:
        raise NotImplementedError

    async def save(self, access_token: str, expires_at: float):
        raise NotImplementedError

    async def clear(self):
        """Clears the token cache"""
        raise NotImplementedError


class InMemoryTokenStore(TokenStore):
    """Keeps the token for the lifetime of the process only."""

    def __init__(self):
        self._data: TokenData | None = None

    async def load(self) -> TokenData | None:
        if self._data and time.time() < self._data["expires_at"]:
            return self._data
        return None

    async def save(self, access_token: str, expires_at: float):
        self._data = {"access_token": access_token, "expires_at": expires_at}

    async def clear(self):
        self._data = None


class FileTokenStore(TokenStore):
    """Persists the access token as JSON, e.g. ~/.canvas_sdk/token_cache.json."""

    def __init__(self, path: Path):
        self.path = Path(path)

    async def load(self) -> TokenData | None:
        if not self.path.exists():
            logger.debug(f"No token cache at {self.path}")
            return None
        try:
            data = json.loads(self.path.read_text())
        except (json.JSONDecodeError, OSError) as e:
            logger.debug(f"Failed to load token cache: {e}")
            return None

        if not isinstance(data, dict) or not {"access_token", "expires_at"} <= data.keys():
            logger.debug("Cached token data is invalid")
            return None
        if time.time() >= data["expires_at"]:
            logger.debug("Cached token is expired")
            return None
        return {"access_token": data["access_token"], "expires_at": data["expires_at"]}

    async def save(self, access_token: str, expires_at: float):
        data = {"access_token": access_token, "expires_at": expires_at}
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(data))
            self.path.chmod(0o600)
            logger.debug(f"Token saved to {self.path}")
        except OSError as e:
            logger.warning(f"Failed to save token: {e}")

    async def clear(self):
        """Clears the token cache"""
        try:
            self.path.unlink(missing_ok=True)
            logger.debug("Token cache cleared")
        except OSError as e:
            logger.warning(f"Failed to clear token cache: {e}")
