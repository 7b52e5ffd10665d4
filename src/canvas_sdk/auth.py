"""
This module provides an asynchronous AuthManager class responsible for:
- resolving the active Canvas credential (API key or OAuth access token)
- refreshing OAuth2 access tokens with the refresh-token grant
- retrying transient failures of the token endpoint (with exponential backoff)
- tracking token expiration and persisting refreshed tokens.
"""

import logging
import time
from typing import Optional

import httpx
from tenacity import AsyncRetrying
from tenacity import retry_if_exception_type
from tenacity import stop_after_attempt
from tenacity import wait_exponential

from canvas_sdk.config import CanvasSettings
from canvas_sdk.exceptions import MissingCredentialsError
from canvas_sdk.exceptions import OAuthRefreshError
from canvas_sdk.token_store import TokenStore

logger = logging.getLogger("canvas_sdk.auth")

TOKEN_PATH = "/login/oauth2/token"
EXPIRY_BUFFER_SECONDS = 10


class AuthManager:
    """
    Holds the credentials used to talk to Canvas.

    In `api_key` mode the developer key from the settings is used as bearer
    token. In `oauth` mode the current access token is used and can be
    refreshed with the configured refresh token; Canvas keeps the refresh
    token unchanged across refreshes.

    Attributes:
        settings (CanvasSettings): Base URL and credentials.
        auth_mode (str): 'api_key' or 'oauth'.
        token_store (TokenStore | None): Where refreshed tokens are persisted.
    """

    def __init__(
        self,
        settings: CanvasSettings,
        retry_attempts: int = 3,
        token_store: Optional[TokenStore] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings
        self.auth_mode = settings.auth_mode
        self._access_token: Optional[str] = settings.oauth_token
        self._token_expiry: Optional[float] = settings.oauth_expires_at
        self._refresh_token: Optional[str] = settings.oauth_refresh_token
        self._retry_attempts = retry_attempts
        self.token_store = token_store
        self._http_client = http_client
        self._store_loaded = False

    @property
    def access_token(self) -> Optional[str]:
        return self._access_token

    @property
    def token_expiry(self) -> Optional[float]:
        return self._token_expiry

    @property
    def is_oauth(self) -> bool:
        return self.auth_mode == "oauth"

    def active_credential(self) -> Optional[str]:
        """The secret currently sent as bearer token, if any."""
        if self.is_oauth:
            return self._access_token
        return self.settings.api_key

    def authorization_header(self) -> str:
        credential = self.active_credential()
        if not credential:
            if self.is_oauth:
                raise MissingCredentialsError("No OAuth access token available")
            raise MissingCredentialsError("No Canvas API key configured")
        return f"Bearer {credential}"

    def is_token_expired(self) -> bool:
        """
        True if the OAuth token is missing or about to expire. A token with
        unknown expiry is treated as valid.
        """
        if not self._access_token:
            return True
        if self._token_expiry is None:
            return False
        return time.time() > self._token_expiry - EXPIRY_BUFFER_SECONDS

    async def load_cached_token(self) -> None:
        """Pick up a previously persisted token, once."""
        if self._store_loaded or not self.token_store:
            return
        self._store_loaded = True

        token_data = await self.token_store.load()
        if token_data and (not self._access_token or self.is_token_expired()):
            logger.debug("Loaded OAuth token from cache")
            self._access_token = token_data["access_token"]
            self._token_expiry = token_data["expires_at"]

    async def refresh_token(self) -> str:
        """
        Exchange the refresh token for a new access token.

        Raises:
            MissingCredentialsError: No refresh token or client credentials.
            OAuthRefreshError: The token endpoint rejected the request or
                returned an unusable body.
        """
        if not self._refresh_token or not self._refresh_token.strip():
            logger.error("OAuth: no refresh token available for refresh")
            raise MissingCredentialsError("No refresh token available")

        client_id = self.settings.oauth_client_id
        client_secret = self.settings.oauth_client_secret
        if not client_id or not client_secret:
            raise MissingCredentialsError("OAuth client credentials must be configured")
        if not self.settings.base_url:
            raise MissingCredentialsError("Base URL must be configured")

        logger.info("OAuth: starting token refresh")
        form = {
            "grant_type": "refresh_token",
            "client_id": client_id,
            "client_secret": client_secret,
            "refresh_token": self._refresh_token,
        }

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._retry_attempts),
                wait=wait_exponential(multiplier=0.5, min=1, max=5),
                retry=retry_if_exception_type(httpx.TransportError),
                reraise=True,
            ):
                with attempt:
                    response = await self._post_token_request(form)
        except httpx.TransportError as e:
            logger.error(f"OAuth: failed to reach token endpoint: {e}")
            raise OAuthRefreshError(f"Token refresh failed: {e}") from e

        if not response.is_success:
            logger.error(
                f"OAuth: failed to refresh token: {response.status_code} {response.text}"
            )
            raise OAuthRefreshError(
                f"Token refresh failed: {response.text}",
                status_code=response.status_code,
                response=response,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise OAuthRefreshError("Invalid response from token refresh") from e
        if not isinstance(data, dict) or not data.get("access_token"):
            raise OAuthRefreshError("Invalid response from token refresh", details=data)

        expires_in = data.get("expires_in")
        try:
            expires_at = time.time() + float(expires_in) if expires_in is not None else None
        except (TypeError, ValueError) as e:
            raise OAuthRefreshError(
                f"Invalid expires_in in token refresh response: {expires_in!r}", details=data
            ) from e

        self._access_token = data["access_token"]
        # no expires_in means unknown expiry, which is treated as valid
        self._token_expiry = expires_at
        logger.info(f"OAuth: refreshed access token (expires_in={expires_in})")

        if self.token_store and self._token_expiry is not None:
            try:
                await self.token_store.save(self._access_token, self._token_expiry)
            except OSError as e:
                logger.warning(f"Failed to save token: {e}")

        return self._access_token

    async def _post_token_request(self, form: dict[str, str]) -> httpx.Response:
        if self._http_client is not None:
            return await self._http_client.post(self._token_url(), data=form)
        async with httpx.AsyncClient(timeout=self.settings.timeout) as client:
            return await client.post(self._token_url(), data=form)

    def _token_url(self) -> str:
        return self.settings.base_url.rstrip("/") + TOKEN_PATH
