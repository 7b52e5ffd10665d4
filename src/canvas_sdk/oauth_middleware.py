"""
OAuth2 token refresh middleware for Canvas SDK.

Keeps bearer tokens fresh in OAuth mode:
- proactively, by refreshing a token known to be expired before sending
- reactively, by refreshing once and retrying when the server answers 401

Any failed proactive refresh is ignored (the request goes out with the old
token and the reactive path takes over). Any failed reactive refresh re-raises
the original 401 error. At most one reactive retry is made per request.
"""

import logging
from typing import Optional

import httpx

from canvas_sdk.auth import AuthManager
from canvas_sdk.middleware import AbstractMiddleware
from canvas_sdk.middleware import Handler
from canvas_sdk.middleware import Options
from canvas_sdk.middleware import response_from_error

logger = logging.getLogger("canvas_sdk.middleware.oauth")


class OAuth2RefreshMiddleware(AbstractMiddleware):
    """
    Args:
        auth (AuthManager): Source of the OAuth token and refresh operation.
        config (dict | None): `auto_refresh` and `retry_on_401` overrides.
    """

    name = "oauth2_refresh"

    def __init__(self, auth: AuthManager, config: Optional[Options] = None):
        super().__init__(config)
        self.auth = auth

    def default_config(self) -> Options:
        return {
            "auto_refresh": True,
            "retry_on_401": True,
        }

    def wrap(self, handler: Handler) -> Handler:
        async def oauth_handler(
            request: httpx.Request, options: Options
        ) -> httpx.Response:
            if not self.auth.is_oauth:
                return await handler(request, options)

            if self.get_config("auto_refresh") and self.auth.is_token_expired():
                try:
                    await self.auth.refresh_token()
                except Exception as e:
                    logger.warning(f"Proactive token refresh failed, sending anyway: {e}")
                else:
                    self._authorize(request)

            if not self.get_config("retry_on_401"):
                return await handler(request, options)

            try:
                return await handler(request, options)
            except httpx.HTTPStatusError as exc:
                response = response_from_error(exc)
                if response is None or response.status_code != 401:
                    raise
                try:
                    await self.auth.refresh_token()
                except Exception as refresh_error:
                    logger.error(f"Token refresh after 401 failed: {refresh_error}")
                    raise exc
                logger.info("Retrying request once with refreshed token")
                self._authorize(request)
                return await handler(request, options)

        return oauth_handler

    def _authorize(self, request: httpx.Request) -> None:
        request.headers["Authorization"] = f"Bearer {self.auth.access_token}"
