"""
Serialization of httpx responses for cache storage.

Cached entries are plain JSON-compatible dicts so that every adapter
(in-memory, file system, aiocache) can store them. Bodies are base64
encoded to survive JSON round trips unchanged.
"""

import base64
import binascii
import logging
from typing import Any
from typing import Optional

import httpx

logger = logging.getLogger("canvas_sdk.cache")


class ResponseSerializer:
    """
    Converts `httpx.Response` objects to dicts and back.

    Args:
        max_body_size (int): Responses with a larger body are reported as not
            cacheable (1 MiB by default).
    """

    def __init__(self, max_body_size: int = 1024 * 1024):
        self.max_body_size = max_body_size

    def serialize(self, response: httpx.Response) -> dict[str, Any]:
        try:
            body = response.content
        except httpx.ResponseNotRead:
            return {"cacheable": False, "reason": "Response body not read"}

        if len(body) > self.max_body_size:
            return {"cacheable": False, "reason": "Response too large"}

        return {
            "cacheable": True,
            "status": response.status_code,
            "headers": [[name, value] for name, value in response.headers.multi_items()],
            "body": base64.b64encode(body).decode("ascii"),
            "version": response.http_version,
            "reason": response.reason_phrase,
        }

    def deserialize(self, data: Any) -> Optional[httpx.Response]:
        """Rebuild a response; None when `data` is not a usable entry."""
        if not isinstance(data, dict) or not data.get("cacheable"):
            return None

        try:
            body = base64.b64decode(data.get("body", ""), validate=True)
            headers = [(str(name), str(value)) for name, value in data.get("headers", [])]
            # the body is already decoded, so encoding headers must not apply again
            headers = [
                (name, value)
                for name, value in headers
                if name.lower() not in ("content-encoding", "transfer-encoding")
            ]
            response = httpx.Response(
                int(data.get("status", 200)),
                headers=headers,
                content=body,
                extensions={
                    "http_version": str(data.get("version", "HTTP/1.1")).encode("ascii"),
                    "reason_phrase": str(data.get("reason", "")).encode("ascii"),
                },
            )
        except (binascii.Error, TypeError, ValueError) as e:
            logger.warning(f"Discarding malformed cache entry: {e}")
            return None

        return response
