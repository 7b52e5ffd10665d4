import httpx


class BaseTransport:
    """
    Abstract transport layer interface for Canvas SDK.
    All HTTP client backends should inherit from this class.

    Every backend sends an `httpx.Request` and returns a fully read
    `httpx.Response`, so middleware work the same regardless of the
    underlying client.

    Supported transports:
    - httpx: Native async HTTP client
    - aiohttp: Native async HTTP client
    - requests: Sync HTTP client wrapped in async interface
    """

    async def send(self, request: httpx.Request) -> httpx.Response:
        """
        Send `request` and return the response with its body loaded.
        Override this method in transport implementations.

        Connection and timeout failures must surface as `httpx.TransportError`
        subclasses.
        """
        raise NotImplementedError(
            "Transport implementations must override this method."
        )

    async def close(self):
        """Release connections held by the backend."""


_DECODED_BODY_HEADERS = {b"content-encoding", b"content-length", b"transfer-encoding"}


def decoded_headers(headers) -> list[tuple[bytes, bytes]]:
    """
    Drop framing headers for a body the backend already decompressed, so
    httpx does not try to decode it a second time.
    """
    result = []
    for name, value in headers:
        name = name.encode("latin-1") if isinstance(name, str) else name
        value = value.encode("latin-1") if isinstance(value, str) else value
        if name.lower() not in _DECODED_BODY_HEADERS:
            result.append((name, value))
    return result
