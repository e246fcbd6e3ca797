"""consent-gate – Native Method Channel.

The native layer is reached by method name with no payload. The HTTP channel
posts to `{base_url}/{method}` on a loopback bridge served by the host app.
"""

from typing import Protocol

import httpx
import structlog

logger = structlog.get_logger()


class MethodChannel(Protocol):
    """Fire-and-forget invocation of a named native method.

    Implementations raise on failure; PrivacyBridge converts errors to results.
    """

    async def invoke_method(self, method: str) -> None: ...

    async def close(self) -> None: ...


class HttpMethodChannel:
    """Method channel over a local HTTP bridge."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def invoke_method(self, method: str) -> None:
        response = await self._client.post(f"{self._base_url}/{method}")
        response.raise_for_status()
        logger.debug("native_channel.invoked", method=method, status=response.status_code)

    async def close(self) -> None:
        await self._client.aclose()
