"""consent-gate – Analytics Transport.

The transport must be initialized at most once per process, before any event
is logged. Both calls report failures as TRANSPORT results.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping, Protocol

import httpx
import structlog

from consent_gate.core.errors import ErrorKind, OperationResult

logger = structlog.get_logger()


@dataclass(frozen=True)
class AnalyticsOptions:
    """Options handed to the transport on initialization."""

    dev_key: str
    app_id: str = ""
    show_debug: bool = False


class AnalyticsTransport(Protocol):
    async def initialize(self, options: AnalyticsOptions) -> OperationResult: ...

    async def log_event(self, name: str, parameters: Mapping[str, Any]) -> OperationResult: ...

    async def close(self) -> None: ...


class HttpAnalyticsTransport:
    """Server-to-server style event transport over HTTPS.

    Events are posted to `{endpoint_url}/{app_id}` with the dev key in the
    `authentication` header.
    """

    def __init__(
        self,
        endpoint_url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._endpoint_url = endpoint_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._options: AnalyticsOptions | None = None

    @property
    def initialized(self) -> bool:
        return self._client is not None

    async def initialize(self, options: AnalyticsOptions) -> OperationResult:
        if self._client is not None:
            return OperationResult.failure(ErrorKind.TRANSPORT, "transport already initialized")
        if not options.dev_key:
            logger.error("analytics.init_failed", reason="missing_dev_key")
            return OperationResult.failure(ErrorKind.TRANSPORT, "missing dev key")

        self._options = options
        self._client = httpx.AsyncClient(
            timeout=self._timeout,
            transport=self._transport,
            headers={"authentication": options.dev_key},
        )
        logger.info("analytics.initialized", app_id=options.app_id, debug=options.show_debug)
        return OperationResult.success()

    async def log_event(self, name: str, parameters: Mapping[str, Any]) -> OperationResult:
        if self._client is None or self._options is None:
            return OperationResult.failure(ErrorKind.TRANSPORT, "transport not initialized")

        payload = {
            "eventName": name,
            "eventValue": dict(parameters),
            "eventTime": datetime.now(timezone.utc).isoformat(),
        }
        try:
            response = await self._client.post(f"{self._endpoint_url}/{self._options.app_id}", json=payload)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("analytics.log_event_failed", event_name=name, error=str(exc))
            return OperationResult.failure(ErrorKind.TRANSPORT, str(exc))

        if self._options.show_debug:
            logger.debug("analytics.event_sent", event_name=name, status=response.status_code)
        return OperationResult.success()

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
