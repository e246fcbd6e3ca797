"""consent-gate – Privacy Bridge.

Keeps the native privacy toggle in lockstep with the effective permission:
- enterPrivacyMode: stop collecting persistent identifiers, run the native
  transport in reduced-data mode (install/referrer signals only).
- exitPrivacyMode: re-enable identifier collection, full-fidelity transport.

Both operations are idempotent. Failures are logged and returned, never raised.
"""

from enum import Enum

import structlog

from consent_gate.core.errors import ErrorKind, OperationResult
from consent_gate.core.instrumentation import BRIDGE_FAILURES
from consent_gate.integrations.native_channel import MethodChannel

logger = structlog.get_logger()

METHOD_ENTER_PRIVACY = "enterPrivacyMode"
METHOD_EXIT_PRIVACY = "exitPrivacyMode"


class NativeMode(str, Enum):
    UNKNOWN = "unknown"
    PRIVACY = "privacy"
    FULL = "full"


class PrivacyBridge:
    """Native privacy toggle.

    Remembers the last mode the native layer confirmed and skips redundant
    calls. After a failure the mode is UNKNOWN, so the next call goes out.
    """

    def __init__(self, channel: MethodChannel) -> None:
        self._channel = channel
        self._mode = NativeMode.UNKNOWN

    @property
    def mode(self) -> NativeMode:
        return self._mode

    async def enter_privacy_mode(self) -> OperationResult:
        return await self._switch(METHOD_ENTER_PRIVACY, NativeMode.PRIVACY)

    async def exit_privacy_mode(self) -> OperationResult:
        return await self._switch(METHOD_EXIT_PRIVACY, NativeMode.FULL)

    async def close(self) -> None:
        try:
            await self._channel.close()
        except Exception as exc:
            logger.warning("bridge.close_failed", error=str(exc))

    async def _switch(self, method: str, target: NativeMode) -> OperationResult:
        if self._mode is target:
            logger.debug("bridge.already_in_mode", mode=target.value)
            return OperationResult.success()

        try:
            await self._channel.invoke_method(method)
        except Exception as exc:
            self._mode = NativeMode.UNKNOWN
            BRIDGE_FAILURES.labels(operation=method).inc()
            logger.error("bridge.invoke_failed", method=method, error=str(exc))
            return OperationResult.failure(ErrorKind.BRIDGE, str(exc))

        self._mode = target
        logger.info("bridge.mode_changed", method=method, mode=target.value)
        return OperationResult.success()
