"""consent-gate – Consent Coordinator.

Two-layer consent reconciliation:
1. General consent (consent-management UI). Denied → privacy mode, no prompt.
2. Granted → platform tracking authorization. Only AUTHORIZED yields full
   consent; every other outcome, including errors, fails closed.

The coordinator is the only writer of the ConsentRecord. Its entry points are
serialized by a single asyncio.Lock, so a decision that arrives while another
reconciliation is in flight is queued behind it.
"""

import asyncio
from typing import Any, Mapping

import structlog

from consent_gate.core.errors import ErrorKind, OperationResult
from consent_gate.core.instrumentation import CONSENT_TRANSITIONS, EVENTS_DELIVERED
from consent_gate.core.models import (
    AnalyticsInitState,
    AuthorizationOutcome,
    BufferedEvent,
    ConsentRecord,
    ConsentSnapshot,
    ConsentState,
)
from consent_gate.integrations.analytics import AnalyticsOptions, AnalyticsTransport
from consent_gate.integrations.privacy_bridge import PrivacyBridge
from consent_gate.integrations.tracking_gate import TrackingAuthorizationGate
from consent_gate.memory.buffer import EventBuffer
from consent_gate.memory.store import ConsentStore

logger = structlog.get_logger()


class ConsentCoordinator:
    """Owns both consent signals and the effective permission.

    Lifecycle: construct once per process, `load()` at startup,
    `teardown()` at shutdown.
    """

    def __init__(
        self,
        store: ConsentStore,
        bridge: PrivacyBridge,
        gate: TrackingAuthorizationGate,
        transport: AnalyticsTransport,
        options: AnalyticsOptions,
        buffer: EventBuffer | None = None,
    ) -> None:
        self._store = store
        self._bridge = bridge
        self._gate = gate
        self._transport = transport
        self._options = options
        self._buffer = buffer if buffer is not None else EventBuffer()
        self._lock = asyncio.Lock()

        self._record = ConsentRecord()
        self._state = ConsentState.UNKNOWN
        self._analytics_state = AnalyticsInitState.UNINITIALIZED
        self._last_outcome: AuthorizationOutcome | None = None
        self._privacy_divergence = False

    # ── Observers ─────────────────────────────────────────────────────────────

    @property
    def state(self) -> ConsentState:
        return self._state

    @property
    def record(self) -> ConsentRecord:
        return ConsentRecord(
            general_consent=self._record.general_consent,
            effective_permission=self._record.effective_permission,
        )

    @property
    def effective_permission(self) -> bool:
        return self._record.effective_permission

    @property
    def analytics_state(self) -> AnalyticsInitState:
        return self._analytics_state

    @property
    def last_authorization_outcome(self) -> AuthorizationOutcome | None:
        return self._last_outcome

    @property
    def privacy_divergence(self) -> bool:
        """True when permission is granted but the native layer failed to leave privacy mode."""
        return self._privacy_divergence

    @property
    def buffer(self) -> EventBuffer:
        return self._buffer

    @property
    def can_send(self) -> bool:
        return (
            self._record.effective_permission
            and self._analytics_state is AnalyticsInitState.INITIALIZED
        )

    def snapshot(self) -> ConsentSnapshot:
        return ConsentSnapshot(
            state=self._state,
            general_consent=self._record.general_consent,
            effective_permission=self._record.effective_permission,
            analytics_state=self._analytics_state,
            buffered_events=self._buffer.size(),
            privacy_divergence=self._privacy_divergence,
        )

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def load(self) -> ConsentState:
        """Load the persisted record and re-apply it.

        A previous authorization outcome is never trusted: when general
        consent was granted, authorization is evaluated again.
        """
        async with self._lock:
            record, result = await self._store.load()
            self._record = record
            logger.info(
                "consent.loaded",
                general_consent=record.general_consent,
                effective_permission=record.effective_permission,
                persisted=result.ok,
            )
            if not record.general_consent:
                await self._apply_denied(reason="general_consent_absent")
            else:
                await self._evaluate_authorization_locked()
            return self._state

    async def teardown(self) -> None:
        """Release transport, bridge and storage resources."""
        async with self._lock:
            try:
                await self._transport.close()
            except Exception as exc:
                logger.warning("consent.transport_close_failed", error=str(exc))
            await self._bridge.close()
            await self._store.close()
            logger.info("consent.teardown_complete", buffered_events=self._buffer.size())

    # ── UI Entry Points ───────────────────────────────────────────────────────

    async def handle_consent_decision(self, granted: bool) -> ConsentState:
        """Apply a general-consent decision from the consent-management UI.

        Args:
            granted: True if the user accepted.

        Returns:
            The resulting consent state.
        """
        async with self._lock:
            logger.info("consent.decision_received", granted=granted)
            self._record.general_consent = granted
            await self._store.save_general(granted)

            if not granted:
                await self._apply_denied(reason="general_consent_denied")
            else:
                await self._evaluate_authorization_locked()
            return self._state

    async def evaluate_authorization(self) -> ConsentState:
        """Re-run the tracking-authorization step for the current general consent."""
        async with self._lock:
            if not self._record.general_consent:
                logger.info("consent.authorization_skipped", reason="general_consent_denied")
                return self._state
            await self._evaluate_authorization_locked()
            return self._state

    async def track_event(self, name: str, parameters: Mapping[str, Any] | None = None) -> bool:
        """Send an analytics event, or buffer it until consent is final.

        Buffering does not wait for an in-flight reconciliation.

        Returns:
            True if the event reached the transport.
        """
        params = dict(parameters or {})
        if not self.can_send:
            self._buffer.enqueue(name, params)
            return False

        async with self._lock:
            if not self.can_send:
                self._buffer.enqueue(name, params)
                return False

            if not self._buffer.is_empty():
                # Older events are still waiting; queue behind them
                self._buffer.enqueue(name, params)
                await self._flush_locked()
                return self._buffer.is_empty()

            result = await self._log_event(name, params)
            if result.ok:
                EVENTS_DELIVERED.labels(path="direct").inc()
                logger.info("consent.event_sent", event_name=name)
                return True

            logger.warning("consent.direct_delivery_failed", event_name=name, error=result.detail)
            self._buffer.enqueue(name, params)
            return False

    async def flush(self) -> int:
        """Flush buffered events if full consent is in effect.

        Retries transport initialization when an earlier attempt failed.

        Returns:
            Number of events delivered.
        """
        async with self._lock:
            if not self._record.effective_permission:
                logger.debug("consent.flush_skipped", reason="no_permission")
                return 0
            if not await self._ensure_analytics_started():
                return 0
            return await self._flush_locked()

    async def clear_stored_consent(self) -> None:
        """Debug reset: forget both persisted flags and the in-memory decision.

        The native layer is put back into privacy mode. Buffered events are kept.
        """
        async with self._lock:
            await self._store.clear()
            self._record = ConsentRecord()
            self._last_outcome = None
            result = await self._bridge.enter_privacy_mode()
            if result.ok:
                self._privacy_divergence = False
            self._transition(ConsentState.UNKNOWN, reason="cleared")

    # ── Transitions ───────────────────────────────────────────────────────────

    async def _evaluate_authorization_locked(self) -> None:
        # Unresolved authorization counts as not granted
        await self._set_effective(False)
        self._transition(ConsentState.PENDING_AUTHORIZATION)
        try:
            outcome = await self._gate.evaluate()
        except Exception as exc:
            logger.error("consent.authorization_error", error=str(exc), kind=ErrorKind.AUTHORIZATION.value)
            outcome = AuthorizationOutcome.UNAVAILABLE
        self._last_outcome = outcome

        if outcome is AuthorizationOutcome.AUTHORIZED:
            await self._apply_granted()
        else:
            await self._apply_denied(reason=f"authorization_{outcome.value}")

    async def _apply_granted(self) -> None:
        """Enter GRANTED once permission is in effect.

        GRANTED tracks the effective permission. If the transport fails to
        initialize, the state is still GRANTED but `analytics_state` stays
        UNINITIALIZED: events keep buffering and the next `flush()` retries
        initialization. `snapshot()` exposes both.
        """
        await self._set_effective(True)

        result = await self._bridge.exit_privacy_mode()
        self._privacy_divergence = not result.ok
        if not result.ok:
            logger.warning("consent.privacy_divergence", error=result.detail)

        if await self._ensure_analytics_started():
            await self._flush_locked()
        self._transition(ConsentState.GRANTED)

    async def _apply_denied(self, reason: str) -> None:
        await self._set_effective(False)

        result = await self._bridge.enter_privacy_mode()
        if result.ok:
            self._privacy_divergence = False
        else:
            logger.warning("consent.enter_privacy_failed", error=result.detail)
        self._transition(ConsentState.DENIED, reason=reason)

    async def _set_effective(self, permitted: bool) -> None:
        self._record.effective_permission = permitted and self._record.general_consent
        await self._store.save_effective(self._record.effective_permission)

    async def _ensure_analytics_started(self) -> bool:
        if self._analytics_state is AnalyticsInitState.INITIALIZED:
            return True
        try:
            result = await self._transport.initialize(self._options)
        except Exception as exc:
            result = OperationResult.failure(ErrorKind.TRANSPORT, str(exc))
        if not result.ok:
            logger.error("consent.analytics_init_failed", error=result.detail, buffered_events=self._buffer.size())
            return False
        self._analytics_state = AnalyticsInitState.INITIALIZED
        logger.info("consent.analytics_initialized")
        return True

    async def _flush_locked(self) -> int:
        if not self.can_send:
            return 0
        delivered = await self._buffer.flush_into(self._deliver_buffered)
        if delivered:
            EVENTS_DELIVERED.labels(path="flush").inc(delivered)
        return delivered

    async def _deliver_buffered(self, event: BufferedEvent) -> OperationResult:
        if not self._record.effective_permission:
            return OperationResult.failure(ErrorKind.TRANSPORT, "permission withdrawn")
        return await self._log_event(event.name, event.parameters)

    async def _log_event(self, name: str, parameters: Mapping[str, Any]) -> OperationResult:
        try:
            return await self._transport.log_event(name, parameters)
        except Exception as exc:
            return OperationResult.failure(ErrorKind.TRANSPORT, str(exc))

    def _transition(self, state: ConsentState, reason: str | None = None) -> None:
        previous = self._state
        self._state = state
        CONSENT_TRANSITIONS.labels(state=state.value).inc()
        logger.info("consent.state_changed", previous=previous.value, state=state.value, reason=reason)
