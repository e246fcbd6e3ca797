"""consent-gate – Coordinator Wiring.

Builds a ConsentCoordinator from Settings. The caller owns the result and is
responsible for `load()` and `teardown()`.
"""

import structlog

from config.settings import Settings
from consent_gate.core.coordinator import ConsentCoordinator
from consent_gate.integrations.analytics import AnalyticsOptions, AnalyticsTransport, HttpAnalyticsTransport
from consent_gate.integrations.native_channel import HttpMethodChannel, MethodChannel
from consent_gate.integrations.pii_filter import PIIFilter
from consent_gate.integrations.privacy_bridge import PrivacyBridge
from consent_gate.integrations.tracking_gate import (
    TrackingAuthorizer,
    detect_platform,
    select_authorization_gate,
)
from consent_gate.memory.buffer import EventBuffer
from consent_gate.memory.store import (
    ConsentStore,
    InMemoryKeyValueStore,
    KeyValueStore,
    RedisKeyValueStore,
    SQLiteKeyValueStore,
)

logger = structlog.get_logger()


async def open_backend(settings: Settings) -> KeyValueStore:
    """Open the configured storage backend.

    Falls back to an in-memory store when the backend cannot be opened, so
    the app keeps running with default (denied) consent.
    """
    backend_name = settings.storage_backend.lower()
    backend: SQLiteKeyValueStore | RedisKeyValueStore
    if backend_name == "sqlite":
        backend = SQLiteKeyValueStore(settings.storage_path)
    elif backend_name == "redis":
        backend = RedisKeyValueStore(settings.redis_url)
    else:
        if backend_name != "memory":
            logger.warning("factory.unknown_storage_backend", backend=backend_name)
        return InMemoryKeyValueStore()

    try:
        if isinstance(backend, SQLiteKeyValueStore):
            await backend.init()
        else:
            await backend.connect()
    except Exception as exc:
        logger.error("factory.storage_unavailable", backend=backend_name, error=str(exc))
        await close_quietly(backend)
        return InMemoryKeyValueStore()
    return backend


async def close_quietly(backend: KeyValueStore) -> None:
    """Release a backend that failed to open."""
    try:
        await backend.close()
    except Exception as exc:
        logger.warning("factory.storage_close_failed", error=str(exc))


async def build_coordinator(
    settings: Settings,
    authorizer: TrackingAuthorizer | None = None,
    *,
    backend: KeyValueStore | None = None,
    channel: MethodChannel | None = None,
    transport: AnalyticsTransport | None = None,
) -> ConsentCoordinator:
    """Wire a coordinator for the detected platform.

    Raises:
        ValueError: The platform needs a tracking prompt but no authorizer was given.
    """
    platform = detect_platform(settings.platform)
    gate = select_authorization_gate(platform, authorizer)

    if backend is None:
        backend = await open_backend(settings)
    if channel is None:
        channel = HttpMethodChannel(settings.native_bridge_url, timeout=settings.http_timeout_seconds)
    if transport is None:
        transport = HttpAnalyticsTransport(settings.analytics_endpoint_url, timeout=settings.http_timeout_seconds)

    store = ConsentStore(
        backend,
        general_key=settings.general_consent_key,
        effective_key=settings.effective_permission_key,
    )
    bridge = PrivacyBridge(channel)
    options = AnalyticsOptions(
        dev_key=settings.analytics_dev_key,
        app_id=settings.analytics_app_id,
        show_debug=settings.analytics_show_debug,
    )
    buffer = EventBuffer(PIIFilter(settings.pii_key_list))

    logger.info(
        "factory.coordinator_built",
        platform=platform.value,
        mandatory_prompt=gate.mandatory,
        storage=settings.storage_backend,
    )
    return ConsentCoordinator(
        store=store,
        bridge=bridge,
        gate=gate,
        transport=transport,
        options=options,
        buffer=buffer,
    )
