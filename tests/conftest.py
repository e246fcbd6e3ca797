"""consent-gate – Pytest Configuration.

Shared fakes and fixtures for all tests. No network, no native layer.
"""

import os

os.environ["ENVIRONMENT"] = "testing"
os.environ["STORAGE_BACKEND"] = "memory"

from typing import Any, Mapping

import pytest

from consent_gate.core.coordinator import ConsentCoordinator
from consent_gate.core.errors import ErrorKind, OperationResult
from consent_gate.core.models import TrackingStatus
from consent_gate.integrations.analytics import AnalyticsOptions
from consent_gate.integrations.privacy_bridge import PrivacyBridge
from consent_gate.integrations.tracking_gate import (
    NoPromptAuthorizationGate,
    PromptingAuthorizationGate,
    TrackingAuthorizationGate,
)
from consent_gate.memory.buffer import EventBuffer
from consent_gate.memory.store import ConsentStore, InMemoryKeyValueStore


class RecordingChannel:
    """Method channel that records invocations and can be told to fail."""

    def __init__(self, failing: set[str] | None = None) -> None:
        self.calls: list[str] = []
        self.failing = failing or set()
        self.closed = False

    async def invoke_method(self, method: str) -> None:
        self.calls.append(method)
        if method in self.failing:
            raise RuntimeError(f"{method} failed")

    async def close(self) -> None:
        self.closed = True

    def count(self, method: str) -> int:
        return self.calls.count(method)


class FakeTransport:
    """Analytics transport that records delivered events."""

    def __init__(self, fail_init: bool = False, fail_events: set[str] | None = None) -> None:
        self.fail_init = fail_init
        self.fail_events = fail_events or set()
        self.init_calls = 0
        self.sent: list[tuple[str, dict[str, Any]]] = []
        self.closed = False

    async def initialize(self, options: AnalyticsOptions) -> OperationResult:
        self.init_calls += 1
        if self.fail_init:
            return OperationResult.failure(ErrorKind.TRANSPORT, "init failed")
        return OperationResult.success()

    async def log_event(self, name: str, parameters: Mapping[str, Any]) -> OperationResult:
        if name in self.fail_events:
            return OperationResult.failure(ErrorKind.TRANSPORT, f"{name} rejected")
        self.sent.append((name, dict(parameters)))
        return OperationResult.success()

    async def close(self) -> None:
        self.closed = True

    @property
    def sent_names(self) -> list[str]:
        return [name for name, _ in self.sent]


class StaticAuthorizer:
    """OS authorization API answering from a scripted list of statuses."""

    def __init__(self, *statuses: TrackingStatus | Exception) -> None:
        self._statuses = list(statuses) or [TrackingStatus.AUTHORIZED]
        self.requests = 0

    async def request_authorization(self) -> TrackingStatus:
        self.requests += 1
        index = min(self.requests - 1, len(self._statuses) - 1)
        status = self._statuses[index]
        if isinstance(status, Exception):
            raise status
        return status


class FailingKeyValueStore(InMemoryKeyValueStore):
    async def get(self, key: str) -> bool | None:
        raise OSError("disk unavailable")

    async def set(self, key: str, value: bool) -> None:
        raise OSError("disk unavailable")


def make_coordinator(
    gate: TrackingAuthorizationGate | None = None,
    *,
    backend: InMemoryKeyValueStore | None = None,
    channel: RecordingChannel | None = None,
    transport: FakeTransport | None = None,
    buffer: EventBuffer | None = None,
) -> ConsentCoordinator:
    return ConsentCoordinator(
        store=ConsentStore(backend if backend is not None else InMemoryKeyValueStore()),
        bridge=PrivacyBridge(channel if channel is not None else RecordingChannel()),
        gate=gate or NoPromptAuthorizationGate(),
        transport=transport if transport is not None else FakeTransport(),
        options=AnalyticsOptions(dev_key="test-dev-key", app_id="com.example.app"),
        buffer=buffer,
    )


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def backend() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def android_coordinator(channel, transport, backend) -> ConsentCoordinator:
    """Coordinator on a platform without a tracking prompt."""
    return make_coordinator(NoPromptAuthorizationGate(), backend=backend, channel=channel, transport=transport)


@pytest.fixture
def authorizer() -> StaticAuthorizer:
    return StaticAuthorizer(TrackingStatus.AUTHORIZED)


@pytest.fixture
def ios_coordinator(channel, transport, backend, authorizer) -> ConsentCoordinator:
    """Coordinator on a platform with a mandatory tracking prompt."""
    return make_coordinator(
        PromptingAuthorizationGate(authorizer), backend=backend, channel=channel, transport=transport
    )
