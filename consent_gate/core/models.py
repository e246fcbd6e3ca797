"""consent-gate – Domain Models.

Consent record, buffered events and the enums driving the reconciliation
state machine.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class ConsentState(str, Enum):
    """Reconciliation states of the ConsentCoordinator."""

    UNKNOWN = "unknown"
    DENIED = "denied"
    PENDING_AUTHORIZATION = "pending_authorization"
    GRANTED = "granted"


class AnalyticsInitState(str, Enum):
    """Whether the analytics transport has been started in this process."""

    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"


class AuthorizationOutcome(str, Enum):
    """Result of a tracking-authorization evaluation."""

    AUTHORIZED = "authorized"
    DENIED = "denied"
    UNAVAILABLE = "unavailable"


class TrackingStatus(str, Enum):
    """Raw answer of the OS tracking-authorization API."""

    AUTHORIZED = "authorized"
    DENIED = "denied"
    RESTRICTED = "restricted"
    NOT_DETERMINED = "notDetermined"


class Platform(str, Enum):
    """Host platforms, as far as the authorization prompt is concerned."""

    IOS = "ios"
    ANDROID = "android"
    OTHER = "other"


@dataclass
class ConsentRecord:
    """Persisted consent decision.

    effective_permission may never exceed general_consent.
    """

    general_consent: bool = False
    effective_permission: bool = False

    def normalized(self) -> "ConsentRecord":
        """Return a copy that satisfies the invariant, failing closed."""
        return ConsentRecord(
            general_consent=self.general_consent,
            effective_permission=self.effective_permission and self.general_consent,
        )


@dataclass
class BufferedEvent:
    """An analytics event held back until consent is finalized."""

    name: str
    parameters: dict[str, Any]
    scrubbed: bool = False
    enqueued_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class ConsentSnapshot:
    """Read-only view of the coordinator for status displays."""

    state: ConsentState
    general_consent: bool
    effective_permission: bool
    analytics_state: AnalyticsInitState
    buffered_events: int
    privacy_divergence: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "general_consent": self.general_consent,
            "effective_permission": self.effective_permission,
            "analytics_state": self.analytics_state.value,
            "buffered_events": self.buffered_events,
            "privacy_divergence": self.privacy_divergence,
        }
