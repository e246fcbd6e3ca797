"""consent-gate – Tracking Authorization Gate.

Platforms with a mandatory OS tracking prompt get the prompting gate; all
others get a gate that always authorizes. The variant is picked once at
construction time.
"""

import sys
from abc import ABC, abstractmethod
from typing import Protocol

import structlog

from consent_gate.core.models import AuthorizationOutcome, Platform, TrackingStatus

logger = structlog.get_logger()

PROMPTING_PLATFORMS = frozenset({Platform.IOS})


class TrackingAuthorizer(Protocol):
    """OS tracking-authorization API.

    Shows the system dialog if the OS has not cached a final decision,
    otherwise returns the cached status without prompting.
    """

    async def request_authorization(self) -> TrackingStatus: ...


class TrackingAuthorizationGate(ABC):
    """Maps the platform's tracking authorization to an AuthorizationOutcome."""

    mandatory: bool = False

    @abstractmethod
    async def evaluate(self) -> AuthorizationOutcome:
        """Resolve the authorization outcome for this evaluation."""


class NoPromptAuthorizationGate(TrackingAuthorizationGate):
    """Platforms without a tracking prompt: always authorized."""

    mandatory = False

    async def evaluate(self) -> AuthorizationOutcome:
        return AuthorizationOutcome.AUTHORIZED


class PromptingAuthorizationGate(TrackingAuthorizationGate):
    """Platforms with a mandatory OS prompt.

    Only TrackingStatus.AUTHORIZED authorizes. Restricted and undetermined
    statuses count as denial; a failing OS call yields UNAVAILABLE.
    """

    mandatory = True

    def __init__(self, authorizer: TrackingAuthorizer) -> None:
        self._authorizer = authorizer

    async def evaluate(self) -> AuthorizationOutcome:
        try:
            status = await self._authorizer.request_authorization()
        except Exception as exc:
            logger.error("tracking_gate.request_failed", error=str(exc))
            return AuthorizationOutcome.UNAVAILABLE

        outcome = (
            AuthorizationOutcome.AUTHORIZED
            if status == TrackingStatus.AUTHORIZED
            else AuthorizationOutcome.DENIED
        )
        logger.info("tracking_gate.evaluated", status=str(getattr(status, "value", status)), outcome=outcome.value)
        return outcome


def detect_platform(override: str | None = None) -> Platform:
    """Resolve the host platform.

    Args:
        override: 'ios', 'android', 'other' or 'auto'/None to use sys.platform.
    """
    if override and override.lower() != "auto":
        try:
            return Platform(override.lower())
        except ValueError:
            logger.warning("tracking_gate.unknown_platform_override", value=override)
            return Platform.OTHER

    if sys.platform == "ios":
        return Platform.IOS
    if sys.platform == "android":
        return Platform.ANDROID
    return Platform.OTHER


def select_authorization_gate(
    platform: Platform,
    authorizer: TrackingAuthorizer | None = None,
) -> TrackingAuthorizationGate:
    """Pick the gate variant for a platform.

    Raises:
        ValueError: A prompting platform was selected without an authorizer.
    """
    if platform in PROMPTING_PLATFORMS:
        if authorizer is None:
            raise ValueError(f"Platform '{platform.value}' requires a tracking authorizer")
        return PromptingAuthorizationGate(authorizer)
    return NoPromptAuthorizationGate()
