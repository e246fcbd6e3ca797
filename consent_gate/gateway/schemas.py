"""consent-gate – Gateway Schemas.

Request/response models for the consent debug surface.
"""

from typing import Any

from pydantic import BaseModel, Field


class ConsentDecision(BaseModel):
    """Decision reported by the consent-management UI."""

    granted: bool = Field(..., description="True if the user accepted general consent")


class TrackEventRequest(BaseModel):
    """Analytics event submitted by the app."""

    name: str = Field(..., min_length=1, description="Event name, e.g. 'purchase'")
    parameters: dict[str, Any] = Field(default_factory=dict, description="Event parameters")


class ConsentStatus(BaseModel):
    """Current consent state as shown in the status panel."""

    state: str
    general_consent: bool
    effective_permission: bool
    analytics_state: str
    buffered_events: int
    privacy_divergence: bool


class TrackEventResponse(BaseModel):
    sent: bool
    buffered_events: int


class FlushResponse(BaseModel):
    delivered: int
    buffered_events: int
