"""consent-gate – Consent Router.

HTTP surface for the UI entry points: decision, event tracking, flush,
debug reset and status.
"""

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request

from consent_gate.core.coordinator import ConsentCoordinator
from consent_gate.gateway.schemas import (
    ConsentDecision,
    ConsentStatus,
    FlushResponse,
    TrackEventRequest,
    TrackEventResponse,
)

router = APIRouter(prefix="/consent", tags=["consent"])
logger = structlog.get_logger()


def get_coordinator(request: Request) -> ConsentCoordinator:
    coordinator = getattr(request.app.state, "coordinator", None)
    if coordinator is None:
        raise HTTPException(status_code=503, detail="Consent coordinator not ready")
    return coordinator


def _status(coordinator: ConsentCoordinator) -> ConsentStatus:
    return ConsentStatus(**coordinator.snapshot().to_dict())


@router.get("/status", response_model=ConsentStatus)
async def consent_status(coordinator: ConsentCoordinator = Depends(get_coordinator)) -> ConsentStatus:
    return _status(coordinator)


@router.post("/decision", response_model=ConsentStatus)
async def consent_decision(
    payload: ConsentDecision,
    coordinator: ConsentCoordinator = Depends(get_coordinator),
) -> ConsentStatus:
    """Apply a general-consent decision and return the reconciled state."""
    await coordinator.handle_consent_decision(payload.granted)
    return _status(coordinator)


@router.post("/events", response_model=TrackEventResponse)
async def track_event(
    payload: TrackEventRequest,
    coordinator: ConsentCoordinator = Depends(get_coordinator),
) -> TrackEventResponse:
    sent = await coordinator.track_event(payload.name, payload.parameters)
    return TrackEventResponse(sent=sent, buffered_events=coordinator.buffer.size())


@router.post("/flush", response_model=FlushResponse)
async def flush_events(coordinator: ConsentCoordinator = Depends(get_coordinator)) -> FlushResponse:
    delivered = await coordinator.flush()
    return FlushResponse(delivered=delivered, buffered_events=coordinator.buffer.size())


@router.delete("", response_model=ConsentStatus)
async def clear_consent(coordinator: ConsentCoordinator = Depends(get_coordinator)) -> ConsentStatus:
    """Debug reset of the stored consent."""
    await coordinator.clear_stored_consent()
    logger.info("gateway.consent_cleared")
    return _status(coordinator)
