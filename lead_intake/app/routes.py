from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status

from lead_intake.app.config import Settings
from lead_intake.app.dependencies import IntakeFactory, get_intake_factory, get_settings
from lead_intake.orchestrator.stages import ErrorKind
from lead_intake.schemas.context import ClientContext
from lead_intake.schemas.lead import (
    CooldownResponse,
    DuplicateCheckRequest,
    DuplicateCheckResponse,
    LeadSubmissionRequest,
    LeadSubmissionResponse,
    SessionStartRequest,
    SessionStartResponse,
)
from lead_intake.schemas.tracking import TrackingData

logger = logging.getLogger(__name__)

router = APIRouter()

ERROR_STATUS = {
    ErrorKind.COOLDOWN: status.HTTP_429_TOO_MANY_REQUESTS,
    ErrorKind.VALIDATION: 422,
    ErrorKind.DUPLICATE: status.HTTP_409_CONFLICT,
    ErrorKind.SUBMISSION: status.HTTP_502_BAD_GATEWAY,
}


def _client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    if request.client is not None:
        return request.client.host
    return None


def _resolve_context(context: ClientContext, request: Request) -> ClientContext:
    """Fill the user agent and IP from the request when the caller left them out."""
    updates = {}
    if not context.user_agent:
        updates["user_agent"] = request.headers.get("user-agent")
    if not context.ip_address:
        updates["ip_address"] = _client_ip(request)
    return context.model_copy(update=updates) if updates else context


@router.get("/health", status_code=status.HTTP_200_OK)
def health(settings: Settings = Depends(get_settings)) -> dict:
    return {"app": settings.app_name, "status": "ok"}


@router.post("/api/v1/leads", response_model=LeadSubmissionResponse, status_code=status.HTTP_201_CREATED)
def submit_lead(
    payload: LeadSubmissionRequest,
    request: Request,
    response: Response,
    factory: IntakeFactory = Depends(get_intake_factory),
) -> LeadSubmissionResponse:
    context = _resolve_context(payload.context, request)
    pipeline = factory.pipeline_for(context)
    result = pipeline.submit(payload.lead.model_dump())
    if not result.ok:
        response.status_code = ERROR_STATUS.get(result.error_kind, status.HTTP_502_BAD_GATEWAY)
        logger.info(
            "Lead rejected (%s) for client %s",
            result.error_kind.value if result.error_kind else "unknown",
            context.client_id,
        )
    return LeadSubmissionResponse(
        ok=result.ok,
        lead_id=result.lead_id,
        error_kind=result.error_kind.value if result.error_kind else None,
        message=result.message,
        remaining_seconds=result.remaining_seconds,
        field_errors=result.field_errors,
        matched_fields=result.matched_fields,
    )


@router.get("/api/v1/tracking", response_model=TrackingData)
def tracking(
    request: Request,
    client_id: str = Query(..., min_length=1),
    session_id: str = Query(..., min_length=1),
    refresh: bool = Query(default=False),
    factory: IntakeFactory = Depends(get_intake_factory),
) -> TrackingData:
    context = _resolve_context(ClientContext(client_id=client_id, session_id=session_id), request)
    collector = factory.tracking_for(context)
    return collector.get_tracking_data(context.user_agent, force_refresh=refresh)


@router.get("/api/v1/cooldown", response_model=CooldownResponse)
def cooldown(
    client_id: str = Query(..., min_length=1),
    session_id: str = Query(..., min_length=1),
    window_minutes: Optional[float] = Query(default=None, gt=0),
    settings: Settings = Depends(get_settings),
    factory: IntakeFactory = Depends(get_intake_factory),
) -> CooldownResponse:
    context = ClientContext(client_id=client_id, session_id=session_id)
    window = window_minutes if window_minutes is not None else settings.cooldown_minutes
    cooldown_status = factory.cooldown_for(context).check_cooldown(window)
    return CooldownResponse(
        in_cooldown=cooldown_status.in_cooldown,
        remaining_seconds=cooldown_status.remaining_seconds,
        message=cooldown_status.message,
    )


@router.post("/api/v1/contacts/check", response_model=DuplicateCheckResponse)
def check_contact(
    payload: DuplicateCheckRequest,
    factory: IntakeFactory = Depends(get_intake_factory),
) -> DuplicateCheckResponse:
    guard = factory.guard_for(payload.context)
    result = guard.check_duplicate(
        payload.mobile,
        payload.email,
        check_local=payload.check_local,
        check_remote=payload.check_remote,
    )
    return DuplicateCheckResponse(
        exists=result.exists,
        phone_exists=result.phone_exists,
        email_exists=result.email_exists,
        source=result.source,
        message=result.message,
        success=result.success,
    )


@router.delete("/api/v1/contacts/local", status_code=status.HTTP_200_OK)
def clear_local_contacts(
    client_id: str = Query(..., min_length=1),
    session_id: str = Query(..., min_length=1),
    factory: IntakeFactory = Depends(get_intake_factory),
) -> dict:
    guard = factory.guard_for(ClientContext(client_id=client_id, session_id=session_id))
    cleared = guard.clear_local_submissions()
    logger.info("Local submitted contacts cleared for client %s: %s", client_id, cleared)
    return {"cleared": cleared}


@router.post("/api/v1/session", response_model=SessionStartResponse)
def start_session(
    payload: SessionStartRequest,
    factory: IntakeFactory = Depends(get_intake_factory),
) -> SessionStartResponse:
    session = factory.session_for(payload.context)
    session_id = session.get_or_create_session_id(preferred=payload.context.session_id)
    session.capture_utm_params(payload.landing_url)
    return SessionStartResponse(
        session_id=session_id,
        session_duration_seconds=session.session_duration_seconds(),
        utm_params=session.get_utm_params(),
    )
