"""
Voice Endpoints
Tenant-scoped call surface: outbound dispatch, telephony webhooks,
call results, recordings, analytics and callback requests.

Every path is namespaced by tenant id; an id that belongs to another
tenant is reported exactly like an unknown id.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse, Response, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from callpilot.api.v1.dependencies import (
    get_engine,
    get_resolver,
    get_tenants,
    http_error,
    read_payload,
)
from callpilot.core.exceptions import CallPilotError
from callpilot.domain.models.call_control import RenderedControl
from callpilot.domain.models.conversation import (
    CallbackRequest,
    CallbackStatus,
    Conversation,
    ConversationAnalysis,
)
from callpilot.domain.services.call_session_engine import CallSessionEngine
from callpilot.domain.services.tenant_context import TenantContext
from callpilot.domain.services.webhook_urls import WebhookURLResolver

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/voice/{tenant_id}", tags=["voice"])

RECORDING_MEDIA_TYPE = "audio/mpeg"
RECORDING_CACHE_CONTROL = "private, max-age=3600"
CHUNK_SIZE = 8192


class CamelModel(BaseModel):
    """Response model serialized with camelCase keys"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CallMetadata(CamelModel):
    start_time: datetime
    direction: str
    customer_number: Optional[str] = None


class OutboundCallResponse(CamelModel):
    """Result of dispatching an outbound call"""
    tenant_id: str
    call_id: str
    provider_call_id: Optional[str] = None
    status: str
    metadata: CallMetadata


class TranscriptTurn(CamelModel):
    role: str
    content: str
    timestamp: datetime


class CallResultResponse(CamelModel):
    """Transcript, analysis and metadata of one call"""
    tenant_id: str
    call_id: str
    provider_call_id: Optional[str] = None
    status: str
    state: str
    consent_given: Optional[bool] = None
    agent_name: str
    transcript: List[TranscriptTurn] = Field(default_factory=list)
    rating: Optional[int] = None
    analysis: Optional[ConversationAnalysis] = None
    recording_url: Optional[str] = None
    duration_seconds: Optional[int] = None
    metadata: CallMetadata
    completed_at: Optional[datetime] = None


class CallbackUpdateRequest(BaseModel):
    """Operator update of a callback request"""
    status: CallbackStatus
    notes: Optional[str] = Field(None, max_length=2000)


def _metadata(conversation: Conversation) -> CallMetadata:
    return CallMetadata(
        start_time=conversation.created_at,
        direction=conversation.direction,
        customer_number=conversation.customer_number,
    )


def _control_response(rendered: RenderedControl) -> Response:
    return JSONResponse(content=rendered.body, media_type=rendered.media_type)


def _parse_date(value: Optional[str], name: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {name}, expected YYYY-MM-DD or an ISO timestamp",
        )


# ========== Call start ==========

@router.post("/outbound", response_model=OutboundCallResponse, status_code=status.HTTP_201_CREATED)
async def start_outbound_call(
    tenant_id: str,
    request: Request,
    engine: CallSessionEngine = Depends(get_engine),
):
    """
    Dispatch an outbound call.

    Body: {"contact": {"phone_number": "+1..."}} plus, for calls that do not
    use the tenant's stored config, the telephony/llm/voice/agent sections.
    """
    payload = await read_payload(request)
    contact = payload.get("contact") if isinstance(payload.get("contact"), dict) else {}
    to_number = contact.get("phone_number") or contact.get("phoneNumber") or payload.get("to") or ""

    try:
        conversation = await engine.start_outbound(tenant_id, str(to_number), injected=payload)
    except CallPilotError as e:
        logger.warning(f"Outbound call for tenant {tenant_id} rejected: {type(e).__name__}")
        raise http_error(e)

    return OutboundCallResponse(
        tenant_id=conversation.tenant_id,
        call_id=conversation.id,
        provider_call_id=conversation.provider_call_id,
        status=conversation.status,
        metadata=_metadata(conversation),
    )


# ========== Telephony webhooks ==========

@router.post("/inbound")
async def inbound_call_webhook(
    tenant_id: str,
    request: Request,
    engine: CallSessionEngine = Depends(get_engine),
):
    """Answer webhook for inbound calls. Returns call-control markup."""
    payload = await read_payload(request)
    try:
        rendered = await engine.handle_inbound(tenant_id, payload)
    except CallPilotError as e:
        raise http_error(e)
    return _control_response(rendered)


@router.post("/calls/{call_id}")
async def call_event_webhook(
    tenant_id: str,
    call_id: str,
    request: Request,
    action: Optional[str] = Query(None, description="Step of the call this webhook answers"),
    engine: CallSessionEngine = Depends(get_engine),
):
    """Mid-call webhook (speech result, DTMF, recording). Returns call-control markup."""
    payload = await read_payload(request)
    try:
        rendered = await engine.handle_call_event(tenant_id, call_id, payload, action)
    except CallPilotError as e:
        raise http_error(e)
    return _control_response(rendered)


@router.post("/status")
async def call_status_webhook(
    tenant_id: str,
    request: Request,
    engine: CallSessionEngine = Depends(get_engine),
) -> Dict[str, str]:
    """
    Call-status callback. Always answers 200; failures are logged only,
    since the vendor does not retry usefully.
    """
    try:
        payload = await read_payload(request)
    except HTTPException:
        logger.warning(f"Unreadable status callback for tenant {tenant_id}")
        return {"status": "ok"}

    await engine.handle_status(tenant_id, payload)
    return {"status": "ok"}


# ========== Call results ==========

@router.get("/calls/{call_id}", response_model=CallResultResponse)
async def get_call_result(
    tenant_id: str,
    call_id: str,
    engine: CallSessionEngine = Depends(get_engine),
    resolver: WebhookURLResolver = Depends(get_resolver),
):
    """Transcript, analysis and metadata of a call."""
    try:
        conversation = await engine.get_call_result(tenant_id, call_id)
    except CallPilotError as e:
        raise http_error(e)

    return CallResultResponse(
        tenant_id=conversation.tenant_id,
        call_id=conversation.id,
        provider_call_id=conversation.provider_call_id,
        status=conversation.status,
        state=conversation.state,
        consent_given=conversation.consent_given,
        agent_name=conversation.agent_config.name,
        transcript=[
            TranscriptTurn(role=turn.role, content=turn.content, timestamp=turn.timestamp)
            for turn in conversation.transcript
        ],
        rating=conversation.rating,
        analysis=conversation.analysis,
        recording_url=(
            resolver.recording_url(tenant_id, call_id) if conversation.recording_url else None
        ),
        duration_seconds=conversation.duration_seconds,
        metadata=_metadata(conversation),
        completed_at=conversation.completed_at,
    )


@router.get("/calls/{call_id}/recording")
async def stream_recording(
    tenant_id: str,
    call_id: str,
    engine: CallSessionEngine = Depends(get_engine),
):
    """Proxy the call recording from the telephony provider."""
    try:
        audio = await engine.fetch_recording(tenant_id, call_id)
    except CallPilotError as e:
        raise http_error(e)

    async def audio_generator():
        for i in range(0, len(audio), CHUNK_SIZE):
            yield audio[i:i + CHUNK_SIZE]

    return StreamingResponse(
        audio_generator(),
        media_type=RECORDING_MEDIA_TYPE,
        headers={
            "Cache-Control": RECORDING_CACHE_CONTROL,
            "Content-Disposition": f"inline; filename=recording_{call_id}.mp3",
        },
    )


@router.get("/calls/{call_id}/audio/{clip_id}")
async def get_reply_audio(
    tenant_id: str,
    call_id: str,
    clip_id: str,
    engine: CallSessionEngine = Depends(get_engine),
):
    """Synthesized agent reply played into a live call."""
    try:
        data, media_type = engine.load_audio(tenant_id, call_id, clip_id)
    except CallPilotError as e:
        raise http_error(e)
    return Response(content=data, media_type=media_type)


# ========== Analytics ==========

@router.get("/analytics")
async def get_analytics(
    tenant_id: str,
    start_date: Optional[str] = Query(None, description="Start date (YYYY-MM-DD)"),
    end_date: Optional[str] = Query(None, description="End date (YYYY-MM-DD)"),
    tenants: TenantContext = Depends(get_tenants),
) -> Dict[str, Any]:
    """Aggregate counts and averages for the tenant's calls."""
    start_dt = _parse_date(start_date, "start_date")
    end_dt = _parse_date(end_date, "end_date")
    if end_dt is not None and len(end_date) == 10:
        # A bare date includes the whole day
        end_dt = end_dt.replace(hour=23, minute=59, second=59, microsecond=999999)

    try:
        summary = tenants.store(tenant_id, create=False).analytics(start_dt, end_dt)
    except CallPilotError as e:
        raise http_error(e)

    return {
        "tenant_id": tenant_id,
        "start_date": start_dt.isoformat() if start_dt else None,
        "end_date": end_dt.isoformat() if end_dt else None,
        **summary,
    }


# ========== Callback requests ==========

@router.get("/callbacks", response_model=List[CallbackRequest])
async def list_callback_requests(
    tenant_id: str,
    callback_status: Optional[CallbackStatus] = Query(None, alias="status", description="Filter by status"),
    limit: int = Query(50, ge=1, le=500),
    tenants: TenantContext = Depends(get_tenants),
):
    """Callback requests raised by transfer intents, oldest first."""
    try:
        return tenants.store(tenant_id, create=False).list_callback_requests(status=callback_status, limit=limit)
    except CallPilotError as e:
        raise http_error(e)


@router.patch("/callbacks/{request_id}", response_model=CallbackRequest)
async def update_callback_request(
    tenant_id: str,
    request_id: str,
    update: CallbackUpdateRequest,
    tenants: TenantContext = Depends(get_tenants),
):
    """Move a callback request to scheduled, completed or cancelled."""
    try:
        return tenants.store(tenant_id, create=False).update_callback_status(request_id, update.status, update.notes)
    except CallPilotError as e:
        raise http_error(e)
