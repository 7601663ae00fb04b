"""
WhatsApp API Endpoints
Handles the Meta webhook (verification + event delivery), manual sends and
the conversation inbox.

Two routers:
- webhook_router: GET/POST "", mounted at /whatsapp and /api/whatsapp/webhook
- router:         operator API, mounted at /api/whatsapp
"""
import json
import logging
import hmac
import hashlib
import secrets
from typing import Optional
from fastapi import APIRouter, HTTPException, Depends, Query, Request
from fastapi.responses import PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession

from wacrm.shared.core.config import settings
from wacrm.shared.core.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from wacrm.shared.db.session import get_db
from wacrm.shared.utils.exceptions import EntityNotFoundError, WhatsAppConfigurationError, WhatsAppSendError
from wacrm.shared.utils.http_client import http_client_manager
from wacrm.modules.tenants.repositories.company_repository import CompanyRepository
from wacrm.modules.whatsapp.services.webhook_dispatcher import WebhookDispatcher
from wacrm.modules.whatsapp.services.whatsapp_service import WhatsAppService
from wacrm.modules.whatsapp.schemas.whatsapp_schemas import (
    # Request schemas
    SendMessageRequest,
    MarkReadRequest,
    # Response schemas
    SendMessageResponse,
    MessageResponse,
    MessageListResponse,
    ConversationResponse,
    ConversationListResponse,
    MarkReadResponse,
    FlowResponseItem,
    FlowResponseListResponse,
    SubscriptionResult,
    SubscriptionResultsResponse,
    WhatsAppConfigResponse,
    WhatsAppConfigListResponse,
    WebhookResponse,
)

router = APIRouter()
webhook_router = APIRouter()
logger = logging.getLogger("whatsapp_api")

SIGNATURE_HEADER = "X-Hub-Signature-256"


# ============================================
# WEBHOOK SECURITY
# ============================================

def verify_webhook_signature(raw_body: bytes, signature_header: Optional[str]) -> bool:
    """
    Verify Meta's X-Hub-Signature-256 ("sha256=<hex HMAC of the raw body>").

    Only enforced when WHATSAPP_APP_SECRET is configured.
    """
    app_secret = settings.WHATSAPP_APP_SECRET
    if not app_secret:
        logger.debug("WHATSAPP_APP_SECRET not configured - webhook signature check disabled")
        return True

    if not signature_header or not signature_header.startswith("sha256="):
        logger.warning("Webhook rejected: missing or malformed signature header")
        return False

    expected = hmac.new(app_secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
    provided = signature_header[len("sha256="):]

    # Constant-time comparison to prevent timing attacks
    if not secrets.compare_digest(provided, expected):
        logger.warning("Webhook rejected: signature mismatch")
        return False
    return True


async def _is_known_verify_token(token: str, db: AsyncSession) -> bool:
    if settings.WHATSAPP_VERIFY_TOKEN and secrets.compare_digest(token, settings.WHATSAPP_VERIFY_TOKEN):
        return True
    return await CompanyRepository(db).verify_token_exists(token)


# ============================================
# WEBHOOK ENDPOINTS
# ============================================

@webhook_router.get("", summary="Meta webhook verification handshake")
async def verify_webhook(request: Request, db: AsyncSession = Depends(get_db)):
    """
    Meta calls this once when the webhook URL is registered.

    - hub.mode / hub.verify_token / hub.challenge missing -> 400
    - mode "subscribe" and a known verify token -> 200 with the challenge
    - anything else -> 403
    """
    params = request.query_params
    mode = params.get("hub.mode")
    token = params.get("hub.verify_token")
    challenge = params.get("hub.challenge")

    if not mode or not token:
        logger.warning("Webhook verification failed: missing parameters")
        raise HTTPException(status_code=400, detail="Missing verification parameters")

    if mode == "subscribe" and await _is_known_verify_token(token, db):
        logger.info("✅ WEBHOOK_VERIFIED")
        return PlainTextResponse(challenge or "")

    logger.warning("Webhook verification failed: invalid token")
    raise HTTPException(status_code=403, detail="Verification failed")


@webhook_router.post("", response_model=WebhookResponse, summary="Meta webhook event delivery")
async def receive_webhook(request: Request, db: AsyncSession = Depends(get_db)):
    """
    Handle WhatsApp Cloud API events (messages, statuses, flow replies, orders).

    Security:
    - X-Hub-Signature-256 validation (if WHATSAPP_APP_SECRET configured)

    Recognised envelopes are always acknowledged with 200 so Meta does not
    retry deliveries that failed on our side.
    """
    raw_body = await request.body()

    if not verify_webhook_signature(raw_body, request.headers.get(SIGNATURE_HEADER)):
        raise HTTPException(status_code=401, detail="Invalid webhook signature")

    try:
        payload = json.loads(raw_body)
    except (ValueError, UnicodeDecodeError) as e:
        logger.error(f"Invalid webhook JSON payload: {str(e)}")
        raise HTTPException(status_code=400, detail="Invalid JSON payload")

    if not isinstance(payload, dict) or not payload.get("object"):
        logger.warning("Webhook payload without 'object' ignored")
        raise HTTPException(status_code=404, detail="Not a WhatsApp webhook event")

    try:
        result = await WebhookDispatcher(db).dispatch(payload)
    except Exception as e:
        logger.error(f"❌ Webhook dispatch crashed: {str(e)}")
        return WebhookResponse(success=False, errors=1)

    return WebhookResponse(success=True, **result.to_dict())


# ============================================
# CONFIGURATION ENDPOINT
# ============================================

@router.get("/config", response_model=WhatsAppConfigListResponse, summary="WhatsApp configurations of a company")
async def get_configs(
    company_id: int = Query(..., description="Tenant ID"),
    db: AsyncSession = Depends(get_db)
):
    """Business-account configs (access tokens are never returned)."""
    configs = await WhatsAppService(db).list_configs(company_id)
    return WhatsAppConfigListResponse(
        company_id=company_id,
        configs=[WhatsAppConfigResponse(**c) for c in configs]
    )


@router.get("/config/status", summary="Webhook and transport status")
async def get_config_status():
    return {
        "verify_token_configured": bool(settings.WHATSAPP_VERIFY_TOKEN),
        "signature_check_enabled": bool(settings.WHATSAPP_APP_SECRET),
        "graph_api_version": settings.GRAPH_API_VERSION,
        "http_client": http_client_manager.get_status(),
    }


# ============================================
# SEND ENDPOINT
# ============================================

@router.post("/send", response_model=SendMessageResponse, summary="Send a WhatsApp text message")
async def send_message(
    request: SendMessageRequest,
    company_id: int = Query(..., description="Tenant ID"),
    db: AsyncSession = Depends(get_db)
):
    """
    Send a text message from one of the company's business numbers.

    Errors:
    - 404: no WhatsApp configuration
    - 400: configuration without phone_number_id / access token
    - 502: Graph API rejected the message (provider error in detail)
    """
    service = WhatsAppService(db)
    try:
        result = await service.send_text_message(
            company_id=company_id,
            phone=request.phone,
            message=request.message,
            phone_number_id=request.phone_number_id,
            lead_id=request.lead_id
        )
    except EntityNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except WhatsAppConfigurationError as e:
        raise HTTPException(status_code=400, detail=e.message)
    except WhatsAppSendError as e:
        raise HTTPException(
            status_code=502,
            detail={
                "message": e.message,
                "provider_status": e.status_code,
                "provider_error": e.provider_error,
            }
        )
    return SendMessageResponse(**result)


# ============================================
# MESSAGES & CONVERSATIONS
# ============================================

@router.get("/messages", response_model=MessageListResponse, summary="List WhatsApp messages")
async def list_messages(
    company_id: int = Query(..., description="Tenant ID"),
    phone_number_id: Optional[str] = Query(default=None, description="Filter by business number"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    db: AsyncSession = Depends(get_db)
):
    """Messages newest first."""
    result = await WhatsAppService(db).list_messages(company_id, phone_number_id, page=page, limit=limit)
    return MessageListResponse(
        messages=[MessageResponse.from_row(m) for m in result["messages"]],
        total=result["total"],
        page=result["page"],
        limit=result["limit"]
    )


@router.get("/conversations", response_model=ConversationListResponse, summary="Conversation inbox")
async def list_conversations(
    company_id: int = Query(..., description="Tenant ID"),
    phone_number_id: Optional[str] = Query(default=None, description="Filter by business number"),
    db: AsyncSession = Depends(get_db)
):
    """
    Threads keyed by (contact phone, business number), most recent first.
    Messages inside a thread are in ascending time order. `truncated` is set
    when the newest-messages window left older history out.
    """
    threads, truncated = await WhatsAppService(db).get_conversations(company_id, phone_number_id)
    conversations = [
        ConversationResponse(
            contact_phone=t.contact_phone,
            phone_number_id=t.phone_number_id,
            contact_name=t.contact_name,
            unread_count=t.unread_count,
            last_message=MessageResponse.from_row(t.last_message) if t.last_message else None,
            messages=[MessageResponse.from_row(m) for m in t.messages]
        )
        for t in threads
    ]
    return ConversationListResponse(
        conversations=conversations, total=len(conversations), truncated=truncated
    )


@router.post("/mark-read", response_model=MarkReadResponse, summary="Mark a conversation as read")
async def mark_read(
    request: MarkReadRequest,
    company_id: int = Query(..., description="Tenant ID"),
    db: AsyncSession = Depends(get_db)
):
    try:
        updated = await WhatsAppService(db).mark_conversation_read(
            company_id, request.contact_phone, request.phone_number_id
        )
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))
    return MarkReadResponse(success=True, updated=updated)


# ============================================
# FLOW RESPONSES
# ============================================

@router.get("/flow-responses", response_model=FlowResponseListResponse, summary="Captured flow submissions")
async def list_flow_responses(
    company_id: int = Query(..., description="Tenant ID"),
    flow_id: Optional[str] = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    db: AsyncSession = Depends(get_db)
):
    responses = await WhatsAppService(db).list_flow_responses(company_id, flow_id, page=page, limit=limit)
    return FlowResponseListResponse(
        responses=[FlowResponseItem(**r) for r in responses],
        total=len(responses)
    )


# ============================================
# WEBHOOK SUBSCRIPTION
# ============================================

@router.post("/subscribe", response_model=SubscriptionResultsResponse, summary="Subscribe app to business accounts")
async def subscribe(
    company_id: int = Query(..., description="Tenant ID"),
    db: AsyncSession = Depends(get_db)
):
    """Self-heal: (re)subscribe our app to every business account of the company."""
    try:
        results = await WhatsAppService(db).subscribe_apps(company_id)
    except EntityNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    return SubscriptionResultsResponse(success=True, results=[SubscriptionResult(**r) for r in results])


@router.get("/subscription-status", response_model=SubscriptionResultsResponse, summary="Check app subscription")
async def subscription_status(
    company_id: int = Query(..., description="Tenant ID"),
    db: AsyncSession = Depends(get_db)
):
    try:
        results = await WhatsAppService(db).subscription_status(company_id)
    except EntityNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    return SubscriptionResultsResponse(success=True, results=[SubscriptionResult(**r) for r in results])
