"""
WhatsApp Cloud API webhook payloads.

The raw envelope ({object, entry[].changes[].value{metadata, contacts,
messages, statuses}}) is validated leniently and resolved ONCE into typed
events. Handlers downstream only read event attributes:

    MessageEvent      any inbound message
    FlowReplyEvent    interactive nfm_reply (native flow submission)
    OrderEvent        catalog checkout
    StatusEvent       sent / delivered / read / failed callback
"""
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from wacrm.modules.whatsapp.constants import MessageType, MEDIA_MESSAGE_TYPES, WebhookEventKind

logger = logging.getLogger("webhook_events")


class _ProviderModel(BaseModel):
    """Provider objects grow new fields without notice; keep them."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)


# ============================================
# RAW ENVELOPE
# ============================================

class WebhookMetadata(_ProviderModel):
    phone_number_id: Optional[str] = None
    display_phone_number: Optional[str] = None


class WebhookProfile(_ProviderModel):
    name: Optional[str] = None


class WebhookContact(_ProviderModel):
    wa_id: Optional[str] = None
    profile: Optional[WebhookProfile] = None


class WebhookValue(_ProviderModel):
    messaging_product: Optional[str] = None
    metadata: Optional[WebhookMetadata] = None
    contacts: List[WebhookContact] = Field(default_factory=list)
    # Items are resolved one by one so that a single odd message cannot hide
    # the rest of the batch.
    messages: List[Any] = Field(default_factory=list)
    statuses: List[Any] = Field(default_factory=list)


class WebhookChange(_ProviderModel):
    field: Optional[str] = None
    value: WebhookValue = Field(default_factory=WebhookValue)


class WebhookEntry(_ProviderModel):
    id: Optional[str] = None
    changes: List[WebhookChange] = Field(default_factory=list)


class WebhookEnvelope(_ProviderModel):
    object: str
    entry: List[WebhookEntry] = Field(default_factory=list)


# ============================================
# TYPED EVENTS
# ============================================

class AdReferral(_ProviderModel):
    """Click-to-WhatsApp ad attribution attached to the first message."""
    source_url: Optional[str] = None
    source_id: Optional[str] = None
    source_type: Optional[str] = None
    headline: Optional[str] = None
    body: Optional[str] = None
    media_type: Optional[str] = None
    image_url: Optional[str] = None
    video_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    ctwa_clid: Optional[str] = None


class ReferredProduct(_ProviderModel):
    """Catalog product the contact asked about (message context)."""
    catalog_id: Optional[str] = None
    product_retailer_id: str


class OrderItem(_ProviderModel):
    product_retailer_id: str
    quantity: int = 1
    item_price: Optional[float] = None
    currency: Optional[str] = None


class MessageEvent(BaseModel):
    kind: WebhookEventKind = WebhookEventKind.MESSAGE
    phone_number_id: str
    from_number: str
    from_name: Optional[str] = None
    message_id: str
    message_type: MessageType
    provider_type: str
    body: Optional[str] = None
    media_id: Optional[str] = None
    timestamp: datetime
    referral: Optional[AdReferral] = None
    referred_product: Optional[ReferredProduct] = None
    raw: Dict[str, Any] = Field(default_factory=dict)

    @property
    def summary(self) -> str:
        """Body text, or a placeholder naming the provider type."""
        return self.body or f"[{self.provider_type} message]"


class FlowReplyEvent(MessageEvent):
    kind: WebhookEventKind = WebhookEventKind.FLOW_REPLY
    response_json: str = ""
    flow_name: Optional[str] = None


class OrderEvent(MessageEvent):
    kind: WebhookEventKind = WebhookEventKind.ORDER
    catalog_id: Optional[str] = None
    items: List[OrderItem] = Field(default_factory=list)

    @property
    def retailer_ids(self) -> List[str]:
        """Distinct retailer IDs in line-item order."""
        seen = []
        for item in self.items:
            if item.product_retailer_id not in seen:
                seen.append(item.product_retailer_id)
        return seen


class StatusEvent(BaseModel):
    kind: WebhookEventKind = WebhookEventKind.STATUS
    phone_number_id: str
    message_id: str
    status: str
    recipient_id: Optional[str] = None
    timestamp: Optional[datetime] = None
    errors: List[Dict[str, Any]] = Field(default_factory=list)


WebhookEvent = Union[FlowReplyEvent, OrderEvent, MessageEvent, StatusEvent]


# ============================================
# PARSING
# ============================================

def parse_provider_timestamp(value: Any) -> Optional[datetime]:
    """Provider timestamps are unix seconds as strings."""
    if value in (None, ""):
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


def _extract_content(raw: Dict[str, Any], provider_type: str) -> tuple:
    """(body, media_id) for a provider message object."""
    content = raw.get(provider_type) or {}
    if not isinstance(content, dict):
        return None, None

    if provider_type == "text":
        return content.get("body"), None

    if MessageType.from_provider(provider_type) in MEDIA_MESSAGE_TYPES:
        return content.get("caption") or content.get("filename"), content.get("id")

    if provider_type == "location":
        label = ", ".join(p for p in (content.get("name"), content.get("address")) if p)
        if label:
            return label, None
        if content.get("latitude") is not None and content.get("longitude") is not None:
            return f"{content.get('latitude')},{content.get('longitude')}", None
        return None, None

    if provider_type == "interactive":
        for key in ("button_reply", "list_reply"):
            if isinstance(content.get(key), dict):
                return content[key].get("title"), None
        if isinstance(content.get("nfm_reply"), dict):
            return content["nfm_reply"].get("body"), None
        return None, None

    if provider_type == "button":
        return content.get("text"), None

    if provider_type == "order":
        return content.get("text"), None

    if provider_type == "reaction":
        return content.get("emoji"), None

    return None, None


def _message_event(
    raw: Dict[str, Any],
    phone_number_id: str,
    names: Dict[str, str]
) -> MessageEvent:
    """Resolve one provider message object into its typed event."""
    provider_type = raw.get("type") or "unknown"
    from_number = raw.get("from")
    body, media_id = _extract_content(raw, provider_type)

    context = _as_dict(raw.get("context"))
    fields = {
        "phone_number_id": phone_number_id,
        "from_number": from_number,
        "from_name": names.get(from_number),
        "message_id": raw.get("id"),
        "message_type": MessageType.from_provider(provider_type),
        "provider_type": provider_type,
        "body": body,
        "media_id": media_id,
        "timestamp": parse_provider_timestamp(raw.get("timestamp")) or datetime.now(timezone.utc),
        "referral": raw.get("referral"),
        "referred_product": context.get("referred_product"),
        "raw": raw,
    }

    if provider_type == "interactive":
        interactive = _as_dict(raw.get("interactive"))
        if interactive.get("type") == "nfm_reply" or "nfm_reply" in interactive:
            nfm_reply = _as_dict(interactive.get("nfm_reply"))
            response_json = nfm_reply.get("response_json")
            if not isinstance(response_json, str):
                # Some senders deliver the object itself; keep the string contract
                response_json = "" if response_json is None else _dump_json(response_json)
            return FlowReplyEvent(
                **fields,
                response_json=response_json,
                flow_name=nfm_reply.get("name")
            )

    if provider_type == "order":
        order = _as_dict(raw.get("order"))
        return OrderEvent(
            **fields,
            catalog_id=order.get("catalog_id"),
            items=order.get("product_items") or []
        )

    return MessageEvent(**fields)


def _status_event(raw: Dict[str, Any], phone_number_id: str) -> StatusEvent:
    return StatusEvent(
        phone_number_id=phone_number_id,
        message_id=raw.get("id"),
        status=raw.get("status") or "",
        recipient_id=raw.get("recipient_id"),
        timestamp=parse_provider_timestamp(raw.get("timestamp")),
        errors=raw.get("errors") or []
    )


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _dump_json(value: Any) -> str:
    try:
        return json.dumps(value)
    except (TypeError, ValueError):
        return str(value)


def parse_webhook_payload(payload: Dict[str, Any]) -> List[WebhookEvent]:
    """
    Resolve a provider envelope into typed events.

    Every entry, change, message and status is visited in payload order.
    Objects that cannot be resolved (not an object, no ID, no sender, a
    malformed nested field) are logged and skipped one by one.

    Raises:
        ValidationError: if the envelope itself is not a provider envelope
    """
    envelope = WebhookEnvelope.model_validate(payload)
    events: List[WebhookEvent] = []

    for entry in envelope.entry:
        for change in entry.changes:
            value = change.value
            phone_number_id = value.metadata.phone_number_id if value.metadata else None
            if not phone_number_id:
                if value.messages or value.statuses:
                    logger.warning(f"⚠️ Change without metadata.phone_number_id skipped (entry {entry.id})")
                continue

            names = {
                c.wa_id: c.profile.name
                for c in value.contacts
                if c.wa_id and c.profile and c.profile.name
            }

            for raw in value.messages:
                if not isinstance(raw, dict):
                    logger.warning(f"⚠️ Non-object message skipped (entry {entry.id})")
                    continue
                try:
                    events.append(_message_event(raw, phone_number_id, names))
                except (ValidationError, AttributeError, TypeError) as e:
                    logger.warning(f"⚠️ Unparseable message {raw.get('id')} skipped: {e}")

            for raw in value.statuses:
                if not isinstance(raw, dict):
                    logger.warning(f"⚠️ Non-object status skipped (entry {entry.id})")
                    continue
                try:
                    events.append(_status_event(raw, phone_number_id))
                except (ValidationError, AttributeError, TypeError) as e:
                    logger.warning(f"⚠️ Unparseable status {raw.get('id')} skipped: {e}")

    return events
