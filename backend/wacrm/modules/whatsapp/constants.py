"""
WhatsApp Constants
Centralized enums for the WhatsApp module.

Enums inherit from str so they can be written to the database and returned
in JSON without .value conversion.
"""
from enum import Enum


class MessageDirection(str, Enum):
    """Direction of a WhatsApp message."""
    INCOMING = "incoming"  # Contact sent it
    OUTGOING = "outgoing"  # We sent it


class MessageStatus(str, Enum):
    """
    Message status.

    Incoming:  RECEIVED → READ → REPLIED
    Outgoing:  PENDING → SENT → DELIVERED → READ
                    ↘ FAILED
    """
    RECEIVED = "received"
    READ = "read"
    REPLIED = "replied"
    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"

    @classmethod
    def is_unread(cls, status: str) -> bool:
        """An incoming message is unread until it is read or replied to."""
        return getattr(status, "value", status) not in HANDLED_STATUSES


# Incoming statuses that no longer count as unread
HANDLED_STATUSES = frozenset({
    MessageStatus.READ.value,
    MessageStatus.REPLIED.value,
})

# Status values a provider status webhook may set
PROVIDER_STATUS_UPDATES = frozenset({
    MessageStatus.SENT.value,
    MessageStatus.DELIVERED.value,
    MessageStatus.READ.value,
    MessageStatus.FAILED.value,
})


class MessageType(str, Enum):
    """Stored content type. Provider types outside this list become UNKNOWN."""
    TEXT = "text"
    IMAGE = "image"
    DOCUMENT = "document"
    AUDIO = "audio"
    VIDEO = "video"
    STICKER = "sticker"
    LOCATION = "location"
    CONTACTS = "contacts"
    ORDER = "order"
    INTERACTIVE = "interactive"
    UNKNOWN = "unknown"

    @classmethod
    def from_provider(cls, value: str) -> "MessageType":
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


MEDIA_MESSAGE_TYPES = frozenset({
    MessageType.IMAGE,
    MessageType.DOCUMENT,
    MessageType.AUDIO,
    MessageType.VIDEO,
    MessageType.STICKER,
})


class FlowResponseStatus(str, Enum):
    DRAFT = "draft"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ERROR = "error"


# Keys of a flow's response_json that correlate the reply, not user answers
FLOW_INTERNAL_KEYS = frozenset({"flow_token", "flow_id"})


class AutoReplyMatchType(str, Enum):
    EXACT = "exact"
    CONTAINS = "contains"


class AutoReplyResponseType(str, Enum):
    TEXT = "text"
    PRODUCT = "product"
    ALL_PRODUCTS_PRICES = "all_products_prices"
    FLOW = "flow"


class AutoReplyTrigger(str, Enum):
    """What caused an auto-reply (stored in the outbound message metadata)."""
    REFERRED_PRODUCT = "referred_product"
    ORDER = "order"
    KEYWORD = "keyword"


class WebhookEventKind(str, Enum):
    """Typed event kinds produced from a provider envelope."""
    MESSAGE = "message"
    FLOW_REPLY = "flow_reply"
    ORDER = "order"
    STATUS = "status"
