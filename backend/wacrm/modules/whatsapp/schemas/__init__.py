"""
WhatsApp Schemas
"""

from .webhook_events import (
    AdReferral,
    ReferredProduct,
    OrderItem,
    MessageEvent,
    FlowReplyEvent,
    OrderEvent,
    StatusEvent,
    WebhookEvent,
    parse_webhook_payload,
)

__all__ = [
    "AdReferral",
    "ReferredProduct",
    "OrderItem",
    "MessageEvent",
    "FlowReplyEvent",
    "OrderEvent",
    "StatusEvent",
    "WebhookEvent",
    "parse_webhook_payload",
]
