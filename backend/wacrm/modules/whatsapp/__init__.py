"""
WhatsApp Module

WhatsApp Business Cloud API ingestion and messaging.
Key features:
- Webhook verification and signed event delivery
- Idempotent message ingestion (dedup on provider message ID)
- Flow submission capture, catalog order and keyword auto-replies
- Ad-attributed lead creation and lead timeline updates
- Conversation inbox grouped by (contact, business number)
"""

from .models.whatsapp_message import WhatsAppMessage
from .models.flow_response import FlowResponse
from .models.auto_reply_rule import AutoReplyRule

__all__ = [
    "WhatsAppMessage",
    "FlowResponse",
    "AutoReplyRule",
]
