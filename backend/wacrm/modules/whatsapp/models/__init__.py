"""
WhatsApp Models

Exports all ORM models for the WhatsApp module.
"""

from .whatsapp_message import WhatsAppMessage
from .flow_response import FlowResponse
from .auto_reply_rule import AutoReplyRule

__all__ = [
    "WhatsAppMessage",
    "FlowResponse",
    "AutoReplyRule",
]
