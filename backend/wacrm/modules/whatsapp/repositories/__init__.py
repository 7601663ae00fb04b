"""
WhatsApp Repositories
"""

from .whatsapp_message_repository import WhatsAppMessageRepository
from .flow_response_repository import FlowResponseRepository
from .auto_reply_rule_repository import AutoReplyRuleRepository

__all__ = [
    "WhatsAppMessageRepository",
    "FlowResponseRepository",
    "AutoReplyRuleRepository",
]
