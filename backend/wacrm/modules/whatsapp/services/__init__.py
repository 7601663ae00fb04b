"""
WhatsApp Services
"""

from .graph_client import MetaGraphClient
from .conversation_grouper import ConversationThread, group_conversations
from .auto_reply_engine import AutoReplyEngine
from .webhook_dispatcher import WebhookDispatcher, DispatchResult
from .whatsapp_service import WhatsAppService

__all__ = [
    "MetaGraphClient",
    "ConversationThread",
    "group_conversations",
    "AutoReplyEngine",
    "WebhookDispatcher",
    "DispatchResult",
    "WhatsAppService",
]
