"""
WhatsApp Service
High-level business logic behind the operator-facing WhatsApp API.

Orchestrates:
- Manual text sends (phone normalization, config choice, outbound log)
- Message listing and the conversation inbox
- Mark-as-read
- Flow response listing
- Webhook subscription of the company's business accounts
"""
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from wacrm.modules.leads.repositories.lead_repository import LeadRepository
from wacrm.modules.tenants.repositories.company_repository import CompanyRepository
from wacrm.modules.whatsapp.constants import MessageStatus, MessageType
from wacrm.modules.whatsapp.repositories.flow_response_repository import FlowResponseRepository
from wacrm.modules.whatsapp.repositories.whatsapp_message_repository import WhatsAppMessageRepository
from wacrm.modules.whatsapp.services.conversation_grouper import ConversationThread, group_conversations
from wacrm.modules.whatsapp.services.graph_client import MetaGraphClient
from wacrm.shared.core.constants import DEFAULT_PAGE_SIZE, MAX_CONVERSATION_MESSAGES
from wacrm.shared.utils.exceptions import EntityNotFoundError, WhatsAppConfigurationError, WhatsAppSendError
from wacrm.shared.utils.phone_utils import normalize_phone_number

logger = logging.getLogger("whatsapp_service")


class WhatsAppService:
    """
    Service for operator WhatsApp operations of one company.

    Provides:
    - Send a text message
    - List messages / conversations
    - Mark a conversation read
    - List flow responses
    - Subscribe business accounts to webhooks / check subscription
    """

    def __init__(
        self,
        db: AsyncSession,
        client_factory: Callable[[Dict[str, Any]], MetaGraphClient] = MetaGraphClient.from_config
    ):
        self.db = db
        self.company_repo = CompanyRepository(db)
        self.message_repo = WhatsAppMessageRepository(db)
        self.lead_repo = LeadRepository(db)
        self.flow_repo = FlowResponseRepository(db)
        self.client_factory = client_factory

    # ============================================
    # CONFIGURATION
    # ============================================

    async def resolve_config(self, company_id: int, phone_number_id: Optional[str] = None) -> Dict[str, Any]:
        """
        The config to send from: the given business number, else the company's
        first enabled one.

        Raises:
            EntityNotFoundError: no such config for the company
            WhatsAppConfigurationError: config unusable for sending
        """
        if phone_number_id:
            config = await self.company_repo.get_config_by_phone_number_id(phone_number_id)
            if not config or config.get("company_id") != company_id:
                raise EntityNotFoundError("WhatsAppConfig", phone_number_id)
        else:
            config = await self.company_repo.get_default_config(company_id)
            if not config:
                raise EntityNotFoundError("WhatsAppConfig", f"company:{company_id}")

        if not config.get("phone_number_id") or not config.get("access_token"):
            raise WhatsAppConfigurationError(
                "Invalid WhatsApp configuration: phone_number_id and access_token are required",
                phone_number_id=config.get("phone_number_id")
            )
        return config

    async def list_configs(self, company_id: int) -> List[Dict[str, Any]]:
        """Configs without their access tokens."""
        configs = await self.company_repo.get_configs_for_company(company_id)
        return [
            {
                "id": c["id"],
                "name": c.get("name"),
                "phone_number_id": c["phone_number_id"],
                "business_account_id": c.get("business_account_id"),
                "catalog_id": c.get("catalog_id"),
                "is_enabled": bool(c.get("is_enabled")),
                "has_access_token": bool(c.get("access_token")),
            }
            for c in configs
        ]

    # ============================================
    # SEND
    # ============================================

    async def send_text_message(
        self,
        company_id: int,
        phone: str,
        message: str,
        phone_number_id: Optional[str] = None,
        lead_id: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        Send a text message typed by an operator.

        The provider call happens outside any transaction; the outbound row and
        the lead bump are written together afterwards.

        Raises:
            EntityNotFoundError: no config
            WhatsAppConfigurationError: config unusable for sending
            WhatsAppSendError: provider rejected the message
        """
        config = await self.resolve_config(company_id, phone_number_id)
        to = normalize_phone_number(phone)

        client = self.client_factory(config)
        send_result = await client.send_text(to, message)

        if not send_result.get("success"):
            raise WhatsAppSendError(
                "Failed to send message",
                status_code=send_result.get("status_code"),
                provider_error=send_result.get("error")
            )

        message_id = send_result.get("message_id") or f"sent-{int(datetime.now(timezone.utc).timestamp() * 1000)}"

        # TRANSACTION: outbound log + lead bump
        try:
            async with self.db.begin_nested():
                stored = await self.message_repo.create_outgoing(
                    message_id=message_id,
                    phone_number_id=config["phone_number_id"],
                    company_id=company_id,
                    to_number=to,
                    body=message,
                    status=MessageStatus.SENT.value,
                    message_type=MessageType.TEXT.value,
                    provider_metadata=send_result.get("response") or {}
                )
                await self.message_repo.mark_replied(company_id, to, config["phone_number_id"])
                if lead_id:
                    await self.lead_repo.touch_last_interaction(lead_id, last_message=message)
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            # The message went out; only the log is missing
            logger.error(f"❌ Sent {message_id} to {to} but failed to log it: {str(e)}")
            raise

        logger.info(f"📤 Message {message_id} sent to {to} from {config['phone_number_id']}")
        return {
            "success": True,
            "message_id": stored["message_id"],
            "to": to,
            "phone_number_id": config["phone_number_id"],
            "status": stored["status"],
        }

    # ============================================
    # MESSAGES & INBOX
    # ============================================

    async def list_messages(
        self,
        company_id: int,
        phone_number_id: Optional[str] = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE
    ) -> Dict[str, Any]:
        """Paginated messages, newest first."""
        skip = (page - 1) * limit
        messages = await self.message_repo.list_messages(company_id, phone_number_id, skip=skip, limit=limit)
        total = await self.message_repo.count_messages(company_id, phone_number_id)
        return {"messages": messages, "total": total, "page": page, "limit": limit}

    async def get_conversations(
        self,
        company_id: int,
        phone_number_id: Optional[str] = None
    ) -> Tuple[List[ConversationThread], bool]:
        """
        Inbox threads plus a truncated flag.

        Only the newest MAX_CONVERSATION_MESSAGES messages are grouped; the flag
        is True when older ones were left out, so unread counts and the thread
        list cover that window only. Lead names fill in for contacts that never
        sent a profile name.
        """
        messages = await self.message_repo.list_for_inbox(
            company_id, phone_number_id, limit=MAX_CONVERSATION_MESSAGES + 1
        )
        truncated = len(messages) > MAX_CONVERSATION_MESSAGES
        if truncated:
            logger.warning(f"⚠️ Inbox for company {company_id} truncated to {MAX_CONVERSATION_MESSAGES} messages")
            messages = messages[:MAX_CONVERSATION_MESSAGES]
        phones = {m.get("from_number") for m in messages} | {m.get("to_number") for m in messages}
        lead_names = await self.lead_repo.get_names_by_phones(company_id, phones)
        return group_conversations(messages, lead_names), truncated

    async def mark_conversation_read(
        self,
        company_id: int,
        contact_phone: str,
        phone_number_id: Optional[str] = None
    ) -> int:
        try:
            async with self.db.begin_nested():
                updated = await self.message_repo.mark_conversation_read(company_id, contact_phone, phone_number_id)
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.error(f"❌ Mark read failed for {contact_phone}: {str(e)}")
            raise
        return updated

    async def list_flow_responses(
        self,
        company_id: int,
        flow_id: Optional[str] = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE
    ) -> List[dict]:
        return await self.flow_repo.list_for_company(company_id, flow_id, skip=(page - 1) * limit, limit=limit)

    # ============================================
    # WEBHOOK SUBSCRIPTION
    # ============================================

    async def subscribe_apps(self, company_id: int) -> List[Dict[str, Any]]:
        """POST subscribed_apps for every config that has credentials."""
        configs = await self._require_configs(company_id)
        results = []
        for config in configs:
            if not (config.get("business_account_id") and config.get("access_token")):
                continue
            outcome = await self.client_factory(config).subscribe_app()
            data = outcome.get("data") or {}
            results.append({
                "name": config.get("name"),
                "business_account_id": config.get("business_account_id"),
                "phone_number_id": config.get("phone_number_id"),
                "success": bool(outcome.get("success") and data.get("success", True)),
                "error": outcome.get("error"),
            })
        return results

    async def subscription_status(self, company_id: int) -> List[Dict[str, Any]]:
        """GET subscribed_apps for every config."""
        configs = await self._require_configs(company_id)
        results = []
        for config in configs:
            base = {
                "name": config.get("name"),
                "business_account_id": config.get("business_account_id"),
                "phone_number_id": config.get("phone_number_id"),
                "is_enabled": bool(config.get("is_enabled")),
            }
            if not (config.get("business_account_id") and config.get("access_token")):
                results.append({
                    **base,
                    "success": False,
                    "is_subscribed": False,
                    "error": "Missing business_account_id or access_token"
                })
                continue

            outcome = await self.client_factory(config).get_subscribed_apps()
            apps = (outcome.get("data") or {}).get("data") or []
            results.append({
                **base,
                "success": bool(outcome.get("success")),
                "is_subscribed": len(apps) > 0,
                "subscription_data": apps,
                "error": outcome.get("error"),
            })
        return results

    async def _require_configs(self, company_id: int) -> List[Dict[str, Any]]:
        configs = await self.company_repo.get_configs_for_company(company_id)
        if not configs:
            raise EntityNotFoundError("WhatsAppConfig", f"company:{company_id}")
        return configs
