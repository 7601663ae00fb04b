"""
Webhook Dispatcher
Single entry point for WhatsApp Cloud API webhook deliveries.

For each inbound message:
    1. dedup on the provider message ID (redeliveries stop here)
    2. resolve the tenant from metadata.phone_number_id
    3. persist the message (INSERT ... ON CONFLICT DO NOTHING)
    4. run the subtype steps in a fixed order:
         flow capture -> referred product reply -> order replies
         -> keyword rules -> lead upsert
For each status callback: update the stored message's status.

TRANSACTION: the message write and every step run in their own savepoint and
are committed on their own. A failing step is logged and rolled back without
undoing the inbound message or the steps before it.

Nothing raised here reaches the provider: the endpoint always acknowledges.
"""
import logging
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from wacrm.modules.catalog.repositories.product_repository import ProductRepository
from wacrm.modules.leads.constants import LeadStage, LeadStatus
from wacrm.modules.leads.repositories.lead_repository import LeadRepository
from wacrm.modules.tenants.repositories.company_repository import CompanyRepository
from wacrm.modules.whatsapp.constants import PROVIDER_STATUS_UPDATES, WebhookEventKind
from wacrm.modules.whatsapp.repositories.flow_response_repository import FlowResponseRepository
from wacrm.modules.whatsapp.repositories.whatsapp_message_repository import WhatsAppMessageRepository
from wacrm.modules.whatsapp.schemas.webhook_events import (
    FlowReplyEvent,
    MessageEvent,
    OrderEvent,
    StatusEvent,
    parse_webhook_payload,
)
from wacrm.modules.whatsapp.services.auto_reply_engine import AutoReplyEngine
from wacrm.modules.whatsapp.services.flow_capture import UNKNOWN_FLOW_ID, parse_flow_submission
from wacrm.shared.core.constants import NOTE_PREVIEW_CHARS

logger = logging.getLogger("webhook_dispatcher")

Step = Callable[[MessageEvent, Dict[str, Any]], Awaitable[Any]]


@dataclass
class DispatchResult:
    """Per-delivery summary, logged and echoed in the acknowledgement."""
    processed: int = 0
    duplicates: int = 0
    unknown_tenant: int = 0
    statuses_updated: int = 0
    statuses_ignored: int = 0
    errors: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


class WebhookDispatcher:
    """
    Routes typed webhook events to their handlers.

    Usage:
        result = await WebhookDispatcher(db).dispatch(payload)
    """

    def __init__(self, db: AsyncSession, auto_reply: Optional[AutoReplyEngine] = None):
        self.db = db
        self.company_repo = CompanyRepository(db)
        self.message_repo = WhatsAppMessageRepository(db)
        self.lead_repo = LeadRepository(db)
        self.product_repo = ProductRepository(db)
        self.flow_repo = FlowResponseRepository(db)
        self.auto_reply = auto_reply or AutoReplyEngine(db)

    async def dispatch(self, payload: Dict[str, Any]) -> DispatchResult:
        """Process every event of one delivery, in payload order."""
        result = DispatchResult()

        try:
            events = parse_webhook_payload(payload)
        except ValidationError as e:
            logger.warning(f"⚠️ Webhook envelope rejected: {e.error_count()} validation errors")
            result.errors += 1
            return result

        # Dictionary Dispatch: event kind -> handler
        event_handlers = {
            WebhookEventKind.MESSAGE: self._handle_message,
            WebhookEventKind.FLOW_REPLY: self._handle_message,
            WebhookEventKind.ORDER: self._handle_message,
            WebhookEventKind.STATUS: self._handle_status,
        }

        for event in events:
            handler = event_handlers[event.kind]
            try:
                await handler(event, result)
            except Exception as e:
                await self.db.rollback()
                result.errors += 1
                logger.error(f"❌ Webhook {event.kind.value} {event.message_id} failed: {str(e)}")

        logger.info(f"📬 Webhook processed: {result.to_dict()}")
        return result

    # ============================================
    # MESSAGE EVENTS
    # ============================================

    async def _handle_message(self, event: MessageEvent, result: DispatchResult) -> None:
        if await self.message_repo.exists_by_message_id(event.message_id):
            logger.info(f"Duplicate delivery of {event.message_id}, skipped")
            result.duplicates += 1
            return

        config = await self.company_repo.get_config_by_phone_number_id(event.phone_number_id)
        if not config:
            logger.warning(f"⚠️ No WhatsApp config for phone_number_id {event.phone_number_id}, message {event.message_id} dropped")
            result.unknown_tenant += 1
            return

        async with self.db.begin_nested():
            stored = await self.message_repo.create_incoming(self._message_values(event, config))
        await self.db.commit()

        if stored is None:
            # Concurrent delivery inserted it between the check and the write
            logger.info(f"Duplicate delivery of {event.message_id} (lost insert race), skipped")
            result.duplicates += 1
            return

        result.processed += 1
        logger.info(f"💬 {event.provider_type} message {event.message_id} from {event.from_number} stored")

        for name, step in self._steps_for(event):
            if not await self._run_step(name, step, event, config):
                result.errors += 1

    def _steps_for(self, event: MessageEvent) -> List[Tuple[str, Step]]:
        """Subtype steps in their fixed order. Steps are not exclusive."""
        steps: List[Tuple[str, Step]] = []
        if isinstance(event, FlowReplyEvent):
            steps.append(("flow_capture", self._capture_flow_response))
        if event.referred_product:
            steps.append(("referred_product", self.auto_reply.handle_referred_product))
        if isinstance(event, OrderEvent):
            steps.append(("order_reply", self.auto_reply.handle_order))
        steps.append(("keyword_rules", self.auto_reply.handle_keyword_rules))
        steps.append(("lead_upsert", self._upsert_lead))
        return steps

    async def _run_step(self, name: str, step: Step, event: MessageEvent, config: Dict[str, Any]) -> bool:
        """One step, one transaction. Returns False if the step failed."""
        try:
            async with self.db.begin_nested():
                await step(event, config)
            await self.db.commit()
            return True
        except Exception as e:
            await self.db.rollback()
            logger.error(f"❌ Step {name} failed for message {event.message_id}: {str(e)}")
            return False

    @staticmethod
    def _message_values(event: MessageEvent, config: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "message_id": event.message_id,
            "phone_number_id": event.phone_number_id,
            "company_id": config["company_id"],
            "from_number": event.from_number,
            "from_name": event.from_name,
            "to_number": event.phone_number_id,
            "type": event.message_type.value,
            "body": event.body,
            "media_id": event.media_id,
            "provider_metadata": event.raw,
            "timestamp": event.timestamp,
        }

    # ============================================
    # SUBTYPE STEPS
    # ============================================

    async def _capture_flow_response(self, event: FlowReplyEvent, config: Dict[str, Any]) -> Optional[dict]:
        """Store a native-flow submission, linked to the contact's lead and the flow's product."""
        company_id = config["company_id"]
        submission = parse_flow_submission(event.response_json)

        lead = await self.lead_repo.get_by_phone(company_id, event.from_number)
        product = None
        if submission.flow_id != UNKNOWN_FLOW_ID:
            product = await self.product_repo.get_by_flow_id(company_id, submission.flow_id)

        row = await self.flow_repo.create({
            "company_id": company_id,
            "phone_number_id": event.phone_number_id,
            "flow_id": submission.flow_id,
            "flow_token": submission.flow_token,
            "from_number": event.from_number,
            "from_name": event.from_name,
            "response_data": submission.response_data,
            "parsed_fields": submission.parsed_fields,
            "status": submission.status,
            "product_id": product["id"] if product else None,
            "lead_id": lead["id"] if lead else None,
            "message_id": event.message_id,
        })

        if row is None:
            logger.info(f"Flow response for {event.message_id} already captured")
        else:
            logger.info(f"📝 Flow response captured: flow {submission.flow_id} ({submission.status}) from {event.from_number}")
        return row

    async def _upsert_lead(self, event: MessageEvent, config: Dict[str, Any]) -> Optional[dict]:
        """
        Existing lead: append the message to its timeline.
        No lead: create one only for ad-attributed (referral) messages.
        """
        company_id = config["company_id"]
        preview = event.summary[:NOTE_PREVIEW_CHARS]
        content = f"WhatsApp message: {preview}"
        at = event.timestamp or datetime.now(timezone.utc)

        lead = await self.lead_repo.get_by_phone(company_id, event.from_number)
        if lead:
            await self.lead_repo.append_interaction(
                lead["id"], content, at,
                last_message=preview,
                phone_number_id=event.phone_number_id
            )
            logger.info(f"✅ Updated lead {lead['id']} from WhatsApp ({event.from_number})")
            return lead

        if not event.referral:
            logger.debug(f"Organic message from {event.from_number} without a lead, no lead created")
            return None

        lead, created = await self.lead_repo.find_or_create_ad_lead({
            "company_id": company_id,
            "name": event.from_name or f"WhatsApp User {event.from_number}",
            "phone": event.from_number,
            "phone_number_id": event.phone_number_id,
            "stage": LeadStage.NEW.value,
            "status": LeadStatus.NEW.value,
            "notes": f"Initial message via WhatsApp ad: {preview}",
            "comment_history": [{"timestamp": at.isoformat(), "content": content}],
            "last_message": preview,
            "last_interaction": at,
            "ad_referral": event.referral.model_dump(exclude_none=True),
        })

        if created:
            logger.info(f"✅ Created ad lead {lead['id']}: {lead['name']} ({event.from_number})")
        else:
            await self.lead_repo.append_interaction(
                lead["id"], content, at,
                last_message=preview,
                phone_number_id=event.phone_number_id
            )
            logger.info(f"Ad lead {lead['id']} already existed for {event.from_number}, timeline updated")
        return lead

    # ============================================
    # STATUS EVENTS
    # ============================================

    async def _handle_status(self, event: StatusEvent, result: DispatchResult) -> None:
        if event.status not in PROVIDER_STATUS_UPDATES:
            logger.debug(f"Status '{event.status}' for {event.message_id} ignored")
            result.statuses_ignored += 1
            return

        async with self.db.begin_nested():
            updated = await self.message_repo.update_status_by_message_id(event.message_id, event.status)
        await self.db.commit()

        if updated:
            result.statuses_updated += 1
            if event.errors:
                logger.warning(f"⚠️ Message {event.message_id} {event.status}: {event.errors}")
        else:
            logger.debug(f"Status '{event.status}' for unknown message {event.message_id}")
