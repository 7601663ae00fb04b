"""
WhatsApp Message Repository
Database operations for the whatsapp_messages table.

Inbound rows are written with INSERT ... ON CONFLICT DO NOTHING on message_id,
so a webhook redelivery can never create a second row for the same message.
"""
from typing import Optional, List, Dict, Any
from sqlalchemy import select, update, func, and_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.dialects.postgresql import insert

from wacrm.modules.whatsapp.constants import MessageDirection, MessageStatus, HANDLED_STATUSES
from wacrm.modules.whatsapp.models.whatsapp_message import WhatsAppMessage
from wacrm.shared.core.constants import DEFAULT_PAGE_SIZE, MAX_CONVERSATION_MESSAGES
from wacrm.shared.db.base import row_to_dict


def _column_values(data: Dict[str, Any]) -> dict:
    """Key values by mapped attribute (provider_metadata maps to the "metadata" column)."""
    return {getattr(WhatsAppMessage, key): value for key, value in data.items()}


class WhatsAppMessageRepository:
    """Repository for WhatsApp message reads and writes."""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    # ============================================
    # READ OPERATIONS
    # ============================================

    async def exists_by_message_id(self, message_id: str) -> bool:
        """Dedup check used before any webhook processing."""
        query = select(WhatsAppMessage.id).where(WhatsAppMessage.message_id == message_id).limit(1)
        result = await self.db.execute(query)
        return result.scalar_one_or_none() is not None

    async def list_messages(
        self,
        company_id: int,
        phone_number_id: Optional[str] = None,
        skip: int = 0,
        limit: int = DEFAULT_PAGE_SIZE
    ) -> List[dict]:
        """Messages of a company, newest first."""
        query = select(WhatsAppMessage).where(WhatsAppMessage.company_id == company_id)
        if phone_number_id:
            query = query.where(WhatsAppMessage.phone_number_id == phone_number_id)
        query = (
            query
            .order_by(WhatsAppMessage.timestamp.desc(), WhatsAppMessage.id.desc())
            .offset(skip)
            .limit(limit)
        )

        result = await self.db.execute(query)
        return [row_to_dict(m) for m in result.scalars().all()]

    async def count_messages(self, company_id: int, phone_number_id: Optional[str] = None) -> int:
        query = (
            select(func.count())
            .select_from(WhatsAppMessage)
            .where(WhatsAppMessage.company_id == company_id)
        )
        if phone_number_id:
            query = query.where(WhatsAppMessage.phone_number_id == phone_number_id)
        result = await self.db.execute(query)
        return result.scalar() or 0

    async def list_for_inbox(
        self,
        company_id: int,
        phone_number_id: Optional[str] = None,
        limit: int = MAX_CONVERSATION_MESSAGES
    ) -> List[dict]:
        """
        The most recent messages of a company for conversation grouping,
        newest first. The grouper re-sorts every thread itself.
        """
        query = select(WhatsAppMessage).where(WhatsAppMessage.company_id == company_id)
        if phone_number_id:
            query = query.where(WhatsAppMessage.phone_number_id == phone_number_id)
        query = query.order_by(WhatsAppMessage.timestamp.desc()).limit(limit)

        result = await self.db.execute(query)
        return [row_to_dict(m) for m in result.scalars().all()]

    # ============================================
    # CREATE OPERATIONS
    # ============================================

    async def create_incoming(self, message_data: Dict[str, Any]) -> Optional[dict]:
        """
        Insert an inbound message.

        Returns the stored row, or None when a row with the same message_id
        already exists (redelivery or a concurrent delivery that won the race).
        """
        values = {
            "direction": MessageDirection.INCOMING.value,
            "status": MessageStatus.RECEIVED.value,
            **message_data,
        }
        stmt = (
            insert(WhatsAppMessage)
            .values(_column_values(values))
            .on_conflict_do_nothing(index_elements=["message_id"])
            .returning(WhatsAppMessage)
        )
        result = await self.db.execute(stmt)
        message = result.scalar_one_or_none()
        # No commit - let service layer manage transaction
        return row_to_dict(message) if message else None

    async def create_outgoing(
        self,
        message_id: str,
        phone_number_id: str,
        company_id: Optional[int],
        to_number: str,
        body: Optional[str],
        status: str,
        message_type: str = "text",
        provider_metadata: Optional[dict] = None
    ) -> dict:
        """
        Log a message we sent (manual send or auto-reply).
        from_number is our business phone_number_id.
        """
        message = WhatsAppMessage(
            message_id=message_id,
            phone_number_id=phone_number_id,
            company_id=company_id,
            direction=MessageDirection.OUTGOING.value,
            from_number=phone_number_id,
            to_number=to_number,
            type=message_type,
            body=body,
            status=status,
            provider_metadata=provider_metadata or {},
            timestamp=func.now()
        )

        self.db.add(message)
        await self.db.flush()  # Flush to get ID, let service manage commit
        await self.db.refresh(message)

        return row_to_dict(message)

    # ============================================
    # UPDATE OPERATIONS
    # ============================================

    async def update_status_by_message_id(self, message_id: str, status: str) -> bool:
        """
        Apply a provider status update.
        Returns True if a message was updated (unknown IDs are not an error).
        """
        stmt = (
            update(WhatsAppMessage)
            .where(WhatsAppMessage.message_id == message_id)
            .values(status=status, updated_at=func.now())
        )
        result = await self.db.execute(stmt)
        # No commit - let service layer manage transaction
        return result.rowcount > 0

    async def mark_conversation_read(
        self,
        company_id: int,
        contact_phone: str,
        phone_number_id: Optional[str] = None
    ) -> int:
        """Mark a contact's unread incoming messages as read. Returns the row count."""
        conditions = [
            WhatsAppMessage.company_id == company_id,
            WhatsAppMessage.direction == MessageDirection.INCOMING.value,
            WhatsAppMessage.from_number == contact_phone,
            WhatsAppMessage.status.notin_(sorted(HANDLED_STATUSES)),
        ]
        if phone_number_id:
            conditions.append(WhatsAppMessage.phone_number_id == phone_number_id)

        stmt = (
            update(WhatsAppMessage)
            .where(and_(*conditions))
            .values(status=MessageStatus.READ.value, updated_at=func.now())
        )
        result = await self.db.execute(stmt)
        return result.rowcount or 0

    async def mark_replied(self, company_id: int, contact_phone: str, phone_number_id: str) -> int:
        """After an operator reply, the contact's earlier incoming messages become replied."""
        stmt = (
            update(WhatsAppMessage)
            .where(
                WhatsAppMessage.company_id == company_id,
                WhatsAppMessage.direction == MessageDirection.INCOMING.value,
                WhatsAppMessage.from_number == contact_phone,
                WhatsAppMessage.phone_number_id == phone_number_id,
                WhatsAppMessage.status != MessageStatus.REPLIED.value
            )
            .values(status=MessageStatus.REPLIED.value, updated_at=func.now())
        )
        result = await self.db.execute(stmt)
        return result.rowcount or 0
