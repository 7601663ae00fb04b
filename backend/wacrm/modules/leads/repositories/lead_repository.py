"""
Lead Repository
Database operations for the leads table used by WhatsApp ingestion.

Key patterns:
- Atomic find-or-create for ad-originated leads (INSERT ... ON CONFLICT DO NOTHING
  against the partial unique index, then re-read)
- Append-only timeline updates done in a single UPDATE (no read-modify-write)
"""
from datetime import datetime
from typing import Optional, Dict, Iterable, Tuple
from sqlalchemy import select, update, func, literal, text
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.dialects.postgresql import insert, JSONB

from wacrm.modules.leads.constants import LeadSource
from wacrm.modules.leads.models.lead import Lead
from wacrm.shared.db.base import row_to_dict


class LeadRepository:
    """Repository for lead reads and webhook-driven updates."""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    # ============================================
    # READ OPERATIONS
    # ============================================

    async def get_by_phone(self, company_id: int, phone: str) -> Optional[dict]:
        """
        Fetch the lead for (company, phone).
        Organic duplicates may exist; the most recently created one wins.
        """
        query = (
            select(Lead)
            .where(Lead.company_id == company_id, Lead.phone == phone)
            .order_by(Lead.created_at.desc(), Lead.id.desc())
            .limit(1)
        )
        result = await self.db.execute(query)
        lead = result.scalar_one_or_none()
        return row_to_dict(lead) if lead else None

    async def get_names_by_phones(self, company_id: int, phones: Iterable[str]) -> Dict[str, str]:
        """Map phone -> lead name for the inbox (outgoing-first threads)."""
        phones = [p for p in set(phones) if p]
        if not phones:
            return {}

        query = (
            select(Lead.phone, Lead.name)
            .where(Lead.company_id == company_id, Lead.phone.in_(phones))
            .order_by(Lead.created_at.asc())
        )
        result = await self.db.execute(query)
        # Later rows overwrite earlier ones: newest lead name wins
        return {row.phone: row.name for row in result.all() if row.name}

    # ============================================
    # CREATE OPERATIONS
    # ============================================

    async def find_or_create_ad_lead(self, lead_data: dict) -> Tuple[dict, bool]:
        """
        Create an ad-originated lead unless one already exists for
        (company_id, phone).

        A single conditional INSERT guarded by the partial unique index
        uq_leads_company_phone_ad, so two concurrent deliveries for the same
        contact cannot both create a lead.

        Returns:
            (lead dict, created flag)
        """
        values = {**lead_data, "source": LeadSource.WHATSAPP_AD.value}

        stmt = (
            insert(Lead)
            .values(**values)
            .on_conflict_do_nothing(
                index_elements=["company_id", "phone"],
                index_where=text("source = 'whatsapp_ad'")
            )
            .returning(Lead)
        )
        result = await self.db.execute(stmt)
        lead = result.scalar_one_or_none()
        if lead is not None:
            return row_to_dict(lead), True

        query = select(Lead).where(
            Lead.company_id == values["company_id"],
            Lead.phone == values["phone"],
            Lead.source == LeadSource.WHATSAPP_AD.value
        )
        existing = (await self.db.execute(query)).scalar_one()
        return row_to_dict(existing), False

    # ============================================
    # UPDATE OPERATIONS
    # ============================================

    async def append_interaction(
        self,
        lead_id: int,
        content: str,
        at: datetime,
        last_message: Optional[str] = None,
        phone_number_id: Optional[str] = None
    ) -> bool:
        """
        Append a timestamped note + comment_history entry and bump
        last_interaction. phone_number_id is only written when the lead has none.
        Returns True if the lead exists.
        """
        note = f"\n\n[{at.strftime('%Y-%m-%d %H:%M:%S')}] {content}"
        entry = {"timestamp": at.isoformat(), "content": content}

        values = {
            "notes": func.coalesce(Lead.notes, "") + note,
            "comment_history": func.coalesce(Lead.comment_history, literal([], JSONB)).op("||")(
                literal([entry], JSONB)
            ),
            "last_interaction": at,
            "updated_at": func.now(),
        }
        if last_message is not None:
            values["last_message"] = last_message
        if phone_number_id:
            values["phone_number_id"] = func.coalesce(Lead.phone_number_id, phone_number_id)

        result = await self.db.execute(update(Lead).where(Lead.id == lead_id).values(**values))
        # No commit - let service layer manage transaction
        return result.rowcount > 0

    async def touch_last_interaction(self, lead_id: int, last_message: Optional[str] = None) -> None:
        """Bump last_interaction after an operator message."""
        values = {"last_interaction": func.now(), "updated_at": func.now()}
        if last_message is not None:
            values["last_message"] = last_message
        await self.db.execute(update(Lead).where(Lead.id == lead_id).values(**values))

