"""
Auto-Reply Rule Repository
Reads the keyword rules of a company in evaluation order.
"""
from typing import List
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wacrm.modules.whatsapp.models.auto_reply_rule import AutoReplyRule
from wacrm.shared.db.base import row_to_dict


class AutoReplyRuleRepository:
    """Repository for auto-reply rules."""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def list_active(self, company_id: int) -> List[dict]:
        """Active rules ordered by (position, id); first match wins."""
        query = (
            select(AutoReplyRule)
            .where(AutoReplyRule.company_id == company_id, AutoReplyRule.is_active.is_(True))
            .order_by(AutoReplyRule.position.asc(), AutoReplyRule.id.asc())
        )
        result = await self.db.execute(query)
        return [row_to_dict(r) for r in result.scalars().all()]
