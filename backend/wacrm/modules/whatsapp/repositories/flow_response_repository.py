"""
Flow Response Repository
Database operations for the flow_responses table.
"""
from typing import Optional, List
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.dialects.postgresql import insert

from wacrm.modules.whatsapp.models.flow_response import FlowResponse
from wacrm.shared.core.constants import DEFAULT_PAGE_SIZE
from wacrm.shared.db.base import row_to_dict


class FlowResponseRepository:
    """Repository for captured flow submissions."""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def create(self, response_data: dict) -> Optional[dict]:
        """
        Store a flow submission. Returns None if this webhook message was
        already captured (dedup on message_id).
        """
        stmt = (
            insert(FlowResponse)
            .values(**response_data)
            .on_conflict_do_nothing(index_elements=["message_id"])
            .returning(FlowResponse)
        )
        result = await self.db.execute(stmt)
        row = result.scalar_one_or_none()
        # No commit - let service layer manage transaction
        return row_to_dict(row) if row else None

    async def list_for_company(
        self,
        company_id: int,
        flow_id: Optional[str] = None,
        skip: int = 0,
        limit: int = DEFAULT_PAGE_SIZE
    ) -> List[dict]:
        """Flow submissions of a company, newest first."""
        query = select(FlowResponse).where(FlowResponse.company_id == company_id)
        if flow_id:
            query = query.where(FlowResponse.flow_id == flow_id)
        query = query.order_by(FlowResponse.created_at.desc(), FlowResponse.id.desc()).offset(skip).limit(limit)

        result = await self.db.execute(query)
        return [row_to_dict(r) for r in result.scalars().all()]
