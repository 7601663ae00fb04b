"""
Company Repository
Tenant configuration lookups consumed by webhook ingestion and messaging.
"""
from typing import Optional, List
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wacrm.modules.tenants.models.company import WhatsAppConfig
from wacrm.shared.db.base import row_to_dict


class CompanyRepository:
    """Repository for company / WhatsApp configuration reads."""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def get_config_by_phone_number_id(self, phone_number_id: str) -> Optional[dict]:
        """
        Resolve the business-account config (and so the tenant) for a
        provider phone_number_id. Returns None for unknown numbers.
        """
        if not phone_number_id:
            return None
        query = select(WhatsAppConfig).where(WhatsAppConfig.phone_number_id == phone_number_id)
        result = await self.db.execute(query)
        config = result.scalar_one_or_none()
        return row_to_dict(config) if config else None

    async def get_configs_for_company(self, company_id: int) -> List[dict]:
        """All WhatsApp configs of a company, oldest first."""
        query = (
            select(WhatsAppConfig)
            .where(WhatsAppConfig.company_id == company_id)
            .order_by(WhatsAppConfig.id.asc())
        )

        result = await self.db.execute(query)
        return [row_to_dict(c) for c in result.scalars().all()]

    async def get_default_config(self, company_id: int) -> Optional[dict]:
        """First enabled config of a company, else its first config."""
        configs = await self.get_configs_for_company(company_id)
        if not configs:
            return None
        return next((c for c in configs if c.get("is_enabled")), configs[0])

    async def verify_token_exists(self, token: str) -> bool:
        """True if any config uses this webhook verify token."""
        if not token:
            return False
        query = select(WhatsAppConfig.id).where(WhatsAppConfig.webhook_verify_token == token).limit(1)
        result = await self.db.execute(query)
        return result.scalar_one_or_none() is not None
