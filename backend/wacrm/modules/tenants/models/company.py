"""
Company (tenant) ORM Models
SQLAlchemy models for the 'companies' and 'whatsapp_configs' tables.

A company owns one or more WhatsApp business numbers. Each number is a row in
whatsapp_configs, keyed by the provider's phone_number_id, so an inbound
webhook resolves its tenant with a single indexed lookup.
"""
from sqlalchemy import Column, BigInteger, Text, Boolean, Index, ForeignKey
from wacrm.shared.db.base import Base, TimestampMixin


class Company(Base, TimestampMixin):
    """ORM Model for the companies table (isolation boundary)."""
    __tablename__ = "companies"

    id = Column(BigInteger, primary_key=True)
    name = Column(Text, nullable=False)
    website = Column(Text, nullable=True)

    def __repr__(self):
        return f"<Company(id={self.id}, name='{self.name}')>"


class WhatsAppConfig(Base, TimestampMixin):
    """
    ORM Model for the whatsapp_configs table.

    One row per WhatsApp sending number. phone_number_id is globally unique:
    it is the key webhooks arrive with.
    """
    __tablename__ = "whatsapp_configs"

    id = Column(BigInteger, primary_key=True)

    company_id = Column(
        BigInteger,
        ForeignKey('companies.id', ondelete='CASCADE'),
        nullable=False
    )
    name = Column(Text, nullable=False)                    # e.g. "Sales Team", "Support"

    # ============================================
    # META CREDENTIALS
    # ============================================
    phone_number_id = Column(Text, nullable=False, unique=True)
    business_account_id = Column(Text, nullable=True)      # WABA ID (subscriptions)
    access_token = Column(Text, nullable=True)
    catalog_id = Column(Text, nullable=True)
    webhook_verify_token = Column(Text, nullable=True)

    is_enabled = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index('idx_whatsapp_configs_company', 'company_id'),
    )

    def __repr__(self):
        return f"<WhatsAppConfig(id={self.id}, company_id={self.company_id}, phone_number_id='{self.phone_number_id}')>"
