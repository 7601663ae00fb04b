"""
Lead ORM Model
SQLAlchemy model representing the 'leads' table.

Phone is unique only within a company, and only for ad-originated leads:
manual entries and bulk imports may legitimately repeat a number. The
partial unique index below is what makes webhook lead creation atomic.
"""
from sqlalchemy import Column, BigInteger, Text, Numeric, DateTime, Index, ForeignKey, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from wacrm.shared.db.base import Base, TimestampMixin


class Lead(Base, TimestampMixin):
    """ORM Model for the leads table."""
    __tablename__ = "leads"

    id = Column(BigInteger, primary_key=True)

    company_id = Column(
        BigInteger,
        ForeignKey('companies.id', ondelete='CASCADE'),
        nullable=False
    )

    # ============================================
    # CORE IDENTITY
    # ============================================
    name = Column(Text, nullable=False)
    phone = Column(Text, nullable=False)                    # wa_id shape, e.g. 919876543210
    email = Column(Text, nullable=True)
    phone_number_id = Column(Text, nullable=True)           # Business number this contact reached

    # ============================================
    # PIPELINE
    # ============================================
    stage = Column(Text, nullable=False, default='new')     # new/contacted/interested/negotiation/converted/lost
    stage_order = Column(BigInteger, nullable=False, default=0)
    status = Column(Text, nullable=False, default='new')    # Legacy mirror
    source = Column(Text, nullable=False, default='manual') # manual/bulk_import/whatsapp/whatsapp_ad
    priority = Column(Text, nullable=False, default='medium')
    value = Column(Numeric(12, 2), nullable=False, default=0)
    assigned_to = Column(BigInteger, nullable=True)         # Worker ID (users live elsewhere)

    # ============================================
    # INTERACTION TIMELINE
    # ============================================
    notes = Column(Text, nullable=True)
    comment_history = Column(JSONB, nullable=False, server_default='[]')  # [{timestamp, content}]
    last_message = Column(Text, nullable=True)
    last_interaction = Column(DateTime(timezone=True), server_default=func.now())
    ad_referral = Column(JSONB, nullable=True)              # Referral block of the first ad click

    __table_args__ = (
        Index('idx_leads_company_phone', 'company_id', 'phone'),
        Index('idx_leads_stage', 'stage', 'stage_order'),
        Index('idx_leads_assigned', 'assigned_to', 'stage'),
        Index('idx_leads_phone_number_id', 'phone_number_id'),
        Index(
            'uq_leads_company_phone_ad',
            'company_id', 'phone',
            unique=True,
            postgresql_where=text("source = 'whatsapp_ad'")
        ),
    )

    def __repr__(self):
        return f"<Lead(id={self.id}, company_id={self.company_id}, phone='{self.phone}', stage='{self.stage}')>"
