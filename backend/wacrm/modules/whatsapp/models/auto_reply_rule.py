"""
Auto-Reply Rule ORM Model
SQLAlchemy model representing the 'auto_reply_rules' table.

Keyword → action rules configured per company. Evaluated in (position, id)
order; the first match wins.
"""
from sqlalchemy import Column, BigInteger, Integer, Text, Boolean, Index, ForeignKey
from wacrm.shared.db.base import Base, TimestampMixin


class AutoReplyRule(Base, TimestampMixin):
    """ORM Model for the auto_reply_rules table."""
    __tablename__ = "auto_reply_rules"

    id = Column(BigInteger, primary_key=True)

    company_id = Column(
        BigInteger,
        ForeignKey('companies.id', ondelete='CASCADE'),
        nullable=False
    )

    # ============================================
    # MATCHING
    # ============================================
    keyword = Column(Text, nullable=False)
    match_type = Column(Text, nullable=False, default='contains')   # exact/contains
    case_sensitive = Column(Boolean, nullable=False, default=False)
    position = Column(Integer, nullable=False, default=0)

    # ============================================
    # ACTION
    # ============================================
    response_type = Column(Text, nullable=False, default='text')    # text/product/all_products_prices/flow
    response_text = Column(Text, nullable=True)
    product_id = Column(BigInteger, ForeignKey('products.id', ondelete='SET NULL'), nullable=True)
    flow_id = Column(Text, nullable=True)

    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        Index('idx_auto_reply_rules_company_position', 'company_id', 'position'),
    )

    def __repr__(self):
        return f"<AutoReplyRule(id={self.id}, keyword='{self.keyword}', response_type='{self.response_type}')>"
