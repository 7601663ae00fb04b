"""
Flow Response ORM Model
SQLAlchemy model representing the 'flow_responses' table.

One row per native-flow submission (interactive nfm_reply message).
"""
from sqlalchemy import Column, BigInteger, Text, Index, ForeignKey
from sqlalchemy.dialects.postgresql import JSONB
from wacrm.shared.db.base import Base, TimestampMixin


class FlowResponse(Base, TimestampMixin):
    """ORM Model for the flow_responses table."""
    __tablename__ = "flow_responses"

    id = Column(BigInteger, primary_key=True)

    company_id = Column(
        BigInteger,
        ForeignKey('companies.id', ondelete='CASCADE'),
        nullable=False
    )
    phone_number_id = Column(Text, nullable=False)

    # ============================================
    # FLOW CORRELATION
    # ============================================
    flow_id = Column(Text, nullable=False)
    flow_token = Column(Text, nullable=True)

    # ============================================
    # SUBMITTER
    # ============================================
    from_number = Column(Text, nullable=False)
    from_name = Column(Text, nullable=True)

    # ============================================
    # PAYLOAD
    # ============================================
    response_data = Column(JSONB, nullable=False)                       # Parsed response_json, or {"raw": ...}
    parsed_fields = Column(JSONB, nullable=False, server_default='[]')  # [{field_name, field_value, field_type}]
    status = Column(Text, nullable=False, default='completed')          # draft/in_progress/completed/error

    # ============================================
    # LINKS
    # ============================================
    product_id = Column(BigInteger, ForeignKey('products.id', ondelete='SET NULL'), nullable=True)
    lead_id = Column(BigInteger, ForeignKey('leads.id', ondelete='SET NULL'), nullable=True)

    message_id = Column(Text, nullable=True, unique=True)  # Webhook message ID (dedup key)

    __table_args__ = (
        Index('idx_flow_responses_company_created', 'company_id', 'created_at'),
        Index('idx_flow_responses_company_flow', 'company_id', 'flow_id'),
        Index('idx_flow_responses_from', 'from_number'),
    )

    def __repr__(self):
        return f"<FlowResponse(id={self.id}, flow_id='{self.flow_id}', status='{self.status}')>"
