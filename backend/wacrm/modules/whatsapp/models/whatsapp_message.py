"""
WhatsApp Message ORM Model
SQLAlchemy model representing the 'whatsapp_messages' table.

Stores every inbound and outbound WhatsApp message. message_id is the
provider's ID (wamid...) and the dedup key for webhook redeliveries.
"""
from sqlalchemy import Column, BigInteger, Text, DateTime, Index, ForeignKey
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from wacrm.shared.db.base import Base, TimestampMixin


class WhatsAppMessage(Base, TimestampMixin):
    """
    ORM Model for the whatsapp_messages table.

    For incoming messages from_number is the contact; for outgoing messages
    to_number is the contact and from_number is our phone_number_id.
    """
    __tablename__ = "whatsapp_messages"

    id = Column(BigInteger, primary_key=True)

    # ============================================
    # PROVIDER IDENTITY
    # ============================================
    message_id = Column(Text, nullable=False, unique=True)    # Provider message ID (dedup key)
    phone_number_id = Column(Text, nullable=False)            # Business number that sent/received it

    company_id = Column(
        BigInteger,
        ForeignKey('companies.id', ondelete='CASCADE'),
        nullable=True
    )

    # ============================================
    # PARTIES
    # ============================================
    direction = Column(Text, nullable=False, default='incoming')  # incoming/outgoing
    from_number = Column(Text, nullable=False)
    from_name = Column(Text, nullable=True)                   # Contact profile name (incoming)
    to_number = Column(Text, nullable=True)

    # ============================================
    # CONTENT
    # ============================================
    type = Column(Text, nullable=False, default='text')
    body = Column(Text, nullable=True)
    media_id = Column(Text, nullable=True)
    media_url = Column(Text, nullable=True)

    # ============================================
    # STATUS
    # ============================================
    status = Column(Text, nullable=False, default='received')
    # Incoming: received/read/replied  Outgoing: pending/sent/delivered/read/failed

    # "metadata" is reserved on declarative classes
    provider_metadata = Column("metadata", JSONB, nullable=True, server_default='{}')

    timestamp = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        Index('idx_whatsapp_messages_company_pnid', 'company_id', 'phone_number_id'),
        Index('idx_whatsapp_messages_from', 'from_number'),
        Index('idx_whatsapp_messages_to', 'to_number'),
        Index('idx_whatsapp_messages_timestamp', 'timestamp'),
    )

    def __repr__(self):
        return f"<WhatsAppMessage(id={self.id}, message_id='{self.message_id}', direction='{self.direction}', status='{self.status}')>"
