"""
Form ORM Model
SQLAlchemy model representing the 'forms' table (public intake forms).
"""
from sqlalchemy import Column, BigInteger, Text, Boolean, Index, ForeignKey
from sqlalchemy.dialects.postgresql import JSONB
from wacrm.shared.db.base import Base, TimestampMixin


class Form(Base, TimestampMixin):
    """ORM Model for the forms table."""
    __tablename__ = "forms"

    id = Column(BigInteger, primary_key=True)

    company_id = Column(
        BigInteger,
        ForeignKey('companies.id', ondelete='CASCADE'),
        nullable=False
    )

    title = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    is_published = Column(Boolean, nullable=False, default=False)
    fields = Column(JSONB, nullable=False, server_default='[]')
    # Example fields: [{"label": "Name", "type": "text", "required": true}]

    __table_args__ = (
        Index('idx_forms_company', 'company_id'),
    )

    def __repr__(self):
        return f"<Form(id={self.id}, title='{self.title}')>"
