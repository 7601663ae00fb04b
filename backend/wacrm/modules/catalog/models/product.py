"""
Product ORM Model
SQLAlchemy model representing the 'products' table.

retailer_id is the Meta catalog SKU (`product_retailer_id` in order and
referred-product payloads). A product may point at an intake Form and/or a
native WhatsApp Flow that auto-replies hand out.
"""
from sqlalchemy import Column, BigInteger, Text, Boolean, Numeric, Index, ForeignKey, text
from wacrm.shared.db.base import Base, TimestampMixin


class Product(Base, TimestampMixin):
    """ORM Model for the products table."""
    __tablename__ = "products"

    id = Column(BigInteger, primary_key=True)

    company_id = Column(
        BigInteger,
        ForeignKey('companies.id', ondelete='CASCADE'),
        nullable=False
    )

    name = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(12, 2), nullable=False)
    currency = Column(Text, nullable=False, default='USD')
    image_url = Column(Text, nullable=True)

    # ============================================
    # CATALOG / AUTO-REPLY LINKS
    # ============================================
    retailer_id = Column(Text, nullable=True)
    linked_form_id = Column(
        BigInteger,
        ForeignKey('forms.id', ondelete='SET NULL'),
        nullable=True
    )
    flow_id = Column(Text, nullable=True)           # Native WhatsApp Flow ID

    active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        Index(
            'uq_products_company_retailer',
            'company_id', 'retailer_id',
            unique=True,
            postgresql_where=text("retailer_id IS NOT NULL")
        ),
        Index('idx_products_company_flow', 'company_id', 'flow_id'),
    )

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', retailer_id='{self.retailer_id}')>"
