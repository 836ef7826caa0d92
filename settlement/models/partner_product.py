"""Partner Product model (preço de venda por parceiro)."""
from sqlalchemy import Column, BigInteger, Boolean, Numeric, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from settlement.database import Base, BigId
from settlement.utils.number_format import utcnow


class PartnerProduct(Base):
    """A catalog product opted into a partner storefront with its selling price."""
    
    __tablename__ = 'partner_product'
    __table_args__ = (
        UniqueConstraint('partner_id', 'product_id', name='uq_partner_product'),
    )
    
    id = Column(BigId, primary_key=True, autoincrement=True)
    partner_id = Column(BigInteger, ForeignKey('partner.id'), nullable=False, index=True)
    product_id = Column(BigInteger, ForeignKey('product.id'), nullable=False)
    selling_price = Column(Numeric(10, 2), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow, server_default=func.now())
    
    # Relationships
    partner = relationship('Partner', back_populates='products')
    product = relationship('Product')
    
    def __repr__(self):
        return f"<PartnerProduct(partner_id={self.partner_id}, product_id={self.product_id}, selling_price={self.selling_price})>"
