"""Product model."""
from sqlalchemy import Column, String, Boolean, Numeric, DateTime
from sqlalchemy.sql import func
from settlement.database import Base, BigId
from settlement.utils.number_format import utcnow


class Product(Base):
    """Catalog product. cost_price is set by the admin and is authoritative."""
    
    __tablename__ = 'product'
    
    id = Column(BigId, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    cost_price = Column(Numeric(10, 2), nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow, server_default=func.now())
    
    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', cost_price={self.cost_price})>"
