"""Partner model."""
from sqlalchemy import Column, String, DateTime, Enum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from settlement.database import Base, BigId
from settlement.utils.number_format import utcnow
import enum


class PartnerStatus(enum.Enum):
    """Partner status enum."""
    PENDING = "pending"
    ACTIVE = "active"
    BLOCKED = "blocked"
    DELETED = "deleted"


class Partner(Base):
    """Partner (revendedor com loja própria sobre o catálogo central)."""
    
    __tablename__ = 'partner'
    
    id = Column(BigId, primary_key=True, autoincrement=True)
    store_name = Column(String, nullable=False)
    store_slug = Column(String, nullable=False, unique=True)
    owner_name = Column(String, nullable=False)
    owner_email = Column(String, nullable=False)
    status = Column(Enum(PartnerStatus, name='partner_status'), nullable=False, default=PartnerStatus.PENDING)
    created_at = Column(DateTime, nullable=False, default=utcnow, server_default=func.now())
    
    # Relationships
    products = relationship('PartnerProduct', back_populates='partner', cascade='all, delete-orphan')
    balance = relationship('PartnerBalance', uselist=False, back_populates='partner')
    
    @property
    def is_active(self):
        return self.status == PartnerStatus.ACTIVE
    
    def __repr__(self):
        return f"<Partner(id={self.id}, store_slug='{self.store_slug}', status={self.status.value})>"
