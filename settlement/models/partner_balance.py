"""Partner Balance model."""
from decimal import Decimal
from sqlalchemy import Column, BigInteger, Numeric, DateTime, String, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from settlement.database import Base
from settlement.utils.number_format import utcnow


BALANCE_BUCKETS = ('available', 'pending', 'reserved')


class PartnerBalance(Base):
    """
    Running totals per partner.
    
    Buckets:
        pending_balance: earned, still inside the holding period
        available_balance: withdrawable
        reserved_balance: requested withdrawals not yet paid/rejected
    
    Invariant: available + pending + reserved == total_earned - total_withdrawn
    """
    
    __tablename__ = 'partner_balance'
    __table_args__ = (
        CheckConstraint('available_balance >= 0', name='ck_balance_available_non_negative'),
        CheckConstraint('pending_balance >= 0', name='ck_balance_pending_non_negative'),
        CheckConstraint('reserved_balance >= 0', name='ck_balance_reserved_non_negative'),
    )
    
    partner_id = Column(BigInteger, ForeignKey('partner.id'), primary_key=True)
    available_balance = Column(Numeric(10, 2), nullable=False, default=0)
    pending_balance = Column(Numeric(10, 2), nullable=False, default=0)
    reserved_balance = Column(Numeric(10, 2), nullable=False, default=0)
    total_earned = Column(Numeric(10, 2), nullable=False, default=0)
    total_withdrawn = Column(Numeric(10, 2), nullable=False, default=0)
    
    # Set when reconciliation fails; blocks every mutation until cleared by an operator
    frozen_at = Column(DateTime, nullable=True)
    frozen_reason = Column(String(500), nullable=True)
    
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow, server_default=func.now())
    
    # Relationships
    partner = relationship('Partner', back_populates='balance')
    
    @classmethod
    def empty(cls, partner_id):
        """Transient zeroed balance for partners that never sold anything."""
        zero = Decimal('0.00')
        return cls(
            partner_id=partner_id,
            available_balance=zero,
            pending_balance=zero,
            reserved_balance=zero,
            total_earned=zero,
            total_withdrawn=zero
        )
    
    @property
    def is_frozen(self):
        return self.frozen_at is not None
    
    @property
    def current_total(self):
        """available + pending (the figure snapshotted as balance_after)."""
        return Decimal(str(self.available_balance or 0)) + Decimal(str(self.pending_balance or 0))
    
    def to_dict(self, include_partner=False):
        data = {
            'partner_id': self.partner_id,
            'available_balance': str(self.available_balance),
            'pending_balance': str(self.pending_balance),
            'reserved_balance': str(self.reserved_balance),
            'total_earned': str(self.total_earned),
            'total_withdrawn': str(self.total_withdrawn),
            'frozen': self.is_frozen,
        }
        if include_partner and self.partner is not None:
            data['store_name'] = self.partner.store_name
            data['owner_name'] = self.partner.owner_name
        return data
    
    def __repr__(self):
        return (
            f"<PartnerBalance(partner_id={self.partner_id}, available={self.available_balance}, "
            f"pending={self.pending_balance}, reserved={self.reserved_balance})>"
        )
