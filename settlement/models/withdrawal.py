"""Withdrawal model (saque)."""
from sqlalchemy import Column, BigInteger, Numeric, DateTime, String, Text, Enum, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from settlement.database import Base, BigId
from settlement.utils.number_format import utcnow
import enum


class WithdrawalStatus(enum.Enum):
    """Withdrawal status enum."""
    PENDING = "pending"
    APPROVED = "approved"
    PAID = "paid"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


# Allowed source states per target state
WITHDRAWAL_TRANSITIONS = {
    WithdrawalStatus.APPROVED: {WithdrawalStatus.PENDING},
    WithdrawalStatus.REJECTED: {WithdrawalStatus.PENDING},
    WithdrawalStatus.CANCELLED: {WithdrawalStatus.PENDING},
    WithdrawalStatus.PAID: {WithdrawalStatus.PENDING, WithdrawalStatus.APPROVED},
}

# States whose amount still sits in reserved_balance
OPEN_WITHDRAWAL_STATUSES = (WithdrawalStatus.PENDING, WithdrawalStatus.APPROVED)


class Withdrawal(Base):
    """Partner cash-out request."""
    
    __tablename__ = 'withdrawal'
    
    id = Column(BigId, primary_key=True, autoincrement=True)
    partner_id = Column(BigInteger, ForeignKey('partner.id'), nullable=False, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    status = Column(Enum(WithdrawalStatus, name='withdrawal_status'), nullable=False, default=WithdrawalStatus.PENDING)
    pix_key = Column(String(140), nullable=False)
    requested_at = Column(DateTime, nullable=False, default=utcnow, server_default=func.now())
    processed_at = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)
    
    # Relationships
    partner = relationship('Partner')
    
    @property
    def is_open(self):
        return self.status in OPEN_WITHDRAWAL_STATUSES
    
    def to_dict(self):
        return {
            'id': self.id,
            'partner_id': self.partner_id,
            'amount': str(self.amount),
            'status': self.status.value,
            'pix_key': self.pix_key,
            'requested_at': self.requested_at.isoformat() if self.requested_at else None,
            'processed_at': self.processed_at.isoformat() if self.processed_at else None,
            'notes': self.notes,
        }
    
    def __repr__(self):
        return f"<Withdrawal(id={self.id}, amount={self.amount}, status={self.status.value})>"
