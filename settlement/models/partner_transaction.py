"""Partner Transaction model (extrato do parceiro)."""
from sqlalchemy import Column, BigInteger, Numeric, DateTime, String, Enum, ForeignKey, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from settlement.database import Base, BigId
from settlement.utils.number_format import utcnow
import enum


class TransactionType(enum.Enum):
    """Transaction type enum."""
    SALE = "sale"
    WITHDRAWAL = "withdrawal"
    ADJUSTMENT = "adjustment"
    REFUND = "refund"


class PartnerTransaction(Base):
    """Append-only ledger entry. Never updated except for released_at on sale entries."""
    
    __tablename__ = 'partner_transaction'
    __table_args__ = (
        Index('ix_partner_transaction_partner_created', 'partner_id', 'created_at'),
    )
    
    id = Column(BigId, primary_key=True, autoincrement=True)
    partner_id = Column(BigInteger, ForeignKey('partner.id'), nullable=False)
    type = Column(Enum(TransactionType, name='partner_transaction_type'), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)  # signed
    balance_after = Column(Numeric(10, 2), nullable=False)
    reference_id = Column(BigInteger, nullable=True)  # order id or withdrawal id
    description = Column(String(500), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, server_default=func.now())
    # Sale entries: when the amount moved from pending to available
    released_at = Column(DateTime, nullable=True)
    
    # Relationships
    partner = relationship('Partner')
    
    def to_dict(self):
        return {
            'id': self.id,
            'type': self.type.value,
            'amount': str(self.amount),
            'balance_after': str(self.balance_after),
            'reference_id': self.reference_id,
            'description': self.description,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'released_at': self.released_at.isoformat() if self.released_at else None,
        }
    
    def __repr__(self):
        return f"<PartnerTransaction(id={self.id}, type={self.type.value}, amount={self.amount})>"
