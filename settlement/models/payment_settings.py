"""Payment Settings model (singleton)."""
from sqlalchemy import Column, Integer, Numeric, DateTime, CheckConstraint
from sqlalchemy.sql import func
from settlement.database import Base
from settlement.utils.number_format import utcnow


PAYMENT_SETTINGS_ID = 1


class PaymentSettings(Base):
    """Withdrawal policy. A single row with id=1."""
    
    __tablename__ = 'payment_settings'
    __table_args__ = (
        CheckConstraint('id = 1', name='ck_payment_settings_singleton'),
    )
    
    id = Column(Integer, primary_key=True, default=PAYMENT_SETTINGS_ID)
    min_withdrawal_amount = Column(Numeric(10, 2), nullable=False)
    min_days_to_withdraw = Column(Integer, nullable=False)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow, server_default=func.now())
    
    def to_dict(self):
        return {
            'min_withdrawal_amount': str(self.min_withdrawal_amount),
            'min_days_to_withdraw': self.min_days_to_withdraw,
        }
    
    def __repr__(self):
        return f"<PaymentSettings(min_withdrawal_amount={self.min_withdrawal_amount}, min_days_to_withdraw={self.min_days_to_withdraw})>"
