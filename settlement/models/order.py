"""Order model."""
from sqlalchemy import Column, BigInteger, String, Numeric, DateTime, Enum, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from settlement.database import Base, BigId
from settlement.utils.number_format import utcnow
import enum


class OrderStatus(enum.Enum):
    """Order status enum."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    DELIVERING = "delivering"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


# Forward-only pipeline; CANCELLED sits outside it
ORDER_PIPELINE = [
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PREPARING,
    OrderStatus.READY,
    OrderStatus.DELIVERING,
    OrderStatus.DELIVERED,
]

TERMINAL_ORDER_STATUSES = {OrderStatus.DELIVERED, OrderStatus.CANCELLED}


class Order(Base):
    """Customer order. Never deleted: it is a financial record."""
    
    __tablename__ = 'orders'
    
    id = Column(BigId, primary_key=True, autoincrement=True)
    # Customer-facing number, assigned right after the row gets its id
    order_number = Column(BigInteger, nullable=True, unique=True)
    # NULL partner_id = direct sale, no partner profit
    partner_id = Column(BigInteger, ForeignKey('partner.id'), nullable=True, index=True)
    status = Column(Enum(OrderStatus, name='order_status'), nullable=False, default=OrderStatus.PENDING)
    customer_name = Column(String, nullable=False)
    customer_phone = Column(String, nullable=False)
    subtotal = Column(Numeric(10, 2), nullable=False, default=0)
    total = Column(Numeric(10, 2), nullable=False, default=0)
    delivered_at = Column(DateTime, nullable=True)
    
    # Settlement marker: set in the same transaction that posts the profit
    settled_at = Column(DateTime, nullable=True)
    partner_profit = Column(Numeric(10, 2), nullable=True)
    
    created_at = Column(DateTime, nullable=False, default=utcnow, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow, server_default=func.now())
    
    # Relationships
    partner = relationship('Partner')
    items = relationship('OrderItem', back_populates='order', cascade='all, delete-orphan')
    
    @property
    def is_settled(self):
        return self.settled_at is not None
    
    def __repr__(self):
        return f"<Order(id={self.id}, number={self.order_number}, status={self.status.value})>"
