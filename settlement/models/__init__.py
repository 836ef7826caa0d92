"""Models package - exports all SQLAlchemy models."""
# Catalog
from settlement.models.partner import Partner, PartnerStatus
from settlement.models.product import Product
from settlement.models.partner_product import PartnerProduct

# Orders
from settlement.models.order import Order, OrderStatus, ORDER_PIPELINE, TERMINAL_ORDER_STATUSES
from settlement.models.order_item import OrderItem

# Ledger
from settlement.models.partner_balance import PartnerBalance, BALANCE_BUCKETS
from settlement.models.partner_transaction import PartnerTransaction, TransactionType
from settlement.models.withdrawal import (
    Withdrawal, WithdrawalStatus, WITHDRAWAL_TRANSITIONS, OPEN_WITHDRAWAL_STATUSES
)
from settlement.models.payment_settings import PaymentSettings, PAYMENT_SETTINGS_ID

__all__ = [
    # Catalog
    'Partner', 'PartnerStatus', 'Product', 'PartnerProduct',
    # Orders
    'Order', 'OrderStatus', 'ORDER_PIPELINE', 'TERMINAL_ORDER_STATUSES', 'OrderItem',
    # Ledger
    'PartnerBalance', 'BALANCE_BUCKETS', 'PartnerTransaction', 'TransactionType',
    'Withdrawal', 'WithdrawalStatus', 'WITHDRAWAL_TRANSITIONS', 'OPEN_WITHDRAWAL_STATUSES',
    'PaymentSettings', 'PAYMENT_SETTINGS_ID',
]
