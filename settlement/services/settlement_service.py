"""
Order settlement engine - posts partner profit when an order is delivered.

This is the only place partner profit is computed. It runs inside the
transaction that moves the order to 'delivered', so the status change and
the ledger posting commit or roll back together.
"""
from decimal import Decimal
import logging
import time

from sqlalchemy import update
from sqlalchemy.exc import OperationalError

from settlement.exceptions import BusinessLogicError, LedgerInconsistency, PartnerFrozen
from settlement.models import Order, OrderStatus
from settlement.services import ledger_service
from settlement.services.metrics_service import record_settlement
from settlement.utils.number_format import to_money, utcnow
from settlement.utils.runtime import config_value

logger = logging.getLogger(__name__)

ZERO = Decimal('0.00')
COST_BASES = ('current', 'frozen')


def _cost_basis(cost_basis=None):
    cost_basis = (cost_basis or config_value('SETTLEMENT_COST_BASIS', 'current')).lower()
    if cost_basis not in COST_BASES:
        raise BusinessLogicError(f'SETTLEMENT_COST_BASIS inválido: {cost_basis}')
    return cost_basis


def _line_cost(session, item, cost_basis) -> Decimal:
    """Cost of one unit on an order line."""
    if cost_basis == 'frozen' and item.unit_cost is not None:
        return to_money(item.unit_cost)

    product = item.product
    if product is not None:
        return to_money(product.cost_price)

    if item.unit_cost is not None:
        logger.warning(
            f"Product {item.product_id} missing for order item {item.id}; using cost snapshot {item.unit_cost}"
        )
        return to_money(item.unit_cost)

    # No cost known: the line earns nothing
    logger.warning(f"No cost available for order item {item.id}; line settles at zero profit")
    return to_money(item.unit_price)


def compute_order_profit(session, order: Order, cost_basis=None) -> Decimal:
    """
    Sum of (unit_price - unit cost) * quantity over the order lines.

    Loss-making lines reduce the total; the caller decides what to do with a
    non-positive result.

    Args:
        cost_basis: 'current' (product cost at settlement time, default) or
            'frozen' (cost captured when the order was placed)
    """
    cost_basis = _cost_basis(cost_basis)
    total = ZERO

    for item in order.items:
        cost = _line_cost(session, item, cost_basis)
        total += (to_money(item.unit_price) - cost) * int(item.quantity)

    return to_money(total)


def _claim_settlement(session, order: Order, now) -> bool:
    """Set settled_at only if nobody did it before (conditional UPDATE)."""
    claimed = session.execute(
        update(Order)
        .where(Order.id == order.id, Order.settled_at.is_(None))
        .values(settled_at=now)
        .execution_options(synchronize_session=False)
    ).rowcount
    return claimed == 1


def settle_order(session, order: Order, previous_status=None):
    """
    Post partner profit for a delivered order. Does not commit.

    Args:
        session: SQLAlchemy session (the caller's transaction)
        order: Order already in 'delivered'
        previous_status: status before this change; DELIVERED means duplicate event

    Returns:
        The 'sale' PartnerTransaction, or None when nothing was posted
    """
    if order.partner_id is None:
        logger.debug(f"Order {order.id} has no partner; nothing to settle")
        record_settlement('no_partner')
        _mark_settled(session, order, ZERO)
        return None

    if previous_status == OrderStatus.DELIVERED:
        logger.warning(f"Order {order.id} was already delivered; settlement skipped")
        record_settlement('duplicate')
        return None

    now = utcnow()
    if not _claim_settlement(session, order, now):
        logger.warning(f"Order {order.id} already settled; settlement skipped")
        record_settlement('duplicate')
        return None

    profit = compute_order_profit(session, order)

    if profit <= 0:
        logger.warning(f"Order {order.id} has non-positive partner profit ({profit}); nothing posted")
        session.execute(
            update(Order)
            .where(Order.id == order.id)
            .values(partner_profit=ZERO)
            .execution_options(synchronize_session=False)
        )
        record_settlement('no_profit')
        return None

    entry = ledger_service.record_sale(session, order.partner_id, profit, order)

    session.execute(
        update(Order)
        .where(Order.id == order.id)
        .values(partner_profit=profit)
        .execution_options(synchronize_session=False)
    )

    record_settlement('posted', profit)
    logger.info(f"Order {order.id} settled: partner={order.partner_id} profit={profit}")
    return entry


def _mark_settled(session, order, profit):
    session.execute(
        update(Order)
        .where(Order.id == order.id, Order.settled_at.is_(None))
        .values(settled_at=utcnow(), partner_profit=profit)
        .execution_options(synchronize_session=False)
    )


def settle_pending_orders(session, retry_limit=None, backoff=0.5) -> dict:
    """
    Recovery sweep: settle orders that are 'delivered' without settled_at.

    Each order commits on its own and gets up to retry_limit attempts
    (default SETTLEMENT_RETRY_LIMIT; 0 means a single attempt) when storage
    errors occur. Orders that still fail stay unsettled for the next run.

    Returns:
        Dict with settled, skipped and failed order id lists
    """
    if retry_limit is None:
        retry_limit = config_value('SETTLEMENT_RETRY_LIMIT', 3)
    attempts = max(int(retry_limit), 1)

    order_ids = [
        row[0] for row in session.query(Order.id).filter(
            Order.status == OrderStatus.DELIVERED,
            Order.settled_at.is_(None)
        ).order_by(Order.id).all()
    ]
    summary = {'settled': [], 'skipped': [], 'failed': []}

    for order_id in order_ids:
        for attempt in range(1, attempts + 1):
            try:
                order = session.query(Order).filter(Order.id == order_id).with_for_update().first()
                if order is None or order.is_settled:
                    session.rollback()
                    break

                settle_order(session, order, previous_status=None)
                session.commit()
                summary['settled'].append(order_id)
                break

            except PartnerFrozen:
                session.rollback()
                logger.warning(f"Order {order_id} not settled: partner balance frozen")
                summary['skipped'].append(order_id)
                break
            except LedgerInconsistency as e:
                ledger_service.handle_inconsistency(session, e)
                summary['failed'].append(order_id)
                break
            except OperationalError:
                session.rollback()
                if attempt == attempts:
                    logger.error(f"Order {order_id} settlement failed after {attempt} attempts", exc_info=True)
                    summary['failed'].append(order_id)
                else:
                    logger.warning(f"Order {order_id} settlement attempt {attempt} failed; retrying")
                    time.sleep(backoff * attempt)
            except Exception:
                session.rollback()
                raise

    logger.info(
        f"Settlement sweep: {len(summary['settled'])} settled, "
        f"{len(summary['skipped'])} skipped, {len(summary['failed'])} failed"
    )
    return summary
