"""
Order service - placement with frozen prices and the status pipeline.

Moving an order into 'delivered' settles partner profit inside the same
transaction; if settlement fails the status change is rolled back.
"""
from decimal import Decimal
from typing import List, Dict, Any, Optional
import logging

from settlement.exceptions import (
    BusinessLogicError, NotFoundError, NotConfigured, InvalidTransition, LedgerInconsistency
)
from settlement.models import (
    Order, OrderItem, OrderStatus, ORDER_PIPELINE, TERMINAL_ORDER_STATUSES,
    Partner, Product, PartnerProduct
)
from settlement.services import ledger_service, settlement_service
from settlement.utils.number_format import to_money, utcnow

logger = logging.getLogger(__name__)

ORDER_NUMBER_OFFSET = 1000


def _merge_items(items: List[Dict[str, Any]]) -> Dict[int, int]:
    """Collapse repeated product ids into one quantity per product."""
    if not items:
        raise BusinessLogicError('O pedido deve ter pelo menos um item')

    merged = {}
    for item in items:
        try:
            product_id = int(item['product_id'])
            quantity = int(item.get('quantity', 1))
        except (KeyError, TypeError, ValueError):
            raise BusinessLogicError('Item de pedido inválido')

        if quantity <= 0:
            raise BusinessLogicError('A quantidade deve ser maior que zero')

        merged[product_id] = merged.get(product_id, 0) + quantity

    return merged


def place_order(session, partner_id: Optional[int], items: List[Dict[str, Any]],
                customer_name: str, customer_phone: str) -> Order:
    """
    Create an order with its lines.

    Partner orders are sold at the partner's active selling price; direct
    orders (partner_id=None) at the catalog cost price. Each line keeps
    unit_price and unit_cost as they were at placement.

    Raises:
        NotFoundError: unknown partner or product
        NotConfigured: partner does not sell one of the products
        BusinessLogicError: empty order, bad quantity or inactive partner
    """
    try:
        if not customer_name or not customer_phone:
            raise BusinessLogicError('Nome e telefone do cliente são obrigatórios')

        quantities = _merge_items(items)

        if partner_id is not None:
            partner = session.query(Partner).filter(Partner.id == partner_id).first()
            if not partner:
                raise NotFoundError(f'Parceiro {partner_id} não encontrado')
            if not partner.is_active:
                raise BusinessLogicError('Esta loja não está aceitando pedidos')

        products = session.query(Product).filter(
            Product.id.in_(list(quantities.keys())),
            Product.active == True
        ).all()
        products_dict = {p.id: p for p in products}

        missing = [pid for pid in quantities if pid not in products_dict]
        if missing:
            raise NotFoundError(f'Produto {missing[0]} não encontrado')

        prices = {}
        if partner_id is not None:
            partner_products = session.query(PartnerProduct).filter(
                PartnerProduct.partner_id == partner_id,
                PartnerProduct.product_id.in_(list(quantities.keys())),
                PartnerProduct.is_active == True
            ).all()
            prices = {pp.product_id: to_money(pp.selling_price) for pp in partner_products}

            for pid in quantities:
                if pid not in prices:
                    raise NotConfigured(partner_id, pid)
        else:
            prices = {pid: to_money(products_dict[pid].cost_price) for pid in quantities}

        order = Order(
            partner_id=partner_id,
            status=OrderStatus.PENDING,
            customer_name=customer_name,
            customer_phone=customer_phone
        )
        session.add(order)

        subtotal = Decimal('0.00')
        for pid, quantity in quantities.items():
            product = products_dict[pid]
            unit_price = prices[pid]
            line_total = to_money(unit_price * quantity)
            order.items.append(OrderItem(
                product_id=pid,
                product_name=product.name,
                quantity=quantity,
                unit_price=unit_price,
                unit_cost=to_money(product.cost_price),
                total_price=line_total
            ))
            subtotal += line_total

        order.subtotal = to_money(subtotal)
        order.total = to_money(subtotal)
        session.flush()

        order.order_number = ORDER_NUMBER_OFFSET + order.id
        session.commit()

        logger.info(
            f"Order {order.order_number} placed: partner={partner_id} "
            f"items={len(quantities)} total={order.total}"
        )
        return order

    except Exception:
        session.rollback()
        raise


def _parse_status(value) -> OrderStatus:
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus(str(value).lower())
    except ValueError:
        raise BusinessLogicError(f'Status de pedido inválido: {value}')


def _check_transition(order: Order, target: OrderStatus):
    current = order.status
    if current in TERMINAL_ORDER_STATUSES:
        raise InvalidTransition('pedido', order.id, current.value, target.value)
    if target == OrderStatus.CANCELLED:
        return
    if ORDER_PIPELINE.index(target) <= ORDER_PIPELINE.index(current):
        raise InvalidTransition('pedido', order.id, current.value, target.value)


def update_order_status(session, order_id: int, new_status) -> Order:
    """
    Move an order along the pipeline.

    Forward moves only; 'cancelled' from any non-terminal state. Repeating
    the current status is a no-op, so a duplicated 'delivered' event never
    settles twice.

    Raises:
        NotFoundError: unknown order
        InvalidTransition: backwards move or move out of a terminal state
        PartnerFrozen: delivering for a partner whose balance is frozen
        LedgerInconsistency: settlement broke the balance invariant (partner is frozen)
    """
    target = _parse_status(new_status)

    try:
        order = session.query(Order).filter(Order.id == order_id).with_for_update().first()
        if not order:
            raise NotFoundError(f'Pedido {order_id} não encontrado')

        previous = order.status
        if previous == target:
            session.rollback()
            logger.info(f"Order {order_id} already {target.value}; nothing to do")
            return order

        _check_transition(order, target)

        order.status = target
        if target == OrderStatus.DELIVERED:
            order.delivered_at = utcnow()
            settlement_service.settle_order(session, order, previous_status=previous)

        session.commit()
        logger.info(f"Order {order_id} status: {previous.value} -> {target.value}")
        return order

    except InvalidTransition as e:
        session.rollback()
        logger.warning(f"Rejected order status change: {e.message}")
        raise
    except LedgerInconsistency as e:
        ledger_service.handle_inconsistency(session, e)
        raise
    except Exception:
        session.rollback()
        raise


def get_order(session, order_id: int) -> Order:
    order = session.query(Order).filter(Order.id == order_id).first()
    if not order:
        raise NotFoundError(f'Pedido {order_id} não encontrado')
    return order


def order_to_dict(order: Order) -> dict:
    return {
        'id': order.id,
        'order_number': order.order_number,
        'partner_id': order.partner_id,
        'status': order.status.value,
        'customer_name': order.customer_name,
        'subtotal': str(order.subtotal),
        'total': str(order.total),
        'delivered_at': order.delivered_at.isoformat() if order.delivered_at else None,
        'settled_at': order.settled_at.isoformat() if order.settled_at else None,
        'partner_profit': str(order.partner_profit) if order.partner_profit is not None else None,
        'items': [
            {
                'product_id': item.product_id,
                'product_name': item.product_name,
                'quantity': item.quantity,
                'unit_price': str(item.unit_price),
                'total_price': str(item.total_price),
            }
            for item in order.items
        ],
    }
