"""
Unit tests for order placement and the status pipeline.
"""

import pytest
from decimal import Decimal

from settlement.exceptions import BusinessLogicError, NotFoundError, NotConfigured, InvalidTransition
from settlement.models import Order, OrderStatus
from settlement.services import order_service


class TestPlaceOrder:
    """Tests for order placement."""

    def test_partner_order_uses_selling_price(self, session, partner, product, partner_product):
        order = order_service.place_order(
            session, partner.id, [{'product_id': product.id, 'quantity': 3}],
            'Ana Lima', '21977776666'
        )

        assert order.order_number == 1000 + order.id
        assert order.status == OrderStatus.PENDING
        assert order.total == Decimal('84.00')
        item = order.items[0]
        assert item.unit_price == Decimal('28.00')
        assert item.unit_cost == Decimal('20.00')
        assert item.total_price == Decimal('84.00')

    def test_direct_order_uses_cost_price(self, session, product):
        order = order_service.place_order(
            session, None, [{'product_id': product.id, 'quantity': 2}],
            'Ana Lima', '21977776666'
        )

        assert order.partner_id is None
        assert order.total == Decimal('40.00')

    def test_duplicate_lines_are_merged(self, session, partner, product, partner_product):
        order = order_service.place_order(
            session, partner.id,
            [{'product_id': product.id, 'quantity': 1}, {'product_id': product.id, 'quantity': 2}],
            'Ana Lima', '21977776666'
        )

        assert len(order.items) == 1
        assert order.items[0].quantity == 3

    def test_unpriced_product_is_rejected(self, session, partner, product):
        with pytest.raises(NotConfigured):
            order_service.place_order(
                session, partner.id, [{'product_id': product.id, 'quantity': 1}],
                'Ana Lima', '21977776666'
            )

        assert session.query(Order).count() == 0

    def test_inactive_storefront_product_is_rejected(self, session, partner, product, set_price):
        set_price(partner, product, '30.00', is_active=False)

        with pytest.raises(NotConfigured):
            order_service.place_order(
                session, partner.id, [{'product_id': product.id, 'quantity': 1}],
                'Ana Lima', '21977776666'
            )

    def test_pending_partner_cannot_sell(self, session, pending_partner, product):
        with pytest.raises(BusinessLogicError):
            order_service.place_order(
                session, pending_partner.id, [{'product_id': product.id, 'quantity': 1}],
                'Ana Lima', '21977776666'
            )

    def test_unknown_product(self, session, product):
        with pytest.raises(NotFoundError):
            order_service.place_order(
                session, None, [{'product_id': 4242, 'quantity': 1}],
                'Ana Lima', '21977776666'
            )

    @pytest.mark.parametrize('items', [[], [{'product_id': 1, 'quantity': 0}], [{'quantity': 1}]])
    def test_invalid_items(self, session, product, items):
        with pytest.raises(BusinessLogicError):
            order_service.place_order(session, None, items, 'Ana Lima', '21977776666')


class TestOrderStatus:
    """Pipeline transitions."""

    @pytest.fixture
    def order(self, session, partner, product, partner_product):
        return order_service.place_order(
            session, partner.id, [{'product_id': product.id, 'quantity': 1}],
            'Ana Lima', '21977776666'
        )

    def test_forward_moves(self, session, order):
        for status in ('confirmed', 'preparing', 'ready', 'delivering', 'delivered'):
            order_service.update_order_status(session, order.id, status)

        order = session.get(Order, order.id)
        assert order.status == OrderStatus.DELIVERED
        assert order.delivered_at is not None

    def test_skipping_stages_is_allowed(self, session, order):
        order_service.update_order_status(session, order.id, 'ready')
        assert session.get(Order, order.id).status == OrderStatus.READY

    def test_backwards_move_is_rejected(self, session, order):
        order_service.update_order_status(session, order.id, 'ready')

        with pytest.raises(InvalidTransition):
            order_service.update_order_status(session, order.id, 'confirmed')

        assert session.get(Order, order.id).status == OrderStatus.READY

    def test_cancel_from_open_state(self, session, order):
        order_service.update_order_status(session, order.id, 'preparing')
        order_service.update_order_status(session, order.id, 'cancelled')

        assert session.get(Order, order.id).status == OrderStatus.CANCELLED

    def test_cancelled_is_terminal(self, session, order):
        order_service.update_order_status(session, order.id, 'cancelled')

        with pytest.raises(InvalidTransition):
            order_service.update_order_status(session, order.id, 'delivered')

    def test_delivered_cannot_be_cancelled(self, session, order):
        order_service.update_order_status(session, order.id, 'delivered')

        with pytest.raises(InvalidTransition):
            order_service.update_order_status(session, order.id, 'cancelled')

    def test_same_status_is_noop(self, session, order):
        order_service.update_order_status(session, order.id, 'pending')
        assert session.get(Order, order.id).status == OrderStatus.PENDING

    def test_unknown_status(self, session, order):
        with pytest.raises(BusinessLogicError):
            order_service.update_order_status(session, order.id, 'shipped')

    def test_unknown_order(self, session):
        with pytest.raises(NotFoundError):
            order_service.update_order_status(session, 999, 'confirmed')
