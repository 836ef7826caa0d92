"""
Unit tests for the withdrawal manager.
"""

import pytest
from decimal import Decimal

from settlement.exceptions import (
    BusinessLogicError, NotFoundError, BelowMinimum, InsufficientFunds, InvalidTransition, PartnerFrozen
)
from settlement.models import PartnerTransaction, TransactionType, Withdrawal, WithdrawalStatus
from settlement.services import ledger_service, settings_service, withdrawal_service

PIX = 'maria@teste.com'


class TestRequestWithdrawal:
    """Requesting moves funds from available to reserved."""

    def test_above_available_fails(self, session, partner, fund_partner):
        fund_partner(partner, '100.00')

        with pytest.raises(InsufficientFunds):
            withdrawal_service.request_withdrawal(session, partner.id, '150.00', PIX)

        balance = ledger_service.get_balance(session, partner.id)
        assert balance.available_balance == Decimal('100.00')
        assert balance.reserved_balance == Decimal('0.00')
        assert session.query(Withdrawal).count() == 0

    def test_request_reserves_funds(self, session, partner, fund_partner):
        fund_partner(partner, '100.00')

        withdrawal = withdrawal_service.request_withdrawal(session, partner.id, '60.00', PIX)

        balance = ledger_service.get_balance(session, partner.id)
        assert withdrawal.status == WithdrawalStatus.PENDING
        assert balance.available_balance == Decimal('40.00')
        assert balance.reserved_balance == Decimal('60.00')
        assert balance.total_withdrawn == Decimal('0.00')

    def test_below_minimum(self, session, partner, fund_partner):
        fund_partner(partner, '100.00')

        with pytest.raises(BelowMinimum):
            withdrawal_service.request_withdrawal(session, partner.id, '49.99', PIX)

    def test_minimum_follows_settings(self, session, partner, fund_partner):
        fund_partner(partner, '100.00')
        settings_service.update_payment_settings(session, min_withdrawal_amount='10.00')

        withdrawal = withdrawal_service.request_withdrawal(session, partner.id, '10.00', PIX)

        assert withdrawal.amount == Decimal('10.00')

    def test_same_funds_cannot_back_two_requests(self, session, partner, fund_partner):
        fund_partner(partner, '100.00')

        withdrawal_service.request_withdrawal(session, partner.id, '60.00', PIX)
        with pytest.raises(InsufficientFunds):
            withdrawal_service.request_withdrawal(session, partner.id, '60.00', PIX)

        assert session.query(Withdrawal).count() == 1

    def test_pending_profit_is_not_withdrawable(self, session, partner, product, partner_product, deliver):
        from settlement.services import order_service
        order = order_service.place_order(
            session, partner.id, [{'product_id': product.id, 'quantity': 10}], 'Cliente', '11900000000'
        )
        deliver(session, order.id)

        with pytest.raises(InsufficientFunds):
            withdrawal_service.request_withdrawal(session, partner.id, '80.00', PIX)

    def test_pix_key_required(self, session, partner, fund_partner):
        fund_partner(partner, '100.00')

        with pytest.raises(BusinessLogicError):
            withdrawal_service.request_withdrawal(session, partner.id, '60.00', '  ')

    def test_frozen_partner(self, session, partner, fund_partner):
        fund_partner(partner, '100.00')
        ledger_service.freeze_partner(session, partner.id, 'teste')

        with pytest.raises(PartnerFrozen):
            withdrawal_service.request_withdrawal(session, partner.id, '60.00', PIX)


class TestResolveWithdrawal:
    """Admin resolution and the withdrawal state machine."""

    @pytest.fixture
    def withdrawal(self, session, partner, fund_partner):
        fund_partner(partner, '100.00')
        return withdrawal_service.request_withdrawal(session, partner.id, '60.00', PIX)

    def test_paid(self, session, partner, withdrawal):
        resolved = withdrawal_service.resolve_withdrawal(session, withdrawal.id, 'paid', notes='PIX enviado')

        balance = ledger_service.get_balance(session, partner.id)
        assert resolved.status == WithdrawalStatus.PAID
        assert resolved.processed_at is not None
        assert balance.available_balance == Decimal('40.00')
        assert balance.reserved_balance == Decimal('0.00')
        assert balance.total_withdrawn == Decimal('60.00')

        entries = ledger_service.list_transactions(session, partner.id, tx_type=TransactionType.WITHDRAWAL)
        assert len(entries) == 1
        assert entries[0].amount == Decimal('-60.00')
        assert entries[0].reference_id == withdrawal.id
        assert ledger_service.reconcile_partner(session, partner.id)['ok'] is True

    def test_rejected(self, session, partner, withdrawal):
        resolved = withdrawal_service.resolve_withdrawal(session, withdrawal.id, 'rejected')

        balance = ledger_service.get_balance(session, partner.id)
        assert resolved.status == WithdrawalStatus.REJECTED
        assert balance.available_balance == Decimal('100.00')
        assert balance.reserved_balance == Decimal('0.00')
        assert balance.total_withdrawn == Decimal('0.00')
        assert session.query(PartnerTransaction).filter_by(type=TransactionType.WITHDRAWAL).count() == 0

    def test_resolving_twice_fails(self, session, partner, withdrawal):
        withdrawal_service.resolve_withdrawal(session, withdrawal.id, 'paid')

        with pytest.raises(InvalidTransition):
            withdrawal_service.resolve_withdrawal(session, withdrawal.id, 'paid')
        with pytest.raises(InvalidTransition):
            withdrawal_service.resolve_withdrawal(session, withdrawal.id, 'rejected')

        assert ledger_service.get_balance(session, partner.id).total_withdrawn == Decimal('60.00')

    def test_approved_then_paid(self, session, partner, withdrawal):
        approved = withdrawal_service.approve_withdrawal(session, withdrawal.id)
        assert approved.status == WithdrawalStatus.APPROVED
        assert approved.processed_at is None

        withdrawal_service.resolve_withdrawal(session, withdrawal.id, 'paid')

        assert ledger_service.get_balance(session, partner.id).total_withdrawn == Decimal('60.00')

    def test_approved_cannot_be_rejected(self, session, withdrawal):
        withdrawal_service.approve_withdrawal(session, withdrawal.id)

        with pytest.raises(InvalidTransition):
            withdrawal_service.resolve_withdrawal(session, withdrawal.id, 'rejected')

    def test_invalid_decision(self, session, withdrawal):
        with pytest.raises(BusinessLogicError):
            withdrawal_service.resolve_withdrawal(session, withdrawal.id, 'approved')

    def test_unknown_withdrawal(self, session):
        with pytest.raises(NotFoundError):
            withdrawal_service.resolve_withdrawal(session, 999, 'paid')


class TestCancelWithdrawal:
    """Partner-initiated cancellation."""

    def test_cancel_returns_funds(self, session, partner, fund_partner):
        fund_partner(partner, '100.00')
        withdrawal = withdrawal_service.request_withdrawal(session, partner.id, '60.00', PIX)

        cancelled = withdrawal_service.cancel_withdrawal(session, withdrawal.id, partner.id)

        assert cancelled.status == WithdrawalStatus.CANCELLED
        assert ledger_service.get_balance(session, partner.id).available_balance == Decimal('100.00')

    def test_other_partner_cannot_cancel(self, session, partner, other_partner, fund_partner):
        fund_partner(partner, '100.00')
        withdrawal = withdrawal_service.request_withdrawal(session, partner.id, '60.00', PIX)

        with pytest.raises(NotFoundError):
            withdrawal_service.cancel_withdrawal(session, withdrawal.id, other_partner.id)

    def test_list_withdrawals(self, session, partner, fund_partner):
        fund_partner(partner, '200.00')
        first = withdrawal_service.request_withdrawal(session, partner.id, '60.00', PIX)
        second = withdrawal_service.request_withdrawal(session, partner.id, '70.00', PIX)
        withdrawal_service.resolve_withdrawal(session, first.id, 'rejected')

        everything = withdrawal_service.list_withdrawals(session, partner_id=partner.id)
        pending = withdrawal_service.list_withdrawals(session, status='pending')

        assert [w.id for w in everything] == [second.id, first.id]
        assert [w.id for w in pending] == [second.id]
