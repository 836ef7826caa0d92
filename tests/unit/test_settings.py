"""
Unit tests for payment settings and money helpers.
"""

import pytest
from decimal import Decimal

from settlement.exceptions import BusinessLogicError
from settlement.models import PaymentSettings
from settlement.services import settings_service
from settlement.utils.formatters import money_br
from settlement.utils.number_format import parse_money


class TestPaymentSettings:
    """Withdrawal policy singleton."""

    def test_defaults_without_row(self, session):
        settings = settings_service.get_payment_settings(session)

        assert settings.min_withdrawal_amount == Decimal('50.00')
        assert settings.min_days_to_withdraw == 7
        assert session.query(PaymentSettings).count() == 0

    def test_update_creates_singleton(self, session):
        settings_service.update_payment_settings(session, min_withdrawal_amount='25,00')
        settings_service.update_payment_settings(session, min_days_to_withdraw=3)

        rows = session.query(PaymentSettings).all()
        assert len(rows) == 1
        assert rows[0].min_withdrawal_amount == Decimal('25.00')
        assert rows[0].min_days_to_withdraw == 3

    @pytest.mark.parametrize('kwargs', [
        {'min_withdrawal_amount': '-1'},
        {'min_withdrawal_amount': 'abc'},
        {'min_days_to_withdraw': -2},
        {'min_days_to_withdraw': 'sete'},
    ])
    def test_invalid_values(self, session, kwargs):
        with pytest.raises(BusinessLogicError):
            settings_service.update_payment_settings(session, **kwargs)


class TestMoneyHelpers:
    """Parsing and formatting of BRL amounts."""

    @pytest.mark.parametrize('raw, expected', [
        ('28.00', Decimal('28.00')),
        ('1.234,56', Decimal('1234.56')),
        ('R$ 10,5', Decimal('10.50')),
        (12, Decimal('12.00')),
        (Decimal('0.005'), Decimal('0.01')),
    ])
    def test_parse_money(self, raw, expected):
        assert parse_money(raw) == expected

    @pytest.mark.parametrize('raw', ['', None, 'dez', '-5.00'])
    def test_parse_money_rejects(self, raw):
        with pytest.raises(ValueError):
            parse_money(raw)

    def test_money_br(self):
        assert money_br(Decimal('1234.5')) == '1.234,50'
