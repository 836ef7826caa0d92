"""
Unit tests for partner selling prices.
"""

import pytest
from decimal import Decimal

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from settlement.database import Base
from settlement.exceptions import BusinessLogicError, NotFoundError, InvalidPrice, NotConfigured
from settlement.models import Partner, PartnerStatus, Product, PartnerProduct
from settlement.services import pricing_service


class TestSetSellingPrice:
    """Price floor: selling price must exceed cost price."""

    def test_price_equal_to_cost_is_rejected(self, session, partner, product):
        with pytest.raises(InvalidPrice):
            pricing_service.set_selling_price(session, partner.id, product.id, '20.00')

        assert session.query(PartnerProduct).count() == 0

    def test_price_below_cost_is_rejected(self, session, partner, product):
        with pytest.raises(InvalidPrice) as exc_info:
            pricing_service.set_selling_price(session, partner.id, product.id, Decimal('19.99'))

        assert exc_info.value.status_code == 422

    def test_one_cent_above_cost_is_accepted(self, session, partner, product):
        pp = pricing_service.set_selling_price(session, partner.id, product.id, Decimal('20.01'))

        assert pp.selling_price == Decimal('20.01')
        assert pp.is_active is True

    def test_update_existing_price(self, session, partner, product, partner_product):
        pricing_service.set_selling_price(session, partner.id, product.id, '35,50')

        rows = session.query(PartnerProduct).filter_by(partner_id=partner.id).all()
        assert len(rows) == 1
        assert rows[0].selling_price == Decimal('35.50')

    def test_concurrent_first_pricing_updates_instead_of_failing(self, tmp_path):
        """Another request creates the row between our checks and our insert."""
        engine = create_engine(f'sqlite:///{tmp_path}/pricing.db')
        Base.metadata.create_all(bind=engine)
        Session = sessionmaker(autoflush=False, bind=engine)

        setup = Session()
        seller = Partner(
            store_name='Loja', store_slug='loja-preco', owner_name='Dono',
            owner_email='dono@teste.com', status=PartnerStatus.ACTIVE
        )
        item = Product(name='Caneca', cost_price=Decimal('20.00'), active=True)
        setup.add_all([seller, item])
        setup.commit()
        partner_id, product_id = seller.id, item.id
        setup.close()

        raced = []

        @event.listens_for(engine, 'before_cursor_execute')
        def other_request_prices_first(conn, cursor, statement, parameters, context, executemany):
            if raced or not statement.startswith('INSERT INTO partner_product'):
                return
            raced.append(True)
            with engine.connect() as other:
                other.execute(PartnerProduct.__table__.insert().values(
                    partner_id=partner_id, product_id=product_id,
                    selling_price=Decimal('25.00'), is_active=True
                ))
                other.commit()

        session = Session()
        pricing_service.set_selling_price(session, partner_id, product_id, '30.00')

        rows = session.query(PartnerProduct).all()
        assert raced == [True]
        assert len(rows) == 1
        assert rows[0].selling_price == Decimal('30.00')

        session.close()
        engine.dispose()

    def test_invalid_update_keeps_previous_price(self, session, partner, product, partner_product):
        with pytest.raises(InvalidPrice):
            pricing_service.set_selling_price(session, partner.id, product.id, '15.00')

        resolved = pricing_service.resolve_price(session, partner.id, product.id)
        assert resolved['selling_price'] == Decimal('28.00')

    def test_inactive_partner_cannot_price(self, session, pending_partner, product):
        with pytest.raises(BusinessLogicError):
            pricing_service.set_selling_price(session, pending_partner.id, product.id, '30.00')

    def test_unknown_product(self, session, partner):
        with pytest.raises(NotFoundError):
            pricing_service.set_selling_price(session, partner.id, 9999, '30.00')

    def test_malformed_price(self, session, partner, product):
        with pytest.raises(BusinessLogicError):
            pricing_service.set_selling_price(session, partner.id, product.id, 'trinta')


class TestResolvePrice:
    """Tests for price resolution and catalog listing."""

    def test_resolve_returns_margin(self, session, partner, product, partner_product):
        resolved = pricing_service.resolve_price(session, partner.id, product.id)

        assert resolved['cost_price'] == Decimal('20.00')
        assert resolved['selling_price'] == Decimal('28.00')
        assert resolved['margin'] == Decimal('8.00')
        assert resolved['margin_percent'] == Decimal('40.00')

    def test_not_configured(self, session, partner, product):
        with pytest.raises(NotConfigured):
            pricing_service.resolve_price(session, partner.id, product.id)

    def test_prices_are_per_partner(self, session, partner, other_partner, product, partner_product):
        with pytest.raises(NotConfigured):
            pricing_service.resolve_price(session, other_partner.id, product.id)

    def test_remove_partner_product(self, session, partner, product, partner_product):
        pricing_service.remove_partner_product(session, partner.id, product.id)

        with pytest.raises(NotConfigured):
            pricing_service.resolve_price(session, partner.id, product.id)

    def test_catalog_lists_configured_and_unconfigured(self, session, partner, product, partner_product, make_product):
        make_product('5.00', name='Adesivo')

        catalog = pricing_service.list_partner_catalog(session, partner.id)
        by_name = {item['name']: item for item in catalog}

        assert by_name['Camiseta Básica']['selling_price'] == '28.00'
        assert by_name['Camiseta Básica']['margin'] == '8.00'
        assert by_name['Adesivo']['selling_price'] is None
        assert by_name['Adesivo']['is_active'] is False
