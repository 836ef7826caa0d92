import pytest
from datetime import timedelta
from decimal import Decimal
import uuid

from sqlalchemy.orm import sessionmaker

from config import TestConfig
from settlement import create_app
from settlement.database import Base, build_engine, create_tables, get_session
from settlement.models import (
    Partner, PartnerStatus, Product, PartnerProduct, OrderStatus
)
from settlement.services import ledger_service, order_service
from settlement.utils.number_format import utcnow


# =====================================================
# UNIT FIXTURES (services against in-memory SQLite)
# =====================================================

@pytest.fixture(scope='function')
def engine():
    """Fresh in-memory database per test."""
    engine = build_engine('sqlite://')
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope='function')
def session(engine):
    """Create database session for testing."""
    Session = sessionmaker(autoflush=False, bind=engine)
    session = Session()
    yield session
    session.rollback()
    session.close()


def _make_partner(session, status=PartnerStatus.ACTIVE):
    suffix = str(uuid.uuid4())[:8]
    partner = Partner(
        store_name=f'Loja Teste {suffix}',
        store_slug=f'loja-teste-{suffix}',
        owner_name='Maria Souza',
        owner_email=f'maria-{suffix}@teste.com',
        status=status
    )
    session.add(partner)
    session.commit()
    return partner


def _make_product(session, cost_price, name=None):
    product = Product(
        name=name or f'Produto {str(uuid.uuid4())[:8]}',
        cost_price=Decimal(str(cost_price)),
        active=True
    )
    session.add(product)
    session.commit()
    return product


def _price(session, partner, product, selling_price, is_active=True):
    partner_product = PartnerProduct(
        partner_id=partner.id,
        product_id=product.id,
        selling_price=Decimal(str(selling_price)),
        is_active=is_active
    )
    session.add(partner_product)
    session.commit()
    return partner_product


@pytest.fixture(scope='function')
def partner(session):
    """Active partner."""
    return _make_partner(session)


@pytest.fixture(scope='function')
def other_partner(session):
    """Second active partner for isolation tests."""
    return _make_partner(session)


@pytest.fixture(scope='function')
def pending_partner(session):
    """Partner awaiting approval (cannot price or sell)."""
    return _make_partner(session, status=PartnerStatus.PENDING)


@pytest.fixture(scope='function')
def product(session):
    """Catalog product costing R$ 20,00."""
    return _make_product(session, '20.00', name='Camiseta Básica')


@pytest.fixture(scope='function')
def partner_product(session, partner, product):
    """partner sells product at R$ 28,00 (R$ 8,00 margin)."""
    return _price(session, partner, product, '28.00')


@pytest.fixture(scope='function')
def deliver():
    """Move an order through the pipeline up to 'delivered'."""
    def _deliver(session, order_id):
        return order_service.update_order_status(session, order_id, OrderStatus.DELIVERED)
    return _deliver


@pytest.fixture(scope='function')
def fund_partner(session, deliver):
    """
    Give a partner withdrawable funds through the real flow:
    priced product -> order -> delivered -> matured.
    """
    def _fund(target_partner, amount):
        amount = Decimal(str(amount))
        product = _make_product(session, '10.00')
        _price(session, target_partner, product, Decimal('10.00') + amount)
        order = order_service.place_order(
            session, target_partner.id,
            [{'product_id': product.id, 'quantity': 1}],
            'Cliente Teste', '11999990000'
        )
        deliver(session, order.id)
        ledger_service.release_matured_funds(
            session, now=utcnow() + timedelta(days=30), partner_id=target_partner.id
        )
        return ledger_service.get_balance(session, target_partner.id)
    return _fund


@pytest.fixture(scope='function')
def make_product(session):
    def _make(cost_price, name=None):
        return _make_product(session, cost_price, name)
    return _make


@pytest.fixture(scope='function')
def set_price(session):
    def _set(partner, product, selling_price, is_active=True):
        return _price(session, partner, product, selling_price, is_active)
    return _set


# =====================================================
# INTEGRATION FIXTURES (Flask test client)
# =====================================================

@pytest.fixture(scope='function')
def app():
    """Create application instance for testing."""
    app = create_app(TestConfig)
    with app.app_context():
        create_tables()
    return app


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def app_session(app):
    """The application's scoped session (same one the views use)."""
    with app.app_context():
        db_session = get_session()
        yield db_session
        db_session.rollback()
