"""
Cost/Price resolver - partner selling prices over the central catalog.

The admin owns Product.cost_price; each partner owns the selling price of
the products it opts into. A partner may never sell at or below cost.
"""
from decimal import Decimal
import logging

from sqlalchemy.dialects import postgresql, sqlite

from settlement.exceptions import BusinessLogicError, NotFoundError, InvalidPrice, NotConfigured
from settlement.models import Partner, Product, PartnerProduct
from settlement.utils.number_format import parse_money, to_money, utcnow

logger = logging.getLogger(__name__)


def _margin(selling_price, cost_price):
    """Return (margin, margin_percent) rounded to cents."""
    selling_price = to_money(selling_price)
    cost_price = to_money(cost_price)
    margin = selling_price - cost_price

    if cost_price > 0:
        margin_percent = to_money(margin / cost_price * 100)
    else:
        margin_percent = None

    return margin, margin_percent


def _get_partner(session, partner_id) -> Partner:
    partner = session.query(Partner).filter(Partner.id == partner_id).first()
    if not partner:
        raise NotFoundError(f'Parceiro {partner_id} não encontrado')
    return partner


def _get_product(session, product_id, active_only=True) -> Product:
    product = session.query(Product).filter(Product.id == product_id).first()
    if not product or (active_only and not product.active):
        raise NotFoundError(f'Produto {product_id} não encontrado')
    return product


def resolve_price(session, partner_id, product_id) -> dict:
    """
    Resolve cost and selling price of a product in a partner's storefront.

    Returns:
        Dict with cost_price, selling_price, margin, margin_percent, is_active

    Raises:
        NotConfigured: partner has no selling price for the product
    """
    row = session.query(PartnerProduct, Product).join(
        Product, Product.id == PartnerProduct.product_id
    ).filter(
        PartnerProduct.partner_id == partner_id,
        PartnerProduct.product_id == product_id
    ).first()

    if row is None:
        raise NotConfigured(partner_id, product_id)

    partner_product, product = row
    margin, margin_percent = _margin(partner_product.selling_price, product.cost_price)

    return {
        'partner_id': partner_id,
        'product_id': product_id,
        'cost_price': to_money(product.cost_price),
        'selling_price': to_money(partner_product.selling_price),
        'margin': margin,
        'margin_percent': margin_percent,
        'is_active': partner_product.is_active,
    }


def _upsert_partner_product(session, partner_id, product_id, selling_price, is_active):
    """INSERT ... ON CONFLICT (partner_id, product_id) DO UPDATE, then load the row."""
    values = {
        'partner_id': partner_id,
        'product_id': product_id,
        'selling_price': selling_price,
        'is_active': is_active,
        'created_at': utcnow(),
        'updated_at': utcnow(),
    }

    dialect = session.get_bind().dialect.name
    if dialect == 'postgresql':
        stmt = postgresql.insert(PartnerProduct).values(**values)
    elif dialect == 'sqlite':
        stmt = sqlite.insert(PartnerProduct).values(**values)
    else:
        stmt = None

    if stmt is not None:
        session.execute(stmt.on_conflict_do_update(
            index_elements=['partner_id', 'product_id'],
            set_={
                'selling_price': stmt.excluded.selling_price,
                'is_active': stmt.excluded.is_active,
                'updated_at': stmt.excluded.updated_at,
            }
        ))
    else:
        partner_product = session.query(PartnerProduct).filter(
            PartnerProduct.partner_id == partner_id,
            PartnerProduct.product_id == product_id
        ).with_for_update().first()
        if partner_product is None:
            session.add(PartnerProduct(**values))
        else:
            partner_product.selling_price = selling_price
            partner_product.is_active = is_active
        session.flush()

    return session.query(PartnerProduct).populate_existing().filter(
        PartnerProduct.partner_id == partner_id,
        PartnerProduct.product_id == product_id
    ).one()


def set_selling_price(session, partner_id, product_id, selling_price, is_active=True) -> PartnerProduct:
    """
    Create or update a partner's selling price for a catalog product.

    Args:
        session: SQLAlchemy session
        partner_id: Partner ID (must be active)
        product_id: Active catalog product
        selling_price: New price; must be strictly greater than cost_price
        is_active: Whether the product shows in the storefront

    Raises:
        InvalidPrice: selling_price <= cost_price
        NotFoundError: unknown partner or product
        BusinessLogicError: partner not active or malformed price
    """
    try:
        try:
            selling_price = parse_money(selling_price)
        except ValueError as e:
            raise BusinessLogicError(str(e))

        partner = _get_partner(session, partner_id)
        if not partner.is_active:
            raise BusinessLogicError('Apenas parceiros ativos podem definir preços')

        product = _get_product(session, product_id)
        cost_price = to_money(product.cost_price)

        if selling_price <= cost_price:
            raise InvalidPrice(selling_price, cost_price)

        partner_product = _upsert_partner_product(
            session, partner_id, product_id, selling_price, bool(is_active)
        )
        session.commit()
        logger.info(
            f"Partner {partner_id} priced product {product_id} at {selling_price} "
            f"(cost {cost_price}, active={bool(is_active)})"
        )
        return partner_product

    except Exception:
        session.rollback()
        raise


def remove_partner_product(session, partner_id, product_id):
    """Remove a product from a partner's storefront."""
    try:
        partner_product = session.query(PartnerProduct).filter(
            PartnerProduct.partner_id == partner_id,
            PartnerProduct.product_id == product_id
        ).first()

        if partner_product is None:
            raise NotConfigured(partner_id, product_id)

        session.delete(partner_product)
        session.commit()
        logger.info(f"Partner {partner_id} removed product {product_id}")

    except Exception:
        session.rollback()
        raise


def list_partner_catalog(session, partner_id) -> list:
    """
    Every active catalog product, with the partner's configuration if any.

    Products the partner did not price come back with selling_price=None.
    """
    _get_partner(session, partner_id)

    configured = {
        pp.product_id: pp
        for pp in session.query(PartnerProduct).filter(PartnerProduct.partner_id == partner_id).all()
    }
    products = session.query(Product).filter(Product.active == True).order_by(Product.name).all()

    catalog = []
    for product in products:
        pp = configured.get(product.id)
        entry = {
            'product_id': product.id,
            'name': product.name,
            'cost_price': str(to_money(product.cost_price)),
            'selling_price': None,
            'margin': None,
            'margin_percent': None,
            'is_active': False,
        }
        if pp is not None:
            margin, margin_percent = _margin(pp.selling_price, product.cost_price)
            entry.update({
                'selling_price': str(to_money(pp.selling_price)),
                'margin': str(margin),
                'margin_percent': str(margin_percent) if margin_percent is not None else None,
                'is_active': pp.is_active,
            })
        catalog.append(entry)

    return catalog


def price_to_dict(resolved: dict) -> dict:
    """JSON-friendly copy of resolve_price() output."""
    return {
        key: (str(value) if isinstance(value, Decimal) else value)
        for key, value in resolved.items()
    }
