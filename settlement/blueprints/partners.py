"""Partner blueprint - storefront pricing, balance, statement and withdrawals."""
from datetime import date, datetime, time
from flask import Blueprint, request, jsonify
from settlement.database import get_session
from settlement.exceptions import BusinessLogicError
from settlement.services import ledger_service, pricing_service, withdrawal_service

partners_bp = Blueprint('partners', __name__, url_prefix='/partners')


def _payload() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        raise BusinessLogicError('Corpo JSON inválido ou ausente')
    return data


def _parse_datetime(value, field, end_of_day=False):
    """ISO 8601 date or datetime. A bare date as an upper bound covers the whole day."""
    if not value:
        return None
    try:
        if end_of_day and len(value) == 10:
            return datetime.combine(date.fromisoformat(value), time.max)
        return datetime.fromisoformat(value)
    except ValueError:
        raise BusinessLogicError(f'Data inválida em {field}: {value}')


@partners_bp.route('/<int:partner_id>/catalog', methods=['GET'])
def catalog(partner_id):
    """Catalog with this partner's selling prices and margins."""
    db_session = get_session()
    items = pricing_service.list_partner_catalog(db_session, partner_id)
    return jsonify({'status': 'success', 'items': items})


@partners_bp.route('/<int:partner_id>/products/<int:product_id>', methods=['PUT'])
def set_price(partner_id, product_id):
    data = _payload()
    if 'selling_price' not in data:
        raise BusinessLogicError('selling_price é obrigatório')

    db_session = get_session()
    pricing_service.set_selling_price(
        db_session, partner_id, product_id,
        data['selling_price'],
        is_active=data.get('is_active', True)
    )
    resolved = pricing_service.resolve_price(db_session, partner_id, product_id)
    return jsonify({'status': 'success', 'price': pricing_service.price_to_dict(resolved)})


@partners_bp.route('/<int:partner_id>/products/<int:product_id>', methods=['DELETE'])
def remove_product(partner_id, product_id):
    db_session = get_session()
    pricing_service.remove_partner_product(db_session, partner_id, product_id)
    return jsonify({'status': 'success'})


@partners_bp.route('/<int:partner_id>/products/<int:product_id>/price', methods=['GET'])
def get_price(partner_id, product_id):
    db_session = get_session()
    resolved = pricing_service.resolve_price(db_session, partner_id, product_id)
    return jsonify({'status': 'success', 'price': pricing_service.price_to_dict(resolved)})


@partners_bp.route('/<int:partner_id>/balance', methods=['GET'])
def balance(partner_id):
    db_session = get_session()
    partner_balance = ledger_service.get_balance(db_session, partner_id)
    return jsonify({'status': 'success', 'balance': partner_balance.to_dict()})


@partners_bp.route('/<int:partner_id>/transactions', methods=['GET'])
def transactions(partner_id):
    """Statement, newest first. Optional ?start=&end= (ISO 8601, both inclusive)."""
    start = _parse_datetime(request.args.get('start'), 'start')
    end = _parse_datetime(request.args.get('end'), 'end', end_of_day=True)

    db_session = get_session()
    entries = ledger_service.list_transactions(db_session, partner_id, start=start, end=end)
    return jsonify({'status': 'success', 'transactions': [e.to_dict() for e in entries]})


@partners_bp.route('/<int:partner_id>/withdrawals', methods=['GET'])
def list_withdrawals(partner_id):
    db_session = get_session()
    withdrawals = withdrawal_service.list_withdrawals(
        db_session, partner_id=partner_id, status=request.args.get('status')
    )
    return jsonify({'status': 'success', 'withdrawals': [w.to_dict() for w in withdrawals]})


@partners_bp.route('/<int:partner_id>/withdrawals', methods=['POST'])
def request_withdrawal(partner_id):
    data = _payload()
    db_session = get_session()
    withdrawal = withdrawal_service.request_withdrawal(
        db_session, partner_id,
        data.get('amount'),
        data.get('pix_key'),
        notes=data.get('notes')
    )
    return jsonify({'status': 'success', 'withdrawal': withdrawal.to_dict()}), 201


@partners_bp.route('/<int:partner_id>/withdrawals/<int:withdrawal_id>/cancel', methods=['POST'])
def cancel_withdrawal(partner_id, withdrawal_id):
    db_session = get_session()
    withdrawal = withdrawal_service.cancel_withdrawal(db_session, withdrawal_id, partner_id)
    return jsonify({'status': 'success', 'withdrawal': withdrawal.to_dict()})
