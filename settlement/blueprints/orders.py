"""Orders blueprint - placement and status updates."""
from flask import Blueprint, request, jsonify
from settlement.database import get_session
from settlement.exceptions import BusinessLogicError
from settlement.services import order_service

orders_bp = Blueprint('orders', __name__, url_prefix='/orders')


@orders_bp.route('', methods=['POST'])
def place_order():
    """
    Place an order.

    Body: {"partner_id": 1 | null, "items": [{"product_id": 1, "quantity": 2}],
           "customer_name": "...", "customer_phone": "..."}
    """
    data = request.get_json(silent=True)
    if data is None:
        raise BusinessLogicError('Corpo JSON inválido ou ausente')

    db_session = get_session()
    order = order_service.place_order(
        db_session,
        data.get('partner_id'),
        data.get('items') or [],
        data.get('customer_name'),
        data.get('customer_phone')
    )
    return jsonify({'status': 'success', 'order': order_service.order_to_dict(order)}), 201


@orders_bp.route('/<int:order_id>', methods=['GET'])
def get_order(order_id):
    db_session = get_session()
    order = order_service.get_order(db_session, order_id)
    return jsonify({'status': 'success', 'order': order_service.order_to_dict(order)})


@orders_bp.route('/<int:order_id>/status', methods=['POST'])
def update_status(order_id):
    """Body: {"status": "delivered"}"""
    data = request.get_json(silent=True) or {}
    if not data.get('status'):
        raise BusinessLogicError('status é obrigatório')

    db_session = get_session()
    order = order_service.update_order_status(db_session, order_id, data['status'])
    return jsonify({'status': 'success', 'order': order_service.order_to_dict(order)})
