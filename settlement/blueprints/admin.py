"""Admin blueprint - withdrawal resolution, partner balances, payment settings and reconciliation."""
from flask import Blueprint, request, jsonify
from settlement.database import get_session
from settlement.exceptions import BusinessLogicError
from settlement.services import ledger_service, settings_service, withdrawal_service

admin_bp = Blueprint('admin', __name__, url_prefix='/admin')


@admin_bp.route('/withdrawals', methods=['GET'])
def list_withdrawals():
    """All withdrawals, newest first. Optional ?status=&partner_id=."""
    partner_id = request.args.get('partner_id', type=int)
    db_session = get_session()
    withdrawals = withdrawal_service.list_withdrawals(
        db_session, partner_id=partner_id, status=request.args.get('status')
    )
    return jsonify({'status': 'success', 'withdrawals': [w.to_dict() for w in withdrawals]})


@admin_bp.route('/withdrawals/<int:withdrawal_id>/approve', methods=['POST'])
def approve_withdrawal(withdrawal_id):
    data = request.get_json(silent=True) or {}
    db_session = get_session()
    withdrawal = withdrawal_service.approve_withdrawal(db_session, withdrawal_id, notes=data.get('notes'))
    return jsonify({'status': 'success', 'withdrawal': withdrawal.to_dict()})


@admin_bp.route('/withdrawals/<int:withdrawal_id>/resolve', methods=['POST'])
def resolve_withdrawal(withdrawal_id):
    """Body: {"decision": "paid" | "rejected", "notes": "..."}"""
    data = request.get_json(silent=True) or {}
    if not data.get('decision'):
        raise BusinessLogicError('decision é obrigatório (paid ou rejected)')

    db_session = get_session()
    withdrawal = withdrawal_service.resolve_withdrawal(
        db_session, withdrawal_id, data['decision'], notes=data.get('notes')
    )
    return jsonify({'status': 'success', 'withdrawal': withdrawal.to_dict()})


@admin_bp.route('/balances', methods=['GET'])
def list_balances():
    """Every partner balance with store and owner names, highest available first."""
    db_session = get_session()
    balances = ledger_service.list_balances(db_session)
    return jsonify({
        'status': 'success',
        'balances': [b.to_dict(include_partner=True) for b in balances]
    })


@admin_bp.route('/payment-settings', methods=['GET'])
def get_payment_settings():
    db_session = get_session()
    settings = settings_service.get_payment_settings(db_session)
    return jsonify({'status': 'success', 'settings': settings.to_dict()})


@admin_bp.route('/payment-settings', methods=['PUT'])
def update_payment_settings():
    data = request.get_json(silent=True)
    if data is None:
        raise BusinessLogicError('Corpo JSON inválido ou ausente')

    db_session = get_session()
    settings = settings_service.update_payment_settings(
        db_session,
        min_withdrawal_amount=data.get('min_withdrawal_amount'),
        min_days_to_withdraw=data.get('min_days_to_withdraw')
    )
    return jsonify({'status': 'success', 'settings': settings.to_dict()})


@admin_bp.route('/partners/<int:partner_id>/reconcile', methods=['GET'])
def reconcile(partner_id):
    """Reconcile balance totals against the ledger; a mismatch freezes the partner (500)."""
    db_session = get_session()
    report = ledger_service.reconcile_partner(db_session, partner_id)
    return jsonify({'status': 'success', 'report': report})
