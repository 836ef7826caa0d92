"""
Withdrawal manager - partner cash-out requests (saques via PIX).

A request moves the amount from available_balance to reserved_balance in
the same transaction that creates the Withdrawal, so the same funds can
never back two requests. Paying finalizes the debit; rejecting or
cancelling returns the amount to available_balance.

State machine:
    pending  -> approved | rejected | cancelled | paid
    approved -> paid
"""
import logging

from sqlalchemy import update

from settlement.exceptions import (
    BusinessLogicError, NotFoundError, BelowMinimum, InvalidTransition, LedgerInconsistency
)
from settlement.models import Partner, Withdrawal, WithdrawalStatus, WITHDRAWAL_TRANSITIONS
from settlement.services import ledger_service
from settlement.services.metrics_service import record_withdrawal
from settlement.services.settings_service import get_payment_settings
from settlement.utils.number_format import parse_money, to_money, utcnow

logger = logging.getLogger(__name__)

PIX_KEY_MAX_LENGTH = 140
RESOLUTIONS = {
    'paid': WithdrawalStatus.PAID,
    'rejected': WithdrawalStatus.REJECTED,
}


def _parse_amount(amount):
    try:
        amount = parse_money(amount)
    except ValueError as e:
        raise BusinessLogicError(str(e))
    if amount <= 0:
        raise BusinessLogicError('O valor do saque deve ser maior que zero')
    return amount


def _get_withdrawal(session, withdrawal_id) -> Withdrawal:
    withdrawal = session.query(Withdrawal).filter(Withdrawal.id == withdrawal_id).first()
    if not withdrawal:
        raise NotFoundError(f'Saque {withdrawal_id} não encontrado')
    return withdrawal


def request_withdrawal(session, partner_id, amount, pix_key, notes=None) -> Withdrawal:
    """
    Request a withdrawal of available funds.

    Args:
        session: SQLAlchemy session
        partner_id: Partner ID
        amount: Requested amount
        pix_key: PIX destination key
        notes: Optional note from the partner

    Raises:
        BelowMinimum: amount < min_withdrawal_amount
        InsufficientFunds: amount > available_balance
        PartnerFrozen: balance frozen for reconciliation
    """
    try:
        amount = _parse_amount(amount)

        pix_key = (pix_key or '').strip()
        if not pix_key:
            raise BusinessLogicError('Informe a chave PIX para o saque')
        if len(pix_key) > PIX_KEY_MAX_LENGTH:
            raise BusinessLogicError('Chave PIX inválida')

        partner = session.query(Partner).filter(Partner.id == partner_id).first()
        if not partner:
            raise NotFoundError(f'Parceiro {partner_id} não encontrado')

        settings = get_payment_settings(session)
        minimum = to_money(settings.min_withdrawal_amount)
        if amount < minimum:
            raise BelowMinimum(amount, minimum)

        ledger_service.reserve(session, partner_id, amount)

        withdrawal = Withdrawal(
            partner_id=partner_id,
            amount=amount,
            status=WithdrawalStatus.PENDING,
            pix_key=pix_key,
            requested_at=utcnow(),
            notes=notes
        )
        session.add(withdrawal)
        session.commit()

        record_withdrawal(WithdrawalStatus.PENDING.value)
        logger.info(f"Withdrawal {withdrawal.id} requested: partner={partner_id} amount={amount}")
        return withdrawal

    except LedgerInconsistency as e:
        ledger_service.handle_inconsistency(session, e)
        raise
    except Exception:
        session.rollback()
        raise


def _transition(session, withdrawal_id, target: WithdrawalStatus, notes=None, partner_id=None) -> Withdrawal:
    """
    Move a withdrawal to target and apply its balance effect, in one transaction.

    The status change is a conditional UPDATE on the allowed source states,
    so of two concurrent resolutions only one can succeed.
    """
    try:
        withdrawal = _get_withdrawal(session, withdrawal_id)
        if partner_id is not None and withdrawal.partner_id != partner_id:
            raise NotFoundError(f'Saque {withdrawal_id} não encontrado')
        if not withdrawal.is_open:
            raise InvalidTransition('saque', withdrawal_id, withdrawal.status.value, target.value)

        values = {'status': target}
        if target != WithdrawalStatus.APPROVED:
            values['processed_at'] = utcnow()
        if notes is not None:
            values['notes'] = notes

        result = session.execute(
            update(Withdrawal)
            .where(
                Withdrawal.id == withdrawal_id,
                Withdrawal.status.in_(list(WITHDRAWAL_TRANSITIONS[target]))
            )
            .values(values)
            .execution_options(synchronize_session=False)
        )

        withdrawal = session.query(Withdrawal).populate_existing().filter(
            Withdrawal.id == withdrawal_id
        ).first()

        if result.rowcount != 1:
            raise InvalidTransition('saque', withdrawal_id, withdrawal.status.value, target.value)

        if target == WithdrawalStatus.PAID:
            ledger_service.finalize_withdrawal(session, withdrawal)
        elif target in (WithdrawalStatus.REJECTED, WithdrawalStatus.CANCELLED):
            ledger_service.release_reservation(session, withdrawal.partner_id, withdrawal.amount)

        session.commit()

        record_withdrawal(target.value)
        logger.info(
            f"Withdrawal {withdrawal_id} -> {target.value}: "
            f"partner={withdrawal.partner_id} amount={withdrawal.amount}"
        )
        return withdrawal

    except InvalidTransition as e:
        session.rollback()
        logger.warning(f"Rejected withdrawal transition (possible double submission): {e.message}")
        raise
    except LedgerInconsistency as e:
        ledger_service.handle_inconsistency(session, e)
        raise
    except Exception:
        session.rollback()
        raise


def resolve_withdrawal(session, withdrawal_id, decision, notes=None) -> Withdrawal:
    """
    Admin resolution of a withdrawal.

    Args:
        decision: 'paid' (finalizes the debit) or 'rejected' (returns the funds)

    Raises:
        InvalidTransition: withdrawal is not pending/approved (paid) or not pending (rejected)
    """
    target = RESOLUTIONS.get(str(decision).lower()) if decision is not None else None
    if target is None:
        raise BusinessLogicError(f'Decisão inválida: {decision}')
    return _transition(session, withdrawal_id, target, notes)


def approve_withdrawal(session, withdrawal_id, notes=None) -> Withdrawal:
    """Mark a pending withdrawal as approved (funds stay reserved until paid)."""
    return _transition(session, withdrawal_id, WithdrawalStatus.APPROVED, notes)


def cancel_withdrawal(session, withdrawal_id, partner_id) -> Withdrawal:
    """Partner cancels its own pending withdrawal; funds return to available."""
    return _transition(session, withdrawal_id, WithdrawalStatus.CANCELLED, partner_id=partner_id)


def list_withdrawals(session, partner_id=None, status=None) -> list:
    """List withdrawals, newest first, optionally filtered by partner and status."""
    query = session.query(Withdrawal)

    if partner_id is not None:
        query = query.filter(Withdrawal.partner_id == partner_id)

    if status:
        if not isinstance(status, WithdrawalStatus):
            try:
                status = WithdrawalStatus(str(status).lower())
            except ValueError:
                raise BusinessLogicError(f'Status de saque inválido: {status}')
        query = query.filter(Withdrawal.status == status)

    return query.order_by(Withdrawal.requested_at.desc(), Withdrawal.id.desc()).all()
