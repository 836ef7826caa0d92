"""
Balance ledger service - partner balances and transaction history.

Every balance mutation is a single UPDATE built from column increments
(pending_balance = pending_balance + :amount), never a value computed in
Python from an earlier read. Debits carry the bucket floor in the WHERE
clause, so the check and the write happen in the same statement and two
concurrent requests cannot spend the same funds.

Buckets:
    pending   - sale profit inside the holding period
    available - withdrawable
    reserved  - requested withdrawals not yet paid or rejected

Invariant (checked after every mutation):
    available + pending + reserved == total_earned - total_withdrawn
"""
from datetime import timedelta
from decimal import Decimal
import logging

from sqlalchemy import update, func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import contains_eager

from settlement.exceptions import (
    BusinessLogicError, InsufficientFunds, LedgerInconsistency, PartnerFrozen
)
from settlement.models import (
    Partner, PartnerBalance, BALANCE_BUCKETS, PartnerTransaction, TransactionType,
    Withdrawal, OPEN_WITHDRAWAL_STATUSES
)
from settlement.services.metrics_service import record_inconsistency
from settlement.services.settings_service import get_payment_settings
from settlement.utils.formatters import money_br
from settlement.utils.number_format import to_money, utcnow
from settlement.utils.runtime import config_value

logger = logging.getLogger(__name__)

ZERO = Decimal('0.00')
DEFAULT_TOLERANCE = Decimal('0.01')

_BUCKET_COLUMNS = {
    'available': PartnerBalance.available_balance,
    'pending': PartnerBalance.pending_balance,
    'reserved': PartnerBalance.reserved_balance,
}


def _bucket_column(bucket):
    try:
        return _BUCKET_COLUMNS[bucket]
    except KeyError:
        raise BusinessLogicError(f'Tipo de saldo inválido: {bucket}')


def _positive_amount(amount) -> Decimal:
    amount = to_money(amount)
    if amount <= 0:
        raise BusinessLogicError('O valor deve ser maior que zero')
    return amount


def _tolerance(tolerance=None) -> Decimal:
    if tolerance is None:
        tolerance = config_value('BALANCE_TOLERANCE', DEFAULT_TOLERANCE)
    return Decimal(str(tolerance))


def _as_decimal(value) -> Decimal:
    return Decimal(str(value)) if value is not None else ZERO


# =====================================================
# READ API
# =====================================================

def get_balance(session, partner_id) -> PartnerBalance:
    """
    Get a partner's balance. Read-only.

    Returns a transient zeroed PartnerBalance when the partner has no
    row yet (rows are created lazily by the first sale).
    """
    balance = session.query(PartnerBalance).filter(
        PartnerBalance.partner_id == partner_id
    ).first()
    return balance or PartnerBalance.empty(partner_id)


def list_balances(session) -> list:
    """Every partner balance row with its partner loaded, highest available first."""
    return session.query(PartnerBalance).join(
        Partner, Partner.id == PartnerBalance.partner_id
    ).options(
        contains_eager(PartnerBalance.partner)
    ).order_by(
        PartnerBalance.available_balance.desc(),
        PartnerBalance.partner_id.asc()
    ).all()


def list_transactions(session, partner_id, start=None, end=None, tx_type=None):
    """
    List ledger entries for a partner, newest first.

    Args:
        session: SQLAlchemy session
        partner_id: Partner ID
        start: Optional datetime lower bound (inclusive)
        end: Optional datetime upper bound (inclusive)
        tx_type: Optional TransactionType filter
    """
    query = session.query(PartnerTransaction).filter(
        PartnerTransaction.partner_id == partner_id
    )

    if start is not None:
        query = query.filter(PartnerTransaction.created_at >= start)
    if end is not None:
        query = query.filter(PartnerTransaction.created_at <= end)
    if tx_type is not None:
        query = query.filter(PartnerTransaction.type == tx_type)

    return query.order_by(
        PartnerTransaction.created_at.desc(),
        PartnerTransaction.id.desc()
    ).all()


# =====================================================
# STORAGE PRIMITIVES
# =====================================================

def _reload_balance(session, partner_id):
    """Fetch the row from the database, overwriting any identity-map copy."""
    return session.query(PartnerBalance).populate_existing().filter(
        PartnerBalance.partner_id == partner_id
    ).first()


def _ensure_balance_row(session, partner_id):
    """Create the balance row if missing (INSERT ... ON CONFLICT DO NOTHING)."""
    values = {
        'partner_id': partner_id,
        'available_balance': ZERO,
        'pending_balance': ZERO,
        'reserved_balance': ZERO,
        'total_earned': ZERO,
        'total_withdrawn': ZERO,
        'updated_at': utcnow(),
    }

    dialect = session.get_bind().dialect.name
    if dialect == 'postgresql':
        stmt = postgresql.insert(PartnerBalance).values(**values)
    elif dialect == 'sqlite':
        stmt = sqlite.insert(PartnerBalance).values(**values)
    else:
        if _reload_balance(session, partner_id) is None:
            session.add(PartnerBalance(**values))
            session.flush()
        return

    session.execute(stmt.on_conflict_do_nothing(index_elements=['partner_id']))


def _apply_deltas(session, partner_id, deltas, floors=()) -> bool:
    """
    Add each delta to its column in a single UPDATE.

    Args:
        deltas: {PartnerBalance column: signed Decimal}
        floors: columns that must not go below zero; enforced in the WHERE clause

    Returns:
        True if the row was updated (False: missing, frozen or a floor hit)
    """
    values = {column: column + delta for column, delta in deltas.items()}
    values[PartnerBalance.updated_at] = utcnow()

    conditions = [
        PartnerBalance.partner_id == partner_id,
        PartnerBalance.frozen_at.is_(None),
    ]
    for column in floors:
        conditions.append(column >= -deltas[column])

    stmt = (
        update(PartnerBalance)
        .where(*conditions)
        .values(values)
        .execution_options(synchronize_session=False)
    )
    result = session.execute(stmt)
    return result.rowcount == 1


def _raise_insufficient(session, partner_id, bucket, amount):
    """Explain a failed debit to the caller."""
    balance = _reload_balance(session, partner_id)
    if balance is not None and balance.is_frozen:
        raise PartnerFrozen(partner_id, balance.frozen_reason)
    current = getattr(balance, f'{bucket}_balance') if balance is not None else ZERO
    raise InsufficientFunds(amount, current, bucket)


def _raise_shortfall(session, partner_id, bucket, amount):
    """A bucket the ledger itself filled is short: that is a bug, not a user error."""
    balance = _reload_balance(session, partner_id)
    if balance is not None and balance.is_frozen:
        raise PartnerFrozen(partner_id, balance.frozen_reason)
    current = getattr(balance, f'{bucket}_balance') if balance is not None else ZERO
    raise LedgerInconsistency(partner_id, [
        f'{bucket}_balance ({current}) menor que o valor a movimentar ({amount})'
    ])


def credit(session, partner_id, amount, bucket='pending', source=None) -> PartnerBalance:
    """
    Add amount to one bucket, then verify the balance invariant.

    Args:
        bucket: bucket receiving the amount
        source: bucket the amount comes from. None means new profit, so
            total_earned grows by the same amount.

    Raises:
        InsufficientFunds: source bucket does not cover the amount
        PartnerFrozen: if the balance is frozen
        LedgerInconsistency: if the row no longer satisfies the invariant
    """
    amount = _positive_amount(amount)
    column = _bucket_column(bucket)
    deltas = {column: amount}
    floors = ()

    if source is None:
        deltas[PartnerBalance.total_earned] = amount
        _ensure_balance_row(session, partner_id)
    else:
        source_column = _bucket_column(source)
        if source_column is column:
            raise BusinessLogicError('Origem e destino do saldo devem ser diferentes')
        deltas[source_column] = -amount
        floors = (source_column,)

    if not _apply_deltas(session, partner_id, deltas, floors):
        _raise_insufficient(session, partner_id, source or bucket, amount)

    return _verify(session, partner_id)


def debit(session, partner_id, amount, bucket='available', target=None) -> PartnerBalance:
    """
    Subtract amount from one bucket, then verify the balance invariant.

    Args:
        bucket: bucket losing the amount; it may not go below zero
        target: bucket the amount moves into. None means the money left
            the ledger, so total_withdrawn grows by the same amount.

    Raises:
        InsufficientFunds: if the bucket would go negative
        PartnerFrozen: if the balance is frozen
        LedgerInconsistency: if the row no longer satisfies the invariant
    """
    if target is not None:
        return credit(session, partner_id, amount, target, source=bucket)

    amount = _positive_amount(amount)
    column = _bucket_column(bucket)
    deltas = {column: -amount, PartnerBalance.total_withdrawn: amount}

    if not _apply_deltas(session, partner_id, deltas, floors=(column,)):
        _raise_insufficient(session, partner_id, bucket, amount)

    return _verify(session, partner_id)


# =====================================================
# CONSISTENCY
# =====================================================

def check_consistency(balance, tolerance=None) -> list:
    """Return the problems found in a balance row's own totals (empty = consistent)."""
    tolerance = _tolerance(tolerance)
    problems = []

    for bucket in BALANCE_BUCKETS:
        value = _as_decimal(getattr(balance, f'{bucket}_balance'))
        if value < 0:
            problems.append(f'{bucket}_balance negativo ({value})')

    held = (
        _as_decimal(balance.available_balance)
        + _as_decimal(balance.pending_balance)
        + _as_decimal(balance.reserved_balance)
    )
    net = _as_decimal(balance.total_earned) - _as_decimal(balance.total_withdrawn)
    if abs(held - net) > tolerance:
        problems.append(
            f'available + pending + reserved ({held}) != total_earned - total_withdrawn ({net})'
        )

    return problems


def _verify(session, partner_id) -> PartnerBalance:
    balance = _reload_balance(session, partner_id)
    if balance is None:
        raise LedgerInconsistency(partner_id, ['registro de saldo ausente'])

    problems = check_consistency(balance)
    if problems:
        raise LedgerInconsistency(partner_id, problems)
    return balance


def _sum(session, column, *conditions) -> Decimal:
    value = session.query(func.coalesce(func.sum(column), 0)).filter(*conditions).scalar()
    return _as_decimal(value)


def build_reconciliation(session, partner_id, tolerance=None) -> dict:
    """
    Compare a partner's balance totals against the transaction history.

    Checks:
        - the row's own invariant (see check_consistency)
        - total_earned == sum of sale entries
        - total_withdrawn == -(sum of withdrawal entries)
        - pending_balance == sum of sale entries not yet released
        - reserved_balance == sum of open withdrawal requests
    """
    tolerance = _tolerance(tolerance)
    balance = get_balance(session, partner_id)
    problems = check_consistency(balance, tolerance)

    sales = _sum(
        session, PartnerTransaction.amount,
        PartnerTransaction.partner_id == partner_id,
        PartnerTransaction.type == TransactionType.SALE
    )
    unreleased = _sum(
        session, PartnerTransaction.amount,
        PartnerTransaction.partner_id == partner_id,
        PartnerTransaction.type == TransactionType.SALE,
        PartnerTransaction.released_at.is_(None)
    )
    withdrawn = -_sum(
        session, PartnerTransaction.amount,
        PartnerTransaction.partner_id == partner_id,
        PartnerTransaction.type == TransactionType.WITHDRAWAL
    )
    open_withdrawals = _sum(
        session, Withdrawal.amount,
        Withdrawal.partner_id == partner_id,
        Withdrawal.status.in_(OPEN_WITHDRAWAL_STATUSES)
    )

    expectations = [
        ('total_earned', balance.total_earned, sales, 'soma das vendas'),
        ('total_withdrawn', balance.total_withdrawn, withdrawn, 'soma dos saques pagos'),
        ('pending_balance', balance.pending_balance, unreleased, 'vendas não liberadas'),
        ('reserved_balance', balance.reserved_balance, open_withdrawals, 'saques em aberto'),
    ]
    for field, actual, expected, label in expectations:
        actual = _as_decimal(actual)
        if abs(actual - expected) > tolerance:
            problems.append(f'{field} ({actual}) != {label} ({expected})')

    return {
        'partner_id': partner_id,
        'ok': not problems,
        'problems': problems,
        'frozen': balance.is_frozen,
        'balance': balance.to_dict(),
        'ledger': {
            'sales': str(sales),
            'unreleased_sales': str(unreleased),
            'withdrawn': str(withdrawn),
            'open_withdrawals': str(open_withdrawals),
        },
    }


def reconcile_partner(session, partner_id, tolerance=None) -> dict:
    """
    Reconcile one partner.

    Raises:
        LedgerInconsistency: after freezing the partner, when anything mismatches
    """
    report = build_reconciliation(session, partner_id, tolerance)
    if report['problems']:
        exc = LedgerInconsistency(partner_id, report['problems'])
        if not report['frozen']:
            handle_inconsistency(session, exc)
        raise exc
    return report


def reconcile_all(session, tolerance=None) -> list:
    """Reconcile every partner that has a balance row. Returns one report per partner."""
    partner_ids = [row[0] for row in session.query(PartnerBalance.partner_id).order_by(PartnerBalance.partner_id).all()]
    reports = []

    for partner_id in partner_ids:
        try:
            reports.append(reconcile_partner(session, partner_id, tolerance))
        except LedgerInconsistency as e:
            reports.append({
                'partner_id': partner_id,
                'ok': False,
                'problems': e.problems,
                'frozen': True,
            })

    return reports


def handle_inconsistency(session, exc: LedgerInconsistency):
    """Roll back the failed work, then freeze the partner in its own transaction."""
    session.rollback()
    record_inconsistency()
    logger.critical(
        f"LEDGER INCONSISTENCY partner={exc.partner_id}: {'; '.join(exc.problems)}"
    )
    freeze_partner(session, exc.partner_id, '; '.join(exc.problems))


def freeze_partner(session, partner_id, reason):
    """Block every balance mutation for a partner until an operator unfreezes it."""
    try:
        _ensure_balance_row(session, partner_id)
        session.execute(
            update(PartnerBalance)
            .where(
                PartnerBalance.partner_id == partner_id,
                PartnerBalance.frozen_at.is_(None)
            )
            .values(frozen_at=utcnow(), frozen_reason=(reason or '')[:500])
            .execution_options(synchronize_session=False)
        )
        session.commit()
        logger.critical(f"Partner {partner_id} balance frozen: {reason}")
    except Exception:
        session.rollback()
        raise


def unfreeze_partner(session, partner_id, force=False) -> dict:
    """
    Clear the freeze after manual reconciliation.

    Refuses while the ledger still does not reconcile, unless force=True.
    """
    report = build_reconciliation(session, partner_id)
    if report['problems'] and not force:
        raise LedgerInconsistency(partner_id, report['problems'])

    try:
        session.execute(
            update(PartnerBalance)
            .where(PartnerBalance.partner_id == partner_id)
            .values(frozen_at=None, frozen_reason=None)
            .execution_options(synchronize_session=False)
        )
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.warning(f"Partner {partner_id} balance unfrozen by operator (force={force})")
    return build_reconciliation(session, partner_id)


# =====================================================
# COMPOSITE MUTATIONS (used by settlement and withdrawals)
# =====================================================

def record_sale(session, partner_id, amount, order) -> PartnerTransaction:
    """
    Post a delivered order's profit: pending += amount, total_earned += amount,
    plus the matching 'sale' entry. Does not commit.
    """
    amount = _positive_amount(amount)
    balance = credit(session, partner_id, amount, 'pending')

    entry = PartnerTransaction(
        partner_id=partner_id,
        type=TransactionType.SALE,
        amount=amount,
        balance_after=balance.current_total,
        reference_id=order.id,
        description=f'Venda #{order.order_number} - Lucro: R$ {money_br(amount)}',
        created_at=utcnow()
    )
    session.add(entry)
    session.flush()

    logger.info(f"Sale posted: partner={partner_id} order={order.id} amount={amount}")
    return entry


def release_sale(session, entry: PartnerTransaction, now=None) -> bool:
    """
    Move one matured sale entry from pending to available. Does not commit.

    Returns False if the entry was already released (e.g. by a concurrent sweep).
    """
    now = now or utcnow()

    claimed = session.execute(
        update(PartnerTransaction)
        .where(
            PartnerTransaction.id == entry.id,
            PartnerTransaction.type == TransactionType.SALE,
            PartnerTransaction.released_at.is_(None)
        )
        .values(released_at=now)
        .execution_options(synchronize_session=False)
    ).rowcount
    if claimed != 1:
        return False

    amount = to_money(entry.amount)
    try:
        debit(session, entry.partner_id, amount, 'pending', target='available')
    except InsufficientFunds:
        _raise_shortfall(session, entry.partner_id, 'pending', amount)

    return True


def reserve(session, partner_id, amount) -> PartnerBalance:
    """
    Hold funds for a withdrawal request: available -> reserved. Does not commit.

    Raises:
        InsufficientFunds: amount > available_balance
    """
    return debit(session, partner_id, amount, 'available', target='reserved')


def release_reservation(session, partner_id, amount) -> PartnerBalance:
    """Return held funds after a rejection or cancellation: reserved -> available."""
    amount = _positive_amount(amount)
    try:
        return debit(session, partner_id, amount, 'reserved', target='available')
    except InsufficientFunds:
        _raise_shortfall(session, partner_id, 'reserved', amount)


def finalize_withdrawal(session, withdrawal: Withdrawal) -> PartnerTransaction:
    """
    Settle a paid withdrawal: reserved -= amount, total_withdrawn += amount,
    plus a negative 'withdrawal' entry. Does not commit.
    """
    amount = _positive_amount(withdrawal.amount)
    partner_id = withdrawal.partner_id

    try:
        balance = debit(session, partner_id, amount, 'reserved')
    except InsufficientFunds:
        _raise_shortfall(session, partner_id, 'reserved', amount)

    entry = PartnerTransaction(
        partner_id=partner_id,
        type=TransactionType.WITHDRAWAL,
        amount=-amount,
        balance_after=balance.current_total,
        reference_id=withdrawal.id,
        description=f'Saque #{withdrawal.id} - Pago',
        created_at=utcnow()
    )
    session.add(entry)
    session.flush()

    logger.info(f"Withdrawal posted: partner={partner_id} withdrawal={withdrawal.id} amount=-{amount}")
    return entry


# =====================================================
# MATURITY SWEEP
# =====================================================

def release_matured_funds(session, now=None, partner_id=None, min_days=None) -> dict:
    """
    Move matured sale profit from pending to available.

    Every 'sale' entry older than min_days_to_withdraw (PaymentSettings)
    and not yet released is released individually, so sales made on
    different days mature on their own dates. Commits once per partner;
    a frozen or inconsistent partner is skipped without blocking others.

    Returns:
        Dict with released_count, released_amount, partners, skipped_partners
    """
    now = now or utcnow()
    if min_days is None:
        min_days = get_payment_settings(session).min_days_to_withdraw
    cutoff = now - timedelta(days=int(min_days))

    conditions = [
        PartnerTransaction.type == TransactionType.SALE,
        PartnerTransaction.released_at.is_(None),
        PartnerTransaction.created_at <= cutoff,
    ]
    if partner_id is not None:
        conditions.append(PartnerTransaction.partner_id == partner_id)

    partner_ids = [
        row[0] for row in
        session.query(PartnerTransaction.partner_id).filter(*conditions).distinct().all()
    ]

    summary = {
        'released_count': 0,
        'released_amount': ZERO,
        'partners': 0,
        'skipped_partners': [],
    }

    for pid in sorted(partner_ids):
        count = 0
        amount = ZERO
        try:
            entries = session.query(PartnerTransaction).filter(
                PartnerTransaction.partner_id == pid, *conditions
            ).order_by(PartnerTransaction.created_at.asc(), PartnerTransaction.id.asc()).all()

            for entry in entries:
                if release_sale(session, entry, now):
                    count += 1
                    amount += to_money(entry.amount)

            session.commit()

        except PartnerFrozen:
            session.rollback()
            logger.warning(f"Maturity sweep skipped frozen partner {pid}")
            summary['skipped_partners'].append(pid)
            continue
        except LedgerInconsistency as e:
            handle_inconsistency(session, e)
            summary['skipped_partners'].append(pid)
            continue
        except Exception:
            session.rollback()
            logger.error(f"Maturity sweep failed for partner {pid}", exc_info=True)
            raise

        if count:
            summary['released_count'] += count
            summary['released_amount'] += amount
            summary['partners'] += 1
            logger.info(f"Released {count} sale(s) for partner {pid}: {amount}")

    return summary
