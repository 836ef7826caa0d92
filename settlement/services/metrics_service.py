"""
Business metrics for settlement and withdrawals.

Counters live in the default Prometheus registry (per-worker files when
PROMETHEUS_MULTIPROC_DIR is set) and are exported by the /metrics blueprint.
"""
import logging
from prometheus_client import Counter

logger = logging.getLogger(__name__)


settlements_total = Counter(
    'partner_settlements_total',
    'Delivered orders processed by the settlement engine',
    ['outcome']  # posted | no_partner | no_profit | duplicate
)

settled_profit_total = Counter(
    'partner_settled_profit_total',
    'Partner profit posted to pending balances (BRL)'
)

withdrawals_total = Counter(
    'partner_withdrawals_total',
    'Withdrawal state changes',
    ['status']
)

ledger_inconsistencies_total = Counter(
    'ledger_inconsistencies_total',
    'Balance reconciliation failures (each freezes a partner)'
)


def record_settlement(outcome, profit=None):
    try:
        settlements_total.labels(outcome=outcome).inc()
        if profit:
            settled_profit_total.inc(float(profit))
    except Exception as e:
        # Don't break settlement if metrics fail
        logger.warning(f"Failed to record settlement metric: {e}")


def record_withdrawal(status):
    try:
        withdrawals_total.labels(status=status).inc()
    except Exception as e:
        logger.warning(f"Failed to record withdrawal metric: {e}")


def record_inconsistency():
    try:
        ledger_inconsistencies_total.inc()
    except Exception as e:
        logger.warning(f"Failed to record inconsistency metric: {e}")
