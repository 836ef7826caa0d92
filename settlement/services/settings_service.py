"""Payment settings service (política de saques)."""
from decimal import Decimal
import logging

from settlement.exceptions import BusinessLogicError
from settlement.models import PaymentSettings, PAYMENT_SETTINGS_ID
from settlement.utils.number_format import parse_money
from settlement.utils.runtime import config_value

logger = logging.getLogger(__name__)

DEFAULT_MIN_WITHDRAWAL_AMOUNT = Decimal('50.00')
DEFAULT_MIN_DAYS_TO_WITHDRAW = 7


def _default_settings():
    """Transient settings built from app config, used until the admin saves the row."""
    return PaymentSettings(
        id=PAYMENT_SETTINGS_ID,
        min_withdrawal_amount=Decimal(str(
            config_value('DEFAULT_MIN_WITHDRAWAL_AMOUNT', DEFAULT_MIN_WITHDRAWAL_AMOUNT)
        )),
        min_days_to_withdraw=int(
            config_value('DEFAULT_MIN_DAYS_TO_WITHDRAW', DEFAULT_MIN_DAYS_TO_WITHDRAW)
        )
    )


def get_payment_settings(session) -> PaymentSettings:
    """Return the settings singleton (read-only; never inserts)."""
    settings = session.query(PaymentSettings).filter(
        PaymentSettings.id == PAYMENT_SETTINGS_ID
    ).first()
    return settings or _default_settings()


def update_payment_settings(session, min_withdrawal_amount=None, min_days_to_withdraw=None) -> PaymentSettings:
    """
    Update withdrawal policy (admin only).

    Args:
        session: SQLAlchemy session
        min_withdrawal_amount: Minimum amount per withdrawal request (>= 0)
        min_days_to_withdraw: Holding period for sale profit, in days (>= 0)

    Raises:
        BusinessLogicError: on invalid values
    """
    try:
        if min_withdrawal_amount is not None:
            try:
                min_withdrawal_amount = parse_money(min_withdrawal_amount)
            except ValueError as e:
                raise BusinessLogicError(str(e))

        if min_days_to_withdraw is not None:
            try:
                min_days_to_withdraw = int(min_days_to_withdraw)
            except (TypeError, ValueError):
                raise BusinessLogicError('Número de dias inválido')
            if min_days_to_withdraw < 0:
                raise BusinessLogicError('O número de dias não pode ser negativo')

        settings = session.query(PaymentSettings).filter(
            PaymentSettings.id == PAYMENT_SETTINGS_ID
        ).with_for_update().first()

        if settings is None:
            settings = _default_settings()
            session.add(settings)

        if min_withdrawal_amount is not None:
            settings.min_withdrawal_amount = min_withdrawal_amount
        if min_days_to_withdraw is not None:
            settings.min_days_to_withdraw = min_days_to_withdraw

        session.commit()
        logger.info(
            f"Payment settings updated: min_withdrawal_amount={settings.min_withdrawal_amount}, "
            f"min_days_to_withdraw={settings.min_days_to_withdraw}"
        )
        return settings

    except Exception:
        session.rollback()
        raise
