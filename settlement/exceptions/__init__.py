"""Custom exceptions for the partner settlement service."""


class SettlementError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        return rv


class BusinessLogicError(SettlementError):
    """Exception raised for business logic violations."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)


class NotFoundError(SettlementError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)


class InvalidPrice(BusinessLogicError):
    """Raised when a partner tries to sell at or below cost."""
    def __init__(self, selling_price, cost_price):
        from settlement.utils.formatters import money_br
        message = (
            f"O preço de venda (R$ {money_br(selling_price)}) deve ser maior que "
            f"o preço de custo (R$ {money_br(cost_price)})"
        )
        super().__init__(message, status_code=422, payload={
            'selling_price': str(selling_price),
            'cost_price': str(cost_price),
        })


class NotConfigured(BusinessLogicError):
    """Raised when the partner has not priced a product."""
    def __init__(self, partner_id, product_id):
        message = f"Produto {product_id} não está configurado na loja do parceiro {partner_id}"
        super().__init__(message, status_code=404, payload={
            'partner_id': partner_id,
            'product_id': product_id,
        })


class InsufficientFunds(BusinessLogicError):
    """Raised when a debit would drive a balance bucket below zero."""
    def __init__(self, requested, available, bucket='available'):
        from settlement.utils.formatters import money_br
        message = (
            f"Saldo insuficiente: solicitado R$ {money_br(requested)}, "
            f"disponível R$ {money_br(available)}"
        )
        super().__init__(message, status_code=409, payload={'bucket': bucket})


class BelowMinimum(BusinessLogicError):
    """Raised when a withdrawal is below the configured floor."""
    def __init__(self, amount, minimum):
        from settlement.utils.formatters import money_br
        message = f"O valor mínimo para saque é R$ {money_br(minimum)} (solicitado R$ {money_br(amount)})"
        super().__init__(message, status_code=422)


class InvalidTransition(BusinessLogicError):
    """Raised on a state-machine violation (order or withdrawal)."""
    def __init__(self, entity, entity_id, current, target):
        message = f"Transição inválida para {entity} {entity_id}: {current} -> {target}"
        super().__init__(message, status_code=409, payload={
            'current_status': current,
            'target_status': target,
        })


class LedgerInconsistency(SettlementError):
    """Fatal: balance totals no longer reconcile with the transaction history."""
    def __init__(self, partner_id, problems):
        self.partner_id = partner_id
        self.problems = list(problems)
        message = f"Inconsistência no saldo do parceiro {partner_id}: " + '; '.join(self.problems)
        super().__init__(message, status_code=500)


class PartnerFrozen(SettlementError):
    """Raised when mutating a balance frozen for manual reconciliation."""
    def __init__(self, partner_id, reason=None):
        message = f"Saldo do parceiro {partner_id} bloqueado para reconciliação manual"
        if reason:
            message += f" ({reason})"
        super().__init__(message, status_code=423)
