"""
Utilidades de formatação para mensagens e respostas.
Valores no padrão brasileiro.
"""
from decimal import Decimal, InvalidOperation
from typing import Union


def money_br(value: Union[int, float, Decimal, str, None]) -> str:
    """
    Formata um valor monetário no padrão brasileiro com exatamente 2 casas.
    Ponto para milhar e vírgula para decimais.

    Args:
        value: Valor a formatar

    Returns:
        String formatada (ex: 1.500,00). Retorna "-" se inválido.

    Examples:
        money_br(1500) -> "1.500,00"
        money_br(Decimal('24')) -> "24,00"
        money_br(-60) -> "-60,00"
    """
    if value is None or value == "":
        return "-"

    try:
        num = Decimal(str(value)).quantize(Decimal('0.01'))
    except (InvalidOperation, ValueError, TypeError):
        return "-"

    sign = "-" if num < 0 else ""
    num = abs(num)

    integer_part, decimal_part = f"{num:.2f}".split(".")
    reversed_int = integer_part[::-1]
    groups = [reversed_int[i:i+3] for i in range(0, len(reversed_int), 3)]
    integer_formatted = '.'.join(groups)[::-1]

    return f"{sign}{integer_formatted},{decimal_part}"
