"""
Montants en unités mineures (centimes).
- round_half_up: arrondi « commercial » (0.5 s'éloigne de zéro), appliqué une fois par champ dérivé.
- format_money: rendu "12.34 EUR", formateur remplaçable via set_formatter.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Optional, Union

from cartpay.config import DEFAULT_CURRENCY

Number = Union[int, float, Decimal]

def to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # str() évite les artefacts binaires des floats (2.9 -> 2.899999...)
    return Decimal(str(value))

def round_half_up(value: Number) -> int:
    return int(to_decimal(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

def _default_formatter(value: int, currency: str) -> str:
    amount = to_decimal(int(value)) / 100
    return f"{amount:,.2f} {currency}"

_formatter: Callable[[int, str], str] = _default_formatter

def set_formatter(fn: Optional[Callable[[int, str], str]]) -> None:
    global _formatter
    _formatter = fn or _default_formatter

def format_money(value: int, currency: Optional[str] = None) -> str:
    return _formatter(int(value), currency or DEFAULT_CURRENCY)
