"""Derivación monetaria (neto / IVA / bruto).

Reglas del dominio:
- Moneda sin decimales: todo se redondea al entero más cercano (mitades hacia
  arriba, como `Math.round` sobre montos no negativos).
- La tasa de IVA es fija (19%). No es configuración: ningún componente puede
  usar otra tasa ni otra regla de redondeo.

Las funciones son puras; los builders y el agregador las usan todas por igual.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, NamedTuple, Union

from core.domain.errors import ValidationError

Number = Union[int, float, Decimal]

TAX_RATE = Decimal("0.19")
_GROSS_FACTOR = Decimal(1) + TAX_RATE


class LineAmounts(NamedTuple):
    net: int
    gross: int


class DocumentTotals(NamedTuple):
    total_net: int
    total_tax: int
    total_gross: int


def _to_decimal(value: Number | None) -> Decimal:
    if value is None:
        return Decimal(0)
    # str() evita arrastrar el error binario de los float
    amount = value if isinstance(value, Decimal) else Decimal(str(value))
    if not amount.is_finite():
        raise ValidationError(f"Amount must be a finite number, got {value!r}")
    return amount


def round_currency(value: Number | None) -> int:
    """Redondea a la unidad monetaria entera."""

    return int(_to_decimal(value).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def net(quantity: Number | None, unit_price: Number | None) -> int:
    return round_currency(_to_decimal(quantity) * _to_decimal(unit_price))


def gross(net_amount: Number) -> int:
    return round_currency(_to_decimal(net_amount) * _GROSS_FACTOR)


def tax(net_amount: int, gross_amount: int) -> int:
    return gross_amount - net_amount


def line_amounts(quantity: Number | None, unit_price: Number | None) -> LineAmounts:
    """Neto y bruto de una línea (`cantidad × precio`)."""

    line_net = net(quantity, unit_price)
    return LineAmounts(net=line_net, gross=gross(line_net))


def fold_totals(amounts: Iterable[tuple[int, int]]) -> DocumentTotals:
    """Suma pares (neto, bruto) por línea; el IVA es la diferencia de los totales."""

    total_net = 0
    total_gross = 0
    for line_net, line_gross in amounts:
        total_net += line_net
        total_gross += line_gross
    return DocumentTotals(
        total_net=total_net,
        total_tax=tax(total_net, total_gross),
        total_gross=total_gross,
    )
