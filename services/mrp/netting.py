"""Net requirement and suggested order quantity.

Quantities stay Decimal until they are persisted: gross and net are
rounded half-up, the suggestion is the ceiling of the net requirement
so it never under-covers the shortfall.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_CEILING, ROUND_HALF_UP
from typing import Iterable

ZERO = Decimal("0")


def to_decimal(value) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def round_quantity(value) -> int:
    return int(to_decimal(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class StockPosition:
    """Per-part inputs to netting, as seen at the start of a run."""
    current_stock: int = 0
    reserved_qty: int = 0
    incoming_qty: int = 0
    safety_stock: int = 0
    min_order_qty: int = 0

    @property
    def available_stock(self) -> int:
        return available_stock(self.current_stock, self.incoming_qty, self.reserved_qty, self.safety_stock)


@dataclass(frozen=True)
class NetResult:
    net_requirement: Decimal
    suggested_order_qty: int
    consumed_stock: Decimal


def available_stock(current_stock: int, incoming_qty: int, reserved_qty: int, safety_stock: int) -> int:
    # Safety stock is never available to outstanding demand
    return current_stock + incoming_qty - reserved_qty - safety_stock


def net_requirement(gross_requirement, available) -> Decimal:
    gross = to_decimal(gross_requirement)
    return max(ZERO, gross - max(ZERO, to_decimal(available)))


def suggested_order_qty(net, min_order_qty: int) -> int:
    net = to_decimal(net)
    if net <= 0:
        return 0
    return max(int(net.to_integral_value(rounding=ROUND_CEILING)), min_order_qty or 0)


def net_and_suggest(position: StockPosition, gross_requirement, *, allocated=ZERO) -> NetResult:
    """Net one demand against the part's stock.

    ``allocated`` is the usable stock already consumed by earlier demands
    for the same part in this run.
    """
    gross = to_decimal(gross_requirement)
    usable = max(ZERO, max(ZERO, to_decimal(position.available_stock)) - to_decimal(allocated))
    net = net_requirement(gross, usable)
    return NetResult(
        net_requirement=net,
        suggested_order_qty=suggested_order_qty(net, position.min_order_qty),
        consumed_stock=min(usable, gross),
    )


def incoming_quantity(lines: Iterable[tuple[int, int]]) -> int:
    """Sum of outstanding (ordered - received) over open purchase-order lines."""
    return sum(max(0, ordered - received) for ordered, received in lines)
