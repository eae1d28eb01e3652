"""
Fee, total and PnL calculations for USDT exchange deals.

Two models live here:
- the two-leg model (one record carries a buy leg and a sell leg), which is
  what gets stored;
- the single-leg model (one record is either a buy or a sell), kept for
  legacy rows and the migration that moves them onto the two-leg columns.

Nothing in this module raises in lenient mode: missing, non-numeric and
non-finite inputs count as zero. Strict mode raises InvalidNumberError
instead, for callers that want validation rather than a preview.
"""

import math
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, Mapping, Union

from errors import InvalidNumberError


class NumericMode(str, Enum):
    LENIENT = "lenient"
    STRICT = "strict"


class DealType(str, Enum):
    BUY = "buy"
    SELL = "sell"


NumberLike = Union[int, float, str, Decimal, None]


@dataclass
class MonthlyStats:
    """Aggregate of a month of two-leg deals."""
    pnl: float = 0.0
    total: float = 0.0


@dataclass
class SingleLegStats:
    """Aggregate of single-leg deals."""
    total: float = 0.0
    profit: float = 0.0


def to_number(value: Any, mode: Union[NumericMode, str] = NumericMode.LENIENT) -> float:
    """
    Convert a form or stored value to a finite float.

    Args:
        value: int, float, Decimal, numeric string or None
        mode: lenient (bad input -> 0.0) or strict (bad input raises)

    Returns:
        The value as a float
    """
    mode = NumericMode(mode)
    number = None
    try:
        if isinstance(value, (bool, int, float, Decimal)):
            number = float(value)
        elif isinstance(value, str) and value.strip():
            number = float(value.strip())
    except (OverflowError, ValueError):
        # huge ints, signaling NaN Decimals, non-numeric text
        number = None

    # blank strings fall through as missing
    if number is None or not math.isfinite(number):
        if mode is NumericMode.STRICT:
            raise InvalidNumberError(f"Not a finite number: {value!r}")
        return 0.0
    return number


def clamp_percent(value: Any) -> float:
    """Clamp a percentage to [0, 100]. Non-finite input maps to 0."""
    x = to_number(value)
    return min(100.0, max(0.0, x))


# ==================== Two-leg model ====================
def compute_buy_total(usdt: Any, buy_commission: Any, mode=NumericMode.LENIENT) -> float:
    """Buy leg total: usdt minus the commission share."""
    base = to_number(usdt, mode)
    c = to_number(buy_commission, mode)
    return base - (base * c) / 100


def compute_sell_total(usdt: Any, sell_commission: Any, mode=NumericMode.LENIENT) -> float:
    """
    Sell leg total: usdt plus the commission share.

    The fee is added on the sell side. This is the inverse of the usual
    "fee reduces proceeds" convention and is pending product clarification,
    so it stays as recorded.
    """
    base = to_number(usdt, mode)
    c = to_number(sell_commission, mode)
    return base + (base * c) / 100


def _field(record: Any, name: str) -> Any:
    if isinstance(record, Mapping):
        return record.get(name)
    return getattr(record, name, None)


def deal_profit(deal: Any) -> float:
    """Profit of a single two-leg deal: sell amount minus buy amount."""
    return to_number(_field(deal, 'sell_amount')) - to_number(_field(deal, 'buy_amount'))


def aggregate_month(deals: Iterable[Any]) -> MonthlyStats:
    """
    Reduce a month of two-leg deals to pnl and total.

    pnl sums sell_amount - buy_amount, total sums sell_amount + buy_amount.
    Accepts Deal objects or mappings; math.fsum keeps the result independent
    of input order.
    """
    pnl_parts = []
    total_parts = []
    for deal in deals:
        buy = to_number(_field(deal, 'buy_amount'))
        sell = to_number(_field(deal, 'sell_amount'))
        pnl_parts.append(sell - buy)
        total_parts.append(sell + buy)
    return MonthlyStats(pnl=math.fsum(pnl_parts), total=math.fsum(total_parts))


# ==================== Single-leg model ====================
def _is_sell(deal_type: Union[DealType, str]) -> bool:
    return str(getattr(deal_type, 'value', deal_type)).lower() == DealType.SELL.value


def calc_total(deal_type: Union[DealType, str], amount: Any, commission: Any) -> float:
    """A sell nets amount minus the fee, a buy costs amount plus the fee."""
    amount = to_number(amount)
    fee = (amount * to_number(commission)) / 100
    return amount - fee if _is_sell(deal_type) else amount + fee


def calc_pnl(deal_type: Union[DealType, str], amount: Any, commission: Any) -> float:
    """The fee's contribution to PnL: positive for a sell, negative for a buy."""
    pnl = (to_number(amount) * to_number(commission)) / 100
    return pnl if _is_sell(deal_type) else -pnl


def aggregate_single_leg(deals: Iterable[Any]) -> SingleLegStats:
    """Sum calc_total and calc_pnl over records with type, amount and commission."""
    totals = []
    profits = []
    for deal in deals:
        deal_type = _field(deal, 'type')
        amount = _field(deal, 'amount')
        commission = _field(deal, 'commission')
        totals.append(calc_total(deal_type, amount, commission))
        profits.append(calc_pnl(deal_type, amount, commission))
    return SingleLegStats(total=math.fsum(totals), profit=math.fsum(profits))
