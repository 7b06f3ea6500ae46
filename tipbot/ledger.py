# tipbot/ledger.py
"""Money conversion and the pure quota rules of the tip ledger.

Nothing here touches the database; callers pass in the current values and
apply the result inside their own transaction.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_DOWN

from tipbot.errors import LimitReachedError

# USDC has 6 decimals; ledger amounts use the same scale
TOKEN_DECIMALS = 6
TOKEN_UNIT = Decimal(10) ** TOKEN_DECIMALS
LEDGER_QUANTUM = Decimal(1).scaleb(-TOKEN_DECIMALS)


def _to_decimal(x) -> Decimal:
    if isinstance(x, Decimal):
        return x
    return Decimal(str(x))


def quantize_money(x) -> Decimal:
    return _to_decimal(x).quantize(LEDGER_QUANTUM, rounding=ROUND_DOWN)


def to_token_units(amount) -> int:
    """Ledger Decimal -> integer token units (the chain-write boundary)."""
    amt = quantize_money(amount)
    if amt < 0:
        raise ValueError("amount must be >= 0")
    return int(amt * TOKEN_UNIT)


def from_token_units(units: int) -> Decimal:
    if units < 0:
        raise ValueError("units must be >= 0")
    return quantize_money(Decimal(units) / TOKEN_UNIT)


def format_amount(amount) -> str:
    return f"{quantize_money(amount).normalize():f}"


# -------- Daily quota --------

def is_new_day(last: date | None, today: date) -> bool:
    return last is None or last < today


def tips_given_since_reset(tips_given_today: int | None, last_reset_date: date | None, today: date) -> tuple[int, date]:
    """Lazy daily reset: returns the (count, reset_date) valid for ``today``.

    Idempotent; calling it twice on the same day yields the same result.
    """
    if is_new_day(last_reset_date, today):
        return 0, today
    return tips_given_today or 0, last_reset_date


@dataclass(frozen=True)
class QuotaDecision:
    uses_extra_balance: bool
    tips_given_after: int


def evaluate_quota(
    *,
    tips_given_today: int,
    extra_balance,
    daily_limit: int,
    tip_amount,
) -> QuotaDecision:
    has_free_quota = tips_given_today < daily_limit
    has_extra = _to_decimal(extra_balance) >= _to_decimal(tip_amount)

    if not has_free_quota and not has_extra:
        raise LimitReachedError(daily_limit)

    # free tips are consumed first; extra balance only funds tips past the limit,
    # and those do not count against the free quota (counter stays <= daily_limit)
    if has_free_quota:
        return QuotaDecision(uses_extra_balance=False, tips_given_after=tips_given_today + 1)
    return QuotaDecision(uses_extra_balance=True, tips_given_after=tips_given_today)


def free_tips_left(tips_given_today: int, daily_limit: int) -> int:
    return max(daily_limit - tips_given_today, 0)
