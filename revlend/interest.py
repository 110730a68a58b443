"""
interest.py - Continuous-compounding interest accrual

Pure functions, no LedgerView: every input is explicit.

Key Formulas:
    annual_rate   = rate / rate_scale                   (37 / 1000 = 3.7%)
    year_fraction = elapsed_seconds / (365.25 * 86400)
    debt'         = debt * exp(annual_rate * year_fraction)

All results are rounded UP (in the lender's favour):
    - the growth factor to 18 decimal places (WAD fixed point)
    - the debt to the settlement currency's quantum

Accrual is lazy: loan operations call accrue_debt() with the time of the
last accrual, so a loan that nobody touches costs nothing until it is touched.
"""

from __future__ import annotations
from datetime import datetime
from decimal import Decimal, ROUND_UP, localcontext

from .core import WAD_DECIMAL_PLACES


DEFAULT_RATE_SCALE = 1000
DEFAULT_DAYS_PER_YEAR = Decimal("365.25")
SECONDS_PER_DAY = Decimal("86400")

# Guard digits carried beyond the digits a result actually needs.
_GUARD_DIGITS = 20


def round_up(value: Decimal, quantum: Decimal) -> Decimal:
    """
    Round a non-negative value up to a multiple of quantum.

    Precision is widened to fit the result, so large debts never trip
    the 50-digit default context.
    """
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, value.adjusted() - quantum.adjusted() + _GUARD_DIGITS)
        return value.quantize(quantum, rounding=ROUND_UP)


def annual_rate(rate: int, rate_scale: int = DEFAULT_RATE_SCALE) -> Decimal:
    """
    Convert an integer auction rate to an annual fraction.

    Example:
        annual_rate(37) == Decimal("0.037")   # 3.7% a year
        annual_rate(1000) == Decimal("1")     # 100% a year
    """
    if rate < 0:
        raise ValueError(f"rate cannot be negative, got {rate}")
    return Decimal(rate) / Decimal(rate_scale)


def year_fraction(
    start: datetime,
    end: datetime,
    days_per_year: Decimal = DEFAULT_DAYS_PER_YEAR,
) -> Decimal:
    """
    Elapsed time between two instants in years of days_per_year days.

    Leap years are not special-cased: every year is 365.25 days.

    Raises:
        ValueError: if end is before start
    """
    if end < start:
        raise ValueError(f"Cannot accrue backwards: {end} < {start}")
    delta = end - start
    seconds = (
        Decimal(delta.days) * SECONDS_PER_DAY
        + Decimal(delta.seconds)
        + Decimal(delta.microseconds) / Decimal(1_000_000)
    )
    return seconds / (Decimal(str(days_per_year)) * SECONDS_PER_DAY)


def fixed_exp(x: Decimal, places: int = WAD_DECIMAL_PLACES) -> Decimal:
    """
    e**x as a fixed-point number with `places` decimals, rounded up.

    Evaluated in a wide Decimal context, so the only error is the final
    upward rounding (at most one unit in the last place).
    """
    if not isinstance(x, Decimal):
        x = Decimal(str(x))
    with localcontext() as ctx:
        ctx.prec = 50 + _GUARD_DIGITS
        value = x.exp()
    return round_up(value, Decimal(10) ** -places)


def growth_factor(
    rate: int,
    start: datetime,
    end: datetime,
    rate_scale: int = DEFAULT_RATE_SCALE,
    days_per_year: Decimal = DEFAULT_DAYS_PER_YEAR,
    places: int = WAD_DECIMAL_PLACES,
) -> Decimal:
    """Continuous-compounding growth factor exp(rate * years) over [start, end]."""
    exponent = annual_rate(rate, rate_scale) * year_fraction(start, end, days_per_year)
    return fixed_exp(exponent, places)


def accrue_debt(
    debt: Decimal,
    rate: int,
    last_accrued: datetime,
    now: datetime,
    quantum: Decimal,
    rate_scale: int = DEFAULT_RATE_SCALE,
    days_per_year: Decimal = DEFAULT_DAYS_PER_YEAR,
    places: int = WAD_DECIMAL_PLACES,
) -> Decimal:
    """
    Debt after continuous compounding from last_accrued to now.

    A zero interval, a zero debt or a zero rate leaves the debt unchanged.
    Otherwise the result is rounded up to the currency quantum and is never
    below the input debt.

    Args:
        debt: Outstanding principal plus interest
        rate: Integer rate on the rate scale (fixed for the loan)
        last_accrued: Time of the previous accrual
        now: Accrual time
        quantum: Smallest amount of the settlement currency

    Example:
        # 1000 at 10% for one 365.25-day year
        accrue_debt(Decimal("1000"), 100, t0, t0 + timedelta(days=365.25), Decimal("1e-18"))
        # -> 1105.170918075647625 (1000 * e**0.1, rounded up)
    """
    if not isinstance(debt, Decimal):
        debt = Decimal(str(debt))
    if debt < 0:
        raise ValueError(f"debt cannot be negative, got {debt}")
    if now < last_accrued:
        raise ValueError(f"Cannot accrue backwards: {now} < {last_accrued}")
    if now == last_accrued or debt == 0 or rate == 0:
        return debt

    factor = growth_factor(rate, last_accrued, now, rate_scale, days_per_year, places)
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, debt.adjusted() + factor.adjusted() + places + _GUARD_DIGITS)
        grown = debt * factor
    return max(debt, round_up(grown, quantum))
