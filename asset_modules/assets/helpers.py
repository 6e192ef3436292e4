"""
Depreciation Calculator (``asset_modules.assets.helpers``).

Responsibility
--------------
Pure calculation functions for the four supported depreciation methods
(straight-line, declining-balance, sum-of-years'-digits,
units-of-production), the per-asset parameters precomputed at creation
time, and the period calculation run by the depreciation scheduler.

Architecture position
---------------------
**Modules layer** -- pure helper functions.  No I/O, no session, no clock.
Called by ``AssetRegistryService``, ``DepreciationRunExecutor`` and tests.

Invariants enforced
-------------------
* All numeric inputs and outputs use ``Decimal`` -- never ``float``.
* Amounts are rounded with ``round_money`` (0.01, ROUND_HALF_UP).
* Salvage floor: ``book_value_after >= salvage_value`` for every method.
  When the unclamped amount would cross the floor, the amount becomes
  ``book_value - salvage_value`` and the asset is fully depreciated.
* A period never starts before the month following the previous one, so
  ledger periods for an asset cannot overlap.

Failure modes
-------------
* Missing rate or useful life for a method that needs it
  -> ``DepreciationParameterError``.
* Degenerate inputs inside the textbook formulas (zero life, zero units)
  -> ``Decimal("0")``.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from asset_kernel.db.types import ZERO, round_money
from asset_kernel.domain.periods import (
    add_months,
    first_day_of_month,
    last_day_of_month,
    months_between,
)
from asset_kernel.exceptions import DepreciationParameterError
from asset_modules.assets.models import (
    DepreciationMethod,
    DepreciationParameters,
    DepreciationResult,
    DepreciationSnapshot,
)

PER_UNIT_QUANTUM = Decimal("0.000001")


# -----------------------------------------------------------------------------
# Textbook formulas
# -----------------------------------------------------------------------------


def straight_line(
    cost: Decimal,
    salvage_value: Decimal,
    useful_life_months: int,
) -> Decimal:
    """
    Monthly straight-line depreciation: (cost - salvage) / months.

    Returns ``Decimal("0")`` if ``useful_life_months`` <= 0.
    """
    if useful_life_months <= 0:
        return ZERO
    return round_money((cost - salvage_value) / useful_life_months)


def declining_balance(book_value: Decimal, annual_rate_percent: Decimal) -> Decimal:
    """
    Monthly declining-balance depreciation: book value x (rate / 100 / 12).

    The rate is an annual percentage configured on the asset (20 = 20%).
    """
    if annual_rate_percent <= 0 or book_value <= 0:
        return ZERO
    return round_money(book_value * annual_rate_percent / Decimal("100") / Decimal("12"))


def sum_of_years_digits(
    cost: Decimal,
    salvage_value: Decimal,
    useful_life_years: int,
    current_year: int,
) -> Decimal:
    """
    Annual sum-of-years'-digits depreciation for a 1-based year.

    depreciable x remaining_years / (n(n+1)/2).  Returns ``Decimal("0")``
    if life <= 0 or the year is past the end of life.
    """
    if useful_life_years <= 0 or current_year < 1 or current_year > useful_life_years:
        return ZERO
    sum_digits = Decimal(useful_life_years * (useful_life_years + 1) // 2)
    remaining_years = Decimal(useful_life_years - current_year + 1)
    return round_money((cost - salvage_value) * remaining_years / sum_digits)


def units_of_production(
    cost: Decimal,
    salvage_value: Decimal,
    total_estimated_units: Decimal,
    units_produced: Decimal,
) -> Decimal:
    """Depreciation for ``units_produced`` at (cost - salvage) / total units."""
    if total_estimated_units <= ZERO:
        return ZERO
    rate_per_unit = (cost - salvage_value) / total_estimated_units
    return round_money(rate_per_unit * units_produced)


def syd_life_years(useful_life_months: int) -> int:
    """Whole years used for SYD weighting; a partial final year counts as one."""
    return -(-useful_life_months // 12) if useful_life_months > 0 else 0


# -----------------------------------------------------------------------------
# Parameters precomputed on create / update
# -----------------------------------------------------------------------------


def compute_depreciation_parameters(
    method: DepreciationMethod,
    purchase_price: Decimal | None,
    salvage_value: Decimal | None = None,
    useful_life_years: int | None = None,
    useful_life_months: int | None = None,
    declining_balance_rate: Decimal | None = None,
    total_expected_units: Decimal | None = None,
) -> DepreciationParameters:
    """
    Derive the monthly rate (and per-unit rate) stored on the asset.

    * Straight-line: (price - salvage) / total months.
    * Declining-balance: price x rate / 100 / 12 (first-month figure).
    * Units-of-production: per-unit = (price - salvage) / total units;
      the monthly figure is the straight-line equivalent used when no
      consumption is reported.
    * Sum-of-years'-digits: first-year SYD amount / 12.

    Raises:
        DepreciationParameterError: On missing or inconsistent inputs.
    """
    if purchase_price is None:
        raise DepreciationParameterError(
            "Purchase price is required when a depreciation method is set",
            field="purchase_price",
        )
    if purchase_price <= 0:
        raise DepreciationParameterError(
            "Purchase price must be greater than zero", field="purchase_price"
        )
    salvage = salvage_value or ZERO
    if salvage < 0 or salvage > purchase_price:
        raise DepreciationParameterError(
            "Salvage value must be between zero and the purchase price",
            field="salvage_value",
        )

    years = useful_life_years or 0
    extra_months = useful_life_months or 0
    if years < 0 or not 0 <= extra_months <= 11:
        raise DepreciationParameterError(
            "Useful life must be whole years plus 0-11 months", field="useful_life_months"
        )
    total_months = years * 12 + extra_months

    if method is DepreciationMethod.DECLINING_BALANCE:
        if declining_balance_rate is None or not ZERO < declining_balance_rate <= Decimal("100"):
            raise DepreciationParameterError(
                "Declining balance rate must be between 0 and 100 percent",
                field="declining_balance_rate",
            )
        return DepreciationParameters(
            total_months=total_months,
            monthly_depreciation=declining_balance(purchase_price, declining_balance_rate),
        )

    if total_months <= 0:
        raise DepreciationParameterError(
            "Useful life is required for this depreciation method",
            field="useful_life_years",
        )

    if method is DepreciationMethod.STRAIGHT_LINE:
        return DepreciationParameters(
            total_months=total_months,
            monthly_depreciation=straight_line(purchase_price, salvage, total_months),
        )

    if method is DepreciationMethod.UNITS_OF_PRODUCTION:
        if total_expected_units is None or total_expected_units <= 0:
            raise DepreciationParameterError(
                "Total expected units are required for units of production",
                field="total_expected_units",
            )
        per_unit = ((purchase_price - salvage) / total_expected_units).quantize(PER_UNIT_QUANTUM)
        return DepreciationParameters(
            total_months=total_months,
            monthly_depreciation=straight_line(purchase_price, salvage, total_months),
            depreciation_per_unit=per_unit,
        )

    # SUM_OF_YEARS_DIGITS
    first_year = sum_of_years_digits(
        purchase_price, salvage, syd_life_years(total_months), 1
    )
    return DepreciationParameters(
        total_months=total_months,
        monthly_depreciation=round_money(first_year / Decimal("12")),
    )


# -----------------------------------------------------------------------------
# Period calculation
# -----------------------------------------------------------------------------


def depreciation_period(
    snapshot: DepreciationSnapshot,
    calculation_date: date,
    period_months: int = 1,
) -> tuple[date, date, int]:
    """
    Return ``(period_start, period_end, months)`` for a run.

    The period ends on the last day of the calculation month and reaches
    back ``period_months`` months, but never before the month after the
    last processed period (or the depreciation start month for a first
    run).  ``months`` is <= 0 when there is nothing left to cover.
    """
    period_end = last_day_of_month(calculation_date)
    window_start = add_months(first_day_of_month(calculation_date), -(period_months - 1))
    if snapshot.last_depreciation_date is not None:
        floor = add_months(first_day_of_month(snapshot.last_depreciation_date), 1)
    else:
        floor = first_day_of_month(snapshot.depreciation_start_date)
    period_start = max(window_start, floor)
    return period_start, period_end, months_between(period_start, period_end) + 1


def _amount_for_month(snapshot: DepreciationSnapshot, month_start: date, book_value: Decimal) -> Decimal:
    method = snapshot.method

    if method is DepreciationMethod.STRAIGHT_LINE:
        if snapshot.monthly_depreciation > 0:
            return snapshot.monthly_depreciation
        if snapshot.useful_life_months <= 0:
            raise DepreciationParameterError(
                "Useful life is required for straight-line depreciation",
                field="useful_life_years",
            )
        return straight_line(snapshot.purchase_price, snapshot.salvage_value, snapshot.useful_life_months)

    if method is DepreciationMethod.DECLINING_BALANCE:
        if snapshot.declining_balance_rate is None:
            raise DepreciationParameterError(
                "Declining balance rate is not set", field="declining_balance_rate"
            )
        return declining_balance(book_value, snapshot.declining_balance_rate)

    if method is DepreciationMethod.SUM_OF_YEARS_DIGITS:
        life_years = syd_life_years(snapshot.useful_life_months)
        if life_years <= 0:
            raise DepreciationParameterError(
                "Useful life is required for sum-of-years-digits depreciation",
                field="useful_life_years",
            )
        year = months_between(snapshot.depreciation_start_date, month_start) // 12 + 1
        annual = sum_of_years_digits(
            snapshot.purchase_price, snapshot.salvage_value, life_years, year
        )
        return round_money(annual / Decimal("12"))

    # UNITS_OF_PRODUCTION without reported consumption: monthly equivalent
    return snapshot.monthly_depreciation


def calculate_depreciation(
    snapshot: DepreciationSnapshot,
    calculation_date: date,
    *,
    period_months: int = 1,
    units_consumed: Decimal | None = None,
    units_fallback: bool = True,
) -> DepreciationResult:
    """
    Compute one period of depreciation for an asset.

    Preconditions:
        - ``period_months`` >= 1 (1 for monthly runs, 3 quarterly, 12 annual).
        - ``units_consumed`` is only meaningful for units-of-production.
    Postconditions:
        - ``book_value_after >= snapshot.salvage_value``.
        - ``is_fully_depreciated`` iff ``book_value_after == salvage_value``
          (or already below it).
        - A zero ``depreciation_amount`` is a no-op the caller must skip.

    Raises:
        DepreciationParameterError: Method-specific inputs are missing.
    """
    if period_months < 1:
        raise DepreciationParameterError("period_months must be at least 1", field="period_months")

    period_start, period_end, months = depreciation_period(snapshot, calculation_date, period_months)
    book_value = snapshot.current_book_value
    salvage = snapshot.salvage_value
    total = ZERO
    used_units: Decimal | None = None

    if months > 0 and book_value > salvage:
        if snapshot.method is DepreciationMethod.UNITS_OF_PRODUCTION and units_consumed is not None:
            if units_consumed < 0:
                raise DepreciationParameterError(
                    "Units consumed cannot be negative", field="units_consumed"
                )
            if snapshot.depreciation_per_unit is None:
                raise DepreciationParameterError(
                    "Per-unit depreciation rate is not set", field="depreciation_per_unit"
                )
            used_units = units_consumed
            total = min(round_money(snapshot.depreciation_per_unit * units_consumed), book_value - salvage)
        elif snapshot.method is DepreciationMethod.UNITS_OF_PRODUCTION and not units_fallback:
            total = ZERO
        else:
            running = book_value
            for offset in range(months):
                amount = _amount_for_month(snapshot, add_months(period_start, offset), running)
                amount = min(amount, running - salvage)
                if amount <= 0:
                    break
                running -= amount
                total += amount

    total = max(total, ZERO)
    book_value_after = book_value - total
    fully = book_value_after <= salvage

    return DepreciationResult(
        depreciation_amount=total,
        book_value_after=book_value_after,
        accumulated_depreciation_after=snapshot.accumulated_depreciation + total,
        is_fully_depreciated=fully,
        period_start=period_start,
        period_end=period_end,
        next_depreciation_date=None if fully else last_day_of_month(add_months(calculation_date, 1)),
        months_covered=max(months, 0),
        units_consumed=used_units,
    )
