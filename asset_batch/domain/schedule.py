"""
Pure schedule evaluation functions.

Contract:
    ``should_fire(schedule, as_of)`` and ``period_months_for()`` are PURE --
    no I/O, no side effects.  The caller passes the date from its Clock.

Architecture: asset_batch/domain.  ZERO I/O.

Rules:
    - MONTHLY fires on ``execution_day``, clamped to the last day of
      shorter months (day 31 fires on Feb 28/29, Apr 30, ...).
    - QUARTERLY fires on the clamped day in March, June, September and
      December only.
    - ANNUALLY fires on the clamped day in December only.
    - A scheduled run covers 1, 3 or 12 months respectively.
"""

from __future__ import annotations

from datetime import date

from asset_kernel.domain.periods import clamp_day, is_end_of_month
from asset_kernel.exceptions import InvalidScheduleConfigError

from asset_batch.domain.types import ScheduleConfig, ScheduleType

QUARTER_END_MONTHS = frozenset({3, 6, 9, 12})
YEAR_END_MONTH = 12

NAME_MAX_LENGTH = 100

_PERIOD_MONTHS = {
    ScheduleType.MONTHLY: 1,
    ScheduleType.QUARTERLY: 3,
    ScheduleType.ANNUALLY: 12,
}

__all__ = [
    "effective_execution_day",
    "is_end_of_month",
    "period_months_for",
    "should_fire",
    "validate_schedule_fields",
]


def effective_execution_day(execution_day: int, year: int, month: int) -> date:
    """The date a schedule fires in ``year``/``month``, after clamping."""
    return clamp_day(year, month, execution_day)


def period_months_for(schedule_type: ScheduleType) -> int:
    return _PERIOD_MONTHS[schedule_type]


def should_fire(schedule: ScheduleConfig, as_of: date) -> bool:
    """Determine if a schedule fires on ``as_of``.

    Inactive schedules never fire.
    """
    if not schedule.is_active:
        return False

    if schedule.schedule_type == ScheduleType.QUARTERLY and as_of.month not in QUARTER_END_MONTHS:
        return False

    if schedule.schedule_type == ScheduleType.ANNUALLY and as_of.month != YEAR_END_MONTH:
        return False

    return as_of == effective_execution_day(schedule.execution_day, as_of.year, as_of.month)


def validate_schedule_fields(
    name: str | None,
    execution_day: int | None,
    include_category_ids: frozenset | None = None,
    exclude_category_ids: frozenset | None = None,
) -> None:
    """Reject schedule inputs before they reach the database.

    Raises:
        InvalidScheduleConfigError: Bad name, day out of 1-31, or a category
            in both the include and exclude sets.
    """
    if name is not None:
        stripped = name.strip()
        if not stripped or len(stripped) > NAME_MAX_LENGTH:
            raise InvalidScheduleConfigError(
                f"Schedule name must be 1-{NAME_MAX_LENGTH} characters", field="name",
            )
    if execution_day is not None and not 1 <= execution_day <= 31:
        raise InvalidScheduleConfigError(
            "Execution day must be between 1 and 31", field="execution_day",
        )
    overlap = frozenset(include_category_ids or ()) & frozenset(exclude_category_ids or ())
    if overlap:
        raise InvalidScheduleConfigError(
            "Categories cannot be both included and excluded: "
            + ", ".join(sorted(str(c) for c in overlap)),
            field="exclude_category_ids",
        )
