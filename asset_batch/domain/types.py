"""
asset_batch.domain.types -- Pure frozen dataclasses for depreciation runs.

ZERO I/O.

Frozen dataclasses with enum status fields and tuples for immutable
collections, matching ``asset_modules.assets.models``.

Invariants enforced:
    - All DTOs are frozen dataclasses (immutable).
    - Category id sets are frozensets; a category in both sets is rejected
      when the set is turned into a ``CategoryFilter``.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from asset_modules.assets.eligibility import CategoryFilter
from asset_modules.assets.models import Asset


# =============================================================================
# Status enums
# =============================================================================


class ScheduleType(str, Enum):
    """Cadence of a configured depreciation schedule."""

    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"  # Mar, Jun, Sep, Dec
    ANNUALLY = "ANNUALLY"  # December


class ExecutionStatus(str, Enum):
    """Run-level lifecycle status."""

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"  # Nothing succeeded and at least one asset failed
    CANCELLED = "CANCELLED"


class DetailStatus(str, Enum):
    """Per-asset outcome within a run."""

    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


# =============================================================================
# Schedule DTOs
# =============================================================================


@dataclass(frozen=True)
class ScheduleConfig:
    """Immutable snapshot of a configured depreciation schedule."""

    schedule_id: UUID
    name: str
    schedule_type: ScheduleType
    business_unit_id: UUID
    execution_day: int = 30
    is_active: bool = True
    description: str | None = None
    include_category_ids: frozenset[UUID] = frozenset()
    exclude_category_ids: frozenset[UUID] = frozenset()
    created_by: UUID | None = None
    created_at: datetime | None = None

    @property
    def category_filter(self) -> CategoryFilter:
        return CategoryFilter.of(self.include_category_ids, self.exclude_category_ids)


@dataclass(frozen=True)
class ScheduleExecution:
    """Immutable snapshot of one depreciation run."""

    execution_id: UUID
    business_unit_id: UUID
    execution_date: date
    status: ExecutionStatus
    schedule_id: UUID | None = None
    total_assets_processed: int = 0
    successful_calculations: int = 0
    failed_calculations: int = 0
    skipped_calculations: int = 0
    total_depreciation_amount: Decimal = Decimal("0")
    execution_duration_ms: int | None = None
    error_message: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None


# =============================================================================
# Run DTOs
# =============================================================================


@dataclass(frozen=True)
class DepreciationDetail:
    """Outcome for one asset in a run."""

    asset_id: UUID
    item_code: str
    description: str
    depreciation_amount: Decimal
    new_book_value: Decimal | None
    status: DetailStatus
    error: str | None = None
    book_value_before: Decimal | None = None


@dataclass(frozen=True)
class CategoryDepreciationTotal:
    category_id: UUID
    category_name: str
    assets_count: int
    total_depreciation: Decimal


@dataclass(frozen=True)
class MethodDepreciationTotal:
    method: str
    assets_count: int
    total_depreciation: Decimal


@dataclass(frozen=True)
class DepreciationSummary:
    """Successful depreciation of one run, grouped for reconciliation.

    Built from the run's ledger entries, so a rebuilt result matches the
    one returned when the run finished.
    """

    by_category: tuple[CategoryDepreciationTotal, ...] = ()
    by_method: tuple[MethodDepreciationTotal, ...] = ()


@dataclass(frozen=True)
class ScheduledDepreciationResult:
    """Immutable result of a complete run.

    Returned by ``DepreciationRunExecutor.run_manual()`` / ``run_scheduled()``.
    """

    execution_id: UUID
    total_assets_processed: int
    successful_calculations: int
    failed_calculations: int
    skipped_calculations: int
    total_depreciation_amount: Decimal
    execution_duration_ms: int
    details: tuple[DepreciationDetail, ...] = ()
    status: ExecutionStatus = ExecutionStatus.COMPLETED
    fully_depreciated_assets: int = 0  # reached salvage in this run
    summary: DepreciationSummary = field(default_factory=DepreciationSummary)


@dataclass(frozen=True)
class ManualDepreciationFilters:
    """Options for an on-demand run.

    ``units_consumed`` maps asset id to the units produced during the period;
    it only affects units-of-production assets.
    """

    calculation_date: date | None = None
    include_category_ids: frozenset[UUID] = frozenset()
    exclude_category_ids: frozenset[UUID] = frozenset()
    units_consumed: Mapping[UUID, Decimal] = field(default_factory=dict)

    @property
    def category_filter(self) -> CategoryFilter:
        return CategoryFilter.of(self.include_category_ids, self.exclude_category_ids)


@dataclass(frozen=True)
class DepreciationPreview:
    """Read-only view of what the next run would touch."""

    assets: tuple[Asset, ...]
    is_end_of_month: bool
    total_count: int
    total_monthly_depreciation: Decimal


@dataclass(frozen=True)
class BusinessUnitRunOutcome:
    business_unit_id: UUID
    business_unit_name: str
    result: ScheduledDepreciationResult | None = None
    error: str | None = None


@dataclass(frozen=True)
class EndOfMonthRunReport:
    """Result of ``DepreciationScheduler.run_end_of_month_depreciation``."""

    executed_on: date
    skipped: bool = False
    reason: str | None = None
    results: tuple[BusinessUnitRunOutcome, ...] = ()


@dataclass(frozen=True)
class ScheduleRunOutcome:
    """Result or error for one schedule fired by ``run_due_schedules``."""

    schedule_id: UUID
    schedule_name: str
    result: ScheduledDepreciationResult | None = None
    error: str | None = None
