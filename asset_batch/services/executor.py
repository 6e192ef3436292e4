"""
DepreciationRunExecutor -- SAVEPOINT-per-asset depreciation runs.

Contract:
    Runs one depreciation pass over a business unit: records the execution
    as RUNNING, depreciates each eligible asset in its own SAVEPOINT, writes
    a detail row per asset and closes the execution as COMPLETED or FAILED.

Architecture: asset_batch/services.  Imports from asset_batch.domain,
    asset_batch.models, asset_modules.assets and kernel services.

Invariants enforced:
    - SAVEPOINT isolation per asset (one failure doesn't abort the run).
    - The asset row is re-read with SELECT ... FOR UPDATE and eligibility is
      re-checked inside the SAVEPOINT, so two concurrent runs cannot both
      depreciate the same asset for the same month.
    - The ledger's UNIQUE (asset_id, period_start) is the backstop; a hit is
      reported as SKIPPED, not FAILED.
    - All dates and timestamps come from the injected Clock; durations use
      a monotonic timer.
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from asset_kernel.db.types import ZERO, round_money
from asset_kernel.db.unit_of_work import UnitOfWork
from asset_kernel.domain.clock import Clock, SystemClock
from asset_kernel.logging_config import LogContext, get_logger
from asset_modules.assets.config import AssetConfig
from asset_modules.assets.eligibility import (
    ALL_CATEGORIES,
    CategoryFilter,
    EligibilityFilter,
    VerdictKind,
    evaluate_eligibility,
)
from asset_modules.assets.helpers import calculate_depreciation
from asset_modules.assets.history import AuditLedger
from asset_modules.assets.models import DepreciationSnapshot, HistoryAction
from asset_modules.assets.orm import AssetCategoryModel, AssetModel, DepreciationLedgerEntryModel

from asset_batch.domain.schedule import period_months_for
from asset_batch.domain.types import (
    CategoryDepreciationTotal,
    DepreciationDetail,
    DepreciationSummary,
    DetailStatus,
    ExecutionStatus,
    MethodDepreciationTotal,
    ScheduleConfig,
    ScheduledDepreciationResult,
)
from asset_batch.models.batch import ScheduleExecutionAssetModel, ScheduleExecutionModel

logger = get_logger("batch.executor")

ALREADY_DEPRECIATED = "Already depreciated for period"


class DepreciationRunExecutor:
    """Depreciation run engine with SAVEPOINT-per-asset isolation.

    Contract:
        - ``run_manual()`` runs an ad hoc pass over a business unit.
        - ``run_scheduled()`` runs a configured schedule; a second call for
          the same schedule and date returns the first execution.
        - ``get_result()`` rebuilds a result from a stored execution.

    Non-goals:
        - Does NOT decide whether a schedule is due -- that is
          ``domain.schedule.should_fire``.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: AssetConfig | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or AssetConfig.with_defaults()
        self._uow = UnitOfWork(session)
        self._ledger = AuditLedger(session, self._clock)
        self._eligibility = EligibilityFilter(session)

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def run_manual(
        self,
        business_unit_id: UUID,
        actor_id: UUID,
        category_filter: CategoryFilter = ALL_CATEGORIES,
        calculation_date: date | None = None,
        units_consumed: Mapping[UUID, Decimal] | None = None,
    ) -> ScheduledDepreciationResult:
        """Depreciate every eligible asset in a business unit for one month."""
        return self._run(
            business_unit_id=business_unit_id,
            actor_id=actor_id,
            category_filter=category_filter,
            calculation_date=calculation_date or self._clock.today(),
            period_months=1,
            units_consumed=units_consumed or {},
            schedule_id=None,
        )

    def run_scheduled(
        self,
        schedule: ScheduleConfig,
        calculation_date: date,
        actor_id: UUID,
    ) -> ScheduledDepreciationResult:
        """Run a configured schedule for ``calculation_date``.

        The covered window is 1, 3 or 12 months for monthly, quarterly and
        annual schedules, capped by each asset's last processed period.
        """
        existing = self._session.execute(
            select(ScheduleExecutionModel)
            .where(ScheduleExecutionModel.schedule_id == schedule.schedule_id)
            .where(ScheduleExecutionModel.execution_date == calculation_date)
        ).scalar_one_or_none()
        if existing is not None:
            logger.info(
                "schedule_execution_exists",
                extra={
                    "schedule_id": str(schedule.schedule_id),
                    "execution_id": str(existing.id),
                    "execution_date": calculation_date,
                },
            )
            return self.get_result(existing.id)

        return self._run(
            business_unit_id=schedule.business_unit_id,
            actor_id=actor_id,
            category_filter=schedule.category_filter,
            calculation_date=calculation_date,
            period_months=period_months_for(schedule.schedule_type),
            units_consumed={},
            schedule_id=schedule.schedule_id,
        )

    def get_result(self, execution_id: UUID) -> ScheduledDepreciationResult:
        execution = self._session.get(ScheduleExecutionModel, execution_id)
        rows = self._session.execute(
            select(ScheduleExecutionAssetModel, AssetModel.item_code, AssetModel.description)
            .join(AssetModel, AssetModel.id == ScheduleExecutionAssetModel.asset_id)
            .where(ScheduleExecutionAssetModel.execution_id == execution_id)
            .order_by(AssetModel.item_code)
        ).all()
        details = tuple(
            DepreciationDetail(
                asset_id=row.asset_id,
                item_code=item_code,
                description=description,
                depreciation_amount=row.depreciation_amount,
                new_book_value=row.book_value_after,
                status=DetailStatus(row.status),
                error=row.error_message,
                book_value_before=row.book_value_before,
            )
            for row, item_code, description in rows
        )
        fully_depreciated, summary = self._summarize(execution_id)
        return ScheduledDepreciationResult(
            execution_id=execution.id,
            total_assets_processed=execution.total_assets_processed,
            successful_calculations=execution.successful_calculations,
            failed_calculations=execution.failed_calculations,
            skipped_calculations=execution.skipped_calculations,
            total_depreciation_amount=execution.total_depreciation_amount,
            execution_duration_ms=execution.execution_duration_ms or 0,
            details=details,
            status=ExecutionStatus(execution.status),
            fully_depreciated_assets=fully_depreciated,
            summary=summary,
        )

    # -------------------------------------------------------------------------
    # Run
    # -------------------------------------------------------------------------

    def _run(
        self,
        business_unit_id: UUID,
        actor_id: UUID,
        category_filter: CategoryFilter,
        calculation_date: date,
        period_months: int,
        units_consumed: Mapping[UUID, Decimal],
        schedule_id: UUID | None,
    ) -> ScheduledDepreciationResult:
        start_time = time.monotonic()

        execution = ScheduleExecutionModel(
            schedule_id=schedule_id,
            business_unit_id=business_unit_id,
            execution_date=calculation_date,
            status=ExecutionStatus.RUNNING.value,
            started_at=self._clock.now(),
            created_by_id=actor_id,
        )
        self._session.add(execution)
        self._uow.commit("start_depreciation_run")
        execution_id = execution.id

        with LogContext.bind(
            execution_id=str(execution_id),
            business_unit_id=str(business_unit_id),
            schedule_id=str(schedule_id) if schedule_id else None,
        ):
            logger.info(
                "depreciation_run_started",
                extra={
                    "calculation_date": calculation_date,
                    "period_months": period_months,
                    "include_categories": len(category_filter.include),
                    "exclude_categories": len(category_filter.exclude),
                },
            )

            try:
                candidates = [
                    (model.id, model.item_code, model.description)
                    for model in self._eligibility.candidates(business_unit_id, category_filter)
                ]
            except SQLAlchemyError as exc:
                self._session.rollback()
                return self._fail_execution(execution_id, str(exc), start_time)

            details: list[DepreciationDetail] = []
            for asset_id, item_code, description in candidates:
                detail = self._process_asset(
                    asset_id,
                    item_code,
                    description,
                    calculation_date=calculation_date,
                    period_months=period_months,
                    units=units_consumed.get(asset_id),
                    actor_id=actor_id,
                    execution_id=execution_id,
                )
                details.append(detail)
                self._session.add(ScheduleExecutionAssetModel(
                    execution_id=execution_id,
                    asset_id=asset_id,
                    status=detail.status.value,
                    depreciation_amount=detail.depreciation_amount,
                    book_value_before=detail.book_value_before,
                    book_value_after=detail.new_book_value,
                    error_message=detail.error,
                    created_by_id=actor_id,
                ))

            return self._complete_execution(execution_id, details, start_time)

    def _process_asset(
        self,
        asset_id: UUID,
        item_code: str,
        description: str,
        *,
        calculation_date: date,
        period_months: int,
        units: Decimal | None,
        actor_id: UUID,
        execution_id: UUID,
    ) -> DepreciationDetail:
        try:
            with self._uow.atomic("depreciate_asset"):
                return self._depreciate(
                    asset_id,
                    calculation_date=calculation_date,
                    period_months=period_months,
                    units=units,
                    actor_id=actor_id,
                    execution_id=execution_id,
                )
        except IntegrityError:
            logger.info(
                "asset_depreciation_conflict",
                extra={"asset_id": str(asset_id), "calculation_date": calculation_date},
            )
            return DepreciationDetail(
                asset_id=asset_id,
                item_code=item_code,
                description=description,
                depreciation_amount=ZERO,
                new_book_value=None,
                status=DetailStatus.SKIPPED,
                error=ALREADY_DEPRECIATED,
            )
        except Exception as exc:
            logger.warning(
                "asset_depreciation_failed",
                extra={"asset_id": str(asset_id), "item_code": item_code, "error": str(exc)},
                exc_info=True,
            )
            return DepreciationDetail(
                asset_id=asset_id,
                item_code=item_code,
                description=description,
                depreciation_amount=ZERO,
                new_book_value=None,
                status=DetailStatus.FAILED,
                error=str(exc),
            )

    def _depreciate(
        self,
        asset_id: UUID,
        *,
        calculation_date: date,
        period_months: int,
        units: Decimal | None,
        actor_id: UUID,
        execution_id: UUID,
    ) -> DepreciationDetail:
        asset = self._session.execute(
            select(AssetModel)
            .where(AssetModel.id == asset_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one()
        dto = asset.to_dto()

        def detail(status: DetailStatus, amount: Decimal = ZERO, after=None, error=None):
            return DepreciationDetail(
                asset_id=asset.id,
                item_code=asset.item_code,
                description=asset.description,
                depreciation_amount=amount,
                new_book_value=after if after is not None else dto.current_book_value,
                status=status,
                error=error,
                book_value_before=dto.current_book_value,
            )

        verdict = evaluate_eligibility(dto, calculation_date)
        if verdict.kind is VerdictKind.NOT_DUE:
            return detail(DetailStatus.SKIPPED, error=verdict.reason)
        if verdict.kind is VerdictKind.MISCONFIGURED:
            logger.warning(
                "asset_depreciation_misconfigured",
                extra={"asset_id": str(asset.id), "item_code": asset.item_code, "reason": verdict.reason},
            )
            return detail(DetailStatus.FAILED, error=verdict.reason)

        snapshot = DepreciationSnapshot.from_asset(dto)
        result = calculate_depreciation(
            snapshot,
            calculation_date,
            period_months=period_months,
            units_consumed=units,
            units_fallback=self._config.units_of_production_fallback,
        )
        if result.is_noop:
            return detail(DetailStatus.SKIPPED, error="No depreciation due for period")

        self._session.add(DepreciationLedgerEntryModel(
            asset_id=asset.id,
            calculation_date=calculation_date,
            period_start=result.period_start,
            period_end=result.period_end,
            book_value_start=snapshot.current_book_value,
            book_value_end=result.book_value_after,
            depreciation_amount=result.depreciation_amount,
            accumulated_depreciation=result.accumulated_depreciation_after,
            depreciation_method=snapshot.method.value,
            units_consumed=result.units_consumed,
            calculated_by_id=actor_id,
            execution_id=execution_id,
            notes=f"{result.months_covered} month(s) {result.period_start:%Y-%m} to {result.period_end:%Y-%m}",
            created_by_id=actor_id,
        ))

        asset.current_book_value = result.book_value_after
        asset.accumulated_depreciation = result.accumulated_depreciation_after
        asset.is_fully_depreciated = result.is_fully_depreciated
        asset.last_depreciation_date = calculation_date
        asset.next_depreciation_date = result.next_depreciation_date
        if result.units_consumed is not None:
            asset.units_produced_to_date = (asset.units_produced_to_date or ZERO) + result.units_consumed
        asset.updated_by_id = actor_id
        self._session.flush()

        self._ledger.record(
            asset.id,
            HistoryAction.DEPRECIATION_CALCULATED,
            actor_id,
            previous_book_value=snapshot.current_book_value,
            new_book_value=result.book_value_after,
            depreciation_amount=result.depreciation_amount,
            notes=(
                f"Depreciation of {result.depreciation_amount} calculated using "
                f"{snapshot.method.value} for {calculation_date:%Y-%m}"
            ),
        )

        logger.debug(
            "asset_depreciated",
            extra={
                "asset_id": str(asset.id),
                "amount": result.depreciation_amount,
                "book_value_after": result.book_value_after,
                "fully_depreciated": result.is_fully_depreciated,
            },
        )
        return detail(DetailStatus.SUCCESS, result.depreciation_amount, result.book_value_after)

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    def _summarize(self, execution_id: UUID) -> tuple[int, DepreciationSummary]:
        """Group the run's ledger entries by category and by method.

        Returns the number of assets that reached salvage value in the run
        together with the summary.
        """
        rows = self._session.execute(
            select(
                DepreciationLedgerEntryModel.depreciation_method,
                DepreciationLedgerEntryModel.depreciation_amount,
                DepreciationLedgerEntryModel.book_value_end,
                AssetModel.salvage_value,
                AssetCategoryModel.id,
                AssetCategoryModel.name,
            )
            .join(AssetModel, AssetModel.id == DepreciationLedgerEntryModel.asset_id)
            .join(AssetCategoryModel, AssetCategoryModel.id == AssetModel.category_id)
            .where(DepreciationLedgerEntryModel.execution_id == execution_id)
        ).all()

        categories: dict[UUID, list] = {}
        methods: dict[str, list] = {}
        fully_depreciated = 0
        for method, amount, book_value_end, salvage, category_id, category_name in rows:
            group = categories.setdefault(category_id, [category_name, 0, ZERO])
            group[1] += 1
            group[2] += amount
            group = methods.setdefault(method, [0, ZERO])
            group[0] += 1
            group[1] += amount
            if book_value_end <= (salvage or ZERO):
                fully_depreciated += 1

        summary = DepreciationSummary(
            by_category=tuple(sorted(
                (
                    CategoryDepreciationTotal(category_id, name, count, round_money(total))
                    for category_id, (name, count, total) in categories.items()
                ),
                key=lambda t: t.category_name,
            )),
            by_method=tuple(
                MethodDepreciationTotal(method, count, round_money(total))
                for method, (count, total) in sorted(methods.items())
            ),
        )
        return fully_depreciated, summary

    def _complete_execution(
        self,
        execution_id: UUID,
        details: list[DepreciationDetail],
        start_time: float,
    ) -> ScheduledDepreciationResult:
        succeeded = sum(1 for d in details if d.status is DetailStatus.SUCCESS)
        failed = sum(1 for d in details if d.status is DetailStatus.FAILED)
        skipped = sum(1 for d in details if d.status is DetailStatus.SKIPPED)
        total_amount = round_money(sum(
            (d.depreciation_amount for d in details if d.status is DetailStatus.SUCCESS), ZERO,
        ))

        if succeeded == 0 and failed > 0:
            status = ExecutionStatus.FAILED
        else:
            status = ExecutionStatus.COMPLETED

        duration = int((time.monotonic() - start_time) * 1000)
        fully_depreciated, summary = self._summarize(execution_id)

        execution = self._session.get(ScheduleExecutionModel, execution_id)
        execution.status = status.value
        execution.total_assets_processed = len(details)
        execution.successful_calculations = succeeded
        execution.failed_calculations = failed
        execution.skipped_calculations = skipped
        execution.total_depreciation_amount = total_amount
        execution.execution_duration_ms = duration
        execution.completed_at = self._clock.now()
        if failed:
            execution.error_message = f"{failed} asset(s) failed"
        self._uow.commit("complete_depreciation_run")

        logger.info(
            "depreciation_run_completed",
            extra={
                "status": status.value,
                "total_assets_processed": len(details),
                "successful_calculations": succeeded,
                "failed_calculations": failed,
                "skipped_calculations": skipped,
                "total_depreciation_amount": total_amount,
                "fully_depreciated_assets": fully_depreciated,
                "duration_ms": duration,
            },
        )

        return ScheduledDepreciationResult(
            execution_id=execution_id,
            total_assets_processed=len(details),
            successful_calculations=succeeded,
            failed_calculations=failed,
            skipped_calculations=skipped,
            total_depreciation_amount=total_amount,
            execution_duration_ms=duration,
            details=tuple(details),
            status=status,
            fully_depreciated_assets=fully_depreciated,
            summary=summary,
        )

    def _fail_execution(
        self,
        execution_id: UUID,
        error_message: str,
        start_time: float,
    ) -> ScheduledDepreciationResult:
        """Mark the execution FAILED and return an empty result."""
        duration = int((time.monotonic() - start_time) * 1000)
        execution = self._session.get(ScheduleExecutionModel, execution_id)
        execution.status = ExecutionStatus.FAILED.value
        execution.error_message = error_message
        execution.execution_duration_ms = duration
        execution.completed_at = self._clock.now()
        self._uow.commit("fail_depreciation_run")

        logger.error(
            "depreciation_run_failed",
            extra={"error": error_message, "duration_ms": duration},
        )

        return ScheduledDepreciationResult(
            execution_id=execution_id,
            total_assets_processed=0,
            successful_calculations=0,
            failed_calculations=0,
            skipped_calculations=0,
            total_depreciation_amount=ZERO,
            execution_duration_ms=duration,
            status=ExecutionStatus.FAILED,
        )
