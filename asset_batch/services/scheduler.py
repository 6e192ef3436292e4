"""
DepreciationScheduler -- Entry points for depreciation runs and schedules.

Contract:
    Facade over ``DepreciationRunExecutor`` used by the CLI and by
    collaborators: the read-only preview, the on-demand run, the
    always-on end-of-month run, due configured schedules, and schedule
    CRUD.  ``authorize_trigger`` gates externally triggered runs.

Architecture: asset_batch/services.  Uses asset_batch.domain.schedule
    for pure cadence evaluation and asset_batch.services.executor for
    execution.

Invariants enforced:
    - All dates come from the injected Clock.
    - Cadence evaluation is pure (``should_fire``).
    - A trigger without the expected bearer token is rejected before any
      query runs.
"""

from __future__ import annotations

import hmac
from collections.abc import Iterable
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from asset_kernel.db.types import ZERO
from asset_kernel.db.unit_of_work import UnitOfWork
from asset_kernel.domain.clock import Clock, SystemClock
from asset_kernel.domain.periods import is_end_of_month
from asset_kernel.exceptions import (
    BusinessUnitNotFoundError,
    CategoryNotFoundError,
    InvalidScheduleConfigError,
    ScheduleNotFoundError,
    UnauthorizedTriggerError,
)
from asset_kernel.logging_config import get_logger
from asset_modules.assets.config import AssetConfig
from asset_modules.assets.eligibility import ALL_CATEGORIES, CategoryFilter, EligibilityFilter
from asset_modules.assets.orm import AssetCategoryModel, BusinessUnitModel

from asset_batch.domain.schedule import should_fire, validate_schedule_fields
from asset_batch.domain.types import (
    BusinessUnitRunOutcome,
    DepreciationPreview,
    EndOfMonthRunReport,
    ManualDepreciationFilters,
    ScheduleConfig,
    ScheduleExecution,
    ScheduleRunOutcome,
    ScheduleType,
    ScheduledDepreciationResult,
)
from asset_batch.models.batch import ScheduleConfigModel, ScheduleExecutionModel, ids_to_json
from asset_batch.services.executor import DepreciationRunExecutor

logger = get_logger("batch.scheduler")

_UPDATABLE_FIELDS = frozenset({
    "name",
    "description",
    "schedule_type",
    "execution_day",
    "is_active",
    "include_category_ids",
    "exclude_category_ids",
})


def authorize_trigger(authorization_header: str | None, secret: str | None) -> None:
    """Check ``Authorization: Bearer <secret>`` in constant time.

    An unset secret rejects every trigger.

    Raises:
        UnauthorizedTriggerError: Missing or wrong token.
    """
    if not secret:
        logger.warning("trigger_rejected", extra={"reason": "secret_not_configured"})
        raise UnauthorizedTriggerError("Trigger secret is not configured")
    expected = f"Bearer {secret}".encode()
    provided = (authorization_header or "").encode()
    if not hmac.compare_digest(provided, expected):
        logger.warning("trigger_rejected", extra={"reason": "token_mismatch"})
        raise UnauthorizedTriggerError()


class DepreciationScheduler:
    """Depreciation runs and schedule management for one session.

    Contract:
        - ``get_assets_needing_depreciation()`` is read-only.
        - ``execute_manual_depreciation()`` runs an ad hoc pass.
        - ``run_end_of_month_depreciation()`` runs every active business
          unit on the last day of the month, and is skipped otherwise.
        - ``run_due_schedules()`` fires every active schedule due today.

    Non-goals:
        - NOT a background poller; the CLI (or cron) calls in.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: AssetConfig | None = None,
        executor: DepreciationRunExecutor | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or AssetConfig.with_defaults()
        self._uow = UnitOfWork(session)
        self._executor = executor or DepreciationRunExecutor(session, self._clock, self._config)

    # -------------------------------------------------------------------------
    # Runs
    # -------------------------------------------------------------------------

    def get_assets_needing_depreciation(
        self,
        business_unit_id: UUID,
        category_filter: CategoryFilter = ALL_CATEGORIES,
    ) -> DepreciationPreview:
        today = self._clock.today()
        assets = EligibilityFilter(self._session).select(business_unit_id, today, category_filter)
        total = sum((a.monthly_depreciation or ZERO for a in assets), ZERO)
        return DepreciationPreview(
            assets=tuple(assets),
            is_end_of_month=is_end_of_month(today),
            total_count=len(assets),
            total_monthly_depreciation=total,
        )

    def execute_manual_depreciation(
        self,
        business_unit_id: UUID,
        filters: ManualDepreciationFilters | None = None,
        actor_id: UUID | None = None,
    ) -> ScheduledDepreciationResult:
        filters = filters or ManualDepreciationFilters()
        if self._session.get(BusinessUnitModel, business_unit_id) is None:
            raise BusinessUnitNotFoundError(business_unit_id)
        return self._executor.run_manual(
            business_unit_id,
            actor_id or self._config.system_actor_id,
            category_filter=filters.category_filter,
            calculation_date=filters.calculation_date,
            units_consumed=filters.units_consumed,
        )

    def run_end_of_month_depreciation(self, actor_id: UUID | None = None) -> EndOfMonthRunReport:
        """Run every active business unit when today is the last day of the month.

        A failure in one business unit is recorded in the report and does
        not stop the others.
        """
        today = self._clock.today()
        if not self._config.end_of_month_enabled:
            logger.info("end_of_month_run_skipped", extra={"reason": "disabled"})
            return EndOfMonthRunReport(executed_on=today, skipped=True, reason="End-of-month run disabled")
        if not is_end_of_month(today):
            logger.info("end_of_month_run_skipped", extra={"reason": "not_end_of_month", "date": today})
            return EndOfMonthRunReport(executed_on=today, skipped=True, reason="Not end of month")

        actor = actor_id or self._config.system_actor_id
        units = list(self._session.execute(
            select(BusinessUnitModel.id, BusinessUnitModel.name)
            .where(BusinessUnitModel.is_active.is_(True))
            .order_by(BusinessUnitModel.code)
        ))

        outcomes: list[BusinessUnitRunOutcome] = []
        for unit_id, unit_name in units:
            try:
                result = self._executor.run_manual(unit_id, actor, calculation_date=today)
                outcomes.append(BusinessUnitRunOutcome(unit_id, unit_name, result=result))
            except Exception as exc:
                self._session.rollback()
                logger.exception(
                    "end_of_month_business_unit_failed",
                    extra={"business_unit_id": str(unit_id)},
                )
                outcomes.append(BusinessUnitRunOutcome(unit_id, unit_name, error=str(exc)))

        logger.info(
            "end_of_month_run_completed",
            extra={
                "date": today,
                "business_units": len(outcomes),
                "failed_business_units": sum(1 for o in outcomes if o.error),
            },
        )
        return EndOfMonthRunReport(executed_on=today, results=tuple(outcomes))

    def run_due_schedules(self, actor_id: UUID | None = None) -> tuple[ScheduleRunOutcome, ...]:
        """Fire every active schedule whose cadence matches today."""
        today = self._clock.today()
        actor = actor_id or self._config.system_actor_id

        schedules = [
            model.to_dto()
            for model in self._session.scalars(
                select(ScheduleConfigModel)
                .where(ScheduleConfigModel.is_active.is_(True))
                .order_by(ScheduleConfigModel.name)
            )
        ]

        outcomes: list[ScheduleRunOutcome] = []
        for schedule in schedules:
            if not should_fire(schedule, today):
                continue
            try:
                result = self._executor.run_scheduled(schedule, today, actor)
                outcomes.append(ScheduleRunOutcome(schedule.schedule_id, schedule.name, result=result))
                logger.info(
                    "schedule_fired",
                    extra={
                        "schedule_id": str(schedule.schedule_id),
                        "schedule_name": schedule.name,
                        "execution_id": str(result.execution_id),
                        "status": result.status.value,
                    },
                )
            except Exception as exc:
                self._session.rollback()
                logger.exception(
                    "schedule_fire_failed",
                    extra={"schedule_id": str(schedule.schedule_id), "schedule_name": schedule.name},
                )
                outcomes.append(ScheduleRunOutcome(schedule.schedule_id, schedule.name, error=str(exc)))

        return tuple(outcomes)

    def get_execution_result(self, execution_id: UUID) -> ScheduledDepreciationResult:
        if self._session.get(ScheduleExecutionModel, execution_id) is None:
            raise ScheduleNotFoundError(execution_id, message=f"Execution not found: {execution_id}")
        return self._executor.get_result(execution_id)

    # -------------------------------------------------------------------------
    # Schedule CRUD
    # -------------------------------------------------------------------------

    def _check_categories(self, business_unit_id: UUID, category_ids: Iterable[UUID]) -> None:
        wanted = set(category_ids)
        if not wanted:
            return
        found = set(self._session.scalars(
            select(AssetCategoryModel.id)
            .where(AssetCategoryModel.id.in_(wanted))
            .where(AssetCategoryModel.business_unit_id == business_unit_id)
        ))
        missing = wanted - found
        if missing:
            raise CategoryNotFoundError(sorted(str(c) for c in missing)[0])

    def create_schedule_config(
        self,
        name: str,
        schedule_type: ScheduleType,
        business_unit_id: UUID,
        actor_id: UUID,
        execution_day: int | None = None,
        description: str | None = None,
        include_category_ids: Iterable[UUID] = (),
        exclude_category_ids: Iterable[UUID] = (),
        is_active: bool = True,
    ) -> ScheduleConfig:
        """Create a schedule.

        Raises:
            InvalidScheduleConfigError: Bad name, day or overlapping categories.
            BusinessUnitNotFoundError / CategoryNotFoundError: Unknown references.
        """
        include = frozenset(include_category_ids)
        exclude = frozenset(exclude_category_ids)
        day = execution_day if execution_day is not None else self._config.default_execution_day
        validate_schedule_fields(name, day, include, exclude)

        if self._session.get(BusinessUnitModel, business_unit_id) is None:
            raise BusinessUnitNotFoundError(business_unit_id)
        self._check_categories(business_unit_id, include | exclude)

        model = ScheduleConfigModel(
            name=name.strip(),
            description=description,
            schedule_type=ScheduleType(schedule_type).value,
            execution_day=day,
            is_active=is_active,
            include_category_ids=ids_to_json(include),
            exclude_category_ids=ids_to_json(exclude),
            business_unit_id=business_unit_id,
            created_by_id=actor_id,
        )
        self._session.add(model)
        self._uow.commit("create_schedule_config")

        logger.info(
            "schedule_config_created",
            extra={
                "schedule_id": str(model.id),
                "schedule_type": model.schedule_type,
                "execution_day": day,
            },
        )
        return model.to_dto()

    def update_schedule_config(
        self,
        schedule_id: UUID,
        actor_id: UUID,
        **changes: Any,
    ) -> ScheduleConfig:
        """Apply a partial update.

        Raises:
            ScheduleNotFoundError: Unknown schedule.
            InvalidScheduleConfigError: Unknown field or invalid value.
        """
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise InvalidScheduleConfigError(
                f"Unknown schedule fields: {', '.join(sorted(unknown))}",
                field=sorted(unknown)[0],
            )

        model = self._session.get(ScheduleConfigModel, schedule_id)
        if model is None:
            raise ScheduleNotFoundError(schedule_id)
        current = model.to_dto()

        include = frozenset(changes.get("include_category_ids", current.include_category_ids))
        exclude = frozenset(changes.get("exclude_category_ids", current.exclude_category_ids))
        validate_schedule_fields(
            changes.get("name"),
            changes.get("execution_day"),
            include,
            exclude,
        )
        self._check_categories(model.business_unit_id, include | exclude)

        if "name" in changes:
            model.name = changes["name"].strip()
        if "description" in changes:
            model.description = changes["description"]
        if "schedule_type" in changes:
            model.schedule_type = ScheduleType(changes["schedule_type"]).value
        if "execution_day" in changes:
            model.execution_day = changes["execution_day"]
        if "is_active" in changes:
            model.is_active = bool(changes["is_active"])
        model.include_category_ids = ids_to_json(include)
        model.exclude_category_ids = ids_to_json(exclude)
        model.updated_by_id = actor_id
        self._uow.commit("update_schedule_config")

        logger.info(
            "schedule_config_updated",
            extra={"schedule_id": str(schedule_id), "fields": sorted(changes)},
        )
        return model.to_dto()

    def list_schedule_configs(
        self,
        business_unit_id: UUID,
        active_only: bool = False,
    ) -> list[ScheduleConfig]:
        stmt = select(ScheduleConfigModel).where(
            ScheduleConfigModel.business_unit_id == business_unit_id,
        )
        if active_only:
            stmt = stmt.where(ScheduleConfigModel.is_active.is_(True))
        return [m.to_dto() for m in self._session.scalars(stmt.order_by(ScheduleConfigModel.name))]

    def list_executions(
        self,
        business_unit_id: UUID,
        schedule_id: UUID | None = None,
        limit: int = 50,
    ) -> list[ScheduleExecution]:
        """Most recent executions first."""
        stmt = select(ScheduleExecutionModel).where(
            ScheduleExecutionModel.business_unit_id == business_unit_id,
        )
        if schedule_id is not None:
            stmt = stmt.where(ScheduleExecutionModel.schedule_id == schedule_id)
        stmt = stmt.order_by(
            ScheduleExecutionModel.execution_date.desc(),
            ScheduleExecutionModel.started_at.desc(),
        ).limit(limit)
        return [m.to_dto() for m in self._session.scalars(stmt)]
