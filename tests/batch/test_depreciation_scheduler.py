"""DepreciationScheduler: end-of-month and scheduled runs, schedule CRUD, trigger auth."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from asset_kernel.exceptions import (
    BusinessUnitNotFoundError,
    CategoryNotFoundError,
    InvalidScheduleConfigError,
    ScheduleNotFoundError,
    UnauthorizedTriggerError,
)
from asset_batch.domain.types import ExecutionStatus, ManualDepreciationFilters, ScheduleType
from asset_batch.models.batch import ScheduleExecutionModel
from asset_batch.services.scheduler import DepreciationScheduler, authorize_trigger
from asset_modules.assets.config import SYSTEM_ACTOR_ID, AssetConfig
from asset_modules.assets.models import AssetStatus


@pytest.fixture
def scheduler(session, clock):
    return DepreciationScheduler(session, clock)


class TestEndOfMonth:

    def test_skipped_before_month_end(self, scheduler, clock):
        clock.set_date(date(2024, 1, 30))
        report = scheduler.run_end_of_month_depreciation()
        assert report.skipped
        assert report.reason == "Not end of month"
        assert report.results == ()

    def test_skipped_when_disabled(self, session, clock):
        scheduler = DepreciationScheduler(session, clock, AssetConfig(end_of_month_enabled=False))
        report = scheduler.run_end_of_month_depreciation()
        assert report.skipped
        assert report.reason == "End-of-month run disabled"

    def test_runs_every_active_business_unit(
        self, session, scheduler, business_unit, category, make_business_unit, make_category, make_asset,
    ):
        branch = make_business_unit("BR", "Branch")
        dormant = make_business_unit("ZZ", "Closed office", is_active=False)
        make_asset(business_unit.id, category.id)
        make_asset(branch.id, make_category(branch.id, "BRL").id)
        make_asset(dormant.id, make_category(dormant.id, "ZZL").id)

        report = scheduler.run_end_of_month_depreciation()

        assert not report.skipped
        assert report.executed_on == date(2024, 1, 31)
        assert [o.business_unit_name for o in report.results] == ["Branch", "Headquarters"]
        assert all(o.error is None for o in report.results)
        assert all(o.result.successful_calculations == 1 for o in report.results)

        execution = session.get(ScheduleExecutionModel, report.results[0].result.execution_id)
        assert execution.created_by_id == SYSTEM_ACTOR_ID

    def test_leap_february(self, scheduler, clock, business_unit, category, make_asset):
        make_asset(business_unit.id, category.id, start_date=date(2024, 2, 1))
        clock.set_date(date(2024, 2, 29))
        report = scheduler.run_end_of_month_depreciation()
        assert report.results[0].result.total_depreciation_amount == Decimal("1000.00")


class TestDueSchedules:

    def test_fires_matching_schedules_once(self, scheduler, business_unit, category, make_asset, actor_id):
        make_asset(business_unit.id, category.id)
        scheduler.create_schedule_config("A monthly", ScheduleType.MONTHLY, business_unit.id, actor_id,
                                         execution_day=31)
        scheduler.create_schedule_config("B quarterly", ScheduleType.QUARTERLY, business_unit.id, actor_id,
                                         execution_day=31)
        scheduler.create_schedule_config("C paused", ScheduleType.MONTHLY, business_unit.id, actor_id,
                                         execution_day=31, is_active=False)

        outcomes = scheduler.run_due_schedules(actor_id)

        assert [o.schedule_name for o in outcomes] == ["A monthly"]
        assert outcomes[0].result.status is ExecutionStatus.COMPLETED
        assert outcomes[0].result.total_depreciation_amount == Decimal("1000.00")

        again = scheduler.run_due_schedules(actor_id)
        assert again[0].result.execution_id == outcomes[0].result.execution_id

    def test_nothing_due(self, scheduler, business_unit, actor_id):
        scheduler.create_schedule_config("Mid month", ScheduleType.MONTHLY, business_unit.id, actor_id,
                                         execution_day=15)
        assert scheduler.run_due_schedules(actor_id) == ()


class TestScheduleCrud:

    def test_create_uses_default_day(self, scheduler, business_unit, category, actor_id):
        schedule = scheduler.create_schedule_config(
            "  Laptops  ", "MONTHLY", business_unit.id, actor_id, include_category_ids=[category.id],
        )
        assert schedule.name == "Laptops"
        assert schedule.execution_day == 30
        assert schedule.schedule_type is ScheduleType.MONTHLY
        assert schedule.include_category_ids == frozenset({category.id})

    def test_create_rejects_unknown_references(self, scheduler, business_unit, actor_id):
        with pytest.raises(BusinessUnitNotFoundError):
            scheduler.create_schedule_config("X", ScheduleType.MONTHLY, uuid4(), actor_id)
        with pytest.raises(CategoryNotFoundError):
            scheduler.create_schedule_config(
                "X", ScheduleType.MONTHLY, business_unit.id, actor_id, exclude_category_ids=[uuid4()],
            )

    def test_create_rejects_foreign_category(
        self, scheduler, business_unit, make_business_unit, make_category, actor_id,
    ):
        branch = make_business_unit("BR", "Branch")
        foreign = make_category(branch.id, "BRL")
        with pytest.raises(CategoryNotFoundError):
            scheduler.create_schedule_config(
                "X", ScheduleType.MONTHLY, business_unit.id, actor_id, include_category_ids=[foreign.id],
            )

    def test_create_rejects_overlap_and_bad_day(self, scheduler, business_unit, category, actor_id):
        with pytest.raises(InvalidScheduleConfigError):
            scheduler.create_schedule_config(
                "X", ScheduleType.MONTHLY, business_unit.id, actor_id,
                include_category_ids=[category.id], exclude_category_ids=[category.id],
            )
        with pytest.raises(InvalidScheduleConfigError):
            scheduler.create_schedule_config("X", ScheduleType.MONTHLY, business_unit.id, actor_id,
                                             execution_day=32)

    def test_update(self, scheduler, business_unit, category, actor_id):
        schedule = scheduler.create_schedule_config("Monthly", ScheduleType.MONTHLY, business_unit.id, actor_id)

        updated = scheduler.update_schedule_config(
            schedule.schedule_id, actor_id,
            name="Quarter end", schedule_type="QUARTERLY", execution_day=31, is_active=False,
        )

        assert updated.name == "Quarter end"
        assert updated.schedule_type is ScheduleType.QUARTERLY
        assert updated.execution_day == 31
        assert updated.is_active is False

    def test_update_overlap_with_existing_set(self, scheduler, business_unit, category, actor_id):
        schedule = scheduler.create_schedule_config(
            "Monthly", ScheduleType.MONTHLY, business_unit.id, actor_id, exclude_category_ids=[category.id],
        )
        with pytest.raises(InvalidScheduleConfigError):
            scheduler.update_schedule_config(schedule.schedule_id, actor_id, include_category_ids=[category.id])

    def test_update_errors(self, scheduler, business_unit, actor_id):
        schedule = scheduler.create_schedule_config("Monthly", ScheduleType.MONTHLY, business_unit.id, actor_id)
        with pytest.raises(InvalidScheduleConfigError) as exc_info:
            scheduler.update_schedule_config(schedule.schedule_id, actor_id, colour="red")
        assert exc_info.value.field == "colour"
        with pytest.raises(ScheduleNotFoundError):
            scheduler.update_schedule_config(uuid4(), actor_id, name="x")

    def test_list_schedule_configs(self, scheduler, business_unit, actor_id):
        scheduler.create_schedule_config("B", ScheduleType.MONTHLY, business_unit.id, actor_id)
        scheduler.create_schedule_config("A", ScheduleType.ANNUALLY, business_unit.id, actor_id, is_active=False)

        assert [s.name for s in scheduler.list_schedule_configs(business_unit.id)] == ["A", "B"]
        assert [s.name for s in scheduler.list_schedule_configs(business_unit.id, active_only=True)] == ["B"]


class TestExecutions:

    def test_list_most_recent_first(self, scheduler, business_unit, actor_id):
        scheduler.execute_manual_depreciation(
            business_unit.id, ManualDepreciationFilters(calculation_date=date(2024, 1, 31)), actor_id,
        )
        scheduler.execute_manual_depreciation(
            business_unit.id, ManualDepreciationFilters(calculation_date=date(2024, 2, 29)), actor_id,
        )

        executions = scheduler.list_executions(business_unit.id)
        assert [e.execution_date for e in executions] == [date(2024, 2, 29), date(2024, 1, 31)]
        assert scheduler.list_executions(business_unit.id, limit=1)[0].execution_date == date(2024, 2, 29)

    def test_list_filtered_by_schedule(self, scheduler, business_unit, actor_id):
        schedule = scheduler.create_schedule_config(
            "Monthly", ScheduleType.MONTHLY, business_unit.id, actor_id, execution_day=31,
        )
        scheduler.run_due_schedules(actor_id)
        scheduler.execute_manual_depreciation(business_unit.id, actor_id=actor_id)

        assert len(scheduler.list_executions(business_unit.id)) == 2
        only = scheduler.list_executions(business_unit.id, schedule_id=schedule.schedule_id)
        assert [e.schedule_id for e in only] == [schedule.schedule_id]

    def test_get_execution_result(self, scheduler, business_unit, category, make_asset, actor_id):
        make_asset(business_unit.id, category.id)
        result = scheduler.execute_manual_depreciation(business_unit.id, actor_id=actor_id)
        assert scheduler.get_execution_result(result.execution_id).successful_calculations == 1

        with pytest.raises(ScheduleNotFoundError):
            scheduler.get_execution_result(uuid4())

    def test_manual_unknown_business_unit(self, scheduler):
        with pytest.raises(BusinessUnitNotFoundError):
            scheduler.execute_manual_depreciation(uuid4())

    def test_manual_with_category_exclusion(
        self, scheduler, business_unit, category, make_category, make_asset, actor_id,
    ):
        monitors = make_category(business_unit.id, "MON", "Monitors")
        make_asset(business_unit.id, category.id, item_code="LAP001")
        make_asset(business_unit.id, monitors.id, item_code="MON001")

        result = scheduler.execute_manual_depreciation(
            business_unit.id,
            ManualDepreciationFilters(exclude_category_ids=frozenset({monitors.id})),
            actor_id,
        )
        assert [d.item_code for d in result.details] == ["LAP001"]


class TestPreview:

    def test_preview(self, scheduler, business_unit, category, make_asset):
        make_asset(business_unit.id, category.id, item_code="LAP001")
        make_asset(business_unit.id, category.id, item_code="LAP002", purchase_price=Decimal("6000.00"))
        make_asset(business_unit.id, category.id, item_code="LAP003", status=AssetStatus.DAMAGED)

        preview = scheduler.get_assets_needing_depreciation(business_unit.id)

        assert preview.is_end_of_month is True
        assert preview.total_count == 2
        assert preview.total_monthly_depreciation == Decimal("1500.00")
        assert [a.item_code for a in preview.assets] == ["LAP001", "LAP002"]


class TestAuthorizeTrigger:

    def test_matching_token(self):
        authorize_trigger("Bearer s3cret", "s3cret")

    @pytest.mark.parametrize("header", [None, "", "Bearer wrong", "s3cret", "bearer s3cret"])
    def test_rejected(self, header):
        with pytest.raises(UnauthorizedTriggerError) as exc_info:
            authorize_trigger(header, "s3cret")
        assert exc_info.value.code == "UNAUTHORIZED"

    @pytest.mark.parametrize("secret", [None, ""])
    def test_unset_secret_fails_closed(self, secret):
        with pytest.raises(UnauthorizedTriggerError):
            authorize_trigger("Bearer ", secret)
