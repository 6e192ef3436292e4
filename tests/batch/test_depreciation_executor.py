"""
DepreciationRunExecutor: per-asset isolation, idempotent reruns and
execution bookkeeping.
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from asset_batch.domain.types import DetailStatus, ExecutionStatus, ScheduleType
from asset_batch.models.batch import ScheduleExecutionAssetModel, ScheduleExecutionModel
from asset_batch.services.executor import ALREADY_DEPRECIATED, DepreciationRunExecutor
from asset_batch.services.scheduler import DepreciationScheduler
from asset_kernel.domain.periods import add_months, last_day_of_month
from asset_modules.assets.config import AssetConfig
from asset_modules.assets.eligibility import CategoryFilter
from asset_modules.assets.history import AuditLedger
from asset_modules.assets.models import AssetInput, AssetStatus, DepreciationMethod, HistoryAction
from asset_modules.assets.orm import AssetModel, DepreciationLedgerEntryModel
from asset_modules.assets.service import AssetRegistryService

from conftest import TEST_ACTOR_ID

JAN_END = date(2024, 1, 31)


@pytest.fixture
def executor(session, clock):
    return DepreciationRunExecutor(session, clock)


class TestManualRun:

    def test_success_updates_asset_ledger_and_history(
        self, session, executor, business_unit, category, make_asset, actor_id,
    ):
        asset = make_asset(business_unit.id, category.id, item_code="LAP001")

        result = executor.run_manual(business_unit.id, actor_id, calculation_date=JAN_END)

        assert result.status is ExecutionStatus.COMPLETED
        assert result.successful_calculations == 1
        assert result.total_depreciation_amount == Decimal("1000.00")
        detail = result.details[0]
        assert detail.status is DetailStatus.SUCCESS
        assert detail.book_value_before == Decimal("12000.00")
        assert detail.new_book_value == Decimal("11000.00")

        refreshed = session.get(AssetModel, asset.id)
        assert refreshed.current_book_value == Decimal("11000.00")
        assert refreshed.accumulated_depreciation == Decimal("1000.00")
        assert refreshed.last_depreciation_date == JAN_END
        assert refreshed.next_depreciation_date == date(2024, 2, 29)

        entry = AuditLedger(session).depreciation_entries_for(asset.id)[0]
        assert (entry.period_start, entry.period_end) == (date(2024, 1, 1), JAN_END)
        assert entry.execution_id == result.execution_id

        history = AuditLedger(session).history_for(asset.id)
        assert history[-1].action is HistoryAction.DEPRECIATION_CALCULATED
        assert history[-1].depreciation_amount == Decimal("1000.00")

        execution = session.get(ScheduleExecutionModel, result.execution_id)
        assert execution.status == ExecutionStatus.COMPLETED.value
        assert execution.completed_at is not None

    def test_rerun_in_same_month_is_skipped(self, session, executor, business_unit, category, make_asset, actor_id):
        asset = make_asset(business_unit.id, category.id)
        executor.run_manual(business_unit.id, actor_id, calculation_date=JAN_END)

        again = executor.run_manual(business_unit.id, actor_id, calculation_date=JAN_END)

        assert again.status is ExecutionStatus.COMPLETED
        assert again.skipped_calculations == 1
        assert again.total_depreciation_amount == Decimal("0")
        assert again.details[0].error == "Already depreciated for period 2024-01"
        assert len(AuditLedger(session).depreciation_entries_for(asset.id)) == 1
        assert session.get(AssetModel, asset.id).current_book_value == Decimal("11000.00")

    def test_ledger_conflict_reported_as_skipped(
        self, session, executor, business_unit, category, make_asset, actor_id,
    ):
        asset = make_asset(business_unit.id, category.id)
        session.add(DepreciationLedgerEntryModel(
            asset_id=asset.id,
            calculation_date=JAN_END,
            period_start=date(2024, 1, 1),
            period_end=JAN_END,
            book_value_start=Decimal("12000.00"),
            book_value_end=Decimal("11000.00"),
            depreciation_amount=Decimal("1000.00"),
            accumulated_depreciation=Decimal("1000.00"),
            depreciation_method=DepreciationMethod.STRAIGHT_LINE.value,
            calculated_by_id=TEST_ACTOR_ID,
            created_by_id=TEST_ACTOR_ID,
        ))
        session.commit()

        result = executor.run_manual(business_unit.id, actor_id, calculation_date=JAN_END)

        assert result.details[0].status is DetailStatus.SKIPPED
        assert result.details[0].error == ALREADY_DEPRECIATED
        assert session.get(AssetModel, asset.id).current_book_value == Decimal("12000.00")

    def test_misconfigured_asset_fails_alone(
        self, session, executor, business_unit, category, make_asset, actor_id,
    ):
        good = make_asset(business_unit.id, category.id, item_code="LAP001")
        make_asset(business_unit.id, category.id, item_code="LAP002", purchase_price=None)

        result = executor.run_manual(business_unit.id, actor_id, calculation_date=JAN_END)

        assert result.status is ExecutionStatus.COMPLETED
        assert (result.successful_calculations, result.failed_calculations) == (1, 1)
        by_code = {d.item_code: d for d in result.details}
        assert by_code["LAP002"].status is DetailStatus.FAILED
        assert by_code["LAP002"].error == "Purchase price is missing"
        assert session.get(AssetModel, good.id).current_book_value == Decimal("11000.00")

        execution = session.get(ScheduleExecutionModel, result.execution_id)
        assert execution.error_message == "1 asset(s) failed"

    def test_all_failed_marks_execution_failed(self, executor, business_unit, category, make_asset, actor_id):
        make_asset(business_unit.id, category.id, purchase_price=None)
        result = executor.run_manual(business_unit.id, actor_id, calculation_date=JAN_END)
        assert result.status is ExecutionStatus.FAILED

    def test_nothing_to_do_completes(self, executor, business_unit, actor_id):
        result = executor.run_manual(business_unit.id, actor_id, calculation_date=JAN_END)
        assert result.status is ExecutionStatus.COMPLETED
        assert result.total_assets_processed == 0

    def test_asset_created_at_salvage_is_not_selected(self, session, executor, business_unit, category, actor_id):
        AssetRegistryService(session).create_asset(
            AssetInput(
                description="Donated projector",
                category_id=category.id,
                purchase_date=date(2024, 1, 5),
                purchase_price=Decimal("1000.00"),
                salvage_value=Decimal("1000.00"),
                depreciation_method=DepreciationMethod.STRAIGHT_LINE,
                useful_life_years=2,
            ),
            business_unit.id, actor_id,
        )

        result = executor.run_manual(business_unit.id, actor_id, calculation_date=JAN_END)

        assert result.status is ExecutionStatus.COMPLETED
        assert result.total_assets_processed == 0
        assert result.failed_calculations == 0

    def test_final_month_reaches_salvage(self, session, executor, business_unit, category, make_asset, actor_id):
        asset = make_asset(
            business_unit.id, category.id,
            salvage_value=Decimal("0"), accumulated=Decimal("11500.00"),
        )
        result = executor.run_manual(business_unit.id, actor_id, calculation_date=JAN_END)

        assert result.details[0].depreciation_amount == Decimal("500.00")
        refreshed = session.get(AssetModel, asset.id)
        assert refreshed.is_fully_depreciated is True
        assert refreshed.next_depreciation_date is None

    def test_category_filter_and_clock_default(
        self, executor, business_unit, category, make_category, make_asset, actor_id,
    ):
        monitors = make_category(business_unit.id, "MON", "Monitors")
        make_asset(business_unit.id, category.id, item_code="LAP001")
        make_asset(business_unit.id, monitors.id, item_code="MON001")

        result = executor.run_manual(
            business_unit.id, actor_id, category_filter=CategoryFilter.of(include=[monitors.id]),
        )

        assert [d.item_code for d in result.details] == ["MON001"]

    def test_units_consumed(self, session, executor, business_unit, category, make_asset, actor_id):
        asset = make_asset(
            business_unit.id, category.id,
            method=DepreciationMethod.UNITS_OF_PRODUCTION, total_expected_units=Decimal("1000"),
        )

        result = executor.run_manual(
            business_unit.id, actor_id,
            calculation_date=JAN_END, units_consumed={asset.id: Decimal("50")},
        )

        assert result.details[0].depreciation_amount == Decimal("600.00")
        refreshed = session.get(AssetModel, asset.id)
        assert refreshed.units_produced_to_date == Decimal("50")
        assert AuditLedger(session).depreciation_entries_for(asset.id)[0].units_consumed == Decimal("50")

    def test_units_without_fallback_skipped(self, session, clock, business_unit, category, make_asset, actor_id):
        executor = DepreciationRunExecutor(session, clock, AssetConfig(units_of_production_fallback=False))
        make_asset(
            business_unit.id, category.id,
            method=DepreciationMethod.UNITS_OF_PRODUCTION, total_expected_units=Decimal("1000"),
        )
        result = executor.run_manual(business_unit.id, actor_id, calculation_date=JAN_END)
        assert result.details[0].status is DetailStatus.SKIPPED
        assert result.details[0].error == "No depreciation due for period"

    def test_twelve_monthly_runs(self, session, executor, business_unit, category, make_asset, actor_id):
        asset = make_asset(
            business_unit.id, category.id,
            purchase_price=Decimal("120000.00"), salvage_value=Decimal("12000.00"), useful_life_years=5,
        )
        assert asset.monthly_depreciation == Decimal("1800.00")

        for offset in range(12):
            month_end = last_day_of_month(add_months(date(2024, 1, 1), offset))
            executor.run_manual(business_unit.id, actor_id, calculation_date=month_end)

        refreshed = session.get(AssetModel, asset.id)
        assert refreshed.accumulated_depreciation == Decimal("21600.00")
        assert refreshed.current_book_value == Decimal("98400.00")
        assert len(AuditLedger(session).depreciation_entries_for(asset.id)) == 12

    def test_batch_of_five_with_one_missing_price(self, executor, business_unit, category, make_asset, actor_id):
        for n in range(1, 6):
            make_asset(
                business_unit.id, category.id,
                item_code=f"LAP00{n}",
                purchase_price=None if n == 3 else Decimal("12000.00"),
            )

        result = executor.run_manual(business_unit.id, actor_id, calculation_date=JAN_END)

        assert result.total_assets_processed == 5
        assert (result.successful_calculations, result.failed_calculations) == (4, 1)
        third = result.details[2]
        assert (third.item_code, third.status) == ("LAP003", DetailStatus.FAILED)
        assert third.error

    def test_non_accruing_assets_not_selected(self, executor, business_unit, category, make_asset, actor_id):
        make_asset(business_unit.id, category.id, status=AssetStatus.DAMAGED)
        make_asset(business_unit.id, category.id, status=AssetStatus.RETIRED)
        result = executor.run_manual(business_unit.id, actor_id, calculation_date=JAN_END)
        assert result.total_assets_processed == 0


class TestScheduledRun:

    @pytest.fixture
    def quarterly(self, session, clock, business_unit, actor_id):
        return DepreciationScheduler(session, clock).create_schedule_config(
            "Quarter end", ScheduleType.QUARTERLY, business_unit.id, actor_id, execution_day=31,
        )

    def test_quarter_covers_three_months(self, session, executor, quarterly, business_unit, category, make_asset, actor_id):
        asset = make_asset(business_unit.id, category.id)

        result = executor.run_scheduled(quarterly, date(2024, 3, 31), actor_id)

        assert result.total_depreciation_amount == Decimal("3000.00")
        entry = AuditLedger(session).depreciation_entries_for(asset.id)[0]
        assert (entry.period_start, entry.period_end) == (date(2024, 1, 1), date(2024, 3, 31))
        assert session.get(ScheduleExecutionModel, result.execution_id).schedule_id == quarterly.schedule_id

    def test_quarter_capped_by_last_processed_month(
        self, executor, quarterly, business_unit, category, make_asset, actor_id,
    ):
        make_asset(
            business_unit.id, category.id,
            accumulated=Decimal("1000.00"), last_depreciation_date=JAN_END,
        )
        result = executor.run_scheduled(quarterly, date(2024, 3, 31), actor_id)
        assert result.total_depreciation_amount == Decimal("2000.00")

    def test_rerun_returns_existing_execution(
        self, session, executor, quarterly, business_unit, category, make_asset, actor_id,
    ):
        make_asset(business_unit.id, category.id)
        first = executor.run_scheduled(quarterly, date(2024, 3, 31), actor_id)
        second = executor.run_scheduled(quarterly, date(2024, 3, 31), actor_id)

        assert second.execution_id == first.execution_id
        assert second.total_depreciation_amount == first.total_depreciation_amount
        assert len(session.scalars(select(ScheduleExecutionModel)).all()) == 1


class TestRunSummary:

    @pytest.fixture
    def mixed_run(self, executor, business_unit, category, make_category, make_asset, actor_id):
        monitors = make_category(business_unit.id, "MON", "Monitors")
        make_asset(business_unit.id, category.id, item_code="LAP001")
        make_asset(business_unit.id, category.id, item_code="LAP002", accumulated=Decimal("11500.00"))
        make_asset(business_unit.id, category.id, item_code="LAP003", purchase_price=None)
        meter = make_asset(
            business_unit.id, monitors.id, item_code="MON001",
            method=DepreciationMethod.UNITS_OF_PRODUCTION, total_expected_units=Decimal("1000"),
        )
        result = executor.run_manual(
            business_unit.id, actor_id, calculation_date=JAN_END, units_consumed={meter.id: Decimal("50")},
        )
        return result, monitors

    def test_grouped_by_category_and_method(self, category, mixed_run):
        result, monitors = mixed_run

        assert result.failed_calculations == 1
        assert [(t.category_id, t.category_name, t.assets_count, t.total_depreciation)
                for t in result.summary.by_category] == [
            (category.id, "Laptops", 2, Decimal("1500.00")),
            (monitors.id, "Monitors", 1, Decimal("600.00")),
        ]
        assert [(t.method, t.assets_count, t.total_depreciation) for t in result.summary.by_method] == [
            ("STRAIGHT_LINE", 2, Decimal("1500.00")),
            ("UNITS_OF_PRODUCTION", 1, Decimal("600.00")),
        ]
        assert result.fully_depreciated_assets == 1

    def test_rebuilt_summary_matches(self, executor, mixed_run):
        result, _ = mixed_run
        rebuilt = executor.get_result(result.execution_id)
        assert rebuilt.summary == result.summary
        assert rebuilt.fully_depreciated_assets == 1

    def test_empty_run_has_empty_summary(self, executor, business_unit, actor_id):
        result = executor.run_manual(business_unit.id, actor_id, calculation_date=JAN_END)
        assert result.summary.by_category == ()
        assert result.summary.by_method == ()
        assert result.fully_depreciated_assets == 0


class TestGetResult:

    def test_rebuilt_from_storage(self, session, executor, business_unit, category, make_asset, actor_id):
        make_asset(business_unit.id, category.id, item_code="LAP002")
        make_asset(business_unit.id, category.id, item_code="LAP001", purchase_price=None)
        original = executor.run_manual(business_unit.id, actor_id, calculation_date=JAN_END)

        rebuilt = executor.get_result(original.execution_id)

        assert rebuilt.status is original.status
        assert [(d.item_code, d.status) for d in rebuilt.details] == [
            ("LAP001", DetailStatus.FAILED),
            ("LAP002", DetailStatus.SUCCESS),
        ]
        assert rebuilt.total_depreciation_amount == Decimal("1000.00")
        assert len(session.scalars(select(ScheduleExecutionAssetModel)).all()) == 2
