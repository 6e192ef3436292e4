"""
AssetRegistryService: creation, item codes, partial updates and history.

Every public method returns an ActionResult; domain errors surface as
``error`` / ``error_code`` and leave nothing behind in the database.
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from asset_kernel.exceptions import AssetNotFoundError, ValidationError
from asset_modules.assets.config import AssetConfig
from asset_modules.assets.history import AuditLedger
from asset_modules.assets.models import (
    AssetInput,
    AssetStatus,
    AssetUpdate,
    DeploymentStatus,
    DepreciationMethod,
    HistoryAction,
)
from asset_modules.assets.orm import AssetDeploymentModel, AssetModel
from asset_modules.assets.service import AssetRegistryService

from conftest import TEST_EMPLOYEE_ID


@pytest.fixture
def registry(session, clock):
    return AssetRegistryService(session, clock)


def _laptop(category_id, **overrides):
    data = dict(
        description="Dell Latitude 7440",
        category_id=category_id,
        purchase_date=date(2024, 1, 10),
        purchase_price=Decimal("1500.00"),
        salvage_value=Decimal("300.00"),
        depreciation_method=DepreciationMethod.STRAIGHT_LINE,
        useful_life_years=3,
        location="HQ-3F",
    )
    data.update(overrides)
    return AssetInput(**data)


class TestCreateAsset:

    def test_creates_with_derived_parameters(self, session, registry, business_unit, category, actor_id):
        result = registry.create_asset(_laptop(category.id), business_unit.id, actor_id)

        assert result.is_success
        assert result.success == "Asset created successfully"
        assert result.data["item_code"] == "LAP001"

        asset = session.get(AssetModel, result.data["asset_id"])
        assert asset.status == AssetStatus.AVAILABLE.value
        assert asset.monthly_depreciation == Decimal("33.33")
        assert asset.current_book_value == Decimal("1500.00")
        assert asset.depreciation_start_date == date(2024, 1, 10)
        assert asset.next_depreciation_date == date(2024, 1, 31)
        assert asset.asset_account_code == "1500"
        assert asset.accumulated_depreciation_account_code == "1590"

        history = AuditLedger(session).history_for(asset.id)
        assert [h.action for h in history] == [HistoryAction.CREATED]
        assert history[0].new_status is AssetStatus.AVAILABLE

    def test_salvage_equal_to_price_starts_fully_depreciated(
        self, session, registry, business_unit, category, actor_id,
    ):
        result = registry.create_asset(
            _laptop(category.id, purchase_price=Decimal("1000.00"), salvage_value=Decimal("1000.00")),
            business_unit.id, actor_id,
        )

        asset = session.get(AssetModel, result.data["asset_id"])
        assert asset.monthly_depreciation == Decimal("0")
        assert asset.is_fully_depreciated is True
        assert asset.next_depreciation_date is None

    def test_item_codes_increment_per_category(self, registry, business_unit, category, actor_id):
        first = registry.create_asset(_laptop(category.id), business_unit.id, actor_id)
        second = registry.create_asset(_laptop(category.id), business_unit.id, actor_id)
        assert (first.data["item_code"], second.data["item_code"]) == ("LAP001", "LAP002")

    def test_preview_does_not_reserve(self, registry, business_unit, category, actor_id):
        assert registry.generate_item_code(category.id) == "LAP001"
        assert registry.generate_item_code(category.id) == "LAP001"
        registry.create_asset(_laptop(category.id), business_unit.id, actor_id)
        assert registry.generate_item_code(category.id) == "LAP002"

    def test_counter_seeded_from_existing_codes(self, registry, business_unit, category, make_asset, actor_id):
        make_asset(business_unit.id, category.id, item_code="LAP007")
        result = registry.create_asset(_laptop(category.id), business_unit.id, actor_id)
        assert result.data["item_code"] == "LAP008"

    def test_code_width_from_config(self, session, clock, business_unit, category, actor_id):
        registry = AssetRegistryService(session, clock, AssetConfig(item_code_width=5))
        result = registry.create_asset(_laptop(category.id), business_unit.id, actor_id)
        assert result.data["item_code"] == "LAP00001"

    def test_duplicate_item_code(self, session, registry, business_unit, category, actor_id):
        registry.create_asset(_laptop(category.id, item_code="CUSTOM-1"), business_unit.id, actor_id)
        result = registry.create_asset(_laptop(category.id, item_code="CUSTOM-1"), business_unit.id, actor_id)

        assert not result.is_success
        assert result.error_code == "DUPLICATE_ITEM_CODE"
        assert session.scalar(select(func.count()).select_from(AssetModel)) == 1

    def test_other_constraint_violation_is_not_a_duplicate(
        self, session, registry, business_unit, category, actor_id, monkeypatch,
    ):
        def violate(*args, **kwargs):
            raise IntegrityError(
                "INSERT INTO assets_history", {}, Exception("NOT NULL constraint failed: assets_history.action"),
            )

        monkeypatch.setattr(registry._ledger, "record", violate)
        result = registry.create_asset(_laptop(category.id), business_unit.id, actor_id)

        assert not result.is_success
        assert result.error_code == "TRANSIENT"
        assert session.scalar(select(func.count()).select_from(AssetModel)) == 0

    def test_assigned_asset_is_deployed(self, session, registry, business_unit, category, actor_id):
        result = registry.create_asset(
            _laptop(category.id, currently_assigned_to=TEST_EMPLOYEE_ID), business_unit.id, actor_id,
        )
        asset = session.get(AssetModel, result.data["asset_id"])
        assert asset.status == AssetStatus.DEPLOYED.value

        deployment = session.scalars(
            select(AssetDeploymentModel).where(AssetDeploymentModel.asset_id == asset.id)
        ).one()
        assert deployment.status == DeploymentStatus.DEPLOYED.value
        assert deployment.employee_id == TEST_EMPLOYEE_ID
        assert deployment.deployed_date == date(2024, 1, 10)

    def test_asset_without_financials(self, session, registry, business_unit, category, actor_id):
        result = registry.create_asset(
            AssetInput(description="Whiteboard", category_id=category.id), business_unit.id, actor_id,
        )
        asset = session.get(AssetModel, result.data["asset_id"])
        assert asset.depreciation_method is None
        assert asset.next_depreciation_date is None

    @pytest.mark.parametrize("overrides,code", [
        ({"description": "  "}, "VALIDATION_ERROR"),
        ({"quantity": 0}, "VALIDATION_ERROR"),
        ({"depreciation_method": None}, "VALIDATION_ERROR"),
        ({"purchase_date": None}, "VALIDATION_ERROR"),
        ({"useful_life_years": None}, "INVALID_DEPRECIATION_PARAMETERS"),
        ({"salvage_value": Decimal("2000.00")}, "INVALID_DEPRECIATION_PARAMETERS"),
    ])
    def test_invalid_input_rejected(self, session, registry, business_unit, category, actor_id, overrides, code):
        result = registry.create_asset(_laptop(category.id, **overrides), business_unit.id, actor_id)
        assert result.error_code == code
        assert session.scalar(select(func.count()).select_from(AssetModel)) == 0

    def test_category_from_other_business_unit(
        self, registry, business_unit, make_business_unit, make_category, actor_id,
    ):
        branch = make_business_unit("BR", "Branch")
        foreign = make_category(branch.id, "BRL")
        result = registry.create_asset(_laptop(foreign.id), business_unit.id, actor_id)
        assert result.error_code == "NOT_FOUND"


class TestUpdateAsset:

    @pytest.fixture
    def laptop_id(self, registry, business_unit, category, actor_id):
        return registry.create_asset(_laptop(category.id), business_unit.id, actor_id).data["asset_id"]

    def test_location_change_recorded(self, session, registry, business_unit, laptop_id, actor_id):
        result = registry.update_asset(
            laptop_id, AssetUpdate({"location": "Storage"}), business_unit.id, actor_id,
        )
        assert result.success == "Asset updated successfully"

        history = AuditLedger(session).history_for(laptop_id)
        assert [h.action for h in history] == [
            HistoryAction.CREATED, HistoryAction.UPDATED, HistoryAction.LOCATION_CHANGED,
        ]
        assert history[1].notes == "Updated fields: location"
        assert (history[2].previous_location, history[2].new_location) == ("HQ-3F", "Storage")

    def test_status_change_goes_through_workflow(self, session, registry, business_unit, laptop_id, actor_id):
        result = registry.update_asset(
            laptop_id, AssetUpdate({"status": "IN_MAINTENANCE"}), business_unit.id, actor_id,
        )
        assert result.is_success
        assert session.get(AssetModel, laptop_id).status == "IN_MAINTENANCE"

        changed = [h for h in AuditLedger(session).history_for(laptop_id)
                   if h.action is HistoryAction.STATUS_CHANGED]
        assert (changed[0].previous_status, changed[0].new_status) == (
            AssetStatus.AVAILABLE, AssetStatus.IN_MAINTENANCE,
        )

    def test_retired_status_not_settable(self, registry, business_unit, laptop_id, actor_id):
        result = registry.update_asset(
            laptop_id, AssetUpdate({"status": "RETIRED"}), business_unit.id, actor_id,
        )
        assert result.error_code == "ILLEGAL_STATE"

    def test_price_change_recomputes(self, session, registry, business_unit, laptop_id, actor_id):
        result = registry.update_asset(
            laptop_id,
            AssetUpdate({"purchase_price": "3900.00", "useful_life_years": 3}),
            business_unit.id,
            actor_id,
        )
        assert result.is_success
        asset = session.get(AssetModel, laptop_id)
        assert asset.monthly_depreciation == Decimal("100.00")
        assert asset.current_book_value == Decimal("3900.00")

    def test_terminal_asset_frozen(self, session, registry, business_unit, laptop_id, actor_id):
        asset = session.get(AssetModel, laptop_id)
        asset.status = AssetStatus.RETIRED.value
        session.commit()

        result = registry.update_asset(
            laptop_id, AssetUpdate({"purchase_price": "1.00"}), business_unit.id, actor_id,
        )
        assert result.error_code == "ILLEGAL_STATE"

        notes_only = registry.update_asset(
            laptop_id, AssetUpdate({"notes": "in storage cage"}), business_unit.id, actor_id,
        )
        assert notes_only.is_success

    def test_wrong_business_unit(self, registry, make_business_unit, laptop_id, actor_id):
        other = make_business_unit("BR", "Branch")
        result = registry.update_asset(laptop_id, AssetUpdate({"notes": "x"}), other.id, actor_id)
        assert result.error_code == "NOT_FOUND"

    def test_unknown_field_rejected_up_front(self):
        with pytest.raises(ValidationError):
            AssetUpdate({"colour": "red"})

    def test_float_price_rejected(self):
        with pytest.raises(ValidationError):
            AssetUpdate({"purchase_price": 12.5})


class TestGetAsset:

    def test_scoped_lookup(self, registry, business_unit, category, make_business_unit, actor_id):
        asset_id = registry.create_asset(_laptop(category.id), business_unit.id, actor_id).data["asset_id"]
        assert registry.get_asset(asset_id, business_unit.id).item_code == "LAP001"

        other = make_business_unit("BR", "Branch")
        with pytest.raises(AssetNotFoundError):
            registry.get_asset(asset_id, other.id)
