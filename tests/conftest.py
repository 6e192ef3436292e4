"""
Pytest fixtures for the asset lifecycle test suite.

Provides:
- In-memory SQLite engine with every table created (SAVEPOINT hooks on)
- A fresh Session per test and a DeterministicClock
- Seed factories for business units, categories and assets
- Captured structured logs

Assets created through ``make_asset`` bypass AssetRegistryService so tests
can set up states the service would reject (missing price, odd statuses).
"""

import json
import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from io import StringIO
from uuid import UUID

import pytest
from sqlalchemy.orm import sessionmaker

from asset_kernel.db.engine import build_engine
from asset_kernel.db.immutability import register_immutability_listeners
from asset_kernel.domain.clock import DeterministicClock
from asset_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from asset_modules._orm_registry import create_all_tables
from asset_modules.assets.helpers import compute_depreciation_parameters
from asset_modules.assets.models import AssetStatus, DepreciationMethod
from asset_modules.assets.orm import AssetCategoryModel, AssetModel, BusinessUnitModel


TEST_ACTOR_ID = UUID("00000000-0000-4000-a000-000000000001")
TEST_EMPLOYEE_ID = UUID("00000000-0000-4000-a000-000000000003")


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture asset_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs):
            ...
            assert any(r["message"] == "depreciation_run_completed" for r in captured_logs())
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("asset_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def engine():
    """Fresh in-memory SQLite database per test."""
    eng = build_engine("sqlite://")
    create_all_tables(eng)
    register_immutability_listeners()
    yield eng
    eng.dispose()


@pytest.fixture
def session(engine):
    SessionLocal = sessionmaker(bind=engine)
    sess = SessionLocal()
    try:
        yield sess
    finally:
        sess.close()


@pytest.fixture
def clock():
    """Clock pinned to 2024-01-31 (a month end)."""
    return DeterministicClock(datetime(2024, 1, 31, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def actor_id():
    return TEST_ACTOR_ID


# =============================================================================
# Seed factories
# =============================================================================


@pytest.fixture
def make_business_unit(session):
    counter = {"n": 0}

    def _make(code: str | None = None, name: str | None = None, is_active: bool = True):
        counter["n"] += 1
        unit = BusinessUnitModel(
            code=code or f"BU{counter['n']:02d}",
            name=name or f"Business Unit {counter['n']}",
            is_active=is_active,
            created_by_id=TEST_ACTOR_ID,
        )
        session.add(unit)
        session.commit()
        return unit

    return _make


@pytest.fixture
def business_unit(make_business_unit):
    return make_business_unit("HQ", "Headquarters")


@pytest.fixture
def make_category(session):
    def _make(business_unit_id, code: str, name: str | None = None, **accounts):
        category = AssetCategoryModel(
            code=code,
            name=name or code.title(),
            business_unit_id=business_unit_id,
            created_by_id=TEST_ACTOR_ID,
            **accounts,
        )
        session.add(category)
        session.commit()
        return category

    return _make


@pytest.fixture
def category(business_unit, make_category):
    return make_category(
        business_unit.id,
        "LAP",
        "Laptops",
        asset_account_code="1500",
        depreciation_expense_account_code="6100",
        accumulated_depreciation_account_code="1590",
    )


@pytest.fixture
def make_asset(session):
    """
    Insert an asset row directly.

    Depreciation parameters are derived with the same helper the registry
    uses unless ``monthly_depreciation`` is passed explicitly.
    """
    counter = {"n": 0}

    def _make(
        business_unit_id,
        category_id,
        *,
        item_code: str | None = None,
        description: str = "Test asset",
        status: AssetStatus = AssetStatus.AVAILABLE,
        purchase_price: Decimal | None = Decimal("12000.00"),
        salvage_value: Decimal = Decimal("0"),
        method: DepreciationMethod | None = DepreciationMethod.STRAIGHT_LINE,
        useful_life_years: int | None = 1,
        useful_life_months: int = 0,
        start_date: date | None = date(2024, 1, 1),
        declining_balance_rate: Decimal | None = None,
        total_expected_units: Decimal | None = None,
        monthly_depreciation: Decimal | None = None,
        accumulated: Decimal = Decimal("0"),
        last_depreciation_date: date | None = None,
        is_fully_depreciated: bool = False,
        assigned_to: UUID | None = None,
        is_active: bool = True,
        **extra,
    ) -> AssetModel:
        counter["n"] += 1
        per_unit = None
        if monthly_depreciation is None and method is not None and purchase_price is not None:
            params = compute_depreciation_parameters(
                method,
                purchase_price,
                salvage_value,
                useful_life_years,
                useful_life_months,
                declining_balance_rate,
                total_expected_units,
            )
            monthly_depreciation = params.monthly_depreciation
            per_unit = params.depreciation_per_unit
        asset = AssetModel(
            item_code=item_code or f"T{counter['n']:04d}",
            description=description,
            category_id=category_id,
            business_unit_id=business_unit_id,
            status=status.value,
            is_active=is_active,
            currently_assigned_to=assigned_to,
            purchase_date=start_date,
            purchase_price=purchase_price,
            salvage_value=salvage_value,
            depreciation_method=method.value if method else None,
            useful_life_years=useful_life_years,
            useful_life_months=useful_life_months,
            depreciation_start_date=start_date,
            current_book_value=(purchase_price - accumulated) if purchase_price is not None else None,
            accumulated_depreciation=accumulated,
            monthly_depreciation=monthly_depreciation,
            declining_balance_rate=declining_balance_rate,
            total_expected_units=total_expected_units,
            depreciation_per_unit=per_unit,
            last_depreciation_date=last_depreciation_date,
            is_fully_depreciated=is_fully_depreciated,
            created_by_id=TEST_ACTOR_ID,
            **extra,
        )
        session.add(asset)
        session.commit()
        return asset

    return _make
