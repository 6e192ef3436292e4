"""
Asset Lifecycle ORM Models (``asset_modules.assets.orm``).

Responsibility
--------------
SQLAlchemy persistence for business units, categories, assets,
deployments, the depreciation ledger, retirements, disposals and asset
history.  Maps the frozen dataclasses in ``models.py`` to tables.

Architecture position
---------------------
**Modules layer** -- persistence.  Imports from ``asset_kernel.db.base``
and sibling ``models.py``.  MUST NOT be imported by ``asset_kernel``
except through the lazy hooks in ``db/engine.py`` and
``db/immutability.py``.

Invariants enforced
-------------------
* ``item_code`` is unique across the organization.
* One ledger row per (asset, period_start); concurrent runs that race
  past the eligibility check collide here instead of double-depreciating.
* At most one retirement and one disposal per asset.
* Ledger and history rows are append-only (see ``db/immutability.py``).
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from asset_kernel.db.base import TrackedBase


# ---------------------------------------------------------------------------
# BusinessUnitModel
# ---------------------------------------------------------------------------

class BusinessUnitModel(TrackedBase):
    """
    ORM model for ``BusinessUnit`` -- the scope of every asset query and of
    the end-of-month run.

    Table: ``assets_business_units``
    """

    __tablename__ = "assets_business_units"

    code: Mapped[str] = mapped_column(String(50))
    name: Mapped[str] = mapped_column(String(200))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    __table_args__ = (
        UniqueConstraint("code", name="uq_assets_business_units_code"),
    )

    def to_dto(self):
        from asset_modules.assets.models import BusinessUnit
        return BusinessUnit(id=self.id, code=self.code, name=self.name, is_active=self.is_active)

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "BusinessUnitModel":
        return cls(
            id=dto.id,
            code=dto.code,
            name=dto.name,
            is_active=dto.is_active,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return f"<BusinessUnitModel(id={self.id!r}, code={self.code!r})>"


# ---------------------------------------------------------------------------
# AssetCategoryModel
# ---------------------------------------------------------------------------

class AssetCategoryModel(TrackedBase):
    """
    ORM model for ``AssetCategory``.  ``code`` is the item-code prefix.

    Table: ``assets_categories``
    """

    __tablename__ = "assets_categories"

    code: Mapped[str] = mapped_column(String(20))
    name: Mapped[str] = mapped_column(String(200))
    business_unit_id: Mapped[UUID] = mapped_column(ForeignKey("assets_business_units.id"))
    asset_account_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    depreciation_expense_account_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    accumulated_depreciation_account_code: Mapped[str | None] = mapped_column(String(50), nullable=True)

    assets: Mapped[list["AssetModel"]] = relationship(back_populates="category")

    __table_args__ = (
        UniqueConstraint("code", name="uq_assets_categories_code"),
        Index("idx_assets_categories_business_unit", "business_unit_id"),
    )

    def to_dto(self):
        from asset_modules.assets.models import AssetCategory
        return AssetCategory(
            id=self.id,
            code=self.code,
            name=self.name,
            business_unit_id=self.business_unit_id,
            asset_account_code=self.asset_account_code,
            depreciation_expense_account_code=self.depreciation_expense_account_code,
            accumulated_depreciation_account_code=self.accumulated_depreciation_account_code,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "AssetCategoryModel":
        return cls(
            id=dto.id,
            code=dto.code,
            name=dto.name,
            business_unit_id=dto.business_unit_id,
            asset_account_code=dto.asset_account_code,
            depreciation_expense_account_code=dto.depreciation_expense_account_code,
            accumulated_depreciation_account_code=dto.accumulated_depreciation_account_code,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return f"<AssetCategoryModel(id={self.id!r}, code={self.code!r}, name={self.name!r})>"


# ---------------------------------------------------------------------------
# AssetModel
# ---------------------------------------------------------------------------

class AssetModel(TrackedBase):
    """
    ORM model for ``Asset``.

    Table: ``assets_assets``
    """

    __tablename__ = "assets_assets"

    item_code: Mapped[str] = mapped_column(String(50))
    description: Mapped[str] = mapped_column(String(500))
    category_id: Mapped[UUID] = mapped_column(ForeignKey("assets_categories.id"))
    business_unit_id: Mapped[UUID] = mapped_column(ForeignKey("assets_business_units.id"))
    department_id: Mapped[UUID | None] = mapped_column(nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, default=1)
    location: Mapped[str | None] = mapped_column(String(200), nullable=True)
    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    serial_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    brand: Mapped[str | None] = mapped_column(String(100), nullable=True)
    status: Mapped[str] = mapped_column(String(30), default="AVAILABLE")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    currently_assigned_to: Mapped[UUID | None] = mapped_column(nullable=True)

    # Financial / depreciation
    purchase_date: Mapped[date | None] = mapped_column(nullable=True)
    purchase_price: Mapped[Decimal | None] = mapped_column(nullable=True)
    salvage_value: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    depreciation_method: Mapped[str | None] = mapped_column(String(30), nullable=True)
    useful_life_years: Mapped[int | None] = mapped_column(Integer, nullable=True)
    useful_life_months: Mapped[int] = mapped_column(Integer, default=0)
    depreciation_start_date: Mapped[date | None] = mapped_column(nullable=True)
    current_book_value: Mapped[Decimal | None] = mapped_column(nullable=True)
    accumulated_depreciation: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    monthly_depreciation: Mapped[Decimal | None] = mapped_column(nullable=True)
    declining_balance_rate: Mapped[Decimal | None] = mapped_column(nullable=True)
    total_expected_units: Mapped[Decimal | None] = mapped_column(nullable=True)
    units_produced_to_date: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    depreciation_per_unit: Mapped[Decimal | None] = mapped_column(nullable=True)
    last_depreciation_date: Mapped[date | None] = mapped_column(nullable=True)
    next_depreciation_date: Mapped[date | None] = mapped_column(nullable=True)
    is_fully_depreciated: Mapped[bool] = mapped_column(Boolean, default=False)

    # GL references (recorded only)
    asset_account_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    depreciation_expense_account_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    accumulated_depreciation_account_code: Mapped[str | None] = mapped_column(String(50), nullable=True)

    category: Mapped["AssetCategoryModel"] = relationship(back_populates="assets")

    __table_args__ = (
        UniqueConstraint("item_code", name="uq_assets_assets_item_code"),
        Index("idx_assets_assets_business_unit_status", "business_unit_id", "status"),
        Index("idx_assets_assets_category", "category_id"),
    )

    def to_dto(self):
        from asset_modules.assets.models import Asset, AssetStatus, DepreciationMethod
        return Asset(
            id=self.id,
            item_code=self.item_code,
            description=self.description,
            category_id=self.category_id,
            business_unit_id=self.business_unit_id,
            status=AssetStatus(self.status),
            department_id=self.department_id,
            quantity=self.quantity,
            location=self.location,
            notes=self.notes,
            serial_number=self.serial_number,
            brand=self.brand,
            is_active=self.is_active,
            currently_assigned_to=self.currently_assigned_to,
            purchase_date=self.purchase_date,
            purchase_price=self.purchase_price,
            salvage_value=self.salvage_value if self.salvage_value is not None else Decimal("0"),
            depreciation_method=(
                DepreciationMethod(self.depreciation_method) if self.depreciation_method else None
            ),
            useful_life_years=self.useful_life_years,
            useful_life_months=self.useful_life_months or 0,
            depreciation_start_date=self.depreciation_start_date,
            current_book_value=self.current_book_value,
            accumulated_depreciation=(
                self.accumulated_depreciation if self.accumulated_depreciation is not None else Decimal("0")
            ),
            monthly_depreciation=self.monthly_depreciation,
            declining_balance_rate=self.declining_balance_rate,
            total_expected_units=self.total_expected_units,
            units_produced_to_date=self.units_produced_to_date or Decimal("0"),
            depreciation_per_unit=self.depreciation_per_unit,
            last_depreciation_date=self.last_depreciation_date,
            next_depreciation_date=self.next_depreciation_date,
            is_fully_depreciated=bool(self.is_fully_depreciated),
            asset_account_code=self.asset_account_code,
            depreciation_expense_account_code=self.depreciation_expense_account_code,
            accumulated_depreciation_account_code=self.accumulated_depreciation_account_code,
        )

    def __repr__(self) -> str:
        return (
            f"<AssetModel(id={self.id!r}, item_code={self.item_code!r}, "
            f"status={self.status!r})>"
        )


# ---------------------------------------------------------------------------
# AssetDeploymentModel
# ---------------------------------------------------------------------------

class AssetDeploymentModel(TrackedBase):
    """
    ORM model for ``AssetDeployment`` -- assignment of an asset to an
    employee.  Opened by deployment actions, closed here on retirement.

    Table: ``assets_deployments``
    """

    __tablename__ = "assets_deployments"

    asset_id: Mapped[UUID] = mapped_column(ForeignKey("assets_assets.id"))
    employee_id: Mapped[UUID]
    business_unit_id: Mapped[UUID] = mapped_column(ForeignKey("assets_business_units.id"))
    deployed_date: Mapped[date]
    expected_return_date: Mapped[date | None] = mapped_column(nullable=True)
    returned_date: Mapped[date | None] = mapped_column(nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="DEPLOYED")
    return_notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    __table_args__ = (
        Index("idx_assets_deployments_asset_status", "asset_id", "status"),
    )

    def to_dto(self):
        from asset_modules.assets.models import AssetDeployment, DeploymentStatus
        return AssetDeployment(
            id=self.id,
            asset_id=self.asset_id,
            employee_id=self.employee_id,
            business_unit_id=self.business_unit_id,
            deployed_date=self.deployed_date,
            status=DeploymentStatus(self.status),
            expected_return_date=self.expected_return_date,
            returned_date=self.returned_date,
            return_notes=self.return_notes,
        )

    def __repr__(self) -> str:
        return f"<AssetDeploymentModel(asset_id={self.asset_id!r}, status={self.status!r})>"


# ---------------------------------------------------------------------------
# DepreciationLedgerEntryModel
# ---------------------------------------------------------------------------

class DepreciationLedgerEntryModel(TrackedBase):
    """
    ORM model for ``DepreciationLedgerEntry``.  Append-only.

    Table: ``assets_depreciation_ledger``
    """

    __tablename__ = "assets_depreciation_ledger"
    __audit_entity__ = "DepreciationLedgerEntry"

    asset_id: Mapped[UUID] = mapped_column(ForeignKey("assets_assets.id"))
    calculation_date: Mapped[date]
    period_start: Mapped[date]
    period_end: Mapped[date]
    book_value_start: Mapped[Decimal]
    book_value_end: Mapped[Decimal]
    depreciation_amount: Mapped[Decimal]
    accumulated_depreciation: Mapped[Decimal]
    depreciation_method: Mapped[str] = mapped_column(String(30))
    units_consumed: Mapped[Decimal | None] = mapped_column(nullable=True)
    calculated_by_id: Mapped[UUID]
    execution_id: Mapped[UUID | None] = mapped_column(nullable=True)
    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    __table_args__ = (
        UniqueConstraint("asset_id", "period_start", name="uq_assets_depreciation_ledger_asset_period"),
        Index("idx_assets_depreciation_ledger_calculation_date", "calculation_date"),
    )

    def to_dto(self):
        from asset_modules.assets.models import DepreciationLedgerEntry, DepreciationMethod
        return DepreciationLedgerEntry(
            id=self.id,
            asset_id=self.asset_id,
            calculation_date=self.calculation_date,
            period_start=self.period_start,
            period_end=self.period_end,
            book_value_start=self.book_value_start,
            book_value_end=self.book_value_end,
            depreciation_amount=self.depreciation_amount,
            accumulated_depreciation=self.accumulated_depreciation,
            depreciation_method=DepreciationMethod(self.depreciation_method),
            calculated_by_id=self.calculated_by_id,
            units_consumed=self.units_consumed,
            execution_id=self.execution_id,
            notes=self.notes,
        )

    def __repr__(self) -> str:
        return (
            f"<DepreciationLedgerEntryModel(asset_id={self.asset_id!r}, "
            f"period_start={self.period_start!r}, amount={self.depreciation_amount!r})>"
        )


# ---------------------------------------------------------------------------
# AssetRetirementModel
# ---------------------------------------------------------------------------

class AssetRetirementModel(TrackedBase):
    """
    ORM model for ``Retirement``.

    Table: ``assets_retirements``
    """

    __tablename__ = "assets_retirements"

    asset_id: Mapped[UUID] = mapped_column(ForeignKey("assets_assets.id"))
    retirement_date: Mapped[date]
    reason: Mapped[str] = mapped_column(String(50))
    retirement_method: Mapped[str] = mapped_column(String(50))
    condition: Mapped[str] = mapped_column(String(30))
    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    replacement_asset_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("assets_assets.id"), nullable=True,
    )
    disposal_planned: Mapped[bool] = mapped_column(Boolean, default=False)
    planned_disposal_date: Mapped[date | None] = mapped_column(nullable=True)
    approved_by_id: Mapped[UUID | None] = mapped_column(nullable=True)

    __table_args__ = (
        UniqueConstraint("asset_id", name="uq_assets_retirements_asset"),
    )

    def to_dto(self):
        from asset_modules.assets.models import (
            AssetCondition,
            Retirement,
            RetirementMethod,
            RetirementReason,
        )
        return Retirement(
            id=self.id,
            asset_id=self.asset_id,
            retirement_date=self.retirement_date,
            reason=RetirementReason(self.reason),
            retirement_method=RetirementMethod(self.retirement_method),
            condition=AssetCondition(self.condition),
            created_by_id=self.created_by_id,
            notes=self.notes,
            replacement_asset_id=self.replacement_asset_id,
            disposal_planned=self.disposal_planned,
            planned_disposal_date=self.planned_disposal_date,
            approved_by_id=self.approved_by_id,
        )

    def __repr__(self) -> str:
        return f"<AssetRetirementModel(asset_id={self.asset_id!r}, reason={self.reason!r})>"


# ---------------------------------------------------------------------------
# AssetDisposalModel
# ---------------------------------------------------------------------------

class AssetDisposalModel(TrackedBase):
    """
    ORM model for ``Disposal``.

    Table: ``assets_disposals``
    """

    __tablename__ = "assets_disposals"

    asset_id: Mapped[UUID] = mapped_column(ForeignKey("assets_assets.id"))
    disposal_date: Mapped[date]
    disposal_method: Mapped[str] = mapped_column(String(30))
    disposal_reason: Mapped[str] = mapped_column(String(50))
    disposal_value: Mapped[Decimal]
    disposal_cost: Mapped[Decimal]
    net_disposal_value: Mapped[Decimal]
    book_value_at_disposal: Mapped[Decimal]
    gain_loss: Mapped[Decimal]
    recipient: Mapped[str | None] = mapped_column(String(200), nullable=True)
    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    approved_by_id: Mapped[UUID | None] = mapped_column(nullable=True)

    __table_args__ = (
        UniqueConstraint("asset_id", name="uq_assets_disposals_asset"),
    )

    def to_dto(self):
        from asset_modules.assets.models import Disposal, DisposalMethod, DisposalReason
        return Disposal(
            id=self.id,
            asset_id=self.asset_id,
            disposal_date=self.disposal_date,
            disposal_method=DisposalMethod(self.disposal_method),
            disposal_reason=DisposalReason(self.disposal_reason),
            disposal_value=self.disposal_value,
            disposal_cost=self.disposal_cost,
            net_disposal_value=self.net_disposal_value,
            book_value_at_disposal=self.book_value_at_disposal,
            gain_loss=self.gain_loss,
            created_by_id=self.created_by_id,
            recipient=self.recipient,
            notes=self.notes,
            approved_by_id=self.approved_by_id,
        )

    def __repr__(self) -> str:
        return f"<AssetDisposalModel(asset_id={self.asset_id!r}, gain_loss={self.gain_loss!r})>"


# ---------------------------------------------------------------------------
# AssetHistoryModel
# ---------------------------------------------------------------------------

class AssetHistoryModel(TrackedBase):
    """
    ORM model for ``AssetHistoryEntry``.  Append-only.

    Table: ``assets_history``
    """

    __tablename__ = "assets_history"
    __audit_entity__ = "AssetHistory"

    asset_id: Mapped[UUID] = mapped_column(ForeignKey("assets_assets.id"))
    action: Mapped[str] = mapped_column(String(40))
    previous_status: Mapped[str | None] = mapped_column(String(30), nullable=True)
    new_status: Mapped[str | None] = mapped_column(String(30), nullable=True)
    previous_location: Mapped[str | None] = mapped_column(String(200), nullable=True)
    new_location: Mapped[str | None] = mapped_column(String(200), nullable=True)
    previous_book_value: Mapped[Decimal | None] = mapped_column(nullable=True)
    new_book_value: Mapped[Decimal | None] = mapped_column(nullable=True)
    depreciation_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    performed_by_id: Mapped[UUID]
    performed_at: Mapped[datetime]
    sequence: Mapped[int] = mapped_column(default=0)

    __table_args__ = (
        Index("idx_assets_history_asset", "asset_id", "sequence"),
    )

    def to_dto(self):
        from asset_modules.assets.models import AssetHistoryEntry, AssetStatus, HistoryAction
        return AssetHistoryEntry(
            id=self.id,
            asset_id=self.asset_id,
            action=HistoryAction(self.action),
            performed_by_id=self.performed_by_id,
            performed_at=self.performed_at,
            previous_status=AssetStatus(self.previous_status) if self.previous_status else None,
            new_status=AssetStatus(self.new_status) if self.new_status else None,
            previous_location=self.previous_location,
            new_location=self.new_location,
            previous_book_value=self.previous_book_value,
            new_book_value=self.new_book_value,
            depreciation_amount=self.depreciation_amount,
            notes=self.notes,
        )

    def __repr__(self) -> str:
        return f"<AssetHistoryModel(asset_id={self.asset_id!r}, action={self.action!r})>"
