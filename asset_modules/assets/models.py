"""
Asset Lifecycle Domain Models.

The nouns of the asset lifecycle: assets, categories, depreciation
snapshots and results, ledger entries, deployments, retirements,
disposals, and history entries.  All DTOs are frozen; ORM models in
``orm.py`` convert to and from them.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping
from uuid import UUID

from asset_kernel.db.types import to_decimal
from asset_kernel.exceptions import ValidationError


class AssetStatus(Enum):
    """Asset lifecycle states."""
    AVAILABLE = "AVAILABLE"
    DEPLOYED = "DEPLOYED"
    IN_MAINTENANCE = "IN_MAINTENANCE"
    DAMAGED = "DAMAGED"
    RETIRED = "RETIRED"
    DISPOSED = "DISPOSED"


OPERATIONAL_STATUSES = frozenset({
    AssetStatus.AVAILABLE,
    AssetStatus.DEPLOYED,
    AssetStatus.IN_MAINTENANCE,
    AssetStatus.DAMAGED,
})

# Statuses that accrue depreciation
DEPRECIABLE_STATUSES = frozenset({
    AssetStatus.AVAILABLE,
    AssetStatus.DEPLOYED,
    AssetStatus.IN_MAINTENANCE,
})


class DepreciationMethod(Enum):
    """Supported depreciation methods."""
    STRAIGHT_LINE = "STRAIGHT_LINE"
    DECLINING_BALANCE = "DECLINING_BALANCE"
    UNITS_OF_PRODUCTION = "UNITS_OF_PRODUCTION"
    SUM_OF_YEARS_DIGITS = "SUM_OF_YEARS_DIGITS"


class DeploymentStatus(Enum):
    DEPLOYED = "DEPLOYED"
    RETURNED = "RETURNED"


class RetirementReason(Enum):
    END_OF_USEFUL_LIFE = "END_OF_USEFUL_LIFE"
    FULLY_DEPRECIATED = "FULLY_DEPRECIATED"
    OBSOLETE = "OBSOLETE"
    DAMAGED_BEYOND_REPAIR = "DAMAGED_BEYOND_REPAIR"
    POLICY_CHANGE = "POLICY_CHANGE"
    UPGRADE_REPLACEMENT = "UPGRADE_REPLACEMENT"


class RetirementMethod(Enum):
    NORMAL_RETIREMENT = "NORMAL_RETIREMENT"
    EARLY_RETIREMENT = "EARLY_RETIREMENT"
    EMERGENCY_RETIREMENT = "EMERGENCY_RETIREMENT"
    PLANNED_REPLACEMENT = "PLANNED_REPLACEMENT"
    POLICY_DRIVEN = "POLICY_DRIVEN"


class AssetCondition(Enum):
    EXCELLENT = "EXCELLENT"
    GOOD = "GOOD"
    FAIR = "FAIR"
    POOR = "POOR"
    DAMAGED = "DAMAGED"
    NON_FUNCTIONAL = "NON_FUNCTIONAL"


class DisposalMethod(Enum):
    SALE = "SALE"
    SCRAP = "SCRAP"
    DONATION = "DONATION"
    TRADE_IN = "TRADE_IN"
    DESTRUCTION = "DESTRUCTION"
    OTHER = "OTHER"


class DisposalReason(Enum):
    SOLD = "SOLD"
    DONATED = "DONATED"
    SCRAPPED = "SCRAPPED"
    LOST = "LOST"
    STOLEN = "STOLEN"
    TRANSFERRED = "TRANSFERRED"
    END_OF_LIFE = "END_OF_LIFE"
    DAMAGED_BEYOND_REPAIR = "DAMAGED_BEYOND_REPAIR"
    OBSOLETE = "OBSOLETE"
    REGULATORY_COMPLIANCE = "REGULATORY_COMPLIANCE"


class HistoryAction(Enum):
    CREATED = "CREATED"
    UPDATED = "UPDATED"
    STATUS_CHANGED = "STATUS_CHANGED"
    LOCATION_CHANGED = "LOCATION_CHANGED"
    DEPRECIATION_CALCULATED = "DEPRECIATION_CALCULATED"
    RETIRED = "RETIRED"
    DISPOSED = "DISPOSED"


# -----------------------------------------------------------------------------
# Reference data
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class BusinessUnit:
    id: UUID
    code: str
    name: str
    is_active: bool = True


@dataclass(frozen=True)
class AssetCategory:
    """A category; its code is the item-code prefix."""
    id: UUID
    code: str
    name: str
    business_unit_id: UUID
    asset_account_code: str | None = None
    depreciation_expense_account_code: str | None = None
    accumulated_depreciation_account_code: str | None = None


# -----------------------------------------------------------------------------
# Asset
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class Asset:
    """A tracked capital asset with its depreciation state."""
    id: UUID
    item_code: str
    description: str
    category_id: UUID
    business_unit_id: UUID
    status: AssetStatus = AssetStatus.AVAILABLE
    department_id: UUID | None = None
    quantity: int = 1
    location: str | None = None
    notes: str | None = None
    serial_number: str | None = None
    brand: str | None = None
    is_active: bool = True
    currently_assigned_to: UUID | None = None
    purchase_date: date | None = None
    purchase_price: Decimal | None = None
    salvage_value: Decimal = Decimal("0")
    depreciation_method: DepreciationMethod | None = None
    useful_life_years: int | None = None
    useful_life_months: int = 0
    depreciation_start_date: date | None = None
    current_book_value: Decimal | None = None
    accumulated_depreciation: Decimal = Decimal("0")
    monthly_depreciation: Decimal | None = None
    declining_balance_rate: Decimal | None = None
    total_expected_units: Decimal | None = None
    units_produced_to_date: Decimal = Decimal("0")
    depreciation_per_unit: Decimal | None = None
    last_depreciation_date: date | None = None
    next_depreciation_date: date | None = None
    is_fully_depreciated: bool = False
    asset_account_code: str | None = None
    depreciation_expense_account_code: str | None = None
    accumulated_depreciation_account_code: str | None = None


@dataclass(frozen=True)
class AssetInput:
    """Data for ``AssetRegistryService.create_asset``."""
    description: str
    category_id: UUID
    item_code: str | None = None
    department_id: UUID | None = None
    quantity: int = 1
    location: str | None = None
    notes: str | None = None
    serial_number: str | None = None
    brand: str | None = None
    currently_assigned_to: UUID | None = None
    purchase_date: date | None = None
    purchase_price: Decimal | None = None
    salvage_value: Decimal | None = None
    depreciation_method: DepreciationMethod | None = None
    useful_life_years: int | None = None
    useful_life_months: int | None = None
    depreciation_start_date: date | None = None
    declining_balance_rate: Decimal | None = None
    total_expected_units: Decimal | None = None
    asset_account_code: str | None = None
    depreciation_expense_account_code: str | None = None
    accumulated_depreciation_account_code: str | None = None


_UPDATE_FIELD_TYPES: dict[str, str] = {
    "description": "str",
    "category_id": "uuid",
    "department_id": "uuid",
    "quantity": "int",
    "location": "str",
    "notes": "str",
    "serial_number": "str",
    "brand": "str",
    "status": "status",
    "is_active": "bool",
    "purchase_date": "date",
    "purchase_price": "decimal",
    "salvage_value": "decimal",
    "depreciation_method": "method",
    "useful_life_years": "int",
    "useful_life_months": "int",
    "depreciation_start_date": "date",
    "declining_balance_rate": "decimal",
    "total_expected_units": "decimal",
    "asset_account_code": "str",
    "depreciation_expense_account_code": "str",
    "accumulated_depreciation_account_code": "str",
}

DEPRECIATION_INPUT_FIELDS = frozenset({
    "purchase_price",
    "salvage_value",
    "depreciation_method",
    "useful_life_years",
    "useful_life_months",
    "declining_balance_rate",
    "total_expected_units",
})


def _coerce(name: str, kind: str, value: Any) -> Any:
    if value is None:
        return None
    try:
        if kind == "str":
            return str(value)
        if kind == "uuid":
            return value if isinstance(value, UUID) else UUID(str(value))
        if kind == "int":
            if isinstance(value, bool):
                raise ValueError(f"{name} must be an integer")
            return int(value)
        if kind == "bool":
            if not isinstance(value, bool):
                raise ValueError(f"{name} must be a boolean")
            return value
        if kind == "date":
            return value if isinstance(value, date) else date.fromisoformat(str(value))
        if kind == "decimal":
            return to_decimal(value, name)
        if kind == "status":
            return value if isinstance(value, AssetStatus) else AssetStatus(value)
        if kind == "method":
            return value if isinstance(value, DepreciationMethod) else DepreciationMethod(value)
    except ValueError as exc:
        raise ValidationError(f"Invalid value for {name}: {exc}", field=name) from exc
    raise ValidationError(f"Unsupported field type for {name}", field=name)


@dataclass(frozen=True)
class AssetUpdate:
    """
    Partial update for ``AssetRegistryService.update_asset``.

    ``changes`` is validated against a fixed schema: unknown keys raise
    ValidationError and values are coerced to their column types.  A key
    mapped to None clears the field.
    """
    changes: Mapping[str, Any]

    def __post_init__(self):
        unknown = set(self.changes) - set(_UPDATE_FIELD_TYPES)
        if unknown:
            raise ValidationError(
                f"Unknown asset fields: {', '.join(sorted(unknown))}",
                field=sorted(unknown)[0],
            )
        coerced = {
            name: _coerce(name, _UPDATE_FIELD_TYPES[name], value)
            for name, value in self.changes.items()
        }
        object.__setattr__(self, "changes", coerced)

    def touches_depreciation(self) -> bool:
        return bool(DEPRECIATION_INPUT_FIELDS & set(self.changes))


# -----------------------------------------------------------------------------
# Depreciation
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class DepreciationParameters:
    """Precomputed per-asset rates derived from method, price and life."""
    total_months: int
    monthly_depreciation: Decimal
    depreciation_per_unit: Decimal | None = None


@dataclass(frozen=True)
class DepreciationSnapshot:
    """Financial inputs to the calculator, detached from persistence."""
    method: DepreciationMethod
    purchase_price: Decimal
    salvage_value: Decimal
    current_book_value: Decimal
    accumulated_depreciation: Decimal
    useful_life_months: int
    depreciation_start_date: date
    monthly_depreciation: Decimal = Decimal("0")
    last_depreciation_date: date | None = None
    declining_balance_rate: Decimal | None = None
    depreciation_per_unit: Decimal | None = None

    @classmethod
    def from_asset(cls, asset: Asset) -> "DepreciationSnapshot":
        if asset.depreciation_method is None:
            raise ValidationError("Asset has no depreciation method", field="depreciation_method")
        if asset.purchase_price is None:
            raise ValidationError("Asset has no purchase price", field="purchase_price")
        if asset.depreciation_start_date is None:
            raise ValidationError(
                "Asset has no depreciation start date", field="depreciation_start_date"
            )
        book_value = asset.current_book_value
        if book_value is None:
            book_value = asset.purchase_price - asset.accumulated_depreciation
        return cls(
            method=asset.depreciation_method,
            purchase_price=asset.purchase_price,
            salvage_value=asset.salvage_value,
            current_book_value=book_value,
            accumulated_depreciation=asset.accumulated_depreciation,
            useful_life_months=(asset.useful_life_years or 0) * 12 + (asset.useful_life_months or 0),
            depreciation_start_date=asset.depreciation_start_date,
            monthly_depreciation=asset.monthly_depreciation or Decimal("0"),
            last_depreciation_date=asset.last_depreciation_date,
            declining_balance_rate=asset.declining_balance_rate,
            depreciation_per_unit=asset.depreciation_per_unit,
        )


@dataclass(frozen=True)
class DepreciationResult:
    """Calculator output for one asset and one period."""
    depreciation_amount: Decimal
    book_value_after: Decimal
    accumulated_depreciation_after: Decimal
    is_fully_depreciated: bool
    period_start: date
    period_end: date
    next_depreciation_date: date | None
    months_covered: int = 1
    units_consumed: Decimal | None = None

    @property
    def is_noop(self) -> bool:
        return self.depreciation_amount <= 0


@dataclass(frozen=True)
class DepreciationLedgerEntry:
    """One processed depreciation period for one asset."""
    id: UUID
    asset_id: UUID
    calculation_date: date
    period_start: date
    period_end: date
    book_value_start: Decimal
    book_value_end: Decimal
    depreciation_amount: Decimal
    accumulated_depreciation: Decimal
    depreciation_method: DepreciationMethod
    calculated_by_id: UUID
    units_consumed: Decimal | None = None
    execution_id: UUID | None = None
    notes: str | None = None


# -----------------------------------------------------------------------------
# Deployment, retirement, disposal, history
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class AssetDeployment:
    id: UUID
    asset_id: UUID
    employee_id: UUID
    business_unit_id: UUID
    deployed_date: date
    status: DeploymentStatus = DeploymentStatus.DEPLOYED
    expected_return_date: date | None = None
    returned_date: date | None = None
    return_notes: str | None = None


@dataclass(frozen=True)
class Retirement:
    id: UUID
    asset_id: UUID
    retirement_date: date
    reason: RetirementReason
    retirement_method: RetirementMethod
    condition: AssetCondition
    created_by_id: UUID
    notes: str | None = None
    replacement_asset_id: UUID | None = None
    disposal_planned: bool = False
    planned_disposal_date: date | None = None
    approved_by_id: UUID | None = None


@dataclass(frozen=True)
class Disposal:
    id: UUID
    asset_id: UUID
    disposal_date: date
    disposal_method: DisposalMethod
    disposal_reason: DisposalReason
    disposal_value: Decimal
    disposal_cost: Decimal
    net_disposal_value: Decimal
    book_value_at_disposal: Decimal
    gain_loss: Decimal
    created_by_id: UUID
    recipient: str | None = None
    notes: str | None = None
    approved_by_id: UUID | None = None


@dataclass(frozen=True)
class AssetHistoryEntry:
    id: UUID
    asset_id: UUID
    action: HistoryAction
    performed_by_id: UUID
    performed_at: datetime
    previous_status: AssetStatus | None = None
    new_status: AssetStatus | None = None
    previous_location: str | None = None
    new_location: str | None = None
    previous_book_value: Decimal | None = None
    new_book_value: Decimal | None = None
    depreciation_amount: Decimal | None = None
    notes: str | None = None


# -----------------------------------------------------------------------------
# Retirement & disposal requests
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class RetireAssetsRequest:
    asset_ids: tuple[UUID, ...]
    retirement_date: date
    reason: RetirementReason
    retirement_method: RetirementMethod = RetirementMethod.NORMAL_RETIREMENT
    condition: AssetCondition = AssetCondition.FAIR
    notes: str | None = None
    replacement_asset_id: UUID | None = None
    disposal_planned: bool = False
    planned_disposal_date: date | None = None
    approved_by_id: UUID | None = None

    def __post_init__(self):
        object.__setattr__(self, "asset_ids", tuple(self.asset_ids))


@dataclass(frozen=True)
class DisposeAssetsRequest:
    asset_ids: tuple[UUID, ...]
    disposal_date: date
    disposal_method: DisposalMethod
    disposal_reason: DisposalReason
    disposal_value: Decimal = Decimal("0")
    disposal_cost: Decimal = Decimal("0")
    recipient: str | None = None
    notes: str | None = None
    approved_by_id: UUID | None = None

    def __post_init__(self):
        object.__setattr__(self, "asset_ids", tuple(self.asset_ids))


@dataclass(frozen=True)
class RetirableAssetFilters:
    business_unit_id: UUID
    category_id: UUID | None = None
    search: str | None = None
    page: int = 1
    limit: int = 20


@dataclass(frozen=True)
class CategoryCount:
    id: UUID
    name: str
    count: int


@dataclass(frozen=True)
class RetirableAssetsPage:
    assets: tuple[Asset, ...]
    total_count: int
    categories: tuple[CategoryCount, ...] = field(default_factory=tuple)
