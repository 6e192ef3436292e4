"""
Eligibility Filter (``asset_modules.assets.eligibility``).

Responsibility
--------------
Decides which assets a depreciation run touches.  Split in two:

* ``EligibilityFilter.candidates`` -- the database query: business unit,
  active, depreciable status, not fully depreciated, method set, category
  include/exclude.
* ``evaluate_eligibility`` -- a pure per-asset verdict that the run
  re-checks inside each asset's transaction.

Verdicts
--------
* ELIGIBLE       -- depreciate now.
* NOT_DUE        -- reported as SKIPPED (start date in the future, already
  processed this calendar month, fully depreciated).
* MISCONFIGURED  -- reported as FAILED (missing purchase price, start date,
  or a non-positive monthly rate on an asset that declares a method).

Invariants enforced
-------------------
* An asset is due only if it was never depreciated or its last run falls
  in an earlier calendar month than the calculation date.
* Exclude wins: a category in the exclude set is never eligible.  An
  empty include set admits every non-excluded category.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from enum import Enum
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from asset_kernel.domain.periods import months_between
from asset_kernel.exceptions import ValidationError
from asset_kernel.logging_config import get_logger
from asset_modules.assets.models import DEPRECIABLE_STATUSES, Asset
from asset_modules.assets.orm import AssetModel

logger = get_logger("modules.assets.eligibility")


class VerdictKind(Enum):
    ELIGIBLE = "eligible"
    NOT_DUE = "not_due"
    MISCONFIGURED = "misconfigured"


@dataclass(frozen=True)
class EligibilityVerdict:
    kind: VerdictKind
    reason: str | None = None

    @property
    def eligible(self) -> bool:
        return self.kind is VerdictKind.ELIGIBLE


_ELIGIBLE = EligibilityVerdict(VerdictKind.ELIGIBLE)


@dataclass(frozen=True)
class CategoryFilter:
    """Validated include/exclude category sets."""
    include: frozenset[UUID] = frozenset()
    exclude: frozenset[UUID] = frozenset()

    def __post_init__(self):
        object.__setattr__(self, "include", frozenset(self.include))
        object.__setattr__(self, "exclude", frozenset(self.exclude))
        overlap = self.include & self.exclude
        if overlap:
            raise ValidationError(
                "Categories cannot be both included and excluded: "
                + ", ".join(sorted(str(c) for c in overlap)),
                field="exclude_category_ids",
            )

    @classmethod
    def of(
        cls,
        include: Iterable[UUID] | None = None,
        exclude: Iterable[UUID] | None = None,
    ) -> "CategoryFilter":
        return cls(frozenset(include or ()), frozenset(exclude or ()))

    def admits(self, category_id: UUID) -> bool:
        if category_id in self.exclude:
            return False
        return not self.include or category_id in self.include


ALL_CATEGORIES = CategoryFilter()


def evaluate_eligibility(asset: Asset, calculation_date: date) -> EligibilityVerdict:
    """Pure per-asset gate, evaluated against ``calculation_date``."""
    if asset.status not in DEPRECIABLE_STATUSES:
        return EligibilityVerdict(
            VerdictKind.NOT_DUE, f"Status {asset.status.value} does not accrue depreciation"
        )
    if asset.is_fully_depreciated:
        return EligibilityVerdict(VerdictKind.NOT_DUE, "Asset is fully depreciated")
    if asset.depreciation_method is None:
        return EligibilityVerdict(VerdictKind.MISCONFIGURED, "Depreciation method is not set")
    if asset.purchase_price is None:
        return EligibilityVerdict(VerdictKind.MISCONFIGURED, "Purchase price is missing")
    if asset.depreciation_start_date is None:
        return EligibilityVerdict(VerdictKind.MISCONFIGURED, "Depreciation start date is missing")
    if asset.depreciation_start_date > calculation_date:
        return EligibilityVerdict(VerdictKind.NOT_DUE, "Depreciation start date not reached")
    if asset.monthly_depreciation is None or asset.monthly_depreciation <= 0:
        return EligibilityVerdict(
            VerdictKind.MISCONFIGURED, "Monthly depreciation rate is not positive"
        )
    if (
        asset.last_depreciation_date is not None
        and months_between(asset.last_depreciation_date, calculation_date) < 1
    ):
        return EligibilityVerdict(
            VerdictKind.NOT_DUE,
            f"Already depreciated for period {calculation_date:%Y-%m}",
        )
    return _ELIGIBLE


class EligibilityFilter:
    """Database side of the eligibility rules."""

    def __init__(self, session: Session):
        self._session = session

    def candidates(
        self,
        business_unit_id: UUID,
        category_filter: CategoryFilter = ALL_CATEGORIES,
    ) -> list[AssetModel]:
        stmt = (
            select(AssetModel)
            .where(AssetModel.business_unit_id == business_unit_id)
            .where(AssetModel.is_active.is_(True))
            .where(AssetModel.status.in_([s.value for s in DEPRECIABLE_STATUSES]))
            .where(AssetModel.is_fully_depreciated.is_(False))
            .where(AssetModel.depreciation_method.is_not(None))
        )
        if category_filter.include:
            stmt = stmt.where(AssetModel.category_id.in_(category_filter.include))
        if category_filter.exclude:
            stmt = stmt.where(AssetModel.category_id.not_in(category_filter.exclude))
        return list(self._session.scalars(stmt.order_by(AssetModel.item_code)))

    def select(
        self,
        business_unit_id: UUID,
        calculation_date: date,
        category_filter: CategoryFilter = ALL_CATEGORIES,
    ) -> list[Asset]:
        """Assets that would be depreciated on ``calculation_date``."""
        eligible = [
            dto
            for dto in (model.to_dto() for model in self.candidates(business_unit_id, category_filter))
            if evaluate_eligibility(dto, calculation_date).eligible
        ]
        logger.debug(
            "eligibility_evaluated",
            extra={
                "business_unit_id": str(business_unit_id),
                "calculation_date": calculation_date,
                "eligible_count": len(eligible),
            },
        )
        return eligible
