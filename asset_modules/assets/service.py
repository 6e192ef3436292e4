"""
Asset Registry Service (``asset_modules.assets.service``).

Responsibility
--------------
Creates and updates assets: validates input, allocates item codes,
derives depreciation parameters through the pure helpers, opens the
initial deployment for pre-assigned assets, and records history.

Architecture position
---------------------
**Modules layer** -- service facade.  Composes ``helpers`` (pure),
``workflows`` (pure), ``AuditLedger`` and the kernel ``UnitOfWork``.

Invariants enforced
-------------------
* Each public method owns the transaction boundary: commit on success,
  rollback on failure.
* Item codes are unique; generated codes come from a locked counter per
  category prefix.
* A purchase price requires a depreciation method, and a method requires
  the inputs it needs (see ``compute_depreciation_parameters``).
* Status changes go through the lifecycle workflow; RETIRED and DISPOSED
  are only reachable through ``RetirementProcessor``.

Failure modes
-------------
* Domain errors  -> ``ActionResult`` with ``error`` and ``error_code``;
  session rolled back.
* Storage errors  -> ``TransientError`` in the ``ActionResult``.
* Unexpected exception  -> session rolled back, exception re-raised.

Usage::

    registry = AssetRegistryService(session, clock)
    result = registry.create_asset(
        AssetInput(description="Dell Latitude", category_id=laptops.id,
                   purchase_price=Decimal("1500.00"), ...),
        business_unit_id=bu.id, actor_id=actor_id,
    )
    asset_id = result.data["asset_id"]
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from asset_kernel.db.unit_of_work import UnitOfWork
from asset_kernel.domain.clock import Clock, SystemClock
from asset_kernel.domain.periods import last_day_of_month
from asset_kernel.domain.results import ActionResult
from asset_kernel.exceptions import (
    AssetKernelError,
    AssetNotFoundError,
    BusinessUnitNotFoundError,
    CategoryNotFoundError,
    DuplicateItemCodeError,
    StateError,
    TransientError,
    ValidationError,
)
from asset_kernel.logging_config import get_logger
from asset_kernel.services.sequence_service import SequenceService
from asset_modules.assets.config import AssetConfig
from asset_modules.assets.helpers import compute_depreciation_parameters
from asset_modules.assets.history import AuditLedger
from asset_modules.assets.models import (
    Asset,
    AssetInput,
    AssetStatus,
    AssetUpdate,
    DeploymentStatus,
    DepreciationMethod,
    HistoryAction,
)
from asset_modules.assets.orm import (
    AssetCategoryModel,
    AssetDeploymentModel,
    AssetModel,
    BusinessUnitModel,
)
from asset_modules.assets.workflows import require_transition

logger = get_logger("modules.assets.service")

_TERMINAL = (AssetStatus.RETIRED, AssetStatus.DISPOSED)


def _validate_depreciation_inputs(
    method: DepreciationMethod | None,
    purchase_price: Decimal | None,
) -> None:
    if method is None and purchase_price is not None:
        raise ValidationError(
            "Depreciation method is required when a purchase price is set",
            field="depreciation_method",
        )


def _integrity_failure(exc: IntegrityError, item_code: str | None) -> AssetKernelError:
    """Only the item-code unique constraint means a duplicate code."""
    detail = str(exc.orig)
    if "uq_assets_assets_item_code" in detail or "assets_assets.item_code" in detail:
        return DuplicateItemCodeError(item_code or "")
    return TransientError(detail, operation="create_asset")


class AssetRegistryService:
    """
    Owns Asset creation and mutation outside depreciation and retirement.

    Contract
    --------
    * ``create_asset`` / ``update_asset`` return ``ActionResult``; they never
      raise ``AssetKernelError`` at the caller.
    * ``get_asset`` and ``generate_item_code`` are read-only.
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
        self._sequences = SequenceService(session)

    # =========================================================================
    # Lookups
    # =========================================================================

    def _business_unit(self, business_unit_id: UUID) -> BusinessUnitModel:
        unit = self._session.get(BusinessUnitModel, business_unit_id)
        if unit is None:
            raise BusinessUnitNotFoundError(business_unit_id)
        return unit

    def _category(self, category_id: UUID, business_unit_id: UUID) -> AssetCategoryModel:
        category = self._session.get(AssetCategoryModel, category_id)
        if category is None or category.business_unit_id != business_unit_id:
            raise CategoryNotFoundError(category_id)
        return category

    def _asset_in_unit(self, asset_id: UUID, business_unit_id: UUID) -> AssetModel:
        asset = self._session.execute(
            select(AssetModel)
            .where(AssetModel.id == asset_id)
            .where(AssetModel.business_unit_id == business_unit_id)
            .with_for_update()
        ).scalar_one_or_none()
        if asset is None:
            raise AssetNotFoundError(asset_id)
        return asset

    def get_asset(self, asset_id: UUID, business_unit_id: UUID) -> Asset:
        """Raises AssetNotFoundError when absent or outside the business unit."""
        asset = self._session.execute(
            select(AssetModel)
            .where(AssetModel.id == asset_id)
            .where(AssetModel.business_unit_id == business_unit_id)
        ).scalar_one_or_none()
        if asset is None:
            raise AssetNotFoundError(asset_id)
        return asset.to_dto()

    # =========================================================================
    # Item codes
    # =========================================================================

    def _highest_code_in_use(self, prefix: str) -> int:
        codes = self._session.scalars(
            select(AssetModel.item_code).where(AssetModel.item_code.like(f"{prefix}%"))
        )
        highest = 0
        for code in codes:
            suffix = code[len(prefix):]
            if suffix.isdigit():
                highest = max(highest, int(suffix))
        return highest

    def _format_code(self, prefix: str, number: int) -> str:
        return f"{prefix}{number:0{self._config.item_code_width}d}"

    def generate_item_code(self, category_id: UUID) -> str:
        """
        Preview the next item code for a category without reserving it.

        Raises:
            CategoryNotFoundError: Unknown category.
        """
        category = self._session.get(AssetCategoryModel, category_id)
        if category is None:
            raise CategoryNotFoundError(category_id)
        current = self._sequences.current_value(f"item_code:{category.code}")
        if current is None:
            current = self._highest_code_in_use(category.code)
        return self._format_code(category.code, current + 1)

    def _allocate_item_code(self, category: AssetCategoryModel) -> str:
        number = self._sequences.next_value(
            f"item_code:{category.code}",
            seed=lambda: self._highest_code_in_use(category.code),
        )
        return self._format_code(category.code, number)

    def _ensure_unique_code(self, item_code: str) -> None:
        exists = self._session.scalar(
            select(AssetModel.id).where(AssetModel.item_code == item_code)
        )
        if exists is not None:
            raise DuplicateItemCodeError(item_code)

    # =========================================================================
    # Create
    # =========================================================================

    def create_asset(
        self,
        data: AssetInput,
        business_unit_id: UUID,
        actor_id: UUID,
    ) -> ActionResult:
        """
        Validate and persist a new asset.

        Returns:
            ``ActionResult.data`` holds ``asset_id`` and ``item_code``.
        """
        item_code = data.item_code
        try:
            logger.info("asset_create_started", extra={
                "business_unit_id": str(business_unit_id),
                "category_id": str(data.category_id),
                "item_code": item_code,
            })
            with self._uow.atomic("create_asset"):
                asset = self._build_asset(data, business_unit_id, actor_id)
                item_code = asset.item_code
                self._session.add(asset)
                self._session.flush()

                if asset.currently_assigned_to is not None:
                    self._session.add(AssetDeploymentModel(
                        asset_id=asset.id,
                        employee_id=asset.currently_assigned_to,
                        business_unit_id=business_unit_id,
                        deployed_date=data.purchase_date or self._clock.today(),
                        status=DeploymentStatus.DEPLOYED.value,
                        created_by_id=actor_id,
                    ))

                self._ledger.record(
                    asset.id,
                    HistoryAction.CREATED,
                    actor_id,
                    new_status=AssetStatus(asset.status),
                    new_location=asset.location,
                    new_book_value=asset.current_book_value,
                    notes=f"Asset {asset.item_code} created",
                )
            self._uow.commit("create_asset")

        except IntegrityError as exc:
            self._session.rollback()
            return self._fail("asset_create_failed", _integrity_failure(exc, item_code))
        except AssetKernelError as exc:
            self._session.rollback()
            return self._fail("asset_create_failed", exc)
        except SQLAlchemyError as exc:
            self._session.rollback()
            return self._fail("asset_create_failed", TransientError(str(exc), operation="create_asset"))
        except Exception:
            self._session.rollback()
            raise

        logger.info("asset_created", extra={
            "asset_id": str(asset.id),
            "item_code": asset.item_code,
            "depreciation_method": asset.depreciation_method,
            "monthly_depreciation": asset.monthly_depreciation,
        })
        return ActionResult.ok(
            "Asset created successfully", asset_id=asset.id, item_code=asset.item_code,
        )

    def _build_asset(self, data: AssetInput, business_unit_id: UUID, actor_id: UUID) -> AssetModel:
        self._business_unit(business_unit_id)
        category = self._category(data.category_id, business_unit_id)

        if not data.description or not data.description.strip():
            raise ValidationError("Description is required", field="description")
        if data.quantity < 1:
            raise ValidationError("Quantity must be at least 1", field="quantity")

        if data.item_code:
            self._ensure_unique_code(data.item_code)
            item_code = data.item_code
        else:
            item_code = self._allocate_item_code(category)

        _validate_depreciation_inputs(data.depreciation_method, data.purchase_price)

        asset = AssetModel(
            item_code=item_code,
            description=data.description.strip(),
            category_id=category.id,
            business_unit_id=business_unit_id,
            department_id=data.department_id,
            quantity=data.quantity,
            location=data.location,
            notes=data.notes,
            serial_number=data.serial_number,
            brand=data.brand,
            status=(AssetStatus.DEPLOYED if data.currently_assigned_to else AssetStatus.AVAILABLE).value,
            is_active=True,
            currently_assigned_to=data.currently_assigned_to,
            purchase_date=data.purchase_date,
            purchase_price=data.purchase_price,
            salvage_value=data.salvage_value or Decimal("0"),
            useful_life_years=data.useful_life_years,
            useful_life_months=data.useful_life_months or 0,
            accumulated_depreciation=Decimal("0"),
            current_book_value=data.purchase_price,
            is_fully_depreciated=False,
            asset_account_code=data.asset_account_code or category.asset_account_code,
            depreciation_expense_account_code=(
                data.depreciation_expense_account_code or category.depreciation_expense_account_code
            ),
            accumulated_depreciation_account_code=(
                data.accumulated_depreciation_account_code
                or category.accumulated_depreciation_account_code
            ),
            created_by_id=actor_id,
        )

        if data.depreciation_method is not None:
            start = data.depreciation_start_date or data.purchase_date
            if start is None:
                raise ValidationError(
                    "Depreciation start date or purchase date is required",
                    field="depreciation_start_date",
                )
            params = compute_depreciation_parameters(
                data.depreciation_method,
                data.purchase_price,
                data.salvage_value,
                data.useful_life_years,
                data.useful_life_months,
                data.declining_balance_rate,
                data.total_expected_units,
            )
            asset.depreciation_method = data.depreciation_method.value
            asset.depreciation_start_date = start
            asset.monthly_depreciation = params.monthly_depreciation
            asset.declining_balance_rate = data.declining_balance_rate
            asset.total_expected_units = data.total_expected_units
            asset.depreciation_per_unit = params.depreciation_per_unit
            asset.is_fully_depreciated = asset.current_book_value <= asset.salvage_value
            asset.next_depreciation_date = None if asset.is_fully_depreciated else last_day_of_month(start)

        return asset

    # =========================================================================
    # Update
    # =========================================================================

    def update_asset(
        self,
        asset_id: UUID,
        data: AssetUpdate,
        business_unit_id: UUID,
        actor_id: UUID,
    ) -> ActionResult:
        """
        Apply a partial update.

        Depreciation parameters are recomputed when method, price, salvage,
        life, rate or units change; book value becomes price minus
        accumulated depreciation.  Writes an UPDATED history entry, plus
        STATUS_CHANGED / LOCATION_CHANGED entries when those fields move.
        """
        try:
            logger.info("asset_update_started", extra={
                "asset_id": str(asset_id),
                "fields": sorted(data.changes),
            })
            with self._uow.atomic("update_asset"):
                asset = self._asset_in_unit(asset_id, business_unit_id)
                self._apply_update(asset, data, business_unit_id, actor_id)
            self._uow.commit("update_asset")

        except AssetKernelError as exc:
            self._session.rollback()
            return self._fail("asset_update_failed", exc)
        except SQLAlchemyError as exc:
            self._session.rollback()
            return self._fail("asset_update_failed", TransientError(str(exc), operation="update_asset"))
        except Exception:
            self._session.rollback()
            raise

        logger.info("asset_updated", extra={"asset_id": str(asset_id)})
        return ActionResult.ok("Asset updated successfully", asset_id=asset_id)

    def _apply_update(
        self,
        asset: AssetModel,
        data: AssetUpdate,
        business_unit_id: UUID,
        actor_id: UUID,
    ) -> None:
        changes = dict(data.changes)
        current_status = AssetStatus(asset.status)
        previous_location = asset.location

        if current_status in _TERMINAL and (data.touches_depreciation() or "status" in changes):
            raise StateError(
                f"Asset {asset.item_code} is {current_status.value}; "
                "its status and depreciation inputs are frozen"
            )

        new_status = changes.pop("status", None)
        if new_status is not None and new_status is not current_status:
            if new_status in _TERMINAL:
                raise StateError(
                    f"Status {new_status.value} is set by retirement or disposal, not by update"
                )
            require_transition(current_status, new_status, asset.id)
            asset.status = new_status.value
        else:
            new_status = None

        if "category_id" in changes:
            if changes["category_id"] is None:
                raise ValidationError("Category is required", field="category_id")
            self._category(changes["category_id"], business_unit_id)
        if "description" in changes and not (changes["description"] or "").strip():
            raise ValidationError("Description is required", field="description")
        if "quantity" in changes and (changes["quantity"] is None or changes["quantity"] < 1):
            raise ValidationError("Quantity must be at least 1", field="quantity")
        if "is_active" in changes and changes["is_active"] is None:
            raise ValidationError("is_active cannot be cleared", field="is_active")

        for name, value in changes.items():
            if name == "depreciation_method":
                asset.depreciation_method = value.value if value else None
            elif name == "salvage_value":
                asset.salvage_value = value if value is not None else Decimal("0")
            elif name == "useful_life_months":
                asset.useful_life_months = value or 0
            else:
                setattr(asset, name, value)

        if data.touches_depreciation() or "depreciation_start_date" in changes:
            self._recompute_depreciation(asset)

        asset.updated_by_id = actor_id
        self._session.flush()

        self._ledger.record(
            asset.id,
            HistoryAction.UPDATED,
            actor_id,
            notes="Updated fields: " + ", ".join(sorted(data.changes)),
        )
        if new_status is not None:
            self._ledger.record(
                asset.id,
                HistoryAction.STATUS_CHANGED,
                actor_id,
                previous_status=current_status,
                new_status=new_status,
            )
        if "location" in changes and changes["location"] != previous_location:
            self._ledger.record(
                asset.id,
                HistoryAction.LOCATION_CHANGED,
                actor_id,
                previous_location=previous_location,
                new_location=changes["location"],
            )

    def _recompute_depreciation(self, asset: AssetModel) -> None:
        method = DepreciationMethod(asset.depreciation_method) if asset.depreciation_method else None
        _validate_depreciation_inputs(method, asset.purchase_price)

        if method is None:
            asset.monthly_depreciation = None
            asset.depreciation_per_unit = None
            asset.next_depreciation_date = None
            return

        params = compute_depreciation_parameters(
            method,
            asset.purchase_price,
            asset.salvage_value,
            asset.useful_life_years,
            asset.useful_life_months,
            asset.declining_balance_rate,
            asset.total_expected_units,
        )
        if asset.depreciation_start_date is None:
            asset.depreciation_start_date = asset.purchase_date
        if asset.depreciation_start_date is None:
            raise ValidationError(
                "Depreciation start date or purchase date is required",
                field="depreciation_start_date",
            )
        asset.monthly_depreciation = params.monthly_depreciation
        asset.depreciation_per_unit = params.depreciation_per_unit
        asset.current_book_value = asset.purchase_price - (asset.accumulated_depreciation or Decimal("0"))
        asset.is_fully_depreciated = asset.current_book_value <= (asset.salvage_value or Decimal("0"))
        if asset.is_fully_depreciated:
            asset.next_depreciation_date = None
        elif asset.next_depreciation_date is None:
            anchor = asset.last_depreciation_date or asset.depreciation_start_date
            asset.next_depreciation_date = last_day_of_month(anchor)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _fail(self, event: str, exc: AssetKernelError) -> ActionResult:
        logger.warning(event, extra={"error_code": exc.code, "error": exc.message})
        return ActionResult.fail(exc)
