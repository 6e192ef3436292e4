"""
Retirement & Disposal Processor (``asset_modules.assets.retirement``).

Responsibility
--------------
Batch retirement of assets (close deployments, clear assignment, record
the retirement) and the follow-on disposal of retired assets with
gain/loss accounting.  Also lists assets that can still be retired.

Architecture position
---------------------
**Modules layer** -- service facade.  Lifecycle legality comes from
``workflows.ASSET_LIFECYCLE``; writes go through one ``UnitOfWork``
transaction per request.

Invariants enforced
-------------------
* A request is validated as a whole before anything is written; a single
  bad asset rejects the batch.
* An asset has at most one retirement and one disposal.
* Side effects of a transition (closing deployments, clearing the
  assignment) are taken from the workflow, not hard-coded per caller.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from asset_kernel.db.types import ZERO, round_money
from asset_kernel.db.unit_of_work import UnitOfWork
from asset_kernel.domain.clock import Clock, SystemClock
from asset_kernel.domain.results import ActionResult
from asset_kernel.exceptions import (
    AssetAlreadyRetiredError,
    AssetKernelError,
    AssetNotFoundError,
    ReplacementAssetNotFoundError,
    TransientError,
    ValidationError,
)
from asset_kernel.logging_config import get_logger
from asset_modules.assets.config import AssetConfig
from asset_modules.assets.history import AuditLedger
from asset_modules.assets.models import (
    AssetStatus,
    CategoryCount,
    DeploymentStatus,
    DisposeAssetsRequest,
    HistoryAction,
    RetirableAssetFilters,
    RetirableAssetsPage,
    RetireAssetsRequest,
)
from asset_modules.assets.orm import (
    AssetCategoryModel,
    AssetDeploymentModel,
    AssetDisposalModel,
    AssetModel,
    AssetRetirementModel,
)
from asset_modules.assets.workflows import SideEffect, require_transition

logger = get_logger("modules.assets.retirement")


class RetirementProcessor:
    """Retire and dispose assets in validated batches."""

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

    # =========================================================================
    # Shared
    # =========================================================================

    def _lock_assets(self, asset_ids: tuple[UUID, ...], business_unit_id: UUID) -> list[AssetModel]:
        if not asset_ids:
            raise ValidationError("At least one asset is required", field="asset_ids")
        unique_ids = list(dict.fromkeys(asset_ids))
        assets = list(self._session.scalars(
            select(AssetModel)
            .where(AssetModel.id.in_(unique_ids))
            .where(AssetModel.business_unit_id == business_unit_id)
            .order_by(AssetModel.item_code)
            .with_for_update()
        ))
        found = {a.id for a in assets}
        missing = [asset_id for asset_id in unique_ids if asset_id not in found]
        if missing:
            raise AssetNotFoundError(
                missing[0],
                message=f"{len(missing)} asset(s) not found in this business unit",
            )
        return assets

    def _run(self, operation: str, body) -> ActionResult:
        try:
            with self._uow.atomic(operation):
                result = body()
            self._uow.commit(operation)
            return result
        except IntegrityError as exc:
            self._session.rollback()
            return self._fail(operation, TransientError(str(exc.orig), operation=operation))
        except AssetKernelError as exc:
            self._session.rollback()
            return self._fail(operation, exc)
        except SQLAlchemyError as exc:
            self._session.rollback()
            return self._fail(operation, TransientError(str(exc), operation=operation))
        except Exception:
            self._session.rollback()
            raise

    def _fail(self, operation: str, exc: AssetKernelError) -> ActionResult:
        logger.warning(
            f"{operation}_failed",
            extra={"error_code": exc.code, "error": exc.message},
        )
        return ActionResult.fail(exc)

    # =========================================================================
    # Retirement
    # =========================================================================

    def retire_assets(
        self,
        request: RetireAssetsRequest,
        business_unit_id: UUID,
        actor_id: UUID,
    ) -> ActionResult:
        """
        Retire every asset in ``request`` or none of them.

        Returns:
            ``ActionResult`` whose ``data["deployed_assets_returned"]`` is
            the number of assets that had an open deployment closed.
        """
        logger.info("asset_retirement_started", extra={
            "business_unit_id": str(business_unit_id),
            "asset_count": len(request.asset_ids),
            "reason": request.reason.value,
        })
        return self._run(
            "retire_assets",
            lambda: self._retire(request, business_unit_id, actor_id),
        )

    def _retire(
        self,
        request: RetireAssetsRequest,
        business_unit_id: UUID,
        actor_id: UUID,
    ) -> ActionResult:
        assets = self._lock_assets(request.asset_ids, business_unit_id)

        already_retired = set(self._session.scalars(
            select(AssetRetirementModel.asset_id)
            .where(AssetRetirementModel.asset_id.in_([a.id for a in assets]))
        ))
        retired_codes = [
            a.item_code for a in assets
            if a.id in already_retired or AssetStatus(a.status) in (AssetStatus.RETIRED, AssetStatus.DISPOSED)
        ]
        if retired_codes:
            raise AssetAlreadyRetiredError(retired_codes)

        decisions = {
            a.id: require_transition(AssetStatus(a.status), AssetStatus.RETIRED, a.id)
            for a in assets
        }
        not_retirable = [
            a.item_code for a in assets
            if AssetStatus(a.status) not in self._config.retirable_statuses
        ]
        if not_retirable:
            raise ValidationError(
                f"Assets {', '.join(not_retirable)} cannot be retired from their current status",
                field="asset_ids",
            )

        replacement = None
        if request.replacement_asset_id is not None:
            replacement = self._session.get(AssetModel, request.replacement_asset_id)
            if (
                replacement is None
                or replacement.business_unit_id != business_unit_id
                or replacement.status != AssetStatus.AVAILABLE.value
                or replacement.id in decisions
            ):
                raise ReplacementAssetNotFoundError(request.replacement_asset_id)

        if request.disposal_planned:
            if request.planned_disposal_date is None:
                raise ValidationError(
                    "Planned disposal date is required when disposal is planned",
                    field="planned_disposal_date",
                )
            if request.planned_disposal_date < request.retirement_date:
                raise ValidationError(
                    "Planned disposal date cannot be before the retirement date",
                    field="planned_disposal_date",
                )

        deployed_returned = 0
        for asset in assets:
            previous_status = AssetStatus(asset.status)
            effects = decisions[asset.id].side_effects

            if SideEffect.RECORD_RETIREMENT in effects:
                self._session.add(AssetRetirementModel(
                    asset_id=asset.id,
                    retirement_date=request.retirement_date,
                    reason=request.reason.value,
                    retirement_method=request.retirement_method.value,
                    condition=request.condition.value,
                    notes=request.notes,
                    replacement_asset_id=request.replacement_asset_id,
                    disposal_planned=request.disposal_planned,
                    planned_disposal_date=request.planned_disposal_date,
                    approved_by_id=request.approved_by_id,
                    created_by_id=actor_id,
                ))
            if SideEffect.CLOSE_DEPLOYMENT in effects:
                if self._close_deployments(asset, request, actor_id):
                    deployed_returned += 1
            if SideEffect.CLEAR_ASSIGNMENT in effects:
                asset.currently_assigned_to = None

            asset.status = AssetStatus.RETIRED.value
            asset.updated_by_id = actor_id

            notes = f"Asset retired. Reason: {request.reason.value}."
            if replacement is not None:
                notes += f" Replacement Asset: {replacement.item_code}"
            if request.notes:
                notes += f" Notes: {request.notes}"
            self._ledger.record(
                asset.id,
                HistoryAction.RETIRED,
                actor_id,
                previous_status=previous_status,
                new_status=AssetStatus.RETIRED,
                new_book_value=asset.current_book_value,
                notes=notes,
            )
            logger.info("asset_retired", extra={
                "asset_id": str(asset.id),
                "item_code": asset.item_code,
                "previous_status": previous_status.value,
            })

        self._session.flush()

        message = f"Successfully retired {len(assets)} assets."
        if deployed_returned:
            message += f" Note: {deployed_returned} deployed asset(s) were automatically returned."
        return ActionResult.ok(
            message,
            retired_count=len(assets),
            deployed_assets_returned=deployed_returned,
        )

    def _close_deployments(
        self,
        asset: AssetModel,
        request: RetireAssetsRequest,
        actor_id: UUID,
    ) -> bool:
        deployments = list(self._session.scalars(
            select(AssetDeploymentModel)
            .where(AssetDeploymentModel.asset_id == asset.id)
            .where(AssetDeploymentModel.status == DeploymentStatus.DEPLOYED.value)
            .where(AssetDeploymentModel.returned_date.is_(None))
        ))
        for deployment in deployments:
            deployment.returned_date = request.retirement_date
            deployment.status = DeploymentStatus.RETURNED.value
            deployment.return_notes = f"Asset retired. Reason: {request.reason.value}"
            deployment.updated_by_id = actor_id
        return bool(deployments)

    # =========================================================================
    # Disposal
    # =========================================================================

    def dispose_assets(
        self,
        request: DisposeAssetsRequest,
        business_unit_id: UUID,
        actor_id: UUID,
    ) -> ActionResult:
        """
        Dispose retired assets.

        The disposal value and cost are recorded per asset; gain/loss is the
        net disposal value less the book value at disposal.
        """
        logger.info("asset_disposal_started", extra={
            "business_unit_id": str(business_unit_id),
            "asset_count": len(request.asset_ids),
            "disposal_method": request.disposal_method.value,
        })
        return self._run(
            "dispose_assets",
            lambda: self._dispose(request, business_unit_id, actor_id),
        )

    def _dispose(
        self,
        request: DisposeAssetsRequest,
        business_unit_id: UUID,
        actor_id: UUID,
    ) -> ActionResult:
        if request.disposal_value < 0 or request.disposal_cost < 0:
            raise ValidationError(
                "Disposal value and cost cannot be negative", field="disposal_value"
            )

        assets = self._lock_assets(request.asset_ids, business_unit_id)
        for asset in assets:
            require_transition(AssetStatus(asset.status), AssetStatus.DISPOSED, asset.id)

        net = round_money(request.disposal_value - request.disposal_cost)
        total_gain_loss = ZERO
        for asset in assets:
            book_value = asset.current_book_value
            if book_value is None:
                book_value = (asset.purchase_price or ZERO) - (asset.accumulated_depreciation or ZERO)
            gain_loss = round_money(net - book_value)
            total_gain_loss += gain_loss

            self._session.add(AssetDisposalModel(
                asset_id=asset.id,
                disposal_date=request.disposal_date,
                disposal_method=request.disposal_method.value,
                disposal_reason=request.disposal_reason.value,
                disposal_value=request.disposal_value,
                disposal_cost=request.disposal_cost,
                net_disposal_value=net,
                book_value_at_disposal=book_value,
                gain_loss=gain_loss,
                recipient=request.recipient,
                notes=request.notes,
                approved_by_id=request.approved_by_id,
                created_by_id=actor_id,
            ))
            asset.status = AssetStatus.DISPOSED.value
            asset.is_active = False
            asset.updated_by_id = actor_id

            self._ledger.record(
                asset.id,
                HistoryAction.DISPOSED,
                actor_id,
                previous_status=AssetStatus.RETIRED,
                new_status=AssetStatus.DISPOSED,
                previous_book_value=book_value,
                notes=(
                    f"Asset disposed via {request.disposal_method.value}. "
                    f"Reason: {request.disposal_reason.value}. "
                    f"Book Value: {book_value}, Disposal Value: {request.disposal_value}, "
                    f"Gain/Loss: {gain_loss}"
                ),
            )
            logger.info("asset_disposed", extra={
                "asset_id": str(asset.id),
                "item_code": asset.item_code,
                "gain_loss": gain_loss,
            })

        self._session.flush()

        outcome = (
            f"gain of {total_gain_loss}" if total_gain_loss >= 0
            else f"loss of {abs(total_gain_loss)}"
        )
        return ActionResult.ok(
            f"Successfully disposed {len(assets)} assets with a {outcome}",
            disposed_count=len(assets),
            total_gain_loss=total_gain_loss,
        )

    # =========================================================================
    # Listing
    # =========================================================================

    def get_retirable_assets(self, filters: RetirableAssetFilters) -> RetirableAssetsPage:
        """
        Page through assets that can still be retired.

        Fully depreciated assets are listed first, then by item code.
        Category counts ignore the search and category filters so they can
        drive a filter menu.
        """
        if filters.page < 1 or filters.limit < 1:
            raise ValidationError("page and limit must be positive", field="page")

        statuses = [s.value for s in self._config.retirable_statuses]
        base = (
            select(AssetModel)
            .where(AssetModel.business_unit_id == filters.business_unit_id)
            .where(AssetModel.status.in_(statuses))
        )
        if filters.category_id is not None:
            base = base.where(AssetModel.category_id == filters.category_id)
        if filters.search:
            pattern = f"%{filters.search.lower()}%"
            base = base.where(or_(
                func.lower(AssetModel.item_code).like(pattern),
                func.lower(AssetModel.description).like(pattern),
                func.lower(AssetModel.serial_number).like(pattern),
                func.lower(AssetModel.brand).like(pattern),
            ))

        total = self._session.scalar(select(func.count()).select_from(base.subquery())) or 0
        rows = self._session.scalars(
            base.order_by(AssetModel.is_fully_depreciated.desc(), AssetModel.item_code)
            .offset((filters.page - 1) * filters.limit)
            .limit(filters.limit)
        )

        counts = self._session.execute(
            select(AssetCategoryModel.id, AssetCategoryModel.name, func.count(AssetModel.id))
            .join(AssetModel, AssetModel.category_id == AssetCategoryModel.id)
            .where(AssetModel.business_unit_id == filters.business_unit_id)
            .where(AssetModel.status.in_(statuses))
            .group_by(AssetCategoryModel.id, AssetCategoryModel.name)
            .order_by(AssetCategoryModel.name)
        )

        return RetirableAssetsPage(
            assets=tuple(row.to_dto() for row in rows),
            total_count=total,
            categories=tuple(CategoryCount(id=cid, name=name, count=n) for cid, name, n in counts),
        )
