"""
Audit Ledger (``asset_modules.assets.history``).

Responsibility
--------------
Append-only sink for every state change in the asset core: creation,
field updates, status and location changes, depreciation runs, retirement
and disposal.  Also the read side consumed by reporting collaborators.

Invariants enforced
-------------------
* Rows are written once; ``db/immutability.py`` rejects UPDATE/DELETE.
* ``sequence`` comes from the locked ``asset_history`` counter, so history
  order is total even when timestamps collide.
* Writes join the caller's transaction; the ledger never commits.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from asset_kernel.domain.clock import Clock, SystemClock
from asset_kernel.logging_config import get_logger
from asset_kernel.services.sequence_service import SequenceService
from asset_modules.assets.models import (
    AssetHistoryEntry,
    AssetStatus,
    DepreciationLedgerEntry,
    HistoryAction,
)
from asset_modules.assets.orm import AssetHistoryModel, DepreciationLedgerEntryModel

logger = get_logger("modules.assets.history")

HISTORY_SEQUENCE = "asset_history"


class AuditLedger:
    """Append and read asset history."""

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequences = SequenceService(session)

    def record(
        self,
        asset_id: UUID,
        action: HistoryAction,
        actor_id: UUID,
        *,
        previous_status: AssetStatus | None = None,
        new_status: AssetStatus | None = None,
        previous_location: str | None = None,
        new_location: str | None = None,
        previous_book_value: Decimal | None = None,
        new_book_value: Decimal | None = None,
        depreciation_amount: Decimal | None = None,
        notes: str | None = None,
    ) -> AssetHistoryModel:
        entry = AssetHistoryModel(
            asset_id=asset_id,
            action=action.value,
            previous_status=previous_status.value if previous_status else None,
            new_status=new_status.value if new_status else None,
            previous_location=previous_location,
            new_location=new_location,
            previous_book_value=previous_book_value,
            new_book_value=new_book_value,
            depreciation_amount=depreciation_amount,
            notes=notes,
            performed_by_id=actor_id,
            performed_at=self._clock.now(),
            sequence=self._sequences.next_value(HISTORY_SEQUENCE),
            created_by_id=actor_id,
        )
        self._session.add(entry)
        logger.debug(
            "asset_history_recorded",
            extra={"asset_id": str(asset_id), "action": action.value, "sequence": entry.sequence},
        )
        return entry

    def history_for(self, asset_id: UUID) -> list[AssetHistoryEntry]:
        rows = self._session.scalars(
            select(AssetHistoryModel)
            .where(AssetHistoryModel.asset_id == asset_id)
            .order_by(AssetHistoryModel.sequence)
        )
        return [row.to_dto() for row in rows]

    def depreciation_entries_for(self, asset_id: UUID) -> list[DepreciationLedgerEntry]:
        rows = self._session.scalars(
            select(DepreciationLedgerEntryModel)
            .where(DepreciationLedgerEntryModel.asset_id == asset_id)
            .order_by(DepreciationLedgerEntryModel.period_start)
        )
        return [row.to_dto() for row in rows]
