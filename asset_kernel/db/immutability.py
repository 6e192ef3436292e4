"""
ORM-level append-only enforcement for audit records.

Depreciation ledger entries and asset history rows are written once and
never changed.  SQLAlchemy fires ``before_update`` / ``before_delete``
mapper events before any SQL reaches the database; the listeners here raise
ImmutabilityViolationError and the flush aborts.

    session.flush()
         |
         v
    [before_update] --> _reject_update() --> ImmutabilityViolationError
    [before_delete] --> _reject_delete() --> ImmutabilityViolationError

Bulk ``UPDATE`` statements issued through ``session.execute(update(...))``
bypass mapper events and are not covered.

Call register_immutability_listeners() once at start-up, after the ORM
models are importable.  Registration is idempotent.
"""

from sqlalchemy import event

from asset_kernel.exceptions import ImmutabilityViolationError
from asset_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _entity_type(target) -> str:
    return getattr(target, "__audit_entity__", type(target).__name__)


def _reject_update(mapper, connection, target):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": _entity_type(target),
            "entity_id": str(target.id),
            "operation": "UPDATE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type=_entity_type(target),
        entity_id=str(target.id),
        reason="Append-only records cannot be modified",
    )


def _reject_delete(mapper, connection, target):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": _entity_type(target),
            "entity_id": str(target.id),
            "operation": "DELETE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type=_entity_type(target),
        entity_id=str(target.id),
        reason="Append-only records cannot be deleted",
    )


def _append_only_models():
    from asset_modules.assets.orm import AssetHistoryModel, DepreciationLedgerEntryModel

    return (DepreciationLedgerEntryModel, AssetHistoryModel)


def register_immutability_listeners() -> None:
    for model in _append_only_models():
        if not event.contains(model, "before_update", _reject_update):
            event.listen(model, "before_update", _reject_update)
        if not event.contains(model, "before_delete", _reject_delete):
            event.listen(model, "before_delete", _reject_delete)


def unregister_immutability_listeners() -> None:
    """Remove the listeners. Tests that deliberately corrupt data only."""
    for model in _append_only_models():
        if event.contains(model, "before_update", _reject_update):
            event.remove(model, "before_update", _reject_update)
        if event.contains(model, "before_delete", _reject_delete):
            event.remove(model, "before_delete", _reject_delete)
