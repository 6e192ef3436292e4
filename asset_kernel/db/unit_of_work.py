"""
Module: asset_kernel.db.unit_of_work
Responsibility: Explicit transaction boundary shared by the depreciation
    scheduler, the retirement processor and the asset registry.
Architecture position: Kernel > DB.  Wraps a caller-owned Session.

Invariants enforced:
    - ``atomic()`` is all-or-nothing: every write inside the block is
      released together, or the savepoint is rolled back and nothing from
      the block survives.  Work done outside the block is untouched, which
      is what isolates one asset's failure from its siblings in a batch.
    - Storage failures surface as TransientError; IntegrityError is passed
      through unchanged so callers can map specific constraints to domain
      conflicts.
"""

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from asset_kernel.exceptions import TransientError
from asset_kernel.logging_config import get_logger

logger = get_logger("db.unit_of_work")


class UnitOfWork:
    """Transaction boundary around a Session."""

    def __init__(self, session: Session):
        self.session = session

    @contextmanager
    def atomic(self, operation: str = "unit_of_work") -> Iterator[Session]:
        """
        Run a block inside a SAVEPOINT.

        Raises:
            IntegrityError: A constraint was violated (savepoint rolled back).
            TransientError: Any other database failure (savepoint rolled back).
        """
        try:
            with self.session.begin_nested():
                yield self.session
        except IntegrityError:
            logger.debug("savepoint_rolled_back", extra={"operation": operation, "reason": "integrity"})
            raise
        except SQLAlchemyError as exc:
            logger.warning(
                "savepoint_storage_failure",
                extra={"operation": operation, "error": str(exc)},
            )
            raise TransientError(
                f"Storage failure during {operation}: {exc}", operation=operation
            ) from exc

    def commit(self, operation: str = "commit") -> None:
        try:
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error(
                "transaction_commit_failed",
                extra={"operation": operation, "error": str(exc)},
            )
            raise TransientError(
                f"Storage failure during {operation}: {exc}", operation=operation
            ) from exc

    def rollback(self) -> None:
        self.session.rollback()
