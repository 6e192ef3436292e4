"""
SequenceService -- monotonic sequence allocation via locked counter rows.

Responsibility:
    Hands out strictly increasing integers per named sequence.  Item codes
    are built from these (``LAP`` + ``007``), so two concurrent asset
    creations in the same category never receive the same number.

Invariants enforced:
    - The next value comes from a counter row read with
      ``SELECT ... FOR UPDATE``; never from an aggregate max()+1 over the
      assets table.
    - The increment is only visible once the caller's transaction commits.

Failure modes:
    - IntegrityError when two transactions create the same counter at
      once; handled by rolling back a savepoint and re-reading the row.
"""

from collections.abc import Callable

from sqlalchemy import BigInteger, String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from asset_kernel.db.base import Base
from asset_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """One row per named sequence holding its last allocated value."""

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


class SequenceService:
    """Allocate sequence values inside the caller's transaction."""

    def __init__(self, session: Session):
        self._session = session

    def _locked_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(
        self,
        sequence_name: str,
        seed: Callable[[], int] | None = None,
    ) -> int:
        """
        Return the next value for ``sequence_name``.

        Args:
            sequence_name: Counter key, e.g. ``"item_code:LAP"``.
            seed: Called once when the counter does not exist yet; returns
                the highest value already in use so that pre-existing data
                is not collided with.  Defaults to 0.
        """
        counter = self._locked_counter(sequence_name)

        if counter is None:
            start = seed() if seed is not None else 0
            try:
                with self._session.begin_nested():
                    counter = SequenceCounter(name=sequence_name, current_value=start + 1)
                    self._session.add(counter)
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": start + 1},
                )
                return start + 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                counter = self._locked_counter(sequence_name)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        return self._session.execute(
            select(SequenceCounter.current_value).where(
                SequenceCounter.name == sequence_name
            )
        ).scalar_one_or_none()
