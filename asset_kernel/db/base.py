"""
Module: asset_kernel.db.base
Responsibility: Declarative base classes for every ORM model in the asset
    engine.  Provides the UUID primary key convention, the type annotation
    map for consistent column types, and the TrackedBase audit mixin.
Architecture position: Kernel > DB.  Lowest-level import target; MUST NOT
    import from services, modules, or batch packages.

Invariants enforced:
    - UUID primary keys generated with uuid4, stored as String(36) so the
      schema runs unchanged on PostgreSQL and SQLite.
    - Decimal maps to Numeric(38, 9).  Monetary amounts are never floats.
    - TrackedBase records who created and last modified each row.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """UUID stored as its 36-character string form."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return None

    def process_result_value(self, value, dialect):
        if value is not None:
            return PyUUID(value)
        return None


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Guarantees:
        - id is a uuid4-generated UUID.
        - Decimal -> Numeric(38, 9); datetime -> DateTime(timezone=True);
          int -> BigInteger.
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


class TrackedBase(Base):
    """
    Abstract base with audit timestamps and actor tracking.

    created_at/updated_at are server-side timestamps; updated_by_id is
    nullable because it is unset until the first modification.  These
    columns are audit metadata and are not covered by the append-only
    listeners in ``db/immutability.py``.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    created_by_id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    updated_by_id: Mapped[PyUUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )


UUID = PyUUID
