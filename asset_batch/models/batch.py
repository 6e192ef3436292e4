"""
ORM models for depreciation schedule persistence.

Contract:
    ScheduleConfigModel, ScheduleExecutionModel and
    ScheduleExecutionAssetModel persist schedule configurations, run
    records and per-asset run details.  Configs and executions have
    ``to_dto()`` methods.

Architecture: asset_batch/models. Imports from asset_kernel.db.base only.

Invariants enforced:
    - Category id sets are stored as JSON arrays of UUID strings.
    - ``execution_day`` is 1-31 (CHECK constraint).
    - One execution per (schedule, execution_date) for scheduled runs.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from asset_kernel.db.base import TrackedBase, UUIDString

if TYPE_CHECKING:
    from asset_batch.domain.types import ScheduleConfig, ScheduleExecution


def ids_to_json(ids) -> list[str]:
    return sorted(str(i) for i in ids)


def _ids_from_json(raw) -> frozenset[UUID]:
    return frozenset(UUID(i) for i in (raw or ()))


class ScheduleConfigModel(TrackedBase):
    """Configured recurring depreciation schedule."""

    __tablename__ = "batch_depreciation_schedules"

    __table_args__ = (
        Index("ix_batch_depreciation_schedules_active", "is_active"),
        Index("ix_batch_depreciation_schedules_business_unit", "business_unit_id"),
        CheckConstraint(
            "execution_day BETWEEN 1 AND 31",
            name="ck_batch_depreciation_schedules_execution_day",
        ),
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    schedule_type: Mapped[str] = mapped_column(String(20), nullable=False)
    execution_day: Mapped[int] = mapped_column(Integer, default=30, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    include_category_ids: Mapped[list | None] = mapped_column(JSON, nullable=True)
    exclude_category_ids: Mapped[list | None] = mapped_column(JSON, nullable=True)
    business_unit_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("assets_business_units.id"),
        nullable=False,
    )

    def to_dto(self) -> ScheduleConfig:
        from asset_batch.domain.types import ScheduleConfig, ScheduleType

        return ScheduleConfig(
            schedule_id=self.id,
            name=self.name,
            schedule_type=ScheduleType(self.schedule_type),
            business_unit_id=self.business_unit_id,
            execution_day=self.execution_day,
            is_active=self.is_active,
            description=self.description,
            include_category_ids=_ids_from_json(self.include_category_ids),
            exclude_category_ids=_ids_from_json(self.exclude_category_ids),
            created_by=self.created_by_id,
            created_at=self.created_at,
        )


class ScheduleExecutionModel(TrackedBase):
    """One depreciation run, scheduled or ad hoc."""

    __tablename__ = "batch_depreciation_executions"

    __table_args__ = (
        Index("ix_batch_depreciation_executions_business_unit", "business_unit_id"),
        Index("ix_batch_depreciation_executions_status", "status"),
        UniqueConstraint(
            "schedule_id", "execution_date",
            name="uq_batch_depreciation_executions_schedule_date",
        ),
    )

    schedule_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("batch_depreciation_schedules.id"),
        nullable=True,
    )
    business_unit_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("assets_business_units.id"),
        nullable=False,
    )
    execution_date: Mapped[date] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    total_assets_processed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    successful_calculations: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed_calculations: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    skipped_calculations: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_depreciation_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    execution_duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    assets: Mapped[list["ScheduleExecutionAssetModel"]] = relationship(
        "ScheduleExecutionAssetModel",
        back_populates="execution",
        foreign_keys="ScheduleExecutionAssetModel.execution_id",
    )

    def to_dto(self) -> ScheduleExecution:
        from asset_batch.domain.types import ExecutionStatus, ScheduleExecution

        return ScheduleExecution(
            execution_id=self.id,
            business_unit_id=self.business_unit_id,
            execution_date=self.execution_date,
            status=ExecutionStatus(self.status),
            schedule_id=self.schedule_id,
            total_assets_processed=self.total_assets_processed,
            successful_calculations=self.successful_calculations,
            failed_calculations=self.failed_calculations,
            skipped_calculations=self.skipped_calculations,
            total_depreciation_amount=self.total_depreciation_amount,
            execution_duration_ms=self.execution_duration_ms,
            error_message=self.error_message,
            started_at=self.started_at,
            completed_at=self.completed_at,
        )


class ScheduleExecutionAssetModel(TrackedBase):
    """Per-asset detail within a run."""

    __tablename__ = "batch_depreciation_execution_assets"

    __table_args__ = (
        Index("ix_batch_depreciation_execution_assets_execution", "execution_id", "status"),
        Index("ix_batch_depreciation_execution_assets_asset", "asset_id"),
    )

    execution_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("batch_depreciation_executions.id", ondelete="CASCADE"),
        nullable=False,
    )
    asset_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("assets_assets.id"),
        nullable=False,
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    depreciation_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    book_value_before: Mapped[Decimal | None] = mapped_column(nullable=True)
    book_value_after: Mapped[Decimal | None] = mapped_column(nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    execution: Mapped["ScheduleExecutionModel"] = relationship(
        "ScheduleExecutionModel",
        back_populates="assets",
        foreign_keys=[execution_id],
    )
