"""
asset_batch.models -- ORM models for depreciation schedules and executions.

Architecture: asset_batch/models. Imports from asset_kernel.db.base only.
"""

from asset_batch.models.batch import (
    ScheduleConfigModel,
    ScheduleExecutionAssetModel,
    ScheduleExecutionModel,
)

__all__ = [
    "ScheduleConfigModel",
    "ScheduleExecutionAssetModel",
    "ScheduleExecutionModel",
]
