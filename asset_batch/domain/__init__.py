"""
asset_batch.domain -- Pure types and cadence rules for depreciation runs.

ZERO I/O.  All types are frozen dataclasses.
"""

from asset_batch.domain.types import (
    BusinessUnitRunOutcome,
    DepreciationDetail,
    DepreciationPreview,
    DetailStatus,
    EndOfMonthRunReport,
    ExecutionStatus,
    ManualDepreciationFilters,
    ScheduleConfig,
    ScheduleExecution,
    ScheduleRunOutcome,
    ScheduleType,
    ScheduledDepreciationResult,
)

__all__ = [
    "BusinessUnitRunOutcome",
    "DepreciationDetail",
    "DepreciationPreview",
    "DetailStatus",
    "EndOfMonthRunReport",
    "ExecutionStatus",
    "ManualDepreciationFilters",
    "ScheduleConfig",
    "ScheduleExecution",
    "ScheduleRunOutcome",
    "ScheduleType",
    "ScheduledDepreciationResult",
]
