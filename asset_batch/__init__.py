"""
asset_batch -- Scheduled and on-demand depreciation runs.

Provides the depreciation run executor with per-asset SAVEPOINT isolation,
execution tracking, schedule configurations (monthly, quarterly, annual),
the always-on end-of-month run and the trigger authorization used by the
CLI.

Architecture:
    asset_batch/ is a top-level package.  Nothing in asset_kernel/ or
    asset_modules/ imports from asset_batch (except the ORM registry,
    which only loads its tables).

Invariants:
    - One SAVEPOINT per asset; a failure rolls back that asset only.
    - All dates come from the injected Clock.
    - Cadence evaluation is pure.
    - Re-running a date is a no-op for assets already processed.
"""
