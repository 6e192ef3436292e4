#!/usr/bin/env python3
"""
Trigger depreciation runs from cron or a shell.

Thin wrapper around ``asset_batch.cli``; see ``--help`` for subcommands.

Usage:
    DEPRECIATION_TRIGGER_SECRET=s3cret DATABASE_URL=sqlite:///assets.db \\
        python3 scripts/run_depreciation.py --token s3cret end-of-month
"""

from __future__ import annotations

import sys
from pathlib import Path

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from asset_batch.cli import main  # noqa: E402

if __name__ == "__main__":
    sys.exit(main())
