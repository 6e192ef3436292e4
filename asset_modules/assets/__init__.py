"""
Assets Module (``asset_modules.assets``).

Responsibility
--------------
Capital-asset lifecycle: acquisition with item-code allocation, periodic
depreciation (straight-line, declining-balance, sum-of-years'-digits,
units-of-production), deployment bookkeeping, retirement and disposal.

Architecture position
---------------------
**Modules layer** -- models, ORM, workflow, config, and service facades
(``AssetRegistryService``, ``RetirementProcessor``) that delegate
calculations to pure helpers and persistence to ``asset_kernel``.

Failure modes
-------------
* Service methods return ``ActionResult`` carrying ``error`` and
  ``error_code``; they do not raise domain errors.
* Helpers raise ``DepreciationParameterError`` for inconsistent inputs.
"""

from asset_modules.assets.config import AssetConfig
from asset_modules.assets.eligibility import CategoryFilter, EligibilityFilter
from asset_modules.assets.history import AuditLedger
from asset_modules.assets.models import (
    Asset,
    AssetCategory,
    AssetInput,
    AssetStatus,
    AssetUpdate,
    DepreciationMethod,
    DisposeAssetsRequest,
    RetirableAssetFilters,
    RetireAssetsRequest,
)
from asset_modules.assets.retirement import RetirementProcessor
from asset_modules.assets.service import AssetRegistryService
from asset_modules.assets.workflows import ASSET_LIFECYCLE

__all__ = [
    "Asset",
    "AssetCategory",
    "AssetInput",
    "AssetUpdate",
    "AssetStatus",
    "DepreciationMethod",
    "RetireAssetsRequest",
    "DisposeAssetsRequest",
    "RetirableAssetFilters",
    "CategoryFilter",
    "EligibilityFilter",
    "AuditLedger",
    "AssetRegistryService",
    "RetirementProcessor",
    "ASSET_LIFECYCLE",
    "AssetConfig",
]
