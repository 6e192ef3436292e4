"""
Typed exception hierarchy for the asset lifecycle engine.

Every error has a typed class, a machine-readable ``code`` class attribute,
and structured attributes, so callers catch by type and report by code
instead of parsing message strings.

    AssetKernelError (base)
    |
    +-- ValidationError                 VALIDATION_ERROR
    |   +-- InvalidScheduleConfigError  INVALID_SCHEDULE_CONFIG
    |   +-- DepreciationParameterError  INVALID_DEPRECIATION_PARAMETERS
    |
    +-- NotFoundError                   NOT_FOUND
    |   +-- AssetNotFoundError
    |   +-- CategoryNotFoundError
    |   +-- BusinessUnitNotFoundError
    |   +-- ReplacementAssetNotFoundError
    |   +-- ScheduleNotFoundError
    |
    +-- ConflictError                   CONFLICT
    |   +-- DuplicateItemCodeError      DUPLICATE_ITEM_CODE
    |   +-- AssetAlreadyRetiredError    ASSET_ALREADY_RETIRED (also a StateError)
    |   +-- DepreciationPeriodConflictError  DEPRECIATION_PERIOD_CONFLICT
    |
    +-- StateError                      ILLEGAL_STATE
    |   +-- IllegalTransitionError      ILLEGAL_TRANSITION
    |
    +-- TransientError                  TRANSIENT
    +-- ImmutabilityViolationError      IMMUTABILITY_VIOLATION
    +-- UnauthorizedTriggerError        UNAUTHORIZED

Handling:
    - Batch runs catch everything per asset and record a FAILED detail.
    - Single-entity operations convert AssetKernelError into an
      ``ActionResult`` carrying ``error`` and ``error_code``.
    - UnauthorizedTriggerError is raised before any business logic runs.
"""

from collections.abc import Iterable


class AssetKernelError(Exception):
    """Base exception for all asset engine errors."""

    code: str = "ASSET_KERNEL_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


# =============================================================================
# Validation
# =============================================================================


class ValidationError(AssetKernelError):
    """Missing or invalid input."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class InvalidScheduleConfigError(ValidationError):
    code: str = "INVALID_SCHEDULE_CONFIG"


class DepreciationParameterError(ValidationError):
    """Depreciation inputs are missing or inconsistent for the chosen method."""

    code: str = "INVALID_DEPRECIATION_PARAMETERS"


# =============================================================================
# Not found
# =============================================================================


class NotFoundError(AssetKernelError):
    """A referenced entity does not exist (or is outside the caller's scope)."""

    code: str = "NOT_FOUND"
    entity_type: str = "Entity"

    def __init__(self, entity_id: object, message: str | None = None):
        self.entity_id = str(entity_id)
        super().__init__(message or f"{self.entity_type} not found: {entity_id}")


class AssetNotFoundError(NotFoundError):
    entity_type = "Asset"


class CategoryNotFoundError(NotFoundError):
    entity_type = "Category"


class BusinessUnitNotFoundError(NotFoundError):
    entity_type = "Business unit"


class ReplacementAssetNotFoundError(NotFoundError):
    entity_type = "Replacement asset"

    def __init__(self, entity_id: object):
        super().__init__(
            entity_id, "Replacement asset not found or not available"
        )


class ScheduleNotFoundError(NotFoundError):
    entity_type = "Depreciation schedule"


# =============================================================================
# State
# =============================================================================


class StateError(AssetKernelError):
    """An operation is not legal in the entity's current state."""

    code: str = "ILLEGAL_STATE"


class IllegalTransitionError(StateError):
    """The lifecycle state machine denied a status transition."""

    code: str = "ILLEGAL_TRANSITION"

    def __init__(self, from_state: str, to_state: str, asset_id: object | None = None):
        self.from_state = from_state
        self.to_state = to_state
        self.asset_id = str(asset_id) if asset_id is not None else None
        subject = f"Asset {asset_id}" if asset_id is not None else "Asset"
        super().__init__(
            f"{subject} cannot move from {from_state} to {to_state}"
        )


# =============================================================================
# Conflict
# =============================================================================


class ConflictError(AssetKernelError):
    """The write collides with existing data."""

    code: str = "CONFLICT"


class DuplicateItemCodeError(ConflictError):
    code: str = "DUPLICATE_ITEM_CODE"

    def __init__(self, item_code: str):
        self.item_code = item_code
        super().__init__(f"Item code {item_code} already exists")


class AssetAlreadyRetiredError(ConflictError, StateError):
    """One or more assets already carry a Retirement record."""

    code: str = "ASSET_ALREADY_RETIRED"

    def __init__(self, item_codes: Iterable[str]):
        self.item_codes = tuple(item_codes)
        super().__init__(f"Assets {', '.join(self.item_codes)} are already retired")


class DepreciationPeriodConflictError(ConflictError):
    """A ledger entry already exists for the asset and period."""

    code: str = "DEPRECIATION_PERIOD_CONFLICT"

    def __init__(self, asset_id: object, period_start: object):
        self.asset_id = str(asset_id)
        self.period_start = str(period_start)
        super().__init__(
            f"Asset {asset_id} already depreciated for period starting {period_start}"
        )


# =============================================================================
# Infrastructure
# =============================================================================


class TransientError(AssetKernelError):
    """The underlying storage failed; the operation may succeed on retry."""

    code: str = "TRANSIENT"

    def __init__(self, message: str, operation: str | None = None):
        self.operation = operation
        super().__init__(message)


class ImmutabilityViolationError(AssetKernelError):
    """An append-only record was updated or deleted."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Cannot modify {entity_type} {entity_id}: {reason}")


class UnauthorizedTriggerError(AssetKernelError):
    """A scheduled-run trigger arrived without the expected bearer token."""

    code: str = "UNAUTHORIZED"

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)
