"""
ActionResult -- outcome of a single-entity operation.

Single-asset operations (create, update, retire-batch, dispose-batch) never
raise domain errors at their callers; they return an ActionResult whose
``error`` holds one human-readable message and ``error_code`` the
machine-readable code of the AssetKernelError that caused it.
"""

from dataclasses import dataclass, field
from typing import Any

from asset_kernel.exceptions import AssetKernelError


@dataclass(frozen=True)
class ActionResult:
    success: str | None = None
    error: str | None = None
    error_code: str | None = None
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def is_success(self) -> bool:
        return self.error is None

    @classmethod
    def ok(cls, message: str, **data: Any) -> "ActionResult":
        return cls(success=message, data=data)

    @classmethod
    def fail(cls, exc: AssetKernelError) -> "ActionResult":
        return cls(error=exc.message, error_code=exc.code)
