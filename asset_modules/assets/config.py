"""
Asset Lifecycle Configuration Schema.

Defines the settings for depreciation runs, item-code generation and the
scheduled trigger, with defaults that match how the engine behaves out of
the box.  Values can be supplied as a mapping or loaded from YAML:

    # config/assets.yaml
    default_execution_day: 28
    units_of_production_fallback: false
    system_actor_id: 5b2f0c1e-8a4e-4d0f-9a53-6f0f1c2d3e4f
"""

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Self
from uuid import UUID, uuid5, NAMESPACE_URL

import yaml

from asset_kernel.exceptions import ValidationError
from asset_kernel.logging_config import get_logger
from asset_modules.assets.models import AssetStatus

logger = get_logger("modules.assets.config")

SYSTEM_ACTOR_ID = uuid5(NAMESPACE_URL, "asset-lifecycle:system")


@dataclass
class AssetConfig:
    """
    Configuration schema for the asset lifecycle engine.

        config = AssetConfig(default_execution_day=28)
        config = AssetConfig.from_yaml(Path("config/assets.yaml"))
    """

    # Item codes: <category code><zero-padded sequence>, e.g. LAP007
    item_code_width: int = 3

    # Depreciation
    default_execution_day: int = 30
    units_of_production_fallback: bool = True
    end_of_month_enabled: bool = True

    # Retirement
    retirable_statuses: frozenset[AssetStatus] = field(
        default_factory=lambda: frozenset({
            AssetStatus.AVAILABLE,
            AssetStatus.DEPLOYED,
            AssetStatus.IN_MAINTENANCE,
            AssetStatus.DAMAGED,
        })
    )

    # Scheduled trigger
    system_actor_id: UUID = SYSTEM_ACTOR_ID
    trigger_secret_env: str = "DEPRECIATION_TRIGGER_SECRET"

    def __post_init__(self):
        if not 1 <= self.item_code_width <= 9:
            raise ValidationError("item_code_width must be between 1 and 9", field="item_code_width")
        if not 1 <= self.default_execution_day <= 31:
            raise ValidationError(
                "default_execution_day must be between 1 and 31", field="default_execution_day"
            )
        self.retirable_statuses = frozenset(
            s if isinstance(s, AssetStatus) else AssetStatus(s) for s in self.retirable_statuses
        )
        if AssetStatus.RETIRED in self.retirable_statuses or AssetStatus.DISPOSED in self.retirable_statuses:
            raise ValidationError(
                "Terminal statuses cannot be retirable", field="retirable_statuses"
            )
        if not isinstance(self.system_actor_id, UUID):
            self.system_actor_id = UUID(str(self.system_actor_id))
        logger.info(
            "asset_config_initialized",
            extra={
                "item_code_width": self.item_code_width,
                "default_execution_day": self.default_execution_day,
                "units_of_production_fallback": self.units_of_production_fallback,
                "end_of_month_enabled": self.end_of_month_enabled,
                "retirable_statuses": sorted(s.value for s in self.retirable_statuses),
            },
        )

    @classmethod
    def with_defaults(cls) -> Self:
        return cls()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Create config from a mapping; unknown keys are rejected."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValidationError(
                f"Unknown asset config keys: {', '.join(sorted(unknown))}",
                field=sorted(unknown)[0],
            )
        logger.info("asset_config_loading_from_dict", extra={"keys": sorted(data.keys())})
        return cls(**data)

    @classmethod
    def from_yaml(cls, path: Path) -> Self:
        """
        Load config from a YAML file.

        Raises:
            FileNotFoundError: The file does not exist.
            yaml.YAMLError: The file is not valid YAML.
            ValidationError: Unknown keys or out-of-range values.
        """
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValidationError(f"{path} must contain a mapping", field=None)
        return cls.from_dict(data)
