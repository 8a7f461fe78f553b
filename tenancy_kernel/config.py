"""
Tenancy Configuration Schema.

Qualification thresholds and assignment settings, loadable from YAML.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any, Self

import yaml

from tenancy_kernel.domain.policy import QualificationPolicy
from tenancy_kernel.logging_config import get_logger

logger = get_logger("config")

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "tenancy.yaml"


@dataclass
class TenancyConfig:
    """Configuration schema for the assignment and qualification engine."""

    qualification: QualificationPolicy = field(default_factory=QualificationPolicy)

    # Lease term applied when the caller supplies no end date
    default_lease_days: int = 365

    # Refuse a second concurrent lease for the same tenant
    single_active_lease_per_tenant: bool = True

    # Bounded retry for single-aggregate optimistic conflicts
    max_write_retries: int = 3

    def __post_init__(self):
        if self.default_lease_days <= 0:
            raise ValueError("default_lease_days must be positive")
        if self.max_write_retries < 1:
            raise ValueError("max_write_retries must be at least 1")

        logger.info(
            "tenancy_config_initialized",
            extra={
                "gross_income_multiple": str(self.qualification.gross_income_multiple),
                "net_income_multiple": str(self.qualification.net_income_multiple),
                "conditions_block": self.qualification.conditions_block,
                "default_lease_days": self.default_lease_days,
                "single_active_lease_per_tenant": self.single_active_lease_per_tenant,
                "max_write_retries": self.max_write_retries,
            },
        )

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with the standard UK letting defaults."""
        return cls()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Build a config from the parsed YAML mapping."""
        qual = data.get("qualification") or {}
        assignment = data.get("assignment") or {}

        policy_kwargs: dict[str, Any] = {}
        for key in ("gross_income_multiple", "net_income_multiple"):
            if key in qual:
                policy_kwargs[key] = Decimal(str(qual[key]))
        if "conditions_block" in qual:
            policy_kwargs["conditions_block"] = bool(qual["conditions_block"])

        kwargs: dict[str, Any] = {"qualification": QualificationPolicy(**policy_kwargs)}
        if "default_lease_days" in assignment:
            kwargs["default_lease_days"] = int(assignment["default_lease_days"])
        if "single_active_lease_per_tenant" in assignment:
            kwargs["single_active_lease_per_tenant"] = bool(
                assignment["single_active_lease_per_tenant"]
            )
        if "max_write_retries" in assignment:
            kwargs["max_write_retries"] = int(assignment["max_write_retries"])
        return cls(**kwargs)


def load_config(path: Path | str | None = None) -> TenancyConfig:
    """
    Load a TenancyConfig from a YAML file.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if a value is out of range.
    """
    config_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    with open(config_path) as fh:
        data = yaml.safe_load(fh) or {}
    logger.debug("tenancy_config_loaded", extra={"path": str(config_path)})
    return TenancyConfig.from_dict(data)
