"""
treasury_config -- single public entrypoint for treasury configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Returns a frozen ``TreasuryConfig``; the
    bridges module turns it into an ``AuthorityResolver`` and a wired
    ``TreasuryOrchestrator``.

Architecture position:
    Configuration -- YAML-driven, validated at load time.  This package
    sits above ``treasury_kernel``.  The kernel MUST NEVER import from
    ``treasury_config``.

Invariants enforced:
    - Single entrypoint: all runtime config flows through ``get_active_config()``.
    - Load-time validation: thresholds, level names, magnitudes and the
      retry bound are checked before a config is returned.
    - Deterministic checksum: the same YAML always produces the same
      ``TreasuryConfig.checksum``.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``yaml.YAMLError`` -- the file is not valid YAML.
    - ``ConfigurationError`` -- structural or value validation failure.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``TREASURY_CONFIG_TRACE`` log entry with the config id, version,
    checksum and override count, tying approvals back to the thresholds
    that governed them.
"""

from __future__ import annotations

import logging
from pathlib import Path

from treasury_config.loader import load_config
from treasury_config.schema import (
    ApprovalThresholds,
    OrganizationOverride,
    RolePolicy,
    TreasuryConfig,
)

_logger = logging.getLogger("treasury_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(path: Path | None = None) -> TreasuryConfig:
    """The ONLY public configuration entrypoint.

    Args:
        path: Override path to a configuration file.  Defaults to the
            packaged ``defaults.yaml``.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigurationError: If validation fails.
    """
    config = load_config(Path(path) if path is not None else DEFAULT_CONFIG_PATH)

    _logger.info(
        "TREASURY_CONFIG_TRACE",
        extra={
            "trace_type": "TREASURY_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "override_count": len(config.overrides),
            "max_attempts": config.max_attempts,
        },
    )
    return config


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "ApprovalThresholds",
    "OrganizationOverride",
    "RolePolicy",
    "TreasuryConfig",
    "get_active_config",
]
