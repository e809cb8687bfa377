"""
Configuration Loader (``treasury_config.loader``).

Responsibility
--------------
Loads the treasury YAML document and parses it into the frozen
``treasury_config.schema`` dataclasses.  The single public entry point
for runtime config is ``treasury_config.get_active_config()``.

Architecture position
---------------------
**Config layer** -- infrastructure tooling.  Depends on the kernel's
domain enums for level and magnitude names; nothing in the kernel
imports it.

Invariants enforced
-------------------
* Thresholds are positive and strictly ascending.
* Every level and magnitude name is one the kernel knows.
* ``max_attempts`` is a positive integer.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the
  source document.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Structurally invalid document  -> ``ConfigurationError``.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any
from uuid import UUID

import yaml

from treasury_config.schema import (
    ApprovalThresholds,
    OrganizationOverride,
    RolePolicy,
    TreasuryConfig,
)
from treasury_kernel.domain.authority import ApprovalLevel, Magnitude
from treasury_kernel.exceptions import ConfigurationError


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ConfigurationError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path} must contain a mapping at the top level")
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _decimal(value: Any, name: str) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ConfigurationError(f"{name} is not a number: {value!r}") from exc


def _level(value: Any, name: str) -> ApprovalLevel:
    try:
        return ApprovalLevel(str(value).lower())
    except ValueError as exc:
        raise ConfigurationError(f"{name} names an unknown approval level: {value!r}") from exc


def _magnitude(value: Any, name: str) -> Magnitude:
    try:
        return Magnitude(str(value).lower())
    except ValueError as exc:
        raise ConfigurationError(f"{name} names an unknown magnitude: {value!r}") from exc


def _role_set(value: Any, name: str) -> frozenset[str]:
    if not isinstance(value, (list, tuple)):
        raise ConfigurationError(f"{name} must be a list of role names")
    return frozenset(str(role).upper() for role in value)


def parse_thresholds(data: Mapping[str, Any]) -> ApprovalThresholds:
    defaults = ApprovalThresholds()
    thresholds = ApprovalThresholds(
        small_limit=_decimal(data.get("small_limit", defaults.small_limit), "small_limit"),
        medium_limit=_decimal(data.get("medium_limit", defaults.medium_limit), "medium_limit"),
        large_limit=_decimal(data.get("large_limit", defaults.large_limit), "large_limit"),
    )
    if not thresholds.is_ascending:
        raise ConfigurationError(
            "thresholds must be positive and strictly ascending, got "
            f"{thresholds.small_limit} / {thresholds.medium_limit} / {thresholds.large_limit}"
        )
    return thresholds


def parse_role_policy(data: Mapping[str, Any]) -> RolePolicy:
    defaults = RolePolicy()

    levels = data.get("levels")
    if levels is None:
        role_levels = dict(defaults.role_levels)
    elif isinstance(levels, dict):
        role_levels = {
            str(role).upper(): _level(level, f"roles.levels.{role}")
            for role, level in levels.items()
        }
    else:
        raise ConfigurationError("roles.levels must map role names to approval levels")

    approval = data.get("approval", {}) or {}
    return RolePolicy(
        role_levels=role_levels,
        admin_roles=(
            _role_set(data["admin"], "roles.admin") if "admin" in data else defaults.admin_roles
        ),
        disbursement_roles=(
            _role_set(data["disbursement"], "roles.disbursement")
            if "disbursement" in data
            else defaults.disbursement_roles
        ),
        privileged_creator_roles=(
            _role_set(data["privileged_creators"], "roles.privileged_creators")
            if "privileged_creators" in data
            else defaults.privileged_creator_roles
        ),
        dual_approval_from=_magnitude(
            approval.get("dual_approval_from", defaults.dual_approval_from.value),
            "approval.dual_approval_from",
        ),
        member_dual_approval_from=_magnitude(
            approval.get("member_dual_approval_from", defaults.member_dual_approval_from.value),
            "approval.member_dual_approval_from",
        ),
    )


def _roles_section(data: Mapping[str, Any]) -> dict[str, Any]:
    """Merge ``roles`` with the top-level ``approval`` block."""
    roles = dict(data.get("roles", {}) or {})
    if "approval" in data:
        roles["approval"] = data["approval"]
    return roles


def parse_override(organization_id: str, data: Mapping[str, Any]) -> OrganizationOverride:
    try:
        org_uuid = UUID(str(organization_id))
    except ValueError as exc:
        raise ConfigurationError(
            f"organization override key is not a UUID: {organization_id!r}"
        ) from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"override for {organization_id} must be a mapping")

    thresholds = parse_thresholds(data["thresholds"]) if "thresholds" in data else None
    roles = None
    if "roles" in data or "approval" in data:
        roles = parse_role_policy(_roles_section(data))
    return OrganizationOverride(
        organization_id=org_uuid,
        thresholds=thresholds,
        roles=roles,
    )


def parse_config(data: dict[str, Any]) -> TreasuryConfig:
    """
    Parse a raw configuration document into a ``TreasuryConfig``.

    Raises:
        ConfigurationError: on any structural or value error.
    """
    if "config_id" not in data:
        raise ConfigurationError("config_id is required")

    max_attempts = (data.get("concurrency", {}) or {}).get("max_attempts", 3)
    if isinstance(max_attempts, bool) or not isinstance(max_attempts, int) or max_attempts < 1:
        raise ConfigurationError(
            f"concurrency.max_attempts must be a positive integer, got {max_attempts!r}"
        )

    organizations = data.get("organizations", {}) or {}
    if not isinstance(organizations, dict):
        raise ConfigurationError("organizations must map organization ids to overrides")

    return TreasuryConfig(
        config_id=str(data["config_id"]),
        version=int(data.get("version", 1)),
        thresholds=parse_thresholds(data.get("thresholds", {}) or {}),
        roles=parse_role_policy(_roles_section(data)),
        max_attempts=max_attempts,
        overrides=tuple(
            parse_override(org_id, override) for org_id, override in organizations.items()
        ),
        checksum=compute_checksum(data),
    )


def load_config(path: Path) -> TreasuryConfig:
    """Load and parse a configuration file."""
    return parse_config(load_yaml_file(path))
