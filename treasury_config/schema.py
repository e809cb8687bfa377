"""
Treasury configuration schema.

Frozen dataclasses the YAML loader produces.  Everything here is plain
data; ``treasury_config.bridges`` turns it into kernel inputs.

Key distinction:
  TreasuryConfig      = global settings plus per-organization overrides
  for_organization()  = the effective settings for one organization
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from decimal import Decimal
from uuid import UUID

from treasury_kernel.domain.authority import ApprovalLevel, Magnitude

# ---------------------------------------------------------------------------
# Authority settings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ApprovalThresholds:
    """Upper bounds of the SMALL, MEDIUM and LARGE magnitudes."""

    small_limit: Decimal = Decimal("5000")
    medium_limit: Decimal = Decimal("20000")
    large_limit: Decimal = Decimal("50000")

    @property
    def is_ascending(self) -> bool:
        return Decimal(0) < self.small_limit < self.medium_limit < self.large_limit


@dataclass(frozen=True)
class RolePolicy:
    """Which roles approve at which level, and who may cancel or disburse."""

    role_levels: Mapping[str, ApprovalLevel] = field(
        default_factory=lambda: {
            "TREASURER": ApprovalLevel.TREASURER,
            "FINANCIAL_LEADER": ApprovalLevel.TREASURER,
            "DIRECTOR": ApprovalLevel.DIRECTOR,
            "BOARD": ApprovalLevel.BOARD,
            "PASTOR": ApprovalLevel.PASTOR,
            "ADMIN": ApprovalLevel.PASTOR,
        }
    )
    admin_roles: frozenset[str] = frozenset({"ADMIN", "PASTOR"})
    disbursement_roles: frozenset[str] = frozenset({"TREASURER", "FINANCIAL_LEADER", "ADMIN"})
    privileged_creator_roles: frozenset[str] = frozenset({"FINANCIAL_LEADER"})
    dual_approval_from: Magnitude = Magnitude.LARGE
    member_dual_approval_from: Magnitude = Magnitude.MEDIUM


# ---------------------------------------------------------------------------
# Organization overrides
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OrganizationOverride:
    """Settings replaced for a single organization; None keeps the global."""

    organization_id: UUID
    thresholds: ApprovalThresholds | None = None
    roles: RolePolicy | None = None


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TreasuryConfig:
    """Root configuration artifact.

    ``checksum`` is the SHA-256 of the canonical source document and
    identifies the configuration version in logs.
    """

    config_id: str
    version: int
    thresholds: ApprovalThresholds = field(default_factory=ApprovalThresholds)
    roles: RolePolicy = field(default_factory=RolePolicy)
    max_attempts: int = 3
    overrides: tuple[OrganizationOverride, ...] = ()
    checksum: str = ""

    def override_for(self, organization_id: UUID) -> OrganizationOverride | None:
        for override in self.overrides:
            if override.organization_id == organization_id:
                return override
        return None

    def for_organization(self, organization_id: UUID) -> TreasuryConfig:
        """Effective configuration for one organization.

        Falls back to the global settings for anything the organization
        does not override.  The result carries no overrides of its own.
        """
        override = self.override_for(organization_id)
        if override is None:
            return replace(self, overrides=())
        return replace(
            self,
            thresholds=override.thresholds or self.thresholds,
            roles=override.roles or self.roles,
            overrides=(),
        )
