"""
Config -> Kernel Bridges.

Functions that convert a TreasuryConfig into kernel inputs.  These live in
treasury_config (the producer) because the kernel must NEVER import
treasury_config.

Usage:
    from treasury_config import get_active_config
    from treasury_config.bridges import build_orchestrator

    config = get_active_config()
    orchestrator = build_orchestrator(config, get_session_factory())
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from treasury_config.schema import TreasuryConfig
from treasury_kernel.domain.authority import AuthorityPolicy, AuthorityResolver
from treasury_kernel.domain.clock import Clock
from treasury_kernel.services.treasury_orchestrator import ResolverFactory, TreasuryOrchestrator


def _effective(config: TreasuryConfig, organization_id: UUID | None) -> TreasuryConfig:
    if organization_id is None:
        return config
    return config.for_organization(organization_id)


def build_authority_policy(
    config: TreasuryConfig,
    organization_id: UUID | None = None,
) -> AuthorityPolicy:
    """Build the resolver's frozen policy, applying organization overrides."""
    effective = _effective(config, organization_id)
    thresholds = effective.thresholds
    roles = effective.roles
    return AuthorityPolicy(
        small_limit=thresholds.small_limit,
        medium_limit=thresholds.medium_limit,
        large_limit=thresholds.large_limit,
        role_ranks={role: level.rank for role, level in roles.role_levels.items()},
        admin_roles=roles.admin_roles,
        disbursement_roles=roles.disbursement_roles,
        privileged_creator_roles=roles.privileged_creator_roles,
        dual_approval_from=roles.dual_approval_from,
        member_dual_approval_from=roles.member_dual_approval_from,
    )


def build_resolver(
    config: TreasuryConfig,
    organization_id: UUID | None = None,
) -> AuthorityResolver:
    return AuthorityResolver(build_authority_policy(config, organization_id))


def build_resolver_factory(config: TreasuryConfig) -> ResolverFactory:
    """
    Map each organization to its resolver.

    Overridden organizations get their own resolver, built once; every
    other organization shares the global one.
    """
    shared = build_resolver(config)
    overridden = {
        override.organization_id: build_resolver(config, override.organization_id)
        for override in config.overrides
    }

    def resolver_for(organization_id: UUID) -> AuthorityResolver:
        return overridden.get(organization_id, shared)

    return resolver_for


def build_orchestrator(
    config: TreasuryConfig,
    session_factory: sessionmaker[Session],
    clock: Clock | None = None,
) -> TreasuryOrchestrator:
    """Wire an orchestrator with per-organization resolvers and the retry bound."""
    return TreasuryOrchestrator(
        session_factory,
        clock=clock,
        max_attempts=config.max_attempts,
        resolver_factory=build_resolver_factory(config),
    )
