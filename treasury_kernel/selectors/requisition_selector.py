"""
Module: treasury_kernel.selectors.requisition_selector
Responsibility: Read-only queries over requisitions, scoped to one
    organization.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Every query filters on organization_id; a requisition of another
      organization is indistinguishable from a missing one.
"""

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import select

from treasury_kernel.domain.authority import ApprovalLevel, AuthorityResolver
from treasury_kernel.domain.dtos import RequisitionSnapshot
from treasury_kernel.domain.requisition import RequisitionState
from treasury_kernel.models.requisition import Requisition
from treasury_kernel.selectors.base import BaseSelector


class RequisitionSelector(BaseSelector):
    """Requisition queries returning RequisitionSnapshot DTOs."""

    def get(self, organization_id: UUID, requisition_id: UUID) -> RequisitionSnapshot | None:
        requisition = self.session.execute(
            select(Requisition).where(
                Requisition.id == requisition_id,
                Requisition.organization_id == organization_id,
            )
        ).scalar_one_or_none()
        return RequisitionSnapshot.from_model(requisition) if requisition else None

    def get_by_code(self, organization_id: UUID, code: str) -> RequisitionSnapshot | None:
        requisition = self.session.execute(
            select(Requisition).where(
                Requisition.code == code,
                Requisition.organization_id == organization_id,
            )
        ).scalar_one_or_none()
        return RequisitionSnapshot.from_model(requisition) if requisition else None

    def list_for_organization(
        self,
        organization_id: UUID,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[RequisitionSnapshot]:
        """All requisitions of an organization, newest code first."""
        query = (
            select(Requisition)
            .where(Requisition.organization_id == organization_id)
            .order_by(Requisition.code.desc())
            .offset(offset)
        )
        if limit is not None:
            query = query.limit(limit)
        return [RequisitionSnapshot.from_model(r) for r in self.session.execute(query).scalars()]

    def list_by_state(
        self,
        organization_id: UUID,
        state: RequisitionState,
    ) -> list[RequisitionSnapshot]:
        rows = self.session.execute(
            select(Requisition)
            .where(
                Requisition.organization_id == organization_id,
                Requisition.state == RequisitionState(state).value,
            )
            .order_by(Requisition.code)
        ).scalars()
        return [RequisitionSnapshot.from_model(r) for r in rows]

    def list_by_fund(self, organization_id: UUID, fund_id: UUID) -> list[RequisitionSnapshot]:
        rows = self.session.execute(
            select(Requisition)
            .where(
                Requisition.organization_id == organization_id,
                Requisition.fund_id == fund_id,
            )
            .order_by(Requisition.code)
        ).scalars()
        return [RequisitionSnapshot.from_model(r) for r in rows]

    def pending_for_approver(
        self,
        organization_id: UUID,
        roles: Iterable[str],
        resolver: AuthorityResolver,
        user_id: UUID | None = None,
    ) -> list[RequisitionSnapshot]:
        """
        UNDER_REVIEW requisitions the role set may act on.

        When ``user_id`` is given, requisitions the user created or already
        approved are left out, since that user could not approve them.
        """
        roles = frozenset(roles)
        levels = [
            level.value
            for level in ApprovalLevel
            if resolver.is_authorized(roles, level)
        ]
        if not levels:
            return []

        rows = self.session.execute(
            select(Requisition)
            .where(
                Requisition.organization_id == organization_id,
                Requisition.state == RequisitionState.UNDER_REVIEW.value,
                Requisition.required_level.in_(levels),
            )
            .order_by(Requisition.code)
        ).scalars()

        result = []
        for requisition in rows:
            if user_id is not None and (
                requisition.created_by_id == user_id or user_id in requisition.approver_ids
            ):
                continue
            result.append(RequisitionSnapshot.from_model(requisition))
        return result
