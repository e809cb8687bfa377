"""
Module: treasury_kernel.models.requisition
Responsibility: ORM persistence for requisitions (expense requests) and
    their full approval history.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain enums only.

Invariants enforced:
    - requested_amount > 0 (DB CHECK).
    - approvals_recorded never exceeds required_approvals (DB CHECK).
    - state moves only along the lifecycle edges (RequisitionService, plus
      the ORM state guard in db/immutability.py).
    - version is a SQLAlchemy version counter; two approvers racing on the
      same row cannot both win.

Failure modes:
    - StaleDataError when the row changed since it was loaded.
    - InvalidTransitionError from the ORM state guard on an illegal edge.

Audit relevance:
    Every state change of a requisition has exactly one AuditEvent with
    entity_type "Requisition".  The per-hop approver columns are the
    durable record of who authorized the spend.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from treasury_kernel.db.base import TrackedBase, UUIDString
from treasury_kernel.domain.authority import ApprovalLevel, CreatorType, Magnitude
from treasury_kernel.domain.requisition import ExpenseCategory, RequisitionState


class Requisition(TrackedBase):
    """
    An expense request routed through the approval chain.

    Contract:
        ``created_by_id`` is the creator.  Magnitude, required level and
        required approval count are fixed at creation.  Only
        RequisitionService writes to this table.
    """

    __tablename__ = "requisitions"

    __table_args__ = (
        CheckConstraint("requested_amount > 0", name="ck_requisition_amount_positive"),
        CheckConstraint(
            "approved_amount IS NULL OR approved_amount > 0",
            name="ck_requisition_approved_amount_positive",
        ),
        CheckConstraint(
            "approvals_recorded >= 0 AND approvals_recorded <= required_approvals",
            name="ck_requisition_approvals_bounded",
        ),
        CheckConstraint(
            "state IN ('pending', 'under_review', 'approved', "
            "'rejected', 'executed', 'cancelled')",
            name="ck_requisition_valid_state",
        ),
        Index("idx_requisition_org_state", "organization_id", "state"),
        Index("idx_requisition_fund", "fund_id"),
    )

    # Human-readable code, e.g. REQ-2024-000042
    code: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        unique=True,
    )

    organization_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    fund_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("funds.id"),
        nullable=False,
    )

    expense_category: Mapped[ExpenseCategory] = mapped_column(
        String(40),
        nullable=False,
    )

    requested_amount: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
    )

    # Set by the first approval; defaults to requested_amount
    approved_amount: Mapped[Decimal | None] = mapped_column(
        Numeric(38, 9),
        nullable=True,
    )

    justification: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )

    creator_type: Mapped[CreatorType] = mapped_column(
        String(20),
        nullable=False,
    )

    state: Mapped[RequisitionState] = mapped_column(
        String(20),
        nullable=False,
        default=RequisitionState.PENDING,
    )

    # Approval chain, fixed at creation.  A first-hop override above the
    # requested amount may raise it, never lower it.
    magnitude: Mapped[Magnitude] = mapped_column(
        String(10),
        nullable=False,
    )

    required_level: Mapped[ApprovalLevel] = mapped_column(
        String(20),
        nullable=False,
    )

    required_approvals: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    approvals_recorded: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    level1_approver_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    level1_approved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    level2_approver_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    level2_approved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    rejected_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    cancelled_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    # Execution metadata
    payment_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    receipt_reference: Mapped[str | None] = mapped_column(String(200), nullable=True)
    execution_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    executed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    submitted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    approved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    executed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Requisition {self.code} {self.state} {self.requested_amount}>"

    @property
    def approver_ids(self) -> tuple[UUID, ...]:
        """Identities that have satisfied a hop so far, in hop order."""
        return tuple(
            approver
            for approver in (self.level1_approver_id, self.level2_approver_id)
            if approver is not None
        )
