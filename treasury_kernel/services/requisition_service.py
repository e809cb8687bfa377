"""
RequisitionService -- the requisition state machine.

Responsibility:
    Executes the six lifecycle commands (create, submit, approve, reject,
    cancel, execute) against a requisition row: checks the transition
    table, checks the caller's authority, mutates the row, performs the
    ledger debit on execute and appends exactly one audit event per
    successful command.

Architecture position:
    Kernel > Services -- imperative shell.  Consults the pure
    ``AuthorityResolver`` and the pure transition table in
    ``domain/requisition.py``.  Writes through LedgerService and
    AuditorService.  Never commits: TreasuryOrchestrator owns the
    transaction.

Invariants enforced:
    - State changes only along lifecycle edges; anything else raises
      InvalidTransitionError before a single field is touched.
    - Authority is checked server-side on every command.  The creator never
      approves; one identity never satisfies two hops.
    - Execute locks the requisition, then the fund.  Balance check, debit,
      DEBIT movement, Expense, state change and audit event form one unit.

Failure modes:
    - InvalidTransitionError, UnauthorizedError (and subclasses),
      ValidationError, InsufficientBalanceError, NotFoundError subclasses.
      Every failure leaves the transaction to be rolled back by the caller.

Audit relevance:
    Each command writes one AuditEvent whose payload carries the previous
    state, the new state and the fields the command changed.

    Command    Action
    ---------  ------------------------------------------------
    create     REQUISITION_CREATED
    submit     REQUISITION_SUBMITTED
    approve    REQUISITION_REVIEWED (hops remain) / _APPROVED
    reject     REQUISITION_REJECTED
    cancel     REQUISITION_CANCELLED
    execute    REQUISITION_EXECUTED
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from treasury_kernel.domain.authority import ApprovalLevel, AuthorityResolver, CreatorType
from treasury_kernel.domain.clock import Clock
from treasury_kernel.domain.dtos import ActorContext
from treasury_kernel.domain.requisition import (
    ExpenseCategory,
    RequisitionCommand,
    RequisitionState,
    validate_transition,
)
from treasury_kernel.domain.values import parse_amount, parse_enum, require_text
from treasury_kernel.exceptions import (
    DuplicateApproverError,
    FundInactiveError,
    FundNotFoundError,
    RequisitionNotFoundError,
    SelfApprovalError,
    UnauthorizedApproverError,
    UnauthorizedError,
    ValidationError,
)
from treasury_kernel.logging_config import get_logger
from treasury_kernel.models.audit_event import AuditAction
from treasury_kernel.models.expense import Expense
from treasury_kernel.models.fund import Fund
from treasury_kernel.models.movement import Movement
from treasury_kernel.models.requisition import Requisition
from treasury_kernel.services.auditor_service import AuditorService
from treasury_kernel.services.base import BaseService
from treasury_kernel.services.ledger_service import LedgerService
from treasury_kernel.services.sequence_service import SequenceService

logger = get_logger("services.requisition")


class RequisitionService(BaseService):
    """
    Lifecycle commands for requisitions.

    Usage:
        service = RequisitionService(session, resolver, ledger, auditor, clock)
        req = service.create(actor, fund_id, "equipment", "4500", "Projector")
        service.submit(actor, req.id)
    """

    def __init__(
        self,
        session: Session,
        resolver: AuthorityResolver,
        ledger: LedgerService,
        auditor: AuditorService,
        clock: Clock | None = None,
    ):
        super().__init__(session, clock)
        self._resolver = resolver
        self._ledger = ledger
        self._auditor = auditor
        self._sequences = SequenceService(session)

    # Loading

    def _load_for_update(self, actor: ActorContext, requisition_id: UUID) -> Requisition:
        requisition = self.session.execute(
            select(Requisition)
            .where(Requisition.id == requisition_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

        if requisition is None or requisition.organization_id != actor.organization_id:
            raise RequisitionNotFoundError(str(requisition_id))
        return requisition

    def _next_code(self) -> str:
        year = self.clock.now().year
        seq = self._sequences.next_value(SequenceService.requisition_code_sequence(year))
        return f"REQ-{year}-{seq:06d}"

    def _audit(
        self,
        action: AuditAction,
        requisition: Requisition,
        actor: ActorContext,
        previous_state: RequisitionState | None,
        changes: dict[str, Any],
    ) -> None:
        self._auditor.record_transition(
            action=action,
            requisition_id=requisition.id,
            organization_id=requisition.organization_id,
            actor_id=actor.user_id,
            previous_state=previous_state.value if previous_state else None,
            new_state=RequisitionState(requisition.state).value,
            changes=changes,
        )
        logger.info(
            "requisition_transition",
            extra={
                "requisition_id": str(requisition.id),
                "code": requisition.code,
                "action": action.value,
                "from_state": previous_state.value if previous_state else None,
                "to_state": RequisitionState(requisition.state).value,
            },
        )

    def _escalate(
        self,
        requisition: Requisition,
        amount: Decimal,
        changes: dict[str, Any],
    ) -> None:
        """Raise the chain to what ``amount`` requires; never lowers it."""
        chain = self._resolver.approval_chain(amount, CreatorType(requisition.creator_type))
        current = ApprovalLevel(requisition.required_level)
        if chain.level.rank > current.rank:
            requisition.magnitude = chain.magnitude
            requisition.required_level = chain.level
            changes["magnitude"] = chain.magnitude.value
            changes["required_level"] = chain.level.value
        if chain.hops > requisition.required_approvals:
            requisition.required_approvals = chain.hops
            changes["required_approvals"] = chain.hops

    # Commands

    def create(
        self,
        actor: ActorContext,
        fund_id: UUID,
        expense_category: ExpenseCategory | str,
        amount: Decimal | int | str,
        justification: str,
        creator_type: CreatorType | str | None = None,
    ) -> Requisition:
        """
        Create a PENDING requisition.

        ``creator_type`` defaults to FINANCIAL_LEADER for holders of a
        privileged creator role and MEMBER for everyone else.

        Raises:
            ValidationError: bad amount, blank justification, unknown
                category or creator type.
            FundNotFoundError: fund unknown within the actor's organization.
            FundInactiveError: fund deactivated.
            UnauthorizedError: FINANCIAL_LEADER claimed without the role.
        """
        value = parse_amount(amount)
        justification = require_text(justification, "justification")
        category = parse_enum(ExpenseCategory, expense_category, "expense_category")
        if creator_type is None:
            kind = self._resolver.default_creator_type(actor.roles)
        else:
            kind = parse_enum(CreatorType, creator_type, "creator_type")
            if not self._resolver.may_create_as(actor.roles, kind):
                raise UnauthorizedError(
                    str(actor.user_id),
                    "create",
                    f"roles {sorted(actor.roles)} may not submit as {kind.value}",
                )

        fund = self.session.get(Fund, fund_id)
        if fund is None or fund.organization_id != actor.organization_id:
            raise FundNotFoundError(str(fund_id))
        if not fund.is_active:
            raise FundInactiveError(str(fund_id))

        chain = self._resolver.approval_chain(value, kind)
        now = self.clock.now()

        requisition = Requisition(
            code=self._next_code(),
            organization_id=actor.organization_id,
            fund_id=fund.id,
            expense_category=category,
            requested_amount=value,
            justification=justification,
            creator_type=kind,
            state=RequisitionState.PENDING,
            magnitude=chain.magnitude,
            required_level=chain.level,
            required_approvals=chain.hops,
            approvals_recorded=0,
            created_by_id=actor.user_id,
            created_at=now,
            updated_at=now,
        )
        self.session.add(requisition)
        self.session.flush()

        self._audit(
            AuditAction.REQUISITION_CREATED,
            requisition,
            actor,
            previous_state=None,
            changes={
                "code": requisition.code,
                "fund_id": fund.id,
                "expense_category": category.value,
                "requested_amount": value,
                "creator_type": kind.value,
                "magnitude": chain.magnitude.value,
                "required_level": chain.level.value,
                "required_approvals": chain.hops,
            },
        )
        return requisition

    def submit(self, actor: ActorContext, requisition_id: UUID) -> Requisition:
        """PENDING -> UNDER_REVIEW.  Only the creator submits."""
        requisition = self._load_for_update(actor, requisition_id)
        previous = RequisitionState(requisition.state)
        validate_transition(requisition.id, previous, RequisitionCommand.SUBMIT)

        if actor.user_id != requisition.created_by_id:
            raise UnauthorizedError(
                str(actor.user_id), "submit", "only the creator may submit"
            )

        requisition.state = RequisitionState.UNDER_REVIEW
        requisition.submitted_at = self.clock.now()
        self.session.flush()

        self._audit(
            AuditAction.REQUISITION_SUBMITTED,
            requisition,
            actor,
            previous,
            changes={"submitted_at": requisition.submitted_at},
        )
        return requisition

    def approve(
        self,
        actor: ActorContext,
        requisition_id: UUID,
        approved_amount: Decimal | int | str | None = None,
    ) -> Requisition:
        """
        Satisfy the next approval hop.

        The requisition stays UNDER_REVIEW while hops remain and becomes
        APPROVED on the last one.  Only the first hop may set
        ``approved_amount``; an override must be positive and within the
        approver's own authority.  An override above the requested amount
        re-derives the chain from the larger amount, so a raised payment
        still gets the level and number of hops it needs.

        Raises:
            SelfApprovalError: the caller created the requisition.
            DuplicateApproverError: the caller approved an earlier hop.
            UnauthorizedApproverError: roles below the required level (or
                below the level the override amount would require).
            ValidationError: bad override, or an override on a later hop.
        """
        requisition = self._load_for_update(actor, requisition_id)
        previous = RequisitionState(requisition.state)
        validate_transition(requisition.id, previous, RequisitionCommand.APPROVE)

        level = ApprovalLevel(requisition.required_level)
        if actor.user_id == requisition.created_by_id:
            raise SelfApprovalError(str(actor.user_id), str(requisition.id))
        if actor.user_id in requisition.approver_ids:
            raise DuplicateApproverError(str(actor.user_id), str(requisition.id))
        if not self._resolver.is_authorized(actor.roles, level):
            raise UnauthorizedApproverError(
                str(actor.user_id), "approve", level.value, tuple(sorted(actor.roles))
            )

        hop = requisition.approvals_recorded + 1
        changes: dict[str, Any] = {"hop": hop, "approver_id": actor.user_id}

        if approved_amount is not None:
            if hop > 1:
                raise ValidationError(
                    "approved_amount", "may only be set by the first approval"
                )
            override = parse_amount(approved_amount, "approved_amount")
            override_level = self._resolver.required_level(override)
            if not self._resolver.is_authorized(actor.roles, override_level):
                raise UnauthorizedApproverError(
                    str(actor.user_id),
                    "approve",
                    override_level.value,
                    tuple(sorted(actor.roles)),
                )
            requisition.approved_amount = override
            changes["approved_amount"] = override
            if override > requisition.requested_amount:
                self._escalate(requisition, override, changes)
        elif hop == 1:
            requisition.approved_amount = requisition.requested_amount
            changes["approved_amount"] = requisition.requested_amount

        now = self.clock.now()
        if hop == 1:
            requisition.level1_approver_id = actor.user_id
            requisition.level1_approved_at = now
        else:
            requisition.level2_approver_id = actor.user_id
            requisition.level2_approved_at = now
        requisition.approvals_recorded = hop

        if hop >= requisition.required_approvals:
            requisition.state = RequisitionState.APPROVED
            requisition.approved_at = now
            action = AuditAction.REQUISITION_APPROVED
        else:
            action = AuditAction.REQUISITION_REVIEWED
        self.session.flush()

        self._audit(action, requisition, actor, previous, changes)
        return requisition

    def reject(self, actor: ActorContext, requisition_id: UUID, reason: str) -> Requisition:
        """UNDER_REVIEW -> REJECTED.  Needs authority at the pending level."""
        requisition = self._load_for_update(actor, requisition_id)
        previous = RequisitionState(requisition.state)
        validate_transition(requisition.id, previous, RequisitionCommand.REJECT)

        reason = require_text(reason, "reason")
        level = ApprovalLevel(requisition.required_level)
        if not self._resolver.is_authorized(actor.roles, level):
            raise UnauthorizedApproverError(
                str(actor.user_id), "reject", level.value, tuple(sorted(actor.roles))
            )

        requisition.state = RequisitionState.REJECTED
        requisition.rejected_by_id = actor.user_id
        requisition.rejection_reason = reason
        requisition.rejected_at = self.clock.now()
        self.session.flush()

        self._audit(
            AuditAction.REQUISITION_REJECTED,
            requisition,
            actor,
            previous,
            changes={"reason": reason, "hop": requisition.approvals_recorded + 1},
        )
        return requisition

    def cancel(
        self,
        actor: ActorContext,
        requisition_id: UUID,
        reason: str | None = None,
    ) -> Requisition:
        """
        Withdraw a requisition.

        PENDING: creator or admin.  UNDER_REVIEW: creator, before any
        approval.  APPROVED: admin only.
        """
        requisition = self._load_for_update(actor, requisition_id)
        previous = RequisitionState(requisition.state)
        validate_transition(requisition.id, previous, RequisitionCommand.CANCEL)

        is_creator = actor.user_id == requisition.created_by_id
        is_admin = self._resolver.is_admin(actor.roles)

        if previous == RequisitionState.PENDING:
            allowed = is_creator or is_admin
            rule = "only the creator or an admin may cancel a pending requisition"
        elif previous == RequisitionState.UNDER_REVIEW:
            allowed = is_creator and requisition.approvals_recorded == 0
            rule = "only the creator may cancel, and only before any approval"
        else:
            allowed = is_admin
            rule = "only an admin may cancel an approved requisition"
        if not allowed:
            raise UnauthorizedError(str(actor.user_id), "cancel", rule)

        requisition.state = RequisitionState.CANCELLED
        requisition.cancelled_by_id = actor.user_id
        requisition.cancelled_at = self.clock.now()
        self.session.flush()

        changes: dict[str, Any] = {"cancelled_by_id": actor.user_id}
        if reason:
            changes["reason"] = reason.strip()
        self._audit(AuditAction.REQUISITION_CANCELLED, requisition, actor, previous, changes)
        return requisition

    def execute(
        self,
        actor: ActorContext,
        requisition_id: UUID,
        payment_date: date | None,
        receipt_reference: str | None = None,
        notes: str | None = None,
    ) -> tuple[Requisition, Movement, Expense]:
        """
        APPROVED -> EXECUTED, disbursing the approved amount.

        Raises:
            UnauthorizedError: caller lacks disbursement authority.
            ValidationError: missing payment date.
            InsufficientBalanceError: fund balance below the approved
                amount.  Nothing is written.
        """
        requisition = self._load_for_update(actor, requisition_id)
        previous = RequisitionState(requisition.state)
        validate_transition(requisition.id, previous, RequisitionCommand.EXECUTE)

        if not self._resolver.can_disburse(actor.roles):
            raise UnauthorizedError(
                str(actor.user_id), "execute", "requires disbursement authority"
            )
        if payment_date is None:
            raise ValidationError("payment_date", "is required")
        if isinstance(payment_date, datetime):
            payment_date = payment_date.date()
        elif not isinstance(payment_date, date):
            raise ValidationError("payment_date", f"must be a date, got {payment_date!r}")

        amount = (
            requisition.approved_amount
            if requisition.approved_amount is not None
            else requisition.requested_amount
        )
        movement, expense = self._ledger.debit_fund_for_execution(
            fund_id=requisition.fund_id,
            amount=amount,
            requisition_id=requisition.id,
            actor_id=actor.user_id,
            payment_date=payment_date,
            receipt_reference=receipt_reference,
            notes=notes,
        )

        requisition.state = RequisitionState.EXECUTED
        requisition.payment_date = payment_date
        requisition.receipt_reference = receipt_reference
        requisition.execution_notes = notes
        requisition.executed_by_id = actor.user_id
        requisition.executed_at = self.clock.now()
        self.session.flush()

        self._audit(
            AuditAction.REQUISITION_EXECUTED,
            requisition,
            actor,
            previous,
            changes={
                "amount": amount,
                "payment_date": payment_date,
                "expense_id": expense.id,
                "movement_id": movement.id,
                "receipt_reference": receipt_reference,
            },
        )
        return requisition, movement, expense
