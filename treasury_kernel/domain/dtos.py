"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Defines the immutable structures that cross the kernel boundary: the
    caller identity (ActorContext) coming in, and the snapshots of funds,
    requisitions, movements, expenses and incomes going out.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    from_model() class methods exist as boundary converters but are only
    invoked from the service and selector layers.

Invariants enforced:
    - Callers never receive ORM entities; every result is a frozen copy
      taken inside the transaction that produced it.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from treasury_kernel.domain.authority import ApprovalLevel, CreatorType, Magnitude
from treasury_kernel.domain.ledger import (
    FundCategory,
    IncomeType,
    MovementType,
    PaymentMethod,
    ReferenceType,
)
from treasury_kernel.domain.requisition import ExpenseCategory, RequisitionState

if TYPE_CHECKING:
    from treasury_kernel.models.expense import Expense as ExpenseModel
    from treasury_kernel.models.fund import Fund as FundModel
    from treasury_kernel.models.income import Income as IncomeModel
    from treasury_kernel.models.movement import Movement as MovementModel
    from treasury_kernel.models.requisition import Requisition as RequisitionModel


@dataclass(frozen=True)
class ActorContext:
    """
    Who is calling, as established by the authentication layer.

    Roles are normalized to upper case.
    """

    user_id: UUID
    roles: frozenset[str]
    organization_id: UUID

    def __init__(self, user_id: UUID, roles: Iterable[str], organization_id: UUID):
        object.__setattr__(self, "user_id", user_id)
        object.__setattr__(self, "roles", frozenset(role.upper() for role in roles))
        object.__setattr__(self, "organization_id", organization_id)


@dataclass(frozen=True)
class FundSnapshot:
    id: UUID
    organization_id: UUID
    category: FundCategory
    name: str
    balance: Decimal
    is_active: bool
    description: str | None = None
    version: int = 1

    @classmethod
    def from_model(cls, model: FundModel) -> FundSnapshot:
        return cls(
            id=model.id,
            organization_id=model.organization_id,
            category=FundCategory(model.category),
            name=model.name,
            balance=model.balance,
            is_active=model.is_active,
            description=model.description,
            version=model.version,
        )


@dataclass(frozen=True)
class RequisitionSnapshot:
    """
    Read-side view of a requisition at the end of a command.

    ``amount_to_disburse`` is the approved amount once set, else the
    requested amount.
    """

    id: UUID
    code: str
    organization_id: UUID
    fund_id: UUID
    expense_category: ExpenseCategory
    requested_amount: Decimal
    approved_amount: Decimal | None
    justification: str
    creator_id: UUID
    creator_type: CreatorType
    state: RequisitionState
    magnitude: Magnitude
    required_level: ApprovalLevel
    required_approvals: int
    approvals_recorded: int
    level1_approver_id: UUID | None = None
    level1_approved_at: datetime | None = None
    level2_approver_id: UUID | None = None
    level2_approved_at: datetime | None = None
    rejected_by_id: UUID | None = None
    rejection_reason: str | None = None
    cancelled_by_id: UUID | None = None
    payment_date: date | None = None
    receipt_reference: str | None = None
    execution_notes: str | None = None
    executed_by_id: UUID | None = None
    created_at: datetime | None = None
    submitted_at: datetime | None = None
    approved_at: datetime | None = None
    executed_at: datetime | None = None
    version: int = 1

    @property
    def amount_to_disburse(self) -> Decimal:
        return self.approved_amount if self.approved_amount is not None else self.requested_amount

    @property
    def approvals_remaining(self) -> int:
        return self.required_approvals - self.approvals_recorded

    @classmethod
    def from_model(cls, model: RequisitionModel) -> RequisitionSnapshot:
        return cls(
            id=model.id,
            code=model.code,
            organization_id=model.organization_id,
            fund_id=model.fund_id,
            expense_category=ExpenseCategory(model.expense_category),
            requested_amount=model.requested_amount,
            approved_amount=model.approved_amount,
            justification=model.justification,
            creator_id=model.created_by_id,
            creator_type=CreatorType(model.creator_type),
            state=RequisitionState(model.state),
            magnitude=Magnitude(model.magnitude),
            required_level=ApprovalLevel(model.required_level),
            required_approvals=model.required_approvals,
            approvals_recorded=model.approvals_recorded,
            level1_approver_id=model.level1_approver_id,
            level1_approved_at=model.level1_approved_at,
            level2_approver_id=model.level2_approver_id,
            level2_approved_at=model.level2_approved_at,
            rejected_by_id=model.rejected_by_id,
            rejection_reason=model.rejection_reason,
            cancelled_by_id=model.cancelled_by_id,
            payment_date=model.payment_date,
            receipt_reference=model.receipt_reference,
            execution_notes=model.execution_notes,
            executed_by_id=model.executed_by_id,
            created_at=model.created_at,
            submitted_at=model.submitted_at,
            approved_at=model.approved_at,
            executed_at=model.executed_at,
            version=model.version,
        )


@dataclass(frozen=True)
class MovementRecord:
    id: UUID
    fund_id: UUID
    organization_id: UUID
    movement_type: MovementType
    amount: Decimal
    reference_type: ReferenceType
    reference_id: UUID
    movement_date: date
    created_by_id: UUID
    description: str | None = None

    @property
    def signed_amount(self) -> Decimal:
        return -self.amount if self.movement_type == MovementType.DEBIT else self.amount

    @classmethod
    def from_model(cls, model: MovementModel) -> MovementRecord:
        return cls(
            id=model.id,
            fund_id=model.fund_id,
            organization_id=model.organization_id,
            movement_type=MovementType(model.movement_type),
            amount=model.amount,
            reference_type=ReferenceType(model.reference_type),
            reference_id=model.reference_id,
            movement_date=model.movement_date,
            created_by_id=model.created_by_id,
            description=model.description,
        )


@dataclass(frozen=True)
class ExpenseRecord:
    id: UUID
    requisition_id: UUID
    fund_id: UUID
    organization_id: UUID
    amount: Decimal
    payment_date: date
    paid_by_id: UUID
    receipt_reference: str | None = None
    notes: str | None = None

    @classmethod
    def from_model(cls, model: ExpenseModel) -> ExpenseRecord:
        return cls(
            id=model.id,
            requisition_id=model.requisition_id,
            fund_id=model.fund_id,
            organization_id=model.organization_id,
            amount=model.amount,
            payment_date=model.payment_date,
            paid_by_id=model.paid_by_id,
            receipt_reference=model.receipt_reference,
            notes=model.notes,
        )


@dataclass(frozen=True)
class IncomeRecord:
    id: UUID
    fund_id: UUID
    organization_id: UUID
    amount: Decimal
    income_date: date
    source: str
    recorded_by_id: UUID
    income_type: IncomeType = IncomeType.OFFERING
    payment_method: PaymentMethod = PaymentMethod.CASH
    revenue_id: UUID | None = None

    @classmethod
    def from_model(cls, model: IncomeModel) -> IncomeRecord:
        return cls(
            id=model.id,
            fund_id=model.fund_id,
            organization_id=model.organization_id,
            amount=model.amount,
            income_date=model.income_date,
            source=model.source,
            recorded_by_id=model.recorded_by_id,
            income_type=IncomeType(model.income_type),
            payment_method=PaymentMethod(model.payment_method),
            revenue_id=model.revenue_id,
        )


@dataclass(frozen=True)
class ExecutionResult:
    """Everything one execute command produced."""

    requisition: RequisitionSnapshot
    fund: FundSnapshot
    movement: MovementRecord
    expense: ExpenseRecord


@dataclass(frozen=True)
class IncomeResult:
    income: IncomeRecord
    fund: FundSnapshot
    movement: MovementRecord


@dataclass(frozen=True)
class RevenueResult:
    """One revenue split across funds: an income and a movement per fund."""

    revenue_id: UUID
    total: Decimal
    incomes: tuple[IncomeRecord, ...]
    movements: tuple[MovementRecord, ...]
    funds: tuple[FundSnapshot, ...]


@dataclass(frozen=True)
class ProvisionResult:
    """Outcome of provisioning the standard funds for one organization."""

    created: tuple[FundCategory, ...] = field(default_factory=tuple)
    skipped: tuple[FundCategory, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class FundReconciliation:
    """Stored balance against the balance derived from movements."""

    fund_id: UUID
    stored_balance: Decimal
    total_credits: Decimal
    total_debits: Decimal
    movement_count: int

    @property
    def derived_balance(self) -> Decimal:
        return self.total_credits - self.total_debits

    @property
    def is_balanced(self) -> bool:
        return self.stored_balance == self.derived_balance

    @property
    def difference(self) -> Decimal:
        return self.stored_balance - self.derived_balance
