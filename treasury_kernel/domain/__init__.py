"""Pure domain core of the treasury kernel: no I/O, no ORM."""

from treasury_kernel.domain.authority import (
    ApprovalChain,
    ApprovalLevel,
    AuthorityPolicy,
    AuthorityResolver,
    CreatorType,
    Magnitude,
)
from treasury_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from treasury_kernel.domain.dtos import (
    ActorContext,
    ExecutionResult,
    ExpenseRecord,
    FundReconciliation,
    FundSnapshot,
    IncomeRecord,
    IncomeResult,
    MovementRecord,
    ProvisionResult,
    RequisitionSnapshot,
    RevenueResult,
)
from treasury_kernel.domain.ledger import (
    FundCategory,
    IncomeType,
    MovementType,
    PaymentMethod,
    ReferenceType,
)
from treasury_kernel.domain.requisition import (
    TERMINAL_STATES,
    ExpenseCategory,
    RequisitionCommand,
    RequisitionState,
)

__all__ = [
    "TERMINAL_STATES",
    "ActorContext",
    "ApprovalChain",
    "ApprovalLevel",
    "AuthorityPolicy",
    "AuthorityResolver",
    "Clock",
    "CreatorType",
    "DeterministicClock",
    "ExecutionResult",
    "ExpenseCategory",
    "ExpenseRecord",
    "FundCategory",
    "FundReconciliation",
    "FundSnapshot",
    "IncomeRecord",
    "IncomeResult",
    "IncomeType",
    "Magnitude",
    "MovementRecord",
    "MovementType",
    "PaymentMethod",
    "ProvisionResult",
    "ReferenceType",
    "RequisitionCommand",
    "RequisitionSnapshot",
    "RequisitionState",
    "RevenueResult",
    "SystemClock",
]
