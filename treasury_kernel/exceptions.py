"""
Typed Exception Hierarchy for the Treasury Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the kernel (an HTTP layer, a CLI, a batch job) must be able to
react to each failure precisely without parsing message strings:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        orchestrator.execute(actor, requisition_id, payment_date=today)
    except InsufficientBalanceError as e:
        return {"error": e.code, "available": e.available, "required": e.required}

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    TreasuryKernelError (base)
    |
    +-- InvalidTransitionError
    |
    +-- UnauthorizedError
    |   +-- UnauthorizedApproverError
    |   +-- SelfApprovalError
    |   +-- DuplicateApproverError
    |
    +-- InsufficientBalanceError
    |
    +-- ValidationError
    |   +-- FundInactiveError
    |
    +-- NotFoundError
    |   +-- RequisitionNotFoundError
    |   +-- FundNotFoundError
    |
    +-- ConcurrencyConflictError
    |
    +-- ImmutabilityViolationError
    |
    +-- AuditError
    |   +-- AuditChainBrokenError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                    | When Raised
------------------------|------------------------------------------------------
INVALID_TRANSITION      | Command not legal from the requisition's state
UNAUTHORIZED            | Caller lacks the role for the command
UNAUTHORIZED_APPROVER   | Caller's roles do not reach the required level
SELF_APPROVAL           | Creator tried to approve their own requisition
DUPLICATE_APPROVER      | Same identity tried to satisfy two hops
INSUFFICIENT_BALANCE    | Fund balance below the amount to disburse
VALIDATION_ERROR        | Malformed input (amount, reason, payment date, ...)
FUND_INACTIVE           | Fund exists but is deactivated
NOT_FOUND               | Entity missing or outside the caller's organization
REQUISITION_NOT_FOUND   | Requisition id unknown to the caller
FUND_NOT_FOUND          | Fund id unknown to the caller
CONCURRENCY_CONFLICT    | Lost-update race detected by the store
IMMUTABILITY_VIOLATION  | UPDATE/DELETE attempted on an append-only row
AUDIT_CHAIN_BROKEN      | Hash chain validation failed
CONFIGURATION_ERROR     | Invalid threshold / role configuration

===============================================================================
PROPAGATION
===============================================================================

Every exception aborts the enclosing transaction; the orchestrator rolls
back, so a failure never leaves partial state behind.  Only
ConcurrencyConflictError is retried, and only by the orchestrator, up to a
small fixed number of attempts.
"""

from decimal import Decimal


class TreasuryKernelError(Exception):
    """
    Base exception for all treasury kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "TREASURY_KERNEL_ERROR"


# State machine


class InvalidTransitionError(TreasuryKernelError):
    """Command is not legal from the requisition's current state."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, requisition_id: str, current_state: str, command: str):
        self.requisition_id = requisition_id
        self.current_state = current_state
        self.command = command
        super().__init__(
            f"Cannot {command} requisition {requisition_id} "
            f"in state {current_state}"
        )


# Authorization


class UnauthorizedError(TreasuryKernelError):
    """Caller is not allowed to perform the command."""

    code: str = "UNAUTHORIZED"

    def __init__(self, actor_id: str, command: str, reason: str):
        self.actor_id = actor_id
        self.command = command
        self.reason = reason
        super().__init__(f"Actor {actor_id} may not {command}: {reason}")


class UnauthorizedApproverError(UnauthorizedError):
    """Caller's role set does not reach the required authority level."""

    code: str = "UNAUTHORIZED_APPROVER"

    def __init__(
        self,
        actor_id: str,
        command: str,
        required_level: str,
        roles: tuple[str, ...],
    ):
        self.required_level = required_level
        self.roles = roles
        super().__init__(
            actor_id,
            command,
            f"requires {required_level} authority, has roles {list(roles)}",
        )


class SelfApprovalError(UnauthorizedError):
    """The creator of a requisition cannot approve it."""

    code: str = "SELF_APPROVAL"

    def __init__(self, actor_id: str, requisition_id: str):
        self.requisition_id = requisition_id
        super().__init__(
            actor_id,
            "approve",
            f"creator cannot approve requisition {requisition_id}",
        )


class DuplicateApproverError(UnauthorizedError):
    """One identity cannot satisfy two hops of the same approval chain."""

    code: str = "DUPLICATE_APPROVER"

    def __init__(self, actor_id: str, requisition_id: str):
        self.requisition_id = requisition_id
        super().__init__(
            actor_id,
            "approve",
            f"already approved an earlier hop of requisition {requisition_id}",
        )


# Ledger


class InsufficientBalanceError(TreasuryKernelError):
    """Fund balance is below the amount to disburse."""

    code: str = "INSUFFICIENT_BALANCE"

    def __init__(self, fund_id: str, available: Decimal, required: Decimal):
        self.fund_id = fund_id
        self.available = available
        self.required = required
        super().__init__(
            f"Insufficient balance in fund {fund_id}: "
            f"available {available}, required {required}"
        )


# Input validation


class ValidationError(TreasuryKernelError):
    """Malformed command input."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class FundInactiveError(ValidationError):
    """Fund exists but has been deactivated."""

    code: str = "FUND_INACTIVE"

    def __init__(self, fund_id: str):
        self.fund_id = fund_id
        super().__init__("fund_id", f"fund {fund_id} is inactive")


# Lookup


class NotFoundError(TreasuryKernelError):
    """Entity does not exist or lies outside the caller's organization."""

    code: str = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


class RequisitionNotFoundError(NotFoundError):
    """Requisition id unknown within the caller's organization."""

    code: str = "REQUISITION_NOT_FOUND"

    def __init__(self, requisition_id: str):
        self.requisition_id = requisition_id
        super().__init__("Requisition", requisition_id)


class FundNotFoundError(NotFoundError):
    """Fund id unknown within the caller's organization."""

    code: str = "FUND_NOT_FOUND"

    def __init__(self, fund_id: str):
        self.fund_id = fund_id
        super().__init__("Fund", fund_id)


# Concurrency


class ConcurrencyConflictError(TreasuryKernelError):
    """The store detected a lost-update race; the command may be retried."""

    code: str = "CONCURRENCY_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str, attempts: int = 1):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.attempts = attempts
        super().__init__(
            f"Concurrency conflict on {entity_type} {entity_id} "
            f"after {attempts} attempt(s)"
        )


# Immutability


class ImmutabilityViolationError(TreasuryKernelError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Audit


class AuditError(TreasuryKernelError):
    """Base exception for audit trail errors."""

    code: str = "AUDIT_ERROR"


class AuditChainBrokenError(AuditError):
    """Audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, seq: int, expected_hash: str, actual_hash: str):
        self.seq = seq
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at seq {seq}: "
            f"expected {expected_hash}, found {actual_hash}"
        )


# Configuration


class ConfigurationError(TreasuryKernelError):
    """Treasury configuration is structurally invalid."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid treasury configuration: {reason}")
