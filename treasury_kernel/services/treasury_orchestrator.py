"""
Treasury Orchestrator - the command entry point of the kernel.

The Orchestrator ties together:
- RequisitionService: the lifecycle state machine
- LedgerService: fund balance mutations
- IncomeService: income and revenue recording
- AuditorService: audit trail
- Selectors: the read side

Transaction boundary:
    Each command runs in exactly one ``session_scope``: commit on success,
    rollback on any exception.  Services only flush.  A command that lost a
    race (StaleDataError, a lock or serialization failure) is retried as a
    whole, on a fresh session, up to ``max_attempts`` times before
    ConcurrencyConflictError reaches the caller.  No other error is retried.

Authority:
    Each command consults the resolver of the actor's organization, so one
    orchestrator serves organizations with different thresholds or roles.

Outputs:
    Frozen DTOs built inside the transaction, never ORM entities.
"""

import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import TypeVar
from uuid import UUID, uuid4

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from treasury_kernel.db.engine import session_scope
from treasury_kernel.domain.authority import AuthorityResolver, CreatorType
from treasury_kernel.domain.clock import Clock, SystemClock
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
from treasury_kernel.domain.ledger import FundCategory, IncomeType, PaymentMethod
from treasury_kernel.domain.requisition import ExpenseCategory, RequisitionState
from treasury_kernel.domain.values import parse_enum, require_text
from treasury_kernel.exceptions import (
    ConcurrencyConflictError,
    FundNotFoundError,
    RequisitionNotFoundError,
    UnauthorizedError,
)
from treasury_kernel.logging_config import LogContext, get_logger
from treasury_kernel.models.fund import Fund
from treasury_kernel.selectors.fund_selector import FundSelector
from treasury_kernel.selectors.requisition_selector import RequisitionSelector
from treasury_kernel.services.auditor_service import AuditorService, AuditTrace
from treasury_kernel.services.income_service import IncomeService
from treasury_kernel.services.ledger_service import LedgerService
from treasury_kernel.services.requisition_service import RequisitionService

logger = get_logger("services.treasury_orchestrator")

T = TypeVar("T")

# Organization id -> the authority policy in force for it
ResolverFactory = Callable[[UUID], AuthorityResolver]

# Driver messages that mean "another transaction holds what you need"
_CONFLICT_MARKERS = (
    "database is locked",
    "deadlock",
    "could not serialize",
    "lock timeout",
    "could not obtain lock",
)


def is_concurrency_conflict(exc: BaseException) -> bool:
    """True for errors that signal a lost race rather than a bad command."""
    if isinstance(exc, StaleDataError):
        return True
    if isinstance(exc, OperationalError):
        message = str(exc.orig if exc.orig is not None else exc).lower()
        return any(marker in message for marker in _CONFLICT_MARKERS)
    return False


def _single_policy(resolver: AuthorityResolver) -> ResolverFactory:
    return lambda organization_id: resolver


@dataclass
class _Services:
    auditor: AuditorService
    ledger: LedgerService
    income: IncomeService
    requisitions: RequisitionService


class TreasuryOrchestrator:
    """
    Runs lifecycle, ledger and read commands for authenticated callers.

    Usage:
        orchestrator = TreasuryOrchestrator(get_session_factory())
        req = orchestrator.create_requisition(
            actor, fund_id, "equipment", Decimal("4500"), "New projector",
        )
        orchestrator.submit(actor, req.id)
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        resolver: AuthorityResolver | None = None,
        clock: Clock | None = None,
        max_attempts: int = 3,
        resolver_factory: ResolverFactory | None = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if resolver is not None and resolver_factory is not None:
            raise ValueError("pass either resolver or resolver_factory, not both")
        self._session_factory = session_factory
        self._resolver_factory = resolver_factory or _single_policy(
            resolver or AuthorityResolver()
        )
        self._clock = clock or SystemClock()
        self._max_attempts = max_attempts

    def resolver_for(self, organization_id: UUID) -> AuthorityResolver:
        """The authority policy in force for ``organization_id``."""
        return self._resolver_factory(organization_id)

    def _services(self, session: Session, actor: ActorContext) -> _Services:
        auditor = AuditorService(session, self._clock)
        ledger = LedgerService(session, self._clock, auditor)
        return _Services(
            auditor=auditor,
            ledger=ledger,
            income=IncomeService(session, ledger, auditor, self._clock),
            requisitions=RequisitionService(
                session, self.resolver_for(actor.organization_id), ledger, auditor, self._clock
            ),
        )

    def _run(
        self,
        command: str,
        actor: ActorContext,
        work: Callable[[_Services], T],
        entity_type: str,
        entity_id: UUID | None = None,
        **log_fields: str | None,
    ) -> T:
        """
        Run ``work`` in its own transaction, retrying lost races.

        Raises:
            ConcurrencyConflictError: still conflicting after
                ``max_attempts`` attempts.
        """
        with LogContext.bind(
            correlation_id=str(uuid4()),
            actor_id=str(actor.user_id),
            organization_id=str(actor.organization_id),
            command=command,
            **log_fields,
        ):
            logger.info("command_started")
            t0 = time.monotonic()
            attempt = 0
            while True:
                attempt += 1
                try:
                    with session_scope(self._session_factory) as session:
                        result = work(self._services(session, actor))
                except Exception as exc:
                    if not is_concurrency_conflict(exc):
                        duration_ms = round((time.monotonic() - t0) * 1000, 2)
                        logger.warning(
                            "command_failed",
                            extra={
                                "attempt": attempt,
                                "duration_ms": duration_ms,
                                "error_code": getattr(exc, "code", None),
                                "error_type": type(exc).__name__,
                            },
                        )
                        raise
                    if attempt >= self._max_attempts:
                        logger.error(
                            "command_conflict_exhausted",
                            extra={"attempts": attempt},
                        )
                        raise ConcurrencyConflictError(
                            entity_type,
                            str(entity_id) if entity_id is not None else "-",
                            attempts=attempt,
                        ) from exc
                    logger.info(
                        "command_conflict_retry",
                        extra={"attempt": attempt, "error_type": type(exc).__name__},
                    )
                    continue

                duration_ms = round((time.monotonic() - t0) * 1000, 2)
                logger.info(
                    "command_completed",
                    extra={"attempt": attempt, "duration_ms": duration_ms},
                )
                return result

    def _read(self, work: Callable[[Session], T]) -> T:
        with session_scope(self._session_factory) as session:
            return work(session)

    # Lifecycle commands

    def create_requisition(
        self,
        actor: ActorContext,
        fund_id: UUID,
        expense_category: ExpenseCategory | str,
        amount: Decimal | int | str,
        justification: str,
        creator_type: CreatorType | str | None = None,
    ) -> RequisitionSnapshot:
        def work(s: _Services) -> RequisitionSnapshot:
            requisition = s.requisitions.create(
                actor, fund_id, expense_category, amount, justification, creator_type
            )
            return RequisitionSnapshot.from_model(requisition)

        return self._run("create", actor, work, "Fund", fund_id, fund_id=str(fund_id))

    def submit(self, actor: ActorContext, requisition_id: UUID) -> RequisitionSnapshot:
        def work(s: _Services) -> RequisitionSnapshot:
            return RequisitionSnapshot.from_model(s.requisitions.submit(actor, requisition_id))

        return self._run(
            "submit", actor, work, "Requisition", requisition_id,
            requisition_id=str(requisition_id),
        )

    def approve(
        self,
        actor: ActorContext,
        requisition_id: UUID,
        approved_amount: Decimal | int | str | None = None,
    ) -> RequisitionSnapshot:
        def work(s: _Services) -> RequisitionSnapshot:
            requisition = s.requisitions.approve(actor, requisition_id, approved_amount)
            return RequisitionSnapshot.from_model(requisition)

        return self._run(
            "approve", actor, work, "Requisition", requisition_id,
            requisition_id=str(requisition_id),
        )

    def reject(
        self,
        actor: ActorContext,
        requisition_id: UUID,
        reason: str,
    ) -> RequisitionSnapshot:
        def work(s: _Services) -> RequisitionSnapshot:
            return RequisitionSnapshot.from_model(
                s.requisitions.reject(actor, requisition_id, reason)
            )

        return self._run(
            "reject", actor, work, "Requisition", requisition_id,
            requisition_id=str(requisition_id),
        )

    def cancel(
        self,
        actor: ActorContext,
        requisition_id: UUID,
        reason: str | None = None,
    ) -> RequisitionSnapshot:
        def work(s: _Services) -> RequisitionSnapshot:
            return RequisitionSnapshot.from_model(
                s.requisitions.cancel(actor, requisition_id, reason)
            )

        return self._run(
            "cancel", actor, work, "Requisition", requisition_id,
            requisition_id=str(requisition_id),
        )

    def execute(
        self,
        actor: ActorContext,
        requisition_id: UUID,
        payment_date: date,
        receipt_reference: str | None = None,
        notes: str | None = None,
    ) -> ExecutionResult:
        def work(s: _Services) -> ExecutionResult:
            requisition, movement, expense = s.requisitions.execute(
                actor, requisition_id, payment_date, receipt_reference, notes
            )
            fund = s.ledger.session.get(Fund, requisition.fund_id)
            return ExecutionResult(
                requisition=RequisitionSnapshot.from_model(requisition),
                fund=FundSnapshot.from_model(fund),
                movement=MovementRecord.from_model(movement),
                expense=ExpenseRecord.from_model(expense),
            )

        return self._run(
            "execute", actor, work, "Requisition", requisition_id,
            requisition_id=str(requisition_id),
        )

    # Ledger commands

    def _require_treasury_role(self, actor: ActorContext, command: str) -> None:
        resolver = self.resolver_for(actor.organization_id)
        if not (resolver.can_disburse(actor.roles) or resolver.is_admin(actor.roles)):
            raise UnauthorizedError(str(actor.user_id), command, "requires a treasury role")

    def record_income(
        self,
        actor: ActorContext,
        fund_id: UUID,
        amount: Decimal | int | str,
        income_date: date,
        source: str,
        income_type: IncomeType | str = IncomeType.OFFERING,
        payment_method: PaymentMethod | str = PaymentMethod.CASH,
    ) -> IncomeResult:
        """Credit a fund.  Needs a disbursement or admin role."""
        self._require_treasury_role(actor, "record_income")

        def work(s: _Services) -> IncomeResult:
            income, movement = s.income.record_income(
                actor, fund_id, amount, income_date, source, income_type, payment_method
            )
            fund = s.ledger.session.get(Fund, income.fund_id)
            return IncomeResult(
                income=IncomeRecord.from_model(income),
                fund=FundSnapshot.from_model(fund),
                movement=MovementRecord.from_model(movement),
            )

        return self._run(
            "record_income", actor, work, "Fund", fund_id, fund_id=str(fund_id)
        )

    def record_revenue(
        self,
        actor: ActorContext,
        total: Decimal | int | str,
        distribution: Mapping[UUID, Decimal | int | str],
        income_date: date,
        source: str,
        income_type: IncomeType | str = IncomeType.OFFERING,
        payment_method: PaymentMethod | str = PaymentMethod.CASH,
    ) -> RevenueResult:
        """
        Split one revenue across funds in a single transaction.

        ``distribution`` maps fund id to amount and must sum to ``total``.
        Needs a disbursement or admin role.
        """
        self._require_treasury_role(actor, "record_revenue")

        def work(s: _Services) -> RevenueResult:
            revenue_id, credited = s.income.record_revenue(
                actor, total, distribution, income_date, source, income_type, payment_method
            )
            incomes = tuple(IncomeRecord.from_model(income) for income, _ in credited)
            return RevenueResult(
                revenue_id=revenue_id,
                total=sum((income.amount for income in incomes), Decimal("0")),
                incomes=incomes,
                movements=tuple(MovementRecord.from_model(m) for _, m in credited),
                funds=tuple(
                    FundSnapshot.from_model(s.ledger.session.get(Fund, income.fund_id))
                    for income in incomes
                ),
            )

        return self._run("record_revenue", actor, work, "Revenue")

    def provision_funds(self, actor: ActorContext) -> ProvisionResult:
        """Create the organization's missing standard funds.  Admin only."""
        if not self.resolver_for(actor.organization_id).is_admin(actor.roles):
            raise UnauthorizedError(
                str(actor.user_id), "provision_funds", "requires an admin role"
            )

        def work(s: _Services) -> ProvisionResult:
            return s.ledger.provision_funds(actor.organization_id, actor.user_id)

        return self._run(
            "provision_funds", actor, work, "Organization", actor.organization_id
        )

    # Reads

    def get_requisition(self, actor: ActorContext, requisition_id: UUID) -> RequisitionSnapshot:
        snapshot = self._read(
            lambda session: RequisitionSelector(session).get(
                actor.organization_id, requisition_id
            )
        )
        if snapshot is None:
            raise RequisitionNotFoundError(str(requisition_id))
        return snapshot

    def requisition_by_code(self, actor: ActorContext, code: str) -> RequisitionSnapshot:
        code = require_text(code, "code").upper()
        snapshot = self._read(
            lambda session: RequisitionSelector(session).get_by_code(
                actor.organization_id, code
            )
        )
        if snapshot is None:
            raise RequisitionNotFoundError(code)
        return snapshot

    def list_requisitions(
        self,
        actor: ActorContext,
        state: RequisitionState | str | None = None,
        fund_id: UUID | None = None,
    ) -> list[RequisitionSnapshot]:
        wanted = parse_enum(RequisitionState, state, "state") if state is not None else None

        def work(session: Session) -> list[RequisitionSnapshot]:
            selector = RequisitionSelector(session)
            if fund_id is not None:
                rows = selector.list_by_fund(actor.organization_id, fund_id)
                if wanted is not None:
                    rows = [r for r in rows if r.state == wanted]
                return rows
            if wanted is not None:
                return selector.list_by_state(actor.organization_id, wanted)
            return selector.list_for_organization(actor.organization_id)

        return self._read(work)

    def pending_approvals(self, actor: ActorContext) -> list[RequisitionSnapshot]:
        """UNDER_REVIEW requisitions this actor could approve right now."""
        resolver = self.resolver_for(actor.organization_id)
        return self._read(
            lambda session: RequisitionSelector(session).pending_for_approver(
                actor.organization_id, actor.roles, resolver, actor.user_id
            )
        )

    def get_fund(self, actor: ActorContext, fund_id: UUID) -> FundSnapshot:
        snapshot = self._read(
            lambda session: FundSelector(session).get_fund(actor.organization_id, fund_id)
        )
        if snapshot is None:
            raise FundNotFoundError(str(fund_id))
        return snapshot

    def fund_by_category(
        self,
        actor: ActorContext,
        category: FundCategory | str,
    ) -> FundSnapshot:
        kind = parse_enum(FundCategory, category, "category")
        snapshot = self._read(
            lambda session: FundSelector(session).get_fund_by_category(
                actor.organization_id, kind
            )
        )
        if snapshot is None:
            raise FundNotFoundError(kind.value)
        return snapshot

    def list_funds(self, actor: ActorContext) -> list[FundSnapshot]:
        return self._read(
            lambda session: FundSelector(session).list_funds(actor.organization_id)
        )

    def fund_movements(self, actor: ActorContext, fund_id: UUID) -> list[MovementRecord]:
        self.get_fund(actor, fund_id)
        return self._read(lambda session: FundSelector(session).movements(fund_id))

    def fund_expenses(self, actor: ActorContext, fund_id: UUID) -> list[ExpenseRecord]:
        self.get_fund(actor, fund_id)
        return self._read(lambda session: FundSelector(session).expenses(fund_id))

    def fund_incomes(self, actor: ActorContext, fund_id: UUID) -> list[IncomeRecord]:
        self.get_fund(actor, fund_id)
        return self._read(lambda session: FundSelector(session).incomes(fund_id))

    def expense_for_requisition(
        self,
        actor: ActorContext,
        requisition_id: UUID,
    ) -> ExpenseRecord | None:
        """The expense an executed requisition produced; None before execution."""
        self.get_requisition(actor, requisition_id)
        return self._read(
            lambda session: FundSelector(session).expense_for_requisition(requisition_id)
        )

    def reconcile_fund(self, actor: ActorContext, fund_id: UUID) -> FundReconciliation:
        self.get_fund(actor, fund_id)
        return self._read(lambda session: FundSelector(session).reconcile(fund_id))

    def audit_trace(
        self,
        actor: ActorContext,
        requisition_id: UUID,
    ) -> AuditTrace:
        """Audit history of one requisition of the actor's organization."""
        self.get_requisition(actor, requisition_id)
        return self._read(
            lambda session: AuditorService(session, self._clock).get_trace(
                "Requisition", requisition_id
            )
        )

    def validate_audit_chain(self) -> bool:
        return self._read(lambda session: AuditorService(session, self._clock).validate_chain())
