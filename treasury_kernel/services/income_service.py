"""
IncomeService -- records money received into funds.

Responsibility:
    Validates an income command, inserts the Income row, credits the fund
    through LedgerService (CREDIT movement, reference type INCOME) and
    appends the audit event, all in the caller's transaction.  A revenue
    split across several funds writes one Income and one CREDIT movement
    per allocation and a single REVENUE_RECORDED audit event.

Architecture position:
    Kernel > Services.  Called by TreasuryOrchestrator.record_income and
    TreasuryOrchestrator.record_revenue.

Invariants enforced:
    - The allocations of a revenue sum exactly to its total.
    - Funds of a revenue are locked in ascending id order, so two revenues
      touching the same funds never deadlock each other.

Failure modes:
    - ValidationError: non-positive amount, blank source, unknown income
      type or payment method, empty distribution, allocations that do not
      sum to the total.
    - FundNotFoundError: fund unknown within the actor's organization.
    - FundInactiveError: the fund is deactivated.
"""

from collections.abc import Mapping
from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from treasury_kernel.domain.clock import Clock
from treasury_kernel.domain.dtos import ActorContext
from treasury_kernel.domain.ledger import IncomeType, PaymentMethod, ReferenceType
from treasury_kernel.domain.values import parse_amount, parse_enum, require_text
from treasury_kernel.exceptions import FundInactiveError, ValidationError
from treasury_kernel.logging_config import get_logger
from treasury_kernel.models.audit_event import AuditAction
from treasury_kernel.models.fund import Fund
from treasury_kernel.models.income import Income
from treasury_kernel.models.movement import Movement
from treasury_kernel.services.auditor_service import AuditorService
from treasury_kernel.services.base import BaseService
from treasury_kernel.services.ledger_service import LedgerService

logger = get_logger("services.income")


class IncomeService(BaseService):
    def __init__(
        self,
        session: Session,
        ledger: LedgerService,
        auditor: AuditorService,
        clock: Clock | None = None,
    ):
        super().__init__(session, clock)
        self._ledger = ledger
        self._auditor = auditor

    def _active_fund(self, actor: ActorContext, fund_id: UUID) -> Fund:
        fund = self._ledger.get_fund_for_update(fund_id, actor.organization_id)
        if not fund.is_active:
            raise FundInactiveError(str(fund_id))
        return fund

    def _credit(
        self,
        actor: ActorContext,
        fund: Fund,
        amount: Decimal,
        income_date: date,
        source: str,
        income_type: IncomeType,
        payment_method: PaymentMethod,
        revenue_id: UUID | None = None,
    ) -> tuple[Income, Movement]:
        income = Income(
            id=uuid4(),
            organization_id=actor.organization_id,
            fund_id=fund.id,
            amount=amount,
            income_date=income_date,
            source=source,
            income_type=income_type,
            payment_method=payment_method,
            revenue_id=revenue_id,
            recorded_by_id=actor.user_id,
            created_at=self.clock.now(),
        )
        self.session.add(income)
        self.session.flush()

        movement = self._ledger.credit_fund(
            fund_id=fund.id,
            amount=amount,
            reference_id=income.id,
            reference_type=ReferenceType.INCOME,
            actor_id=actor.user_id,
            movement_date=income_date,
            description=source,
            organization_id=actor.organization_id,
        )
        return income, movement

    def record_income(
        self,
        actor: ActorContext,
        fund_id: UUID,
        amount: Decimal | int | str,
        income_date: date,
        source: str,
        income_type: IncomeType | str = IncomeType.OFFERING,
        payment_method: PaymentMethod | str = PaymentMethod.CASH,
    ) -> tuple[Income, Movement]:
        """Record an income and credit its fund."""
        value = parse_amount(amount)
        source = require_text(source, "source")
        kind = parse_enum(IncomeType, income_type, "income_type")
        method = parse_enum(PaymentMethod, payment_method, "payment_method")

        fund = self._active_fund(actor, fund_id)
        income, movement = self._credit(
            actor, fund, value, income_date, source, kind, method
        )

        self._auditor.record(
            action=AuditAction.INCOME_RECORDED,
            entity_id=income.id,
            entity_type="Income",
            actor_id=actor.user_id,
            payload={
                "fund_id": fund.id,
                "amount": value,
                "income_date": income_date,
                "source": source,
                "income_type": kind.value,
                "payment_method": method.value,
                "balance_after": fund.balance,
            },
            organization_id=actor.organization_id,
        )

        logger.info(
            "income_recorded",
            extra={
                "income_id": str(income.id),
                "fund_id": str(fund.id),
                "amount": str(value),
                "income_type": kind.value,
            },
        )
        return income, movement

    def record_revenue(
        self,
        actor: ActorContext,
        total: Decimal | int | str,
        distribution: Mapping[UUID, Decimal | int | str],
        income_date: date,
        source: str,
        income_type: IncomeType | str = IncomeType.OFFERING,
        payment_method: PaymentMethod | str = PaymentMethod.CASH,
    ) -> tuple[UUID, list[tuple[Income, Movement]]]:
        """
        Record one revenue split across funds.

        ``distribution`` maps fund id to the amount that fund receives.
        Every fund is validated before any fund is credited.

        Returns:
            The revenue id and one (Income, Movement) pair per fund, in
            fund id order.
        """
        value = parse_amount(total, "total")
        source = require_text(source, "source")
        kind = parse_enum(IncomeType, income_type, "income_type")
        method = parse_enum(PaymentMethod, payment_method, "payment_method")

        if not distribution:
            raise ValidationError("distribution", "must allocate to at least one fund")
        allocations = {
            fund_id: parse_amount(amount, f"distribution[{fund_id}]")
            for fund_id, amount in distribution.items()
        }
        allocated = sum(allocations.values(), Decimal("0"))
        if allocated != value:
            raise ValidationError(
                "distribution", f"allocations sum to {allocated}, expected {value}"
            )

        ordered = sorted(allocations, key=str)
        funds = [self._active_fund(actor, fund_id) for fund_id in ordered]

        revenue_id = uuid4()
        credited = [
            self._credit(
                actor, fund, allocations[fund_id], income_date, source, kind, method, revenue_id
            )
            for fund_id, fund in zip(ordered, funds)
        ]

        self._auditor.record(
            action=AuditAction.REVENUE_RECORDED,
            entity_id=revenue_id,
            entity_type="Revenue",
            actor_id=actor.user_id,
            payload={
                "total": value,
                "income_date": income_date,
                "source": source,
                "income_type": kind.value,
                "payment_method": method.value,
                "distribution": [
                    {"fund_id": income.fund_id, "income_id": income.id, "amount": income.amount}
                    for income, _ in credited
                ],
            },
            organization_id=actor.organization_id,
        )

        logger.info(
            "revenue_recorded",
            extra={
                "revenue_id": str(revenue_id),
                "total": str(value),
                "fund_count": len(credited),
                "income_type": kind.value,
            },
        )
        return revenue_id, credited
