"""
Ledger service - the only writer of fund balances.

The Ledger is responsible for:
- Crediting a fund when income is recorded
- Debiting a fund when a requisition is executed, together with its
  DEBIT movement and its Expense row
- Provisioning the standard funds of an organization

The Ledger does NOT:
- Decide whether a requisition may be executed (RequisitionService)
- Commit or roll back (TreasuryOrchestrator owns the transaction)

Invariants enforced:
    - Every balance change happens under ``SELECT ... FOR UPDATE`` on the
      fund row, and the fund's version counter turns any lost update into
      StaleDataError.
    - balance >= amount is checked on the locked row before any debit; the
      DB CHECK constraint is the last line.
    - Every balance change has exactly one Movement, and the fund balance
      always equals sum(CREDIT) - sum(DEBIT).
"""

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from treasury_kernel.domain.clock import Clock
from treasury_kernel.domain.dtos import ProvisionResult
from treasury_kernel.domain.ledger import FundCategory, MovementType, ReferenceType
from treasury_kernel.exceptions import FundNotFoundError, InsufficientBalanceError
from treasury_kernel.logging_config import get_logger
from treasury_kernel.models.audit_event import AuditAction
from treasury_kernel.models.expense import Expense
from treasury_kernel.models.fund import Fund
from treasury_kernel.models.movement import Movement
from treasury_kernel.services.base import BaseService

if TYPE_CHECKING:
    from treasury_kernel.services.auditor_service import AuditorService

logger = get_logger("services.ledger")


def default_fund_name(category: FundCategory) -> str:
    return category.value.replace("_", " ").title() + " Fund"


class LedgerService(BaseService):
    """
    Fund balance mutations.

    All operations happen within the caller's transaction boundary.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        auditor: "AuditorService | None" = None,
    ):
        super().__init__(session, clock)
        self._auditor = auditor

    def get_fund_for_update(
        self,
        fund_id: UUID,
        organization_id: UUID | None = None,
    ) -> Fund:
        """
        Load and lock a fund row.

        Raises:
            FundNotFoundError: unknown id, or the fund belongs to another
                organization.
        """
        fund = self.session.execute(
            select(Fund)
            .where(Fund.id == fund_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

        if fund is None or (
            organization_id is not None and fund.organization_id != organization_id
        ):
            raise FundNotFoundError(str(fund_id))
        return fund

    def credit_fund(
        self,
        fund_id: UUID,
        amount: Decimal,
        reference_id: UUID,
        reference_type: ReferenceType,
        actor_id: UUID,
        movement_date: date,
        description: str | None = None,
        organization_id: UUID | None = None,
    ) -> Movement:
        """
        Increase a fund's balance and record the CREDIT movement.

        Preconditions:
            - ``amount`` > 0 (validated at the command boundary).
        """
        fund = self.get_fund_for_update(fund_id, organization_id)
        fund.balance = fund.balance + amount

        movement = Movement(
            fund_id=fund.id,
            organization_id=fund.organization_id,
            movement_type=MovementType.CREDIT,
            amount=amount,
            reference_type=reference_type,
            reference_id=reference_id,
            movement_date=movement_date,
            description=description,
            created_by_id=actor_id,
            created_at=self.clock.now(),
        )
        self.session.add(movement)
        self.session.flush()

        logger.info(
            "fund_credited",
            extra={
                "fund_id": str(fund.id),
                "amount": str(amount),
                "balance": str(fund.balance),
                "reference_type": reference_type.value,
                "reference_id": str(reference_id),
            },
        )
        return movement

    def debit_fund_for_execution(
        self,
        fund_id: UUID,
        amount: Decimal,
        requisition_id: UUID,
        actor_id: UUID,
        payment_date: date,
        receipt_reference: str | None = None,
        notes: str | None = None,
    ) -> tuple[Movement, Expense]:
        """
        Disburse ``amount`` from a fund for an executed requisition.

        Locks the fund, checks the balance, decrements it, and inserts the
        Expense and its DEBIT movement.  The caller must already hold the
        requisition lock (requisition before fund, always).

        Raises:
            InsufficientBalanceError: balance < amount.  Nothing changes.
        """
        fund = self.get_fund_for_update(fund_id)

        if fund.balance < amount:
            logger.warning(
                "insufficient_balance",
                extra={
                    "fund_id": str(fund.id),
                    "available": str(fund.balance),
                    "required": str(amount),
                },
            )
            raise InsufficientBalanceError(str(fund.id), fund.balance, amount)

        fund.balance = fund.balance - amount

        expense = Expense(
            id=uuid4(),
            requisition_id=requisition_id,
            fund_id=fund.id,
            organization_id=fund.organization_id,
            amount=amount,
            payment_date=payment_date,
            paid_by_id=actor_id,
            receipt_reference=receipt_reference,
            notes=notes,
            created_at=self.clock.now(),
        )
        movement = Movement(
            fund_id=fund.id,
            organization_id=fund.organization_id,
            movement_type=MovementType.DEBIT,
            amount=amount,
            reference_type=ReferenceType.EXPENSE,
            reference_id=expense.id,
            movement_date=payment_date,
            description=notes,
            created_by_id=actor_id,
            created_at=self.clock.now(),
        )
        self.session.add(expense)
        self.session.add(movement)
        self.session.flush()

        logger.info(
            "fund_debited",
            extra={
                "fund_id": str(fund.id),
                "requisition_id": str(requisition_id),
                "amount": str(amount),
                "balance": str(fund.balance),
            },
        )
        return movement, expense

    def provision_funds(self, organization_id: UUID, actor_id: UUID) -> ProvisionResult:
        """
        Create whichever of the standard funds the organization is missing.

        Idempotent: categories that already have a fund are skipped.
        """
        existing = set(
            FundCategory(category)
            for category in self.session.execute(
                select(Fund.category).where(Fund.organization_id == organization_id)
            ).scalars()
        )

        created: list[FundCategory] = []
        skipped: list[FundCategory] = []
        for category in FundCategory:
            if category in existing:
                skipped.append(category)
                continue
            fund = Fund(
                organization_id=organization_id,
                category=category,
                name=default_fund_name(category),
                balance=Decimal("0"),
                is_active=True,
                created_by_id=actor_id,
                created_at=self.clock.now(),
                updated_at=self.clock.now(),
            )
            self.session.add(fund)
            self.session.flush()
            created.append(category)

            if self._auditor is not None:
                self._auditor.record(
                    action=AuditAction.FUND_PROVISIONED,
                    entity_id=fund.id,
                    entity_type="Fund",
                    actor_id=actor_id,
                    payload={"category": category.value, "name": fund.name},
                    organization_id=organization_id,
                )

        logger.info(
            "funds_provisioned",
            extra={
                "organization_id": str(organization_id),
                "created_count": len(created),
                "skipped_count": len(skipped),
            },
        )
        return ProvisionResult(created=tuple(created), skipped=tuple(skipped))
