"""
Module: treasury_kernel.selectors.fund_selector
Responsibility: Read-only queries over funds and their ledger history,
    plus the balance reconciliation check.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Reconciliation derives the balance from movements only; the stored
      balance is compared against it, never trusted.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from treasury_kernel.domain.dtos import (
    ExpenseRecord,
    FundReconciliation,
    FundSnapshot,
    IncomeRecord,
    MovementRecord,
)
from treasury_kernel.domain.ledger import FundCategory, MovementType
from treasury_kernel.models.expense import Expense
from treasury_kernel.models.fund import Fund
from treasury_kernel.models.income import Income
from treasury_kernel.models.movement import Movement
from treasury_kernel.selectors.base import BaseSelector


class FundSelector(BaseSelector):
    """Fund and ledger queries returning frozen DTOs."""

    def get_fund(self, organization_id: UUID, fund_id: UUID) -> FundSnapshot | None:
        fund = self.session.execute(
            select(Fund).where(
                Fund.id == fund_id,
                Fund.organization_id == organization_id,
            )
        ).scalar_one_or_none()
        return FundSnapshot.from_model(fund) if fund else None

    def get_fund_by_category(
        self,
        organization_id: UUID,
        category: FundCategory,
    ) -> FundSnapshot | None:
        fund = self.session.execute(
            select(Fund).where(
                Fund.organization_id == organization_id,
                Fund.category == FundCategory(category).value,
            )
        ).scalar_one_or_none()
        return FundSnapshot.from_model(fund) if fund else None

    def list_funds(
        self,
        organization_id: UUID,
        include_inactive: bool = True,
    ) -> list[FundSnapshot]:
        query = select(Fund).where(Fund.organization_id == organization_id)
        if not include_inactive:
            query = query.where(Fund.is_active.is_(True))
        funds = self.session.execute(query.order_by(Fund.category)).scalars()
        return [FundSnapshot.from_model(f) for f in funds]

    def movements(self, fund_id: UUID) -> list[MovementRecord]:
        """Movements of a fund in the order they were written."""
        rows = self.session.execute(
            select(Movement)
            .where(Movement.fund_id == fund_id)
            .order_by(Movement.created_at, Movement.movement_date)
        ).scalars()
        return [MovementRecord.from_model(m) for m in rows]

    def expenses(self, fund_id: UUID) -> list[ExpenseRecord]:
        rows = self.session.execute(
            select(Expense)
            .where(Expense.fund_id == fund_id)
            .order_by(Expense.payment_date, Expense.created_at)
        ).scalars()
        return [ExpenseRecord.from_model(e) for e in rows]

    def expense_for_requisition(self, requisition_id: UUID) -> ExpenseRecord | None:
        expense = self.session.execute(
            select(Expense).where(Expense.requisition_id == requisition_id)
        ).scalar_one_or_none()
        return ExpenseRecord.from_model(expense) if expense else None

    def incomes(self, fund_id: UUID) -> list[IncomeRecord]:
        rows = self.session.execute(
            select(Income)
            .where(Income.fund_id == fund_id)
            .order_by(Income.income_date, Income.created_at)
        ).scalars()
        return [IncomeRecord.from_model(i) for i in rows]

    def reconcile(self, fund_id: UUID) -> FundReconciliation | None:
        """Compare the stored balance with sum(CREDIT) - sum(DEBIT)."""
        fund = self.session.get(Fund, fund_id)
        if fund is None:
            return None

        credits = Decimal("0")
        debits = Decimal("0")
        count = 0
        rows = self.session.execute(
            select(Movement.movement_type, Movement.amount).where(Movement.fund_id == fund_id)
        )
        for movement_type, amount in rows:
            count += 1
            if MovementType(movement_type) == MovementType.CREDIT:
                credits += amount
            else:
                debits += amount

        return FundReconciliation(
            fund_id=fund.id,
            stored_balance=fund.balance,
            total_credits=credits,
            total_debits=debits,
            movement_count=count,
        )
