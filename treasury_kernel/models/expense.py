"""
Module: treasury_kernel.models.expense
Responsibility: ORM persistence for disbursements of executed requisitions.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - At most one Expense per requisition (UNIQUE requisition_id).
    - Created in the same transaction as the fund debit and its DEBIT
      movement.
    - Append-only (ORM listener in db/immutability.py).
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, DateTime, ForeignKey, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from treasury_kernel.db.base import Base, UUIDString


class Expense(Base):
    """Money paid out of a fund for one executed requisition."""

    __tablename__ = "expenses"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_expense_amount_positive"),
    )

    requisition_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("requisitions.id"),
        nullable=False,
        unique=True,
    )

    fund_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("funds.id"),
        nullable=False,
        index=True,
    )

    organization_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
    )

    payment_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    paid_by_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    receipt_reference: Mapped[str | None] = mapped_column(
        String(200),
        nullable=True,
    )

    notes: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Expense {self.amount} requisition={self.requisition_id}>"
