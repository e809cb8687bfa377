"""
Module: treasury_kernel.models.income
Responsibility: ORM persistence for money received into a fund.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ledger.py only.

Invariants enforced:
    - amount > 0 (DB CHECK).
    - Created together with its CREDIT movement and the fund credit.
    - Allocations of one revenue share a revenue_id; their amounts sum to
      the revenue total.
    - Append-only (ORM listener in db/immutability.py).
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, DateTime, ForeignKey, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from treasury_kernel.db.base import Base, UUIDString
from treasury_kernel.domain.ledger import IncomeType, PaymentMethod


class Income(Base):
    """One receipt of money (offering, donation, transfer in)."""

    __tablename__ = "incomes"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_income_amount_positive"),
    )

    organization_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    fund_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("funds.id"),
        nullable=False,
        index=True,
    )

    amount: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
    )

    income_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    source: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )

    income_type: Mapped[IncomeType] = mapped_column(
        String(30),
        nullable=False,
        default=IncomeType.OFFERING,
    )

    payment_method: Mapped[PaymentMethod] = mapped_column(
        String(30),
        nullable=False,
        default=PaymentMethod.CASH,
    )

    # Shared by every allocation of one revenue split across funds
    revenue_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
        index=True,
    )

    recorded_by_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Income {self.amount} fund={self.fund_id}>"
