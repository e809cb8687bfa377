"""
Module: treasury_kernel.models.movement
Responsibility: ORM persistence for ledger movements, the append-only
    history behind every fund balance change.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain enums only.

Invariants enforced:
    - amount > 0; movement_type carries the sign (DB CHECK).
    - Append-only: UPDATE and DELETE raise ImmutabilityViolationError
      (ORM listener in db/immutability.py).

Audit relevance:
    sum(CREDIT) - sum(DEBIT) over a fund's movements must equal the
    fund's stored balance.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, DateTime, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from treasury_kernel.db.base import Base, UUIDString
from treasury_kernel.domain.ledger import MovementType, ReferenceType


class Movement(Base):
    """
    One immutable change to a fund balance.

    Guarantees:
        - ``reference_id`` points at the Income or Expense that produced
          the movement, as named by ``reference_type``.
    """

    __tablename__ = "movements"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_movement_amount_positive"),
        CheckConstraint(
            "movement_type IN ('credit', 'debit')",
            name="ck_movement_valid_type",
        ),
        Index("idx_movement_fund", "fund_id"),
        Index("idx_movement_reference", "reference_type", "reference_id"),
    )

    fund_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("funds.id"),
        nullable=False,
    )

    organization_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    movement_type: Mapped[MovementType] = mapped_column(
        String(10),
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
    )

    reference_type: Mapped[ReferenceType] = mapped_column(
        String(20),
        nullable=False,
    )

    reference_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    movement_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    description: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    created_by_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Movement {self.movement_type} {self.amount} fund={self.fund_id}>"

    @property
    def signed_amount(self) -> Decimal:
        """+amount for CREDIT, -amount for DEBIT."""
        if self.movement_type == MovementType.DEBIT:
            return -self.amount
        return self.amount
