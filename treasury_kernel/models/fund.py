"""
Module: treasury_kernel.models.fund
Responsibility: ORM persistence for organization-scoped funds and their
    stored balance.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain enums only.

Invariants enforced:
    - balance >= 0 (DB CHECK constraint; LedgerService checks first).
    - One fund per (organization_id, category).
    - version is a SQLAlchemy version counter: a lost update raises
      StaleDataError instead of silently overwriting a concurrent debit.

Failure modes:
    - IntegrityError on a duplicate (organization, category) or a negative
      balance reaching the database.
    - StaleDataError when the row changed since it was loaded.

Audit relevance:
    The stored balance must always equal the sum of the fund's CREDIT
    movements minus its DEBIT movements (FundSelector.reconcile).
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from treasury_kernel.db.base import TrackedBase, UUIDString
from treasury_kernel.domain.ledger import FundCategory


class Fund(TrackedBase):
    """
    A typed bucket of money belonging to one organization.

    Contract:
        ``balance`` is only changed by LedgerService (credit on income,
        debit on execution), always under a row lock.
    """

    __tablename__ = "funds"

    __table_args__ = (
        UniqueConstraint("organization_id", "category", name="uq_fund_org_category"),
        CheckConstraint("balance >= 0", name="ck_fund_balance_non_negative"),
        Index("idx_fund_organization", "organization_id"),
    )

    organization_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    category: Mapped[FundCategory] = mapped_column(
        String(30),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    description: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    balance: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
        default=Decimal("0"),
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Fund {self.category} org={self.organization_id} balance={self.balance}>"
