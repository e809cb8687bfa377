"""
Ledger vocabulary -- fund categories, movement kinds and income kinds.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  Shared by models, services and DTOs.
"""

from enum import Enum


class FundCategory(str, Enum):
    """The ten fund buckets every organization carries."""

    GENERAL = "general"
    CONSTRUCTION = "construction"
    MISSIONS = "missions"
    SOCIAL = "social"
    EVENTS = "events"
    EMERGENCY = "emergency"
    SPECIAL_PROJECTS = "special_projects"
    YOUTH = "youth"
    WOMEN = "women"
    MAINTENANCE = "maintenance"


class MovementType(str, Enum):
    """Direction of a ledger movement.

    Amount is always positive; the type carries the sign.
    """

    CREDIT = "credit"
    DEBIT = "debit"


class ReferenceType(str, Enum):
    """What produced a movement."""

    INCOME = "income"
    EXPENSE = "expense"


class IncomeType(str, Enum):
    """Kind of money received.

    Corrections are recorded as AUTHORIZED_ADJUSTMENT incomes, never as
    edits of an earlier income.
    """

    TITHE = "tithe"
    OFFERING = "offering"
    SPECIAL_OFFERING = "special_offering"
    DESIGNATED_OFFERING = "designated_offering"
    MONTHLY_CONTRIBUTION = "monthly_contribution"
    EXTERNAL_DONATION = "external_donation"
    INTER_CHURCH_TRANSFER = "inter_church_transfer"
    AUTHORIZED_ADJUSTMENT = "authorized_adjustment"


class PaymentMethod(str, Enum):
    """How the money arrived."""

    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    INTERNAL_TRANSFER = "internal_transfer"
    MPESA = "mpesa"
    EMOLA = "emola"
    MKESH = "mkesh"
    OTHER = "other"
