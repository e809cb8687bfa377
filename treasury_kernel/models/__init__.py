"""ORM models for the treasury kernel."""

from treasury_kernel.models.audit_event import AuditAction, AuditEvent
from treasury_kernel.models.expense import Expense
from treasury_kernel.models.fund import Fund
from treasury_kernel.models.income import Income
from treasury_kernel.models.movement import Movement
from treasury_kernel.models.requisition import Requisition

__all__ = [
    "AuditAction",
    "AuditEvent",
    "Expense",
    "Fund",
    "Income",
    "Movement",
    "Requisition",
]
