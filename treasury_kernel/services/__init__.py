"""Write services and the command orchestrator of the treasury kernel."""

from treasury_kernel.services.auditor_service import AuditorService, AuditTrace, AuditTraceEntry
from treasury_kernel.services.income_service import IncomeService
from treasury_kernel.services.ledger_service import LedgerService
from treasury_kernel.services.requisition_service import RequisitionService
from treasury_kernel.services.sequence_service import SequenceCounter, SequenceService
from treasury_kernel.services.treasury_orchestrator import (
    ResolverFactory,
    TreasuryOrchestrator,
    is_concurrency_conflict,
)

__all__ = [
    "AuditTrace",
    "AuditTraceEntry",
    "AuditorService",
    "IncomeService",
    "LedgerService",
    "RequisitionService",
    "ResolverFactory",
    "SequenceCounter",
    "SequenceService",
    "TreasuryOrchestrator",
    "is_concurrency_conflict",
]
