"""
ORM-Level Immutability and Lifecycle Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

The ledger history must be tamper-proof.  A movement, an expense, an income
or an audit event, once flushed, is a fact: it is never edited or removed.
Corrections happen by recording new facts.

Services already respect these rules.  This module is the second layer:
it catches any code path (a bug, a script, a careless test) that tries to
modify history through the ORM, and it refuses requisition state changes
that skip the lifecycle.

    session.flush()
         |
         v
    [before_update event] --> _check_*() --> ImmutabilityViolationError
         |                                   InvalidTransitionError
         v
    [before_delete event] --> _check_*() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity        | Rule
--------------|-----------------------------------------------------------
AuditEvent    | ALWAYS immutable, never deleted
Movement      | ALWAYS immutable, never deleted
Expense       | ALWAYS immutable, never deleted
Income        | ALWAYS immutable, never deleted
Requisition   | state changes only along lifecycle edges; never deleted

===============================================================================
USAGE
===============================================================================

Called by ``create_tables()``:

    from treasury_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()

To temporarily disable (TESTS ONLY):

    from treasury_kernel.db.immutability import unregister_immutability_listeners
    unregister_immutability_listeners()
"""

from sqlalchemy import event
from sqlalchemy.orm.attributes import get_history

from treasury_kernel.exceptions import ImmutabilityViolationError, InvalidTransitionError
from treasury_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _block(entity_type: str, target, operation: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    verb = "modified" if operation == "UPDATE" else "deleted"
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=f"{entity_type} records are append-only and cannot be {verb}",
    )


def _check_append_only_update(mapper, connection, target):
    """Prevent any update to an append-only row."""
    _block(type(target).__name__, target, "UPDATE")


def _check_append_only_delete(mapper, connection, target):
    """Prevent deletion of an append-only row."""
    _block(type(target).__name__, target, "DELETE")


def _check_requisition_transition(mapper, connection, target):
    """
    Reject a requisition state change that is not a lifecycle edge.

    Uses attribute history, so the check sees the state the row had when
    it was loaded, not just the value being written.
    """
    from treasury_kernel.domain.requisition import RequisitionState, is_legal_edge

    history = get_history(target, "state")
    if not history.has_changes() or not history.deleted:
        return

    previous = RequisitionState(history.deleted[0])
    current = RequisitionState(target.state)
    if is_legal_edge(previous, current):
        return

    logger.error(
        "requisition_transition_blocked",
        extra={
            "requisition_id": str(target.id),
            "from_state": previous.value,
            "to_state": current.value,
        },
    )
    raise InvalidTransitionError(
        requisition_id=str(target.id),
        current_state=previous.value,
        command=f"move to {current.value}",
    )


def _check_requisition_delete(mapper, connection, target):
    """Requisitions are cancelled or rejected, never deleted."""
    _block("Requisition", target, "DELETE")


def _listeners():
    from treasury_kernel.models import AuditEvent, Expense, Income, Movement, Requisition

    pairs = []
    for model in (AuditEvent, Movement, Expense, Income):
        pairs.append((model, "before_update", _check_append_only_update))
        pairs.append((model, "before_delete", _check_append_only_delete))
    pairs.append((Requisition, "before_update", _check_requisition_transition))
    pairs.append((Requisition, "before_delete", _check_requisition_delete))
    return pairs


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Idempotent: a listener already registered is not added twice.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests where you need to intentionally
    violate immutability rules to verify detection.
    """
    for target, event_name, listener_fn in _listeners():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
