"""
Requisition lifecycle -- the pure transition table.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  RequisitionService
    consults this table before mutating a row; the ORM state guard in
    ``db/immutability.py`` consults it again on flush.

Invariants enforced:
    - State only moves along the edges of ``TRANSITIONS``.
    - REJECTED, EXECUTED and CANCELLED are terminal: no command is legal.
    - UNDER_REVIEW -> UNDER_REVIEW is the only self-edge (an intermediate
      approval hop).

    ====================  =========  ====================
    From                  Command    To
    ====================  =========  ====================
    (none)                create     PENDING
    PENDING               submit     UNDER_REVIEW
    PENDING               cancel     CANCELLED
    UNDER_REVIEW          approve    UNDER_REVIEW|APPROVED
    UNDER_REVIEW          reject     REJECTED
    UNDER_REVIEW          cancel     CANCELLED
    APPROVED              execute    EXECUTED
    APPROVED              cancel     CANCELLED
    ====================  =========  ====================
"""

from __future__ import annotations

from enum import Enum

from treasury_kernel.exceptions import InvalidTransitionError


class RequisitionState(str, Enum):
    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXECUTED = "executed"
    CANCELLED = "cancelled"


class RequisitionCommand(str, Enum):
    CREATE = "create"
    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
    EXECUTE = "execute"
    CANCEL = "cancel"


class ExpenseCategory(str, Enum):
    """What the money is spent on."""

    FOOD = "food"
    TRANSPORT = "transport"
    ACCOMMODATION = "accommodation"
    OFFICE_MATERIAL = "office_material"
    LITURGICAL_MATERIAL = "liturgical_material"
    EQUIPMENT = "equipment"
    MAINTENANCE = "maintenance"
    SOCIAL_SUPPORT = "social_support"
    EVENT_ORGANIZATION = "event_organization"
    TRAINING = "training"
    HEALTH_EMERGENCY = "health_emergency"
    MISSIONARY_PROJECTS = "missionary_projects"
    COMMUNICATION = "communication"
    ENERGY_WATER = "energy_water"
    FUEL = "fuel"
    OTHER = "other"


TERMINAL_STATES = frozenset(
    {
        RequisitionState.REJECTED,
        RequisitionState.EXECUTED,
        RequisitionState.CANCELLED,
    }
)

# (from_state, command) -> states the command may lead to
TRANSITIONS: dict[tuple[RequisitionState | None, RequisitionCommand], frozenset[RequisitionState]] = {
    (None, RequisitionCommand.CREATE): frozenset({RequisitionState.PENDING}),
    (RequisitionState.PENDING, RequisitionCommand.SUBMIT): frozenset(
        {RequisitionState.UNDER_REVIEW}
    ),
    (RequisitionState.PENDING, RequisitionCommand.CANCEL): frozenset(
        {RequisitionState.CANCELLED}
    ),
    (RequisitionState.UNDER_REVIEW, RequisitionCommand.APPROVE): frozenset(
        {RequisitionState.UNDER_REVIEW, RequisitionState.APPROVED}
    ),
    (RequisitionState.UNDER_REVIEW, RequisitionCommand.REJECT): frozenset(
        {RequisitionState.REJECTED}
    ),
    (RequisitionState.UNDER_REVIEW, RequisitionCommand.CANCEL): frozenset(
        {RequisitionState.CANCELLED}
    ),
    (RequisitionState.APPROVED, RequisitionCommand.EXECUTE): frozenset(
        {RequisitionState.EXECUTED}
    ),
    (RequisitionState.APPROVED, RequisitionCommand.CANCEL): frozenset(
        {RequisitionState.CANCELLED}
    ),
}

_ALLOWED_EDGES: frozenset[tuple[RequisitionState | None, RequisitionState]] = frozenset(
    (source, target)
    for (source, _), targets in TRANSITIONS.items()
    for target in targets
)


def is_legal_edge(
    source: RequisitionState | None,
    target: RequisitionState,
) -> bool:
    """True iff some command moves a requisition from ``source`` to ``target``."""
    return (source, target) in _ALLOWED_EDGES


def validate_transition(
    requisition_id: object,
    current: RequisitionState,
    command: RequisitionCommand,
) -> frozenset[RequisitionState]:
    """Return the target states ``command`` may reach from ``current``.

    Raises:
        InvalidTransitionError: the command is not legal from ``current``.
    """
    targets = TRANSITIONS.get((current, command))
    if targets is None:
        raise InvalidTransitionError(
            requisition_id=str(requisition_id),
            current_state=current.value,
            command=command.value,
        )
    return targets
