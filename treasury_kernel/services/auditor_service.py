"""
AuditorService -- tamper-evident audit trail and hash chain maintenance.

Responsibility:
    Creates immutable, hash-chained audit events for every requisition
    transition, income recording and fund provisioning.  Provides chain
    validation for tamper detection and trace queries for review.

Architecture position:
    Kernel > Services -- imperative shell, called by RequisitionService,
    IncomeService and LedgerService inside the command's transaction.

Invariants enforced:
    - Sequence monotonicity via SequenceService (never raw SQL max+1).
    - Audit chain integrity: every event's ``hash`` covers its payload
      hash and its predecessor's hash.
    - Append-only: audit events are never modified or deleted (ORM
      listener on the AuditEvent model).

Failure modes:
    - AuditChainBrokenError: recomputed hash does not match the stored
      hash, or prev_hash does not match the predecessor's hash.
    - Any failure writing the audit row propagates and aborts the
      enclosing transition: there is no transition without its record.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from treasury_kernel.domain.clock import Clock, SystemClock
from treasury_kernel.exceptions import AuditChainBrokenError
from treasury_kernel.logging_config import get_logger
from treasury_kernel.models.audit_event import AuditAction, AuditEvent
from treasury_kernel.services.sequence_service import SequenceService
from treasury_kernel.utils.hashing import hash_audit_event, hash_payload, to_json_safe

logger = get_logger("services.auditor")


@dataclass(frozen=True)
class AuditTraceEntry:
    """A single entry in an audit trace."""

    seq: int
    action: AuditAction
    occurred_at: datetime
    actor_id: UUID
    payload: dict[str, Any]
    hash: str


@dataclass(frozen=True)
class AuditTrace:
    """All audit events of one entity, in chronological order."""

    entity_type: str
    entity_id: UUID
    entries: tuple[AuditTraceEntry, ...]

    @property
    def actions(self) -> tuple[AuditAction, ...]:
        return tuple(entry.action for entry in self.entries)

    @property
    def last_action(self) -> AuditAction | None:
        return self.entries[-1].action if self.entries else None


class AuditorService:
    """
    Service for creating and validating tamper-evident audit events.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT interpret or act on audit events.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequence_service = SequenceService(session)

    def _get_last_hash(self) -> str | None:
        """Hash of the most recent audit event."""
        last_event = self._session.execute(
            select(AuditEvent)
            .order_by(AuditEvent.seq.desc())
            .limit(1)
        ).scalar_one_or_none()

        return last_event.hash if last_event else None

    def record(
        self,
        action: AuditAction,
        entity_id: UUID,
        entity_type: str,
        actor_id: UUID,
        payload: dict[str, Any] | None = None,
        organization_id: UUID | None = None,
    ) -> AuditEvent:
        """
        Append one audit event to the chain.

        Postconditions:
            - A new AuditEvent row is flushed with a monotonically
              increasing ``seq`` and a valid hash chain link.

        Returns:
            The created AuditEvent.
        """
        # The audit counter lock also serializes reads of the chain tail
        seq = self._sequence_service.next_value(SequenceService.AUDIT_EVENT)

        prev_hash = self._get_last_hash()

        payload_data = to_json_safe(payload or {})
        computed_payload_hash = hash_payload(payload_data)

        event_hash = hash_audit_event(
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action.value,
            payload_hash=computed_payload_hash,
            prev_hash=prev_hash,
        )

        audit_event = AuditEvent(
            seq=seq,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            actor_id=actor_id,
            organization_id=organization_id,
            occurred_at=self._clock.now(),
            payload=payload_data,
            payload_hash=computed_payload_hash,
            prev_hash=prev_hash,
            hash=event_hash,
        )

        self._session.add(audit_event)
        self._session.flush()

        logger.info(
            "audit_event_created",
            extra={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "action": action.value,
                "seq": seq,
            },
        )

        return audit_event

    def record_transition(
        self,
        action: AuditAction,
        requisition_id: UUID,
        organization_id: UUID,
        actor_id: UUID,
        previous_state: str | None,
        new_state: str,
        changes: dict[str, Any] | None = None,
    ) -> AuditEvent:
        """
        Record one requisition state transition.

        ``previous_state`` is None for creation.
        """
        payload: dict[str, Any] = {
            "previous_state": previous_state,
            "new_state": new_state,
        }
        if changes:
            payload["changes"] = changes
        return self.record(
            action=action,
            entity_id=requisition_id,
            entity_type="Requisition",
            actor_id=actor_id,
            payload=payload,
            organization_id=organization_id,
        )

    # Chain validation

    def validate_chain(self) -> bool:
        """
        Validate the entire audit chain.

        Returns ``True`` only if every event's stored ``hash`` matches the
        recomputed value and every ``prev_hash`` matches its predecessor.

        Raises:
            AuditChainBrokenError: If chain validation fails at any point.
        """
        events = self._session.execute(
            select(AuditEvent).order_by(AuditEvent.seq)
        ).scalars().all()

        if not events:
            return True

        if events[0].prev_hash is not None:
            logger.critical("audit_chain_broken", extra={"seq": events[0].seq})
            raise AuditChainBrokenError(events[0].seq, "None", events[0].prev_hash)

        for i, event in enumerate(events):
            action_value = (
                event.action.value if isinstance(event.action, AuditAction) else event.action
            )

            if hash_payload(event.payload or {}) != event.payload_hash:
                logger.critical("audit_chain_broken", extra={"seq": event.seq})
                raise AuditChainBrokenError(
                    event.seq,
                    hash_payload(event.payload or {}),
                    event.payload_hash,
                )

            expected_hash = hash_audit_event(
                entity_type=event.entity_type,
                entity_id=str(event.entity_id),
                action=action_value,
                payload_hash=event.payload_hash,
                prev_hash=event.prev_hash,
            )
            if event.hash != expected_hash:
                logger.critical("audit_chain_broken", extra={"seq": event.seq})
                raise AuditChainBrokenError(event.seq, expected_hash, event.hash)

            if i > 0:
                expected_prev = events[i - 1].hash
                if event.prev_hash != expected_prev:
                    logger.critical("audit_chain_broken", extra={"seq": event.seq})
                    raise AuditChainBrokenError(
                        event.seq,
                        expected_prev,
                        event.prev_hash or "None",
                    )

        logger.info(
            "audit_chain_valid",
            extra={"event_count": len(events)},
        )
        return True

    # Trace and query methods

    def get_trace(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> AuditTrace:
        """Complete audit trace for an entity, oldest first."""
        events = self._session.execute(
            select(AuditEvent)
            .where(
                AuditEvent.entity_type == entity_type,
                AuditEvent.entity_id == entity_id,
            )
            .order_by(AuditEvent.seq)
        ).scalars().all()

        entries = tuple(
            AuditTraceEntry(
                seq=event.seq,
                action=AuditAction(event.action),
                occurred_at=event.occurred_at,
                actor_id=event.actor_id,
                payload=event.payload or {},
                hash=event.hash,
            )
            for event in events
        )

        return AuditTrace(
            entity_type=entity_type,
            entity_id=entity_id,
            entries=entries,
        )

    def count(self, entity_type: str | None = None, entity_id: UUID | None = None) -> int:
        """Number of audit events, optionally restricted to one entity."""
        query = select(func.count()).select_from(AuditEvent)
        if entity_type is not None:
            query = query.where(AuditEvent.entity_type == entity_type)
        if entity_id is not None:
            query = query.where(AuditEvent.entity_id == entity_id)
        return self._session.execute(query).scalar_one()
