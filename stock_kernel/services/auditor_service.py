"""
AuditorService -- tamper-evident audit trail and hash chain maintenance.

Responsibility:
    Creates immutable, hash-chained audit events for stocktaking
    transitions and stock receipts and issues.  Provides chain validation
    for tamper detection and trace queries for review.

Architecture position:
    Kernel > Services -- imperative shell, called by StocktakingWorkflow
    after the audited operation has flushed.

Invariants enforced:
    - Sequence monotonicity via SequenceService (never raw SQL max+1).
    - Chain integrity: ``hash = H(entity_type, entity_id, action,
      payload_hash, prev_hash)``.  Every event links to its predecessor.
    - Append-only: audit events are never modified or deleted (ORM
      listeners on the AuditEvent model).

Failure modes:
    - AuditChainBrokenError: Recomputed hash does not match stored hash,
      or prev_hash does not match the predecessor's hash.

Audit relevance:
    This IS the audit service.  Every record_* method funnels through
    ``_create_audit_event()``.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.dtos import (
    CompletionSummary,
    StockMovementRecord,
    StocktakingScope,
    StocktakingSessionInfo,
)
from stock_kernel.exceptions import AuditChainBrokenError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.audit_event import AuditAction, AuditEvent
from stock_kernel.services.sequence_service import SequenceService
from stock_kernel.utils.hashing import hash_audit_event, hash_payload, to_json_safe

logger = get_logger("services.auditor")


@dataclass(frozen=True)
class AuditTraceEntry:
    """A single entry in an audit trace."""

    seq: int
    action: AuditAction
    occurred_at: datetime
    actor_id: UUID
    summary: str
    payload: dict[str, Any]
    hash: str


@dataclass(frozen=True)
class AuditTrace:
    """All audit events of one entity in chronological order."""

    entity_type: str
    entity_id: UUID
    entries: tuple[AuditTraceEntry, ...]

    @property
    def is_empty(self) -> bool:
        return len(self.entries) == 0

    @property
    def first_action(self) -> AuditAction | None:
        return self.entries[0].action if self.entries else None

    @property
    def last_action(self) -> AuditAction | None:
        return self.entries[-1].action if self.entries else None


class AuditorService:
    """
    Service for creating and validating tamper-evident audit events.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT decide whether an audit failure is fatal; the workflow
          isolates audit writes in a savepoint.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequence_service = SequenceService(session)

    def _chain_head(self) -> str | None:
        """Hash of the newest event in the (global) chain, or None if empty."""
        return self._session.execute(
            select(AuditEvent.hash).order_by(AuditEvent.seq.desc()).limit(1)
        ).scalar_one_or_none()

    def _create_audit_event(
        self,
        tenant_id: UUID,
        entity_type: str,
        entity_id: UUID,
        action: AuditAction,
        actor_id: UUID,
        summary: str,
        payload: dict[str, Any] | None = None,
    ) -> AuditEvent:
        """Append one event to the chain and flush it."""
        body = to_json_safe(payload or {})
        body_hash = hash_payload(body)
        prev_hash = self._chain_head()

        event = AuditEvent(
            seq=self._sequence_service.next_value(SequenceService.AUDIT_EVENT),
            tenant_id=tenant_id,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action.value,
            actor_id=actor_id,
            occurred_at=self._clock.now(),
            summary=summary[:255],
            payload=body,
            payload_hash=body_hash,
            prev_hash=prev_hash,
            hash=hash_audit_event(entity_type, str(entity_id), action.value, body_hash, prev_hash),
        )
        self._session.add(event)
        self._session.flush()

        logger.info(
            "audit_event_created",
            extra={"action": action.value, "entity_type": entity_type, "seq": event.seq},
        )
        return event

    # Stocktaking lifecycle

    def record_stocktaking_started(
        self,
        session_info: StocktakingSessionInfo,
        scope: StocktakingScope,
        actor_id: UUID,
    ) -> AuditEvent:
        return self._create_audit_event(
            tenant_id=session_info.tenant_id,
            entity_type="StocktakingSession",
            entity_id=session_info.id,
            action=AuditAction.STOCKTAKING_START,
            actor_id=actor_id,
            summary=f"{session_info.label} - {session_info.line_count} items",
            payload={
                "number": session_info.number,
                "line_count": session_info.line_count,
                "location_id": scope.location_id,
                "category_id": scope.category_id,
                "include_zero_stock": scope.include_zero_stock,
            },
        )

    def record_stocktaking_completed(
        self,
        tenant_id: UUID,
        session_id: UUID,
        number: int,
        summary: CompletionSummary,
        actor_id: UUID,
    ) -> AuditEvent:
        """
        Record a completed stocktaking and the adjustments it produced.

        Preconditions:
            - The session is COMPLETED in the same transaction.
        """
        return self._create_audit_event(
            tenant_id=tenant_id,
            entity_type="StocktakingSession",
            entity_id=session_id,
            action=AuditAction.STOCKTAKING_COMPLETE,
            actor_id=actor_id,
            summary=(
                f"#{number} - {summary.lines_adjusted} adjustments, "
                f"total difference {summary.total_absolute_difference}"
            ),
            payload={
                "number": number,
                "lines_adjusted": summary.lines_adjusted,
                "total_absolute_difference": summary.total_absolute_difference,
                "lines_skipped_uncounted": summary.lines_skipped_uncounted,
                "lines_skipped_no_location": summary.lines_skipped_no_location,
                "movement_ids": list(summary.movement_ids),
            },
        )

    def record_stocktaking_cancelled(
        self,
        tenant_id: UUID,
        session_id: UUID,
        number: int,
        actor_id: UUID,
    ) -> AuditEvent:
        return self._create_audit_event(
            tenant_id=tenant_id,
            entity_type="StocktakingSession",
            entity_id=session_id,
            action=AuditAction.STOCKTAKING_CANCEL,
            actor_id=actor_id,
            summary=f"#{number}",
            payload={"number": number},
        )

    # Stock movements

    def record_stock_movement(
        self,
        movement: StockMovementRecord,
        actor_id: UUID,
        item_label: str | None = None,
    ) -> AuditEvent:
        """Record a receipt or issue (adjustments are covered by the completion event)."""
        action = (
            AuditAction.STOCK_RECEIPT
            if movement.signed_delta > 0
            else AuditAction.STOCK_ISSUE
        )
        label = item_label or str(movement.item_id)
        return self._create_audit_event(
            tenant_id=movement.tenant_id,
            entity_type="StockMovement",
            entity_id=movement.id,
            action=action,
            actor_id=actor_id,
            summary=f"{label} {movement.signed_delta:+d}",
            payload={
                "seq": movement.seq,
                "item_id": movement.item_id,
                "location_id": movement.location_id,
                "movement_type": movement.movement_type,
                "quantity": movement.quantity,
                "occurred_on": movement.occurred_on,
            },
        )

    def validate_chain(self) -> bool:
        """
        Recompute every event hash in seq order and check each link.

        Raises:
            AuditChainBrokenError: At the first event whose payload hash,
                own hash or predecessor link does not check out.
        """
        events = self._session.execute(select(AuditEvent).order_by(AuditEvent.seq)).scalars()

        previous: str | None = None
        count = 0
        for event in events:
            if event.prev_hash != previous:
                self._broken(event, "link_mismatch", previous or "None", event.prev_hash or "None")

            recomputed = hash_audit_event(
                event.entity_type,
                str(event.entity_id),
                AuditAction(event.action).value,
                event.payload_hash,
                event.prev_hash,
            )
            if hash_payload(event.payload or {}) != event.payload_hash or recomputed != event.hash:
                self._broken(event, "hash_mismatch", recomputed, event.hash)

            previous = event.hash
            count += 1

        logger.info("audit_chain_valid", extra={"event_count": count})
        return True

    @staticmethod
    def _broken(event: AuditEvent, reason: str, expected: str, actual: str) -> None:
        logger.critical(
            "audit_chain_broken",
            extra={"audit_event_id": str(event.id), "seq": event.seq, "reason": reason},
        )
        raise AuditChainBrokenError(str(event.id), expected, actual)

    # Trace and query methods

    def get_trace(self, entity_type: str, entity_id: UUID) -> AuditTrace:
        """Get the complete audit trace for an entity."""
        events = self._session.execute(
            select(AuditEvent)
            .where(AuditEvent.entity_type == entity_type)
            .where(AuditEvent.entity_id == entity_id)
            .order_by(AuditEvent.seq)
        ).scalars().all()

        entries = tuple(
            AuditTraceEntry(
                seq=event.seq,
                action=AuditAction(event.action),
                occurred_at=event.occurred_at,
                actor_id=event.actor_id,
                summary=event.summary,
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

    def get_recent_events(self, tenant_id: UUID, limit: int = 100) -> list[AuditEvent]:
        """Most recent audit events of a tenant, newest first."""
        return list(
            self._session.execute(
                select(AuditEvent)
                .where(AuditEvent.tenant_id == tenant_id)
                .order_by(AuditEvent.seq.desc())
                .limit(limit)
            ).scalars().all()
        )
