"""
Event batching for editing operations.

Services record events while a transaction is open and deliver them only
after it commits. A batch that is dropped (because the operation failed and
rolled back) never reaches the EventSink.

Usage:
    batch = EventBatch()
    batch.slot_filled(draft, slot_id, user_id)
    db.session.commit()
    batch.flush()
"""

import logging
from dataclasses import dataclass, field

from editflow.integrations import collaborators
from editflow.models.event import (
    EVENT_DRAFT_ADVANCED,
    EVENT_PROCESS_CANCELLED,
    EVENT_PROCESS_ENDED,
    EVENT_SLOT_FILLED,
    EVENT_SLOT_VACATED,
)

logger = logging.getLogger(__name__)


@dataclass
class PendingEvent:
    kind: str
    payload: dict
    recipients: frozenset[int]


@dataclass
class EventBatch:
    """Events produced by one operation, in the order they happened."""

    pending: list[PendingEvent] = field(default_factory=list)

    def add(self, kind: str, payload: dict, recipients) -> None:
        recipients = frozenset(recipients)
        if recipients:
            self.pending.append(PendingEvent(kind, payload, recipients))

    # ── Typed producers ──────────────────────────────────────────────────

    def slot_filled(self, draft, slot_id: int, user_id: int) -> None:
        self.add(EVENT_SLOT_FILLED, {
            "slot": slot_id,
            "module": draft.module_id,
            "document": draft.document_id,
        }, {user_id})

    def slot_vacated(self, draft, slot_id: int, user_id: int) -> None:
        self.add(EVENT_SLOT_VACATED, {
            "slot": slot_id,
            "module": draft.module_id,
            "document": draft.document_id,
        }, {user_id})

    def draft_advanced(self, draft, user_id: int, permissions) -> None:
        self.add(EVENT_DRAFT_ADVANCED, {
            "module": draft.module_id,
            "document": draft.document_id,
            "step": draft.step_id,
            "permissions": sorted(p.value for p in permissions),
        }, {user_id})

    def process_ended(self, module_id: str, document_id: int, recipients) -> None:
        self.add(EVENT_PROCESS_ENDED, {"module": module_id, "version": document_id}, recipients)

    def process_cancelled(self, module_id: str, recipients) -> None:
        self.add(EVENT_PROCESS_CANCELLED, {"module": module_id}, recipients)

    # ── Delivery ─────────────────────────────────────────────────────────

    def kinds(self) -> list[str]:
        return [event.kind for event in self.pending]

    def flush(self) -> int:
        """Deliver pending events to the application's EventSink.

        Call only after the producing transaction has committed. The operation
        is already applied at that point, so a sink failure is logged and the
        remaining events are still delivered.

        Returns:
            Number of events delivered.
        """
        sink = collaborators().events
        delivered = 0
        while self.pending:
            event = self.pending.pop(0)
            try:
                sink.emit(event.kind, event.payload, event.recipients)
            except Exception:
                logger.exception("Delivering %s event failed", event.kind,
                                 extra={"event_type": event.kind, "draft_id": event.payload.get("module")})
                continue
            delivered += 1
            logger.debug("Emitted %s to %d users", event.kind, len(event.recipients),
                         extra={"event_type": event.kind, "draft_id": event.payload.get("module")})
        return delivered
