"""Outbound notification queue with per-day idempotency keys."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from core.event_bus import EventBus
from store.schemas import Clock, OutboxRecord, utc_now
from store.sql_store import SQLStore

logger = logging.getLogger("cse.outbox")

RELOCATED = "entity_relocated"
RETURNED = "entity_returned"
RELATIONSHIP_SHIFTED = "relationship_shifted"
BOND_REVIEW = "bond_review"
REFLECTION_REQUESTED = "reflection_requested"


class NotificationOutbox:
    """Stores fire-and-forget events and delivers them at least once.

    An event is keyed by (event type, subject, calendar day): re-emitting the
    same key on the same day is a no-op, so retries of a commit sequence never
    fan out duplicate notifications. Emission never raises.
    """

    def __init__(
        self,
        sql_store: SQLStore,
        event_bus: EventBus | None = None,
        clock: Clock = utc_now,
        max_attempts: int = 5,
    ) -> None:
        self.sql_store = sql_store
        self.event_bus = event_bus or EventBus()
        self.clock = clock
        self.max_attempts = max_attempts

    @staticmethod
    def idempotency_key(event_type: str, subject: str, day: str) -> str:
        return f"{event_type}:{subject}:{day}"

    def emit(
        self,
        event_type: str,
        character: str,
        payload: dict[str, Any] | None = None,
        subject: str | None = None,
    ) -> bool:
        """Queue an event; returns False when it was a duplicate or could not be stored."""
        now = self.clock()
        key = self.idempotency_key(event_type, subject or character, now.date().isoformat())
        try:
            self.sql_store.insert(
                OutboxRecord,
                idempotency_key=key,
                event_type=event_type,
                character_name=character,
                payload=dict(payload or {}),
                created_at=now,
            )
        except IntegrityError:
            logger.debug("Notification %s already queued today", key)
            return False
        except SQLAlchemyError as exc:
            logger.warning("Could not queue notification %s (non-fatal): %s", key, exc)
            return False
        logger.info("Queued %s for %s", event_type, subject or character)
        return True

    def pending(self, limit: int = 100) -> list[dict[str, Any]]:
        return self.sql_store.read(
            OutboxRecord,
            OutboxRecord.delivered_at.is_(None),
            OutboxRecord.attempts < self.max_attempts,
            order_by=[OutboxRecord.id.asc()],
            limit=limit,
        )

    def deliver_pending(self, limit: int = 100) -> dict[str, int]:
        """Push pending events to the bus; failures stay queued for the next drain."""
        delivered = failed = 0
        try:
            rows = self.pending(limit=limit)
        except SQLAlchemyError as exc:
            logger.warning("Outbox read failed (non-fatal): %s", exc)
            return {"delivered": 0, "failed": 0}

        for row in rows:
            payload = {
                "character": row["character_name"],
                "idempotency_key": row["idempotency_key"],
                **row["payload"],
            }
            if not self.event_bus.has_subscribers(row["event_type"]):
                # Nobody listening yet; keep it for a later drain.
                continue
            try:
                self.event_bus.emit(row["event_type"], payload)
            except Exception as exc:
                failed += 1
                logger.warning("Delivery of %s failed: %s", row["idempotency_key"], exc)
                self._mark_failed(row["id"], str(exc))
                continue
            delivered += 1
            self._mark_delivered(row["id"])
        return {"delivered": delivered, "failed": failed}

    def _mark_delivered(self, row_id: int) -> None:
        try:
            self.sql_store.patch(
                OutboxRecord,
                OutboxRecord.id == row_id,
                delivered_at=self.clock(),
                attempts=OutboxRecord.attempts + 1,
            )
        except SQLAlchemyError as exc:
            # Left pending: the subscriber may see this event again.
            logger.warning("Could not mark notification %s delivered: %s", row_id, exc)

    def _mark_failed(self, row_id: int, error: str) -> None:
        try:
            self.sql_store.patch(
                OutboxRecord,
                OutboxRecord.id == row_id,
                attempts=OutboxRecord.attempts + 1,
                last_error=error[:500],
            )
        except SQLAlchemyError as exc:
            logger.warning("Could not record delivery failure for %s: %s", row_id, exc)
