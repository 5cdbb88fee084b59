"""Per-viewer realtime feed built on the change stream.

A ``NotificationBridge`` listens to the tables a viewer cares about, queues the
raw change events, and turns them into toasts on ``drain()``. Each toast carries
the row as it is persisted at drain time, never a patched copy, so redelivered
or reordered events are harmless. Events are not deduplicated.
"""
from __future__ import annotations

import logging
import queue
from typing import Optional

from ..auth import Actor
from ..extensions import db
from ..models import Booking, Message, Payment, Service
from ..realtime import DELETE, INSERT, UPDATE, ChangeEvent, Subscription, subscribe
from .messaging import support_conversation_id

logger = logging.getLogger(__name__)

MODELS = {
    "bookings": Booking,
    "payments": Payment,
    "messages": Message,
    "services": Service,
}


class NotificationBridge:
    def __init__(self, actor: Actor) -> None:
        self.actor = actor
        self._events: queue.Queue[ChangeEvent] = queue.Queue()
        self._subscriptions: list[Subscription] = []
        try:
            for table, where in self._filters().items():
                self._subscriptions.append(subscribe(table, self._events.put, where))
        except Exception:
            self.close()
            raise

    def _filters(self) -> dict:
        if self.actor.is_admin:
            return {"bookings": None, "payments": None, "messages": None}

        actor_id = self.actor.id
        conversation = support_conversation_id(actor_id)
        return {
            "bookings": lambda change: change.value("client_id") == actor_id,
            "payments": lambda change: change.value("client_id") == actor_id,
            "messages": lambda change: change.value("conversation_id") == conversation,
        }

    @property
    def closed(self) -> bool:
        return not any(sub.active for sub in self._subscriptions)

    def pending(self) -> int:
        return self._events.qsize()

    def drain(self, timeout: Optional[float] = None) -> list[dict[str, object]]:
        """Turn queued events into toasts, waiting up to ``timeout`` for the first one."""
        changes: list[ChangeEvent] = []
        try:
            if timeout:
                changes.append(self._events.get(timeout=timeout))
            while True:
                changes.append(self._events.get_nowait())
        except queue.Empty:
            pass

        toasts = []
        for change in changes:
            toast = self._toast(change, self._refetch(change))
            if toast is not None:
                toasts.append(toast)
        return toasts

    def _refetch(self, change: ChangeEvent) -> Optional[dict[str, object]]:
        if change.event_type == DELETE or change.record_id is None:
            return None
        record = db.session.get(MODELS[change.table], change.record_id, populate_existing=True)
        return record.to_dict() if record is not None else None

    def _toast(self, change: ChangeEvent, record: Optional[dict[str, object]]) -> Optional[dict[str, object]]:
        title, description = self._describe(change, record)
        if title is None:
            return None
        return {
            "title": title,
            "description": description,
            "table": change.table,
            "event": change.event_type,
            "record_id": change.record_id,
            "record": record,
        }

    def _describe(self, change: ChangeEvent, record: Optional[dict[str, object]]) -> tuple[Optional[str], str]:
        current = record or {}
        if change.table == "bookings":
            if change.event_type == INSERT:
                if self.actor.is_admin:
                    return "New Booking", f"Booking #{change.record_id} was created"
                return "New Booking", "Your booking has been created successfully!"
            if change.event_type == UPDATE and change.changed("status"):
                status = current.get("status", change.value("status"))
                return "Booking Update", f"Your booking status has been updated to: {status}"
            return None, ""

        if change.table == "payments":
            if change.event_type == INSERT or change.changed("status"):
                status = current.get("status", change.value("status"))
                return "Payment Update", f"Payment #{change.record_id} is {status}"
            return None, ""

        if change.table == "messages" and change.event_type == INSERT:
            if change.value("sender_id") == self.actor.id:
                return None, ""
            return "New Message", str(current.get("content") or change.value("content") or "")

        return None, ""

    def close(self) -> None:
        for subscription in self._subscriptions:
            subscription.unsubscribe()

    def __enter__(self) -> "NotificationBridge":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
