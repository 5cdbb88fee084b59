"""Row-level change stream for the watched tables.

Every flush records INSERT/UPDATE/DELETE events for rows in ``WATCHED_TABLES``.
They are held on the session until the transaction commits, then published on a
per-table blinker signal. A rollback discards them, so subscribers only ever see
changes that were actually persisted.

Subscribers run inside the committing session's ``after_commit`` hook and must
not emit SQL there; queue the event and refetch later (see
``services.notifications.NotificationBridge``).
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional

from blinker import Namespace
from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"

WATCHED_TABLES = frozenset({"bookings", "payments", "messages", "services"})

_PENDING_KEY = "handykonnect.pending_changes"

_changes = Namespace()


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    event_type: str
    new: Optional[dict[str, Any]]
    old: Optional[dict[str, Any]] = None

    @property
    def record_id(self) -> Any:
        row = self.new if self.new is not None else self.old
        return row.get("id") if row else None

    def value(self, column: str) -> Any:
        """Current value of ``column``, falling back to the old row for deletes."""
        row = self.new if self.new is not None else self.old
        return row.get(column) if row else None

    def changed(self, column: str) -> bool:
        if self.event_type != UPDATE or self.old is None or self.new is None:
            return False
        return self.old.get(column) != self.new.get(column)


def channel(table: str):
    if table not in WATCHED_TABLES:
        raise ValueError(f"Table '{table}' has no change stream")
    return _changes.signal(f"changes.{table}")


class Subscription:
    """Handle for one listener on one table's change stream.

    ``where`` filters events before the callback sees them. Use the handle as a
    context manager, or call ``unsubscribe()``; calling it twice is harmless.
    """

    def __init__(
        self,
        table: str,
        callback: Callable[[ChangeEvent], None],
        where: Optional[Callable[[ChangeEvent], bool]] = None,
    ) -> None:
        self.table = table
        self._callback = callback
        self._where = where
        self._signal = channel(table)
        self._lock = threading.Lock()
        self.active = True
        self._signal.connect(self._receive, weak=False)

    def _receive(self, sender: str, change: ChangeEvent) -> None:
        if not self.active:
            return
        if self._where is not None and not self._where(change):
            return
        self._callback(change)

    def unsubscribe(self) -> None:
        with self._lock:
            if not self.active:
                return
            self.active = False
            self._signal.disconnect(self._receive)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.unsubscribe()


def subscribe(
    table: str,
    callback: Callable[[ChangeEvent], None],
    where: Optional[Callable[[ChangeEvent], bool]] = None,
) -> Subscription:
    return Subscription(table, callback, where)


def publish(change: ChangeEvent) -> None:
    """Deliver one event to the table's subscribers.

    A failing subscriber is logged and skipped; the write that produced the
    event has already been committed.
    """
    for receiver in list(channel(change.table).receivers_for(change.table)):
        try:
            receiver(change.table, change=change)
        except Exception as exc:
            logger.exception("Change subscriber failed for %s %s", change.table, change.event_type, exc_info=exc)


def _snapshot(obj: object) -> dict[str, Any]:
    mapper = inspect(obj).mapper
    return {attr.key: getattr(obj, attr.key) for attr in mapper.column_attrs}


def _previous(obj: object) -> dict[str, Any]:
    state = inspect(obj)
    row = {}
    for attr in state.mapper.column_attrs:
        history = state.attrs[attr.key].history
        if history.deleted:
            row[attr.key] = history.deleted[0]
        elif history.added:
            # history omits a None original
            row[attr.key] = None
        else:
            row[attr.key] = getattr(obj, attr.key)
    return row


def _table_of(obj: object) -> Optional[str]:
    table = getattr(obj, "__tablename__", None)
    return table if table in WATCHED_TABLES else None


def _collect(session: Session, flush_context: object) -> None:
    pending = session.info.setdefault(_PENDING_KEY, [])
    with session.no_autoflush:
        for obj in session.new:
            table = _table_of(obj)
            if table:
                pending.append(ChangeEvent(table, INSERT, _snapshot(obj)))
        for obj in session.dirty:
            table = _table_of(obj)
            if table and session.is_modified(obj, include_collections=False):
                pending.append(ChangeEvent(table, UPDATE, _snapshot(obj), _previous(obj)))
        for obj in session.deleted:
            table = _table_of(obj)
            if table:
                pending.append(ChangeEvent(table, DELETE, None, _snapshot(obj)))


def _flush_to_subscribers(session: Session) -> None:
    pending = session.info.pop(_PENDING_KEY, [])
    for change in pending:
        publish(change)


def _discard(session: Session) -> None:
    session.info.pop(_PENDING_KEY, None)


def init_change_stream() -> None:
    """Attach the session hooks once per process."""
    if not event.contains(Session, "after_flush", _collect):
        event.listen(Session, "after_flush", _collect)
        event.listen(Session, "after_commit", _flush_to_subscribers)
        event.listen(Session, "after_rollback", _discard)
