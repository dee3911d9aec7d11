"""Change-notification bridge.

The controllers never touch the ORM directly. They read and write rows as
plain dicts through a :class:`ChangeBridge` and subscribe to row-level
changes on a table, filtered by column equality. Notifications are delivered
after the write is committed, in commit order, to every matching in-process
subscriber and to the optional emitter (Socket.IO fan-out for browsers).

Delivery is at-least-once and carries no history: a subscriber must re-fetch
whatever it needs after subscribing.
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from quizarena.errors import DuplicateKey, PersistenceError

logger = logging.getLogger(__name__)

INSERT = 'INSERT'
UPDATE = 'UPDATE'
DELETE = 'DELETE'

Row = Dict[str, Any]

# Columns a browser client may subscribe on, per table
CHANNEL_COLUMNS = {
    'rooms': ('id',),
    'room_players': ('room_id',),
    'game_sessions': ('id', 'room_id'),
    'player_scores': ('session_id',),
    'profiles': ('id',),
}


def channel_name(table: str, column: str, value: Any) -> str:
    return f"{table}:{column}={value}"


@dataclass(frozen=True)
class Change:
    table: str
    event: str
    row: Row

    def to_dict(self):
        return {'table': self.table, 'event': self.event, 'row': self.row}


class Subscription:
    """Handle for one subscribe() call. Unsubscribing twice is harmless."""

    def __init__(self, bridge: 'ChangeBridge', table: str, filters: Row, callback: Callable[[Change], None]):
        self.bridge = bridge
        self.table = table
        self.filters = dict(filters)
        self.callback = callback
        self.active = True

    def matches(self, change: Change) -> bool:
        if not self.active or change.table != self.table:
            return False
        return all(change.row.get(k) == v for k, v in self.filters.items())

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self.bridge._remove(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.unsubscribe()
        return False


class ChangeBridge(ABC):
    """Point-in-time reads, writes and row-change subscriptions."""

    def __init__(self, emitter: Optional[Callable[[Change], None]] = None):
        self.emitter = emitter
        self._subscriptions: List[Subscription] = []
        self._lock = threading.Lock()

    @abstractmethod
    def select(self, table: str, order_by: str = 'id', limit: Optional[int] = None, **filters) -> List[Row]:
        ...

    @abstractmethod
    def insert(self, table: str, rows: Union[Row, Iterable[Row]]) -> List[Row]:
        ...

    @abstractmethod
    def update(self, table: str, values: Row, **filters) -> List[Row]:
        """Update matching rows and return the ones that actually changed.

        Putting the expected current value of a column in ``filters`` makes
        this a compare-and-set on that column.
        """

    @abstractmethod
    def delete(self, table: str, **filters) -> List[Row]:
        ...

    def select_one(self, table: str, **filters) -> Optional[Row]:
        rows = self.select(table, limit=1, **filters)
        return rows[0] if rows else None

    def count(self, table: str, **filters) -> int:
        return len(self.select(table, **filters))

    def subscribe(self, table: str, callback: Callable[[Change], None], **filters) -> Subscription:
        sub = Subscription(self, table, filters, callback)
        with self._lock:
            self._subscriptions.append(sub)
        logger.debug(f"[subscribe] table={table} filters={filters}")
        return sub

    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def reset(self) -> None:
        with self._lock:
            for sub in self._subscriptions:
                sub.active = False
            self._subscriptions = []

    def _remove(self, sub: Subscription) -> None:
        with self._lock:
            try:
                self._subscriptions.remove(sub)
            except ValueError:
                pass
        logger.debug(f"[unsubscribe] table={sub.table} filters={sub.filters}")

    def _publish(self, table: str, event: str, rows: List[Row]) -> None:
        for row in rows:
            change = Change(table, event, row)
            with self._lock:
                targets = [s for s in self._subscriptions if s.matches(change)]
            for sub in targets:
                # A subscriber may have been released by an earlier callback
                if not sub.active:
                    continue
                try:
                    sub.callback(change)
                except Exception:
                    logger.exception(f"[notify-failed] table={table} event={event} row_id={row.get('id')}")
            if self.emitter is not None:
                try:
                    self.emitter(change)
                except Exception:
                    logger.exception(f"[emit-failed] table={table} event={event} row_id={row.get('id')}")


class SqlAlchemyBridge(ChangeBridge):
    """ChangeBridge over the Flask-SQLAlchemy models in ``quizarena.models``."""

    def __init__(self, database=None, emitter=None):
        super().__init__(emitter=emitter)
        self.db = database

    def init_app(self, app, database, emitter=None) -> None:
        self.db = database
        self.emitter = emitter
        self.reset()
        app.extensions['quiz_bridge'] = self

    def _model(self, table: str):
        from quizarena.models import TABLES
        try:
            return TABLES[table]
        except KeyError:
            raise PersistenceError(f"Unknown table '{table}'")

    def _commit(self, table: str, action: str) -> None:
        try:
            self.db.session.commit()
        except IntegrityError as exc:
            self.db.session.rollback()
            logger.warning(f"[db-duplicate] table={table} action={action} error={exc.orig}")
            raise DuplicateKey(f"Duplicate row in {table}") from exc
        except SQLAlchemyError as exc:
            self.db.session.rollback()
            logger.error(f"[db-error] table={table} action={action} error={exc}")
            raise PersistenceError(f"Failed to {action} {table}") from exc

    def select(self, table, order_by='id', limit=None, **filters):
        model = self._model(table)
        try:
            query = model.query.filter_by(**filters).order_by(getattr(model, order_by))
            if limit is not None:
                query = query.limit(limit)
            return [obj.to_dict() for obj in query.all()]
        except SQLAlchemyError as exc:
            self.db.session.rollback()
            raise PersistenceError(f"Failed to read {table}") from exc

    def count(self, table, **filters):
        model = self._model(table)
        try:
            return model.query.filter_by(**filters).count()
        except SQLAlchemyError as exc:
            self.db.session.rollback()
            raise PersistenceError(f"Failed to count {table}") from exc

    def insert(self, table, rows):
        model = self._model(table)
        rows = [rows] if isinstance(rows, dict) else list(rows)
        if not rows:
            return []
        objs = [model(**row) for row in rows]
        self.db.session.add_all(objs)
        self._commit(table, 'insert')
        inserted = [obj.to_dict() for obj in objs]
        self._publish(table, INSERT, inserted)
        return inserted

    def update(self, table, values, **filters):
        model = self._model(table)
        try:
            ids = [pk for (pk,) in model.query.filter_by(**filters).with_entities(model.id).all()]
            if not ids:
                return []
            # Re-apply the filters in the UPDATE itself so a concurrent writer
            # that already moved the row makes this a no-op
            changed = (
                model.query.filter(model.id.in_(ids))
                .filter_by(**filters)
                .update(values, synchronize_session=False)
            )
        except SQLAlchemyError as exc:
            self.db.session.rollback()
            raise PersistenceError(f"Failed to update {table}") from exc
        self._commit(table, 'update')
        if not changed:
            return []
        updated = [obj.to_dict() for obj in model.query.filter(model.id.in_(ids)).order_by(model.id).all()]
        self._publish(table, UPDATE, updated)
        return updated

    def delete(self, table, **filters):
        model = self._model(table)
        try:
            objs = model.query.filter_by(**filters).order_by(model.id).all()
        except SQLAlchemyError as exc:
            self.db.session.rollback()
            raise PersistenceError(f"Failed to read {table}") from exc
        if not objs:
            return []
        removed = [obj.to_dict() for obj in objs]
        for obj in objs:
            self.db.session.delete(obj)
        self._commit(table, 'delete')
        self._publish(table, DELETE, removed)
        return removed
