"""
Persistence for outbox entries.

Every write is a full upsert of one entry, conditional on the version the
entry was loaded at. claim() takes a short lease on an entry before its
executor is invoked, so the automatic sweep and an operator retry can never
run the same entry at the same time.
"""
import threading
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from dojo.logging_config import get_logger
from dojo.outbox.entry import EntryStatus, OutboxEntry, RETRYABLE_STATUSES
from dojo.outbox.errors import EntryNotFoundError, StaleEntryError

logger = get_logger(__name__)


class OutboxStore(ABC):
    """Persistence contract for outbox entries."""

    @abstractmethod
    def save(self, entry: OutboxEntry) -> None:
        """
        Insert or fully overwrite the entry.

        Succeeds only if the stored version still equals entry.version; on
        success entry.version is incremented and any lease is released.

        Raises:
            StaleEntryError: If the entry was modified since it was loaded
        """

    @abstractmethod
    def get_by_id(self, entry_id: str) -> OutboxEntry:
        """
        Raises:
            EntryNotFoundError: If no entry has this id
        """

    @abstractmethod
    def list_pending(self, limit: int, skip_exhausted: bool = False,
                     max_attempts: Optional[int] = None) -> List[OutboxEntry]:
        """
        Up to limit non-terminal entries (pending or failed), oldest first. No backoff filtering.

        With skip_exhausted, entries whose attempts reached max_attempts (or
        their own max_attempts when no override is given) are left out.
        """

    @abstractmethod
    def claim(self, entry: OutboxEntry, lease: timedelta, now: datetime) -> bool:
        """
        Take a lease on the entry until now + lease.

        Fails if the entry changed since it was loaded or another unexpired
        lease is held. On success the in-memory entry reflects the new version
        and lease.
        """

    @abstractmethod
    def list_failed(self, limit: int, max_attempts: Optional[int] = None,
                    action_type: Optional[str] = None) -> List[OutboxEntry]:
        """
        Failed entries that used up their attempts, most recently attempted first.

        max_attempts overrides each entry's own limit, matching the processor's
        override. action_type narrows the list to one kind of side effect.
        """

    @abstractmethod
    def list_by_action_type(self, action_type: str, status: Optional[str] = None, limit: int = 100) -> List[OutboxEntry]:
        """Entries for one action type, optionally filtered by status, oldest first."""

    @abstractmethod
    def list_by_status(self, status: str, limit: int = 100) -> List[OutboxEntry]:
        """Entries in one status, oldest first."""

    @abstractmethod
    def count_by_status(self) -> Dict[str, int]:
        """Number of entries per status, every status present."""


class SQLAlchemyOutboxStore(OutboxStore):
    """Outbox store backed by the Flask-SQLAlchemy session. Requires an app context."""

    def __init__(self, db=None):
        if db is None:
            from dojo.models import db
        self.db = db

    @property
    def _model(self):
        from dojo.models import OutboxRecord
        return OutboxRecord

    def save(self, entry: OutboxEntry) -> None:
        model = self._model
        values = self._values(entry)
        values["version"] = entry.version + 1
        values["claimed_until"] = None

        try:
            updated = model.query.filter(
                model.id == entry.id,
                model.version == entry.version,
            ).update(values, synchronize_session=False)

            if updated == 0:
                exists = self.db.session.query(model.id).filter(model.id == entry.id).first() is not None
                if exists or entry.version != 0:
                    self.db.session.rollback()
                    raise StaleEntryError(entry.id, entry.version)
                self.db.session.add(model(id=entry.id, **values))

            self.db.session.commit()
        except IntegrityError:
            # Concurrent insert of the same id
            self.db.session.rollback()
            raise StaleEntryError(entry.id, entry.version)
        except SQLAlchemyError:
            self.db.session.rollback()
            raise

        entry.version += 1
        entry.claimed_until = None

    def get_by_id(self, entry_id: str) -> OutboxEntry:
        record = self._model.query.filter_by(id=entry_id).first()
        if record is None:
            raise EntryNotFoundError(entry_id)
        return self._to_entry(record)

    def list_pending(self, limit: int, skip_exhausted: bool = False,
                     max_attempts: Optional[int] = None) -> List[OutboxEntry]:
        model = self._model
        query = model.query.filter(model.status.in_([s.value for s in RETRYABLE_STATUSES]))
        if skip_exhausted:
            query = query.filter(model.attempts < self._attempt_limit(max_attempts))
        records = query.order_by(model.created_at.asc(), model.id.asc()).limit(limit).all()
        return [self._to_entry(r) for r in records]

    def claim(self, entry: OutboxEntry, lease: timedelta, now: datetime) -> bool:
        model = self._model
        claimed_until = now + lease
        try:
            updated = model.query.filter(
                model.id == entry.id,
                model.version == entry.version,
                or_(model.claimed_until.is_(None), model.claimed_until <= now),
            ).update({
                "claimed_until": claimed_until,
                "version": entry.version + 1,
            }, synchronize_session=False)
            self.db.session.commit()
        except SQLAlchemyError:
            self.db.session.rollback()
            raise

        if updated == 0:
            return False
        entry.version += 1
        entry.claimed_until = claimed_until
        return True

    def list_failed(self, limit: int, max_attempts: Optional[int] = None,
                    action_type: Optional[str] = None) -> List[OutboxEntry]:
        model = self._model
        query = model.query.filter(
            model.status == EntryStatus.FAILED.value,
            model.attempts >= self._attempt_limit(max_attempts),
        )
        if action_type:
            query = query.filter(model.action_type == action_type)
        records = query.order_by(model.last_attempted_at.desc()).limit(limit).all()
        return [self._to_entry(r) for r in records]

    def list_by_action_type(self, action_type: str, status: Optional[str] = None, limit: int = 100) -> List[OutboxEntry]:
        model = self._model
        query = model.query.filter(model.action_type == action_type)
        if status:
            query = query.filter(model.status == EntryStatus(status).value)
        records = query.order_by(model.created_at.asc(), model.id.asc()).limit(limit).all()
        return [self._to_entry(r) for r in records]

    def list_by_status(self, status: str, limit: int = 100) -> List[OutboxEntry]:
        model = self._model
        records = model.query.filter(
            model.status == EntryStatus(status).value
        ).order_by(model.created_at.asc(), model.id.asc()).limit(limit).all()
        return [self._to_entry(r) for r in records]

    def count_by_status(self) -> Dict[str, int]:
        model = self._model
        counts = {s.value: 0 for s in EntryStatus}
        rows = self.db.session.query(model.status, func.count(model.id)).group_by(model.status).all()
        for status, count in rows:
            counts[status] = count
        return counts

    def _attempt_limit(self, max_attempts):
        if max_attempts is not None:
            return max_attempts
        return self._model.max_attempts

    @staticmethod
    def _values(entry: OutboxEntry) -> dict:
        return {
            "action_type": entry.action_type,
            "payload": entry.payload,
            "status": entry.status.value,
            "attempts": entry.attempts,
            "max_attempts": entry.max_attempts,
            "last_attempted_at": entry.last_attempted_at,
            "created_at": entry.created_at,
            "external_id": entry.external_id or "",
            "error_message": entry.error_message or "",
        }

    @staticmethod
    def _to_entry(record) -> OutboxEntry:
        return OutboxEntry(
            id=record.id,
            action_type=record.action_type,
            payload=record.payload,
            status=EntryStatus(record.status),
            attempts=record.attempts,
            max_attempts=record.max_attempts,
            last_attempted_at=record.last_attempted_at,
            created_at=record.created_at,
            external_id=record.external_id or "",
            error_message=record.error_message or "",
            version=record.version,
            claimed_until=record.claimed_until,
        )


class InMemoryOutboxStore(OutboxStore):
    """Thread-safe in-process store with the same semantics as the SQL store."""

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: Dict[str, OutboxEntry] = {}

    def save(self, entry: OutboxEntry) -> None:
        with self._lock:
            stored = self._entries.get(entry.id)
            stored_version = stored.version if stored is not None else 0
            if stored_version != entry.version:
                raise StaleEntryError(entry.id, entry.version)
            entry.version += 1
            entry.claimed_until = None
            self._entries[entry.id] = replace(entry)

    def get_by_id(self, entry_id: str) -> OutboxEntry:
        with self._lock:
            stored = self._entries.get(entry_id)
            if stored is None:
                raise EntryNotFoundError(entry_id)
            return replace(stored)

    def list_pending(self, limit: int, skip_exhausted: bool = False,
                     max_attempts: Optional[int] = None) -> List[OutboxEntry]:
        return self._select(
            lambda e: e.status in RETRYABLE_STATUSES and not (skip_exhausted and e.is_exhausted(max_attempts)),
            limit,
        )

    def claim(self, entry: OutboxEntry, lease: timedelta, now: datetime) -> bool:
        with self._lock:
            stored = self._entries.get(entry.id)
            if stored is None or stored.version != entry.version:
                return False
            if stored.claimed_until is not None and stored.claimed_until > now:
                return False
            stored.version += 1
            stored.claimed_until = now + lease
            entry.version = stored.version
            entry.claimed_until = stored.claimed_until
            return True

    def list_failed(self, limit: int, max_attempts: Optional[int] = None,
                    action_type: Optional[str] = None) -> List[OutboxEntry]:
        with self._lock:
            failed = [
                replace(e) for e in self._entries.values()
                if e.status == EntryStatus.FAILED and e.is_exhausted(max_attempts)
                and (not action_type or e.action_type == action_type)
            ]
        failed.sort(key=lambda e: e.last_attempted_at or datetime.min, reverse=True)
        return failed[:limit]

    def list_by_action_type(self, action_type: str, status: Optional[str] = None, limit: int = 100) -> List[OutboxEntry]:
        wanted = EntryStatus(status) if status else None
        return self._select(
            lambda e: e.action_type == action_type and (wanted is None or e.status == wanted),
            limit,
        )

    def list_by_status(self, status: str, limit: int = 100) -> List[OutboxEntry]:
        wanted = EntryStatus(status)
        return self._select(lambda e: e.status == wanted, limit)

    def count_by_status(self) -> Dict[str, int]:
        counts = {s.value: 0 for s in EntryStatus}
        with self._lock:
            for e in self._entries.values():
                counts[e.status.value] += 1
        return counts

    def _select(self, predicate, limit):
        with self._lock:
            matches = [replace(e) for e in self._entries.values() if predicate(e)]
        matches.sort(key=lambda e: (e.created_at, e.id))
        return matches[:limit]
