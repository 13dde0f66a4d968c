from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from dojo.datetime_utils import utcnow, format_datetime_iso
from dojo.outbox.backoff import next_retry_delay
from dojo.outbox.errors import InvalidEntryError, TerminalEntryError

DEFAULT_MAX_ATTEMPTS = 5

ACTION_GITHUB_ISSUE = "github_issue"
ACTION_EMAIL = "email"


class EntryStatus(str, Enum):
    PENDING = "pending"
    FAILED = "failed"          # retryable, loops back to another attempt
    SUCCEEDED = "succeeded"
    ABANDONED = "abandoned"
    UNROUTABLE = "unroutable"  # poison pill: no executor, or payload can never succeed


TERMINAL_STATUSES = frozenset({EntryStatus.SUCCEEDED, EntryStatus.ABANDONED, EntryStatus.UNROUTABLE})
RETRYABLE_STATUSES = frozenset({EntryStatus.PENDING, EntryStatus.FAILED})


@dataclass
class OutboxEntry:
    """
    One unit of deferred, retryable external work.

    The entry is its own audit trail: it is mutated by the processor or by an
    operator and never deleted.
    """
    id: str
    action_type: str                     # selects the executor: 'github_issue', 'email', ...
    payload: str                         # serialized document, only the executor understands it
    status: EntryStatus = EntryStatus.PENDING
    attempts: int = 0
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    last_attempted_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)
    external_id: str = ""                # e.g. GitHub issue number, provider message id
    error_message: str = ""
    version: int = 0                     # bumped by every store write
    claimed_until: Optional[datetime] = None

    def __post_init__(self):
        self.status = EntryStatus(self.status)

    def validate(self):
        """
        Check that the entry can be enqueued.

        A non-positive max_attempts falls back to the default.

        Raises:
            InvalidEntryError: If action_type or payload is missing
        """
        if not self.action_type:
            raise InvalidEntryError("action type is required")
        if not self.payload:
            raise InvalidEntryError("payload is required")
        if self.created_at is None:
            raise InvalidEntryError("created_at must be set")
        if self.max_attempts is None or self.max_attempts <= 0:
            self.max_attempts = DEFAULT_MAX_ATTEMPTS

    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def is_exhausted(self, max_attempts: Optional[int] = None) -> bool:
        """True once attempts reached the limit (a processor-level override wins over the entry's own)."""
        limit = max_attempts if max_attempts is not None else self.max_attempts
        return self.attempts >= limit

    def mark_attempt(self, now: Optional[datetime] = None):
        """Record an attempt. Status is left alone; the outcome decides it."""
        if self.is_terminal():
            raise TerminalEntryError(self.id, self.status.value)
        self.attempts += 1
        self.last_attempted_at = now or utcnow()

    def mark_success(self, external_id: str = ""):
        self.status = EntryStatus.SUCCEEDED
        self.external_id = external_id or ""
        self.error_message = ""

    def mark_failed(self, error):
        # Exhaustion is the caller's decision, see OutboxProcessor
        self.status = EntryStatus.FAILED
        self.error_message = str(error)

    def mark_unroutable(self, error):
        self.status = EntryStatus.UNROUTABLE
        self.error_message = str(error)

    def mark_abandoned(self):
        self.status = EntryStatus.ABANDONED

    def next_retry_delay(self, base_delay, max_delay):
        return next_retry_delay(self.attempts, base_delay, max_delay)

    def is_due(self, now, base_delay, max_delay) -> bool:
        if self.last_attempted_at is None:
            return True
        return now - self.last_attempted_at >= self.next_retry_delay(base_delay, max_delay)

    def to_dict(self) -> dict:
        """Serialize for JSON responses."""
        return {
            "id": self.id,
            "action_type": self.action_type,
            "payload": self.payload,
            "status": self.status.value,
            "attempts": self.attempts,
            "max_attempts": self.max_attempts,
            "last_attempted_at": format_datetime_iso(self.last_attempted_at),
            "created_at": format_datetime_iso(self.created_at),
            "external_id": self.external_id,
            "error_message": self.error_message,
            "claimed_until": format_datetime_iso(self.claimed_until),
        }
