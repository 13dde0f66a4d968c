import json
import uuid
from typing import List, Optional, Union

from dojo.datetime_utils import utcnow
from dojo.logging_config import get_logger
from dojo.outbox.entry import (
    ACTION_EMAIL,
    ACTION_GITHUB_ISSUE,
    DEFAULT_MAX_ATTEMPTS,
    EntryStatus,
    OutboxEntry,
)
from dojo.outbox.errors import InvalidEntryError

logger = get_logger(__name__)


def _default_store():
    from dojo.outbox import get_outbox
    return get_outbox().store


class OutboxService:
    """Service for putting external side effects on the outbox"""

    @staticmethod
    def enqueue(action_type: str, payload: Union[dict, str], max_attempts: Optional[int] = None,
                store=None) -> OutboxEntry:
        """
        Add an entry to the outbox for asynchronous processing.

        The caller's own request is done once this returns; delivery happens
        on the next sweep.

        Args:
            action_type: Executor key, e.g. 'github_issue' or 'email'
            payload: Action-specific document (dict is serialized to JSON)
            max_attempts: Attempts allowed before the entry is exhausted
            store: OutboxStore; defaults to the app's store

        Returns:
            The saved pending OutboxEntry

        Raises:
            InvalidEntryError: If action_type or payload is missing
        """
        store = store or _default_store()
        if isinstance(payload, (dict, list)):
            payload = json.dumps(payload, sort_keys=True)
        elif payload is not None and not isinstance(payload, str):
            raise InvalidEntryError("payload must be a JSON document")

        entry = OutboxEntry(
            id=str(uuid.uuid4()),
            action_type=action_type,
            payload=payload,
            status=EntryStatus.PENDING,
            max_attempts=max_attempts or DEFAULT_MAX_ATTEMPTS,
            created_at=utcnow(),
        )
        entry.validate()
        store.save(entry)

        logger.info("outbox_entry_enqueued", entry_id=entry.id, action_type=action_type,
                    max_attempts=entry.max_attempts)
        return entry

    @staticmethod
    def enqueue_github_issue(title: str, body: str, labels: Optional[List[str]] = None,
                             repository: Optional[str] = None, store=None) -> OutboxEntry:
        payload = {"title": title, "body": body, "labels": list(labels or [])}
        if repository:
            payload["repository"] = repository
        return OutboxService.enqueue(ACTION_GITHUB_ISSUE, payload, store=store)

    @staticmethod
    def enqueue_email(to: Union[str, List[str]], subject: str, body: str, html: bool = False,
                      store=None) -> OutboxEntry:
        recipients = [to] if isinstance(to, str) else list(to)
        payload = {"to": recipients, "subject": subject, "body": body, "html": html}
        return OutboxService.enqueue(ACTION_EMAIL, payload, store=store)

    @staticmethod
    def summary(store=None, max_attempts=None) -> dict:
        """
        Entry counts by status plus the number of exhausted failures awaiting an operator.

        max_attempts is the processor-level override, if any; it decides which
        failures count as exhausted.
        """
        store = store or _default_store()
        counts = store.count_by_status()
        return {
            "by_status": counts,
            "outstanding": counts[EntryStatus.PENDING.value] + counts[EntryStatus.FAILED.value],
            "needs_attention": len(store.list_failed(limit=100, max_attempts=max_attempts)),
        }
