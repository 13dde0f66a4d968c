"""Shared builders for outbox tests."""
import json
import uuid
from datetime import datetime, timedelta

from dojo.outbox.entry import OutboxEntry
from dojo.outbox.executors import Executor

NOW = datetime(2026, 3, 2, 9, 0, 0)

EMAIL_PAYLOAD = json.dumps({"to": ["parent@example.com"], "subject": "Grading reminder", "body": "See you Saturday"})


class FakeClock:
    """Callable clock for the processor; advance() moves time forward."""

    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class StubExecutor(Executor):
    """Records every call; raises `error` when set, otherwise returns `external_id`."""

    def __init__(self, external_id="msg-123", error=None, on_execute=None):
        self.external_id = external_id
        self.error = error
        self.on_execute = on_execute
        self.calls = []

    def execute(self, context, payload):
        self.calls.append((context, payload))
        if self.on_execute is not None:
            self.on_execute(context)
        if self.error is not None:
            raise self.error
        return self.external_id


def make_entry(entry_id=None, action_type="email", payload=EMAIL_PAYLOAD, created_at=NOW, **overrides):
    return OutboxEntry(
        id=entry_id or str(uuid.uuid4()),
        action_type=action_type,
        payload=payload,
        created_at=created_at,
        **overrides,
    )
