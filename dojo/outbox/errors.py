"""Outbox domain errors."""


class OutboxError(Exception):
    """Base class for outbox engine errors."""


class InvalidEntryError(OutboxError, ValueError):
    """An entry is missing required data."""


class EntryNotFoundError(OutboxError, LookupError):
    def __init__(self, entry_id):
        self.entry_id = entry_id
        super().__init__(f"outbox entry {entry_id} not found")


class TerminalEntryError(OutboxError):
    """The entry is succeeded, abandoned or unroutable and cannot be attempted again."""

    def __init__(self, entry_id, status):
        self.entry_id = entry_id
        self.status = status
        super().__init__(f"entry {entry_id} is in terminal state '{status}' and cannot be retried")


class EntryBusyError(OutboxError):
    """Another attempt currently holds the lease on the entry."""

    def __init__(self, entry_id):
        self.entry_id = entry_id
        super().__init__(f"entry {entry_id} is being processed by another attempt")


class StaleEntryError(OutboxError):
    """The stored entry changed since it was loaded; the write was rejected."""

    def __init__(self, entry_id, expected_version):
        self.entry_id = entry_id
        self.expected_version = expected_version
        super().__init__(f"entry {entry_id} was modified concurrently (expected version {expected_version})")


class UnroutableActionError(OutboxError):
    """No executor is registered for the action type."""

    def __init__(self, action_type):
        self.action_type = action_type
        super().__init__(f"no executor registered for action type: {action_type}")


class ExecutorError(OutboxError):
    """A transient failure while performing the external call; the entry will be retried."""


class PermanentExecutorError(ExecutorError):
    """The external call can never succeed with this payload (malformed or rejected)."""
