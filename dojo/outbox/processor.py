"""
The outbox retry engine.

A sweep fetches a bounded batch of non-terminal entries and handles them one
at a time: skip while the backoff window is open, take a lease, attempt,
record the outcome, save. One entry's failure never stops the batch.
"""
from dataclasses import dataclass, asdict
from datetime import timedelta

from dojo.datetime_utils import utcnow
from dojo.logging_config import get_logger, SweepContext
from dojo.outbox.backoff import BackoffPolicy
from dojo.outbox.executors import ExecutionContext
from dojo.outbox.errors import (
    EntryBusyError,
    OutboxError,
    PermanentExecutorError,
    StaleEntryError,
    TerminalEntryError,
    UnroutableActionError,
)

logger = get_logger(__name__)

SUCCEEDED = "succeeded"
FAILED = "failed"
UNROUTABLE = "unroutable"
ABANDONED = "abandoned"


@dataclass
class SweepResult:
    fetched: int = 0
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    unroutable: int = 0
    abandoned: int = 0
    skipped_backoff: int = 0
    skipped_exhausted: int = 0
    contended: int = 0
    save_errors: int = 0
    deadline_reached: bool = False

    def record(self, outcome):
        setattr(self, outcome, getattr(self, outcome) + 1)

    def to_dict(self) -> dict:
        return asdict(self)


class OutboxProcessor:
    """
    Pulls ready entries from the store and dispatches them to their executors.

    Args:
        store: OutboxStore
        registry: ExecutorRegistry
        policy: BackoffPolicy between attempts
        batch_size: Entries fetched per sweep
        max_attempts: Overrides every entry's own max_attempts when set
        abandon_on_exhaustion: Abandon an entry once a failed attempt uses up its
            attempts. When off, exhausted entries stay failed, are no longer
            attempted by the sweep, and wait for an operator.
        execute_timeout: Seconds handed to executors for the external call
        lease: How long an attempt may hold an entry before others can take it
        clock: Returns the current naive UTC datetime
    """

    def __init__(self, store, registry, policy=None, batch_size=10, max_attempts=None,
                 abandon_on_exhaustion=True, execute_timeout=15, lease=timedelta(minutes=5), clock=utcnow):
        self.store = store
        self.registry = registry
        self.policy = policy or BackoffPolicy()
        self.batch_size = batch_size
        self.max_attempts = max_attempts
        self.abandon_on_exhaustion = abandon_on_exhaustion
        self.execute_timeout = execute_timeout
        self.lease = lease
        self.clock = clock

    @classmethod
    def from_config(cls, store, registry, config):
        return cls(
            store,
            registry,
            policy=BackoffPolicy.from_seconds(
                config.get("OUTBOX_BASE_DELAY_SECONDS", 30),
                config.get("OUTBOX_MAX_DELAY_SECONDS", 3600),
            ),
            batch_size=config.get("OUTBOX_BATCH_SIZE", 10),
            max_attempts=config.get("OUTBOX_MAX_ATTEMPTS"),
            abandon_on_exhaustion=config.get("OUTBOX_ABANDON_ON_EXHAUSTION", True),
            execute_timeout=config.get("OUTBOX_EXECUTE_TIMEOUT_SECONDS", 15),
            lease=timedelta(seconds=config.get("OUTBOX_LEASE_SECONDS", 300)),
        )

    def process_pending(self, deadline=None) -> SweepResult:
        """
        Run one sweep over a batch of pending and failed entries.

        Args:
            deadline: Optional naive UTC datetime; no new entry is started after it.
                An attempt already in progress is never interrupted.

        Returns:
            SweepResult with per-outcome counts

        Raises:
            OutboxError: If the batch could not be fetched
        """
        result = SweepResult()

        with SweepContext("outbox_sweep") as sweep:
            try:
                # Exhausted entries kept for an operator must not take batch slots
                entries = self.store.list_pending(
                    self.batch_size,
                    skip_exhausted=not self.abandon_on_exhaustion,
                    max_attempts=self.max_attempts,
                )
            except Exception as e:
                raise OutboxError(f"list pending outbox entries: {e}") from e

            result.fetched = len(entries)
            if not entries:
                return result

            for index, entry in enumerate(entries):
                now = self.clock()
                if deadline is not None and now >= deadline:
                    result.deadline_reached = True
                    logger.warning("outbox_sweep_deadline_reached", operation_id=sweep.operation_id,
                                   not_started=len(entries) - index)
                    break
                try:
                    self._process_entry(entry, now, deadline, result)
                except Exception as e:
                    logger.error(
                        "outbox_process_failed",
                        entry_id=entry.id,
                        action_type=entry.action_type,
                        error=str(e),
                        exc_info=True,
                    )

            logger.info("outbox_sweep_complete", operation_id=sweep.operation_id, **result.to_dict())

        return result

    def process_single(self, entry_id):
        """
        Attempt one entry right now, ignoring its backoff window (operator retry).

        Returns:
            The entry after the attempt has been saved

        Raises:
            EntryNotFoundError: If the entry does not exist
            TerminalEntryError: If the entry is succeeded, abandoned or unroutable
            EntryBusyError: If another attempt holds the entry's lease
            StaleEntryError: If the entry changed while it was being attempted
        """
        entry = self.store.get_by_id(entry_id)
        if entry.is_terminal():
            raise TerminalEntryError(entry.id, entry.status.value)

        now = self.clock()
        if not self.store.claim(entry, self.lease, now):
            raise EntryBusyError(entry.id)

        outcome = self._attempt(entry, now, deadline=None)
        self.store.save(entry)

        logger.info("outbox_manual_retry", entry_id=entry.id, action_type=entry.action_type,
                    attempt=entry.attempts, outcome=outcome)
        return entry

    def abandon_entry(self, entry_id):
        """
        Force an entry into the abandoned state, whatever its current status.

        An attempt in flight for the same entry will fail to save afterwards,
        so the abandonment sticks.

        Raises:
            EntryNotFoundError: If the entry does not exist
        """
        entry = self.store.get_by_id(entry_id)
        previous = entry.status.value
        entry.mark_abandoned()
        self.store.save(entry)

        logger.info("outbox_entry_abandoned", entry_id=entry.id, action_type=entry.action_type,
                    previous_status=previous, attempts=entry.attempts)
        return entry

    def _is_exhausted(self, entry):
        return entry.is_exhausted(self.max_attempts)

    def _process_entry(self, entry, now, deadline, result):
        if not self.policy.is_due(entry, now):
            result.skipped_backoff += 1
            logger.debug("outbox_retry_skipped_backoff", entry_id=entry.id,
                         next_retry=self.policy.next_attempt_at(entry).isoformat())
            return

        exhausted = self._is_exhausted(entry)
        if exhausted and not self.abandon_on_exhaustion:
            result.skipped_exhausted += 1
            logger.warning("outbox_entry_exhausted", entry_id=entry.id, action_type=entry.action_type,
                           attempts=entry.attempts, error=entry.error_message)
            return

        if not self.store.claim(entry, self.lease, now):
            result.contended += 1
            logger.info("outbox_entry_contended", entry_id=entry.id)
            return

        if exhausted:
            # The limit was lowered since the last attempt
            self._abandon_exhausted(entry)
            result.record(ABANDONED)
        else:
            result.attempted += 1
            result.record(self._attempt(entry, now, deadline))

        try:
            self.store.save(entry)
        except StaleEntryError as e:
            result.save_errors += 1
            logger.error("outbox_save_conflict", entry_id=entry.id, error=str(e))
        except Exception as e:
            result.save_errors += 1
            logger.error("outbox_save_failed", entry_id=entry.id, status=entry.status.value,
                         error=str(e), exc_info=True)

    def _attempt(self, entry, now, deadline):
        """Mark the attempt, run the executor and record the outcome on the entry."""
        entry.mark_attempt(now)
        context = ExecutionContext(
            entry_id=entry.id,
            action_type=entry.action_type,
            attempt=entry.attempts,
            timeout=self.execute_timeout,
            deadline=deadline,
        )

        try:
            executor = self.registry.get(entry.action_type)
            external_id = executor.execute(context, entry.payload)
        except (UnroutableActionError, PermanentExecutorError) as e:
            entry.mark_unroutable(e)
            logger.error("outbox_entry_unroutable", entry_id=entry.id, action_type=entry.action_type,
                         attempt=entry.attempts, error=str(e))
            return UNROUTABLE
        except Exception as e:
            entry.mark_failed(e)
            logger.warning("outbox_action_failed", entry_id=entry.id, action_type=entry.action_type,
                           attempt=entry.attempts, error=str(e))
            if self._is_exhausted(entry):
                if self.abandon_on_exhaustion:
                    self._abandon_exhausted(entry)
                    return ABANDONED
                logger.warning("outbox_entry_exhausted", entry_id=entry.id, action_type=entry.action_type,
                               attempts=entry.attempts, error=entry.error_message)
            return FAILED

        entry.mark_success(external_id)
        logger.info("outbox_action_succeeded", entry_id=entry.id, action_type=entry.action_type,
                    attempt=entry.attempts, external_id=external_id)
        return SUCCEEDED

    def _abandon_exhausted(self, entry):
        limit = self.max_attempts if self.max_attempts is not None else entry.max_attempts
        entry.error_message = f"max attempts reached ({entry.attempts}/{limit}): {entry.error_message}"
        entry.mark_abandoned()
        logger.error("outbox_entry_exhausted", entry_id=entry.id, action_type=entry.action_type,
                     attempts=entry.attempts, error=entry.error_message, action="abandoned")
