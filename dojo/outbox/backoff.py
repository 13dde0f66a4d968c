"""
Retry backoff policy for outbox entries.

The delay before attempt n+1 is measured from the previous attempt and doubles
with every attempt made so far:

    attempts = 0  -> 0 (immediately eligible)
    attempts = n  -> min(base_delay * 2**(n-1), max_delay)
"""
from dataclasses import dataclass
from datetime import timedelta
from typing import Union

Delay = Union[timedelta, int, float]


def _as_timedelta(value: Delay) -> timedelta:
    if isinstance(value, timedelta):
        return value
    return timedelta(seconds=value)


def next_retry_delay(attempts: int, base_delay: Delay, max_delay: Delay) -> timedelta:
    """
    Delay before the next attempt, given how many attempts were already made.

    Args:
        attempts: Attempts made so far
        base_delay: Delay after the first attempt (timedelta or seconds)
        max_delay: Upper bound on the delay (timedelta or seconds)

    Returns:
        timedelta, never greater than max_delay
    """
    base = _as_timedelta(base_delay)
    cap = _as_timedelta(max_delay)
    if attempts <= 0:
        return timedelta(0)

    # Double until the cap is reached; avoids building huge multipliers for large attempt counts
    delay = base
    for _ in range(attempts - 1):
        if delay >= cap:
            break
        delay *= 2
    return min(delay, cap)


@dataclass(frozen=True)
class BackoffPolicy:
    """Exponential backoff between attempts, capped at max_delay."""
    base_delay: timedelta = timedelta(seconds=30)
    max_delay: timedelta = timedelta(hours=1)

    @classmethod
    def from_seconds(cls, base_seconds, max_seconds):
        return cls(base_delay=timedelta(seconds=base_seconds), max_delay=timedelta(seconds=max_seconds))

    def delay_for(self, attempts: int) -> timedelta:
        return next_retry_delay(attempts, self.base_delay, self.max_delay)

    def next_attempt_at(self, entry):
        """When the entry becomes eligible again, or None if it has never been attempted."""
        if entry.last_attempted_at is None:
            return None
        return entry.last_attempted_at + self.delay_for(entry.attempts)

    def is_due(self, entry, now) -> bool:
        ready_at = self.next_attempt_at(entry)
        return ready_at is None or now >= ready_at
