"""Retry and polling primitives with exponential backoff and cancellation."""
import random
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from pvelxc.core.errors import OperationCancelled, PollTimeout
from pvelxc.core.logger import get_logger

logger = get_logger(__name__)


def should_retry(attempt: int, budget: int) -> bool:
    """Return True while ``attempt`` failed attempts still leave budget.

    Args:
        attempt: Number of attempts already consumed
        budget: Total attempts allowed

    Example:
        should_retry(0, 3) -> True   # first attempt
        should_retry(3, 3) -> False  # budget exhausted
    """
    return attempt < budget


@dataclass
class RetryPolicy:
    """Attempt budget and wait schedule for one bounded loop.

    The wait before attempt ``n`` (1-based) is
    ``min(delay * backoff ** (n - 1), max_delay)`` spread by ``jitter``.
    With ``backoff=1`` and ``jitter=0`` every wait is exactly ``delay``.
    """

    budget: int
    delay: float
    backoff: float = 1.0
    max_delay: Optional[float] = None
    jitter: float = 0.0

    def should_retry(self, attempt: int) -> bool:
        return should_retry(attempt, self.budget)

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait before the given (1-based) attempt."""
        wait = self.delay * (self.backoff ** max(attempt - 1, 0))
        if self.max_delay is not None:
            wait = min(wait, self.max_delay)
        if self.jitter and wait > 0:
            wait *= random.uniform(1 - self.jitter, 1 + self.jitter)
        return max(wait, 0.0)


class Deadline:
    """Optional wall-clock bound measured on the monotonic clock.

    A timeout of None, 0 or less means unbounded.
    """

    def __init__(self, timeout: Optional[float], clock: Callable[[], float] = time.monotonic):
        self.timeout = timeout if timeout is not None and timeout > 0 else None
        self._clock = clock
        self._start = clock()

    @property
    def unbounded(self) -> bool:
        return self.timeout is None

    def remaining(self) -> Optional[float]:
        if self.timeout is None:
            return None
        return max(self.timeout - (self._clock() - self._start), 0.0)

    def expired(self) -> bool:
        return self.timeout is not None and self.remaining() <= 0


class Waiter:
    """Blocking sleeps that a cancellation event can interrupt.

    Args:
        cancel: Event another thread may set to abort any wait
    """

    def __init__(self, cancel: Optional[threading.Event] = None):
        self.cancel = cancel or threading.Event()

    def sleep(self, seconds: float, what: str = "wait") -> None:
        if self.cancel.is_set():
            raise OperationCancelled(f"cancelled before {what}", stage=what)
        if seconds <= 0:
            return
        if self.cancel.wait(seconds):
            raise OperationCancelled(f"cancelled during {what}", stage=what)


def poll_until(
    check: Callable[[], bool],
    interval: float,
    waiter: Waiter,
    deadline: Deadline,
    what: str,
    identity=None,
) -> int:
    """Wait ``interval`` then call ``check`` until it returns True.

    Errors raised by ``check`` propagate unchanged: this is a wait for the
    remote side to confirm, not a retry-on-error loop.

    Returns:
        Number of polls performed

    Raises:
        PollTimeout: the deadline passed before ``check`` returned True
        OperationCancelled: the waiter's cancellation event was set
    """
    polls = 0
    while True:
        if deadline.expired():
            raise PollTimeout(
                f"not confirmed after {polls} polls ({deadline.timeout}s)",
                stage=what,
                identity=identity,
            )
        waiter.sleep(interval, what)
        polls += 1
        if check():
            return polls
        logger.debug(f"{what}: not confirmed yet (poll {polls})")
