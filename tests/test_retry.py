"""Tests for retry and polling primitives."""
import threading

import pytest

from pvelxc.core.errors import OperationCancelled, PollTimeout
from pvelxc.core.retry import Deadline, RetryPolicy, Waiter, poll_until, should_retry


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestShouldRetry:
    def test_budget(self):
        assert should_retry(0, 3)
        assert should_retry(2, 3)
        assert not should_retry(3, 3)

    def test_zero_budget_never_retries(self):
        assert not should_retry(0, 0)


class TestRetryPolicy:
    def test_constant_delay_by_default(self):
        policy = RetryPolicy(budget=3, delay=15)
        assert [policy.delay_for(n) for n in (1, 2, 3)] == [15, 15, 15]

    def test_exponential_backoff_is_capped(self):
        policy = RetryPolicy(budget=5, delay=3, backoff=2.0, max_delay=10)
        assert [policy.delay_for(n) for n in (1, 2, 3, 4)] == [3, 6, 10, 10]

    def test_jitter_stays_within_bounds(self):
        policy = RetryPolicy(budget=3, delay=10, jitter=0.1)
        for _ in range(50):
            assert 9.0 <= policy.delay_for(1) <= 11.0

    def test_zero_delay_stays_zero(self):
        policy = RetryPolicy(budget=3, delay=0, backoff=2.0, jitter=0.5)
        assert policy.delay_for(3) == 0


class TestDeadline:
    def test_unbounded_never_expires(self):
        deadline = Deadline(None)
        assert deadline.unbounded
        assert deadline.remaining() is None
        assert not deadline.expired()

    def test_expires_after_timeout(self):
        clock = FakeClock()
        deadline = Deadline(10, clock=clock)
        clock.now = 4
        assert deadline.remaining() == 6
        assert not deadline.expired()
        clock.now = 10
        assert deadline.expired()

    def test_zero_timeout_is_unbounded(self):
        clock = FakeClock()
        deadline = Deadline(0, clock=clock)
        clock.now = 10_000
        assert deadline.unbounded
        assert not deadline.expired()


class TestWaiter:
    def test_cancelled_before_wait(self):
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(OperationCancelled) as exc:
            Waiter(cancel).sleep(0, "settle")
        assert exc.value.stage == "settle"

    def test_cancel_interrupts_long_wait(self):
        cancel = threading.Event()
        threading.Timer(0.05, cancel.set).start()
        with pytest.raises(OperationCancelled):
            Waiter(cancel).sleep(30, "release")


class TestPollUntil:
    def test_returns_poll_count(self):
        answers = iter([False, False, True])
        polls = poll_until(lambda: next(answers), 0, Waiter(), Deadline(None), "release")
        assert polls == 3

    def test_times_out(self):
        clock = FakeClock()
        deadline = Deadline(5, clock=clock)

        def check():
            clock.now += 2
            return False

        with pytest.raises(PollTimeout) as exc:
            poll_until(check, 0, Waiter(), deadline, "release")
        assert exc.value.stage == "release"
        assert "3 polls" in exc.value.message

    def test_check_errors_propagate(self):
        def check():
            raise RuntimeError("remote down")

        with pytest.raises(RuntimeError):
            poll_until(check, 0, Waiter(), Deadline(None), "release")
