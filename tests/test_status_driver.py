"""Tests for status convergence."""
from dataclasses import replace

import pytest

from pvelxc.core.errors import ConvergenceError, GatewayError, PollTimeout
from pvelxc.core.retry import Waiter
from pvelxc.models.container import Status
from pvelxc.services.proxmox.containers.status import StatusDriver, transition_for


class RecordingWaiter(Waiter):
    def __init__(self):
        super().__init__()
        self.waits = []

    def sleep(self, seconds, what="wait"):
        self.waits.append(seconds)


def test_transition_for():
    assert transition_for(Status.RUNNING, "stopped") == "start"
    assert transition_for(Status.STOPPED, "running") == "stop"
    assert transition_for(Status.RUNNING, "running") is None
    assert transition_for(Status.RUNNING, "starting") is None


class TestConverge:
    def test_already_converged_issues_nothing(self, gateway, config, identity):
        gateway.status = "running"
        driver = StatusDriver(gateway, config)

        assert driver.converge(identity, Status.RUNNING) == "running"
        assert gateway.names() == ["get_status"]

    def test_converging_twice_is_idempotent(self, gateway, config, identity):
        driver = StatusDriver(gateway, config)
        driver.converge(identity, "running")
        driver.converge(identity, "running")
        assert gateway.count("start") == 1

    def test_starts_stopped_container(self, gateway, config, identity):
        driver = StatusDriver(gateway, config)

        assert driver.converge(identity, "running") == "running"
        assert gateway.names() == ["get_status", "start", "get_status"]

    def test_stops_running_container(self, gateway, config, identity):
        gateway.status = "running"
        StatusDriver(gateway, config).converge(identity, Status.STOPPED)
        assert gateway.count("stop") == 1
        assert gateway.status == "stopped"

    def test_unsupported_status_makes_no_calls(self, gateway, config, identity):
        with pytest.raises(ConvergenceError, match="unexpected status value"):
            StatusDriver(gateway, config).converge(identity, "paused")
        assert gateway.calls == []

    def test_transitional_status_is_polled_without_transition(self, gateway, config, identity):
        gateway.status = "running"
        gateway.queue("get_status", "starting", "starting")

        StatusDriver(gateway, config).converge(identity, "running")

        assert gateway.count("get_status") == 3
        assert gateway.count("start") == 0

    def test_transition_error_is_retried(self, gateway, config, identity, gateway_error):
        gateway.queue("start", gateway_error())
        StatusDriver(gateway, config).converge(identity, "running")
        assert gateway.count("start") == 2

    def test_transition_budget_is_exact(self, gateway, config, identity, gateway_error):
        gateway.queue("start", *[gateway_error(f"start {n}") for n in range(10)])

        with pytest.raises(ConvergenceError) as exc:
            StatusDriver(gateway, config).converge(identity, "running")

        assert gateway.count("start") == config.status_retries == 5
        assert exc.value.stage == "converge"
        assert exc.value.identity == identity
        assert isinstance(exc.value.__cause__, GatewayError)
        assert exc.value.__cause__.message == "start 4"

    def test_transition_budget_is_shared_across_iterations(self, gateway, config, identity, gateway_error):
        # errors interleaved with transitional polls still count against one budget
        gateway.queue("start", *[gateway_error() for _ in range(5)])
        gateway.queue("get_status", "stopped", "starting", "stopped", "stopped", "stopped", "stopped")

        with pytest.raises(ConvergenceError):
            StatusDriver(gateway, config).converge(identity, "running")
        assert gateway.count("start") == 5

    def test_status_query_error_aborts_by_default(self, gateway, config, identity, gateway_error):
        gateway.queue("get_status", gateway_error("unreachable"))

        with pytest.raises(ConvergenceError) as exc:
            StatusDriver(gateway, config).converge(identity, "running")

        assert gateway.names() == ["get_status"]
        assert exc.value.__cause__.message == "unreachable"

    def test_status_query_budget(self, gateway, config, identity, gateway_error):
        config = replace(config, status_query_retries=3)
        gateway.queue("get_status", gateway_error(), gateway_error())

        StatusDriver(gateway, config).converge(identity, "running")

        assert gateway.count("get_status") == 4

    def test_status_timeout(self, gateway, config, identity):
        config = replace(config, status_timeout=0.05, status_interval=0.005)
        gateway.status = "starting"

        with pytest.raises(ConvergenceError, match="starting"):
            StatusDriver(gateway, config).converge(identity, "running")
        assert gateway.count("start") == 0

    def test_zero_status_timeout_is_unbounded(self, gateway, config, identity):
        config = replace(config, status_timeout=0)
        gateway.queue("get_status", "stopped", "starting", "starting")

        assert StatusDriver(gateway, config).converge(identity, "running") == "running"
        assert gateway.count("start") == 1

    def test_backoff_resets_after_successful_transition(self, gateway, config, identity, gateway_error):
        config = replace(config, status_interval=8, retry_backoff=2, retry_jitter=0, retry_max_delay=60)
        waiter = RecordingWaiter()
        gateway.queue("start", gateway_error(), gateway_error())

        StatusDriver(gateway, config, waiter).converge(identity, "running")

        assert gateway.count("start") == 3
        assert waiter.waits == [8, 16, 32, 8]


class TestWaitFor:
    def test_polls_until_status(self, gateway, config, identity):
        gateway.queue("get_status", "running", "stopping")
        polls = StatusDriver(gateway, config).wait_for(identity, Status.STOPPED, 0, None)
        assert polls == 3
        assert gateway.count("stop") == 0

    def test_gateway_error_is_tagged(self, gateway, config, identity, gateway_error):
        gateway.queue("get_status", gateway_error())
        with pytest.raises(GatewayError) as exc:
            StatusDriver(gateway, config).wait_for(identity, Status.STOPPED, 0, None)
        assert exc.value.stage == "confirm-status"
        assert exc.value.identity == identity

    def test_times_out(self, gateway, config, identity):
        gateway.status = "running"
        with pytest.raises(PollTimeout):
            StatusDriver(gateway, config).wait_for(identity, Status.STOPPED, 0.005, 0.03)
