"""Status convergence: drive a container to stopped or running."""
from typing import Callable, Optional, Union

from pvelxc.core.config import LifecycleConfig, get_config
from pvelxc.core.errors import ConvergenceError, GatewayError, in_stage
from pvelxc.core.logger import get_logger
from pvelxc.core.retry import Deadline, RetryPolicy, Waiter, poll_until, should_retry
from pvelxc.models.container import ContainerIdentity, Status
from pvelxc.services.proxmox.gateway import ContainerGateway

logger = get_logger(__name__)

START = "start"
STOP = "stop"


def transition_for(desired: Status, observed: str) -> Optional[str]:
    """Pick the transition to issue for an observed status.

    Only ``stopped -> running`` (start) and ``running -> stopped`` (stop)
    are issued. Any other observed value is mid-transition: return None
    and let the caller re-poll.
    """
    if desired is Status.RUNNING and observed == Status.STOPPED.value:
        return START
    if desired is Status.STOPPED and observed == Status.RUNNING.value:
        return STOP
    return None


class StatusDriver:
    """Polls a container's status until it matches the desired value."""

    def __init__(
        self,
        gateway: ContainerGateway,
        config: Optional[LifecycleConfig] = None,
        waiter: Optional[Waiter] = None,
    ):
        self.gateway = gateway
        self.config = config or get_config()
        self.waiter = waiter or Waiter()

    def converge(self, identity: ContainerIdentity, desired: Union[Status, str]) -> str:
        """Converge ``identity`` to ``desired``.

        Every iteration waits ``status_interval`` then reads the status.
        At most one start/stop call is issued per iteration. Transition
        errors share one budget (``status_retries``) across the whole
        convergence; status query errors have their own budget
        (``status_query_retries``, 1 by default, so the first failure
        aborts).

        Returns:
            The observed status, equal to ``desired``

        Raises:
            ConvergenceError: unsupported ``desired``, exhausted budgets,
                or ``status_timeout`` elapsed
        """
        target = Status.parse(desired)
        if target is None:
            raise ConvergenceError(
                f"unexpected status value, got {desired!r}",
                stage="converge",
                identity=identity,
            )

        cfg = self.config
        backoff = RetryPolicy(
            budget=cfg.status_retries,
            delay=cfg.status_interval,
            backoff=cfg.retry_backoff,
            max_delay=max(cfg.retry_max_delay, cfg.status_interval),
            jitter=cfg.retry_jitter,
        )
        deadline = Deadline(cfg.status_timeout)
        transition_failures = 0
        consecutive_failures = 0
        query_failures = 0
        observed = None
        last_error: Optional[GatewayError] = None

        logger.debug(f"Converging {identity} to {target.value}")
        while True:
            if deadline.expired():
                raise ConvergenceError(
                    f"status is {observed!r}, not {target.value!r}, after {cfg.status_timeout}s",
                    stage="converge",
                    identity=identity,
                ) from last_error

            if consecutive_failures:
                wait = backoff.delay_for(consecutive_failures + 1)
            else:
                wait = cfg.status_interval
            self.waiter.sleep(wait, "converge")

            try:
                observed = self.gateway.get_status(identity)
            except GatewayError as e:
                query_failures += 1
                if should_retry(query_failures, cfg.status_query_retries):
                    logger.warning(
                        f"Status query for {identity} failed "
                        f"(attempt {query_failures}/{cfg.status_query_retries}): {e}"
                    )
                    continue
                raise ConvergenceError(
                    f"unable to read status after {query_failures} attempts",
                    stage="converge",
                    identity=identity,
                ) from e

            if observed == target.value:
                logger.info(f"✓ Container {identity} is {observed}")
                return observed

            logger.debug(f"{identity}: current status {observed}, desired {target.value}")
            action = transition_for(target, observed)
            if action is None:
                continue

            try:
                logger.info(f"Issuing {action} for container {identity} (currently {observed})")
                self._transition(action)(identity)
            except GatewayError as e:
                transition_failures += 1
                consecutive_failures += 1
                last_error = e
                if should_retry(transition_failures, cfg.status_retries):
                    logger.warning(
                        f"{action} of {identity} failed "
                        f"(attempt {transition_failures}/{cfg.status_retries}): {e}"
                    )
                    continue
                raise ConvergenceError(
                    f"{action} failed after {transition_failures} attempts",
                    stage="converge",
                    identity=identity,
                ) from e
            consecutive_failures = 0

    def _transition(self, action: str) -> Callable[[ContainerIdentity], None]:
        return self.gateway.start if action == START else self.gateway.stop

    def wait_for(
        self,
        identity: ContainerIdentity,
        status: Status,
        interval: float,
        timeout: Optional[float],
    ) -> int:
        """Poll until the gateway reports ``status``, issuing nothing.

        Returns:
            Number of polls performed
        """
        def _reached() -> bool:
            with in_stage("confirm-status", identity):
                return self.gateway.get_status(identity) == status.value

        return poll_until(_reached, interval, self.waiter, Deadline(timeout), "confirm-status", identity)
