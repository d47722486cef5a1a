"""Asynchronous command execution inside running containers."""
from typing import List, Optional

from pvelxc.core.config import LifecycleConfig, get_config
from pvelxc.core.errors import ExecutionError, GatewayError
from pvelxc.core.logger import get_logger
from pvelxc.core.retry import Deadline, RetryPolicy, Waiter
from pvelxc.models.container import ContainerIdentity, ExecutionRecord, ExecutionState
from pvelxc.services.proxmox.gateway import ContainerGateway

logger = get_logger(__name__)


class CommandRunner:
    """Runs shell commands in a container, strictly in order.

    Submission and result polling have separate budgets so a flaky
    submission is told apart from a command that is slow but healthy.
    """

    def __init__(
        self,
        gateway: ContainerGateway,
        config: Optional[LifecycleConfig] = None,
        waiter: Optional[Waiter] = None,
    ):
        self.gateway = gateway
        self.config = config or get_config()
        self.waiter = waiter or Waiter()

    def run(self, identity: ContainerIdentity, commands: List[str]) -> None:
        """Run every command; the first failure aborts the rest.

        Raises:
            ExecutionError: a command could not be submitted, kept failing,
                or exited non-zero
        """
        total = len(commands)
        for index, command in enumerate(commands, 1):
            logger.info(f"Executing in container {identity} ({index}/{total}): {command}")
            execution_id = self._submit(identity, command)
            record = self._await_result(identity, command, execution_id)
            logger.info(f"✓ Command {index}/{total} succeeded in {identity}")
            if record.output:
                logger.debug(record.output)

    def _submit(self, identity: ContainerIdentity, command: str) -> str:
        cfg = self.config
        policy = RetryPolicy(
            budget=cfg.exec_submit_retries,
            delay=cfg.exec_submit_delay,
            backoff=cfg.retry_backoff,
            max_delay=cfg.retry_max_delay,
            jitter=cfg.retry_jitter,
        )
        attempt = 0
        last_error: Optional[GatewayError] = None

        while policy.should_retry(attempt):
            attempt += 1
            try:
                return self.gateway.exec_async(identity.vmid, cfg.exec_shell, command)
            except GatewayError as e:
                last_error = e
                logger.warning(f"Submitting command failed (attempt {attempt}/{policy.budget}): {e}")
                if policy.should_retry(attempt):
                    self.waiter.sleep(policy.delay_for(attempt), "submit")

        raise ExecutionError(
            f"unable to submit {command!r} after {attempt} attempts",
            stage="submit",
            identity=identity,
            command=command,
        ) from last_error

    def _await_result(self, identity: ContainerIdentity, command: str, execution_id: str) -> ExecutionRecord:
        """Poll the execution record until the command finishes.

        ``running`` records do not consume an attempt; fetch errors and
        ``failed`` records do. A non-zero exit code is final.
        """
        cfg = self.config
        deadline = Deadline(cfg.exec_timeout)
        attempt = 0
        polls = 0
        last_message = None
        last_error: Optional[GatewayError] = None

        while attempt < cfg.exec_result_retries:
            if deadline.expired():
                raise ExecutionError(
                    f"{command!r} still running after {cfg.exec_timeout}s",
                    stage="result",
                    identity=identity,
                    command=command,
                )
            self.waiter.sleep(cfg.exec_result_interval, "result")
            polls += 1

            try:
                record = self.gateway.get_execution_result(execution_id)
            except GatewayError as e:
                attempt += 1
                last_error = e
                last_message = str(e)
                logger.warning(f"Fetching result of {execution_id} failed (attempt {attempt}): {e}")
                continue

            if record.status is ExecutionState.RUNNING:
                logger.info(f"Command still running (poll {polls}): {command}")
                continue

            if record.status is ExecutionState.FAILED:
                attempt += 1
                last_error = None
                last_message = record.error or "command failed"
                logger.warning(f"Command reported failure (attempt {attempt}): {last_message}")
                continue

            exit_code = record.exit_code or 0
            if exit_code != 0:
                message = f"{command!r} exited with code {exit_code}"
                if record.output:
                    message = f"{message}: {record.output}"
                raise ExecutionError(
                    message,
                    stage="result",
                    identity=identity,
                    command=command,
                    exit_code=exit_code,
                    output=record.output,
                )
            return record

        raise ExecutionError(
            f"{command!r} did not succeed after {attempt} attempts: {last_message}",
            stage="result",
            identity=identity,
            command=command,
        ) from last_error
