"""Exception hierarchy for the lifecycle convergence engine."""
from contextlib import contextmanager
from typing import Optional

from pvelxc.models.container import ContainerIdentity


class LifecycleError(Exception):
    """Base error carrying the stage, container identity and cause.

    Attributes:
        stage: Pipeline stage that failed (e.g. "converge", "delete")
        identity: Container the stage was acting on, when known
        present: Whether the container is known to still exist remotely;
            None when the stage never reached the remote side
    """

    def __init__(
        self,
        message: str,
        stage: Optional[str] = None,
        identity: Optional[ContainerIdentity] = None,
        present: Optional[bool] = None,
    ):
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.identity = identity
        self.present = present

    def __str__(self) -> str:
        parts = []
        if self.stage:
            parts.append(f"[{self.stage}]")
        if self.identity is not None:
            parts.append(f"{self.identity}:")
        parts.append(self.message)
        if self.__cause__ is not None:
            parts.append(f"(caused by: {self.__cause__})")
        return " ".join(parts)


class GatewayError(LifecycleError):
    """A remote API call failed.

    ``transient`` marks connection failures, timeouts and 5xx replies.
    """

    def __init__(self, message: str, status_code: Optional[int] = None, transient: bool = False, **kwargs):
        super().__init__(message, stage=kwargs.pop("stage", "gateway"), **kwargs)
        self.status_code = status_code
        self.transient = transient


class AllocationError(LifecycleError):
    """No vmid could be obtained from the cluster."""


class ConvergenceError(LifecycleError):
    """Status did not converge, or the desired status is unsupported."""


class ExecutionError(LifecycleError):
    """A container command could not be submitted or did not succeed."""

    def __init__(self, message: str, command: Optional[str] = None, exit_code: Optional[int] = None,
                 output: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.command = command
        self.exit_code = exit_code
        self.output = output


class ResolutionError(LifecycleError):
    """Not every configured network reported an address in time."""

    def __init__(self, message: str, attempts: int = 0, unresolved=None, **kwargs):
        super().__init__(message, **kwargs)
        self.attempts = attempts
        self.unresolved = list(unresolved or [])


class PollTimeout(LifecycleError):
    """A wait-until-confirmed poll ran past its deadline."""


class OperationCancelled(LifecycleError):
    """The caller set the cancellation event during a wait."""


class ContainerNotFound(LifecycleError):
    """The container does not exist on the node."""


class CompensationError(LifecycleError):
    """Creation failed and the compensating deletion failed too.

    The container must be treated as present: both errors are kept so the
    caller can decide how to clean up.
    """

    def __init__(self, original: LifecycleError, rollback: Exception, identity: Optional[ContainerIdentity] = None):
        message = f"{original.stage} failed: {original.message}; rollback deletion also failed: {rollback}"
        super().__init__(message, stage="compensate", identity=identity, present=True)
        self.original = original
        self.rollback = rollback


@contextmanager
def in_stage(stage: str, identity: Optional[ContainerIdentity] = None):
    """Tag gateway errors raised inside the block with a stage and identity."""
    try:
        yield
    except GatewayError as e:
        if e.stage == "gateway":
            e.stage = stage
        if e.identity is None:
            e.identity = identity
        raise
