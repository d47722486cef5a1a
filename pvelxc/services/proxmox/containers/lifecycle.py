"""Container lifecycle pipelines (create, read, update, delete)."""
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Union

from pvelxc.core.config import LifecycleConfig, get_config
from pvelxc.core.errors import (
    AllocationError,
    CompensationError,
    ContainerNotFound,
    GatewayError,
    LifecycleError,
    in_stage,
)
from pvelxc.core.logger import get_logger
from pvelxc.core.retry import Deadline, Waiter, poll_until
from pvelxc.models.container import (
    CloneRequest,
    ContainerIdentity,
    ContainerSpec,
    Interface,
    NetworkSpec,
    Status,
)
from pvelxc.services.proxmox.gateway import ContainerGateway
from .commands import CommandRunner
from .networks import NetworkResolver
from .status import StatusDriver

logger = get_logger(__name__)

IdentityCallback = Callable[[ContainerIdentity], None]


@dataclass
class CreateResult:
    identity: ContainerIdentity
    status: Status
    networks: List[NetworkSpec] = field(default_factory=list)


@dataclass
class ReadResult:
    identity: ContainerIdentity
    status: str
    networks: List[NetworkSpec] = field(default_factory=list)


@dataclass
class CloneResult:
    identity: ContainerIdentity
    status: Status
    interfaces: List[Interface] = field(default_factory=list)


class ContainerLifecycle:
    """Sequences status convergence, network resolution and commands.

    This is the only component allowed to compensate: when a stage after
    the remote create fails, the container is deleted again before the
    error is raised.

    Args:
        gateway: Remote container API
        config: Timing and retry settings (defaults to the global config)
        cancel: Event that aborts any wait when set
        on_created: Called with the identity as soon as the remote create
            is acknowledged, so a caller can record it for cleanup
        on_removed: Called once a container is confirmed deleted
    """

    def __init__(
        self,
        gateway: ContainerGateway,
        config: Optional[LifecycleConfig] = None,
        cancel: Optional[threading.Event] = None,
        on_created: Optional[IdentityCallback] = None,
        on_removed: Optional[IdentityCallback] = None,
    ):
        self.gateway = gateway
        self.config = config or get_config()
        self.waiter = Waiter(cancel)
        self.on_created = on_created
        self.on_removed = on_removed
        self.status = StatusDriver(gateway, self.config, self.waiter)
        self.commands = CommandRunner(gateway, self.config, self.waiter)
        self.networks = NetworkResolver(gateway, self.config, self.waiter)

    # ==================== Creation ====================

    def create_container(self, spec: ContainerSpec) -> CreateResult:
        """Create a container and converge it to ``spec.status``.

        Stages: allocate vmid, create, record identity, converge status,
        resolve networks (when running), run commands (start, run, converge
        back). Failures after the create trigger a compensating delete.

        Raises:
            AllocationError: no vmid could be obtained; nothing was created
            LifecycleError: a stage failed; ``present`` tells whether the
                container still exists
            CompensationError: a stage failed and so did the rollback
        """
        desired = self._desired(spec.status, spec.node, spec.vmid)
        identity = self._create_remote(spec)

        with self._compensating(identity):
            self.status.converge(identity, desired)

            networks = list(spec.networks)
            if desired is Status.RUNNING:
                networks = self.networks.resolve(identity, spec.networks)

            if spec.commands:
                self._run_with_status(identity, spec.commands, desired)

        logger.info(f"✓ Container {identity} created ({desired.value})")
        return CreateResult(identity=identity, status=desired, networks=networks)

    def create_template(self, spec: ContainerSpec) -> ContainerIdentity:
        """Create a container, run its commands, then convert it to a template.

        The container is always left stopped before conversion, whatever
        ``spec.status`` says.
        """
        identity = self._create_remote(spec)

        if spec.commands:
            with self._compensating(identity):
                self._run_with_status(identity, spec.commands, Status.STOPPED)

        logger.info(f"Converting container {identity} to a template")
        try:
            with in_stage("template", identity):
                self.gateway.create_template(identity)
        except GatewayError as e:
            e.present = True
            raise
        logger.info(f"✓ Template {identity} created")
        return identity

    def clone_container(self, request: CloneRequest) -> CloneResult:
        """Linked-clone a container and converge the clone to ``request.status``.

        Only a failed status convergence is compensated; interface
        observation failures leave the clone in place.
        """
        desired = self._desired(request.status, request.node, request.vmid)
        vmid = self._resolve_vmid(request.node, request.vmid)
        identity = ContainerIdentity(request.node, vmid)

        try:
            with in_stage("clone", identity):
                self.gateway.clone(request, vmid)
        except GatewayError as e:
            e.present = False
            raise
        self._record(identity)

        with self._compensating(identity):
            self.status.converge(identity, desired)

        interfaces: List[Interface] = []
        if desired is Status.RUNNING:
            try:
                interfaces = self.networks.observe(identity)
            except LifecycleError as error:
                error.present = True
                raise
        logger.info(f"✓ Clone {identity} of {request.node}/{request.source_vmid} ready")
        return CloneResult(identity=identity, status=desired, interfaces=interfaces)

    def _desired(self, status: Union[Status, str], node: str, vmid: Optional[int]) -> Status:
        desired = Status.parse(status)
        if desired is None:
            identity = ContainerIdentity(node, vmid) if vmid else None
            raise LifecycleError(f"unexpected status value, got {status!r}", stage="validate", identity=identity)
        return desired

    def _resolve_vmid(self, node: str, vmid: Optional[int]) -> int:
        if vmid:
            return vmid
        try:
            allocated = self.gateway.allocate_id()
        except GatewayError as e:
            raise AllocationError("unable to allocate a vmid", stage="allocate", present=False) from e
        logger.info(f"Auto-assigned VMID: {allocated} on {node}")
        return allocated

    def _create_remote(self, spec: ContainerSpec) -> ContainerIdentity:
        vmid = self._resolve_vmid(spec.node, spec.vmid)
        identity = ContainerIdentity(spec.node, vmid)
        try:
            with in_stage("create", identity):
                self.gateway.create(spec, vmid)
        except GatewayError as e:
            e.present = False
            raise
        self._record(identity)
        return identity

    def _run_with_status(self, identity: ContainerIdentity, commands: List[str], desired: Status) -> None:
        """Start the container if needed, run commands, converge back."""
        self.status.converge(identity, Status.RUNNING)
        self.commands.run(identity, commands)
        self.status.converge(identity, desired)

    @contextmanager
    def _compensating(self, identity: ContainerIdentity):
        """Delete ``identity`` again if the block raises.

        Errors that are not LifecycleErrors (a malformed gateway reply, a
        bug in a gateway implementation) are wrapped so the caller still
        learns the stage, the identity and whether the container exists.
        """
        try:
            yield
        except LifecycleError as error:
            self._compensate(identity, error)
            raise
        except Exception as e:
            error = LifecycleError(f"unexpected {type(e).__name__}: {e}", stage="provision", identity=identity)
            error.__cause__ = e
            self._compensate(identity, error)
            raise error from e

    def _compensate(self, identity: ContainerIdentity, error: LifecycleError) -> None:
        """Delete a half-created container after ``error``.

        On success ``error`` is marked absent and the caller re-raises it.
        On failure a CompensationError carrying both errors is raised.
        """
        if error.identity is None:
            error.identity = identity
        logger.error(f"Stage {error.stage} failed for {identity}: {error.message}")
        logger.warning(f"Rolling back: deleting container {identity}")
        try:
            self.delete_container(identity)
        except Exception as rollback:
            logger.error(f"Rollback deletion of {identity} failed: {rollback}")
            raise CompensationError(error, rollback, identity=identity) from error
        error.present = False
        logger.info(f"Rolled back container {identity}")

    def _record(self, identity: ContainerIdentity) -> None:
        logger.info(f"✓ Container {identity} created remotely")
        if self.on_created:
            self.on_created(identity)

    # ==================== Read / update ====================

    def read_container(
        self,
        identity: ContainerIdentity,
        desired: Union[Status, str],
        networks: Optional[List[NetworkSpec]] = None,
    ) -> ReadResult:
        """Read the observed status and, for running containers, addresses.

        Raises:
            LifecycleError: ``desired`` is not stopped or running
            ContainerNotFound: the vmid is not on the node
        """
        target = self._desired(desired, identity.node, identity.vmid)
        with in_stage("read", identity):
            info = self.gateway.get_container(identity)
        if info is None:
            raise ContainerNotFound(
                f"container not found on node {identity.node}, it may have been deleted",
                stage="read",
                identity=identity,
                present=False,
            )

        resolved = list(networks or [])
        if target is Status.RUNNING and resolved:
            resolved = self.networks.resolve(identity, resolved)
        return ReadResult(identity=identity, status=info.status, networks=resolved)

    def update_status(self, identity: ContainerIdentity, desired: Union[Status, str]) -> str:
        """Converge an existing container to ``desired``."""
        return self.status.converge(identity, desired)

    def update_networks(
        self,
        identity: ContainerIdentity,
        networks: List[NetworkSpec],
        desired: Union[Status, str],
    ) -> List[NetworkSpec]:
        """Replace a container's networks: stop, reconfigure, converge back.

        Returns:
            ``networks`` with addresses when ``desired`` is running,
            otherwise ``networks`` unchanged
        """
        target = self._desired(desired, identity.node, identity.vmid)
        self.status.converge(identity, Status.STOPPED)
        logger.info(f"Updating networks of {identity}: {', '.join(n.name for n in networks) or 'none'}")
        with in_stage("update-networks", identity):
            self.gateway.update_config(identity, networks)
        self.status.converge(identity, target)
        if target is Status.RUNNING:
            return self.networks.resolve(identity, networks)
        return list(networks)

    def run_commands(self, identity: ContainerIdentity, commands: List[str]) -> None:
        """Run commands in an already running container."""
        self.commands.run(identity, commands)

    # ==================== Deletion ====================

    def delete_container(self, identity: ContainerIdentity) -> None:
        """Stop, confirm stopped, delete, confirm the vmid is released.

        Gateway errors abort immediately. The two confirmation waits are
        bounded by ``delete_stop_timeout`` and ``delete_free_timeout``.

        Raises:
            LifecycleError: any stage failed; the container may still exist
        """
        cfg = self.config
        logger.info(f"Deleting container {identity}")
        self.waiter.sleep(cfg.delete_settle_delay, "settle")

        self.status.converge(identity, Status.STOPPED)
        self.status.wait_for(identity, Status.STOPPED, cfg.delete_stop_interval, cfg.delete_stop_timeout)

        with in_stage("delete", identity):
            self.gateway.delete(identity)

        def _released() -> bool:
            with in_stage("release", identity):
                return self.gateway.is_id_available(identity.vmid)

        poll_until(_released, cfg.delete_free_interval, self.waiter,
                   Deadline(cfg.delete_free_timeout), "release", identity)

        logger.info(f"✓ Container {identity} deleted")
        if self.on_removed:
            self.on_removed(identity)
