"""Abstract base class for the remote container gateway."""
from abc import ABC, abstractmethod
from typing import List, Optional

from pvelxc.models.container import (
    CloneRequest,
    ContainerIdentity,
    ContainerInfo,
    ContainerSpec,
    ExecutionRecord,
    Interface,
    NetworkSpec,
)


class ContainerGateway(ABC):
    """Interface to the cluster's container API.

    Every method may raise :class:`pvelxc.core.errors.GatewayError`.
    Calls fire against the current remote state; whether starting a
    running container is a no-op or an error is up to the implementation.
    """

    @abstractmethod
    def allocate_id(self) -> int:
        """Return the next free vmid in the cluster."""

    @abstractmethod
    def is_id_available(self, vmid: int) -> bool:
        """Check whether no guest in the cluster uses ``vmid``."""

    @abstractmethod
    def create(self, spec: ContainerSpec, vmid: int) -> int:
        """Submit a container create request.

        Only the acknowledgement is synchronous; provisioning may still be
        running remotely when this returns.

        Returns:
            The vmid of the new container
        """

    @abstractmethod
    def delete(self, identity: ContainerIdentity, purge: bool = False, force: bool = False) -> None:
        """Destroy a container."""

    @abstractmethod
    def get_status(self, identity: ContainerIdentity) -> str:
        """Return the current status string (running, stopped, ...)."""

    @abstractmethod
    def start(self, identity: ContainerIdentity) -> None:
        """Start a container."""

    @abstractmethod
    def stop(self, identity: ContainerIdentity, overrule: bool = False) -> None:
        """Stop a container.

        Args:
            overrule: Abort an in-flight shutdown task and stop immediately
        """

    @abstractmethod
    def get_interfaces(self, identity: ContainerIdentity) -> List[Interface]:
        """List interfaces of a running container."""

    @abstractmethod
    def exec_async(self, vmid: int, shell: str, command: str) -> str:
        """Submit ``command`` for execution through ``shell``.

        Returns:
            Execution id to pass to :meth:`get_execution_result`
        """

    @abstractmethod
    def get_execution_result(self, execution_id: str) -> ExecutionRecord:
        """Fetch the record of a submitted command."""

    @abstractmethod
    def get_container(self, identity: ContainerIdentity) -> Optional[ContainerInfo]:
        """Return container info, or None when the vmid is not on the node."""

    @abstractmethod
    def clone(self, request: CloneRequest, vmid: int) -> None:
        """Create a linked clone of ``request.source_vmid`` as ``vmid``."""

    @abstractmethod
    def update_config(self, identity: ContainerIdentity, networks: List[NetworkSpec]) -> None:
        """Replace the container's network configuration."""

    @abstractmethod
    def create_template(self, identity: ContainerIdentity) -> None:
        """Convert a stopped container into a template."""
