"""Network address resolution for running containers."""
from collections import Counter
from typing import List, Optional

from pvelxc.core.config import LifecycleConfig, get_config
from pvelxc.core.errors import GatewayError, ResolutionError
from pvelxc.core.logger import get_logger
from pvelxc.core.retry import RetryPolicy, Waiter
from pvelxc.models.container import ContainerIdentity, Interface, NetworkSpec
from pvelxc.services.proxmox.gateway import ContainerGateway

logger = get_logger(__name__)

LOOPBACK = "lo"


class NetworkResolver:
    """Waits for a container's interfaces to report addresses.

    Configured networks are matched to observed interfaces by name. Each
    attempt is all-or-nothing: if any configured network has no address
    yet, the attempt's partial results are dropped and the next attempt
    starts from scratch.
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

    def _policy(self) -> RetryPolicy:
        return RetryPolicy(budget=self.config.network_retries, delay=self.config.network_interval)

    def resolve(self, identity: ContainerIdentity, networks: List[NetworkSpec]) -> List[NetworkSpec]:
        """Return copies of ``networks`` with ``computed_address`` set.

        The result has the same length and order as ``networks``; the
        inputs are not modified.

        Raises:
            ResolutionError: duplicate names, or some network still had no
                address when the attempt budget ran out
        """
        if not networks:
            return []

        duplicates = [name for name, count in Counter(n.name for n in networks).items() if count > 1]
        if duplicates:
            raise ResolutionError(
                f"network names must be unique, duplicated: {', '.join(duplicates)}",
                stage="resolve",
                identity=identity,
            )

        policy = self._policy()
        attempt = 0
        unresolved = [net.name for net in networks]
        last_error: Optional[GatewayError] = None

        while policy.should_retry(attempt):
            attempt += 1
            self.waiter.sleep(policy.delay_for(attempt), "resolve")

            try:
                interfaces = self.gateway.get_interfaces(identity)
            except GatewayError as e:
                last_error = e
                logger.error(f"Failed to retrieve interfaces of {identity} (attempt {attempt}): {e}")
                continue
            last_error = None

            addresses = {iface.name: iface.ipv4 for iface in interfaces}
            resolved = [net.with_address(addresses.get(net.name) or None) for net in networks]
            unresolved = [net.name for net in resolved if not net.computed_address]
            if unresolved:
                logger.warning(
                    f"Interfaces of {identity} without an address yet "
                    f"(attempt {attempt}/{policy.budget}): {', '.join(unresolved)}"
                )
                continue

            for net in resolved:
                logger.debug(f"{identity} {net.name} -> {net.computed_address}")
            return resolved

        raise ResolutionError(
            f"unable to compute all interface addresses after {attempt} attempts "
            f"(unresolved: {', '.join(unresolved)})",
            stage="resolve",
            identity=identity,
            attempts=attempt,
            unresolved=unresolved,
        ) from last_error

    def observe(self, identity: ContainerIdentity) -> List[Interface]:
        """Return all non-loopback interfaces once every one has an IPv4.

        Used for clones, whose interfaces are inherited from the source
        rather than configured here.
        """
        policy = self._policy()
        attempt = 0
        last_error: Optional[GatewayError] = None

        while policy.should_retry(attempt):
            attempt += 1
            self.waiter.sleep(policy.delay_for(attempt), "observe")
            try:
                interfaces = self.gateway.get_interfaces(identity)
            except GatewayError as e:
                last_error = e
                logger.error(f"Failed to retrieve interfaces of {identity} (attempt {attempt}): {e}")
                continue
            last_error = None

            observed = [iface for iface in interfaces if iface.name != LOOPBACK]
            if observed and all(iface.ipv4 for iface in observed):
                return observed

        raise ResolutionError(
            f"interfaces did not report addresses after {attempt} attempts",
            stage="observe",
            identity=identity,
            attempts=attempt,
        ) from last_error
