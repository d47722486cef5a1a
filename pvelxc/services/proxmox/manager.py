"""Unified Proxmox container management interface."""
import os
import threading
from typing import Optional

from pvelxc.core.config import GatewaySettings, LifecycleConfig, get_config
from pvelxc.core.logger import get_logger
from pvelxc.services.proxmox.api import ProxmoxAPIGateway
from pvelxc.services.proxmox.containers import ContainerLifecycle
from pvelxc.services.proxmox.gateway import ContainerGateway
from pvelxc.services.proxmox.mock import MockGateway

logger = get_logger(__name__)


def mock_enabled() -> bool:
    return os.environ.get('PVELXC_MOCK', '').lower() in ('1', 'true')


class ProxmoxManager:
    """Builds the gateway and lifecycle engine for one cluster.

    This is a facade: callers get a ready ContainerLifecycle without
    wiring gateway, settings and config themselves.
    """

    def __init__(
        self,
        mock: bool = False,
        settings: Optional[GatewaySettings] = None,
        config: Optional[LifecycleConfig] = None,
        gateway: Optional[ContainerGateway] = None,
    ):
        self.mock = mock or mock_enabled()
        if config is None:
            config = get_config().without_delays() if self.mock else get_config()
        self.config = config
        if gateway is not None:
            self.gateway = gateway
        elif self.mock:
            logger.debug("Using in-memory mock gateway")
            self.gateway = MockGateway()
        else:
            self.gateway = ProxmoxAPIGateway(settings or GatewaySettings.from_env())

    def lifecycle(self, cancel: Optional[threading.Event] = None, **callbacks) -> ContainerLifecycle:
        """Return a lifecycle engine bound to this manager's gateway."""
        return ContainerLifecycle(self.gateway, self.config, cancel=cancel, **callbacks)
