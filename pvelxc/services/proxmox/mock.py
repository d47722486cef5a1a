"""In-memory gateway used for mock mode (PVELXC_MOCK=1) and tests."""
import itertools
import re
from typing import Dict, List, Optional, Tuple

from pvelxc.core.errors import GatewayError
from pvelxc.core.logger import get_logger
from pvelxc.models.container import (
    CloneRequest,
    ContainerIdentity,
    ContainerInfo,
    ContainerSpec,
    ExecutionRecord,
    ExecutionState,
    Interface,
    NetworkSpec,
    Status,
)
from .gateway import ContainerGateway

logger = get_logger(__name__)

_EXIT_RE = re.compile(r'^\s*exit\s+(\d+)\s*$')


class MockGateway(ContainerGateway):
    """Simulated cluster: state changes apply instantly.

    Seeded with the same two containers mock discovery always reported:
    ``pve/100`` (jellyfin, running) and ``pve/101`` (nextcloud, stopped).
    Commands of the form ``exit N`` finish with exit code N; anything else
    succeeds with its text echoed as output.
    """

    def __init__(self, seed: bool = True):
        self.containers: Dict[Tuple[str, int], Dict] = {}
        self.executions: Dict[str, ExecutionRecord] = {}
        self.executed: List[Tuple[int, str, str]] = []
        self._exec_ids = itertools.count(1)
        if seed:
            self._add('pve', 100, 'jellyfin', Status.RUNNING.value, [NetworkSpec(name='eth0', ip='dhcp')])
            self._add('pve', 101, 'nextcloud', Status.STOPPED.value, [NetworkSpec(name='eth0', ip='dhcp')])

    def _add(self, node: str, vmid: int, name: str, status: str, networks: List[NetworkSpec]) -> None:
        self.containers[(node, vmid)] = {
            'name': name,
            'status': status,
            'networks': list(networks),
            'template': False,
        }

    def _get(self, identity: ContainerIdentity) -> Dict:
        container = self.containers.get((identity.node, identity.vmid))
        if container is None:
            raise GatewayError(f"container {identity} does not exist", status_code=500)
        return container

    def _used_ids(self):
        return {vmid for _, vmid in self.containers}

    def allocate_id(self) -> int:
        vmid = 100
        used = self._used_ids()
        while vmid in used:
            vmid += 1
        return vmid

    def is_id_available(self, vmid: int) -> bool:
        return vmid not in self._used_ids()

    def create(self, spec: ContainerSpec, vmid: int) -> int:
        if not self.is_id_available(vmid):
            raise GatewayError(f"CT {vmid} already exists", status_code=500)
        logger.info(f"MOCK: Would create container {spec.node}/{vmid} from {spec.os_template}")
        self._add(spec.node, vmid, spec.hostname or f'CT{vmid}', Status.STOPPED.value, spec.networks)
        return vmid

    def delete(self, identity: ContainerIdentity, purge: bool = False, force: bool = False) -> None:
        container = self._get(identity)
        if container['status'] != Status.STOPPED.value and not force:
            raise GatewayError(f"CT {identity.vmid} is running", status_code=500)
        logger.info(f"MOCK: Would delete container {identity}")
        del self.containers[(identity.node, identity.vmid)]

    def get_status(self, identity: ContainerIdentity) -> str:
        return self._get(identity)['status']

    def start(self, identity: ContainerIdentity) -> None:
        logger.info(f"MOCK: Would start container {identity}")
        self._get(identity)['status'] = Status.RUNNING.value

    def stop(self, identity: ContainerIdentity, overrule: bool = False) -> None:
        logger.info(f"MOCK: Would stop container {identity}")
        self._get(identity)['status'] = Status.STOPPED.value

    def get_interfaces(self, identity: ContainerIdentity) -> List[Interface]:
        container = self._get(identity)
        interfaces = [Interface(name='lo', ipv4='127.0.0.1', ipv6='::1')]
        if container['status'] != Status.RUNNING.value:
            return interfaces
        for index, net in enumerate(container['networks']):
            if net.ip and net.ip != 'dhcp':
                address = net.ip.split('/', 1)[0]
            else:
                address = f"10.{index}.{identity.vmid // 250}.{identity.vmid % 250 + 1}"
            interfaces.append(Interface(name=net.name, ipv4=address, hw_address=net.hw_address))
        return interfaces

    def exec_async(self, vmid: int, shell: str, command: str) -> str:
        if not any(found == vmid for _, found in self.containers):
            raise GatewayError(f"container {vmid} does not exist", status_code=500)
        execution_id = f"mock-{next(self._exec_ids)}"
        self.executed.append((vmid, shell, command))
        match = _EXIT_RE.match(command)
        exit_code = int(match.group(1)) if match else 0
        self.executions[execution_id] = ExecutionRecord(
            execution_id=execution_id,
            status=ExecutionState.SUCCEEDED,
            exit_code=exit_code,
            output=command,
        )
        logger.info(f"MOCK: Would execute in container {vmid}: {shell} -c {command!r}")
        return execution_id

    def get_execution_result(self, execution_id: str) -> ExecutionRecord:
        try:
            return self.executions[execution_id]
        except KeyError:
            raise GatewayError(f"unknown execution {execution_id}", status_code=404) from None

    def get_container(self, identity: ContainerIdentity) -> Optional[ContainerInfo]:
        container = self.containers.get((identity.node, identity.vmid))
        if container is None:
            return None
        return ContainerInfo(
            vmid=identity.vmid,
            name=container['name'],
            status=container['status'],
            template=container['template'],
        )

    def clone(self, request: CloneRequest, vmid: int) -> None:
        source = self._get(ContainerIdentity(request.node, request.source_vmid))
        if not self.is_id_available(vmid):
            raise GatewayError(f"CT {vmid} already exists", status_code=500)
        logger.info(f"MOCK: Would clone {request.node}/{request.source_vmid} as {vmid}")
        self._add(request.node, vmid, request.hostname or source['name'], Status.STOPPED.value, source['networks'])

    def update_config(self, identity: ContainerIdentity, networks: List[NetworkSpec]) -> None:
        self._get(identity)['networks'] = list(networks)

    def create_template(self, identity: ContainerIdentity) -> None:
        container = self._get(identity)
        if container['status'] != Status.STOPPED.value:
            raise GatewayError(f"CT {identity.vmid} must be stopped", status_code=500)
        container['template'] = True
