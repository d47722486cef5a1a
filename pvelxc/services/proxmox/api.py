"""Proxmox VE HTTP API gateway (api2/json) built on requests."""
from typing import Any, Dict, List, Optional

import requests

from pvelxc.core.config import GatewaySettings
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
)
from .gateway import ContainerGateway

logger = get_logger(__name__)


def _bool(value: Optional[bool]) -> Optional[int]:
    return None if value is None else int(value)


def _expect(data: Any, kind: type, what: str) -> Any:
    """Return ``data`` if the reply has the JSON shape ``what`` needs."""
    if not isinstance(data, kind):
        raise GatewayError(f"{what}: unexpected reply {data!r}")
    return data


def _as_int(value: Any, what: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise GatewayError(f"{what}: expected an integer, got {value!r}") from e


def _strip_prefix(address: Optional[str]) -> Optional[str]:
    """'10.0.0.5/24' -> '10.0.0.5'."""
    if not address:
        return None
    return address.split('/', 1)[0]


class ProxmoxAPIGateway(ContainerGateway):
    """Container gateway talking to a Proxmox VE node over HTTPS.

    Command execution is not part of the stock Proxmox API; it is served by
    an exec extension mounted at ``exec_path`` on the same host
    (``POST {exec_path}/lxc/{vmid}/exec`` and ``GET {exec_path}/cmd/{id}``).
    """

    def __init__(
        self,
        settings: Optional[GatewaySettings] = None,
        session: Optional[requests.Session] = None,
        exec_path: str = "/custom-api/v1",
    ):
        self.settings = settings or GatewaySettings.from_env()
        self.session = session or requests.Session()
        self.exec_path = exec_path.rstrip('/')
        self.session.headers.update(self._auth_headers())

    def _auth_headers(self) -> Dict[str, str]:
        headers = {}
        s = self.settings
        if s.token_name and s.token:
            headers['Authorization'] = f"PVEAPIToken={s.user}!{s.token_name}={s.token}"
        if s.cf_client_id and s.cf_client_secret:
            headers['CF-Access-Client-Id'] = s.cf_client_id
            headers['CF-Access-Client-Secret'] = s.cf_client_secret
        return headers

    # ==================== Transport ====================

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
        base_url: Optional[str] = None,
    ) -> Any:
        """Send one request and return the ``data`` member of the reply."""
        url = f"{base_url or self.settings.base_url}{path}"
        if data is not None:
            data = {key: value for key, value in data.items() if value is not None}

        logger.debug(f"{method} {url}")
        try:
            response = self.session.request(
                method,
                url,
                params=params,
                data=data,
                timeout=self.settings.request_timeout,
                verify=not self.settings.insecure_skip_verify,
            )
        except requests.RequestException as e:
            raise GatewayError(f"{method} {path} failed: {e}", transient=True) from e

        if response.status_code >= 400:
            reason = response.reason or ''
            try:
                errors = response.json().get('errors')
            except ValueError:
                errors = None
            detail = f"{reason} {errors}" if errors else reason
            raise GatewayError(
                f"{method} {path} returned {response.status_code}: {detail}".rstrip(),
                status_code=response.status_code,
                transient=response.status_code >= 500,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise GatewayError(f"{method} {path} returned invalid JSON") from e
        return payload.get('data') if isinstance(payload, dict) else payload

    @property
    def _exec_base_url(self) -> str:
        return f"https://{self.settings.host}:{self.settings.port}{self.exec_path}"

    @staticmethod
    def _lxc_path(identity: ContainerIdentity) -> str:
        return f"/nodes/{identity.node}/lxc/{identity.vmid}"

    # ==================== Cluster ====================

    def allocate_id(self) -> int:
        return _as_int(self._request('GET', '/cluster/nextid'), "nextid")

    def is_id_available(self, vmid: int) -> bool:
        try:
            self._request('GET', '/cluster/nextid', params={'vmid': vmid})
        except GatewayError as e:
            # The API answers 400 "VM <id> already exists" for taken ids
            if e.status_code == 400:
                return False
            raise
        return True

    # ==================== Containers ====================

    def create(self, spec: ContainerSpec, vmid: int) -> int:
        data = {
            'ostemplate': spec.os_template,
            'vmid': vmid,
            'hostname': spec.hostname,
            'password': spec.password,
            'ssh-public-keys': spec.ssh_keys_option(),
            'unprivileged': _bool(spec.unprivileged),
            'onboot': _bool(spec.on_boot),
            'nameserver': spec.nameserver,
            'features': spec.features.to_option(),
            'rootfs': spec.rootfs.to_option() if spec.rootfs else None,
        }
        data.update(self._net_options(spec.networks))

        logger.info(f"Creating container {spec.node}/{vmid} from {spec.os_template}")
        self._request('POST', f"/nodes/{spec.node}/lxc", data=data)
        return vmid

    def delete(self, identity: ContainerIdentity, purge: bool = False, force: bool = False) -> None:
        params = {}
        if purge:
            params['purge'] = 1
        if force:
            params['force'] = 1
        self._request('DELETE', self._lxc_path(identity), params=params or None)

    def get_status(self, identity: ContainerIdentity) -> str:
        data = _expect(self._request('GET', f"{self._lxc_path(identity)}/status/current"), dict, "status")
        return str(data.get('status', ''))

    def start(self, identity: ContainerIdentity) -> None:
        self._request('POST', f"{self._lxc_path(identity)}/status/start", data={})

    def stop(self, identity: ContainerIdentity, overrule: bool = False) -> None:
        data = {'overrule-shutdown': 1} if overrule else {}
        self._request('POST', f"{self._lxc_path(identity)}/status/stop", data=data)

    def get_interfaces(self, identity: ContainerIdentity) -> List[Interface]:
        data = _expect(self._request('GET', f"{self._lxc_path(identity)}/interfaces") or [], list, "interfaces")
        return [
            Interface(
                name=item.get('name', ''),
                ipv4=_strip_prefix(item.get('inet')),
                ipv6=_strip_prefix(item.get('inet6')),
                hw_address=item.get('hwaddr') or item.get('hardware-address'),
            )
            for item in (_expect(entry, dict, "interface") for entry in data)
        ]

    def get_container(self, identity: ContainerIdentity) -> Optional[ContainerInfo]:
        data = _expect(self._request('GET', f"/nodes/{identity.node}/lxc") or [], list, "container list")
        for item in data:
            item = _expect(item, dict, "container")
            if _as_int(item.get('vmid'), "container vmid") != identity.vmid:
                continue
            return ContainerInfo(
                vmid=identity.vmid,
                name=item.get('name', ''),
                status=str(item.get('status', '')),
                template=bool(_as_int(item.get('template') or 0, "template flag")),
            )
        return None

    def clone(self, request: CloneRequest, vmid: int) -> None:
        data = {
            'newid': vmid,
            'hostname': request.hostname,
            'description': request.description,
            'pool': request.pool,
            'snapname': request.snapshot,
            'bwlimit': request.bwlimit,
        }
        logger.info(f"Cloning container {request.node}/{request.source_vmid} as {vmid}")
        self._request('POST', f"/nodes/{request.node}/lxc/{request.source_vmid}/clone", data=data)

    def update_config(self, identity: ContainerIdentity, networks: List[NetworkSpec]) -> None:
        self._request('PUT', f"{self._lxc_path(identity)}/config", data=self._net_options(networks))

    def create_template(self, identity: ContainerIdentity) -> None:
        self._request('POST', f"{self._lxc_path(identity)}/template", data={})

    @staticmethod
    def _net_options(networks: List[NetworkSpec]) -> Dict[str, str]:
        return {f"net{index}": net.to_option() for index, net in enumerate(networks)}

    # ==================== Command execution ====================

    def exec_async(self, vmid: int, shell: str, command: str) -> str:
        data = self._request(
            'POST',
            f"/lxc/{vmid}/exec",
            data={'shell': shell, 'cmd': command},
            base_url=self._exec_base_url,
        )
        if isinstance(data, dict):
            data = data.get('id')
        if data is None or data == '':
            raise GatewayError(f"exec in {vmid}: reply carries no execution id")
        return str(data)

    def get_execution_result(self, execution_id: str) -> ExecutionRecord:
        data = _expect(
            self._request('GET', f"/cmd/{execution_id}", base_url=self._exec_base_url),
            dict,
            f"execution {execution_id}",
        )
        raw_status = str(data.get('status', '')).lower()
        try:
            status = ExecutionState(raw_status)
        except ValueError as e:
            raise GatewayError(f"unknown execution status '{raw_status}' for {execution_id}") from e
        return ExecutionRecord(
            execution_id=execution_id,
            status=status,
            exit_code=None if data.get('exitCode') is None else _as_int(data['exitCode'], "exit code"),
            output=data.get('output'),
            error=data.get('error'),
        )
