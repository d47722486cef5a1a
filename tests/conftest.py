"""Shared test fixtures for pvelxc tests."""
import itertools
from collections import defaultdict
from typing import Dict, List, Optional

import pytest

from pvelxc.core.config import LifecycleConfig, set_config
from pvelxc.core.errors import GatewayError
from pvelxc.models.container import (
    ContainerIdentity,
    ContainerInfo,
    ExecutionRecord,
    ExecutionState,
    Interface,
)
from pvelxc.services.proxmox.gateway import ContainerGateway


class FakeGateway(ContainerGateway):
    """Gateway for one container whose replies can be scripted per method.

    ``queue(method, *results)`` makes the next calls of ``method`` return
    (or raise, for exceptions) the given results in order. Once a method's
    queue is empty it falls back to a tiny stateful model: start/stop flip
    ``status``, create/delete flip ``exists``, commands succeed with exit 0
    and interfaces report ``addresses``.
    """

    def __init__(self, status: str = "stopped", exists: bool = True):
        self.status = status
        self.exists = exists
        self.next_id = 105
        self.release_id = True
        self.addresses: Dict[str, Optional[str]] = {}
        self.calls: List[tuple] = []
        self.script: Dict[str, list] = defaultdict(list)
        self._exec_ids = itertools.count(1)

    def queue(self, method: str, *results) -> "FakeGateway":
        self.script[method].extend(results)
        return self

    def count(self, method: str) -> int:
        return sum(1 for call in self.calls if call[0] == method)

    def names(self) -> List[str]:
        return [call[0] for call in self.calls]

    def _call(self, method: str, args: tuple, default):
        self.calls.append((method, args))
        if self.script[method]:
            result = self.script[method].pop(0)
            if isinstance(result, BaseException):
                raise result
            return result
        return default()

    def allocate_id(self):
        return self._call('allocate_id', (), lambda: self.next_id)

    def is_id_available(self, vmid):
        return self._call('is_id_available', (vmid,), lambda: not self.exists and self.release_id)

    def create(self, spec, vmid):
        def _create():
            self.exists = True
            self.status = "stopped"
            return vmid
        return self._call('create', (spec, vmid), _create)

    def delete(self, identity, purge=False, force=False):
        def _delete():
            self.exists = False
        return self._call('delete', (identity,), _delete)

    def get_status(self, identity):
        return self._call('get_status', (identity,), lambda: self.status)

    def start(self, identity):
        def _start():
            self.status = "running"
        return self._call('start', (identity,), _start)

    def stop(self, identity, overrule=False):
        def _stop():
            self.status = "stopped"
        return self._call('stop', (identity,), _stop)

    def get_interfaces(self, identity):
        def _interfaces():
            found = [Interface(name='lo', ipv4='127.0.0.1')]
            found.extend(Interface(name=name, ipv4=ip) for name, ip in self.addresses.items())
            return found
        return self._call('get_interfaces', (identity,), _interfaces)

    def exec_async(self, vmid, shell, command):
        return self._call('exec_async', (vmid, shell, command), lambda: f"exec-{next(self._exec_ids)}")

    def get_execution_result(self, execution_id):
        return self._call(
            'get_execution_result',
            (execution_id,),
            lambda: ExecutionRecord(execution_id=execution_id, status=ExecutionState.SUCCEEDED, exit_code=0),
        )

    def get_container(self, identity):
        def _info():
            if not self.exists:
                return None
            return ContainerInfo(vmid=identity.vmid, name='web', status=self.status)
        return self._call('get_container', (identity,), _info)

    def clone(self, request, vmid):
        def _clone():
            self.exists = True
            self.status = "stopped"
        return self._call('clone', (request, vmid), _clone)

    def update_config(self, identity, networks):
        return self._call('update_config', (identity, networks), lambda: None)

    def create_template(self, identity):
        return self._call('create_template', (identity,), lambda: None)


@pytest.fixture
def gateway_error():
    """Factory for GatewayErrors (5xx ones are transient)."""
    def _make(message: str = "boom", status_code: int = 500) -> GatewayError:
        return GatewayError(message, status_code=status_code, transient=status_code >= 500)
    return _make


@pytest.fixture
def record():
    """Factory for ExecutionRecords."""
    def _make(status: ExecutionState, exit_code=None, output=None, error=None) -> ExecutionRecord:
        return ExecutionRecord(execution_id="exec", status=status, exit_code=exit_code, output=output, error=error)
    return _make


@pytest.fixture(autouse=True)
def reset_global_config(monkeypatch):
    """Keep the global config and mock flag from leaking between tests."""
    monkeypatch.delenv('PVELXC_MOCK', raising=False)
    set_config(None)
    yield
    set_config(None)


@pytest.fixture
def config():
    """Default lifecycle config with every wait set to zero."""
    return LifecycleConfig().without_delays()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def identity():
    return ContainerIdentity('pve1', 105)
