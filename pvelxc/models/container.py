"""Container configuration models."""
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional


class Status(str, Enum):
    """Lifecycle statuses the engine can converge to."""
    STOPPED = "stopped"
    RUNNING = "running"

    @classmethod
    def parse(cls, value) -> Optional["Status"]:
        """Return the matching Status, or None for transitional values."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return None


class ExecutionState(str, Enum):
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class ContainerIdentity:
    """Where a container lives. Immutable once the vmid is assigned."""
    node: str
    vmid: int

    def __str__(self) -> str:
        return f"{self.node}/{self.vmid}"


@dataclass
class ContainerFeatures:
    """LXC feature flags; None leaves the cluster default."""
    force_rw_sys: Optional[bool] = None
    fuse: Optional[bool] = None
    keyctl: Optional[bool] = None
    nesting: Optional[bool] = None

    def to_option(self) -> Optional[str]:
        """Render as the ``features`` option, e.g. ``nesting=1,fuse=1``."""
        flags = [
            ("force_rw_sys", self.force_rw_sys),
            ("fuse", self.fuse),
            ("keyctl", self.keyctl),
            ("nesting", self.nesting),
        ]
        parts = [f"{name}={int(value)}" for name, value in flags if value is not None]
        return ",".join(parts) or None


@dataclass
class RootFilesystem:
    """Root filesystem descriptor (``rootfs`` option)."""
    storage: str = "local-lvm"
    disk_size: Optional[int] = None  # GB
    volume: Optional[str] = None  # Existing volume, overrides storage:size
    acl: Optional[bool] = None
    quota: Optional[bool] = None
    replicate: Optional[bool] = None
    read_only: Optional[bool] = None
    shared: Optional[bool] = None

    def to_option(self) -> str:
        if self.volume:
            parts = [self.volume]
        else:
            parts = [f"{self.storage}:{self.disk_size or 8}"]
        flags = [
            ("acl", self.acl),
            ("quota", self.quota),
            ("replicate", self.replicate),
            ("ro", self.read_only),
            ("shared", self.shared),
        ]
        parts.extend(f"{name}={int(value)}" for name, value in flags if value is not None)
        return ",".join(parts)


@dataclass
class NetworkSpec:
    """One configured network interface.

    ``computed_address`` is read-only: only the network resolver sets it,
    on copies it returns.
    """
    name: str
    bridge: Optional[str] = None
    firewall: Optional[bool] = None
    gateway: Optional[str] = None
    gateway6: Optional[str] = None
    hw_address: Optional[str] = None
    ip: Optional[str] = None  # "dhcp" or CIDR like "192.168.1.100/24"
    ip6: Optional[str] = None
    link_down: Optional[bool] = None
    mtu: Optional[int] = None
    rate: Optional[int] = None
    vlan_tag: Optional[int] = None
    computed_address: Optional[str] = None

    def to_option(self) -> str:
        """Render as a ``netN`` option value."""
        parts = [f"name={self.name}"]
        values = [
            ("bridge", self.bridge),
            ("firewall", _flag(self.firewall)),
            ("gw", self.gateway),
            ("gw6", self.gateway6),
            ("hwaddr", self.hw_address),
            ("ip", self.ip),
            ("ip6", self.ip6),
            ("link_down", _flag(self.link_down)),
            ("mtu", self.mtu),
            ("rate", self.rate),
            ("tag", self.vlan_tag),
        ]
        parts.extend(f"{key}={value}" for key, value in values if value is not None)
        return ",".join(parts)

    def with_address(self, address: Optional[str]) -> "NetworkSpec":
        return replace(self, computed_address=address)


def _flag(value: Optional[bool]) -> Optional[int]:
    return None if value is None else int(value)


@dataclass
class ContainerSpec:
    """Desired configuration of a container at creation time."""
    node: str
    os_template: str
    vmid: Optional[int] = None
    hostname: Optional[str] = None
    password: Optional[str] = None
    ssh_public_keys: List[str] = field(default_factory=list)
    unprivileged: Optional[bool] = None
    on_boot: Optional[bool] = None
    nameserver: Optional[str] = None
    features: ContainerFeatures = field(default_factory=ContainerFeatures)
    rootfs: Optional[RootFilesystem] = None
    networks: List[NetworkSpec] = field(default_factory=list)
    commands: List[str] = field(default_factory=list)
    status: Status = Status.STOPPED

    def ssh_keys_option(self) -> Optional[str]:
        """Keys joined one per line, as the API expects."""
        if not self.ssh_public_keys:
            return None
        return "\n".join(self.ssh_public_keys)


@dataclass
class CloneRequest:
    """Linked clone of an existing container or template."""
    node: str
    source_vmid: int
    vmid: Optional[int] = None
    hostname: Optional[str] = None
    description: Optional[str] = None
    pool: Optional[str] = None
    snapshot: Optional[str] = None
    bwlimit: Optional[int] = None
    status: Status = Status.STOPPED


@dataclass
class Interface:
    """Interface as observed inside a running container."""
    name: str
    ipv4: Optional[str] = None
    ipv6: Optional[str] = None
    hw_address: Optional[str] = None


@dataclass
class ExecutionRecord:
    """Remote record of one asynchronously executed command."""
    execution_id: str
    status: ExecutionState
    exit_code: Optional[int] = None
    output: Optional[str] = None
    error: Optional[str] = None


@dataclass
class ContainerInfo:
    """Runtime information about a container."""
    vmid: int
    name: str
    status: str  # running, stopped, or a transitional value
    template: bool = False

    @property
    def is_running(self) -> bool:
        return self.status == Status.RUNNING.value
