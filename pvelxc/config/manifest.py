"""Container manifest schema (the YAML a user writes)."""
import re
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from pvelxc.models.container import (
    ContainerFeatures,
    ContainerSpec,
    NetworkSpec,
    RootFilesystem,
    Status,
)

_IFACE_RE = re.compile(r'^[a-zA-Z][a-zA-Z0-9_.-]{0,14}$')


class FeaturesManifest(BaseModel):
    model_config = ConfigDict(extra='forbid')

    force_rw_sys: Optional[bool] = None
    fuse: Optional[bool] = None
    keyctl: Optional[bool] = None
    nesting: Optional[bool] = None


class RootFSManifest(BaseModel):
    model_config = ConfigDict(extra='forbid')

    storage: str = "local-lvm"
    disk_size: Optional[int] = Field(None, gt=0, description="Size in GB")
    volume: Optional[str] = None
    acl: Optional[bool] = None
    quota: Optional[bool] = None
    replicate: Optional[bool] = None
    read_only: Optional[bool] = None
    shared: Optional[bool] = None


class NetworkManifest(BaseModel):
    """One ``networks`` entry."""

    model_config = ConfigDict(extra='forbid')

    name: str
    bridge: Optional[str] = None
    firewall: Optional[bool] = None
    gateway: Optional[str] = None
    gateway6: Optional[str] = None
    hw_address: Optional[str] = None
    ip: Optional[str] = None
    ip6: Optional[str] = None
    link_down: Optional[bool] = None
    mtu: Optional[int] = Field(None, ge=64)
    rate: Optional[int] = Field(None, ge=0)
    vlan_tag: Optional[int] = Field(None, ge=1, le=4094)

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        if not _IFACE_RE.match(v):
            raise ValueError(f"Interface name '{v}' is not a valid Linux interface name")
        return v

    @field_validator('ip')
    @classmethod
    def validate_ip(cls, v):
        """Static addresses need CIDR notation."""
        if v and v not in ('dhcp', 'manual') and '/' not in v:
            raise ValueError(f"Static IP '{v}' must include CIDR notation (e.g., '{v}/24')")
        return v


class ContainerManifest(BaseModel):
    """Top-level container manifest."""

    model_config = ConfigDict(extra='forbid')

    node: str
    os_template: str
    vmid: Optional[int] = Field(None, ge=100, le=999999999)
    hostname: Optional[str] = None
    password: Optional[str] = None
    ssh_public_keys: List[str] = Field(default_factory=list)
    unprivileged: Optional[bool] = None
    on_boot: Optional[bool] = None
    nameserver: Optional[str] = None
    status: Literal["stopped", "running"] = "stopped"
    features: FeaturesManifest = Field(default_factory=FeaturesManifest)
    rootfs: Optional[RootFSManifest] = None
    networks: List[NetworkManifest] = Field(default_factory=list)
    commands: List[str] = Field(default_factory=list)

    @model_validator(mode='after')
    def validate_unique_networks(self) -> 'ContainerManifest':
        seen = set()
        for net in self.networks:
            if net.name in seen:
                raise ValueError(f"Network name '{net.name}' is used more than once")
            seen.add(net.name)
        return self

    @field_validator('commands')
    @classmethod
    def validate_commands(cls, v):
        for command in v:
            if not command.strip():
                raise ValueError("Commands must not be empty")
        return v

    def to_spec(self) -> ContainerSpec:
        return ContainerSpec(
            node=self.node,
            os_template=self.os_template,
            vmid=self.vmid,
            hostname=self.hostname,
            password=self.password,
            ssh_public_keys=list(self.ssh_public_keys),
            unprivileged=self.unprivileged,
            on_boot=self.on_boot,
            nameserver=self.nameserver,
            features=ContainerFeatures(**self.features.model_dump()),
            rootfs=RootFilesystem(**self.rootfs.model_dump()) if self.rootfs else None,
            networks=[NetworkSpec(**net.model_dump()) for net in self.networks],
            commands=list(self.commands),
            status=Status(self.status),
        )
