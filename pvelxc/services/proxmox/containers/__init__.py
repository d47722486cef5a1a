"""Proxmox LXC container lifecycle convergence.

This package provides a clean separation of concerns for container operations:
- StatusDriver: Converge a container to stopped or running
- CommandRunner: Run shell commands inside a container
- NetworkResolver: Wait for interfaces to report addresses
- ContainerLifecycle: Create/read/update/delete pipelines with rollback
"""
from .status import StatusDriver
from .commands import CommandRunner
from .networks import NetworkResolver
from .lifecycle import CloneResult, ContainerLifecycle, CreateResult, ReadResult

__all__ = [
    'StatusDriver',
    'CommandRunner',
    'NetworkResolver',
    'ContainerLifecycle',
    'CreateResult',
    'ReadResult',
    'CloneResult',
]
