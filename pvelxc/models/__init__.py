"""Data models for pvelxc."""
from pvelxc.models.container import (
    CloneRequest,
    ContainerFeatures,
    ContainerIdentity,
    ContainerInfo,
    ContainerSpec,
    ExecutionRecord,
    ExecutionState,
    Interface,
    NetworkSpec,
    RootFilesystem,
    Status,
)

__all__ = [
    'CloneRequest',
    'ContainerFeatures',
    'ContainerIdentity',
    'ContainerInfo',
    'ContainerSpec',
    'ExecutionRecord',
    'ExecutionState',
    'Interface',
    'NetworkSpec',
    'RootFilesystem',
    'Status',
]
