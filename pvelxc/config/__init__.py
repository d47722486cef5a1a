"""Container manifest loading."""
from pvelxc.config.loader import ManifestError, ManifestLoader, parse_manifest
from pvelxc.config.manifest import ContainerManifest

__all__ = ['ContainerManifest', 'ManifestError', 'ManifestLoader', 'parse_manifest']
