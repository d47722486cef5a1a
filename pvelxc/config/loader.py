"""YAML container manifest loader."""
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from pvelxc.config.manifest import ContainerManifest
from pvelxc.models.container import ContainerSpec


class ManifestError(Exception):
    """The manifest file is missing, unreadable or invalid."""


class ManifestLoader:
    """Loads a container manifest and turns it into a ContainerSpec."""

    def __init__(self, manifest_path: str = "container.yml"):
        self.manifest_path = Path(manifest_path)
        self.raw_manifest: Optional[Dict[str, Any]] = None
        self.manifest: Optional[ContainerManifest] = None

    def load(self) -> ContainerManifest:
        """Load and validate the YAML manifest."""
        if not self.manifest_path.exists():
            raise ManifestError(f"Manifest not found: {self.manifest_path}")

        try:
            with open(self.manifest_path) as f:
                self.raw_manifest = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ManifestError(f"Invalid YAML in {self.manifest_path}: {e}") from e

        if not self.raw_manifest:
            raise ManifestError(f"Manifest is empty: {self.manifest_path}")
        if not isinstance(self.raw_manifest, dict):
            raise ManifestError(f"Manifest must be a mapping: {self.manifest_path}")

        self.manifest = parse_manifest(self.raw_manifest, source=str(self.manifest_path))
        return self.manifest

    def to_spec(self) -> ContainerSpec:
        if self.manifest is None:
            self.load()
        return self.manifest.to_spec()


def parse_manifest(data: Dict[str, Any], source: str = "<manifest>") -> ContainerManifest:
    """Validate a manifest mapping, flattening pydantic errors into one message."""
    try:
        return ContainerManifest.model_validate(data)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc']) or '<root>'}: {err['msg']}"
            for err in e.errors()
        )
        raise ManifestError(f"Invalid manifest {source}: {problems}") from e
