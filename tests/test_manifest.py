"""Tests for container manifest loading."""
import textwrap

import pytest

from pvelxc.config import ManifestError, ManifestLoader, parse_manifest
from pvelxc.models.container import Status

MANIFEST = textwrap.dedent("""\
    node: pve1
    os_template: local:vztmpl/debian-12-standard_12.2-1_amd64.tar.zst
    vmid: 105
    hostname: web
    ssh_public_keys:
      - ssh-ed25519 AAAA admin@laptop
    unprivileged: true
    status: running
    features:
      nesting: true
    rootfs:
      storage: local-zfs
      disk_size: 16
    networks:
      - name: eth0
        bridge: vmbr0
        ip: dhcp
      - name: eth1
        bridge: vmbr1
        ip: 192.168.10.5/24
        vlan_tag: 10
    commands:
      - apt-get update
      - apt-get install -y nginx
    """)


@pytest.fixture
def manifest_file(tmp_path):
    path = tmp_path / "container.yml"
    path.write_text(MANIFEST)
    return path


def test_load_manifest(manifest_file):
    spec = ManifestLoader(str(manifest_file)).to_spec()

    assert spec.node == "pve1"
    assert spec.vmid == 105
    assert spec.status is Status.RUNNING
    assert spec.features.nesting is True
    assert spec.rootfs.to_option() == "local-zfs:16"
    assert [n.name for n in spec.networks] == ["eth0", "eth1"]
    assert spec.networks[1].vlan_tag == 10
    assert spec.commands == ["apt-get update", "apt-get install -y nginx"]


def test_defaults():
    manifest = parse_manifest({"node": "pve1", "os_template": "local:vztmpl/alpine.tar.zst"})
    spec = manifest.to_spec()
    assert spec.status is Status.STOPPED
    assert spec.networks == []
    assert spec.rootfs is None


def test_missing_file(tmp_path):
    with pytest.raises(ManifestError, match="not found"):
        ManifestLoader(str(tmp_path / "nope.yml")).load()


def test_invalid_yaml(tmp_path):
    path = tmp_path / "broken.yml"
    path.write_text("node: [pve1\n")
    with pytest.raises(ManifestError, match="Invalid YAML"):
        ManifestLoader(str(path)).load()


def test_duplicate_network_names():
    data = {
        "node": "pve1",
        "os_template": "t",
        "networks": [{"name": "eth0"}, {"name": "eth0", "bridge": "vmbr1"}],
    }
    with pytest.raises(ManifestError, match="more than once"):
        parse_manifest(data)


def test_unknown_keys_are_rejected():
    with pytest.raises(ManifestError, match="memory"):
        parse_manifest({"node": "pve1", "os_template": "t", "memory": 2048})


def test_unsupported_status():
    with pytest.raises(ManifestError, match="status"):
        parse_manifest({"node": "pve1", "os_template": "t", "status": "paused"})


def test_static_ip_needs_cidr():
    with pytest.raises(ManifestError, match="CIDR"):
        parse_manifest({"node": "pve1", "os_template": "t", "networks": [{"name": "eth0", "ip": "10.0.0.5"}]})
