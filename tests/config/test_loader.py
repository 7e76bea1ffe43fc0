from pathlib import Path
import textwrap

import pytest
from pydantic import ValidationError

from clusterforge.config.loader import _deep_merge, load_config


CLUSTER = textwrap.dedent("""
    name: demo
    hosts:
      - name: n1
        address: 10.0.0.1
        roles: [etcd, master]
      - name: n2
        address: 10.0.0.2
        roles: [worker]
    etcd:
      version: v3.5.9
    images:
      - name: registry.k8s.io/pause
        version: "3.9"
""")


def test_load_config_minimal_ok(tmp_path: Path, monkeypatch):
    monkeypatch.delenv("CLUSTERFORGE_SECRETS_FILE", raising=False)
    f = tmp_path / "cluster.yaml"
    f.write_text(CLUSTER)

    cfg = load_config(f)

    assert cfg.name == "demo"
    assert [h.name for h in cfg.hosts_by_role("etcd")] == ["n1"]
    assert cfg.etcd.peer_port == 2380
    assert cfg.containerd.roles == ["master", "worker"]
    assert cfg.images[0].version == "3.9"


def test_secrets_next_to_config_are_merged(tmp_path: Path, monkeypatch):
    monkeypatch.delenv("CLUSTERFORGE_SECRETS_FILE", raising=False)
    (tmp_path / "cluster.yaml").write_text(CLUSTER)
    (tmp_path / "secrets.yaml").write_text("etcd:\n  checksum: abc123\nregistry:\n  private_registry: harbor.local\n")

    cfg = load_config(tmp_path / "cluster.yaml")

    assert cfg.etcd.checksum == "abc123"
    assert cfg.etcd.version == "v3.5.9"
    assert cfg.registry.private_registry == "harbor.local"


def test_secrets_file_from_env(tmp_path: Path, monkeypatch):
    (tmp_path / "cluster.yaml").write_text(CLUSTER)
    other = tmp_path / "vault" / "s.yaml"
    other.parent.mkdir()
    other.write_text("zone: cn\n")
    monkeypatch.setenv("CLUSTERFORGE_SECRETS_FILE", str(other))

    assert load_config(tmp_path / "cluster.yaml").zone == "cn"


def test_env_vars_are_expanded(tmp_path: Path, monkeypatch):
    monkeypatch.delenv("CLUSTERFORGE_SECRETS_FILE", raising=False)
    monkeypatch.setenv("NODE_PASSWORD", "hunter2")
    f = tmp_path / "cluster.yaml"
    f.write_text(textwrap.dedent("""
        name: demo
        hosts:
          - name: n1
            address: 10.0.0.1
            password: ${NODE_PASSWORD}
    """))

    cfg = load_config(f)
    assert cfg.hosts[0].password == "hunter2"
    assert cfg.hosts[0].to_host().password == "hunter2"


def test_deep_merge_ignores_empty_overrides():
    base = {"a": {"b": 1, "c": 2}, "d": "keep"}
    _deep_merge(base, {"a": {"b": 10}, "d": ""})
    assert base == {"a": {"b": 10, "c": 2}, "d": "keep"}


def test_duplicate_host_names_rejected(tmp_path: Path, monkeypatch):
    monkeypatch.delenv("CLUSTERFORGE_SECRETS_FILE", raising=False)
    f = tmp_path / "cluster.yaml"
    f.write_text("name: demo\nhosts:\n  - {name: n1, address: a}\n  - {name: n1, address: b}\n")
    with pytest.raises(ValidationError):
        load_config(f)


def test_cluster_name_must_be_single_segment(tmp_path: Path, monkeypatch):
    monkeypatch.delenv("CLUSTERFORGE_SECRETS_FILE", raising=False)
    f = tmp_path / "cluster.yaml"
    f.write_text("name: ../escape\n")
    with pytest.raises(ValidationError):
        load_config(f)


def test_unknown_host_field_rejected(tmp_path: Path, monkeypatch):
    monkeypatch.delenv("CLUSTERFORGE_SECRETS_FILE", raising=False)
    f = tmp_path / "cluster.yaml"
    f.write_text("name: demo\nhosts:\n  - {name: n1, address: a, colour: blue}\n")
    with pytest.raises(ValidationError):
        load_config(f)
