import hashlib
from pathlib import Path

import pytest

from clusterforge.connector.errors import ConnectorError
from clusterforge.connector.models import Host
from clusterforge.connector.pool import ConnectionPool
from clusterforge.resource.errors import MissingParameterError, ResourceError, UnknownComponentError
from clusterforge.resource.remote_binary import RemoteBinaryHandle, strip_archive_ext
from clusterforge.runtime.context import PlanContext
from clusterforge.step.command import CommandStep
from clusterforge.step.files import DownloadFileStep, ExtractArchiveStep, InstallBinaryStep


def make_ctx(tmp_path: Path, **kw) -> PlanContext:
    return PlanContext(
        cluster_name="demo",
        work_dir=tmp_path / "work",
        control_host=Host.control_node(arch="amd64"),
        **kw,
    )


def etcd(ctx, **kw):
    return RemoteBinaryHandle.for_component(ctx, "etcd", "3.5.9", binary_key="etcd", **kw)


def touch(path: str, data: bytes = b"bin") -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_bytes(data)


def test_strip_archive_ext():
    assert strip_archive_ext("etcd-v3.5.9-linux-amd64.tar.gz") == "etcd-v3.5.9-linux-amd64"
    assert strip_archive_ext("cni-plugins-linux-amd64-v1.4.0.tgz") == "cni-plugins-linux-amd64-v1.4.0"
    assert strip_archive_ext("helm.zip") == "helm"
    assert strip_archive_ext("runc.amd64") == "runc.amd64"


def test_etcd_archive_plans_download_extract_finalize(tmp_path):
    ctx = make_ctx(tmp_path)
    h = etcd(ctx)

    frag = h.ensure_plan(ctx)

    assert len(frag) == 3
    assert len(frag.entry_nodes) == 1 and len(frag.exit_nodes) == 1
    entry = frag.nodes[frag.entry_nodes[0]]
    exit_ = frag.nodes[frag.exit_nodes[0]]
    assert isinstance(entry.step, DownloadFileStep)
    assert isinstance(exit_.step, InstallBinaryStep)

    expected = tmp_path / "work" / "demo" / "etcd" / "3.5.9" / "amd64" / "extracted_etcd-3.5.9-linux-amd64" / "etcd"
    assert h.path(ctx) == str(expected)
    assert exit_.step.dest_path == str(expected)
    assert entry.step.dest_path == str(tmp_path / "work" / "demo" / "etcd" / "3.5.9" / "amd64" / "etcd-3.5.9-linux-amd64.tar.gz")

    extract_ids = [nid for nid, n in frag.nodes.items() if isinstance(n.step, ExtractArchiveStep)]
    assert len(extract_ids) == 1
    assert frag.nodes[extract_ids[0]].dependencies == frozenset(frag.entry_nodes)
    assert exit_.dependencies == frozenset(extract_ids)

    # everything happens on the control node
    assert all(n.hostnames == ["control-node"] for n in frag.nodes.values())


def test_second_plan_is_empty_once_artifact_exists(tmp_path):
    ctx = make_ctx(tmp_path)
    h = etcd(ctx)
    touch(h.path(ctx))

    assert h.ensure_plan(ctx).is_empty()


def test_path_is_deterministic(tmp_path):
    ctx = make_ctx(tmp_path)
    assert etcd(ctx).path(ctx) == etcd(make_ctx(tmp_path)).path(ctx)
    assert etcd(ctx).id == "archive-etcd-3.5.9-linux-amd64-etcd"


def test_checksum_match_keeps_plan_empty(tmp_path):
    ctx = make_ctx(tmp_path)
    data = b"release-archive"
    h = etcd(ctx, checksum=hashlib.sha256(data).hexdigest())
    touch(str(h.download_path(ctx)), data)
    touch(h.path(ctx))

    assert h.ensure_plan(ctx).is_empty()


def test_checksum_mismatch_replans(tmp_path):
    ctx = make_ctx(tmp_path)
    h = etcd(ctx, checksum=hashlib.sha256(b"expected").hexdigest())
    touch(str(h.download_path(ctx)), b"corrupted")
    touch(h.path(ctx))

    frag = h.ensure_plan(ctx)

    assert len(frag) == 3
    download = frag.nodes[frag.entry_nodes[0]].step
    assert download.checksum == hashlib.sha256(b"expected").hexdigest()


def test_checksum_not_rechecked_when_archive_was_cleaned(tmp_path):
    ctx = make_ctx(tmp_path)
    h = etcd(ctx, checksum="00" * 32)
    touch(h.path(ctx))

    assert h.ensure_plan(ctx).is_empty()


def test_archive_without_key_is_the_artifact(tmp_path):
    ctx = make_ctx(tmp_path)
    h = RemoteBinaryHandle.for_component(ctx, "etcd", "v3.5.9")

    frag = h.ensure_plan(ctx)

    assert list(frag.nodes) == ["download-archive-etcd-v3.5.9-linux-amd64"]
    assert h.path(ctx).endswith("etcd-v3.5.9-linux-amd64.tar.gz")


def test_two_keys_share_download_and_extract(tmp_path):
    from clusterforge.plan.graph import merge

    ctx = make_ctx(tmp_path)
    a = etcd(ctx)
    b = RemoteBinaryHandle.for_component(ctx, "etcd", "3.5.9", binary_key="etcdctl")

    m = merge(a.ensure_plan(ctx), b.ensure_plan(ctx))

    assert len(m) == 4
    assert len(m.entry_nodes) == 1
    assert sorted(m.exit_nodes) == sorted([f"finalize-{a.id}", f"finalize-{b.id}"])


def test_direct_binary_plans_download_then_chmod(tmp_path):
    ctx = make_ctx(tmp_path)
    h = RemoteBinaryHandle.for_component(ctx, "runc", "v1.1.12")

    frag = h.ensure_plan(ctx)

    assert len(frag) == 2
    finalize = frag.nodes[frag.exit_nodes[0]].step
    assert isinstance(finalize, CommandStep)
    assert finalize.cmd.startswith("chmod +x ")
    assert h.path(ctx).endswith("/demo/runc/v1.1.12/amd64/runc.amd64")
    assert frag.nodes[frag.entry_nodes[0]].step.url == (
        "https://github.com/opencontainers/runc/releases/download/v1.1.12/runc.amd64"
    )


def test_explicit_arch_overrides_control_node(tmp_path):
    ctx = make_ctx(tmp_path)
    h = RemoteBinaryHandle.for_component(ctx, "etcd", "3.5.9", arch="aarch64", binary_key="etcd")
    assert h.identity.arch == "arm64"
    assert "/arm64/" in h.path(ctx)


def test_cn_zone_uses_mirror(tmp_path):
    ctx = make_ctx(tmp_path, zone="cn")
    h = etcd(ctx)
    assert h.url.startswith("https://kubernetes-release.pek3b.qingstor.com/")


def test_key_on_non_archive_rejected(tmp_path):
    ctx = make_ctx(tmp_path)
    with pytest.raises(ResourceError):
        RemoteBinaryHandle.for_component(ctx, "runc", "v1.1.12", binary_key="runc")


def test_unknown_key_rejected(tmp_path):
    ctx = make_ctx(tmp_path)
    with pytest.raises(ResourceError):
        RemoteBinaryHandle.for_component(ctx, "etcd", "3.5.9", binary_key="nope")


def test_missing_version_and_unknown_component(tmp_path):
    ctx = make_ctx(tmp_path)
    with pytest.raises(MissingParameterError):
        RemoteBinaryHandle.for_component(ctx, "etcd", "")
    with pytest.raises(UnknownComponentError):
        RemoteBinaryHandle.for_component(ctx, "not-a-thing", "1.0")


class UnreachableControl:
    is_local = False

    def __init__(self, host):
        self.host = host

    def exec(self, cmd, sudo=False, timeout=None):
        raise ConnectorError(f"[{self.host.name}] connection reset")

    def close(self):
        pass


def test_unreachable_control_node_is_a_resource_error(tmp_path):
    ctx = make_ctx(tmp_path, pool=ConnectionPool(factory=UnreachableControl))
    with pytest.raises(ResourceError, match="unable to inspect"):
        etcd(ctx).ensure_plan(ctx)
