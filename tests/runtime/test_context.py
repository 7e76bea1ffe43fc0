from pathlib import Path

import pytest

from clusterforge.config.models import ClusterSpec
from clusterforge.connector.errors import ConnectorError
from clusterforge.connector.models import Facts, Host
from clusterforge.connector.pool import ConnectionPool
from clusterforge.resource.errors import ArchResolutionError
from clusterforge.runner.runner import Runner
from clusterforge.runtime.context import PlanContext


class CountingRunner(Runner):
    def __init__(self, facts=None, error=None):
        super().__init__()
        self.calls = 0
        self._facts = facts
        self._error = error

    def gather_facts(self, conn):
        self.calls += 1
        if self._error:
            raise self._error
        return self._facts


def make_ctx(tmp_path, runner, **kw):
    return PlanContext(
        cluster_name="demo",
        work_dir=tmp_path,
        runner=runner,
        pool=ConnectionPool(factory=lambda h: object()),
        **kw,
    )


def test_control_arch_is_gathered_once(tmp_path):
    runner = CountingRunner(Facts(arch="arm64", os="linux"))
    ctx = make_ctx(tmp_path, runner)

    assert ctx.resolve_arch() == "arm64"
    assert ctx.resolve_arch("") == "arm64"
    assert runner.calls == 1


def test_explicit_arch_skips_facts(tmp_path):
    runner = CountingRunner(error=ConnectorError("unreachable"))
    ctx = make_ctx(tmp_path, runner)
    assert ctx.resolve_arch("x86_64") == "amd64"
    assert runner.calls == 0


def test_preset_control_arch_skips_facts(tmp_path):
    runner = CountingRunner(error=ConnectorError("unreachable"))
    ctx = make_ctx(tmp_path, runner, control_host=Host.control_node(arch="aarch64"))
    assert ctx.control_arch() == "arm64"
    assert runner.calls == 0


def test_fact_failure_becomes_arch_resolution_error(tmp_path):
    ctx = make_ctx(tmp_path, CountingRunner(error=ConnectorError("unreachable")))
    with pytest.raises(ArchResolutionError):
        ctx.resolve_arch()


def test_hosts_by_role_keeps_order_without_duplicates(tmp_path):
    hosts = [
        Host(name="a", address="1", roles=("master", "etcd")),
        Host(name="b", address="2", roles=("worker",)),
        Host(name="c", address="3", roles=("etcd",)),
    ]
    ctx = make_ctx(tmp_path, Runner(), hosts=hosts)
    assert [h.name for h in ctx.hosts_by_role("etcd", "master")] == ["a", "c"]
    assert [h.name for h in ctx.hosts_by_role("nobody")] == []
    assert [h.name for h in ctx.all_hosts()] == ["a", "b", "c"]


def test_paths(tmp_path):
    ctx = make_ctx(tmp_path, Runner())
    assert ctx.cluster_dir == tmp_path / "demo"
    assert ctx.file_download_path("etcd", "3.5.9", "amd64", "f.tgz") == tmp_path / "demo" / "etcd" / "3.5.9" / "amd64" / "f.tgz"
    assert ctx.certs_dir("etcd") == tmp_path / "demo" / "certs" / "etcd"


def test_from_cluster(tmp_path):
    spec = ClusterSpec.model_validate({
        "name": "prod",
        "zone": "cn",
        "work_dir": str(tmp_path / "from-spec"),
        "hosts": [{"name": "n1", "address": "10.0.0.1", "roles": ["etcd"]}],
        "registry": {"private_registry": "harbor.local"},
    })

    ctx = PlanContext.from_cluster(spec)
    assert ctx.cluster_name == "prod"
    assert ctx.zone == "cn"
    assert ctx.private_registry == "harbor.local"
    assert ctx.work_dir == tmp_path / "from-spec"
    assert ctx.hosts[0].roles == ("etcd",)

    override = PlanContext.from_cluster(spec, work_dir=tmp_path / "cli")
    assert override.work_dir == tmp_path / "cli"
    assert isinstance(override.work_dir, Path)
