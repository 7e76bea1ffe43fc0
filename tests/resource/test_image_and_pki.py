from pathlib import Path

import pytest

from clusterforge.connector.models import Host
from clusterforge.resource.catalog import BinaryCatalog, BinaryDetail, template_vars
from clusterforge.resource.errors import MissingParameterError, UnknownComponentError
from clusterforge.resource.image import RemoteImageHandle, rewrite_image
from clusterforge.resource.pki import LocalCertificateHandle
from clusterforge.runtime.context import PlanContext
from clusterforge.step.command import PullImageStep
from clusterforge.step.pki import GenerateCACertStep, GenerateSignedCertStep

HOSTS = [
    Host(name="m1", address="10.0.0.1", roles=("master", "etcd")),
    Host(name="w1", address="10.0.0.2", roles=("worker",)),
    Host(name="w2", address="10.0.0.3", roles=("worker",)),
]


def make_ctx(tmp_path: Path, **kw) -> PlanContext:
    return PlanContext(
        cluster_name="demo",
        work_dir=tmp_path,
        hosts=list(HOSTS),
        control_host=Host.control_node(arch="amd64"),
        **kw,
    )


# ----------------- image rewriting -----------------

def test_rewrite_keeps_reference_without_overrides():
    assert rewrite_image("registry.k8s.io/pause", "3.9") == "registry.k8s.io/pause:3.9"
    assert rewrite_image("library/nginx:1.25") == "library/nginx:1.25"


def test_rewrite_replaces_registry_and_namespace():
    got = rewrite_image("docker.io/calico/node", "v3.27.0", registry="harbor.local:5000", namespace="mirror")
    assert got == "harbor.local:5000/mirror/node:v3.27.0"


def test_rewrite_adds_registry_to_bare_name():
    assert rewrite_image("calico/cni", "v3.27.0", registry="harbor.local") == "harbor.local/calico/cni:v3.27.0"


def test_rewrite_does_not_treat_namespace_as_registry():
    assert rewrite_image("kubesphere/kube-apiserver:v1.29.0", namespace="ks") == "ks/kube-apiserver:v1.29.0"


# ----------------- image handle -----------------

def test_image_pull_node_per_target_host(tmp_path):
    ctx = make_ctx(tmp_path)
    h = RemoteImageHandle(image="registry.k8s.io/pause", version="3.9", target_roles=("worker",))

    frag = h.ensure_plan(ctx)

    assert sorted(frag.nodes) == [
        "pull-image-registry.k8s.io-pause-3.9-on-w1",
        "pull-image-registry.k8s.io-pause-3.9-on-w2",
    ]
    # independent pulls: every node is both entry and exit
    assert frag.entry_nodes == frag.exit_nodes == sorted(frag.nodes)
    step = frag.nodes["pull-image-registry.k8s.io-pause-3.9-on-w1"].step
    assert isinstance(step, PullImageStep)
    assert step.image == "registry.k8s.io/pause:3.9"


def test_image_defaults_to_all_hosts_and_context_registry(tmp_path):
    ctx = make_ctx(tmp_path, private_registry="harbor.local")
    h = RemoteImageHandle(image="coredns/coredns", version="1.11.1")

    assert h.path(ctx) == "harbor.local/coredns/coredns:1.11.1"
    assert len(h.ensure_plan(ctx)) == 3


def test_image_without_target_hosts_is_empty(tmp_path):
    ctx = make_ctx(tmp_path)
    h = RemoteImageHandle(image="nginx", version="1.25", target_roles=("edge",))
    assert h.ensure_plan(ctx).is_empty()


def test_image_requires_name():
    with pytest.raises(MissingParameterError):
        RemoteImageHandle(image="")


# ----------------- certificates -----------------

def test_certificate_paths_and_ids(tmp_path):
    ctx = make_ctx(tmp_path)
    ca = LocalCertificateHandle(component="etcd", cert_name="ca", is_ca=True)
    member = LocalCertificateHandle(component="etcd", cert_name="member-m1", ca=ca, sans=["m1", "10.0.0.1"])

    assert ca.path(ctx) == str(tmp_path / "demo" / "certs" / "etcd" / "ca.crt")
    assert member.key_path(ctx) == str(tmp_path / "demo" / "certs" / "etcd" / "member-m1.key")
    assert ca.id == "pki-ca-ca"
    assert member.id == "pki-cert-member-m1-signedby-ca"


def test_certificate_ensure_plan_is_always_empty(tmp_path):
    ctx = make_ctx(tmp_path)
    ca = LocalCertificateHandle(component="etcd", cert_name="ca", is_ca=True)
    assert not ca.is_present(ctx)
    assert ca.ensure_plan(ctx).is_empty()


def test_certificate_generate_nodes(tmp_path):
    ctx = make_ctx(tmp_path)
    ca = LocalCertificateHandle(component="etcd", cert_name="ca", is_ca=True)
    member = LocalCertificateHandle(component="etcd", cert_name="member-m1", ca=ca)

    ca_id, ca_node = ca.generate_node(ctx)
    m_id, m_node = member.generate_node(ctx, [ca_id])

    assert ca_id == "generate-pki-ca-ca"
    assert m_id == "generate-pki-cert-member-m1-signedby-ca"
    assert isinstance(ca_node.step, GenerateCACertStep)
    assert isinstance(m_node.step, GenerateSignedCertStep)
    assert m_node.step.ca_cert_path == ca.path(ctx)
    assert m_node.dependencies == frozenset({ca_id})
    assert m_node.hostnames == ["control-node"]


def test_non_ca_certificate_needs_ca():
    with pytest.raises(MissingParameterError):
        LocalCertificateHandle(component="etcd", cert_name="orphan")


# ----------------- catalog -----------------

def test_template_vars_strip_leading_v():
    tv = template_vars("v1.7.13", "arm64", "linux")
    assert tv["version_no_v"] == "1.7.13"
    assert tv["arch_alias"] == "aarch64"


def test_catalog_resolves_containerd_without_double_v():
    r = BinaryCatalog.default().resolve("containerd", "v1.7.13", "amd64")
    assert r.filename == "containerd-1.7.13-linux-amd64.tar.gz"
    assert r.url.endswith("/download/v1.7.13/containerd-1.7.13-linux-amd64.tar.gz")
    assert r.binaries["ctr"] == "bin/ctr"


def test_catalog_custom_entries_and_unknown():
    cat = BinaryCatalog.default().with_entries({
        "Tool": BinaryDetail(url_template="https://example.invalid/{{ version }}/{{ filename }}", filename_template="tool-{{ arch }}"),
    })
    assert "tool" in cat
    r = cat.resolve("tool", "1.0", "amd64")
    assert r.url == "https://example.invalid/1.0/tool-amd64"
    with pytest.raises(UnknownComponentError):
        cat.get("missing")
