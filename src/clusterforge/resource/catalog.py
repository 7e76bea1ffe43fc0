# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterforge/resource/catalog.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Mapping, Optional

from ..utils.templating import render_string
from .errors import MissingParameterError, UnknownComponentError

ARCH_ALIAS = {"amd64": "x86_64", "arm64": "aarch64"}


@dataclass(frozen=True)
class BinaryDetail:
    """
    Download recipe for one component.

    All templates are jinja2 strings rendered with: version, version_no_v,
    arch, arch_alias, os and (for binary paths) filename.
    """
    url_template: str
    filename_template: str
    is_archive: bool = False
    cn_url_template: str = ""
    # binary key -> archive-relative path template
    binaries: Mapping[str, str] = field(default_factory=dict)
    default_os: str = "linux"


@dataclass(frozen=True)
class ResolvedBinary:
    component: str
    version: str
    arch: str
    os: str
    url: str
    filename: str
    is_archive: bool
    binaries: Mapping[str, str]


def template_vars(version: str, arch: str, os_name: str) -> Dict[str, str]:
    return {
        "version": version,
        "version_no_v": version[1:] if version.startswith("v") else version,
        "arch": arch,
        "arch_alias": ARCH_ALIAS.get(arch, arch),
        "os": os_name,
    }


class BinaryCatalog:
    """
    Lookup table of known downloadable components.

    Instances are plain values: pass one into a PlanContext, or build a
    custom one in tests.
    """

    def __init__(self, entries: Optional[Mapping[str, BinaryDetail]] = None):
        self._entries: Dict[str, BinaryDetail] = {k.lower(): v for k, v in (entries or {}).items()}

    @classmethod
    def default(cls) -> "BinaryCatalog":
        return cls(DEFAULT_BINARIES)

    def get(self, component: str) -> BinaryDetail:
        try:
            return self._entries[component.lower()]
        except KeyError:
            raise UnknownComponentError(f"unknown binary component: {component}") from None

    def names(self) -> Iterable[str]:
        return sorted(self._entries)

    def __contains__(self, component: object) -> bool:
        return isinstance(component, str) and component.lower() in self._entries

    def with_entries(self, entries: Mapping[str, BinaryDetail]) -> "BinaryCatalog":
        merged = dict(self._entries)
        merged.update({k.lower(): v for k, v in entries.items()})
        return BinaryCatalog(merged)

    def resolve(self, component: str, version: str, arch: str, os_name: str = "", zone: str = "") -> ResolvedBinary:
        if not component:
            raise MissingParameterError("component name is required")
        if not version:
            raise MissingParameterError(f"[{component}] version is required")

        detail = self.get(component)
        os_name = os_name or detail.default_os or "linux"
        tv = template_vars(version, arch, os_name)

        url_tmpl = detail.url_template
        if zone.lower() == "cn" and detail.cn_url_template:
            url_tmpl = detail.cn_url_template

        filename = render_string(detail.filename_template, tv)
        url = render_string(url_tmpl, {**tv, "filename": filename})
        binaries = {
            key: render_string(path_tmpl, {**tv, "filename": filename})
            for key, path_tmpl in detail.binaries.items()
        }

        return ResolvedBinary(
            component=component.lower(),
            version=version,
            arch=arch,
            os=os_name,
            url=url,
            filename=filename,
            is_archive=detail.is_archive,
            binaries=binaries,
        )


_QINGSTOR = "https://kubernetes-release.pek3b.qingstor.com"

DEFAULT_BINARIES: Dict[str, BinaryDetail] = {
    "etcd": BinaryDetail(
        url_template="https://github.com/coreos/etcd/releases/download/{{ version }}/etcd-{{ version }}-{{ os }}-{{ arch }}.tar.gz",
        cn_url_template=_QINGSTOR + "/etcd/release/download/{{ version }}/etcd-{{ version }}-{{ os }}-{{ arch }}.tar.gz",
        filename_template="etcd-{{ version }}-{{ os }}-{{ arch }}.tar.gz",
        is_archive=True,
        binaries={
            "etcd": "etcd-{{ version }}-{{ os }}-{{ arch }}/etcd",
            "etcdctl": "etcd-{{ version }}-{{ os }}-{{ arch }}/etcdctl",
            "etcdutl": "etcd-{{ version }}-{{ os }}-{{ arch }}/etcdutl",
        },
    ),
    "containerd": BinaryDetail(
        url_template="https://github.com/containerd/containerd/releases/download/v{{ version_no_v }}/containerd-{{ version_no_v }}-{{ os }}-{{ arch }}.tar.gz",
        cn_url_template=_QINGSTOR + "/containerd/containerd/releases/download/v{{ version_no_v }}/containerd-{{ version_no_v }}-{{ os }}-{{ arch }}.tar.gz",
        filename_template="containerd-{{ version_no_v }}-{{ os }}-{{ arch }}.tar.gz",
        is_archive=True,
        binaries={
            "containerd": "bin/containerd",
            "containerd-shim-runc-v2": "bin/containerd-shim-runc-v2",
            "ctr": "bin/ctr",
        },
    ),
    "runc": BinaryDetail(
        url_template="https://github.com/opencontainers/runc/releases/download/{{ version }}/runc.{{ arch }}",
        cn_url_template=_QINGSTOR + "/opencontainers/runc/releases/download/{{ version }}/runc.{{ arch }}",
        filename_template="runc.{{ arch }}",
    ),
    "crictl": BinaryDetail(
        url_template="https://github.com/kubernetes-sigs/cri-tools/releases/download/{{ version }}/crictl-{{ version }}-{{ os }}-{{ arch }}.tar.gz",
        cn_url_template=_QINGSTOR + "/cri-tools/releases/download/{{ version }}/crictl-{{ version }}-{{ os }}-{{ arch }}.tar.gz",
        filename_template="crictl-{{ version }}-{{ os }}-{{ arch }}.tar.gz",
        is_archive=True,
        binaries={"crictl": "crictl"},
    ),
    "kubeadm": BinaryDetail(
        url_template="https://dl.k8s.io/release/{{ version }}/bin/{{ os }}/{{ arch }}/kubeadm",
        filename_template="kubeadm",
    ),
    "kubelet": BinaryDetail(
        url_template="https://dl.k8s.io/release/{{ version }}/bin/{{ os }}/{{ arch }}/kubelet",
        filename_template="kubelet",
    ),
    "kubectl": BinaryDetail(
        url_template="https://dl.k8s.io/release/{{ version }}/bin/{{ os }}/{{ arch }}/kubectl",
        filename_template="kubectl",
    ),
    "cni": BinaryDetail(
        url_template="https://github.com/containernetworking/plugins/releases/download/{{ version }}/cni-plugins-{{ os }}-{{ arch }}-{{ version }}.tgz",
        cn_url_template="https://containernetworking.pek3b.qingstor.com/plugins/releases/download/{{ version }}/cni-plugins-{{ os }}-{{ arch }}-{{ version }}.tgz",
        filename_template="cni-plugins-{{ os }}-{{ arch }}-{{ version }}.tgz",
        is_archive=True,
        binaries={
            "bridge": "bridge",
            "host-local": "host-local",
            "loopback": "loopback",
            "portmap": "portmap",
        },
    ),
    "helm": BinaryDetail(
        url_template="https://get.helm.sh/helm-{{ version }}-{{ os }}-{{ arch }}.tar.gz",
        cn_url_template="https://kubernetes-helm.pek3b.qingstor.com/linux-{{ arch }}/{{ version }}/helm-{{ version }}-{{ os }}-{{ arch }}.tar.gz",
        filename_template="helm-{{ version }}-{{ os }}-{{ arch }}.tar.gz",
        is_archive=True,
        binaries={"helm": "{{ os }}-{{ arch }}/helm"},
    ),
}
