# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterforge/config/models.py

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ..connector.models import Host


class HostSpec(BaseModel):
    name: str
    address: str
    port: int = 22
    user: str = "root"
    password: Optional[str] = None
    private_key_path: Optional[str] = None
    roles: List[str] = []
    arch: str = ""

    model_config = {
        "extra": "forbid",
    }

    def to_host(self) -> Host:
        return Host(
            name=self.name,
            address=self.address,
            user=self.user,
            port=self.port,
            password=self.password,
            private_key_path=self.private_key_path,
            roles=tuple(self.roles),
            arch=self.arch,
        )


class EtcdSpec(BaseModel):
    version: str = "v3.5.9"
    arch: str = ""
    checksum: str = ""
    client_port: int = 2379
    peer_port: int = 2380
    data_dir: str = "/var/lib/etcd"
    roles: List[str] = ["etcd"]


class ContainerdSpec(BaseModel):
    version: str = "1.7.13"
    checksum: str = ""
    runc_version: str = "v1.1.12"
    runc_checksum: str = ""
    crictl_version: str = "v1.29.0"
    crictl_checksum: str = ""
    sandbox_image: str = "registry.k8s.io/pause:3.9"
    systemd_cgroup: bool = True
    roles: List[str] = ["master", "worker"]


class RegistrySpec(BaseModel):
    private_registry: str = ""
    namespace_override: str = ""


class ImageSpec(BaseModel):
    name: str
    version: str = ""
    registry: str = ""
    namespace: str = ""
    roles: List[str] = []


class ClusterSpec(BaseModel):
    """
    Declarative cluster description.
    """
    name: str
    work_dir: Optional[str] = None
    zone: str = ""
    hosts: List[HostSpec] = Field(default_factory=list)
    etcd: EtcdSpec = Field(default_factory=EtcdSpec)
    containerd: ContainerdSpec = Field(default_factory=ContainerdSpec)
    registry: RegistrySpec = Field(default_factory=RegistrySpec)
    images: List[ImageSpec] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def _name_is_path_safe(cls, v: str) -> str:
        if not v or "/" in v or v in (".", ".."):
            raise ValueError(f"cluster name must be a single path segment, got {v!r}")
        return v

    @model_validator(mode="after")
    def _unique_host_names(self) -> "ClusterSpec":
        seen = set()
        for h in self.hosts:
            if h.name in seen:
                raise ValueError(f"duplicate host name: {h.name}")
            seen.add(h.name)
        return self

    def hosts_by_role(self, role: str) -> List[HostSpec]:
        return [h for h in self.hosts if role in h.roles]
