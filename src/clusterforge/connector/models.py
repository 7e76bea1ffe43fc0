# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterforge/connector/models.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Tuple

CONTROL_NODE_NAME = "control-node"
CONTROL_NODE_ROLE = "control-node"

_LOCAL_ADDRESSES = {"localhost", "127.0.0.1", "::1"}


@dataclass(frozen=True)
class Host:
    """
    Represents a machine an operation runs on.
    """
    name: str                     # logical hostname, unique within a cluster
    address: str                  # IP or DNS to connect
    user: str = "root"            # SSH username
    port: int = 22
    password: Optional[str] = field(default=None, repr=False, compare=False)
    private_key_path: Optional[str] = None
    roles: Tuple[str, ...] = ()
    arch: str = ""                # declared architecture, empty = ask the host

    def has_role(self, role: str) -> bool:
        return role in self.roles

    @property
    def is_local(self) -> bool:
        return self.name == CONTROL_NODE_NAME or self.address in _LOCAL_ADDRESSES

    @classmethod
    def control_node(cls, arch: str = "") -> "Host":
        return cls(name=CONTROL_NODE_NAME, address="localhost", roles=(CONTROL_NODE_ROLE,), arch=arch)


@dataclass(frozen=True)
class Facts:
    arch: str
    os: str
    hostname: str = ""
