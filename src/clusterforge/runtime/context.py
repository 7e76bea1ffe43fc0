# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterforge/runtime/context.py

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Dict, List, Optional

from ..connector.interface import Connector
from ..connector.models import Facts, Host
from ..connector.pool import ConnectionPool
from ..resource.catalog import BinaryCatalog
from ..resource.errors import ArchResolutionError
from ..runner.runner import Runner, normalize_arch

if TYPE_CHECKING:
    from ..config.models import ClusterSpec

log = logging.getLogger("clusterforge")

DEFAULT_WORK_DIR = Path.home() / ".clusterforge" / "work"
CERTS_DIR_NAME = "certs"


@dataclass
class StepContext:
    """
    What an operation needs at run time: the runner and a way to reach hosts.
    """
    runner: Runner
    pool: ConnectionPool
    logger: logging.Logger = field(default=log)

    def connector(self, host: Host) -> Connector:
        return self.pool.get(host)


@dataclass
class PlanContext:
    """
    One planning session.

    Handles and tasks read everything they need from here. Facts about
    hosts (architecture, OS) are fetched at most once per session.
    """
    cluster_name: str
    work_dir: Path
    hosts: List[Host] = field(default_factory=list)
    runner: Runner = field(default_factory=Runner)
    pool: ConnectionPool = field(default_factory=ConnectionPool)
    catalog: BinaryCatalog = field(default_factory=BinaryCatalog.default)
    control_host: Host = field(default_factory=Host.control_node)
    zone: str = ""
    private_registry: str = ""
    namespace_override: str = ""
    logger: logging.Logger = field(default=log)
    _facts: Dict[str, Facts] = field(default_factory=dict, init=False, repr=False)
    _facts_lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def __post_init__(self):
        self.work_dir = Path(self.work_dir).expanduser()

    @classmethod
    def from_cluster(
        cls,
        spec: "ClusterSpec",
        *,
        work_dir: Optional[Path] = None,
        runner: Optional[Runner] = None,
        pool: Optional[ConnectionPool] = None,
        catalog: Optional[BinaryCatalog] = None,
        control_host: Optional[Host] = None,
    ) -> "PlanContext":
        return cls(
            cluster_name=spec.name,
            work_dir=Path(work_dir or spec.work_dir or DEFAULT_WORK_DIR),
            hosts=[h.to_host() for h in spec.hosts],
            runner=runner or Runner(),
            pool=pool or ConnectionPool(),
            catalog=catalog or BinaryCatalog.default(),
            control_host=control_host or Host.control_node(),
            zone=spec.zone,
            private_registry=spec.registry.private_registry,
            namespace_override=spec.registry.namespace_override,
        )

    # ------------------ hosts ------------------

    def hosts_by_role(self, *roles: str) -> List[Host]:
        """
        Hosts carrying any of *roles*, in declaration order, each host once.
        """
        seen = set()
        out: List[Host] = []
        for h in self.hosts:
            if h.name in seen:
                continue
            if any(h.has_role(r) for r in roles):
                seen.add(h.name)
                out.append(h)
        return out

    def all_hosts(self) -> List[Host]:
        seen = set()
        out: List[Host] = []
        for h in self.hosts:
            if h.name not in seen:
                seen.add(h.name)
                out.append(h)
        return out

    def connector(self, host: Host) -> Connector:
        return self.pool.get(host)

    def step_context(self) -> StepContext:
        return StepContext(runner=self.runner, pool=self.pool, logger=self.logger)

    # ------------------ facts ------------------

    def facts(self, host: Host) -> Facts:
        with self._facts_lock:
            cached = self._facts.get(host.name)
            if cached is not None:
                return cached
            try:
                facts = self.runner.gather_facts(self.connector(host))
            except Exception as e:
                raise ArchResolutionError(f"[{host.name}] unable to gather host facts: {e}") from e
            self._facts[host.name] = facts
            return facts

    def control_arch(self) -> str:
        if self.control_host.arch:
            return normalize_arch(self.control_host.arch)
        arch = self.facts(self.control_host).arch
        if not arch:
            raise ArchResolutionError("control node reported an empty architecture")
        return arch

    def resolve_arch(self, arch: str = "") -> str:
        return normalize_arch(arch) if arch else self.control_arch()

    # ------------------ paths ------------------

    @property
    def cluster_dir(self) -> Path:
        return self.work_dir / self.cluster_name

    def download_dir(self, component: str, version: str, arch: str) -> Path:
        return self.cluster_dir / component / version / arch

    def file_download_path(self, component: str, version: str, arch: str, filename: str) -> Path:
        return self.download_dir(component, version, arch) / filename

    def certs_dir(self, component: str) -> Path:
        return self.cluster_dir / CERTS_DIR_NAME / component

