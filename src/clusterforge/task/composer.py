# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterforge/task/composer.py

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, List, Sequence

from ..connector.models import Host
from ..plan.graph import ExecutionFragment, ExecutionNode, merge, merge_all
from ..resource.interface import Handle
from ..runtime.context import PlanContext
from ..step.interface import Step

log = logging.getLogger("clusterforge")

REMOTE_TMP_DIR = "/tmp/clusterforge"
BIN_DIR = "/usr/local/bin"


@dataclass(frozen=True)
class ChainLink:
    """
    One per-host operation; the composer turns it into node <suffix>-on-<host>.
    """
    suffix: str
    name: str
    step: Step


ChainBuilder = Callable[[PlanContext, Host], Sequence[ChainLink]]


class TaskComposer:
    """
    Wires control-node acquisition in front of per-host chains.

      1. target hosts = hosts having any of *roles*, each once
      2. acquisition  = merge of every handle's ensure_plan(ctx)
      3. per host     = linear chain from build_chain(ctx, host); its first
                        node depends on the acquisition exit nodes
      4. entry        = acquisition entry (or chain heads if nothing to fetch)
         exit         = every chain's last node
    """

    def __init__(self, name: str, roles: Sequence[str]):
        self.name = name
        self.roles = list(roles)

    def target_hosts(self, ctx: PlanContext) -> List[Host]:
        return ctx.hosts_by_role(*self.roles)

    def acquisition(self, ctx: PlanContext, handles: Sequence[Handle]) -> ExecutionFragment:
        return merge_all((h.ensure_plan(ctx) for h in handles), name=f"{self.name}-acquire")

    def compose(
        self,
        ctx: PlanContext,
        handles: Sequence[Handle],
        build_chain: ChainBuilder,
    ) -> ExecutionFragment:
        hosts = self.target_hosts(ctx)
        if not hosts:
            log.warning("[%s] no hosts with roles %s; nothing to plan", self.name, self.roles)
            return ExecutionFragment.empty(self.name)

        acquire = self.acquisition(ctx, handles)

        chains = ExecutionFragment(name=f"{self.name}-hosts")
        for host in hosts:
            prev = None
            for link in build_chain(ctx, host):
                node_id = f"{link.suffix}-on-{host.name}"
                chains.add_node(
                    node_id,
                    ExecutionNode(
                        name=f"{link.name} on {host.name}",
                        step=link.step,
                        hosts=(host,),
                        dependencies=[prev] if prev else [],
                    ),
                )
                prev = node_id

        fragment = merge(acquire, chains, chain=True, name=self.name)
        log.info(
            "[%s] planned %d node(s) across %d host(s) (acquisition: %d)",
            self.name, len(fragment), len(hosts), len(acquire),
        )
        return fragment


class Task(ABC):
    """
    A component installation unit: decides which handles and which
    per-host operations it needs and returns one fragment.
    """

    name: str = ""
    description: str = ""
    roles: Sequence[str] = ()

    def is_required(self, ctx: PlanContext) -> bool:
        return bool(ctx.hosts_by_role(*self.roles)) if self.roles else bool(ctx.all_hosts())

    @abstractmethod
    def plan(self, ctx: PlanContext) -> ExecutionFragment: ...
