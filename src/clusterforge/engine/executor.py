# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterforge/engine/executor.py

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Set

from ..connector.models import Host
from ..plan.graph import ExecutionFragment, ExecutionNode, NodeID
from ..runtime.context import StepContext

# Observer bits
from ..observers.dispatcher import EventBus
from ..observers.events import (
    new_ctx,
    ExecutionStarted,
    NodeStarted,
    NodeSucceeded,
    NodeSkipped,
    NodeFailed,
    RollbackStarted,
    RollbackResult,
    ExecutionSummary,
)

log = logging.getLogger("clusterforge")


class Status(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"
    CANCELLED = "CANCELLED"
    ROLLED_BACK = "ROLLED_BACK"


@dataclass
class HostResult:
    host: str
    status: Status
    message: str = ""
    error: Optional[str] = None


@dataclass
class NodeResult:
    node_id: str
    name: str
    status: Status = Status.PENDING
    message: str = ""
    error: Optional[str] = None
    duration_ms: int = 0
    hosts: Dict[str, HostResult] = field(default_factory=dict)

    @property
    def satisfied(self) -> bool:
        """True when dependents may proceed."""
        return self.status == Status.SUCCESS or (
            self.status == Status.SKIPPED and bool(self.hosts)
        )

    def hosts_with(self, status: Status) -> List[str]:
        return sorted(h for h, r in self.hosts.items() if r.status == status)


@dataclass
class GraphResult:
    name: str
    status: Status = Status.PENDING
    nodes: Dict[NodeID, NodeResult] = field(default_factory=dict)
    completion_order: List[NodeID] = field(default_factory=list)
    rolled_back: List[NodeID] = field(default_factory=list)

    def count(self, status: Status) -> int:
        return sum(1 for r in self.nodes.values() if r.status == status)

    def failed_nodes(self) -> List[NodeID]:
        return sorted(n for n, r in self.nodes.items() if r.status == Status.FAILED)

    def summary(self) -> str:
        return (
            f"OK={self.count(Status.SUCCESS)} FAILED={self.count(Status.FAILED)} "
            f"SKIPPED={self.count(Status.SKIPPED)} ROLLED_BACK={self.count(Status.ROLLED_BACK)}"
        )


class Executor:
    """
    Runs a fragment on a worker pool in dependency order.

    - a node starts once every dependency succeeded or was already satisfied
    - per host: precheck true -> skipped, otherwise run
    - a failed node skips its whole dependent subgraph; other branches go on
    - after a failure, completed nodes that only fed the failed branch are
      rolled back; after cancellation, every completed node is. Rollback
      walks reverse completion order and never raises.
    """

    def __init__(
        self,
        max_workers: int = 10,
        observers: Optional[List] = None,
        rollback_on_failure: bool = True,
        cluster: str = "",
        run_id: Optional[str] = None,
    ):
        self.max_workers = max_workers
        self.bus = EventBus(observers or [])
        self.rollback_on_failure = rollback_on_failure
        self.cluster = cluster
        self.run_id = run_id

    # ------------------ public ------------------

    def execute(
        self,
        fragment: ExecutionFragment,
        ctx: StepContext,
        dry_run: bool = False,
        cancel: Optional[threading.Event] = None,
    ) -> GraphResult:
        fragment.validate()
        cancel = cancel or threading.Event()
        run_ctx = new_ctx(self.cluster, self.run_id)

        result = GraphResult(
            name=fragment.name,
            nodes={nid: NodeResult(node_id=nid, name=n.name) for nid, n in fragment.nodes.items()},
        )
        self.bus.emit(ExecutionStarted(fragment=fragment.name, total=len(fragment), dry_run=dry_run, **run_ctx))
        log.info("[executor] %s: %d node(s)%s", fragment.name or "fragment", len(fragment), " (dry run)" if dry_run else "")

        if dry_run:
            for nid in fragment.topological_order():
                nr = result.nodes[nid]
                nr.status = Status.SKIPPED
                nr.message = "dry run"
                self.bus.emit(NodeSkipped(node_id=nid, reason="dry run", **run_ctx))
            result.status = Status.SUCCESS
            self._finish(result, run_ctx)
            return result

        self._run_graph(fragment, ctx, cancel, result, run_ctx)

        failed = result.failed_nodes()
        if cancel.is_set():
            for nr in result.nodes.values():
                if nr.status == Status.PENDING:
                    nr.status = Status.CANCELLED
                    nr.message = "cancelled before start"

        if self.rollback_on_failure and (failed or cancel.is_set()):
            scope = self._rollback_scope(fragment, result, everything=cancel.is_set())
            self._rollback(fragment, ctx, result, scope, run_ctx)

        if cancel.is_set():
            result.status = Status.CANCELLED
        elif failed:
            result.status = Status.FAILED
        else:
            result.status = Status.SUCCESS

        self._finish(result, run_ctx)
        return result

    # ------------------ scheduling ------------------

    def _run_graph(
        self,
        fragment: ExecutionFragment,
        ctx: StepContext,
        cancel: threading.Event,
        result: GraphResult,
        run_ctx: dict,
    ) -> None:
        remaining = {nid: len(n.dependencies) for nid, n in fragment.nodes.items()}
        children = fragment.dependents()

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="clusterforge") as pool:
            running: Dict[Future, NodeID] = {}

            def submit(ids: List[NodeID]) -> None:
                for nid in sorted(ids):
                    if cancel.is_set():
                        return
                    node = fragment.nodes[nid]
                    result.nodes[nid].status = Status.RUNNING
                    self.bus.emit(NodeStarted(node_id=nid, name=node.name, hosts=node.hostnames, **run_ctx))
                    running[pool.submit(self._run_node, nid, node, ctx)] = nid

            submit([n for n, c in remaining.items() if c == 0])

            while running:
                done, _ = wait(list(running), return_when=FIRST_COMPLETED)
                ready: List[NodeID] = []
                for fut in done:
                    nid = running.pop(fut)
                    nr = fut.result()
                    result.nodes[nid] = nr
                    result.completion_order.append(nid)

                    if nr.satisfied:
                        if nr.status == Status.SKIPPED:
                            self.bus.emit(NodeSkipped(node_id=nid, reason=nr.message, **run_ctx))
                        else:
                            self.bus.emit(NodeSucceeded(
                                node_id=nid,
                                duration_ms=nr.duration_ms,
                                skipped_hosts=nr.hosts_with(Status.SKIPPED),
                                **run_ctx,
                            ))
                        for child in children[nid]:
                            remaining[child] -= 1
                            if remaining[child] == 0 and result.nodes[child].status == Status.PENDING:
                                ready.append(child)
                    else:
                        self.bus.emit(NodeFailed(node_id=nid, error=nr.error or "", **run_ctx))
                        self._skip_dependents(nid, children, result, run_ctx)

                if not cancel.is_set():
                    submit(ready)

    def _skip_dependents(self, failed: NodeID, children: Dict[NodeID, List[NodeID]], result: GraphResult, run_ctx: dict) -> None:
        stack = list(children[failed])
        while stack:
            nid = stack.pop()
            nr = result.nodes[nid]
            if nr.status != Status.PENDING:
                continue
            nr.status = Status.SKIPPED
            nr.message = f"dependency {failed} failed"
            self.bus.emit(NodeSkipped(node_id=nid, reason=nr.message, **run_ctx))
            stack.extend(children[nid])

    # ------------------ node ------------------

    def _run_host(self, node_id: NodeID, node: ExecutionNode, host: Host, ctx: StepContext) -> HostResult:
        step = node.step
        try:
            if step.precheck(ctx, host):
                log.debug("[%s] already satisfied on %s", node_id, host.name)
                return HostResult(host=host.name, status=Status.SKIPPED, message="already satisfied")
            step.run(ctx, host)
            return HostResult(host=host.name, status=Status.SUCCESS)
        except Exception as e:
            log.error("[%s] failed on %s: %s", node_id, host.name, e)
            return HostResult(host=host.name, status=Status.FAILED, error=str(e))

    def _run_node(self, node_id: NodeID, node: ExecutionNode, ctx: StepContext) -> NodeResult:
        t0 = time.time()
        nr = NodeResult(node_id=node_id, name=node.name, status=Status.RUNNING)

        if len(node.hosts) == 1:
            results = [self._run_host(node_id, node, node.hosts[0], ctx)]
        else:
            with ThreadPoolExecutor(max_workers=len(node.hosts)) as fan_out:
                results = list(fan_out.map(lambda h: self._run_host(node_id, node, h, ctx), node.hosts))

        nr.hosts = {r.host: r for r in results}
        nr.duration_ms = int((time.time() - t0) * 1000)

        errors = [f"{r.host}: {r.error}" for r in results if r.status == Status.FAILED]
        if errors:
            nr.status = Status.FAILED
            nr.error = "; ".join(errors)
        elif all(r.status == Status.SKIPPED for r in results):
            nr.status = Status.SKIPPED
            nr.message = "already satisfied"
        else:
            nr.status = Status.SUCCESS
        return nr

    # ------------------ rollback ------------------

    def _rollback_scope(self, fragment: ExecutionFragment, result: GraphResult, everything: bool) -> Set[NodeID]:
        finished = [n for n in result.completion_order if result.nodes[n].hosts_with(Status.SUCCESS)]
        if everything:
            return set(finished)

        def ancestors(nid: NodeID) -> Set[NodeID]:
            seen: Set[NodeID] = set()
            stack = list(fragment.nodes[nid].dependencies)
            while stack:
                d = stack.pop()
                if d not in seen:
                    seen.add(d)
                    stack.extend(fragment.nodes[d].dependencies)
            return seen

        failed = result.failed_nodes()
        branch: Set[NodeID] = set(failed)
        for nid in failed:
            branch |= ancestors(nid)

        # anything still feeding a successful node outside the branch stays
        keep: Set[NodeID] = set()
        for nid, nr in result.nodes.items():
            if nid not in branch and nr.satisfied:
                keep.add(nid)
                keep |= ancestors(nid)

        return {n for n in finished if n in branch and n not in keep}

    def _rollback(
        self,
        fragment: ExecutionFragment,
        ctx: StepContext,
        result: GraphResult,
        scope: Set[NodeID],
        run_ctx: dict,
    ) -> None:
        for nid in reversed(result.completion_order):
            if nid not in scope:
                continue
            node = fragment.nodes[nid]
            nr = result.nodes[nid]
            hosts = [h for h in node.hosts if nr.hosts.get(h.name) and nr.hosts[h.name].status == Status.SUCCESS]
            if not hosts:
                continue

            self.bus.emit(RollbackStarted(node_id=nid, **run_ctx))
            errors = []
            for host in hosts:
                try:
                    node.step.rollback(ctx, host)
                    nr.hosts[host.name].status = Status.ROLLED_BACK
                except Exception as e:
                    log.warning("[%s] rollback failed on %s: %s", nid, host.name, e)
                    errors.append(f"{host.name}: {e}")

            if errors:
                self.bus.emit(RollbackResult(node_id=nid, status="FAILED", error="; ".join(errors), **run_ctx))
                continue

            if nr.status != Status.FAILED:
                nr.status = Status.ROLLED_BACK
            result.rolled_back.append(nid)
            self.bus.emit(RollbackResult(node_id=nid, status="ROLLED_BACK", error=None, **run_ctx))

    def _finish(self, result: GraphResult, run_ctx: dict) -> None:
        self.bus.emit(ExecutionSummary(
            status=result.status.value,
            ok=result.count(Status.SUCCESS),
            failed=result.count(Status.FAILED),
            skipped=result.count(Status.SKIPPED),
            rolled_back=len(result.rolled_back),
            **run_ctx,
        ))
        log.info("[executor] %s finished %s: %s", result.name or "fragment", result.status.value, result.summary())
