# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterforge/task/sequence.py

from __future__ import annotations

import logging
from typing import Callable, Dict, Iterable, List, Optional

from ..config.models import ClusterSpec
from ..observers.dispatcher import EventBus
from ..observers.events import PlanComputed, PlanFailed, new_ctx
from ..plan.graph import ExecutionFragment, merge
from ..runtime.context import PlanContext
from .composer import Task
from .containerd import InstallContainerdTask
from .etcd import InstallEtcdTask
from .images import PullImagesTask
from .pki import GenerateEtcdPKITask

log = logging.getLogger("clusterforge")


# Registration order is also execution order.
TASKS: Dict[str, Callable[[ClusterSpec], Task]] = {
    "etcd-pki": lambda spec: GenerateEtcdPKITask(spec.etcd),
    "etcd": lambda spec: InstallEtcdTask(spec.etcd),
    "containerd": lambda spec: InstallContainerdTask(spec.containerd),
    "images": lambda spec: PullImagesTask(spec.images),
}


def build_tasks(spec: ClusterSpec, names: Optional[Iterable[str]] = None) -> List[Task]:
    """
    Instantiate the named tasks (all of them when *names* is empty) in
    registration order, whatever order they were requested in.
    """
    wanted = set(names or TASKS)
    unknown = sorted(wanted - set(TASKS))
    if unknown:
        raise ValueError(f"unknown task(s): {', '.join(unknown)}; choose from {', '.join(TASKS)}")
    return [factory(spec) for key, factory in TASKS.items() if key in wanted]


def plan_tasks(
    ctx: PlanContext,
    tasks: Iterable[Task],
    *,
    bus: Optional[EventBus] = None,
    run_id: Optional[str] = None,
    name: str = "",
) -> ExecutionFragment:
    """
    Plan each required task and chain the results in order: the entry nodes
    of a task's fragment wait for the exit nodes of everything before it.
    """
    bus = bus or EventBus()
    out = ExecutionFragment.empty(name or ctx.cluster_name)

    for task in tasks:
        if not task.is_required(ctx):
            log.info("[%s] not required for cluster %s; skipping", task.name, ctx.cluster_name)
            continue
        try:
            fragment = task.plan(ctx)
        except Exception as e:
            bus.emit(PlanFailed(task=task.name, error=str(e), **new_ctx(ctx.cluster_name, run_id)))
            raise
        bus.emit(PlanComputed(
            task=task.name,
            nodes=len(fragment),
            entry=list(fragment.entry_nodes),
            exit=list(fragment.exit_nodes),
            **new_ctx(ctx.cluster_name, run_id),
        ))
        out = merge(out, fragment, chain=True, name=out.name)

    return out
