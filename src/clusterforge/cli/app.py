# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterforge/cli/app.py
from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import typer

from clusterforge.config.loader import load_config
from clusterforge.connector.models import Host
from clusterforge.connector.pool import ConnectionPool
from clusterforge.engine.executor import Executor, Status
from clusterforge.logging.log import init_logging
from clusterforge.observers.console import ConsoleObserver
from clusterforge.observers.dispatcher import EventBus
from clusterforge.observers.interface import EventFilter
from clusterforge.observers.jsonfile import JsonFileObserver
from clusterforge.observers.logger import LoggerObserver
from clusterforge.plan.errors import PlanError
from clusterforge.resource.errors import ResourceError
from clusterforge.runtime.context import PlanContext
from clusterforge.task.sequence import TASKS, build_tasks, plan_tasks


# ------------------------------------------------------------------------------
# CLI setup
# ------------------------------------------------------------------------------

app = typer.Typer(help="clusterforge: plan and apply cluster component installs")


def _context(config: Path, work_dir: Optional[Path], arch: str, pool: ConnectionPool):
    spec = load_config(config)
    ctx = PlanContext.from_cluster(
        spec,
        work_dir=work_dir,
        pool=pool,
        control_host=Host.control_node(arch=arch),
    )
    return spec, ctx


# ------------------------------------------------------------------------------
# Commands
# ------------------------------------------------------------------------------

@app.command("tasks")
def list_tasks():
    """List the tasks in execution order."""
    for name in TASKS:
        typer.echo(name)


@app.command()
def plan(
    config: Path = typer.Argument(..., help="Cluster definition YAML"),
    task: Optional[List[str]] = typer.Option(None, "--task", "-t", help="Task to plan (repeatable; default: all)"),
    work_dir: Optional[Path] = typer.Option(None, "--work-dir", help="Local artifact cache"),
    arch: str = typer.Option("", "--arch", help="Control node architecture (default: detect)"),
):
    """
    Print the execution plan in dependency order without running anything.
    """
    with ConnectionPool() as pool:
        try:
            spec, ctx = _context(config, work_dir, arch, pool)
            fragment = plan_tasks(ctx, build_tasks(spec, task))
        except (PlanError, ResourceError, ValueError) as e:
            typer.echo(f"plan failed: {e}", err=True)
            raise typer.Exit(code=1)

    if fragment.is_empty():
        typer.echo("Nothing to do: cluster is up to date.")
        return

    for nid in fragment.topological_order():
        node = fragment.nodes[nid]
        deps = ", ".join(sorted(node.dependencies)) or "-"
        typer.echo(f"{nid}  [{', '.join(node.hostnames)}]  after: {deps}")
    typer.echo(f"{len(fragment)} node(s); entry={len(fragment.entry_nodes)} exit={len(fragment.exit_nodes)}")


@app.command()
def apply(
    config: Path = typer.Argument(..., help="Cluster definition YAML"),
    task: Optional[List[str]] = typer.Option(None, "--task", "-t", help="Task to apply (repeatable; default: all)"),
    work_dir: Optional[Path] = typer.Option(None, "--work-dir", help="Local artifact cache"),
    arch: str = typer.Option("", "--arch", help="Control node architecture (default: detect)"),
    max_workers: int = typer.Option(10, "--max-workers", min=1),
    dry_run: bool = typer.Option(False, "--dry-run", help="Plan and walk the graph without running steps"),
    no_rollback: bool = typer.Option(False, "--no-rollback", help="Leave completed nodes in place on failure"),
    log_dir: Optional[Path] = typer.Option(None, "--log-dir"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """
    Plan, then execute the plan against the cluster hosts.
    """
    run_log = init_logging(base_dir=log_dir, verbose=verbose)
    run_id = run_log.run_id
    console = ConsoleObserver()
    observers = [
        console if verbose else EventFilter(console),
        LoggerObserver(run_log.logger),
        JsonFileObserver(run_log.events_path),
    ]

    with ConnectionPool() as pool:
        try:
            spec, ctx = _context(config, work_dir, arch, pool)
            fragment = plan_tasks(ctx, build_tasks(spec, task), bus=EventBus(observers), run_id=run_id)
        except (PlanError, ResourceError, ValueError) as e:
            typer.echo(f"plan failed: {e}", err=True)
            raise typer.Exit(code=1)

        executor = Executor(
            max_workers=max_workers,
            observers=observers,
            rollback_on_failure=not no_rollback,
            cluster=spec.name,
            run_id=run_id,
        )
        result = executor.execute(fragment, ctx.step_context(), dry_run=dry_run)

    typer.echo(f"{result.status.value}: {result.summary()}")
    if result.status != Status.SUCCESS:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
