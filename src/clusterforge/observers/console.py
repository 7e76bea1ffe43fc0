# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterforge/observers/console.py
from __future__ import annotations
import typer
from .events import BaseEvent, NodeFailed, RollbackResult

_BASE_KEYS = ("ts", "run_id", "cluster")


class ConsoleObserver:
    def notify(self, event: BaseEvent) -> None:
        d = event.dict()
        k = event.__class__.__name__
        data = ", ".join(f"{x}={y}" for x, y in d.items() if x not in _BASE_KEYS)
        failed = isinstance(event, NodeFailed) or (isinstance(event, RollbackResult) and event.status != "ROLLED_BACK")
        typer.echo(f"[{d['ts']}] {k} cluster={d['cluster']} {{{data}}}", err=failed)
