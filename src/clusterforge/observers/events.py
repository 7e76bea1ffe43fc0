# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterforge/observers/events.py

from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import List, Dict, Any, Optional
from datetime import datetime, timezone
import uuid


# ---------------------------------------------------------------------
# Base context and helper
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class BaseEvent:
    ts: str           # ISO timestamp
    run_id: str       # correlates all events in a single plan/apply invocation
    cluster: str      # cluster name

    def dict(self) -> Dict[str, Any]:
        return asdict(self)


def new_ctx(cluster: str, run_id: Optional[str] = None) -> Dict[str, Any]:
    return {
        "ts": datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z"),
        "run_id": run_id or str(uuid.uuid4()),
        "cluster": cluster,
    }


# ---------------------------------------------------------------------
# Planning
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class PlanComputed(BaseEvent):
    task: str
    nodes: int
    entry: List[str]
    exit: List[str]

@dataclass(frozen=True)
class PlanFailed(BaseEvent):
    task: str
    error: str


# ---------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class ExecutionStarted(BaseEvent):
    fragment: str
    total: int
    dry_run: bool = False

@dataclass(frozen=True)
class NodeStarted(BaseEvent):
    node_id: str
    name: str
    hosts: List[str]

@dataclass(frozen=True)
class NodeSucceeded(BaseEvent):
    node_id: str
    duration_ms: int
    skipped_hosts: List[str]

@dataclass(frozen=True)
class NodeSkipped(BaseEvent):
    node_id: str
    reason: str

@dataclass(frozen=True)
class NodeFailed(BaseEvent):
    node_id: str
    error: str


# ---------------------------------------------------------------------
# Rollback & summary
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class RollbackStarted(BaseEvent):
    node_id: str

@dataclass(frozen=True)
class RollbackResult(BaseEvent):
    node_id: str
    status: str                   # "ROLLED_BACK" | "FAILED"
    error: Optional[str] = None

@dataclass(frozen=True)
class ExecutionSummary(BaseEvent):
    status: str
    ok: int
    failed: int
    skipped: int
    rolled_back: int
