# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterforge/step/service.py

from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass
from typing import Tuple

from ..connector.models import Host
from ..runner.runner import SERVICE_ACTIONS
from ..runtime.context import StepContext
from .errors import StepError
from .interface import Step

log = logging.getLogger("clusterforge")

STATE_DIR = "/var/lib/clusterforge"


@dataclass(frozen=True)
class ManageServiceStep(Step):
    """
    Apply systemctl actions to a unit, in order.

    With *watch* set (config files, unit file, binaries), the unit is
    (re)started whenever the combined digest of those files differs from
    the one recorded after the last successful start, so a changed config
    or binary always takes effect.
    """
    name: str
    service: str
    actions: Tuple[str, ...] = ("daemon-reload", "enable", "start")
    watch: Tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "actions", tuple(self.actions))
        object.__setattr__(self, "watch", tuple(self.watch))
        for a in self.actions:
            if a not in SERVICE_ACTIONS:
                raise StepError(f"[{self.name}] unsupported service action: {a}")

    @property
    def stamp_path(self) -> str:
        return posixpath.join(STATE_DIR, f"{self.service}.applied")

    def _applied_digest(self, ctx: StepContext, conn) -> str:
        if not ctx.runner.exists(conn, self.stamp_path, sudo=True):
            return ""
        return ctx.runner.read_text(conn, self.stamp_path, sudo=True).strip()

    def precheck(self, ctx: StepContext, host: Host) -> bool:
        # restart/reload/stop always do work; only enable+start can be observed
        if any(a in ("restart", "reload", "stop", "disable") for a in self.actions):
            return False
        conn = ctx.connector(host)
        if "start" in self.actions and not ctx.runner.service_active(conn, self.service):
            return False
        if "enable" in self.actions and not ctx.runner.service_enabled(conn, self.service):
            return False
        if self.watch:
            current = ctx.runner.digest_files(conn, self.watch, sudo=True)
            if current != self._applied_digest(ctx, conn):
                log.info("[%s] %s inputs changed on %s; restart needed", self.name, self.service, host.name)
                return False
        return "start" in self.actions or "enable" in self.actions

    def run(self, ctx: StepContext, host: Host) -> None:
        conn = ctx.connector(host)
        actions = self.actions
        if self.watch:
            # restart also starts a stopped unit, and picks up new inputs on a running one
            actions = tuple("restart" if a == "start" else a for a in actions)
        for action in actions:
            log.info("[%s] systemctl %s %s on %s", self.name, action, self.service, host.name)
            ctx.runner.service(conn, self.service, action)
        if self.watch:
            digest = ctx.runner.digest_files(conn, self.watch, sudo=True)
            ctx.runner.write_file(conn, digest + "\n", self.stamp_path, sudo=True)

    def rollback(self, ctx: StepContext, host: Host) -> None:
        conn = ctx.connector(host)
        if "start" in self.actions or "restart" in self.actions:
            ctx.runner.service(conn, self.service, "stop")
        if "enable" in self.actions:
            ctx.runner.service(conn, self.service, "disable")
        if self.watch:
            ctx.runner.remove(conn, self.stamp_path, sudo=True)
