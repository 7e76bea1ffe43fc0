# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterforge/step/command.py

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..connector.models import Host
from ..runtime.context import StepContext
from ..utils.shell import q
from .interface import Step

log = logging.getLogger("clusterforge")


@dataclass(frozen=True)
class CommandStep(Step):
    """
    Run a shell command on the host.

    check_cmd exiting 0 means the goal is already met; undo_cmd, when set,
    is what rollback runs.
    """
    name: str
    cmd: str
    check_cmd: str = ""
    undo_cmd: str = ""
    sudo: bool = False

    def precheck(self, ctx: StepContext, host: Host) -> bool:
        if not self.check_cmd:
            return False
        return ctx.runner.check(ctx.connector(host), self.check_cmd, sudo=self.sudo)

    def run(self, ctx: StepContext, host: Host) -> None:
        ctx.runner.run(ctx.connector(host), self.cmd, sudo=self.sudo)

    def rollback(self, ctx: StepContext, host: Host) -> None:
        if self.undo_cmd:
            ctx.runner.run(ctx.connector(host), self.undo_cmd, sudo=self.sudo)


@dataclass(frozen=True)
class PullImageStep(Step):
    """
    crictl pull, skipped when the image is already in the runtime's store.
    """
    name: str
    image: str
    sudo: bool = True

    def precheck(self, ctx: StepContext, host: Host) -> bool:
        return ctx.runner.check(ctx.connector(host), f"crictl inspecti {q(self.image)} > /dev/null 2>&1", sudo=self.sudo)

    def run(self, ctx: StepContext, host: Host) -> None:
        log.info("[%s] pulling %s on %s", self.name, self.image, host.name)
        ctx.runner.run(ctx.connector(host), f"crictl pull {q(self.image)}", sudo=self.sudo)
