# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterforge/step/interface.py

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..connector.models import Host
    from ..runtime.context import StepContext


class Step(ABC):
    """
    The operation contract every execution node carries.

    - precheck(ctx, host) -> True when the goal is already met on host.
      Must not change anything; raises only if state cannot be inspected.
    - run(ctx, host): performs the change. Safe to call again after a
      successful precheck.
    - rollback(ctx, host): best-effort undo of run(). Errors are reported
      by the caller and never stop an unwind.

    Concrete steps are frozen dataclasses, so two steps compare equal when
    they would do the same thing.
    """

    name: str

    @abstractmethod
    def precheck(self, ctx: "StepContext", host: "Host") -> bool: ...

    @abstractmethod
    def run(self, ctx: "StepContext", host: "Host") -> None: ...

    def rollback(self, ctx: "StepContext", host: "Host") -> None:
        return None

    def describe(self) -> str:
        return f"{type(self).__name__}({self.name})"
