# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterforge/resource/interface.py

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from ..plan.graph import ExecutionFragment
    from ..runtime.context import PlanContext


@dataclass(frozen=True)
class ResourceIdentity:
    component: str
    version: str
    arch: str
    os: str
    binary_key: Optional[str] = None

    def slug(self) -> str:
        parts = [self.component, self.version, self.os, self.arch]
        if self.binary_key:
            parts.append(self.binary_key)
        return "-".join(p for p in parts if p)


class Handle(ABC):
    """
    Planner for one artifact.

    - id: stable identity, also the seed for node identifiers
    - path(ctx): where the consumable artifact lives, derived only from the
      identity plus the context's work dir and cluster name
    - ensure_plan(ctx): nodes that make the artifact available, or an empty
      fragment when it already is
    """

    @property
    @abstractmethod
    def id(self) -> str: ...

    @abstractmethod
    def path(self, ctx: "PlanContext") -> str: ...

    @abstractmethod
    def ensure_plan(self, ctx: "PlanContext") -> "ExecutionFragment": ...
