# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterforge/resource/image.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Tuple

from ..plan.graph import ExecutionFragment, ExecutionNode
from ..step.command import PullImageStep
from .errors import MissingParameterError
from .interface import Handle

if TYPE_CHECKING:
    from ..runtime.context import PlanContext

log = logging.getLogger("clusterforge")


def _looks_like_registry(part: str) -> bool:
    return "." in part or ":" in part or part == "localhost"


def rewrite_image(
    image: str,
    version: str = "",
    *,
    registry: str = "",
    namespace: str = "",
) -> str:
    """
    Compose <registry>/<namespace>/<name>:<tag>, replacing the registry and
    namespace found in *image* when overrides are given.
    """
    ref = image
    if version and ":" not in ref.rsplit("/", 1)[-1]:
        ref = f"{ref}:{version}"

    parts = ref.split("/", 2)
    found_registry = ""
    repo = ref
    if len(parts) > 1 and _looks_like_registry(parts[0]):
        found_registry = parts[0]
        repo = "/".join(parts[1:])

    found_namespace = ""
    name = repo
    if "/" in repo:
        found_namespace, name = repo.split("/", 1)

    out = []
    final_registry = registry or found_registry
    final_namespace = namespace or found_namespace
    if final_registry:
        out.append(final_registry)
    if final_namespace:
        out.append(final_namespace)
    out.append(name)
    return "/".join(out)


def _node_token(s: str) -> str:
    return s.replace("/", "-").replace(":", "-")


@dataclass(frozen=True)
class RemoteImageHandle(Handle):
    """
    A container image pulled by the runtime on each target host.
    No control-node acquisition: one independent pull node per host.
    """
    image: str
    version: str = ""
    arch: str = ""
    registry_override: str = ""
    namespace_override: str = ""
    target_roles: Tuple[str, ...] = ()

    def __post_init__(self):
        if not self.image:
            raise MissingParameterError("image name is required")
        object.__setattr__(self, "target_roles", tuple(self.target_roles))

    @property
    def id(self) -> str:
        parts = ["image", _node_token(self.image), self.version, self.arch]
        return "-".join(p for p in parts if p)

    def path(self, ctx: "PlanContext") -> str:
        return rewrite_image(
            self.image,
            self.version,
            registry=self.registry_override or ctx.private_registry,
            namespace=self.namespace_override or ctx.namespace_override,
        )

    def ensure_plan(self, ctx: "PlanContext") -> ExecutionFragment:
        full = self.path(ctx)
        fragment = ExecutionFragment(name=f"ensure-{self.id}")

        hosts = ctx.hosts_by_role(*self.target_roles) if self.target_roles else ctx.all_hosts()
        if not hosts:
            log.warning("[images] no target hosts for %s (roles=%s)", full, list(self.target_roles) or "all")
            return fragment

        for host in hosts:
            node_id = f"pull-image-{_node_token(full)}-on-{host.name}"
            fragment.add_node(
                node_id,
                ExecutionNode(
                    name=f"Pull {full} on {host.name}",
                    step=PullImageStep(name=node_id, image=full),
                    hosts=(host,),
                ),
            )

        log.info("[images] %s: %d pull node(s) planned", full, len(fragment))
        fragment.validate()
        return fragment
