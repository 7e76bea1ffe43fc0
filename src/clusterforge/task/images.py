# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterforge/task/images.py

from __future__ import annotations

import logging
from typing import List, Sequence

from ..config.models import ImageSpec
from ..plan.graph import ExecutionFragment, merge_all
from ..resource.image import RemoteImageHandle
from ..runtime.context import PlanContext
from .composer import Task

log = logging.getLogger("clusterforge")


class PullImagesTask(Task):
    """
    Pre-pull container images; every (image, host) pair is an independent node.
    """

    name = "pull-images"
    description = "Pull container images on target hosts"

    def __init__(self, images: Sequence[ImageSpec]):
        self.images = list(images)

    def handles(self) -> List[RemoteImageHandle]:
        return [
            RemoteImageHandle(
                image=img.name,
                version=img.version,
                registry_override=img.registry,
                namespace_override=img.namespace,
                target_roles=tuple(img.roles),
            )
            for img in self.images
        ]

    def is_required(self, ctx: PlanContext) -> bool:
        return bool(self.images) and bool(ctx.all_hosts())

    def plan(self, ctx: PlanContext) -> ExecutionFragment:
        if not self.images:
            log.info("[%s] no images configured", self.name)
            return ExecutionFragment.empty(self.name)
        return merge_all((h.ensure_plan(ctx) for h in self.handles()), name=self.name)
