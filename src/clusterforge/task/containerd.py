# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterforge/task/containerd.py

from __future__ import annotations

import logging
import posixpath
from typing import List, Sequence

from ..config.models import ContainerdSpec
from ..connector.models import Host
from ..plan.graph import ExecutionFragment
from ..resource.catalog import template_vars
from ..resource.remote_binary import RemoteBinaryHandle
from ..runtime.context import PlanContext
from ..step.command import CommandStep
from ..step.files import RenderTemplateStep, UploadFileStep
from ..step.service import ManageServiceStep
from ..utils.shell import q, version_pattern
from ..utils.templating import load_template
from .composer import BIN_DIR, REMOTE_TMP_DIR, ChainLink, Task, TaskComposer

log = logging.getLogger("clusterforge")

CONTAINERD_PREFIX = "/usr/local"
CONTAINERD_CONFIG = "/etc/containerd/config.toml"
CONTAINERD_UNIT_FILE = "/etc/systemd/system/containerd.service"
CRICTL_CONFIG = "/etc/crictl.yaml"
RUNC_PATH = "/usr/local/sbin/runc"


class InstallContainerdTask(Task):
    """
    containerd + runc + crictl on every node that runs workloads.
    """

    name = "install-containerd"
    description = "Install containerd, runc and crictl"

    def __init__(self, spec: ContainerdSpec):
        self.spec = spec
        self.roles: Sequence[str] = list(spec.roles)

    def handles(self, ctx: PlanContext) -> List[RemoteBinaryHandle]:
        return [
            RemoteBinaryHandle.for_component(
                ctx, "containerd", self.spec.version, checksum=self.spec.checksum,
            ),
            RemoteBinaryHandle.for_component(
                ctx, "runc", self.spec.runc_version, checksum=self.spec.runc_checksum,
            ),
            RemoteBinaryHandle.for_component(
                ctx, "crictl", self.spec.crictl_version, binary_key="crictl", checksum=self.spec.crictl_checksum,
            ),
        ]

    def plan(self, ctx: PlanContext) -> ExecutionFragment:
        composer = TaskComposer(self.name, self.roles)
        if not composer.target_hosts(ctx):
            log.warning("[%s] no hosts with roles %s; nothing to plan", self.name, list(self.roles))
            return ExecutionFragment.empty(self.name)

        containerd, runc, crictl = self.handles(ctx)
        version_no_v = template_vars(self.spec.version, "", "")["version_no_v"]
        installed = [posixpath.join(CONTAINERD_PREFIX, m) for m in containerd.archive_members]

        def build_chain(ctx: PlanContext, host: Host) -> List[ChainLink]:
            remote_archive = posixpath.join(REMOTE_TMP_DIR, "containerd", containerd.filename)
            return [
                ChainLink(
                    "containerd-upload-archive",
                    "Upload containerd archive",
                    UploadFileStep(
                        name="containerd-upload-archive",
                        local_path=containerd.path(ctx),
                        remote_path=remote_archive,
                    ),
                ),
                ChainLink(
                    "containerd-install",
                    "Install containerd binaries",
                    CommandStep(
                        name="containerd-install",
                        cmd=f"mkdir -p {CONTAINERD_PREFIX} && tar -xf {q(remote_archive)} -C {CONTAINERD_PREFIX}",
                        check_cmd=f"{BIN_DIR}/containerd --version 2>/dev/null | grep -qE {q(version_pattern(version_no_v))}",
                        undo_cmd="rm -f " + " ".join(q(p) for p in installed),
                        sudo=True,
                    ),
                ),
                ChainLink(
                    "runc-install",
                    "Install runc",
                    UploadFileStep(
                        name="runc-install",
                        local_path=runc.path(ctx),
                        remote_path=RUNC_PATH,
                        mode="0755",
                    ),
                ),
                ChainLink(
                    "crictl-install",
                    "Install crictl",
                    UploadFileStep(
                        name="crictl-install",
                        local_path=crictl.path(ctx),
                        remote_path=posixpath.join(BIN_DIR, "crictl"),
                        mode="0755",
                    ),
                ),
                ChainLink(
                    "containerd-render-config",
                    "Render containerd config",
                    RenderTemplateStep(
                        name="containerd-render-config",
                        template=load_template("containerd-config.toml.j2"),
                        dest_path=CONTAINERD_CONFIG,
                        context={
                            "sandbox_image": self.spec.sandbox_image,
                            "systemd_cgroup": self.spec.systemd_cgroup,
                            "private_registry": ctx.private_registry,
                        },
                    ),
                ),
                ChainLink(
                    "crictl-render-config",
                    "Render crictl config",
                    RenderTemplateStep(
                        name="crictl-render-config",
                        template=load_template("crictl.yaml.j2"),
                        dest_path=CRICTL_CONFIG,
                    ),
                ),
                ChainLink(
                    "containerd-render-unit",
                    "Render containerd systemd unit",
                    RenderTemplateStep(
                        name="containerd-render-unit",
                        template=load_template("containerd.service.j2"),
                        dest_path=CONTAINERD_UNIT_FILE,
                        context={"bin_dir": BIN_DIR},
                    ),
                ),
                ChainLink(
                    "containerd-start",
                    "Start containerd",
                    ManageServiceStep(
                        name="containerd-start",
                        service="containerd",
                        watch=(
                            CONTAINERD_CONFIG,
                            CONTAINERD_UNIT_FILE,
                            posixpath.join(BIN_DIR, "containerd"),
                            RUNC_PATH,
                        ),
                    ),
                ),
            ]

        return composer.compose(ctx, [containerd, runc, crictl], build_chain)
