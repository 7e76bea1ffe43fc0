# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterforge/task/etcd.py

from __future__ import annotations

import logging
import posixpath
from typing import List, Sequence

from ..config.models import EtcdSpec
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
from .pki import etcd_ca, etcd_member_cert

log = logging.getLogger("clusterforge")

ETCD_PKI_DIR = "/etc/etcd/pki"
ETCD_ENV_FILE = "/etc/etcd.env"
ETCD_UNIT_FILE = "/etc/systemd/system/etcd.service"
ETCD_BINARIES = ("etcd", "etcdctl")


class InstallEtcdTask(Task):
    """
    Download the etcd release once, then on every etcd host: upload,
    install binaries, ship member certificates, render config and unit,
    start the service.

    Certificates are expected from GenerateEtcdPKITask planned ahead of
    this task.
    """

    name = "install-etcd"
    description = "Install and start etcd on etcd hosts"

    def __init__(self, spec: EtcdSpec):
        self.spec = spec
        self.roles: Sequence[str] = list(spec.roles)

    def plan(self, ctx: PlanContext) -> ExecutionFragment:
        composer = TaskComposer(self.name, self.roles)
        hosts = composer.target_hosts(ctx)
        if not hosts:
            log.warning("[%s] no hosts with roles %s; nothing to plan", self.name, list(self.roles))
            return ExecutionFragment.empty(self.name)

        archive = RemoteBinaryHandle.for_component(
            ctx, "etcd", self.spec.version, arch=self.spec.arch, checksum=self.spec.checksum,
        )
        resolved = ctx.catalog.resolve("etcd", self.spec.version, archive.identity.arch, archive.identity.os, zone=ctx.zone)
        ca = etcd_ca()
        certs = {h.name: etcd_member_cert(ca, h) for h in hosts}

        initial_cluster = ",".join(f"{h.name}=https://{h.address}:{self.spec.peer_port}" for h in hosts)
        version_no_v = template_vars(self.spec.version, "", "")["version_no_v"]

        def build_chain(ctx: PlanContext, host: Host) -> List[ChainLink]:
            remote_archive = posixpath.join(REMOTE_TMP_DIR, "etcd", archive.filename)
            extract_dir = posixpath.join(REMOTE_TMP_DIR, "etcd", "extracted")
            install = [f"mkdir -p {q(extract_dir)}", f"tar -xf {q(remote_archive)} -C {q(extract_dir)}"]
            for b in ETCD_BINARIES:
                src = posixpath.join(extract_dir, resolved.binaries[b])
                install.append(f"install -m 0755 {q(src)} {q(posixpath.join(BIN_DIR, b))}")
            cert = certs[host.name]

            return [
                ChainLink(
                    "etcd-upload-archive",
                    "Upload etcd archive",
                    UploadFileStep(
                        name="etcd-upload-archive",
                        local_path=archive.path(ctx),
                        remote_path=remote_archive,
                    ),
                ),
                ChainLink(
                    "etcd-install-binaries",
                    "Install etcd binaries",
                    CommandStep(
                        name="etcd-install-binaries",
                        cmd=" && ".join(install),
                        check_cmd=f"{BIN_DIR}/etcd --version 2>/dev/null | grep -qE {q(version_pattern(version_no_v))}",
                        undo_cmd="rm -f " + " ".join(posixpath.join(BIN_DIR, b) for b in ETCD_BINARIES),
                        sudo=True,
                    ),
                ),
                ChainLink(
                    "etcd-upload-ca",
                    "Upload etcd CA certificate",
                    UploadFileStep(
                        name="etcd-upload-ca",
                        local_path=ca.path(ctx),
                        remote_path=posixpath.join(ETCD_PKI_DIR, "ca.crt"),
                    ),
                ),
                ChainLink(
                    "etcd-upload-cert",
                    "Upload etcd member certificate",
                    UploadFileStep(
                        name="etcd-upload-cert",
                        local_path=cert.path(ctx),
                        remote_path=posixpath.join(ETCD_PKI_DIR, "server.crt"),
                    ),
                ),
                ChainLink(
                    "etcd-upload-key",
                    "Upload etcd member key",
                    UploadFileStep(
                        name="etcd-upload-key",
                        local_path=cert.key_path(ctx),
                        remote_path=posixpath.join(ETCD_PKI_DIR, "server.key"),
                        mode="0600",
                    ),
                ),
                ChainLink(
                    "etcd-render-env",
                    "Render etcd environment",
                    RenderTemplateStep(
                        name="etcd-render-env",
                        template=load_template("etcd.env.j2"),
                        dest_path=ETCD_ENV_FILE,
                        context={
                            "name": host.name,
                            "address": host.address,
                            "data_dir": self.spec.data_dir,
                            "client_port": self.spec.client_port,
                            "peer_port": self.spec.peer_port,
                            "initial_cluster": initial_cluster,
                            "cluster_token": f"{ctx.cluster_name}-etcd",
                            "pki_dir": ETCD_PKI_DIR,
                        },
                    ),
                ),
                ChainLink(
                    "etcd-render-unit",
                    "Render etcd systemd unit",
                    RenderTemplateStep(
                        name="etcd-render-unit",
                        template=load_template("etcd.service.j2"),
                        dest_path=ETCD_UNIT_FILE,
                        context={"env_file": ETCD_ENV_FILE, "bin_dir": BIN_DIR},
                    ),
                ),
                ChainLink(
                    "etcd-start",
                    "Start etcd",
                    ManageServiceStep(
                        name="etcd-start",
                        service="etcd",
                        watch=(
                            ETCD_ENV_FILE,
                            ETCD_UNIT_FILE,
                            *(posixpath.join(BIN_DIR, b) for b in ETCD_BINARIES),
                            *(posixpath.join(ETCD_PKI_DIR, f) for f in ("ca.crt", "server.crt", "server.key")),
                        ),
                    ),
                ),
            ]

        handles = [archive, ca, *certs.values()]
        return composer.compose(ctx, handles, build_chain)
