# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterforge/task/pki.py

from __future__ import annotations

import logging
from typing import Sequence

from ..config.models import EtcdSpec
from ..connector.models import Host
from ..plan.graph import ExecutionFragment
from ..resource.pki import LocalCertificateHandle
from ..runtime.context import PlanContext
from .composer import Task

log = logging.getLogger("clusterforge")

ETCD_CERTS_COMPONENT = "etcd"


def etcd_ca() -> LocalCertificateHandle:
    return LocalCertificateHandle(
        component=ETCD_CERTS_COMPONENT,
        cert_name="ca",
        common_name="etcd-ca",
        is_ca=True,
    )


def etcd_member_cert(ca: LocalCertificateHandle, host: Host) -> LocalCertificateHandle:
    return LocalCertificateHandle(
        component=ETCD_CERTS_COMPONENT,
        cert_name=f"member-{host.name}",
        common_name=host.name,
        ca=ca,
        sans=(host.name, host.address, "localhost", "127.0.0.1"),
    )


class GenerateEtcdPKITask(Task):
    """
    CA plus one member certificate per etcd host, all on the control node.

    A fresh CA invalidates every member certificate, so when the CA is
    (re)generated every member certificate is reissued too.
    """

    name = "etcd-pki"
    description = "Generate etcd CA and member certificates"

    def __init__(self, spec: EtcdSpec):
        self.spec = spec
        self.roles: Sequence[str] = list(spec.roles)

    def plan(self, ctx: PlanContext) -> ExecutionFragment:
        fragment = ExecutionFragment(name=self.name)
        hosts = ctx.hosts_by_role(*self.roles)
        if not hosts:
            log.warning("[%s] no hosts with roles %s; nothing to plan", self.name, list(self.roles))
            return fragment

        ca = etcd_ca()
        ca_missing = not ca.is_present(ctx)
        ca_deps = []
        if ca_missing:
            node_id, node = ca.generate_node(ctx)
            fragment.add_node(node_id, node)
            ca_deps = [node_id]

        for host in hosts:
            cert = etcd_member_cert(ca, host)
            if ca_missing or not cert.is_present(ctx):
                node_id, node = cert.generate_node(ctx, ca_deps)
                fragment.add_node(node_id, node)

        fragment.validate()
        log.info("[%s] planned %d certificate node(s)", self.name, len(fragment))
        return fragment
