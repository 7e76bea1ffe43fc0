# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterforge/step/pki.py

from __future__ import annotations

import ipaddress
import logging
import posixpath
import secrets
from dataclasses import dataclass
from typing import Tuple

from ..connector.models import Host
from ..runtime.context import StepContext
from ..utils.shell import q
from .interface import Step

log = logging.getLogger("clusterforge")


def _subject(common_name: str, organization: str) -> str:
    subj = f"/CN={common_name}"
    if organization:
        subj = f"/O={organization}{subj}"
    return subj


def random_serial() -> str:
    """
    A fresh 128-bit serial. Member certificates are issued concurrently, so
    they cannot share an openssl serial file next to the CA.
    """
    return "0x" + secrets.token_hex(16)


def san_entries(sans: Tuple[str, ...]) -> str:
    out = []
    for s in sans:
        try:
            ipaddress.ip_address(s)
            out.append(f"IP:{s}")
        except ValueError:
            out.append(f"DNS:{s}")
    return ",".join(out)


@dataclass(frozen=True)
class GenerateCACertStep(Step):
    """
    Self-signed CA key pair, generated with openssl on the control node.
    """
    name: str
    common_name: str
    cert_path: str
    key_path: str
    validity_days: int = 36500
    organization: str = ""

    def precheck(self, ctx: StepContext, host: Host) -> bool:
        conn = ctx.connector(host)
        return ctx.runner.exists(conn, self.cert_path) and ctx.runner.exists(conn, self.key_path)

    def run(self, ctx: StepContext, host: Host) -> None:
        conn = ctx.connector(host)
        ctx.runner.mkdirp(conn, posixpath.dirname(self.cert_path))
        log.info("[%s] generating CA %s", self.name, self.cert_path)
        ctx.runner.run(
            conn,
            "openssl req -x509 -new -nodes -newkey rsa:2048 -sha256"
            f" -days {self.validity_days}"
            f" -subj {q(_subject(self.common_name, self.organization))}"
            f" -keyout {q(self.key_path)} -out {q(self.cert_path)}",
        )
        ctx.runner.run(conn, f"chmod 0600 {q(self.key_path)}")

    def rollback(self, ctx: StepContext, host: Host) -> None:
        conn = ctx.connector(host)
        ctx.runner.remove(conn, self.cert_path)
        ctx.runner.remove(conn, self.key_path)


@dataclass(frozen=True)
class GenerateSignedCertStep(Step):
    """
    Key pair signed by an existing CA. A certificate that no longer
    verifies against the CA (e.g. after CA regeneration) is reissued.
    """
    name: str
    common_name: str
    cert_path: str
    key_path: str
    ca_cert_path: str
    ca_key_path: str
    sans: Tuple[str, ...] = ()
    validity_days: int = 36500
    organization: str = ""
    server: bool = True
    client: bool = True

    def precheck(self, ctx: StepContext, host: Host) -> bool:
        conn = ctx.connector(host)
        if not (ctx.runner.exists(conn, self.cert_path) and ctx.runner.exists(conn, self.key_path)):
            return False
        return ctx.runner.check(
            conn,
            f"openssl verify -CAfile {q(self.ca_cert_path)} {q(self.cert_path)} > /dev/null 2>&1",
        )

    def extensions(self) -> str:
        usages = []
        if self.server:
            usages.append("serverAuth")
        if self.client:
            usages.append("clientAuth")
        lines = [
            "basicConstraints=CA:FALSE",
            "keyUsage=critical,digitalSignature,keyEncipherment",
        ]
        if usages:
            lines.append("extendedKeyUsage=" + ",".join(usages))
        if self.sans:
            lines.append("subjectAltName=" + san_entries(self.sans))
        return "\n".join(lines) + "\n"

    def run(self, ctx: StepContext, host: Host) -> None:
        conn = ctx.connector(host)
        ctx.runner.mkdirp(conn, posixpath.dirname(self.cert_path))
        csr = self.cert_path + ".csr"
        ext = self.cert_path + ".ext"
        ctx.runner.write_file(conn, self.extensions(), ext, mode="0600")

        log.info("[%s] issuing %s signed by %s", self.name, self.cert_path, self.ca_cert_path)
        try:
            ctx.runner.run(
                conn,
                "openssl req -new -nodes -newkey rsa:2048"
                f" -subj {q(_subject(self.common_name, self.organization))}"
                f" -keyout {q(self.key_path)} -out {q(csr)}",
            )
            ctx.runner.run(
                conn,
                f"openssl x509 -req -sha256 -in {q(csr)}"
                f" -CA {q(self.ca_cert_path)} -CAkey {q(self.ca_key_path)} -set_serial {random_serial()}"
                f" -days {self.validity_days} -extfile {q(ext)} -out {q(self.cert_path)}",
            )
            ctx.runner.run(conn, f"chmod 0600 {q(self.key_path)}")
        finally:
            ctx.runner.remove(conn, csr)
            ctx.runner.remove(conn, ext)

    def rollback(self, ctx: StepContext, host: Host) -> None:
        conn = ctx.connector(host)
        ctx.runner.remove(conn, self.cert_path)
        ctx.runner.remove(conn, self.key_path)
