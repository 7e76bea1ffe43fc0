# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterforge/resource/pki.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Tuple

from ..plan.graph import ExecutionFragment, ExecutionNode
from ..step.interface import Step
from ..step.pki import GenerateCACertStep, GenerateSignedCertStep
from .errors import MissingParameterError
from .interface import Handle

if TYPE_CHECKING:
    from ..runtime.context import PlanContext

log = logging.getLogger("clusterforge")


@dataclass(frozen=True)
class LocalCertificateHandle(Handle):
    """
    A certificate + key pair kept under <work-dir>/<cluster>/certs/<component>/.

    ensure_plan never schedules work: generation needs the signing CA,
    so tasks add generate_node() themselves in the right order.
    """
    component: str
    cert_name: str
    common_name: str = ""
    is_ca: bool = False
    ca: Optional["LocalCertificateHandle"] = None
    sans: Tuple[str, ...] = ()
    organization: str = ""
    validity_days: int = 36500

    def __post_init__(self):
        if not self.component or not self.cert_name:
            raise MissingParameterError("certificate handle needs a component and a cert name")
        if not self.is_ca and self.ca is None:
            raise MissingParameterError(f"[{self.component}] certificate '{self.cert_name}' needs a signing CA")
        object.__setattr__(self, "sans", tuple(self.sans))

    @property
    def id(self) -> str:
        if self.is_ca:
            return f"pki-ca-{self.cert_name}"
        return f"pki-cert-{self.cert_name}-signedby-{self.ca.cert_name}"

    def path(self, ctx: "PlanContext") -> str:
        return str(ctx.certs_dir(self.component) / f"{self.cert_name}.crt")

    def key_path(self, ctx: "PlanContext") -> str:
        return str(ctx.certs_dir(self.component) / f"{self.cert_name}.key")

    def is_present(self, ctx: "PlanContext") -> bool:
        conn = ctx.connector(ctx.control_host)
        return ctx.runner.exists(conn, self.path(ctx)) and ctx.runner.exists(conn, self.key_path(ctx))

    def ensure_plan(self, ctx: "PlanContext") -> ExecutionFragment:
        if self.is_present(ctx):
            log.info("[pki] %s already present at %s", self.cert_name, self.path(ctx))
        else:
            log.info("[pki] %s missing at %s; left to the PKI generation task", self.cert_name, self.path(ctx))
        return ExecutionFragment(name=f"ensure-{self.id}")

    def generate_step(self, ctx: "PlanContext") -> Step:
        cn = self.common_name or self.cert_name
        if self.is_ca:
            return GenerateCACertStep(
                name=f"generate-{self.id}",
                common_name=cn,
                cert_path=self.path(ctx),
                key_path=self.key_path(ctx),
                validity_days=self.validity_days,
                organization=self.organization,
            )
        return GenerateSignedCertStep(
            name=f"generate-{self.id}",
            common_name=cn,
            cert_path=self.path(ctx),
            key_path=self.key_path(ctx),
            ca_cert_path=self.ca.path(ctx),
            ca_key_path=self.ca.key_path(ctx),
            sans=self.sans,
            validity_days=self.validity_days,
            organization=self.organization,
        )

    def generate_node(self, ctx: "PlanContext", dependencies=()) -> Tuple[str, ExecutionNode]:
        return (
            f"generate-{self.id}",
            ExecutionNode(
                name=f"Generate {'CA' if self.is_ca else 'certificate'} {self.cert_name}",
                step=self.generate_step(ctx),
                hosts=(ctx.control_host,),
                dependencies=dependencies,
            ),
        )
