# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterforge/resource/remote_binary.py

from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Tuple

from ..connector.errors import ConnectorError
from ..plan.graph import ExecutionFragment, ExecutionNode
from ..step.command import CommandStep
from ..step.files import DownloadFileStep, ExtractArchiveStep, InstallBinaryStep
from ..utils.shell import q
from .errors import MissingParameterError, ResourceError
from .interface import Handle, ResourceIdentity

if TYPE_CHECKING:
    from ..runtime.context import PlanContext

log = logging.getLogger("clusterforge")

ARCHIVE_EXTENSIONS = (".tar.gz", ".tgz", ".tar", ".zip")


def strip_archive_ext(filename: str) -> str:
    lower = filename.lower()
    for ext in ARCHIVE_EXTENSIONS:
        if lower.endswith(ext):
            return filename[: -len(ext)]
    return filename


@dataclass(frozen=True)
class RemoteBinaryHandle(Handle):
    """
    A binary fetched over HTTP onto the control node, either directly or
    out of a release archive.

    Build instances with for_component(); the constructor expects fully
    resolved values.
    """
    identity: ResourceIdentity
    url: str
    filename: str
    is_archive: bool
    binary_path_in_archive: str = ""
    checksum: str = ""
    checksum_type: str = "sha256"
    # every catalog binary inside the archive; extraction is complete once all exist
    archive_members: Tuple[str, ...] = ()

    @classmethod
    def for_component(
        cls,
        ctx: "PlanContext",
        component: str,
        version: str,
        *,
        arch: str = "",
        os_name: str = "",
        binary_key: Optional[str] = None,
        checksum: str = "",
        checksum_type: str = "sha256",
    ) -> "RemoteBinaryHandle":
        if not component:
            raise MissingParameterError("component name is required")
        if not version:
            raise MissingParameterError(f"[{component}] version is required")

        arch = ctx.resolve_arch(arch)
        resolved = ctx.catalog.resolve(component, version, arch, os_name, zone=ctx.zone)

        member = ""
        if binary_key:
            if not resolved.is_archive:
                raise ResourceError(
                    f"[{component}] binary key '{binary_key}' requested but {resolved.filename} is not an archive"
                )
            member = resolved.binaries.get(binary_key, "")
            if not member:
                raise ResourceError(f"[{component}] archive {resolved.filename} has no binary '{binary_key}'")

        return cls(
            identity=ResourceIdentity(
                component=resolved.component,
                version=version,
                arch=arch,
                os=resolved.os,
                binary_key=binary_key or None,
            ),
            url=resolved.url,
            filename=resolved.filename,
            is_archive=resolved.is_archive,
            binary_path_in_archive=member,
            checksum=checksum.lower(),
            checksum_type=checksum_type,
            archive_members=tuple(sorted(resolved.binaries.values())) if resolved.is_archive else (),
        )

    # ------------------ identity & paths ------------------

    @property
    def id(self) -> str:
        kind = "archive" if self.is_archive else "binary"
        return f"{kind}-{self.identity.slug()}"

    @property
    def download_id(self) -> str:
        i = self.identity
        kind = "archive" if self.is_archive else "binary"
        return f"{kind}-{ResourceIdentity(i.component, i.version, i.arch, i.os).slug()}"

    def download_path(self, ctx: "PlanContext") -> Path:
        i = self.identity
        return ctx.file_download_path(i.component, i.version, i.arch, self.filename)

    def extraction_dir(self, ctx: "PlanContext") -> Path:
        return self.download_path(ctx).parent / f"extracted_{strip_archive_ext(self.filename)}"

    def path(self, ctx: "PlanContext") -> str:
        if self.is_archive and self.binary_path_in_archive:
            return str(self.extraction_dir(ctx) / posixpath.basename(self.binary_path_in_archive))
        return str(self.download_path(ctx))

    # ------------------ planning ------------------

    def _satisfied(self, ctx: "PlanContext") -> bool:
        conn = ctx.connector(ctx.control_host)
        final = self.path(ctx)
        tag = self.identity.component

        try:
            if not ctx.runner.exists(conn, final):
                return False
            if not self.checksum:
                return True

            verify = str(self.download_path(ctx))
            if verify != final and not ctx.runner.exists(conn, verify):
                # archive cleaned up after extraction; nothing left to verify against
                return True
            actual = ctx.runner.sha256(conn, verify)
        except (OSError, ConnectorError) as e:
            raise ResourceError(f"[{tag}] unable to inspect {final}: {e}") from e

        if actual != self.checksum:
            log.warning("[%s] %s checksum mismatch (expected %s, got %s)", tag, verify, self.checksum, actual)
            return False
        return True

    def ensure_plan(self, ctx: "PlanContext") -> ExecutionFragment:
        i = self.identity
        tag = i.component
        if not i.arch:
            raise MissingParameterError(f"[{tag}] handle built without a resolved architecture")

        final = self.path(ctx)
        fragment = ExecutionFragment(name=f"ensure-{self.id}")

        if self._satisfied(ctx):
            log.info("[%s] %s already present at %s", tag, i.binary_key or self.filename, final)
            return fragment

        log.info("[%s] %s %s (%s) not present, planning acquisition", tag, i.binary_key or self.filename, i.version, i.arch)
        hosts = (ctx.control_host,)
        archive = str(self.download_path(ctx))

        download_id = fragment.add_node(
            f"download-{self.download_id}",
            ExecutionNode(
                name=f"Download {self.filename}",
                step=DownloadFileStep(
                    name=f"download-{self.download_id}",
                    url=self.url,
                    dest_path=archive,
                    checksum=self.checksum,
                    checksum_type=self.checksum_type,
                ),
                hosts=hosts,
            ),
        )

        if self.is_archive and not self.binary_path_in_archive:
            # the archive itself is the artifact
            return fragment

        if self.is_archive:
            extract_dir = str(self.extraction_dir(ctx))
            extract_id = fragment.add_node(
                f"extract-{self.download_id}",
                ExecutionNode(
                    name=f"Extract {self.filename}",
                    step=ExtractArchiveStep(
                        name=f"extract-{self.download_id}",
                        archive_path=archive,
                        dest_dir=extract_dir,
                        expected_files=self.archive_members,
                    ),
                    hosts=hosts,
                    dependencies=[download_id],
                ),
            )
            fragment.add_node(
                f"finalize-{self.id}",
                ExecutionNode(
                    name=f"Finalize {i.binary_key} {i.version}",
                    step=InstallBinaryStep(
                        name=f"finalize-{self.id}",
                        source_path=posixpath.join(extract_dir, self.binary_path_in_archive),
                        dest_path=final,
                    ),
                    hosts=hosts,
                    dependencies=[extract_id],
                ),
            )
        else:
            fragment.add_node(
                f"finalize-{self.id}",
                ExecutionNode(
                    name=f"Make {self.filename} executable",
                    step=CommandStep(
                        name=f"finalize-{self.id}",
                        cmd=f"chmod +x {q(final)}",
                        check_cmd=f"test -x {q(final)}",
                    ),
                    hosts=hosts,
                    dependencies=[download_id],
                ),
            )

        fragment.validate()
        return fragment
