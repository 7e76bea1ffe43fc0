# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterforge/step/files.py

from __future__ import annotations

import hashlib
import logging
import posixpath
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Tuple

from ..connector.models import Host
from ..runtime.context import StepContext
from ..utils.shell import q
from ..utils.templating import render_string
from .errors import ChecksumMismatchError, StepError
from .interface import Step

log = logging.getLogger("clusterforge")

SUPPORTED_CHECKSUMS = ("sha256",)


def _check_algorithm(checksum_type: str) -> None:
    if checksum_type.lower() not in SUPPORTED_CHECKSUMS:
        raise StepError(f"unsupported checksum type: {checksum_type}")


def local_sha256(path: str) -> str:
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(1 << 20), b""):
            h.update(chunk)
    return h.hexdigest()


@dataclass(frozen=True)
class DownloadFileStep(Step):
    """
    Fetch url into dest_path, verifying the sha256 digest when one is given.
    """
    name: str
    url: str
    dest_path: str
    checksum: str = ""
    checksum_type: str = "sha256"
    sudo: bool = False

    def precheck(self, ctx: StepContext, host: Host) -> bool:
        conn = ctx.connector(host)
        if not ctx.runner.exists(conn, self.dest_path, sudo=self.sudo):
            return False
        if not self.checksum:
            log.debug("[%s] %s present, no checksum to verify", self.name, self.dest_path)
            return True
        _check_algorithm(self.checksum_type)
        actual = ctx.runner.sha256(conn, self.dest_path, sudo=self.sudo)
        if actual != self.checksum.lower():
            log.warning(
                "[%s] %s present but checksum differs (expected %s, got %s); will re-download",
                self.name, self.dest_path, self.checksum, actual,
            )
            return False
        return True

    def run(self, ctx: StepContext, host: Host) -> None:
        if self.checksum:
            _check_algorithm(self.checksum_type)
        conn = ctx.connector(host)
        ctx.runner.mkdirp(conn, posixpath.dirname(self.dest_path), sudo=self.sudo)
        log.info("[%s] downloading %s -> %s", self.name, self.url, self.dest_path)
        ctx.runner.download(conn, self.url, self.dest_path, sudo=self.sudo)

        if self.checksum:
            actual = ctx.runner.sha256(conn, self.dest_path, sudo=self.sudo)
            if actual != self.checksum.lower():
                ctx.runner.remove(conn, self.dest_path, sudo=self.sudo)
                raise ChecksumMismatchError(self.dest_path, self.checksum.lower(), actual)

    def rollback(self, ctx: StepContext, host: Host) -> None:
        ctx.runner.remove(ctx.connector(host), self.dest_path, sudo=self.sudo)


@dataclass(frozen=True)
class ExtractArchiveStep(Step):
    """
    Unpack archive_path into dest_dir.

    A successful extraction records the archive digest in <dest_dir>.sha256.
    The step is satisfied only when every expected file is present and the
    recorded digest matches the archive currently on disk, so a replaced
    archive is always extracted again into a clean directory.
    """
    name: str
    archive_path: str
    dest_dir: str
    expected_files: Tuple[str, ...] = ()
    sudo: bool = False

    @property
    def stamp_path(self) -> str:
        return self.dest_dir.rstrip("/") + ".sha256"

    def precheck(self, ctx: StepContext, host: Host) -> bool:
        if not self.expected_files:
            return False
        conn = ctx.connector(host)
        for path in (self.archive_path, self.stamp_path):
            if not ctx.runner.exists(conn, path, sudo=self.sudo):
                return False
        if not all(
            ctx.runner.exists(conn, posixpath.join(self.dest_dir, rel), sudo=self.sudo)
            for rel in self.expected_files
        ):
            return False
        recorded = ctx.runner.read_text(conn, self.stamp_path, sudo=self.sudo).strip()
        current = ctx.runner.sha256(conn, self.archive_path, sudo=self.sudo)
        if recorded != current:
            log.info("[%s] %s changed since last extraction; extracting again", self.name, self.archive_path)
            return False
        return True

    def run(self, ctx: StepContext, host: Host) -> None:
        conn = ctx.connector(host)
        log.info("[%s] extracting %s -> %s", self.name, self.archive_path, self.dest_dir)
        ctx.runner.remove(conn, self.stamp_path, sudo=self.sudo)
        ctx.runner.remove(conn, self.dest_dir, recursive=True, sudo=self.sudo)
        ctx.runner.extract(conn, self.archive_path, self.dest_dir, sudo=self.sudo)
        digest = ctx.runner.sha256(conn, self.archive_path, sudo=self.sudo)
        ctx.runner.write_file(conn, digest + "\n", self.stamp_path, sudo=self.sudo)

    def rollback(self, ctx: StepContext, host: Host) -> None:
        conn = ctx.connector(host)
        ctx.runner.remove(conn, self.stamp_path, sudo=self.sudo)
        ctx.runner.remove(conn, self.dest_dir, recursive=True, sudo=self.sudo)


@dataclass(frozen=True)
class InstallBinaryStep(Step):
    """
    Copy source_path to dest_path and mark it executable.
    """
    name: str
    source_path: str
    dest_path: str
    mode: str = "0755"
    sudo: bool = False

    def precheck(self, ctx: StepContext, host: Host) -> bool:
        conn = ctx.connector(host)
        if not ctx.runner.check(conn, f"test -x {q(self.dest_path)}", sudo=self.sudo):
            return False
        if not ctx.runner.exists(conn, self.source_path, sudo=self.sudo):
            return True
        src = ctx.runner.sha256(conn, self.source_path, sudo=self.sudo)
        dst = ctx.runner.sha256(conn, self.dest_path, sudo=self.sudo)
        return src == dst

    def run(self, ctx: StepContext, host: Host) -> None:
        dest_dir = posixpath.dirname(self.dest_path)
        if posixpath.normpath(self.source_path) == posixpath.normpath(self.dest_path):
            cmd = f"chmod {self.mode} {q(self.dest_path)}"
        else:
            cmd = (
                f"mkdir -p {q(dest_dir)} && cp -f {q(self.source_path)} {q(self.dest_path)}"
                f" && chmod {self.mode} {q(self.dest_path)}"
            )
        ctx.runner.run(ctx.connector(host), cmd, sudo=self.sudo)

    def rollback(self, ctx: StepContext, host: Host) -> None:
        ctx.runner.remove(ctx.connector(host), self.dest_path, sudo=self.sudo)


@dataclass(frozen=True)
class UploadFileStep(Step):
    """
    Copy a control-node file to remote_path on the target host.
    """
    name: str
    local_path: str
    remote_path: str
    mode: str = "0644"
    sudo: bool = True

    def precheck(self, ctx: StepContext, host: Host) -> bool:
        conn = ctx.connector(host)
        if not ctx.runner.exists(conn, self.remote_path, sudo=self.sudo):
            return False
        if not Path(self.local_path).exists():
            return False
        remote = ctx.runner.sha256(conn, self.remote_path, sudo=self.sudo)
        return remote == local_sha256(self.local_path)

    def run(self, ctx: StepContext, host: Host) -> None:
        if not Path(self.local_path).exists():
            raise StepError(f"[{self.name}] local artifact {self.local_path} does not exist")
        log.info("[%s] uploading %s -> %s:%s", self.name, self.local_path, host.name, self.remote_path)
        ctx.runner.upload(ctx.connector(host), self.local_path, self.remote_path, mode=self.mode, sudo=self.sudo)

    def rollback(self, ctx: StepContext, host: Host) -> None:
        ctx.runner.remove(ctx.connector(host), self.remote_path, sudo=self.sudo)


@dataclass(frozen=True)
class RenderTemplateStep(Step):
    """
    Render a jinja2 template and write it to dest_path on the host.

    The template is rendered when the step is built, so a bad template or
    a missing variable fails planning rather than execution. Satisfied when
    the file on the host already has the rendered content.
    """
    name: str
    template: str
    dest_path: str
    context: Mapping[str, Any] = field(default_factory=dict)
    mode: str = "0644"
    sudo: bool = True
    content: str = field(init=False, default="")

    def __post_init__(self):
        object.__setattr__(self, "content", render_string(self.template, self.context))

    def precheck(self, ctx: StepContext, host: Host) -> bool:
        conn = ctx.connector(host)
        if not ctx.runner.exists(conn, self.dest_path, sudo=self.sudo):
            return False
        want = hashlib.sha256(self.content.encode("utf-8")).hexdigest()
        return ctx.runner.sha256(conn, self.dest_path, sudo=self.sudo) == want

    def run(self, ctx: StepContext, host: Host) -> None:
        log.info("[%s] writing %s on %s", self.name, self.dest_path, host.name)
        ctx.runner.write_file(ctx.connector(host), self.content, self.dest_path, mode=self.mode, sudo=self.sudo)

    def rollback(self, ctx: StepContext, host: Host) -> None:
        ctx.runner.remove(ctx.connector(host), self.dest_path, sudo=self.sudo)
