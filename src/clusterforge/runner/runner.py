# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterforge/runner/runner.py

from __future__ import annotations

import hashlib
import itertools
import logging
import os
import posixpath
import tarfile
import zipfile
from pathlib import Path
from typing import Optional, Sequence

import requests

from ..connector.errors import CommandError, ConnectorError
from ..connector.interface import Connector
from ..connector.models import Facts
from ..utils.shell import q

log = logging.getLogger("clusterforge")

_counter = itertools.count()

ARCH_ALIASES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
}

SERVICE_ACTIONS = ("daemon-reload", "enable", "disable", "start", "stop", "restart", "reload")


def normalize_arch(arch: str) -> str:
    arch = (arch or "").strip().lower()
    return ARCH_ALIASES.get(arch, arch)


def _is_within(base: Path, target: Path) -> bool:
    try:
        target.resolve().relative_to(base.resolve())
        return True
    except ValueError:
        return False


class Runner:
    """
    Host primitives used by steps, expressed on top of a Connector.

    Every method takes the connector explicitly; the runner itself holds
    no per-host state and is shared by all steps of a run.
    """

    def __init__(self, download_timeout: float = 600.0, session: Optional[requests.Session] = None):
        self.download_timeout = download_timeout
        self._session = session or requests.Session()

    # ------------------ commands ------------------

    def run(self, conn: Connector, cmd: str, sudo: bool = False, timeout: Optional[float] = None) -> str:
        rc, out, err = conn.exec(cmd, sudo=sudo, timeout=timeout)
        if rc != 0:
            raise CommandError(cmd, rc, out, err, host=conn.host.name)
        return out

    def check(self, conn: Connector, cmd: str, sudo: bool = False) -> bool:
        rc, _, _ = conn.exec(cmd, sudo=sudo)
        return rc == 0

    # ------------------ filesystem ------------------

    def exists(self, conn: Connector, path: str, sudo: bool = False) -> bool:
        if conn.is_local and not sudo:
            return Path(path).exists()
        return self.check(conn, f"test -e {q(path)}", sudo=sudo)

    def sha256(self, conn: Connector, path: str, sudo: bool = False) -> str:
        if conn.is_local and not sudo:
            h = hashlib.sha256()
            with open(path, "rb") as f:
                for chunk in iter(lambda: f.read(1 << 20), b""):
                    h.update(chunk)
            return h.hexdigest()
        out = self.run(conn, f"sha256sum {q(path)}", sudo=sudo)
        return out.split()[0].strip().lower() if out.strip() else ""

    def mkdirp(self, conn: Connector, path: str, sudo: bool = False) -> None:
        if conn.is_local and not sudo:
            Path(path).mkdir(parents=True, exist_ok=True)
            return
        self.run(conn, f"mkdir -p {q(path)}", sudo=sudo)

    def remove(self, conn: Connector, path: str, recursive: bool = False, sudo: bool = False) -> None:
        flag = "-rf" if recursive else "-f"
        self.run(conn, f"rm {flag} {q(path)}", sudo=sudo)

    def write_file(self, conn: Connector, content: str, remote_path: str, mode: str = "0644", sudo: bool = False) -> None:
        """
        Write content to a temp path then install it to its final destination,
        so root-owned targets work through sudo.
        """
        tmp = self._tmp_path(conn)
        conn.put_text(content, tmp)
        self.run(conn, f"install -D -m {mode} {q(tmp)} {q(remote_path)} ; rc=$? ; rm -f {q(tmp)} ; exit $rc", sudo=sudo)

    def upload(self, conn: Connector, local_path: str, remote_path: str, mode: str = "0644", sudo: bool = False) -> None:
        tmp = self._tmp_path(conn)
        conn.put_file(str(local_path), tmp)
        self.run(conn, f"install -D -m {mode} {q(tmp)} {q(remote_path)} ; rc=$? ; rm -f {q(tmp)} ; exit $rc", sudo=sudo)

    def read_text(self, conn: Connector, path: str, sudo: bool = False) -> str:
        if conn.is_local and not sudo:
            return Path(path).read_text()
        return self.run(conn, f"cat {q(path)}", sudo=sudo)

    def digest_files(self, conn: Connector, paths: Sequence[str], sudo: bool = False) -> str:
        """
        One sha256 over the concatenated contents of *paths*; fails if any is missing.
        """
        files = " ".join(q(p) for p in paths)
        out = self.run(conn, f"set -o pipefail; cat {files} | sha256sum", sudo=sudo)
        return out.split()[0].strip().lower() if out.strip() else ""

    def _tmp_path(self, conn: Connector) -> str:
        name = f".clusterforge_tmp_{os.getpid()}_{next(_counter)}"
        if conn.is_local:
            return str(Path("/tmp") / name)
        return posixpath.join("/tmp", name)

    # ------------------ artifacts ------------------

    def download(self, conn: Connector, url: str, dest: str, sudo: bool = False) -> None:
        if conn.is_local and not sudo:
            self._download_local(url, dest)
            return
        dest_dir = posixpath.dirname(dest)
        self.run(
            conn,
            f"mkdir -p {q(dest_dir)} && curl -fsSL --retry 3 -o {q(dest + '.part')} {q(url)} && mv -f {q(dest + '.part')} {q(dest)}",
            sudo=sudo,
            timeout=self.download_timeout,
        )

    def _download_local(self, url: str, dest: str) -> None:
        target = Path(dest)
        target.parent.mkdir(parents=True, exist_ok=True)
        part = target.with_name(target.name + ".part")
        log.debug("[download] GET %s -> %s", url, target)
        try:
            with self._session.get(url, stream=True, timeout=self.download_timeout) as resp:
                resp.raise_for_status()
                with part.open("wb") as f:
                    for chunk in resp.iter_content(chunk_size=1 << 20):
                        if chunk:
                            f.write(chunk)
        except requests.RequestException as e:
            part.unlink(missing_ok=True)
            raise ConnectorError(f"download of {url} failed: {e}") from e
        os.replace(part, target)

    def extract(self, conn: Connector, archive: str, dest_dir: str, sudo: bool = False) -> None:
        if conn.is_local and not sudo:
            self._extract_local(Path(archive), Path(dest_dir))
            return
        if archive.endswith(".zip"):
            cmd = f"mkdir -p {q(dest_dir)} && unzip -o -q {q(archive)} -d {q(dest_dir)}"
        else:
            cmd = f"mkdir -p {q(dest_dir)} && tar -xf {q(archive)} -C {q(dest_dir)}"
        self.run(conn, cmd, sudo=sudo)

    def _extract_local(self, archive: Path, dest_dir: Path) -> None:
        dest_dir.mkdir(parents=True, exist_ok=True)
        name = archive.name.lower()
        if name.endswith(".zip"):
            with zipfile.ZipFile(archive) as zf:
                for member in zf.namelist():
                    if not _is_within(dest_dir, dest_dir / member):
                        raise ConnectorError(f"archive entry {member!r} escapes {dest_dir}")
                zf.extractall(dest_dir)
            return
        if not (name.endswith(".tar.gz") or name.endswith(".tgz") or name.endswith(".tar")):
            raise ConnectorError(f"unsupported archive format: {archive}")
        with tarfile.open(archive, "r:*") as tf:
            for member in tf.getmembers():
                if not _is_within(dest_dir, dest_dir / member.name):
                    raise ConnectorError(f"archive entry {member.name!r} escapes {dest_dir}")
            tf.extractall(dest_dir)

    # ------------------ services ------------------

    def service(self, conn: Connector, name: str, action: str) -> None:
        if action not in SERVICE_ACTIONS:
            raise ValueError(f"unsupported service action: {action}")
        if action == "daemon-reload":
            self.run(conn, "systemctl daemon-reload", sudo=True)
        else:
            self.run(conn, f"systemctl {action} {q(name)}", sudo=True)

    def service_active(self, conn: Connector, name: str) -> bool:
        return self.check(conn, f"systemctl is-active --quiet {q(name)}")

    def service_enabled(self, conn: Connector, name: str) -> bool:
        return self.check(conn, f"systemctl is-enabled --quiet {q(name)}")

    # ------------------ facts ------------------

    def gather_facts(self, conn: Connector) -> Facts:
        out = self.run(conn, "uname -m && uname -s && hostname")
        lines = [ln.strip() for ln in out.splitlines() if ln.strip()]
        if len(lines) < 2:
            raise ConnectorError(f"[{conn.host.name}] unexpected facts output: {out!r}")
        return Facts(
            arch=normalize_arch(lines[0]),
            os=lines[1].lower(),
            hostname=lines[2] if len(lines) > 2 else "",
        )
