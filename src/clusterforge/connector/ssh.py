# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterforge/connector/ssh.py

from __future__ import annotations

import logging
import threading
from typing import Optional, Tuple

import paramiko

from ..utils.retry import RetryError, retry
from ..utils.shell import q
from .errors import ConnectorError
from .models import Host

log = logging.getLogger("clusterforge")


def _load_pkey(path: str) -> paramiko.PKey:
    for key_cls in (
        paramiko.RSAKey,
        paramiko.Ed25519Key,
        paramiko.ECDSAKey,
    ):
        try:
            return key_cls.from_private_key_file(path)
        except paramiko.SSHException:
            continue
    raise ConnectorError(f"unsupported private key format: {path}")


class SSHConnector:
    """
    Paramiko-backed connector for a remote host.

    The SSH session is opened lazily on first use and shared by every
    node that targets this host. SFTP transfers are serialised; command
    channels may run concurrently over the same transport.
    """

    def __init__(
        self,
        host: Host,
        *,
        connect_timeout: float = 20.0,
        cmd_timeout: float = 600.0,
        connect_retries: int = 3,
        retry_delay: float = 2.0,
    ):
        self.host = host
        self.connect_timeout = connect_timeout
        self.cmd_timeout = cmd_timeout
        self.connect_retries = connect_retries
        self.retry_delay = retry_delay
        self._client: Optional[paramiko.SSHClient] = None
        self._sftp: Optional[paramiko.SFTPClient] = None
        self._lock = threading.Lock()
        self._sftp_lock = threading.Lock()

    @property
    def is_local(self) -> bool:
        return False

    # ------------------ connection ------------------

    def _open(self) -> paramiko.SSHClient:
        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

        pkey = _load_pkey(self.host.private_key_path) if self.host.private_key_path else None

        client.connect(
            hostname=self.host.address,
            port=self.host.port,
            username=self.host.user,
            password=self.host.password if not pkey else None,
            pkey=pkey,
            timeout=self.connect_timeout,
            allow_agent=pkey is None,
            look_for_keys=pkey is None,
        )
        return client

    def connect(self) -> paramiko.SSHClient:
        with self._lock:
            if self._client is not None:
                return self._client

            def _log_retry(attempt: int, exc: Exception) -> None:
                log.warning(
                    "[%s] SSH connect attempt %d/%d failed: %s",
                    self.host.name, attempt, self.connect_retries, exc,
                )

            opener = retry(
                retries=self.connect_retries,
                delay=self.retry_delay,
                backoff=2.0,
                retry_on=(paramiko.SSHException, OSError),
                on_retry=_log_retry,
            )(self._open)

            try:
                self._client = opener()
            except RetryError as e:
                raise ConnectorError(
                    f"[{self.host.name}] unable to connect to {self.host.address}:{self.host.port}"
                ) from e

            log.debug("[%s] connected to %s@%s", self.host.name, self.host.user, self.host.address)
            return self._client

    def _sftp_client(self) -> paramiko.SFTPClient:
        if self._sftp is None:
            self._sftp = self.connect().open_sftp()
        return self._sftp

    def close(self) -> None:
        with self._lock:
            try:
                if self._sftp is not None:
                    self._sftp.close()
            finally:
                self._sftp = None
                if self._client is not None:
                    self._client.close()
                self._client = None

    # ------------------ primitives ------------------

    def exec(self, cmd: str, sudo: bool = False, timeout: Optional[float] = None) -> Tuple[int, str, str]:
        """
        Run a shell command. With sudo=True the host password, if any,
        is fed to sudo -S.
        """
        client = self.connect()
        if sudo:
            wrapped = f"sudo -S -p '' bash -lc {q(cmd)}"
        else:
            wrapped = f"bash -lc {q(cmd)}"

        log.debug("[%s] $ %s", self.host.name, cmd)
        stdin, stdout, stderr = client.exec_command(wrapped, timeout=timeout or self.cmd_timeout)
        if sudo and self.host.password:
            stdin.write(self.host.password + "\n")
        stdin.flush()
        out = stdout.read().decode("utf-8", errors="replace")
        err = stderr.read().decode("utf-8", errors="replace")
        rc = stdout.channel.recv_exit_status()
        return rc, out, err

    def put_file(self, local_path: str, remote_path: str) -> None:
        with self._sftp_lock:
            try:
                self._sftp_client().put(local_path, remote_path)
            except (IOError, paramiko.SSHException) as e:
                raise ConnectorError(f"[{self.host.name}] upload {local_path} -> {remote_path} failed: {e}") from e

    def put_text(self, content: str, remote_path: str) -> None:
        with self._sftp_lock:
            try:
                with self._sftp_client().file(remote_path, "w") as f:
                    f.write(content)
            except (IOError, paramiko.SSHException) as e:
                raise ConnectorError(f"[{self.host.name}] write {remote_path} failed: {e}") from e

    def __repr__(self) -> str:
        return f"SSHConnector({self.host.user}@{self.host.address}:{self.host.port})"
