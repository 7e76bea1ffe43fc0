# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterforge/connector/local.py

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import Optional, Tuple

from .errors import ConnectorError
from .models import Host

log = logging.getLogger("clusterforge")


class LocalConnector:
    """
    Runs commands on the control node itself.
    """

    def __init__(self, host: Optional[Host] = None, cmd_timeout: float = 600.0):
        self.host = host or Host.control_node()
        self.cmd_timeout = cmd_timeout

    @property
    def is_local(self) -> bool:
        return True

    def exec(self, cmd: str, sudo: bool = False, timeout: Optional[float] = None) -> Tuple[int, str, str]:
        if sudo and os.geteuid() != 0:
            argv = ["sudo", "-n", "bash", "-lc", cmd]
        else:
            argv = ["bash", "-lc", cmd]

        log.debug("[local] $ %s", cmd)
        try:
            cp = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                timeout=timeout or self.cmd_timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise ConnectorError(f"[local] command timed out after {e.timeout}s: {cmd}") from e
        return cp.returncode, cp.stdout, cp.stderr

    def put_file(self, local_path: str, remote_path: str) -> None:
        dest = Path(remote_path)
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(local_path, dest)

    def put_text(self, content: str, remote_path: str) -> None:
        dest = Path(remote_path)
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_text(content)

    def close(self) -> None:
        pass

    def __repr__(self) -> str:
        return f"LocalConnector({self.host.name})"
