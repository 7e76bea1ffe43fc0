# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterforge/connector/errors.py

from __future__ import annotations


class ConnectorError(RuntimeError):
    """Raised when a host cannot be reached or a transfer fails."""


class CommandError(ConnectorError):
    """Raised when a command exits non-zero."""

    def __init__(self, cmd: str, exit_code: int, stdout: str = "", stderr: str = "", host: str = ""):
        self.cmd = cmd
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr
        self.host = host
        where = f" on {host}" if host else ""
        detail = (stderr or stdout).strip()
        super().__init__(f"command failed{where} (rc={exit_code}): {cmd}" + (f"\n{detail}" if detail else ""))
