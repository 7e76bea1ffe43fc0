# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterforge/connector/pool.py

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, Optional

from .interface import Connector
from .local import LocalConnector
from .models import Host
from .ssh import SSHConnector

log = logging.getLogger("clusterforge")


def default_factory(host: Host) -> Connector:
    if host.is_local:
        return LocalConnector(host)
    return SSHConnector(host)


class ConnectionPool:
    """
    One connector per host name, created on first request.
    """

    def __init__(self, factory: Optional[Callable[[Host], Connector]] = None):
        self._factory = factory or default_factory
        self._connectors: Dict[str, Connector] = {}
        self._lock = threading.Lock()

    def get(self, host: Host) -> Connector:
        with self._lock:
            conn = self._connectors.get(host.name)
            if conn is None:
                conn = self._factory(host)
                self._connectors[host.name] = conn
            return conn

    def close_all(self) -> None:
        with self._lock:
            connectors = list(self._connectors.items())
            self._connectors.clear()
        for name, conn in connectors:
            try:
                conn.close()
            except Exception as e:
                log.warning("[%s] error while closing connection: %s", name, e)

    def __enter__(self) -> "ConnectionPool":
        return self

    def __exit__(self, *exc) -> None:
        self.close_all()
