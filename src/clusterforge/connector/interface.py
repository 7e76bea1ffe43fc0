# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

from typing import Optional, Protocol, Tuple

from .models import Host


class Connector(Protocol):
    host: Host

    @property
    def is_local(self) -> bool: ...

    def exec(self, cmd: str, sudo: bool = False, timeout: Optional[float] = None) -> Tuple[int, str, str]: ...

    def put_file(self, local_path: str, remote_path: str) -> None: ...

    def put_text(self, content: str, remote_path: str) -> None: ...

    def close(self) -> None: ...
