# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations
import logging
from .events import BaseEvent, NodeFailed, RollbackResult


class LoggerObserver:
    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def notify(self, event: BaseEvent) -> None:
        d = event.dict()
        etype = event.__class__.__name__
        msg = ", ".join(f"{k}={v}" for k, v in d.items() if k not in ("ts",))
        level = logging.INFO
        if isinstance(event, NodeFailed):
            level = logging.ERROR
        elif isinstance(event, RollbackResult) and event.status != "ROLLED_BACK":
            level = logging.WARNING
        self.logger.log(level, "[EVENT] %s: %s", etype, msg)
