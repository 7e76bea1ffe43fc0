# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterforge/observers/interface.py

from __future__ import annotations

from typing import Iterable, Protocol, Tuple, Type

from .events import BaseEvent, NodeStarted

# one line per node start is noise on a terminal; the outcome events follow anyway
CONSOLE_QUIET: Tuple[Type[BaseEvent], ...] = (NodeStarted,)


class Observer(Protocol):
    """Receives every planning and execution event of a run, in emission order."""

    def notify(self, event: BaseEvent) -> None: ...


class EventFilter:
    """
    Wraps an observer and withholds the given event types from it.
    """

    def __init__(self, inner: Observer, dropped: Iterable[Type[BaseEvent]] = CONSOLE_QUIET):
        self.inner = inner
        self.dropped = tuple(dropped)

    def notify(self, event: BaseEvent) -> None:
        if isinstance(event, self.dropped):
            return
        self.inner.notify(event)
