# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterforge/utils/retry.py

import functools
import logging
import time
from typing import Callable

log = logging.getLogger("clusterforge")


class RetryError(RuntimeError):
    def __init__(self, message: str, attempts: int):
        super().__init__(message)
        self.attempts = attempts


def backoff_delays(retries: int, delay: float, backoff: float = 1.0, max_delay: float = 30.0) -> list[float]:
    """Sleeps taken between *retries* attempts: delay, delay*backoff, ... capped at max_delay."""
    return [min(delay * backoff ** n, max_delay) for n in range(max(retries - 1, 0))]


def retry(
    *,
    retries: int,
    delay: float,
    backoff: float = 1.0,
    max_delay: float = 30.0,
    retry_on: tuple[type[Exception], ...] = (Exception,),
    on_retry: Callable[[int, Exception], None] | None = None,
):
    """
    Retry decorator for host operations that are safe to repeat (SSH
    connects, reachability checks).

    retries: total number of attempts
    delay: seconds before the second attempt
    backoff: multiplier applied to the delay after every failed attempt
    retry_on: exception types worth another attempt; anything else propagates
    on_retry: callback(attempt, exception); without one, failures are logged
    """
    pauses = backoff_delays(retries, delay, backoff, max_delay)

    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            last_exc = None
            for attempt in range(1, retries + 1):
                try:
                    return fn(*args, **kwargs)
                except retry_on as exc:
                    last_exc = exc
                    if on_retry:
                        on_retry(attempt, exc)
                    else:
                        log.debug("%s attempt %d/%d failed: %s", fn.__name__, attempt, retries, exc)
                    if attempt == retries:
                        break
                    time.sleep(pauses[attempt - 1])
            raise RetryError(f"{fn.__name__} failed after {retries} attempts", retries) from last_exc
        return wrapper
    return decorator
