# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterforge/logging/log.py

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import NamedTuple

DEFAULT_LOG_DIR = Path.home() / ".clusterforge" / "logs"

# steps log from executor worker threads; the file keeps the thread so per-host lines can be told apart
FILE_FORMAT = "%(asctime)s | %(levelname)-7s | %(threadName)-24s | %(message)s"
CONSOLE_FORMAT = "%(levelname)-7s %(message)s"


class RunLog(NamedTuple):
    """Where one plan/apply invocation writes its trace and its event stream."""
    logger: logging.Logger
    run_id: str
    log_path: Path

    @property
    def events_path(self) -> Path:
        return self.log_path.with_name(f"{self.run_id}.jsonl")


def init_logging(
    *,
    base_dir: Path | None = None,
    name: str = "clusterforge",
    verbose: bool = False,
) -> RunLog:
    """
    Point the clusterforge logger at a fresh per-run file (full DEBUG trace,
    with timestamps and worker thread) and at the console (INFO, or DEBUG
    with verbose). Handlers from an earlier run in the same process are
    closed first.
    """
    run_id = str(uuid.uuid4())

    base_dir = Path(base_dir) if base_dir is not None else DEFAULT_LOG_DIR
    base_dir.mkdir(parents=True, exist_ok=True)

    ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    log_path = base_dir / f"{name}-{ts}-{run_id[:8]}.log"

    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)
    for h in list(logger.handlers):
        h.close()
    logger.handlers.clear()
    logger.propagate = False

    fh = logging.FileHandler(log_path)
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    ch = logging.StreamHandler()
    ch.setLevel(logging.DEBUG if verbose else logging.INFO)
    ch.setFormatter(logging.Formatter(CONSOLE_FORMAT))

    logger.addHandler(fh)
    logger.addHandler(ch)

    logger.debug("run_id=%s log_file=%s", run_id, log_path)
    return RunLog(logger, run_id, log_path)
