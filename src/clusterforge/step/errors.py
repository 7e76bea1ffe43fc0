# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations


class StepError(RuntimeError):
    """Raised when an operation cannot complete on a host."""


class ChecksumMismatchError(StepError):
    def __init__(self, path: str, expected: str, actual: str):
        self.path = path
        self.expected = expected
        self.actual = actual
        super().__init__(f"checksum mismatch for {path}: expected {expected}, got {actual}")
