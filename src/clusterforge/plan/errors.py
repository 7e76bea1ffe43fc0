# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterforge/plan/errors.py

from __future__ import annotations


class PlanError(ValueError):
    """Raised when an execution fragment cannot be built or combined."""


class DuplicateNodeError(PlanError):
    pass


class UnknownDependencyError(PlanError):
    pass


class CyclicDependencyError(PlanError):
    pass


class InvalidFragmentError(PlanError):
    pass
