# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterforge/resource/errors.py

from __future__ import annotations


class ResourceError(RuntimeError):
    """Raised when a resource handle cannot be built or planned."""


class MissingParameterError(ResourceError):
    pass


class TemplateRenderError(ResourceError):
    pass


class ArchResolutionError(ResourceError):
    pass


class UnknownComponentError(ResourceError):
    pass
