# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterforge/utils/templating.py

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping

from jinja2 import Environment, StrictUndefined, TemplateError

from ..resource.errors import TemplateRenderError

TEMPLATES_DIR = Path(__file__).resolve().parents[1] / "task" / "templates"

_env = Environment(
    undefined=StrictUndefined,
    autoescape=False,
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=True,
)


def render_string(template: str, context: Mapping[str, Any]) -> str:
    try:
        return _env.from_string(template).render(**context)
    except TemplateError as e:
        raise TemplateRenderError(f"failed to render template {template!r}: {e}") from e


def load_template(name: str) -> str:
    """
    Read a bundled template (task/templates/<name>) as text.
    """
    return (TEMPLATES_DIR / name).read_text()
