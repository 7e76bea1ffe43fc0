# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterforge/config/loader.py

import logging
import os
from pathlib import Path

import yaml

from .models import ClusterSpec

log = logging.getLogger("clusterforge")


def _deep_merge(base: dict, override: dict) -> dict:
    """
    Recursively merge *override* into *base* (mutates base).
    Only overwrites when the override value is non-empty.
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            _deep_merge(base[key], value)
        else:
            if value not in (None, ""):
                base[key] = value
    return base


def _find_secrets_file(config_path: Path) -> Path | None:
    """
    Locate secrets.yaml:

    1. CLUSTERFORGE_SECRETS_FILE environment variable
    2. secrets.yaml in the same directory as the cluster config
    """
    env = os.environ.get("CLUSTERFORGE_SECRETS_FILE")
    if env:
        p = Path(env)
        if p.is_file():
            return p
        log.warning("CLUSTERFORGE_SECRETS_FILE=%s does not exist, skipping", env)
        return None

    p = config_path.parent / "secrets.yaml"
    if p.is_file() and p.resolve() != config_path.resolve():
        return p

    return None


def _load_yaml(path: Path) -> dict:
    """Load a YAML file, expanding ${ENV_VAR} references."""
    raw = path.read_text()
    expanded = os.path.expandvars(raw)
    return yaml.safe_load(expanded) or {}


def load_config(path: str | Path) -> ClusterSpec:
    """
    Load and validate a cluster description.

    Host passwords and other secrets can live in a separate secrets.yaml
    whose structure mirrors the cluster file; it is deep-merged before
    validation. Lists are replaced, not merged, so a secrets file that
    sets ``hosts`` must carry the full list.
    """
    path = Path(path)
    data = _load_yaml(path)

    secrets_path = _find_secrets_file(path)
    if secrets_path:
        log.debug("Merging secrets from %s", secrets_path)
        _deep_merge(data, _load_yaml(secrets_path))
    else:
        log.debug("No secrets.yaml found, proceeding without secrets merge")

    return ClusterSpec.model_validate(data)
