# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations


def q(s: str) -> str:
    """
    Quote for bash -lc.
    """
    return "'" + str(s).replace("'", "'\"'\"'") + "'"


def version_pattern(version: str) -> str:
    """
    Extended regex matching *version* as a whole word, with or without a
    leading "v": 1.7.2 matches "v1.7.2" but not "1.7.20".
    """
    bare = version[1:] if version.startswith("v") else version
    escaped = bare.replace(".", r"\.").replace("+", r"\+")
    return rf"(^|[ :])v?{escaped}([ ,]|$)"
