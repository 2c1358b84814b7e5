"""External tool lookup.

Every tool forge runs can be pinned to an exact binary with a ``<TOOL>_BIN``
environment variable (``SKOPEO_BIN=/opt/skopeo/bin/skopeo``); otherwise the
bare name is resolved through PATH when the process is spawned.
"""

from __future__ import annotations

import os

__all__ = ["tool_path"]


def tool_path(name: str) -> str:
    override = os.environ.get(f"{name.upper().replace('-', '_')}_BIN", "").strip()
    return override or name
