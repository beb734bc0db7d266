"""
Default location of the local artifact tree.
"""

from __future__ import annotations

import os
from pathlib import Path


APP_IDENTIFIER = "com.ttb.signals"


def default_artifact_directory() -> str:
    """
    Directory the local source reads when TTB_LOCAL_ARTIFACT_DIR is unset.

    TTB_APP_DATA_DIR overrides the per-user data directory
    (XDG_DATA_HOME or ~/.local/share). Nothing is created here; a missing
    directory shows up as a "down" local source.
    """
    override = os.getenv("TTB_APP_DATA_DIR", "").strip()
    if override:
        base = Path(override)
    else:
        xdg_data_home = os.getenv("XDG_DATA_HOME", "").strip()
        data_home = Path(xdg_data_home) if xdg_data_home else Path.home() / ".local" / "share"
        base = data_home / APP_IDENTIFIER
    return str((base / "artifacts").expanduser().resolve())
