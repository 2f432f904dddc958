"""Filesystem locations used by the application."""
from __future__ import annotations

import os
from pathlib import Path

from nvidia_installer.constants import IMMUTABLE_CONFIG


def get_application_directory() -> Path:
    override = os.getenv("NVIDIA_INSTALLER_HOME", "").strip()
    if override:
        path = Path(override).expanduser()
    else:
        config_home = os.getenv("XDG_CONFIG_HOME", "").strip()
        base = Path(config_home).expanduser() if config_home else Path.home() / ".config"
        path = base / IMMUTABLE_CONFIG.application_name
    path.mkdir(parents=True, exist_ok=True)
    return path
