"""User-editable preferences persisted as JSON."""
from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, fields
from pathlib import Path

from nvidia_installer.paths import get_application_directory

logger = logging.getLogger(__name__)

SETTINGS_FILE_NAME = "settings.json"


@dataclass
class UserSettings:
    dark_mode: bool = False
    disable_secondary_gpu: bool = False
    confirm_remove: bool = True


class SettingsStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        if self._path is None:
            self._path = get_application_directory() / SETTINGS_FILE_NAME
        return self._path

    def load(self) -> UserSettings:
        path = self.path
        if not path.exists():
            return UserSettings()
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable settings file %s: %s", path, exc)
            return UserSettings()
        if not isinstance(data, dict):
            return UserSettings()
        known = {f.name: f for f in fields(UserSettings)}
        values = {key: value for key, value in data.items() if key in known and isinstance(value, bool)}
        return UserSettings(**values)

    def save(self, settings: UserSettings) -> None:
        path = self.path
        path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = path.with_suffix(path.suffix + ".tmp")
        temp_path.write_text(json.dumps(asdict(settings), indent=2), encoding="utf-8")
        temp_path.replace(path)
