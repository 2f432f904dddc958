"""Preferences dialog."""
from __future__ import annotations

from PySide6.QtWidgets import (
    QCheckBox,
    QDialog,
    QDialogButtonBox,
    QFormLayout,
    QLabel,
    QVBoxLayout,
    QWidget,
)

from nvidia_installer.user_settings import SettingsStore, UserSettings


class SettingsDialog(QDialog):
    def __init__(self, settings: UserSettings, store: SettingsStore, parent: QWidget | None = None) -> None:
        super().__init__(parent)
        self._settings = settings
        self._store = store
        self.setWindowTitle("Preferences")
        self.setMinimumWidth(420)
        self._build_ui()

    def _build_ui(self) -> None:
        layout = QVBoxLayout(self)
        form = QFormLayout()

        self._dark_mode = QCheckBox()
        self._dark_mode.setChecked(self._settings.dark_mode)
        form.addRow("Dark mode", self._dark_mode)

        self._disable_secondary = QCheckBox()
        self._disable_secondary.setChecked(self._settings.disable_secondary_gpu)
        form.addRow("Disable secondary GPU by default", self._disable_secondary)

        self._confirm_remove = QCheckBox()
        self._confirm_remove.setChecked(self._settings.confirm_remove)
        form.addRow("Ask before removing a driver", self._confirm_remove)

        layout.addLayout(form)

        hint = QLabel(f"Saved to {self._store.path}")
        hint.setWordWrap(True)
        layout.addWidget(hint)

        buttons = QDialogButtonBox(QDialogButtonBox.Save | QDialogButtonBox.Cancel)
        buttons.accepted.connect(self._save)
        buttons.rejected.connect(self.reject)
        layout.addWidget(buttons)

    def _save(self) -> None:
        self._settings.dark_mode = self._dark_mode.isChecked()
        self._settings.disable_secondary_gpu = self._disable_secondary.isChecked()
        self._settings.confirm_remove = self._confirm_remove.isChecked()
        self._store.save(self._settings)
        self.accept()
