"""Top-level window: driver panel plus a log pane."""
from __future__ import annotations

from datetime import datetime

from PySide6.QtCore import QThreadPool
from PySide6.QtGui import QAction
from PySide6.QtWidgets import QLabel, QMainWindow, QPlainTextEdit, QVBoxLayout, QWidget

from nvidia_installer.user_settings import SettingsStore, UserSettings
from services.drivers import DriverService
from ui.drivers_panel import DriversPanel
from ui.settings_dialog import SettingsDialog
from ui.theme import apply_theme

WINDOW_TITLE = "CachyOS Nvidia Driver Manager"


class MainWindow(QMainWindow):
    def __init__(
        self,
        *,
        settings_store: SettingsStore | None = None,
        settings: UserSettings | None = None,
        service: DriverService | None = None,
    ) -> None:
        super().__init__()
        self._settings_store = settings_store or SettingsStore()
        self._settings = settings or self._settings_store.load()
        self._thread_pool = QThreadPool.globalInstance()
        self.setWindowTitle(WINDOW_TITLE)
        self.resize(640, 760)
        apply_theme(self._settings.dark_mode)

        central = QWidget(self)
        layout = QVBoxLayout(central)
        self._log_view = QPlainTextEdit()
        self._log_view.setReadOnly(True)
        self._log_view.setMaximumBlockCount(2000)
        self._log_view.setPlaceholderText("Command output and status messages appear here.")
        self._panel = DriversPanel(self._append_log, self._thread_pool, settings=self._settings, service=service)
        layout.addWidget(self._panel, stretch=3)
        layout.addWidget(QLabel("Log"))
        layout.addWidget(self._log_view, stretch=1)
        self.setCentralWidget(central)
        self._build_menu()

    def _build_menu(self) -> None:
        menu = self.menuBar().addMenu("&File")
        refresh = QAction("&Refresh", self)
        refresh.triggered.connect(self._panel.refresh)
        menu.addAction(refresh)
        preferences = QAction("&Preferences...", self)
        preferences.triggered.connect(self._open_settings)
        menu.addAction(preferences)
        toggle_dark = QAction("Toggle &Dark Mode", self)
        toggle_dark.triggered.connect(self._toggle_dark_mode)
        menu.addAction(toggle_dark)
        menu.addSeparator()
        quit_action = QAction("&Quit", self)
        quit_action.triggered.connect(self.close)
        menu.addAction(quit_action)

    def start(self) -> None:
        self._panel.refresh()

    def _append_log(self, message: str) -> None:
        stamp = datetime.now().strftime("%H:%M:%S")
        self._log_view.appendPlainText(f"[{stamp}] {message}")

    def _toggle_dark_mode(self) -> None:
        self._settings.dark_mode = not self._settings.dark_mode
        self._settings_store.save(self._settings)
        apply_theme(self._settings.dark_mode)

    def _open_settings(self) -> None:
        dialog = SettingsDialog(self._settings, self._settings_store, self)
        if dialog.exec():
            apply_theme(self._settings.dark_mode)
            self._panel.apply_settings(self._settings)
            self._append_log("Preferences saved.")
