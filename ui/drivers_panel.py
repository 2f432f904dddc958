"""Driver list with GPU header, install and remove actions."""
from __future__ import annotations

from typing import Callable

from PySide6.QtCore import Qt, QThreadPool
from PySide6.QtGui import QColor
from PySide6.QtWidgets import (
    QAbstractItemView,
    QCheckBox,
    QHBoxLayout,
    QHeaderView,
    QLabel,
    QMessageBox,
    QPushButton,
    QTableWidget,
    QTableWidgetItem,
    QVBoxLayout,
    QWidget,
)

from nvidia_installer.constants import IMMUTABLE_CONFIG, LogicalDriver
from nvidia_installer.user_settings import UserSettings
from services.drivers import (
    DriverService,
    InstallRequest,
    InstalledDriver,
    MutationResult,
    RemoveRequest,
)
from services.gpu import GPU_ERROR_PREFIX, call_with_timeout
from ui.workers import ServiceWorker

LogCallback = Callable[[str], None]

COLUMNS = ["Driver", "Version", "Description", "Repo", "Status"]
VERSION_LOADING = "Loading..."
VERSION_UNKNOWN = "Unknown"
VERSION_NOT_FOUND = "Package Not Found"


class DriversPanel(QWidget):
    def __init__(
        self,
        log_callback: LogCallback,
        thread_pool: QThreadPool,
        *,
        settings: UserSettings,
        service: DriverService | None = None,
        gpu_timeout: float | None = None,
    ) -> None:
        super().__init__()
        self._log = log_callback
        self._thread_pool = thread_pool
        self._settings = settings
        self._service = service or DriverService()
        self._gpu_timeout = gpu_timeout if gpu_timeout is not None else IMMUTABLE_CONFIG.gpu_detection_timeout
        self._drivers: list[LogicalDriver] = list(self._service.catalog)
        self._installed: list[InstalledDriver] = []
        self._versions: dict[str, str] = {}
        self._versions_loaded = False
        self._workers: set[ServiceWorker] = set()
        self._busy = False
        self._can_elevate = self._service.can_elevate()
        self._build_ui()
        if not self._can_elevate:
            self._log("[WARN] pkexec was not found; install and remove are disabled.")

    def _track_worker(self, worker: ServiceWorker) -> None:
        self._workers.add(worker)
        worker.signals.finished.connect(lambda *_: self._workers.discard(worker))
        worker.signals.error.connect(lambda *_: self._workers.discard(worker))

    def _start_worker(self, fn: Callable, on_finished: Callable, on_error: Callable[[str], None], *args: object) -> None:
        worker = ServiceWorker(fn, *args)
        worker.signals.finished.connect(on_finished)
        worker.signals.error.connect(on_error)
        self._track_worker(worker)
        self._thread_pool.start(worker)

    def _build_ui(self) -> None:
        layout = QVBoxLayout(self)

        header = QVBoxLayout()
        self._gpu_label = QLabel("Searching...")
        self._gpu_label.setAlignment(Qt.AlignCenter)
        self._gpu_label.setStyleSheet("font-size: 18px; font-weight: 700;")
        self._kernel_label = QLabel("Kernel: ...")
        self._kernel_label.setAlignment(Qt.AlignCenter)
        header.addWidget(self._gpu_label)
        header.addWidget(self._kernel_label)
        layout.addLayout(header)

        self._table = QTableWidget(len(self._drivers), len(COLUMNS), self)
        self._table.setHorizontalHeaderLabels(COLUMNS)
        self._table.setEditTriggers(QAbstractItemView.NoEditTriggers)
        self._table.setSelectionBehavior(QAbstractItemView.SelectRows)
        self._table.setSelectionMode(QAbstractItemView.SingleSelection)
        self._table.setAlternatingRowColors(True)
        self._table.verticalHeader().setVisible(False)
        header_view = self._table.horizontalHeader()
        header_view.setStretchLastSection(True)
        header_view.setSectionResizeMode(0, QHeaderView.ResizeMode.ResizeToContents)
        header_view.setSectionResizeMode(1, QHeaderView.ResizeMode.ResizeToContents)
        header_view.setSectionResizeMode(2, QHeaderView.ResizeMode.Stretch)
        header_view.setSectionResizeMode(3, QHeaderView.ResizeMode.ResizeToContents)
        header_view.setSectionResizeMode(4, QHeaderView.ResizeMode.ResizeToContents)
        layout.addWidget(self._table)

        self._disable_secondary = QCheckBox("Disable Secondary GPU")
        self._disable_secondary.setChecked(self._settings.disable_secondary_gpu)
        layout.addWidget(self._disable_secondary)

        button_row = QHBoxLayout()
        self._btn_refresh = QPushButton("Refresh")
        self._btn_remove = QPushButton("Remove")
        self._btn_install = QPushButton("Install / Apply")
        for btn in (self._btn_refresh, self._btn_remove, self._btn_install):
            btn.setMinimumWidth(130)
        self._btn_remove.setStyleSheet("QPushButton { background-color: #dc2626; color: white; font-weight: 600; }")
        self._btn_install.setStyleSheet("QPushButton { background-color: #0891b2; color: white; font-weight: 600; }")
        button_row.addWidget(self._btn_refresh)
        button_row.addStretch()
        button_row.addWidget(self._btn_remove)
        button_row.addWidget(self._btn_install)
        layout.addLayout(button_row)

        self._btn_refresh.clicked.connect(self.refresh)
        self._btn_remove.clicked.connect(self._start_remove)
        self._btn_install.clicked.connect(self._start_install)

        self._populate_table()
        self._set_buttons_enabled(True)

    def apply_settings(self, settings: UserSettings) -> None:
        self._settings = settings
        self._disable_secondary.setChecked(settings.disable_secondary_gpu)

    def refresh(self) -> None:
        if self._busy:
            return
        self._log("Checking system...")
        self._gpu_label.setText("Searching...")
        self._start_worker(self._detect_gpu, self._handle_gpu, self._handle_gpu_error)
        self._start_worker(self._service.kernel_release, self._handle_kernel, self._handle_error)
        self._refresh_installed()
        self._versions_loaded = False
        self._populate_table()
        self._start_worker(self._service.available_versions, self._handle_versions, self._handle_error)

    def _detect_gpu(self) -> str:
        return call_with_timeout(self._service.detect_gpu, self._gpu_timeout)

    def _handle_gpu(self, name: str) -> None:
        self._gpu_label.setText(name)
        if name.startswith(GPU_ERROR_PREFIX):
            self._log(f"[ERROR] {name}")
        else:
            self._log(f"GPU: {name}")

    def _handle_gpu_error(self, message: str) -> None:
        self._gpu_label.setText(f"Error: {message}")
        self._log(f"[ERROR] {message}")

    def _handle_kernel(self, release: str) -> None:
        self._kernel_label.setText(f"Kernel: {release}")

    def _refresh_installed(self) -> None:
        self._start_worker(self._service.installed_drivers, self._handle_installed, self._handle_error)

    def _handle_installed(self, installed: list[InstalledDriver]) -> None:
        self._installed = list(installed)
        current = self._current_driver_id()
        if current:
            self._log(f"Installed driver: {current}")
            self._select_driver(current)
        else:
            self._log("No NVIDIA driver from the catalog is installed.")
        self._populate_table()
        self._set_buttons_enabled(not self._busy)

    def _handle_versions(self, versions: dict[str, str]) -> None:
        self._versions = dict(versions)
        self._versions_loaded = True
        missing = [driver.id for driver in self._drivers if driver.id not in self._versions]
        if missing:
            self._log(f"[WARN] Not found in repositories: {', '.join(missing)}")
        self._populate_table()

    def _start_install(self) -> None:
        if self._busy:
            QMessageBox.information(self, "In Progress", "Wait for the current operation to finish.")
            return
        driver_id = self._selected_driver_id()
        if not driver_id:
            QMessageBox.information(self, "No Selection", "Select a driver to install.")
            return
        request = InstallRequest(driver_id, disable_secondary=self._disable_secondary.isChecked())
        self._begin_operation(f"Installing {driver_id}...")
        self._start_worker(self._service.install, self._handle_mutation, self._handle_mutation_error, request)

    def _start_remove(self) -> None:
        if self._busy:
            QMessageBox.information(self, "In Progress", "Wait for the current operation to finish.")
            return
        driver_id = self._current_driver_id()
        if not driver_id:
            QMessageBox.information(self, "Nothing Installed", "No installed driver to remove.")
            return
        if self._settings.confirm_remove:
            answer = QMessageBox.question(
                self,
                "Remove Driver",
                f"Are you sure you want to remove the currently installed driver ({driver_id})?",
            )
            if answer != QMessageBox.StandardButton.Yes:
                return
        self._begin_operation(f"Removing {driver_id}...")
        self._start_worker(self._service.remove, self._handle_mutation, self._handle_mutation_error, RemoveRequest(driver_id))

    def _begin_operation(self, message: str) -> None:
        self._busy = True
        self._set_buttons_enabled(False)
        self._btn_install.setText("Processing...")
        self._log(message)

    def _end_operation(self) -> None:
        self._busy = False
        self._btn_install.setText("Install / Apply")
        self._set_buttons_enabled(True)

    def _handle_mutation(self, result: MutationResult) -> None:
        self._log(f"[OK] {result.plan.command_line}")
        self._log(result.message)
        for followup in result.followups:
            status = "OK" if followup.success else "FAIL"
            self._log(f"[{status}] {followup.name} -> {followup.detail}")
        self._end_operation()
        QMessageBox.information(self, "Done", f"{result.message}.\nPlease reboot your system.")
        self._refresh_installed()

    def _handle_mutation_error(self, message: str) -> None:
        self._end_operation()
        self._log(f"[ERROR] {message}")
        QMessageBox.critical(self, "Operation Failed", message)
        self._refresh_installed()

    def _handle_error(self, message: str) -> None:
        self._log(f"[ERROR] {message}")
        self._set_buttons_enabled(not self._busy)

    def _current_driver_id(self) -> str | None:
        return self._installed[0].logical_id if self._installed else None

    def _selected_driver_id(self) -> str | None:
        rows = self._table.selectionModel().selectedRows()
        if not rows:
            return None
        row = rows[0].row()
        if 0 <= row < len(self._drivers):
            return self._drivers[row].id
        return None

    def _select_driver(self, driver_id: str) -> None:
        for row, driver in enumerate(self._drivers):
            if driver.id == driver_id:
                self._table.selectRow(row)
                return

    def _version_text(self, driver: LogicalDriver) -> str:
        if driver.id == self._current_driver_id():
            return f"{self._versions.get(driver.id, VERSION_UNKNOWN)} (Installed)"
        if not self._versions_loaded:
            return VERSION_LOADING
        return self._versions.get(driver.id, VERSION_NOT_FOUND)

    def _populate_table(self) -> None:
        installed_ids = {item.logical_id for item in self._installed}
        self._table.setRowCount(len(self._drivers))
        for row, driver in enumerate(self._drivers):
            self._table.setRowHeight(row, 30)
            name_item = QTableWidgetItem(driver.id)
            name_item.setData(Qt.UserRole, driver.id)
            self._table.setItem(row, 0, name_item)
            version_item = QTableWidgetItem(self._version_text(driver))
            version_item.setTextAlignment(Qt.AlignCenter)
            self._table.setItem(row, 1, version_item)
            self._table.setItem(row, 2, QTableWidgetItem(driver.description))
            self._table.setItem(row, 3, QTableWidgetItem(driver.repo))
            status = "Installed" if driver.id in installed_ids else "Available"
            if self._versions_loaded and driver.id not in self._versions and driver.id not in installed_ids:
                status = "Not Found"
            self._set_badge_cell(row, 4, status, self._status_badge_style(status))
            self._apply_version_colors(row, status)

    def _set_buttons_enabled(self, enabled: bool) -> None:
        self._btn_refresh.setEnabled(enabled)
        self._btn_install.setEnabled(enabled and self._can_elevate)
        self._btn_remove.setEnabled(enabled and self._can_elevate and self._current_driver_id() is not None)
        self._disable_secondary.setEnabled(enabled)

    def _set_badge_cell(self, row: int, column: int, text: str, palette: tuple[str, str, str]) -> None:
        label = QLabel(text)
        label.setAlignment(Qt.AlignCenter)
        label.setStyleSheet(
            "QLabel {"
            f"color: {palette[0]};"
            f"background-color: {palette[1]};"
            f"border: 1px solid {palette[2]};"
            "border-radius: 8px;"
            "padding: 2px 6px;"
            "font-weight: 600;"
            "}"
        )
        self._table.setCellWidget(row, column, label)

    def _status_badge_style(self, status: str) -> tuple[str, str, str]:
        palette = {
            "installed": ("#dcfce7", "#14532d", "#22c55e"),
            "available": ("#e0f2fe", "#075985", "#38bdf8"),
            "not found": ("#e5e7eb", "#4b5563", "#9ca3af"),
        }
        return palette.get(status.lower(), ("#e5e7eb", "#4b5563", "#9ca3af"))

    def _apply_version_colors(self, row: int, status: str) -> None:
        version_item = self._table.item(row, 1)
        if not version_item:
            return
        status_key = status.lower()
        if status_key == "installed":
            version_item.setForeground(QColor("#22c55e"))
        elif status_key == "not found":
            version_item.setForeground(QColor("#9ca3af"))
