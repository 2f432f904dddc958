"""Application entry point."""
from __future__ import annotations

import logging
import os
import sys

from PySide6.QtWidgets import QApplication

from nvidia_installer.constants import IMMUTABLE_CONFIG
from ui.main_window import MainWindow


def _configure_logging() -> None:
    level_name = os.getenv("NVIDIA_INSTALLER_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def main() -> int:
    _configure_logging()
    app = QApplication(sys.argv)
    app.setApplicationName(IMMUTABLE_CONFIG.application_name)
    window = MainWindow()
    window.show()
    window.start()
    return app.exec()


if __name__ == "__main__":
    sys.exit(main())
