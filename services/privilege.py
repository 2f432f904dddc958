"""Command runners, including pkexec elevation for package mutations."""
from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
from typing import Mapping, Protocol, Sequence

logger = logging.getLogger(__name__)


class CommandRunner(Protocol):
    def run(self, command: Sequence[str]) -> subprocess.CompletedProcess[str]:  # pragma: no cover - protocol
        ...


class ElevatingRunner(CommandRunner, Protocol):
    def is_available(self) -> bool:  # pragma: no cover - protocol
        ...


def c_locale_env() -> dict[str, str]:
    """Current environment with messages and field labels forced to untranslated English."""
    return {**os.environ, "LC_ALL": "C"}


class SubprocessRunner:
    def __init__(self, timeout: float | None = None, env: Mapping[str, str] | None = None) -> None:
        self._timeout = timeout
        self._env = dict(env) if env is not None else None

    def run(self, command: Sequence[str]) -> subprocess.CompletedProcess[str]:
        return subprocess.run(
            list(command),
            capture_output=True,
            text=True,
            check=False,
            timeout=self._timeout,
            env=self._env,
        )


def is_root() -> bool:
    try:
        return os.geteuid() == 0
    except AttributeError:
        return False


class PrivilegedRunner:
    """Runs commands as root, prefixing pkexec when the process is unprivileged."""

    def __init__(
        self,
        *,
        pkexec: str = "pkexec",
        command_runner: CommandRunner | None = None,
        already_root: bool | None = None,
    ) -> None:
        self._pkexec = pkexec
        self._runner = command_runner or SubprocessRunner()
        self._already_root = is_root() if already_root is None else already_root

    def is_available(self) -> bool:
        return self._already_root or shutil.which(self._pkexec) is not None

    def elevate(self, command: Sequence[str]) -> list[str]:
        if self._already_root:
            return list(command)
        return [self._pkexec, *command]

    def run(self, command: Sequence[str]) -> subprocess.CompletedProcess[str]:
        elevated = self.elevate(command)
        logger.info("Running privileged command: %s", shlex.join(elevated))
        return self._runner.run(elevated)
