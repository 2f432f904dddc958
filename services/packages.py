"""pacman queries: installed-package probes and repository metadata."""
from __future__ import annotations

import enum
import re
import subprocess
from typing import Sequence

from nvidia_installer.errors import PackageNotInRepo, ProbeFailed
from services.privilege import CommandRunner, SubprocessRunner, c_locale_env

NOT_FOUND_PATTERN = re.compile(r"was not found", re.IGNORECASE)


class ProbeResult(enum.Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    ERROR = "error"


def parse_version_field(text: str, field: str = "Version") -> str | None:
    """Return the value of the first ``field : value`` line in pacman -Si/-Qi output."""
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped.startswith(field):
            continue
        _, sep, value = stripped.partition(":")
        return value.strip() if sep else None
    return None


def _diagnostic(result: subprocess.CompletedProcess[str]) -> str:
    return (result.stderr or result.stdout or f"exit status {result.returncode}").strip()


class PacmanClient:
    """Thin wrapper around the pacman CLI.

    ``lenient_probe`` treats every non-zero ``pacman -Q`` exit as "not
    installed". That matches tools which only report an exit code, at the
    cost of hiding database or permission failures behind a negative answer.
    """

    def __init__(
        self,
        *,
        executable: str = "pacman",
        command_runner: CommandRunner | None = None,
        lenient_probe: bool = False,
    ) -> None:
        self._executable = executable
        self._runner = command_runner or SubprocessRunner(timeout=30, env=c_locale_env())
        self._lenient_probe = lenient_probe

    def probe(self, package: str) -> tuple[ProbeResult, str]:
        try:
            result = self._runner.run([self._executable, "-Q", package])
        except FileNotFoundError:
            return ProbeResult.ERROR, f"{self._executable} not found on PATH"
        except (OSError, subprocess.SubprocessError) as exc:
            return ProbeResult.ERROR, str(exc)
        if result.returncode == 0:
            return ProbeResult.FOUND, ""
        detail = _diagnostic(result)
        if self._lenient_probe or NOT_FOUND_PATTERN.search(result.stderr or ""):
            return ProbeResult.NOT_FOUND, detail
        return ProbeResult.ERROR, detail

    def is_installed(self, package: str) -> bool:
        status, detail = self.probe(package)
        if status is ProbeResult.ERROR:
            raise ProbeFailed(package, detail)
        return status is ProbeResult.FOUND

    def installed_subset(self, packages: Sequence[str]) -> list[str]:
        return [package for package in packages if self.is_installed(package)]

    def query_metadata(self, package: str) -> str:
        try:
            result = self._runner.run([self._executable, "-Si", package])
        except FileNotFoundError as exc:
            raise ProbeFailed(package, f"{self._executable} not found on PATH") from exc
        except (OSError, subprocess.SubprocessError) as exc:
            raise ProbeFailed(package, str(exc)) from exc
        if result.returncode != 0:
            raise PackageNotInRepo(package, _diagnostic(result))
        return result.stdout

    def repository_version(self, package: str) -> str:
        text = self.query_metadata(package)
        version = parse_version_field(text)
        if version is None:
            raise PackageNotInRepo(package, "no Version field in repository metadata")
        return version
