from __future__ import annotations

import subprocess
from typing import Sequence

import pytest

from nvidia_installer.errors import PackageNotInRepo, ProbeFailed
from services.packages import PacmanClient, ProbeResult, parse_version_field

PACMAN_SI_OUTPUT = """Repository      : cachyos-extra-v3
Name            : nvidia-open-dkms
Version     : 570.86.16-1   
Description     : NVIDIA open kernel modules
Depends On      : dkms  nvidia-utils=570.86.16  libglvnd
"""


class FakeRunner:
    def __init__(self, results: dict[tuple[str, ...], subprocess.CompletedProcess[str]] | None = None) -> None:
        self.results = results or {}
        self.commands: list[tuple[str, ...]] = []

    def run(self, command: Sequence[str]) -> subprocess.CompletedProcess[str]:
        self.commands.append(tuple(command))
        return self.results.get(tuple(command), subprocess.CompletedProcess(command, 1, "", "error: unexpected\n"))


class MissingToolRunner:
    def run(self, command: Sequence[str]) -> subprocess.CompletedProcess[str]:
        raise FileNotFoundError(2, "No such file or directory", command[0])


def _done(cmd: tuple[str, ...], code: int, stdout: str = "", stderr: str = "") -> subprocess.CompletedProcess[str]:
    return subprocess.CompletedProcess(cmd, code, stdout, stderr)


def test_parse_version_field_trims_value() -> None:
    assert parse_version_field(PACMAN_SI_OUTPUT) == "570.86.16-1"


def test_parse_version_field_uses_first_matching_line() -> None:
    text = "Name : pkg\n  Version : 1.0-1\nVersion : 2.0-1\n"
    assert parse_version_field(text) == "1.0-1"


def test_parse_version_field_splits_on_first_colon_only() -> None:
    assert parse_version_field("Version : 1:2.3-4\n") == "1:2.3-4"


def test_parse_version_field_missing() -> None:
    assert parse_version_field("Name : pkg\nDescription : none\n") is None
    assert parse_version_field("") is None


def test_probe_distinguishes_found_missing_and_errors() -> None:
    runner = FakeRunner(
        {
            ("pacman", "-Q", "nvidia-dkms"): _done(("pacman", "-Q", "nvidia-dkms"), 0, "nvidia-dkms 570.86.16-1\n"),
            ("pacman", "-Q", "nvidia-open"): _done(
                ("pacman", "-Q", "nvidia-open"), 1, "", "error: package 'nvidia-open' was not found\n"
            ),
            ("pacman", "-Q", "broken"): _done(("pacman", "-Q", "broken"), 1, "", "error: could not open database\n"),
        }
    )
    client = PacmanClient(command_runner=runner)
    assert client.probe("nvidia-dkms")[0] is ProbeResult.FOUND
    assert client.probe("nvidia-open")[0] is ProbeResult.NOT_FOUND
    status, detail = client.probe("broken")
    assert status is ProbeResult.ERROR
    assert detail == "error: could not open database"


def test_is_installed_raises_on_probe_error() -> None:
    client = PacmanClient(command_runner=MissingToolRunner())
    with pytest.raises(ProbeFailed, match="pacman not found"):
        client.is_installed("nvidia-dkms")


def test_lenient_probe_hides_errors() -> None:
    runner = FakeRunner()
    client = PacmanClient(command_runner=runner, lenient_probe=True)
    assert client.is_installed("anything") is False


def test_installed_subset_keeps_order() -> None:
    names = ["a", "b", "c"]
    results = {}
    for name in names:
        cmd = ("pacman", "-Q", name)
        if name == "b":
            results[cmd] = _done(cmd, 1, "", f"error: package '{name}' was not found\n")
        else:
            results[cmd] = _done(cmd, 0, f"{name} 1.0-1\n")
    client = PacmanClient(command_runner=FakeRunner(results))
    assert client.installed_subset(names) == ["a", "c"]


def test_repository_version_reads_metadata() -> None:
    cmd = ("pacman", "-Si", "nvidia-open-dkms")
    client = PacmanClient(command_runner=FakeRunner({cmd: _done(cmd, 0, PACMAN_SI_OUTPUT)}))
    assert client.repository_version("nvidia-open-dkms") == "570.86.16-1"


def test_repository_version_for_unknown_package() -> None:
    cmd = ("pacman", "-Si", "nvidia-999xx-dkms")
    runner = FakeRunner({cmd: _done(cmd, 1, "", "error: package 'nvidia-999xx-dkms' was not found\n")})
    client = PacmanClient(command_runner=runner)
    with pytest.raises(PackageNotInRepo, match="nvidia-999xx-dkms"):
        client.repository_version("nvidia-999xx-dkms")


def test_default_client_reads_untranslated_output(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[tuple[list[str], dict[str, str]]] = []

    def fake_run(command, **kwargs):
        calls.append((command, kwargs["env"]))
        return subprocess.CompletedProcess(command, 0, PACMAN_SI_OUTPUT, "")

    monkeypatch.setenv("LC_ALL", "tr_TR.UTF-8")
    monkeypatch.setattr(subprocess, "run", fake_run)
    assert PacmanClient().repository_version("nvidia-open-dkms") == "570.86.16-1"
    assert calls[0][0] == ["pacman", "-Si", "nvidia-open-dkms"]
    assert calls[0][1]["LC_ALL"] == "C"
