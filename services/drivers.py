"""Driver detection, version lookup and install/remove planning for pacman systems."""
from __future__ import annotations

import contextlib
import logging
import shlex
import subprocess
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator, Protocol, Sequence

from nvidia_installer.constants import IMMUTABLE_CONFIG, DriverCatalog, ImmutableConfig
from nvidia_installer.errors import (
    DriverManagerError,
    MutationFailed,
    MutationInProgress,
    NothingToRemove,
)
from services.gpu import GpuDetector
from services.packages import PacmanClient
from services.privilege import (
    CommandRunner,
    ElevatingRunner,
    PrivilegedRunner,
    SubprocessRunner,
    c_locale_env,
)

logger = logging.getLogger(__name__)

DETECTED = "detected"
INSTALL = "install"
REMOVE = "remove"
BLACKLIST_HEADER = "# Written by nvidia-installer: keep the secondary GPU driver from loading"


@dataclass(frozen=True)
class InstalledDriver:
    logical_id: str
    package: str
    status: str = DETECTED


@dataclass(frozen=True)
class InstallRequest:
    logical_id: str
    disable_secondary: bool = False


@dataclass(frozen=True)
class RemoveRequest:
    logical_id: str


@dataclass(frozen=True)
class MutationPlan:
    action: str
    logical_id: str
    packages: tuple[str, ...]
    command: tuple[str, ...]

    @property
    def command_line(self) -> str:
        return shlex.join(self.command)


@dataclass
class FollowupResult:
    name: str
    success: bool
    detail: str = ""


@dataclass
class MutationResult:
    plan: MutationPlan
    message: str
    followups: list[FollowupResult] = field(default_factory=list)


class PackageQuery(Protocol):
    def is_installed(self, package: str) -> bool:  # pragma: no cover - protocol
        ...

    def installed_subset(self, packages: Sequence[str]) -> list[str]:  # pragma: no cover - protocol
        ...

    def repository_version(self, package: str) -> str:  # pragma: no cover - protocol
        ...


class DriverResolver:
    """Maps logical driver ids onto the real packages pacman knows about."""

    def __init__(
        self,
        catalog: DriverCatalog,
        packages: PackageQuery,
        *,
        pacman: str = "pacman",
        install_flags: Sequence[str] = ("-S", "--noconfirm", "--needed"),
        remove_flags: Sequence[str] = ("-Rns", "--noconfirm"),
        companion_packages: Sequence[str] = (),
        max_workers: int | None = None,
    ) -> None:
        self._catalog = catalog
        self._packages = packages
        self._pacman = pacman
        self._install_flags = tuple(install_flags)
        self._remove_flags = tuple(remove_flags)
        self._companions = tuple(companion_packages)
        self._max_workers = max_workers

    @property
    def catalog(self) -> DriverCatalog:
        return self._catalog

    def aliases(self, logical_id: str) -> tuple[str, ...]:
        return self._catalog.aliases(logical_id)

    def detect(self) -> list[InstalledDriver]:
        detected: list[InstalledDriver] = []
        for driver in self._catalog:
            for alias in driver.aliases:
                if self._packages.is_installed(alias):
                    detected.append(InstalledDriver(driver.id, alias))
                    break
        return detected

    def primary_installed(self) -> InstalledDriver | None:
        detected = self.detect()
        return detected[0] if detected else None

    def lookup_versions(self, packages: Iterable[str] | None = None) -> dict[str, str]:
        names = list(packages) if packages is not None else list(self._catalog.ids())
        if not names:
            return {}
        versions: dict[str, str] = {}
        workers = self._max_workers or len(names)
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {name: executor.submit(self._packages.repository_version, name) for name in names}
            for name, future in futures.items():
                try:
                    versions[name] = future.result()
                except (DriverManagerError, OSError, subprocess.SubprocessError) as exc:
                    logger.debug("No repository version for %s: %s", name, exc)
        return versions

    def plan_install(self, request: InstallRequest) -> MutationPlan:
        self._catalog.get(request.logical_id)
        targets = (request.logical_id,) + tuple(p for p in self._companions if p != request.logical_id)
        command = (self._pacman, *self._install_flags, *targets)
        return MutationPlan(INSTALL, request.logical_id, targets, command)

    def plan_remove(self, request: RemoveRequest) -> MutationPlan:
        present = tuple(self._packages.installed_subset(self.aliases(request.logical_id)))
        if not present:
            raise NothingToRemove(request.logical_id)
        command = (self._pacman, *self._remove_flags, *present)
        return MutationPlan(REMOVE, request.logical_id, present, command)


def build_blacklist_command(modules: Sequence[str], path: Path) -> list[str]:
    lines = [BLACKLIST_HEADER] + [f"blacklist {module}" for module in modules]
    script = "printf '%s\\n' " + " ".join(shlex.quote(line) for line in lines) + " > " + shlex.quote(str(path))
    return ["sh", "-c", script]


def _tool_output(result: subprocess.CompletedProcess[str]) -> str:
    return (result.stderr or result.stdout or f"Command exited with status {result.returncode}").strip()


class DriverService:
    def __init__(
        self,
        *,
        config: ImmutableConfig | None = None,
        catalog: DriverCatalog | None = None,
        pacman_client: PackageQuery | None = None,
        gpu_detector: GpuDetector | None = None,
        privileged_runner: ElevatingRunner | None = None,
        command_runner: CommandRunner | None = None,
    ) -> None:
        self._config = config or IMMUTABLE_CONFIG
        settings = self._config.package_manager
        self._pacman = pacman_client or PacmanClient(
            executable=settings.pacman,
            command_runner=command_runner or SubprocessRunner(timeout=settings.query_timeout, env=c_locale_env()),
        )
        self._gpu = gpu_detector or GpuDetector(
            command_runner=command_runner,
            secondary_setting=self._config.secondary_gpu,
        )
        self._privileged = privileged_runner or PrivilegedRunner(pkexec=settings.pkexec)
        self._resolver = DriverResolver(
            catalog or self._config.catalog,
            self._pacman,
            pacman=settings.pacman,
            install_flags=settings.install_flags,
            remove_flags=settings.remove_flags,
            companion_packages=settings.companion_packages,
        )
        self._mutation_lock = threading.Lock()

    @property
    def resolver(self) -> DriverResolver:
        return self._resolver

    @property
    def catalog(self) -> DriverCatalog:
        return self._resolver.catalog

    def can_elevate(self) -> bool:
        return self._privileged.is_available()

    def detect_gpu(self) -> str:
        return self._gpu.detect()

    def kernel_release(self) -> str:
        return self._gpu.kernel_release()

    def installed_drivers(self) -> list[InstalledDriver]:
        detected = self._resolver.detect()
        for item in detected:
            logger.info("Driver %s detected via package %s", item.logical_id, item.package)
        return detected

    def available_versions(self) -> dict[str, str]:
        return self._resolver.lookup_versions()

    def install(self, request: InstallRequest) -> MutationResult:
        plan = self._resolver.plan_install(request)
        with self._exclusive():
            self._dispatch(plan)
            result = MutationResult(plan, f"Installed {request.logical_id}")
            if request.disable_secondary:
                result.followups.append(self.disable_secondary_gpu())
        return result

    def remove(self, request: RemoveRequest) -> MutationResult:
        with self._exclusive():
            plan = self._resolver.plan_remove(request)
            self._dispatch(plan)
        return MutationResult(plan, f"Removed {', '.join(plan.packages)}")

    def disable_secondary_gpu(self) -> FollowupResult:
        name = "Disable secondary GPU"
        try:
            modules = self._gpu.secondary_modules()
        except DriverManagerError as exc:
            logger.warning("Could not enumerate display devices: %s", exc)
            return FollowupResult(name, False, str(exc))
        if not modules:
            return FollowupResult(name, True, "No secondary GPU found; nothing to blacklist")
        path = self._config.secondary_gpu.blacklist_path
        command = build_blacklist_command(modules, path)
        try:
            completed = self._privileged.run(command)
        except (OSError, subprocess.SubprocessError) as exc:
            logger.warning("Secondary GPU blacklist failed: %s", exc)
            return FollowupResult(name, False, str(exc))
        if completed.returncode != 0:
            detail = _tool_output(completed)
            logger.warning("Secondary GPU blacklist failed: %s", detail)
            return FollowupResult(name, False, detail)
        return FollowupResult(name, True, f"Blacklisted {', '.join(modules)} in {path}")

    def _dispatch(self, plan: MutationPlan) -> None:
        logger.info("Planned %s for %s: %s", plan.action, plan.logical_id, plan.command_line)
        try:
            completed = self._privileged.run(plan.command)
        except FileNotFoundError as exc:
            raise MutationFailed(f"Command not found: {exc.filename or plan.command[0]}", 127) from exc
        except (OSError, subprocess.SubprocessError) as exc:
            raise MutationFailed(str(exc), -1) from exc
        if completed.returncode != 0:
            raise MutationFailed(_tool_output(completed), completed.returncode)
        logger.info("%s of %s finished", plan.action.capitalize(), plan.logical_id)

    @contextlib.contextmanager
    def _exclusive(self) -> Iterator[None]:
        if not self._mutation_lock.acquire(blocking=False):
            raise MutationInProgress("Another install or remove operation is still running")
        try:
            yield
        finally:
            self._mutation_lock.release()
