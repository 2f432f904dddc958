"""Immutable settings for the driver catalog and system commands."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Tuple

from nvidia_installer.errors import UnknownDriverId


@dataclass(frozen=True)
class LogicalDriver:
    id: str
    aliases: Tuple[str, ...]
    description: str = ""
    repo: str = ""
    proprietary: bool = False

    def __post_init__(self) -> None:
        if not self.aliases:
            raise ValueError(f"Driver {self.id} needs at least one package alias")
        if self.id not in self.aliases:
            raise ValueError(f"Driver {self.id} must list itself as an alias")


@dataclass(frozen=True)
class DriverCatalog:
    drivers: Tuple[LogicalDriver, ...]

    def __post_init__(self) -> None:
        seen: set[str] = set()
        for driver in self.drivers:
            if driver.id in seen:
                raise ValueError(f"Duplicate driver id: {driver.id}")
            seen.add(driver.id)

    def __iter__(self) -> Iterator[LogicalDriver]:
        return iter(self.drivers)

    def __len__(self) -> int:
        return len(self.drivers)

    def get(self, logical_id: str) -> LogicalDriver:
        for driver in self.drivers:
            if driver.id == logical_id:
                return driver
        raise UnknownDriverId(logical_id)

    def aliases(self, logical_id: str) -> Tuple[str, ...]:
        return self.get(logical_id).aliases

    def ids(self) -> Tuple[str, ...]:
        return tuple(driver.id for driver in self.drivers)


@dataclass(frozen=True)
class PackageManagerSetting:
    pacman: str = "pacman"
    pkexec: str = "pkexec"
    install_flags: Tuple[str, ...] = ("-S", "--noconfirm", "--needed")
    remove_flags: Tuple[str, ...] = ("-Rns", "--noconfirm")
    companion_packages: Tuple[str, ...] = ("nvidia-settings",)
    query_timeout: float = 30.0


@dataclass(frozen=True)
class SecondaryGpuSetting:
    blacklist_path: Path = Path("/etc/modprobe.d/nvidia-installer-secondary-gpu.conf")
    vendor_modules: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
        ("intel", ("i915", "xe")),
        ("advanced micro devices", ("amdgpu", "radeon")),
        ("amd", ("amdgpu", "radeon")),
        ("ati", ("amdgpu", "radeon")),
    )


@dataclass(frozen=True)
class ImmutableConfig:
    catalog: DriverCatalog
    package_manager: PackageManagerSetting = field(default_factory=PackageManagerSetting)
    secondary_gpu: SecondaryGpuSetting = field(default_factory=SecondaryGpuSetting)
    gpu_detection_timeout: float = 5.0
    application_name: str = "nvidia-installer"


DEFAULT_CATALOG = DriverCatalog(
    drivers=(
        LogicalDriver(
            id="nvidia-open-dkms",
            aliases=("linux-cachyos-nvidia-open", "nvidia-open-dkms", "nvidia-open"),
            description="Open Source Modules (DKMS) - Recommended",
            repo="CachyOS / Extra",
            proprietary=False,
        ),
        LogicalDriver(
            id="nvidia-dkms",
            aliases=("linux-cachyos-nvidia", "nvidia-dkms", "nvidia"),
            description="Proprietary Driver (DKMS) - If Available",
            repo="Extra",
            proprietary=True,
        ),
        LogicalDriver(
            id="nvidia-550xx-dkms",
            aliases=("nvidia-550xx-dkms",),
            description="Legacy Driver (550 Series)",
            repo="CachyOS",
            proprietary=True,
        ),
    )
)

IMMUTABLE_CONFIG = ImmutableConfig(
    catalog=DEFAULT_CATALOG,
)
