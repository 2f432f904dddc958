"""GPU identity from lspci, plus kernel release and secondary GPU modules."""
from __future__ import annotations

import concurrent.futures
import logging
import re
import subprocess
from dataclasses import dataclass
from typing import Callable, Sequence, TypeVar

from nvidia_installer.constants import IMMUTABLE_CONFIG, SecondaryGpuSetting
from nvidia_installer.errors import DetectionTimeout, GpuQueryError
from services.privilege import CommandRunner, SubprocessRunner

logger = logging.getLogger(__name__)

GPU_NOT_FOUND = "NVIDIA GPU Not Found"
GPU_ERROR_PREFIX = "Error Detecting GPU"
UNKNOWN_KERNEL = "Unknown Kernel"
VENDOR_MARKER = "nvidia"
DISPLAY_CLASS_PATTERN = re.compile(r"\b(VGA|3D|Display)\b", re.IGNORECASE)
BRACKET_PATTERN = re.compile(r"\[([^\]]+)\]")
QUOTED_PATTERN = re.compile(r'"([^"]*)"')

T = TypeVar("T")


@dataclass(frozen=True)
class DisplayDevice:
    slot: str
    device_class: str
    vendor: str
    device: str

    @property
    def is_nvidia(self) -> bool:
        return VENDOR_MARKER in self.vendor.lower() or VENDOR_MARKER in self.device.lower()


def _display_lines(output: str) -> list[str]:
    lines = [line.strip() for line in output.splitlines() if line.strip()]
    display = [line for line in lines if DISPLAY_CLASS_PATTERN.search(line)]
    return display or lines


def parse_gpu_name(output: str) -> str:
    lines = _display_lines(output)
    if not lines:
        return GPU_NOT_FOUND
    selected = next((line for line in lines if VENDOR_MARKER in line.lower()), lines[0])
    bracket = BRACKET_PATTERN.search(selected)
    if bracket:
        return bracket.group(1)
    tokens = QUOTED_PATTERN.findall(selected)
    if len(tokens) >= 3:
        return f"{tokens[1]} {tokens[2]}"
    return selected.replace('"', "")


def parse_display_devices(output: str) -> list[DisplayDevice]:
    devices: list[DisplayDevice] = []
    for line in output.splitlines():
        line = line.strip()
        if not line or not DISPLAY_CLASS_PATTERN.search(line):
            continue
        tokens = QUOTED_PATTERN.findall(line)
        if len(tokens) < 3:
            continue
        slot = line.split(" ", 1)[0] if not line.startswith('"') else ""
        devices.append(DisplayDevice(slot=slot, device_class=tokens[0], vendor=tokens[1], device=tokens[2]))
    return devices


def modules_for_vendor(vendor: str, setting: SecondaryGpuSetting) -> tuple[str, ...]:
    lowered = vendor.lower()
    for key, modules in setting.vendor_modules:
        if re.search(rf"\b{re.escape(key)}\b", lowered):
            return modules
    return ()


def call_with_timeout(func: Callable[[], T], timeout: float) -> T:
    """Run ``func`` on a helper thread and give up waiting after ``timeout`` seconds.

    The helper thread is not cancelled; a command that is already running
    finishes in the background and its result is discarded.
    """
    executor = concurrent.futures.ThreadPoolExecutor(max_workers=1)
    future = executor.submit(func)
    try:
        return future.result(timeout=timeout)
    except concurrent.futures.TimeoutError as exc:
        raise DetectionTimeout(timeout) from exc
    finally:
        executor.shutdown(wait=False)


class GpuDetector:
    def __init__(
        self,
        *,
        command_runner: CommandRunner | None = None,
        lspci: Sequence[str] = ("lspci", "-mm"),
        secondary_setting: SecondaryGpuSetting | None = None,
    ) -> None:
        self._runner = command_runner or SubprocessRunner(timeout=15)
        self._lspci = tuple(lspci)
        self._secondary = secondary_setting or IMMUTABLE_CONFIG.secondary_gpu

    def query_bus_devices(self) -> str:
        try:
            result = self._runner.run(self._lspci)
        except FileNotFoundError as exc:
            raise GpuQueryError(f"{self._lspci[0]} not found on PATH") from exc
        except (OSError, subprocess.SubprocessError) as exc:
            raise GpuQueryError(str(exc)) from exc
        if result.returncode != 0:
            detail = (result.stderr or result.stdout or f"exit status {result.returncode}").strip()
            raise GpuQueryError(detail)
        return result.stdout

    def detect(self) -> str:
        try:
            output = self.query_bus_devices()
        except GpuQueryError as exc:
            logger.error("GPU detection failed: %s", exc)
            return f"{GPU_ERROR_PREFIX}: {exc}"
        name = parse_gpu_name(output)
        logger.info("Detected GPU: %s", name)
        return name

    def secondary_modules(self) -> list[str]:
        modules: list[str] = []
        for device in parse_display_devices(self.query_bus_devices()):
            if device.is_nvidia:
                continue
            for module in modules_for_vendor(device.vendor, self._secondary):
                if module not in modules:
                    modules.append(module)
        return modules

    def kernel_release(self) -> str:
        try:
            result = self._runner.run(["uname", "-r"])
        except (OSError, subprocess.SubprocessError) as exc:
            logger.warning("uname failed: %s", exc)
            return UNKNOWN_KERNEL
        release = result.stdout.strip()
        if result.returncode != 0 or not release:
            return UNKNOWN_KERNEL
        return release
