from __future__ import annotations

import subprocess
import threading
from typing import Sequence

import pytest

from nvidia_installer.errors import DetectionTimeout, GpuQueryError
from services.gpu import (
    GPU_NOT_FOUND,
    UNKNOWN_KERNEL,
    GpuDetector,
    call_with_timeout,
    parse_display_devices,
    parse_gpu_name,
)


class FakeRunner:
    def __init__(self, outputs: dict[str, subprocess.CompletedProcess[str]]) -> None:
        self.outputs = outputs

    def run(self, command: Sequence[str]) -> subprocess.CompletedProcess[str]:
        result = self.outputs.get(command[0])
        if result is None:
            raise FileNotFoundError(2, "No such file or directory", command[0])
        return result


def _ok(stdout: str) -> subprocess.CompletedProcess[str]:
    return subprocess.CompletedProcess([], 0, stdout, "")


def test_bracketed_device_name_wins() -> None:
    line = '"VGA"  "NVIDIA Corporation"  "Device [GeForce RTX 4090]"'
    assert parse_gpu_name(line) == "GeForce RTX 4090"


def test_quoted_tokens_without_brackets() -> None:
    assert parse_gpu_name('"VGA" "NVIDIA" "TU104"') == "NVIDIA TU104"


def test_empty_output_returns_sentinel() -> None:
    assert parse_gpu_name("") == GPU_NOT_FOUND
    assert parse_gpu_name("\n  \n") == GPU_NOT_FOUND


def test_nvidia_line_is_preferred_over_first_line() -> None:
    output = (
        '00:02.0 "VGA compatible controller" "Intel Corporation" "Alder Lake-P [Iris Xe Graphics]"\n'
        '01:00.0 "3D controller" "NVIDIA Corporation" "GA107M [GeForce RTX 3050 Mobile]"\n'
    )
    assert parse_gpu_name(output) == "GeForce RTX 3050 Mobile"


def test_falls_back_to_first_line_without_vendor_marker() -> None:
    output = '00:02.0 "VGA compatible controller" "Intel Corporation" "Alder Lake-P [Iris Xe Graphics]"\n'
    assert parse_gpu_name(output) == "Iris Xe Graphics"


def test_raw_line_with_quotes_stripped() -> None:
    assert parse_gpu_name('01:00.0 NVIDIA "TU104"') == "01:00.0 NVIDIA TU104"


def test_non_display_lines_are_ignored_when_display_lines_exist() -> None:
    output = (
        '00:1f.3 "Audio device" "Intel Corporation" "Cannon Lake PCH cAVS [Smart Sound]"\n'
        '01:00.0 "VGA compatible controller" "Advanced Micro Devices, Inc. [AMD/ATI]" "Navi 31"\n'
    )
    assert parse_gpu_name(output) == "AMD/ATI"


def test_detect_reports_missing_tool_as_text() -> None:
    detector = GpuDetector(command_runner=FakeRunner({}))
    assert detector.detect() == "Error Detecting GPU: lspci not found on PATH"


def test_detect_reports_failed_command_as_text() -> None:
    failed = subprocess.CompletedProcess([], 1, "", "pcilib: Cannot open /proc/bus/pci\n")
    detector = GpuDetector(command_runner=FakeRunner({"lspci": failed}))
    assert detector.detect() == "Error Detecting GPU: pcilib: Cannot open /proc/bus/pci"


def test_detect_parses_lspci_output() -> None:
    output = '01:00.0 "VGA compatible controller" "NVIDIA Corporation" "AD102 [GeForce RTX 4090]" -ra1 "MSI" "Device 5102"\n'
    detector = GpuDetector(command_runner=FakeRunner({"lspci": _ok(output)}))
    assert detector.detect() == "GeForce RTX 4090"


def test_secondary_modules_skip_nvidia_devices() -> None:
    output = (
        '00:02.0 "VGA compatible controller" "Intel Corporation" "Alder Lake-P [Iris Xe Graphics]"\n'
        '01:00.0 "3D controller" "NVIDIA Corporation" "GA107M [GeForce RTX 3050 Mobile]"\n'
        '05:00.0 "Display controller" "Advanced Micro Devices, Inc. [AMD/ATI]" "Rembrandt"\n'
    )
    detector = GpuDetector(command_runner=FakeRunner({"lspci": _ok(output)}))
    assert detector.secondary_modules() == ["i915", "xe", "amdgpu", "radeon"]
    devices = parse_display_devices(output)
    assert [device.slot for device in devices] == ["00:02.0", "01:00.0", "05:00.0"]
    assert [device.is_nvidia for device in devices] == [False, True, False]


def test_secondary_modules_propagate_query_errors() -> None:
    detector = GpuDetector(command_runner=FakeRunner({}))
    with pytest.raises(GpuQueryError):
        detector.secondary_modules()


def test_kernel_release() -> None:
    detector = GpuDetector(command_runner=FakeRunner({"uname": _ok("6.12.8-2-cachyos\n")}))
    assert detector.kernel_release() == "6.12.8-2-cachyos"
    assert GpuDetector(command_runner=FakeRunner({})).kernel_release() == UNKNOWN_KERNEL


def test_call_with_timeout_returns_result() -> None:
    assert call_with_timeout(lambda: "GeForce RTX 4090", 1.0) == "GeForce RTX 4090"


def test_call_with_timeout_raises_detection_timeout() -> None:
    release = threading.Event()
    try:
        with pytest.raises(DetectionTimeout) as excinfo:
            call_with_timeout(lambda: release.wait(5), 0.05)
        assert excinfo.value.timeout == 0.05
    finally:
        release.set()
