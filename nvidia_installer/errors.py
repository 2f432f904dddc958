"""Error kinds raised by the driver services."""
from __future__ import annotations


class DriverManagerError(RuntimeError):
    pass


class UnknownDriverId(DriverManagerError):
    def __init__(self, logical_id: str) -> None:
        super().__init__(f"Unknown driver: {logical_id}")
        self.logical_id = logical_id


class ProbeFailed(DriverManagerError):
    """The package database could not be queried at all."""

    def __init__(self, package: str, detail: str) -> None:
        super().__init__(f"Could not query package '{package}': {detail}")
        self.package = package
        self.detail = detail


class PackageNotInRepo(DriverManagerError):
    def __init__(self, package: str, detail: str = "") -> None:
        message = f"Package '{package}' not found in configured repositories"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.package = package


class NothingToRemove(DriverManagerError):
    def __init__(self, logical_id: str) -> None:
        super().__init__(f"No installed package found for driver '{logical_id}'")
        self.logical_id = logical_id


class MutationFailed(DriverManagerError):
    """Privileged command exited non-zero; the message is the tool's own output."""

    def __init__(self, message: str, returncode: int) -> None:
        super().__init__(message)
        self.returncode = returncode


class MutationInProgress(DriverManagerError):
    pass


class DetectionTimeout(DriverManagerError):
    def __init__(self, timeout: float) -> None:
        super().__init__(f"GPU detection timed out after {timeout:g} seconds")
        self.timeout = timeout


class GpuQueryError(DriverManagerError):
    pass
