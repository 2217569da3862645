from __future__ import annotations

from typing import Optional


class LifecycleError(RuntimeError):
    """Base for every error raised by the lifecycle harness."""


class ConfigError(LifecycleError, ValueError):
    pass


class VersionFormatError(LifecycleError, ValueError):
    def __init__(self, raw: str, reason: str = "no leading numeric components"):
        super().__init__(f"Cannot derive an installer version from {raw!r}: {reason}")
        self.raw = raw


class TopologyCollisionError(LifecycleError):
    """Two logically distinct configurations resolved to overlapping locations."""

    def __init__(self, field: str, path: str, first: str, second: str):
        super().__init__(f"{field} collision at {path}: {first} overlaps {second}")
        self.field = field
        self.path = path
        self.first = first
        self.second = second


class InstallTimeoutError(LifecycleError):
    def __init__(self, package_file: str, timeout_s: Optional[float]):
        super().__init__(f"Install of {package_file} did not finish within {timeout_s}s")
        self.package_file = package_file
        self.timeout_s = timeout_s


class UninstallTimeoutError(LifecycleError):
    def __init__(self, target: str, timeout_s: Optional[float]):
        super().__init__(f"Uninstall of {target} did not finish within {timeout_s}s")
        self.target = target
        self.timeout_s = timeout_s


class InstallerExitError(LifecycleError):
    def __init__(self, action: str, target: str, exit_code: int):
        super().__init__(f"{action} of {target} failed with exit code {exit_code}")
        self.action = action
        self.target = target
        self.exit_code = exit_code


class PayloadResolutionError(LifecycleError):
    """The stub could not locate the current payload binary."""


class ProcessResolutionMismatchError(LifecycleError):
    def __init__(self, entry_point: str, expected: str, observed: Optional[str]):
        super().__init__(f"{entry_point} resolved to {observed!r}, expected {expected!r}")
        self.entry_point = entry_point
        self.expected = expected
        self.observed = observed


class LifecycleStateError(LifecycleError):
    def __init__(self, current: str, requested: str):
        super().__init__(f"Illegal lifecycle transition {current} -> {requested}")
        self.current = current
        self.requested = requested
