from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

from .lib.fs import FilesystemProbe
from .lib.installer import InstallerInvoker
from .lib.packager import Packager
from .lib.process import ProcessControl
from .lib.registry import RegistryReader
from .lifecycle_state import LifecycleTracker
from .package_config import PackageConfiguration
from .results import CheckKind, VerificationResult
from .topology import InstallTopology


@dataclass(frozen=True)
class Collaborators:
    packager: Packager
    installer: InstallerInvoker
    registry: RegistryReader
    processes: ProcessControl
    fs: FilesystemProbe


@dataclass(frozen=True)
class Timeouts:
    install_s: float = 300.0
    uninstall_s: float = 300.0
    process_start_s: float = 20.0
    process_exit_s: float = 10.0
    poll_interval_s: float = 0.25


@dataclass
class PassContext:
    """Everything one verification pass reads and writes."""

    config: PackageConfiguration
    topology: InstallTopology
    collaborators: Collaborators
    timeouts: Timeouts = field(default_factory=Timeouts)
    harness_app_dir: Optional[str] = None
    staging_dir: Optional[str] = None
    stub_source: Optional[str] = None
    update_source: Optional[str] = None
    cycle: int = 1
    tracker: LifecycleTracker = field(default_factory=LifecycleTracker)
    package_file: Optional[str] = None
    results: List[VerificationResult] = field(default_factory=list)
    sleep: Callable[[float], None] = time.sleep

    def record(
        self,
        kind: CheckKind,
        check: str,
        *,
        expected: Any,
        observed: Any,
        passed: Optional[bool] = None,
        detail: Optional[str] = None,
    ) -> VerificationResult:
        result = VerificationResult(
            kind=kind,
            check=check,
            expected=expected,
            observed=observed,
            passed=(expected == observed) if passed is None else passed,
            state=self.tracker.state,
            detail=detail,
        )
        self.results.append(result)
        return result
