from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Protocol

from .command import powershell, run_cmd

logger = logging.getLogger(__name__)

# 3010: success, reboot required. 1605: product not installed (uninstall only).
MSI_SUCCESS_CODES = frozenset({0, 3010})
MSI_NOT_INSTALLED = 1605


class InstallerInvoker(Protocol):
    """Silent installer calls; each returns the installer's exit code.

    Implementations block until the installer exits and let
    ``subprocess.TimeoutExpired`` propagate when it does not.
    """

    def install(self, package_file: str, scope: str) -> int:
        ...

    def uninstall(self, package_file: str) -> int:
        ...

    def uninstall_by_display_name(self, name: str) -> int:
        ...


class MsiexecInvoker:
    def __init__(
        self,
        *,
        install_timeout_s: float = 300.0,
        uninstall_timeout_s: float = 300.0,
        log_dir: Optional[str] = None,
    ) -> None:
        self.install_timeout_s = install_timeout_s
        self.uninstall_timeout_s = uninstall_timeout_s
        self.log_dir = log_dir

    def _log_args(self, package_file: str, action: str) -> list[str]:
        if not self.log_dir:
            return []
        Path(self.log_dir).mkdir(parents=True, exist_ok=True)
        return ["/l*v", str(Path(self.log_dir) / f"{Path(package_file).stem}-{action}.log")]

    def install(self, package_file: str, scope: str) -> int:
        if scope == "perUser":
            scope_args = ["ALLUSERS=2", "MSIINSTALLPERUSER=1"]
        else:
            scope_args = ["ALLUSERS=1"]
        res = run_cmd(
            ["msiexec.exe", "/i", package_file, "/qn", "/norestart", *scope_args, *self._log_args(package_file, "install")],
            check=False,
            timeout_s=self.install_timeout_s,
        )
        return res.returncode

    def uninstall(self, package_file: str) -> int:
        res = run_cmd(
            ["msiexec.exe", "/x", package_file, "/qn", "/norestart", *self._log_args(package_file, "uninstall")],
            check=False,
            timeout_s=self.uninstall_timeout_s,
        )
        return res.returncode

    def uninstall_by_display_name(self, name: str) -> int:
        escaped = name.replace("'", "''")
        res = powershell(
            f"Get-Package -Name '{escaped}' -ErrorAction Stop | Uninstall-Package -Force -ErrorAction Stop",
            timeout_s=self.uninstall_timeout_s,
            check=False,
        )
        return res.returncode
