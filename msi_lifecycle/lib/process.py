from __future__ import annotations

import csv
import io
import logging
from typing import Optional, Protocol

from .command import powershell, run_cmd

logger = logging.getLogger(__name__)


class ProcessControl(Protocol):
    def launch(self, path: str) -> None:
        ...

    def is_running(self, process_name: str) -> bool:
        ...

    def resolved_path(self, process_name: str) -> Optional[str]:
        ...

    def kill(self, process_name: str) -> None:
        ...


def _image_name(process_name: str) -> str:
    return process_name if process_name.lower().endswith(".exe") else f"{process_name}.exe"


class WindowsProcessControl:
    """ProcessControl backed by cmd/tasklist/taskkill and PowerShell."""

    def __init__(self, *, command_timeout_s: float = 30.0) -> None:
        self.command_timeout_s = command_timeout_s

    def launch(self, path: str) -> None:
        # `start` resolves .lnk shortcuts the same way Explorer does.
        run_cmd(["cmd.exe", "/c", "start", "", path], timeout_s=self.command_timeout_s)

    def is_running(self, process_name: str) -> bool:
        image = _image_name(process_name)
        res = run_cmd(
            ["tasklist.exe", "/FI", f"IMAGENAME eq {image}", "/FO", "CSV", "/NH"],
            timeout_s=self.command_timeout_s,
        )
        for row in csv.reader(io.StringIO(res.stdout)):
            if row and row[0].lower() == image.lower():
                return True
        return False

    def resolved_path(self, process_name: str) -> Optional[str]:
        stem = _image_name(process_name)[: -len(".exe")]
        res = powershell(
            f"Get-Process -Name '{stem}' -ErrorAction SilentlyContinue | "
            "Select-Object -First 1 -ExpandProperty Path",
            timeout_s=self.command_timeout_s,
            check=False,
        )
        path = res.stdout.strip()
        return path or None

    def kill(self, process_name: str) -> None:
        run_cmd(
            ["taskkill.exe", "/F", "/T", "/IM", _image_name(process_name)],
            timeout_s=self.command_timeout_s,
            check=False,
        )
