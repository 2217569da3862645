from __future__ import annotations

import filecmp
import logging
import shutil
from pathlib import Path
from typing import Optional, Protocol

from .command import powershell

logger = logging.getLogger(__name__)


class FilesystemProbe(Protocol):
    def exists(self, path: str) -> bool:
        ...

    def read_text(self, path: str) -> str:
        ...

    def shortcut_target(self, path: str) -> Optional[str]:
        """Absolute path a .lnk file launches, or None when it has no target."""
        ...

    def trees_equal(self, path_a: str, path_b: str) -> bool:
        ...

    def remove_tree(self, path: str) -> None:
        ...


def _dirs_equal(a: Path, b: Path) -> bool:
    cmp = filecmp.dircmp(a, b)
    if cmp.left_only or cmp.right_only or cmp.funny_files:
        return False
    # dircmp compares by os.stat signature; force a content comparison.
    _, mismatch, errors = filecmp.cmpfiles(a, b, cmp.common_files, shallow=False)
    if mismatch or errors:
        return False
    return all(_dirs_equal(a / d, b / d) for d in cmp.common_dirs)


class LocalFilesystemProbe:
    def __init__(self, *, command_timeout_s: float = 30.0) -> None:
        self.command_timeout_s = command_timeout_s

    def exists(self, path: str) -> bool:
        return Path(path).exists()

    def read_text(self, path: str) -> str:
        return Path(path).read_text(encoding="utf-8")

    def shortcut_target(self, path: str) -> Optional[str]:
        escaped = path.replace("'", "''")
        res = powershell(
            f"(New-Object -ComObject WScript.Shell).CreateShortcut('{escaped}').TargetPath",
            timeout_s=self.command_timeout_s,
        )
        return res.stdout.strip() or None

    def trees_equal(self, path_a: str, path_b: str) -> bool:
        a, b = Path(path_a), Path(path_b)
        if not (a.is_dir() and b.is_dir()):
            return False
        return _dirs_equal(a, b)

    def remove_tree(self, path: str) -> None:
        p = Path(path)
        if p.is_dir():
            logger.info("Removing tree %s", p)
            shutil.rmtree(p)
        elif p.exists():
            logger.info("Removing file %s", p)
            p.unlink()


def copy_payload_tree(src: str, dst: str) -> None:
    """Copy the reference payload into a package staging folder, merging into ``dst``."""

    if not Path(src).is_dir():
        raise FileNotFoundError(f"Payload folder not found: {src}")
    logger.info("Copying payload %s -> %s", src, dst)
    shutil.copytree(src, dst, dirs_exist_ok=True)
