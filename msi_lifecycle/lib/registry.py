from __future__ import annotations

import logging
from typing import Iterator, Optional, Protocol, Tuple

try:
    import winreg  # type: ignore[attr-defined]
except Exception:  # pragma: no cover - non-Windows
    winreg = None  # type: ignore[assignment]

logger = logging.getLogger(__name__)

UNINSTALL_KEY = r"SOFTWARE\Microsoft\Windows\CurrentVersion\Uninstall"

_HIVE_NAMES = {
    "HKEY_LOCAL_MACHINE": "HKEY_LOCAL_MACHINE",
    "HKLM": "HKEY_LOCAL_MACHINE",
    "HKEY_CURRENT_USER": "HKEY_CURRENT_USER",
    "HKCU": "HKEY_CURRENT_USER",
}


class RegistryReader(Protocol):
    def read_value(self, key: str, name: str) -> Optional[str]:
        ...

    def entry_exists(self, display_name: str, version: Optional[str] = None) -> bool:
        ...


def split_key(key: str) -> Tuple[str, str]:
    """Split 'HKEY_LOCAL_MACHINE\\SOFTWARE\\...' into (hive, subkey)."""
    hive, _, sub = key.partition("\\")
    canonical = _HIVE_NAMES.get(hive.upper())
    if canonical is None:
        raise ValueError(f"Unsupported registry hive in {key!r}")
    return canonical, sub


class WindowsRegistryReader:
    """RegistryReader on top of the stdlib winreg module.

    Both the 64-bit and the 32-bit registry views are consulted, since an x86
    package writes per-machine values below WOW6432Node.
    """

    def __init__(self) -> None:
        if winreg is None:
            raise RuntimeError("WindowsRegistryReader requires the winreg module (Windows only)")

    def _views(self) -> list[int]:
        key_read = int(getattr(winreg, "KEY_READ", 0))
        return [
            key_read | int(getattr(winreg, "KEY_WOW64_64KEY", 0)),
            key_read | int(getattr(winreg, "KEY_WOW64_32KEY", 0)),
        ]

    def _hive(self, name: str) -> object:
        return getattr(winreg, name)

    def read_value(self, key: str, name: str) -> Optional[str]:
        hive_name, sub = split_key(key)
        for access in self._views():
            try:
                with winreg.OpenKey(self._hive(hive_name), sub, 0, access) as k:  # type: ignore[union-attr]
                    value, _ = winreg.QueryValueEx(k, name)  # type: ignore[union-attr]
            except OSError:
                continue
            return str(value)
        return None

    def _uninstall_entries(self) -> Iterator[Tuple[str, Optional[str]]]:
        for hive_name in ("HKEY_LOCAL_MACHINE", "HKEY_CURRENT_USER"):
            for access in self._views():
                try:
                    root = winreg.OpenKey(self._hive(hive_name), UNINSTALL_KEY, 0, access)  # type: ignore[union-attr]
                except OSError:
                    continue
                with root:
                    index = 0
                    while True:
                        try:
                            child_name = winreg.EnumKey(root, index)  # type: ignore[union-attr]
                        except OSError:
                            break
                        index += 1
                        try:
                            with winreg.OpenKey(root, child_name) as child:  # type: ignore[union-attr]
                                display = self._query(child, "DisplayName")
                                version = self._query(child, "DisplayVersion")
                        except OSError:
                            continue
                        if display:
                            yield display, version

    @staticmethod
    def _query(key: object, name: str) -> Optional[str]:
        try:
            value, _ = winreg.QueryValueEx(key, name)  # type: ignore[union-attr]
        except OSError:
            return None
        return str(value)

    def entry_exists(self, display_name: str, version: Optional[str] = None) -> bool:
        for display, found_version in self._uninstall_entries():
            if display != display_name:
                continue
            if version is None or found_version == version:
                logger.debug("Found uninstall entry %s (%s)", display, found_version)
                return True
        return False
