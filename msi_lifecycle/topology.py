"""Installation topology resolver.

Maps a package configuration to every filesystem and registry location an MSI
install of it produces. Everything here is pure: the only environment input is a
``KnownFolders`` value, which callers build once (usually from ``os.environ``).

Layout rules:
- The app root depends on (name, scope, arch install base), never on version, so
  installs of successive versions compose and reinstall is idempotent.
- The payload folder (app-M.m.p) is versioned; several may coexist during an update.
- The stub, shortcuts and run value are version independent and all carry the
  same absolute path.
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass
from pathlib import PurePath, PurePosixPath, PureWindowsPath
from typing import Any, Dict, Iterable, Literal, Mapping, Optional, Sequence, Type

from .errors import ConfigError, TopologyCollisionError
from .package_config import PackageConfiguration
from .version_compliance import semver_triplet, to_compliant_version

IdentityPolicy = Literal["shared", "per-arch", "per-scope-arch"]
IDENTITY_POLICIES: tuple[str, ...] = ("shared", "per-arch", "per-scope-arch")

RUN_KEY_SUFFIX = r"SOFTWARE\Microsoft\Windows\CurrentVersion\Run"
RUN_KEY_HIVES = {
    "perMachine": "HKEY_LOCAL_MACHINE",
    "perUser": "HKEY_CURRENT_USER",
}
START_MENU_SUFFIX = ("Microsoft", "Windows", "Start Menu", "Programs")
PAYLOAD_MARKER_NAME = "current-payload.json"
UPDATE_EXE_NAME = "Update.exe"


@dataclass(frozen=True)
class KnownFolders:
    program_files: str
    program_files_x86: str
    local_app_data: str
    app_data: str
    program_data: str
    public: str
    user_profile: str
    windows_paths: bool = True

    @classmethod
    def from_environ(cls, environ: Optional[Mapping[str, str]] = None) -> "KnownFolders":
        env = os.environ if environ is None else environ

        def _get(key: str, default: str) -> str:
            return str(env.get(key) or default)

        program_files = _get("ProgramFiles", r"C:\Program Files")
        user_profile = _get("USERPROFILE", r"C:\Users\Default")
        return cls(
            program_files=program_files,
            program_files_x86=_get("ProgramFiles(x86)", program_files),
            local_app_data=_get("LOCALAPPDATA", user_profile + r"\AppData\Local"),
            app_data=_get("APPDATA", user_profile + r"\AppData\Roaming"),
            program_data=_get("ProgramData", r"C:\ProgramData"),
            public=_get("PUBLIC", r"C:\Users\Public"),
            user_profile=user_profile,
        )

    @classmethod
    def under(cls, root: str) -> "KnownFolders":
        """A sandboxed folder set below ``root`` using native path syntax."""
        base = PurePosixPath(root) if os.sep == "/" else PureWindowsPath(root)
        return cls(
            program_files=str(base / "Program Files"),
            program_files_x86=str(base / "Program Files (x86)"),
            local_app_data=str(base / "Users" / "tester" / "AppData" / "Local"),
            app_data=str(base / "Users" / "tester" / "AppData" / "Roaming"),
            program_data=str(base / "ProgramData"),
            public=str(base / "Users" / "Public"),
            user_profile=str(base / "Users" / "tester"),
            windows_paths=os.sep != "/",
        )

    @property
    def path_type(self) -> Type[PurePath]:
        return PureWindowsPath if self.windows_paths else PurePosixPath


@dataclass(frozen=True)
class InstallTopology:
    arch: str
    scope: str
    app_root_folder: str
    app_folder: str
    stub_exe: str
    app_exe: str
    payload_marker: str
    update_exe: Optional[str]
    start_menu_shortcut: str
    desktop_shortcut: str
    shortcut_target: str
    registry_run_key: Optional[str]
    registry_run_value: Optional[str]
    app_user_model_id: str
    product_entry_name: str
    installer_entry_name: str
    compliant_version: str

    @property
    def entry_points(self) -> Dict[str, str]:
        """Every stable way of starting the app, keyed by a display name.

        Values are what gets launched: the stub itself or the .lnk file.
        """
        points = {
            "stubExe": self.stub_exe,
            "start menu shortcut": self.start_menu_shortcut,
            "desktop shortcut": self.desktop_shortcut,
        }
        if self.registry_run_key is not None:
            points["auto-launch key"] = self.stub_exe
        return points

    @property
    def entry_point_targets(self) -> Dict[str, Optional[str]]:
        """The absolute path each entry point references; all equal ``stub_exe``."""
        targets: Dict[str, Optional[str]] = {
            "stubExe": self.stub_exe,
            "start menu shortcut": self.shortcut_target,
            "desktop shortcut": self.shortcut_target,
        }
        if self.registry_run_key is not None:
            targets["auto-launch key"] = self.registry_run_value
        return targets

    @property
    def residue_paths(self) -> list[str]:
        return [self.app_root_folder, self.start_menu_shortcut, self.desktop_shortcut]

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _scope_label(scope: str) -> str:
    return "Machine" if scope == "perMachine" else "User"


def app_user_model_id(config: PackageConfiguration, policy: str = "shared") -> str:
    if policy not in IDENTITY_POLICIES:
        raise ConfigError(f"Unknown identity policy {policy!r} (expected one of {IDENTITY_POLICIES})")
    base = f"com.squirrel.{config.short_name}.{config.exe_stem}"
    if policy == "per-arch":
        return f"{base}.{config.arch}"
    if policy == "per-scope-arch":
        return f"{base}.{config.scope}.{config.arch}"
    return base


def resolve_topology(
    config: PackageConfiguration,
    folders: Optional[KnownFolders] = None,
    identity_policy: str = "shared",
) -> InstallTopology:
    folders = folders or KnownFolders.from_environ()
    P = folders.path_type

    compliant = to_compliant_version(config.version)
    major, minor, patch = semver_triplet(config.version)

    if config.scope == "perMachine":
        base = folders.program_files_x86 if config.arch == "x86" else folders.program_files
        app_root = P(base) / config.name
        start_menu = P(folders.program_data).joinpath(*START_MENU_SUFFIX)
        desktop = P(folders.public) / "Desktop"
    else:
        # LocalAppData has no x86 twin, so the x86 root is suffixed to stay disjoint.
        root_name = config.name if config.arch == "x64" else f"{config.name} (x86)"
        app_root = P(folders.local_app_data) / root_name
        start_menu = P(folders.app_data).joinpath(*START_MENU_SUFFIX)
        desktop = P(folders.user_profile) / "Desktop"

    app_folder = app_root / f"app-{major}.{minor}.{patch}"
    stub_exe = str(app_root / config.exe)

    run_key: Optional[str] = None
    run_value: Optional[str] = None
    if config.features.auto_launch:
        run_key = f"{RUN_KEY_HIVES[config.scope]}\\{RUN_KEY_SUFFIX}"
        run_value = stub_exe

    scope_label = _scope_label(config.scope)
    return InstallTopology(
        arch=config.arch,
        scope=config.scope,
        app_root_folder=str(app_root),
        app_folder=str(app_folder),
        stub_exe=stub_exe,
        app_exe=str(app_folder / config.exe),
        payload_marker=str(app_root / PAYLOAD_MARKER_NAME),
        update_exe=str(app_root / UPDATE_EXE_NAME) if config.features.auto_update else None,
        start_menu_shortcut=str(start_menu / f"{config.name}.lnk"),
        desktop_shortcut=str(desktop / f"{config.name}.lnk"),
        shortcut_target=stub_exe,
        registry_run_key=run_key,
        registry_run_value=run_value,
        app_user_model_id=app_user_model_id(config, identity_policy),
        product_entry_name=f"{config.name} ({scope_label})",
        installer_entry_name=f"{config.name} ({scope_label} - MSI)",
        compliant_version=str(compliant),
    )


def _norm(path: str) -> PurePath:
    # Windows paths compare case-insensitively.
    if "\\" in path or path[1:2] == ":":
        return PureWindowsPath(path.lower())
    return PurePosixPath(path)


def _overlaps(a: PurePath, b: PurePath) -> bool:
    return a == b or a in b.parents or b in a.parents


_DISJOINT_FIELDS = ("app_root_folder", "stub_exe", "app_folder", "payload_marker")


def assert_disjoint(topologies: Iterable[InstallTopology]) -> None:
    """Raise TopologyCollisionError if distinct (arch, scope) targets overlap on disk.

    Topologies that share (arch, scope) are allowed to overlap; they describe the
    same install target with different versions or feature flags.
    """

    items: Sequence[InstallTopology] = list(topologies)

    for i, first in enumerate(items):
        for second in items[i + 1:]:
            if (first.arch, first.scope) == (second.arch, second.scope):
                continue
            for field_name in _DISJOINT_FIELDS:
                a = getattr(first, field_name)
                b = getattr(second, field_name)
                if _overlaps(_norm(a), _norm(b)):
                    raise TopologyCollisionError(
                        field_name,
                        a,
                        f"{first.arch}/{first.scope}",
                        f"{second.arch}/{second.scope}",
                    )
