import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Set, Tuple

import pytest

from msi_lifecycle.errors import PayloadResolutionError
from msi_lifecycle.lib.fs import LocalFilesystemProbe, copy_payload_tree
from msi_lifecycle.package_config import FeatureFlags, PackageConfiguration
from msi_lifecycle.pass_context import Collaborators, Timeouts
from msi_lifecycle.stub import marker_document, resolve_payload, write_payload_marker
from msi_lifecycle.topology import PAYLOAD_MARKER_NAME, InstallTopology, KnownFolders, resolve_topology
from msi_lifecycle.verification import VerificationEngine

STUB_BYTES = b"MZ stub"


@dataclass
class FakeWorld:
    """Registry, process table and package catalogue shared by the fakes."""

    folders: KnownFolders
    harness_app_dir: Path
    identity_policy: str = "shared"
    entries: Set[Tuple[str, str]] = field(default_factory=set)
    run_values: Dict[Tuple[str, str], str] = field(default_factory=dict)
    running: Dict[str, str] = field(default_factory=dict)
    packages: Dict[str, PackageConfiguration] = field(default_factory=dict)
    installed: Dict[str, InstallTopology] = field(default_factory=dict)
    events: list = field(default_factory=list)

    def topology(self, config: PackageConfiguration) -> InstallTopology:
        return resolve_topology(config, self.folders, self.identity_policy)


class FakeFilesystemProbe(LocalFilesystemProbe):
    """Real disk access; a .lnk file holds its target as plain text."""

    def shortcut_target(self, path: str) -> Optional[str]:
        return Path(path).read_text(encoding="utf-8").strip() or None


class FakePackager:
    def __init__(self, world: FakeWorld, out_dir: Path):
        self.world = world
        self.out_dir = out_dir

    def build(self, config: PackageConfiguration) -> str:
        self.out_dir.mkdir(parents=True, exist_ok=True)
        pkg = self.out_dir / f"{config.name}-{config.arch}-{config.scope}.msi"
        pkg.write_text(config.label, encoding="utf-8")
        self.world.packages[str(pkg)] = config
        self.world.events.append(("build", config.arch, config.scope))
        return str(pkg)


class FakeInstaller:
    def __init__(self, world: FakeWorld):
        self.world = world
        self.install_timeout_for: Set[str] = set()
        self.uninstall_timeout = False
        self.install_exit_code = 0
        self.write_marker = True
        self.leave_on_uninstall: Optional[str] = None
        self.run_value_override: Optional[str] = None
        self.shortcut_target_override: Optional[str] = None

    def _materialize(self, config: PackageConfiguration, topo: InstallTopology) -> None:
        copy_payload_tree(str(self.world.harness_app_dir), topo.app_folder)
        Path(topo.stub_exe).write_bytes(STUB_BYTES)
        if self.write_marker:
            write_payload_marker(topo.payload_marker, marker_document(topo, config.version))
        if topo.update_exe:
            Path(topo.update_exe).write_text("update", encoding="utf-8")
        for shortcut in (topo.start_menu_shortcut, topo.desktop_shortcut):
            Path(shortcut).parent.mkdir(parents=True, exist_ok=True)
            Path(shortcut).write_text(self.shortcut_target_override or topo.stub_exe, encoding="utf-8")

        self.world.entries.add((topo.product_entry_name, config.version))
        self.world.entries.add((topo.installer_entry_name, topo.compliant_version))
        if topo.registry_run_key is not None:
            value = self.run_value_override or topo.stub_exe
            self.world.run_values[(topo.registry_run_key, topo.app_user_model_id)] = value

    def _remove(self, topo: InstallTopology) -> None:
        fs = LocalFilesystemProbe()
        for path in topo.residue_paths:
            if path == self.leave_on_uninstall:
                continue
            fs.remove_tree(path)
        self.world.entries = {e for e in self.world.entries if e[0] not in (topo.product_entry_name, topo.installer_entry_name)}
        if topo.registry_run_key is not None:
            self.world.run_values.pop((topo.registry_run_key, topo.app_user_model_id), None)

    def install(self, package_file: str, scope: str) -> int:
        config = self.world.packages[package_file]
        self.world.events.append(("install", config.arch, scope))
        if config.arch in self.install_timeout_for:
            raise subprocess.TimeoutExpired(["msiexec.exe", "/i", package_file], 1.0)
        if self.install_exit_code:
            return self.install_exit_code
        topo = self.world.topology(config)
        self._materialize(config, topo)
        self.world.installed[topo.installer_entry_name] = topo
        return 0

    def uninstall(self, package_file: str) -> int:
        config = self.world.packages[package_file]
        self.world.events.append(("uninstall", config.arch, config.scope))
        if self.uninstall_timeout:
            raise subprocess.TimeoutExpired(["msiexec.exe", "/x", package_file], 1.0)
        topo = self.world.topology(config)
        self._remove(topo)
        self.world.installed.pop(topo.installer_entry_name, None)
        return 0

    def uninstall_by_display_name(self, name: str) -> int:
        self.world.events.append(("uninstall_by_name", name))
        topo = self.world.installed.pop(name, None)
        if topo is None:
            return 1605
        self._remove(topo)
        return 0


class FakeRegistry:
    def __init__(self, world: FakeWorld):
        self.world = world

    def read_value(self, key: str, name: str) -> Optional[str]:
        return self.world.run_values.get((key, name))

    def entry_exists(self, display_name: str, version: Optional[str] = None) -> bool:
        return any(d == display_name and (version is None or v == version) for d, v in self.world.entries)


class FakeProcessControl:
    """Launching a stub or shortcut follows the payload marker like the real stub."""

    def __init__(self, world: FakeWorld):
        self.world = world
        self.stub_keeps_identity = False
        self.ignore_kill = False
        self.launched: list = []

    def launch(self, path: str) -> None:
        self.launched.append(path)
        target = Path(path)
        if target.suffix == ".lnk":
            target = Path(target.read_text(encoding="utf-8"))
        if not target.exists():
            raise OSError(f"cannot launch {target}")

        if target.read_bytes() != STUB_BYTES:
            self.world.running[target.name] = str(target)
            return

        if self.stub_keeps_identity:
            self.world.running[target.name] = str(target)
            return
        try:
            payload = resolve_payload(str(target.parent / PAYLOAD_MARKER_NAME))
        except PayloadResolutionError:
            # The real stub exits non-zero; nothing is left running.
            return
        self.world.running[Path(payload).name] = payload

    def is_running(self, process_name: str) -> bool:
        return process_name in self.world.running

    def resolved_path(self, process_name: str) -> Optional[str]:
        return self.world.running.get(process_name)

    def kill(self, process_name: str) -> None:
        if not self.ignore_kill:
            self.world.running.pop(process_name, None)


@pytest.fixture
def harness_app_dir(tmp_path: Path) -> Path:
    app = tmp_path / "harness" / "app"
    (app / "resources").mkdir(parents=True)
    (app / "HelloWix.exe").write_bytes(b"MZ payload")
    (app / "resources" / "app.asar").write_bytes(b"asar-bytes")
    return app


@pytest.fixture
def folders(tmp_path: Path) -> KnownFolders:
    return KnownFolders.under(str(tmp_path / "system"))


@pytest.fixture
def world(folders: KnownFolders, harness_app_dir: Path) -> FakeWorld:
    return FakeWorld(folders=folders, harness_app_dir=harness_app_dir)


@pytest.fixture
def installer(world: FakeWorld) -> FakeInstaller:
    return FakeInstaller(world)


@pytest.fixture
def processes(world: FakeWorld) -> FakeProcessControl:
    return FakeProcessControl(world)


@pytest.fixture
def collaborators(world: FakeWorld, installer: FakeInstaller, processes: FakeProcessControl, tmp_path: Path) -> Collaborators:
    return Collaborators(
        packager=FakePackager(world, tmp_path / "out"),
        installer=installer,
        registry=FakeRegistry(world),
        processes=processes,
        fs=FakeFilesystemProbe(),
    )


@pytest.fixture
def engine(collaborators: Collaborators, folders: KnownFolders, harness_app_dir: Path) -> VerificationEngine:
    return VerificationEngine(
        collaborators,
        folders=folders,
        timeouts=Timeouts(process_start_s=0.0, process_exit_s=0.0, poll_interval_s=0.0),
        harness_app_dir=str(harness_app_dir),
        sleep=lambda _s: None,
    )


@pytest.fixture
def auto_launch_config() -> PackageConfiguration:
    return PackageConfiguration(
        name="HelloWix",
        version="1.2.3-beta",
        arch="x64",
        features=FeatureFlags(auto_update=False, auto_launch=True),
    )
