from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

import yaml

from .errors import ConfigError
from .package_config import ARCHES, SCOPES, FeatureFlags, PackageConfiguration
from .pass_context import Timeouts
from .topology import IDENTITY_POLICIES

DEFAULT_FEATURES: List[Dict[str, bool]] = [{"autoUpdate": False, "autoLaunch": True}]


def _section(raw: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = raw.get(key) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"suite config: {key} must be a mapping")
    return value


@dataclass(frozen=True)
class SuiteConfig:
    raw: Dict[str, Any]

    @property
    def product(self) -> Dict[str, Any]:
        product = _section(self.raw, "product")
        if not product.get("name") or not product.get("version"):
            raise ConfigError("suite config: product.name and product.version are required")
        return product

    @property
    def arches(self) -> List[str]:
        arches = list(_section(self.raw, "matrix").get("arches") or ARCHES)
        bad = [a for a in arches if a not in ARCHES]
        if bad:
            raise ConfigError(f"suite config: unsupported arches {bad}")
        return arches

    @property
    def scopes(self) -> List[str]:
        scopes = list(_section(self.raw, "matrix").get("scopes") or ["perMachine"])
        bad = [s for s in scopes if s not in SCOPES]
        if bad:
            raise ConfigError(f"suite config: unsupported scopes {bad}")
        return scopes

    @property
    def feature_sets(self) -> List[FeatureFlags]:
        raw = _section(self.raw, "matrix").get("features") or DEFAULT_FEATURES
        if not isinstance(raw, list):
            raise ConfigError("suite config: matrix.features must be a list of mappings")
        return [FeatureFlags.from_mapping(f) for f in raw]

    @property
    def identity_policy(self) -> str:
        policy = str(self.raw.get("identity_policy") or "shared")
        if policy not in IDENTITY_POLICIES:
            raise ConfigError(f"suite config: identity_policy must be one of {IDENTITY_POLICIES}")
        return policy

    @property
    def cycles(self) -> int:
        try:
            cycles = int(self.raw.get("cycles", 1))
        except (TypeError, ValueError) as e:
            raise ConfigError("suite config: cycles must be an integer") from e
        if cycles < 1:
            raise ConfigError("suite config: cycles must be >= 1")
        return cycles

    @property
    def timeouts(self) -> Timeouts:
        t = _section(self.raw, "timeouts")
        defaults = Timeouts()
        try:
            return Timeouts(
                install_s=float(t.get("install_s", defaults.install_s)),
                uninstall_s=float(t.get("uninstall_s", defaults.uninstall_s)),
                process_start_s=float(t.get("process_start_s", defaults.process_start_s)),
                process_exit_s=float(t.get("process_exit_s", defaults.process_exit_s)),
                poll_interval_s=float(t.get("poll_interval_s", defaults.poll_interval_s)),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"suite config: bad timeout value: {e}") from e

    def _path(self, key: str, default: Optional[str]) -> Optional[str]:
        value = _section(self.raw, "paths").get(key)
        return str(value) if value else default

    @property
    def out_dir(self) -> str:
        return self._path("out_dir", "out") or "out"

    @property
    def harness_app_dir(self) -> Optional[str]:
        return self._path("harness_app_dir", None)

    @property
    def staging_dir(self) -> str:
        return self._path("staging_dir", str(Path(self.out_dir) / "staging")) or ""

    @property
    def stub_source(self) -> Optional[str]:
        return self._path("stub_source", None)

    @property
    def update_source(self) -> Optional[str]:
        return self._path("update_source", None)

    @property
    def report_path(self) -> str:
        return self._path("report", str(Path(self.out_dir) / "report.json")) or ""

    @property
    def log_path(self) -> str:
        return self._path("log", str(Path(self.out_dir) / "msi-lifecycle.log")) or ""

    @property
    def packager_command(self) -> List[str]:
        command = _section(self.raw, "packager").get("command") or []
        if isinstance(command, str) or not isinstance(command, list):
            raise ConfigError("suite config: packager.command must be an argv list")
        return [str(c) for c in command]

    @property
    def package_name(self) -> str:
        return str(_section(self.raw, "packager").get("package_name") or "{name}.msi")

    @property
    def packager_timeout_s(self) -> float:
        return float(_section(self.raw, "packager").get("timeout_s") or 600.0)

    def configurations(
        self,
        *,
        arch: Optional[str] = None,
        scope: Optional[str] = None,
    ) -> Iterator[PackageConfiguration]:
        """Matrix in execution order: arch, then feature set, then scope."""

        product = self.product
        for a in self.arches:
            if arch and a != arch:
                continue
            for features in self.feature_sets:
                for s in self.scopes:
                    if scope and s != scope:
                        continue
                    yield PackageConfiguration(
                        name=str(product["name"]),
                        version=str(product["version"]),
                        arch=a,  # type: ignore[arg-type]
                        features=features,
                        scope=s,  # type: ignore[arg-type]
                        exe=str(product.get("exe") or ""),
                        short_name=str(product.get("short_name") or ""),
                        manufacturer=str(product.get("manufacturer") or ""),
                    )


def load_suite_config(path: str) -> SuiteConfig:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(path)

    if p.suffix.lower() not in {".yaml", ".yml"}:
        raise ConfigError("suite config must be YAML")

    raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise ConfigError("suite config must contain a mapping/object")

    return SuiteConfig(raw=raw)
