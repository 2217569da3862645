from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Literal, Mapping, Optional

from .errors import ConfigError

Arch = Literal["x86", "x64"]
Scope = Literal["perMachine", "perUser"]

ARCHES: tuple[str, ...] = ("x86", "x64")
SCOPES: tuple[str, ...] = ("perMachine", "perUser")


@dataclass(frozen=True)
class FeatureFlags:
    auto_update: bool = False
    auto_launch: bool = False

    @classmethod
    def from_mapping(cls, raw: Optional[Mapping[str, Any]]) -> "FeatureFlags":
        raw = raw or {}
        unknown = set(raw) - {"autoUpdate", "autoLaunch", "auto_update", "auto_launch"}
        if unknown:
            raise ConfigError(f"Unknown feature flags: {', '.join(sorted(unknown))}")
        return cls(
            auto_update=bool(raw.get("autoUpdate", raw.get("auto_update", False))),
            auto_launch=bool(raw.get("autoLaunch", raw.get("auto_launch", False))),
        )

    def as_dict(self) -> Dict[str, bool]:
        return {"autoUpdate": self.auto_update, "autoLaunch": self.auto_launch}


@dataclass(frozen=True)
class PackageConfiguration:
    name: str
    version: str
    arch: Arch = "x64"
    features: FeatureFlags = field(default_factory=FeatureFlags)
    scope: Scope = "perMachine"
    exe: str = ""
    short_name: str = ""
    manufacturer: str = ""

    def __post_init__(self) -> None:
        if not self.name or any(c in self.name for c in '\\/:*?"<>|'):
            raise ConfigError(f"Invalid product name: {self.name!r}")
        if self.arch not in ARCHES:
            raise ConfigError(f"Unsupported arch {self.arch!r} (expected one of {ARCHES})")
        if self.scope not in SCOPES:
            raise ConfigError(f"Unsupported scope {self.scope!r} (expected one of {SCOPES})")

        # Frozen dataclass: derived defaults go through object.__setattr__.
        if not self.exe:
            object.__setattr__(self, "exe", f"{self.name}.exe")
        elif not self.exe.lower().endswith(".exe"):
            object.__setattr__(self, "exe", f"{self.exe}.exe")
        if not self.short_name:
            object.__setattr__(self, "short_name", self.name)
        if not self.manufacturer:
            object.__setattr__(self, "manufacturer", self.name)

    @property
    def exe_stem(self) -> str:
        return self.exe[: -len(".exe")]

    @property
    def label(self) -> str:
        flags = ",".join(k for k, v in self.features.as_dict().items() if v) or "none"
        return f"{self.name}@{self.version} arch:{self.arch} scope:{self.scope} features:{flags}"

    def with_target(self, *, arch: Optional[str] = None, scope: Optional[str] = None) -> "PackageConfiguration":
        return replace(self, arch=arch or self.arch, scope=scope or self.scope)  # type: ignore[arg-type]

    def as_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "arch": self.arch,
            "scope": self.scope,
            "exe": self.exe,
            "short_name": self.short_name,
            "manufacturer": self.manufacturer,
            "features": self.features.as_dict(),
        }
