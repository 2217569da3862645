from __future__ import annotations

import logging
from pathlib import Path
from typing import Mapping, Protocol, Sequence

from ..package_config import PackageConfiguration
from .command import run_cmd

logger = logging.getLogger(__name__)


class Packager(Protocol):
    def build(self, config: PackageConfiguration) -> str:
        """Build the installable package for ``config`` and return its path."""
        ...


class CommandPackager:
    """Runs an external packaging toolchain described by an argv template.

    Placeholders: {staging} (staged source tree), {out} (output directory),
    {package} (expected package path) and any PackageConfiguration field
    ({name}, {version}, {arch}, {scope}, ...).
    """

    def __init__(
        self,
        *,
        command: Sequence[str],
        staging_dir: str,
        out_dir: str,
        package_name: str = "{name}.msi",
        timeout_s: float = 600.0,
        extra_env: Mapping[str, str] | None = None,
    ) -> None:
        if not command:
            raise ValueError("packager command must not be empty")
        self.command = list(command)
        self.staging_dir = staging_dir
        self.out_dir = out_dir
        self.package_name = package_name
        self.timeout_s = timeout_s
        self.extra_env = dict(extra_env or {})

    def _fields(self, config: PackageConfiguration) -> dict[str, str]:
        fields = {k: str(v) for k, v in config.as_dict().items() if not isinstance(v, dict)}
        fields.update({k: str(v).lower() for k, v in config.features.as_dict().items()})
        fields["staging"] = self.staging_dir
        fields["out"] = self.out_dir
        fields["package"] = str(Path(self.out_dir) / self.package_name.format(**fields))
        return fields

    def build(self, config: PackageConfiguration) -> str:
        fields = self._fields(config)
        Path(self.out_dir).mkdir(parents=True, exist_ok=True)
        argv = [part.format(**fields) for part in self.command]
        run_cmd(argv, env=self.extra_env, timeout_s=self.timeout_s)

        package = fields["package"]
        if not Path(package).exists():
            raise RuntimeError(f"Packager finished but {package} was not produced")
        logger.info("Built package %s for %s", package, config.label)
        return package
