from .step_10_baseline import BaselineStep
from .step_20_package import PackageStep
from .step_30_install import InstallStep
from .step_40_check_registry import CheckRegistryStep
from .step_50_check_files import CheckFilesStep
from .step_60_check_shortcuts import CheckShortcutsStep
from .step_65_check_run_key import CheckRunKeyStep
from .step_70_check_entry_points import CheckEntryPointsStep
from .step_80_uninstall import UninstallStep
from .step_90_check_absent import CheckAbsentStep

__all__ = [
    "BaselineStep",
    "PackageStep",
    "InstallStep",
    "CheckRegistryStep",
    "CheckFilesStep",
    "CheckShortcutsStep",
    "CheckRunKeyStep",
    "CheckEntryPointsStep",
    "UninstallStep",
    "CheckAbsentStep",
]
