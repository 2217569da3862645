from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .errors import ConfigError, TopologyCollisionError, VersionFormatError
from .journal import ResultJournal
from .lib.fs import LocalFilesystemProbe
from .lib.installer import MsiexecInvoker
from .lib.packager import CommandPackager
from .lib.process import WindowsProcessControl
from .lib.registry import WindowsRegistryReader
from .logging_utils import configure_logging
from .orchestrator import LifecycleOrchestrator, SuiteReport
from .pass_context import Collaborators
from .report_store import save_report
from .suite_config import SuiteConfig, load_suite_config
from .topology import KnownFolders, assert_disjoint, resolve_topology
from .verification import VerificationEngine

logger = logging.getLogger(__name__)


DEFAULT_SUITE_CONFIG = "suite_config.yaml"

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_HALTED = 2


def build_collaborators(cfg: SuiteConfig) -> Collaborators:
    timeouts = cfg.timeouts
    return Collaborators(
        packager=CommandPackager(
            command=cfg.packager_command,
            staging_dir=cfg.staging_dir,
            out_dir=cfg.out_dir,
            package_name=cfg.package_name,
            timeout_s=cfg.packager_timeout_s,
        ),
        installer=MsiexecInvoker(
            install_timeout_s=timeouts.install_s,
            uninstall_timeout_s=timeouts.uninstall_s,
            log_dir=str(Path(cfg.out_dir) / "msiexec-logs"),
        ),
        registry=WindowsRegistryReader(),
        processes=WindowsProcessControl(),
        fs=LocalFilesystemProbe(),
    )


def build_engine(cfg: SuiteConfig, collaborators: Collaborators, folders: Optional[KnownFolders] = None) -> VerificationEngine:
    return VerificationEngine(
        collaborators,
        folders=folders or KnownFolders.from_environ(),
        identity_policy=cfg.identity_policy,
        timeouts=cfg.timeouts,
        harness_app_dir=cfg.harness_app_dir,
        staging_dir=cfg.staging_dir,
        stub_source=cfg.stub_source,
        update_source=cfg.update_source,
        journal=ResultJournal.default_for_dir(Path(cfg.out_dir)),
    )


def resolve_only(cfg: SuiteConfig, *, arch: Optional[str], scope: Optional[str]) -> Dict[str, Any]:
    folders = KnownFolders.from_environ()
    topologies = {}
    for config in cfg.configurations(arch=arch, scope=scope):
        topologies[config.label] = resolve_topology(config, folders, cfg.identity_policy)
    assert_disjoint(topologies.values())
    return {label: t.as_dict() for label, t in topologies.items()}


def run(
    *,
    config_path: str = DEFAULT_SUITE_CONFIG,
    report_path: Optional[str] = None,
    log_path: Optional[str] = None,
    arch: Optional[str] = None,
    scope: Optional[str] = None,
    verbose: bool = False,
) -> SuiteReport:
    """Run the configured install/verify/uninstall matrix and persist the report."""

    cfg = load_suite_config(config_path)
    actual_log_path = configure_logging(
        log_path=log_path or cfg.log_path,
        console_level=logging.DEBUG if verbose else logging.INFO,
    )

    engine = build_engine(cfg, build_collaborators(cfg))
    orchestrator = LifecycleOrchestrator(engine, cycles=cfg.cycles)

    report = SuiteReport()
    try:
        report = orchestrator.run(cfg.configurations(arch=arch, scope=scope))
        return report
    except Exception:
        logger.exception("Suite failed")
        raise
    finally:
        data = report.as_dict()
        data["log_path"] = actual_log_path
        save_report(report_path or cfg.report_path, data)


def main(argv: Optional[list[str]] = None) -> int:
    p = argparse.ArgumentParser(prog="msi-lifecycle")
    p.add_argument("--config", default=DEFAULT_SUITE_CONFIG, help="Suite config (yaml)")
    p.add_argument("--report", default=None, help="Report path (json|yaml); defaults to paths.report")
    p.add_argument("--log", default=None, help="Log path; defaults to paths.log")
    p.add_argument("--arch", choices=["x86", "x64"], default=None, help="Only run one architecture")
    p.add_argument("--scope", choices=["perMachine", "perUser"], default=None, help="Only run one scope")
    p.add_argument("--only-resolve", action="store_true", help="Print resolved topologies and exit")
    p.add_argument("-v", "--verbose", action="store_true", help="Show debug output on the console")

    args = p.parse_args(argv)

    if args.only_resolve:
        try:
            resolved = resolve_only(load_suite_config(args.config), arch=args.arch, scope=args.scope)
        except (ConfigError, TopologyCollisionError, VersionFormatError) as e:
            print(f"error: {e}", file=sys.stderr)
            return EXIT_HALTED
        sys.stdout.write(yaml.safe_dump(resolved, sort_keys=False))
        return EXIT_OK

    try:
        report = run(
            config_path=args.config,
            report_path=args.report,
            log_path=args.log,
            arch=args.arch,
            scope=args.scope,
            verbose=args.verbose,
        )
    except ConfigError as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_HALTED
    if report.halted:
        return EXIT_HALTED
    return EXIT_OK if report.passed else EXIT_FAILED


if __name__ == "__main__":
    raise SystemExit(main())
