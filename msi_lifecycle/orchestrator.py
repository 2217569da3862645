"""Runs verification passes over the arch x features x scope matrix.

Registry product entries and app roots are global per (product, scope), so passes
run strictly one after another and each must end back in ``absent`` before the
next begins. A pass that leaves residue shows up as a failed baseline in the next
one, which is how collisions the resolver failed to prevent get caught.
"""

from __future__ import annotations

import contextlib
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional, Set, Tuple

from .errors import ConfigError, LifecycleError, TopologyCollisionError, VersionFormatError
from .lib.installer import MSI_NOT_INSTALLED, MSI_SUCCESS_CODES
from .lifecycle_state import ABSENT
from .package_config import ARCHES, SCOPES, PackageConfiguration
from .topology import InstallTopology, assert_disjoint
from .verification import PassOutcome, VerificationEngine

logger = logging.getLogger(__name__)


class ScopeLock:
    """Refuses a second pass for a (product, scope) while one is running."""

    def __init__(self) -> None:
        self._held: Set[Tuple[str, str]] = set()

    @contextlib.contextmanager
    def hold(self, product: str, scope: str) -> Iterator[None]:
        key = (product.lower(), scope)
        if key in self._held:
            raise LifecycleError(f"A pass for {product} ({scope}) is already running")
        self._held.add(key)
        try:
            yield
        finally:
            self._held.discard(key)


@dataclass
class SuiteReport:
    outcomes: List[PassOutcome] = field(default_factory=list)
    skipped: List[Dict[str, str]] = field(default_factory=list)
    halted: Optional[str] = None

    @property
    def passed(self) -> bool:
        return self.halted is None and not self.skipped and all(o.passed for o in self.outcomes)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "passed": self.passed,
            "halted": self.halted,
            "skipped": list(self.skipped),
            "passes": [o.as_dict() for o in self.outcomes],
        }


class LifecycleOrchestrator:
    def __init__(self, engine: VerificationEngine, *, cycles: int = 1, lock: Optional[ScopeLock] = None) -> None:
        if cycles < 1:
            raise ConfigError("cycles must be >= 1")
        self.engine = engine
        self.cycles = cycles
        self.lock = lock or ScopeLock()

    @property
    def _collab(self):
        return self.engine.collaborators

    def plan(
        self, configs: Iterable[PackageConfiguration]
    ) -> Tuple[List[Tuple[PackageConfiguration, InstallTopology]], List[Dict[str, str]]]:
        """Resolve every configuration up front; unusable ones are skipped, collisions raise.

        ``configs`` is drained before anything is resolved, so a ConfigError raised
        while building the matrix (e.g. an invalid product name) reaches the caller.
        """

        matrix = list(configs)
        planned: List[Tuple[PackageConfiguration, InstallTopology]] = []
        skipped: List[Dict[str, str]] = []
        for config in matrix:
            try:
                planned.append((config, self.engine.resolve(config)))
            except (VersionFormatError, ConfigError) as e:
                logger.error("Skipping %s: %s", config.label, e)
                skipped.append({"config": config.label, "reason": str(e)})

        assert_disjoint(t for _, t in planned)
        return planned, skipped

    def _all_targets(self, planned: List[Tuple[PackageConfiguration, InstallTopology]]) -> List[InstallTopology]:
        # Every arch/scope of each product, tested or not, so stale installs cannot leak in.
        seen: Dict[Tuple[str, str, str], InstallTopology] = {}
        for config, _ in planned:
            for arch in ARCHES:
                for scope in SCOPES:
                    key = (config.name, arch, scope)
                    if key not in seen:
                        seen[key] = self.engine.resolve(config.with_target(arch=arch, scope=scope))
        return list(seen.values())

    def _uninstall_by_name(self, entry: str, purpose: str) -> None:
        code = self._collab.installer.uninstall_by_display_name(entry)
        if code == MSI_NOT_INSTALLED:
            logger.info("%s: %s was not installed", purpose, entry)
        elif code not in MSI_SUCCESS_CODES:
            logger.warning("%s: uninstall of %s exited with %d", purpose, entry, code)

    def prepare_baseline(self, planned: List[Tuple[PackageConfiguration, InstallTopology]]) -> None:
        """Best-effort removal of stale installs. Never raises; a failure shows up in the next baseline check."""

        registry = self._collab.registry
        fs = self._collab.fs

        done: Set[str] = set()
        for topo in self._all_targets(planned):
            entry = topo.installer_entry_name
            try:
                if entry not in done and registry.entry_exists(entry):
                    logger.info("Baseline: removing leftover install %s", entry)
                    self._uninstall_by_name(entry, "Baseline")
            except Exception:
                logger.warning("Baseline: uninstall of %s failed", entry, exc_info=True)
            done.add(entry)

            try:
                if fs.exists(topo.app_root_folder):
                    fs.remove_tree(topo.app_root_folder)
            except Exception:
                logger.warning("Baseline: could not remove %s", topo.app_root_folder, exc_info=True)

    def cleanup(self, topology: InstallTopology) -> None:
        """Best-effort return to absent after a failed pass. Never raises."""

        registry = self._collab.registry
        fs = self._collab.fs

        for entry in (topology.installer_entry_name, topology.product_entry_name):
            try:
                if registry.entry_exists(entry):
                    logger.info("Cleanup: uninstalling %s", entry)
                    self._uninstall_by_name(entry, "Cleanup")
            except Exception:
                logger.warning("Cleanup: uninstall of %s failed", entry, exc_info=True)

        for path in topology.residue_paths:
            try:
                if fs.exists(path):
                    fs.remove_tree(path)
            except Exception:
                logger.warning("Cleanup: could not remove %s", path, exc_info=True)

    def run(self, configs: Iterable[PackageConfiguration]) -> SuiteReport:
        report = SuiteReport()
        try:
            planned, report.skipped = self.plan(configs)
        except (TopologyCollisionError, ConfigError) as e:
            logger.error("Suite halted: %s", e)
            report.halted = str(e)
            return report

        self.prepare_baseline(planned)

        for config, topology in planned:
            logger.info("=== %s ===", config.label)
            with self.lock.hold(config.name, config.scope):
                for cycle in range(1, self.cycles + 1):
                    outcome = self.engine.run_pass(config, cycle=cycle)
                    report.outcomes.append(outcome)
                    if outcome.error is not None or outcome.final_state != ABSENT or outcome.residue:
                        # The next pass must start from absent.
                        self.cleanup(topology)
                        if outcome.error is not None:
                            # Fatal for this configuration; later cycles would only repeat it.
                            break

        failed = sum(1 for o in report.outcomes if not o.passed)
        logger.info(
            "Suite finished: %d pass(es), %d failed, %d skipped",
            len(report.outcomes),
            failed,
            len(report.skipped),
        )
        return report
