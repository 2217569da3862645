from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from .errors import ConfigError, TopologyCollisionError, VersionFormatError
from .journal import ResultJournal, journal_event
from .lifecycle_state import LifecycleTracker
from .pass_context import Collaborators, PassContext, Timeouts
from .package_config import PackageConfiguration
from .pipeline import Step, run_pipeline
from .results import VerificationResult, failures, format_failure
from .steps import (
    BaselineStep,
    CheckAbsentStep,
    CheckEntryPointsStep,
    CheckFilesStep,
    CheckRegistryStep,
    CheckRunKeyStep,
    CheckShortcutsStep,
    InstallStep,
    PackageStep,
    UninstallStep,
)
from .steps.step_90_check_absent import AFTER_UNINSTALL
from .topology import InstallTopology, KnownFolders, resolve_topology

logger = logging.getLogger(__name__)

# Errors that say the configuration itself is unusable; they are never turned
# into a failed pass.
STRUCTURAL_ERRORS = (VersionFormatError, TopologyCollisionError, ConfigError)


def build_steps() -> List[Step]:
    return [
        BaselineStep(),
        PackageStep(),
        InstallStep(),
        CheckRegistryStep(),
        CheckFilesStep(),
        CheckShortcutsStep(),
        CheckRunKeyStep(),
        CheckEntryPointsStep(),
        UninstallStep(),
        CheckAbsentStep(),
    ]


@dataclass
class PassOutcome:
    config: PackageConfiguration
    topology: InstallTopology
    cycle: int
    results: List[VerificationResult]
    ran_steps: List[str]
    final_state: str
    error: Optional[BaseException] = None
    history: List[str] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return self.error is None and not failures(self.results)

    @property
    def residue(self) -> List[VerificationResult]:
        """Absence checks that failed after the uninstall step."""
        return [r for r in failures(self.results) if r.check.startswith(f"{AFTER_UNINSTALL}:")]

    def as_dict(self) -> Dict[str, Any]:
        return {
            "config": self.config.as_dict(),
            "cycle": self.cycle,
            "passed": self.passed,
            "final_state": self.final_state,
            "history": list(self.history),
            "ran_steps": list(self.ran_steps),
            "error": f"{type(self.error).__name__}: {self.error}" if self.error else None,
            "results": [r.as_dict() for r in self.results],
        }


class VerificationEngine:
    """Drives absent -> installed -> verified -> absent for one configuration at a time."""

    def __init__(
        self,
        collaborators: Collaborators,
        *,
        folders: Optional[KnownFolders] = None,
        identity_policy: str = "shared",
        timeouts: Optional[Timeouts] = None,
        harness_app_dir: Optional[str] = None,
        staging_dir: Optional[str] = None,
        stub_source: Optional[str] = None,
        update_source: Optional[str] = None,
        journal: Optional[ResultJournal] = None,
        steps: Optional[Sequence[Step]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.collaborators = collaborators
        self.folders = folders
        self.identity_policy = identity_policy
        self.timeouts = timeouts or Timeouts()
        self.harness_app_dir = harness_app_dir
        self.staging_dir = staging_dir
        self.stub_source = stub_source
        self.update_source = update_source
        self.journal = journal
        self.steps = list(steps) if steps is not None else build_steps()
        self.sleep = sleep

    def resolve(self, config: PackageConfiguration) -> InstallTopology:
        # Recomputed on every call; topologies are never cached across configurations.
        return resolve_topology(config, self.folders, self.identity_policy)

    def run_pass(
        self,
        config: PackageConfiguration,
        *,
        cycle: int = 1,
        start_at: Optional[str] = None,
        stop_after: Optional[str] = None,
    ) -> PassOutcome:
        """Run one full pass and collect every check.

        Structural errors propagate. Any other failure ends the pass early and is
        returned in ``PassOutcome.error`` together with the checks made so far.
        """

        topology = self.resolve(config)
        ctx = PassContext(
            config=config,
            topology=topology,
            collaborators=self.collaborators,
            timeouts=self.timeouts,
            harness_app_dir=self.harness_app_dir,
            staging_dir=self.staging_dir,
            stub_source=self.stub_source,
            update_source=self.update_source,
            cycle=cycle,
            tracker=LifecycleTracker(),
            sleep=self.sleep,
        )

        ran: List[str] = []
        error: Optional[BaseException] = None
        try:
            result = run_pipeline(ctx=ctx, steps=self.steps, start_at=start_at, stop_after=stop_after)
            ran = result.ran_steps
        except STRUCTURAL_ERRORS:
            raise
        except Exception as e:
            logger.exception("Pass failed for %s (cycle %d) in state %s", config.label, cycle, ctx.tracker.state)
            error = e

        outcome = PassOutcome(
            config=config,
            topology=topology,
            cycle=cycle,
            results=list(ctx.results),
            ran_steps=ran,
            final_state=ctx.tracker.state,
            error=error,
            history=list(ctx.tracker.history),
        )
        self._report(outcome)
        return outcome

    def verify(self, config: PackageConfiguration, scope: Optional[str] = None) -> List[VerificationResult]:
        """Run a pass and return its results; a fatal pass error is re-raised."""

        if scope is not None:
            config = config.with_target(scope=scope)
        outcome = self.run_pass(config)
        if outcome.error is not None:
            raise outcome.error
        return outcome.results

    def _report(self, outcome: PassOutcome) -> None:
        label = outcome.config.label
        failed = failures(outcome.results)
        for r in failed:
            logger.error("[%s] FAIL %s", label, format_failure(r))
        logger.info(
            "[%s] cycle %d: %d checks, %d failed, final state %s",
            label,
            outcome.cycle,
            len(outcome.results),
            len(failed),
            outcome.final_state,
        )

        if self.journal is not None:
            self.journal.log_results(label=label, cycle=outcome.cycle, results=outcome.results)
            if outcome.error is not None:
                self.journal.log(
                    journal_event(action="pass", label=label, cycle=outcome.cycle, ok=False, error=str(outcome.error))
                )
