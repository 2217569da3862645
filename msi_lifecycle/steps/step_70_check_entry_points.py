from __future__ import annotations

import logging
import subprocess
from typing import Optional

from ..errors import PayloadResolutionError, ProcessResolutionMismatchError
from ..lib.command import wait_until
from ..lifecycle_state import verified_entry
from ..pass_context import PassContext
from ..stub import resolve_payload

logger = logging.getLogger(__name__)

# What the process adapters raise when tasklist/PowerShell/taskkill misbehave.
PROCESS_ERRORS = (OSError, RuntimeError, subprocess.TimeoutExpired)


def _describe(e: BaseException) -> str:
    return f"{type(e).__name__}: {e}"


class CheckEntryPointsStep:
    """Launch every entry point and confirm it ends up running app_exe.

    Each launched process is killed and confirmed gone before the next entry point,
    so a leftover instance can never satisfy the following check. A failing process
    query is recorded against the entry point being checked; the remaining entry
    points are still checked.
    """

    step_id = "70_check_entry_points"

    def _wait(self, ctx: PassContext, predicate, timeout_s: float) -> bool:
        return wait_until(
            predicate,
            timeout_s=timeout_s,
            interval_s=ctx.timeouts.poll_interval_s,
            sleep=ctx.sleep,
        )

    def _stop(self, ctx: PassContext) -> Optional[str]:
        """Kill the app and wait for it to go away. Returns why it is still running, if it is."""

        processes = ctx.collaborators.processes
        exe = ctx.config.exe
        try:
            processes.kill(exe)
            if self._wait(ctx, lambda: not processes.is_running(exe), ctx.timeouts.process_exit_s):
                return None
        except PROCESS_ERRORS as e:
            logger.warning("Could not stop %s: %s", exe, e)
            return f"stop failed: {_describe(e)}"
        return "process still running after kill"

    def _diagnose_no_start(self, ctx: PassContext) -> str:
        try:
            payload = resolve_payload(ctx.topology.payload_marker, ctx.collaborators.fs)
        except PayloadResolutionError as e:
            return _describe(e)
        return f"process {ctx.config.exe} did not start (stub pointer resolves to {payload})"

    def _entry_points(self, ctx: PassContext) -> dict[str, Optional[str]]:
        points: dict[str, Optional[str]] = dict(ctx.topology.entry_points)
        if ctx.topology.registry_run_key is not None:
            # Launch what the registry actually holds, not what we expect it to hold.
            points["auto-launch key"] = ctx.collaborators.registry.read_value(
                ctx.topology.registry_run_key, ctx.topology.app_user_model_id
            )
        return points

    def _observe(self, ctx: PassContext, name: str, check: str) -> None:
        processes = ctx.collaborators.processes
        exe = ctx.config.exe
        expected = ctx.topology.app_exe

        if not self._wait(ctx, lambda: processes.is_running(exe), ctx.timeouts.process_start_s):
            ctx.record(
                "process-resolution",
                check,
                expected=expected,
                observed=None,
                detail=self._diagnose_no_start(ctx),
            )
            return

        observed = processes.resolved_path(exe)
        detail = None
        if observed != expected:
            detail = str(ProcessResolutionMismatchError(name, expected, observed))
        ctx.record("process-resolution", check, expected=expected, observed=observed, detail=detail)

    def _check_point(self, ctx: PassContext, name: str, path: Optional[str]) -> None:
        processes = ctx.collaborators.processes
        exe = ctx.config.exe
        expected = ctx.topology.app_exe
        check = f"runs the correct binary via {name}"

        if not path:
            ctx.record("process-resolution", check, expected=expected, observed=None, detail="entry point has no path")
            return

        try:
            processes.launch(path)
        except PROCESS_ERRORS as e:
            ctx.record("process-resolution", check, expected=expected, observed=None, detail=f"launch failed: {e}")
            return

        try:
            self._observe(ctx, name, check)
        except PROCESS_ERRORS as e:
            ctx.record(
                "process-resolution",
                check,
                expected=expected,
                observed=None,
                detail=f"process query failed: {_describe(e)}",
            )
        finally:
            still_running = self._stop(ctx)
            if still_running:
                ctx.record(
                    "process-resolution",
                    f"{name}: {exe} terminated",
                    expected=False,
                    observed=True,
                    detail=still_running,
                )

    def run(self, ctx: PassContext) -> PassContext:
        exe = ctx.config.exe
        try:
            already_running = ctx.collaborators.processes.is_running(exe)
        except PROCESS_ERRORS as e:
            logger.warning("Could not tell whether %s is already running: %s", exe, e)
            already_running = True
        if already_running:
            logger.warning("%s may already be running before entry point checks; killing it", exe)
            self._stop(ctx)

        for name, path in self._entry_points(ctx).items():
            ctx.tracker.transition(verified_entry(name))
            logger.info("Checking entry point %s -> %s", name, path)
            self._check_point(ctx, name, path)
        return ctx
