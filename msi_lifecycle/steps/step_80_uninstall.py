from __future__ import annotations

import logging
import subprocess

from ..errors import InstallerExitError, UninstallTimeoutError
from ..lib.installer import MSI_NOT_INSTALLED, MSI_SUCCESS_CODES
from ..lifecycle_state import ABSENT, UNINSTALLING
from ..pass_context import PassContext

logger = logging.getLogger(__name__)


class UninstallStep:
    step_id = "80_uninstall"

    def run(self, ctx: PassContext) -> PassContext:
        if not ctx.package_file:
            raise RuntimeError("No package file; 20_package must run before 80_uninstall")

        ctx.tracker.transition(UNINSTALLING)
        try:
            code = ctx.collaborators.installer.uninstall(ctx.package_file)
        except subprocess.TimeoutExpired as e:
            raise UninstallTimeoutError(ctx.package_file, ctx.timeouts.uninstall_s) from e

        if code == MSI_NOT_INSTALLED:
            logger.warning("Installer reports %s was not installed", ctx.package_file)
        elif code not in MSI_SUCCESS_CODES:
            raise InstallerExitError("uninstall", ctx.package_file, code)

        ctx.tracker.transition(ABSENT)
        logger.info("Uninstalled %s (exit %d)", ctx.package_file, code)
        return ctx
