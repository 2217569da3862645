from __future__ import annotations

import logging
import subprocess

from ..errors import InstallerExitError, InstallTimeoutError
from ..lib.installer import MSI_SUCCESS_CODES
from ..lifecycle_state import INSTALLED, INSTALLING
from ..pass_context import PassContext

logger = logging.getLogger(__name__)


class InstallStep:
    step_id = "30_install"

    def run(self, ctx: PassContext) -> PassContext:
        if not ctx.package_file:
            raise RuntimeError("No package file; 20_package must run before 30_install")

        ctx.tracker.transition(INSTALLING)
        try:
            code = ctx.collaborators.installer.install(ctx.package_file, ctx.config.scope)
        except subprocess.TimeoutExpired as e:
            raise InstallTimeoutError(ctx.package_file, ctx.timeouts.install_s) from e

        if code not in MSI_SUCCESS_CODES:
            raise InstallerExitError("install", ctx.package_file, code)

        ctx.tracker.transition(INSTALLED)
        logger.info("Installed %s (%s, exit %d)", ctx.package_file, ctx.config.scope, code)
        return ctx
