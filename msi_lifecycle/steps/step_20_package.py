from __future__ import annotations

import logging

from ..pass_context import PassContext
from ..stub import stage_payload

logger = logging.getLogger(__name__)


class PackageStep:
    step_id = "20_package"

    def run(self, ctx: PassContext) -> PassContext:
        if ctx.staging_dir and ctx.harness_app_dir:
            stage_payload(
                ctx.topology,
                version=ctx.config.version,
                payload_dir=ctx.harness_app_dir,
                staging_dir=ctx.staging_dir,
                stub_source=ctx.stub_source,
                update_source=ctx.update_source,
            )

        ctx.package_file = ctx.collaborators.packager.build(ctx.config)
        logger.info("Package ready: %s", ctx.package_file)
        return ctx
