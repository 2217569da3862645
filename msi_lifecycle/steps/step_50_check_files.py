from __future__ import annotations

import logging

from ..pass_context import PassContext

logger = logging.getLogger(__name__)


class CheckFilesStep:
    step_id = "50_check_files"

    def run(self, ctx: PassContext) -> PassContext:
        topo = ctx.topology
        fs = ctx.collaborators.fs

        paths = [topo.stub_exe, topo.app_folder, topo.app_exe, topo.payload_marker]
        if topo.update_exe:
            paths.append(topo.update_exe)
        for path in paths:
            ctx.record("file-presence", f"{path} exists", expected=True, observed=fs.exists(path))

        if ctx.harness_app_dir:
            ctx.record(
                "tree-equality",
                f"{topo.app_folder} matches {ctx.harness_app_dir}",
                expected=True,
                observed=fs.trees_equal(ctx.harness_app_dir, topo.app_folder),
            )
        else:
            logger.info("No reference payload configured; skipping tree comparison")
        return ctx
