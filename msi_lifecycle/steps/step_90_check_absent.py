from __future__ import annotations

import logging

from ..pass_context import PassContext

logger = logging.getLogger(__name__)

BEFORE_INSTALL = "before install"
AFTER_UNINSTALL = "after uninstall"


def record_absence(ctx: PassContext, *, when: str) -> int:
    """Record one check per location that must not exist. Returns the number of leftovers."""

    topo = ctx.topology
    registry = ctx.collaborators.registry
    fs = ctx.collaborators.fs
    leftovers = 0

    for entry in (topo.product_entry_name, topo.installer_entry_name):
        present = registry.entry_exists(entry)
        ctx.record("registry-presence", f"{when}: registry entry {entry} absent", expected=False, observed=present)
        leftovers += int(present)

    for path in topo.residue_paths:
        present = fs.exists(path)
        ctx.record("residue-absence", f"{when}: {path} absent", expected=False, observed=present)
        leftovers += int(present)

    if topo.registry_run_key is not None:
        value = registry.read_value(topo.registry_run_key, topo.app_user_model_id)
        ctx.record(
            "registry-value-match",
            f"{when}: run value {topo.app_user_model_id} absent",
            expected=None,
            observed=value,
        )
        leftovers += int(value is not None)

    return leftovers


class CheckAbsentStep:
    step_id = "90_check_absent"

    def run(self, ctx: PassContext) -> PassContext:
        leftovers = record_absence(ctx, when=AFTER_UNINSTALL)
        if leftovers:
            logger.warning("%d location(s) survived uninstall of %s", leftovers, ctx.config.label)
        else:
            logger.info("Uninstall left no residue")
        return ctx
