from __future__ import annotations

import logging

from ..pass_context import PassContext
from .step_90_check_absent import BEFORE_INSTALL, record_absence

logger = logging.getLogger(__name__)


class BaselineStep:
    step_id = "10_baseline"

    def run(self, ctx: PassContext) -> PassContext:
        leftovers = record_absence(ctx, when=BEFORE_INSTALL)
        if leftovers:
            # Leftovers mean an earlier pass (maybe another arch) bled into this target.
            logger.warning("Baseline not clean for %s: %d leftover(s)", ctx.config.label, leftovers)
        return ctx
