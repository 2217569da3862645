from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence

from .pass_context import PassContext

logger = logging.getLogger(__name__)


class Step(Protocol):
    """A single stage of a verification pass."""

    step_id: str

    def run(self, ctx: PassContext) -> PassContext:
        ...


@dataclass(frozen=True)
class PipelineResult:
    ctx: PassContext
    ran_steps: List[str]


def run_pipeline(
    *,
    ctx: PassContext,
    steps: Sequence[Step],
    start_at: Optional[str] = None,
    stop_after: Optional[str] = None,
) -> PipelineResult:
    """Run steps in order. Exceptions from a step end the pass and propagate."""

    ran: List[str] = []

    started = start_at is None

    for step in steps:
        if not started:
            if step.step_id == start_at:
                started = True
            else:
                continue

        logger.info("[%s] Running step %s", ctx.config.label, step.step_id)
        ctx = step.run(ctx)
        ran.append(step.step_id)

        if stop_after is not None and step.step_id == stop_after:
            logger.info("Stopping after %s", stop_after)
            break

    return PipelineResult(ctx=ctx, ran_steps=ran)
