from __future__ import annotations

from ..pass_context import PassContext
from ..topology import RUN_KEY_HIVES, RUN_KEY_SUFFIX


class CheckRunKeyStep:
    step_id = "65_check_run_key"

    def run(self, ctx: PassContext) -> PassContext:
        topo = ctx.topology
        registry = ctx.collaborators.registry

        if topo.registry_run_key is not None:
            value = registry.read_value(topo.registry_run_key, topo.app_user_model_id)
            ctx.record(
                "registry-value-match",
                f"{topo.registry_run_key}\\{topo.app_user_model_id}",
                expected=topo.registry_run_value,
                observed=value,
            )
        else:
            # Auto-launch off: the Run key must not carry our identity.
            key = f"{RUN_KEY_HIVES[topo.scope]}\\{RUN_KEY_SUFFIX}"
            ctx.record(
                "registry-value-match",
                f"{key}\\{topo.app_user_model_id} absent",
                expected=None,
                observed=registry.read_value(key, topo.app_user_model_id),
            )
        return ctx
