from __future__ import annotations

from ..pass_context import PassContext


class CheckRegistryStep:
    step_id = "40_check_registry"

    def run(self, ctx: PassContext) -> PassContext:
        topo = ctx.topology
        registry = ctx.collaborators.registry

        # The product entry reports the raw version, the MSI entry the compliant one.
        for entry, version in (
            (topo.product_entry_name, ctx.config.version),
            (topo.installer_entry_name, topo.compliant_version),
        ):
            ctx.record(
                "registry-presence",
                f"registry entry {entry} @ {version}",
                expected=True,
                observed=registry.entry_exists(entry, version),
            )
        return ctx
