from __future__ import annotations

import subprocess

from ..pass_context import PassContext


class CheckShortcutsStep:
    step_id = "60_check_shortcuts"

    def run(self, ctx: PassContext) -> PassContext:
        fs = ctx.collaborators.fs
        topo = ctx.topology
        for label, path in (
            ("start menu shortcut", topo.start_menu_shortcut),
            ("desktop shortcut", topo.desktop_shortcut),
        ):
            present = fs.exists(path)
            ctx.record("shortcut-presence", f"{label} {path}", expected=True, observed=present)
            if not present:
                continue

            # The shortcut must launch the stub, never a versioned payload.
            check = f"{label} targets {topo.shortcut_target}"
            try:
                target = fs.shortcut_target(path)
            except (OSError, RuntimeError, subprocess.TimeoutExpired) as e:
                ctx.record(
                    "shortcut-presence",
                    check,
                    expected=topo.shortcut_target,
                    observed=None,
                    detail=f"cannot read shortcut: {type(e).__name__}: {e}",
                )
                continue
            ctx.record("shortcut-presence", check, expected=topo.shortcut_target, observed=target)
        return ctx
