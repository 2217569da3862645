"""Lifecycle states of one verification pass.

absent -> installing -> installed -> verified-entry/<point>* -> uninstalling -> absent

A pass moves forward only; a finished pass is back in ``absent`` and the next pass
may start from there again (reinstall is always allowed).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List

from .errors import LifecycleStateError

logger = logging.getLogger(__name__)

ABSENT = "absent"
INSTALLING = "installing"
INSTALLED = "installed"
UNINSTALLING = "uninstalling"
VERIFIED_ENTRY_PREFIX = "verified-entry/"

_TRANSITIONS = {
    ABSENT: {INSTALLING},
    INSTALLING: {INSTALLED},
    INSTALLED: {VERIFIED_ENTRY_PREFIX, UNINSTALLING},
    VERIFIED_ENTRY_PREFIX: {VERIFIED_ENTRY_PREFIX, UNINSTALLING},
    UNINSTALLING: {ABSENT},
}


def verified_entry(point: str) -> str:
    return f"{VERIFIED_ENTRY_PREFIX}{point}"


def _family(state: str) -> str:
    return VERIFIED_ENTRY_PREFIX if state.startswith(VERIFIED_ENTRY_PREFIX) else state


@dataclass
class LifecycleTracker:
    state: str = ABSENT
    history: List[str] = field(default_factory=lambda: [ABSENT])

    def can_transition(self, to: str) -> bool:
        return _family(to) in _TRANSITIONS.get(_family(self.state), set())

    def transition(self, to: str) -> None:
        if not self.can_transition(to):
            raise LifecycleStateError(self.state, to)
        logger.debug("Lifecycle %s -> %s", self.state, to)
        self.state = to
        self.history.append(to)

