from __future__ import annotations

import json
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from .results import VerificationResult


@dataclass(frozen=True)
class ResultJournal:
    """Append-only JSON-lines log of verification results and fatal errors."""

    path: Path

    @classmethod
    def default_for_dir(cls, out_dir: Path) -> "ResultJournal":
        p = Path(out_dir).resolve()
        p.mkdir(parents=True, exist_ok=True)
        return cls(path=p / "results.jsonl")

    def log(self, event: Dict[str, Any]) -> None:
        event = dict(event)
        event.setdefault("ts", time.time())
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(event, sort_keys=True, default=str) + "\n")

    def log_results(self, *, label: str, cycle: int, results: Iterable[VerificationResult]) -> None:
        for r in results:
            self.log(journal_event(action="check", label=label, cycle=cycle, ok=r.passed, details=r.as_dict()))


def journal_event(
    *,
    action: str,
    label: str,
    ok: bool,
    cycle: Optional[int] = None,
    details: Optional[Dict[str, Any]] = None,
    error: Optional[str] = None,
) -> Dict[str, Any]:
    e: Dict[str, Any] = {"action": action, "label": label, "ok": ok}
    if cycle is not None:
        e["cycle"] = cycle
    if details:
        e["details"] = details
    if error:
        e["error"] = error
    return e
