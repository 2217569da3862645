from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Literal, Optional, Sequence

CheckKind = Literal[
    "registry-presence",
    "file-presence",
    "shortcut-presence",
    "registry-value-match",
    "process-resolution",
    "tree-equality",
    "residue-absence",
]


@dataclass(frozen=True)
class VerificationResult:
    kind: CheckKind
    check: str
    expected: Any
    observed: Any
    passed: bool
    state: str = ""
    detail: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "kind": self.kind,
            "check": self.check,
            "expected": self.expected,
            "observed": self.observed,
            "passed": self.passed,
            "state": self.state,
        }
        if self.detail:
            d["detail"] = self.detail
        return d


def failures(results: Sequence[VerificationResult]) -> list[VerificationResult]:
    return [r for r in results if not r.passed]


def format_failure(result: VerificationResult) -> str:
    line = f"[{result.state}] {result.kind}: {result.check} (expected {result.expected!r}, observed {result.observed!r})"
    if result.detail:
        line += f" - {result.detail}"
    return line
