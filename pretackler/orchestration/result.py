"""Batch result data structure."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from pretackler.models.work import ItemOutcome, OutcomeStatus


@dataclass
class BatchResult:
    """Result of a batch run.

    Aggregates terminal outcomes of every enumerated item.
    """

    output_root: Optional[Path] = None
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    retries: int = 0
    duration_seconds: float = 0.0
    outcomes: List[ItemOutcome] = field(default_factory=list)
    errors: List[Dict[str, str]] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.succeeded + self.failed + self.skipped

    @property
    def all_succeeded(self) -> bool:
        return self.failed == 0

    @property
    def exit_code(self) -> int:
        return 0 if self.all_succeeded else 1

    def add(self, outcome: ItemOutcome) -> None:
        """Merge one terminal outcome into the totals."""
        self.outcomes.append(outcome)
        self.retries += outcome.retries
        if outcome.status == OutcomeStatus.SUCCEEDED:
            self.succeeded += 1
        elif outcome.status == OutcomeStatus.SKIPPED:
            self.skipped += 1
        else:
            self.failed += 1
            self.errors.append(
                {"file": str(outcome.path), "error": outcome.reason or "unknown error"}
            )

    def summary_line(self) -> str:
        return f"{self.succeeded} succeeded, {self.failed} failed, {self.skipped} skipped"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "output_root": str(self.output_root) if self.output_root else None,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "retries": self.retries,
            "duration_seconds": round(self.duration_seconds, 3),
            "errors": self.errors,
        }
