from dataclasses import dataclass, field
from typing import Any, Dict


@dataclass
class RunReport:
    """Counters returned by every scheduled action."""

    processed: int = 0
    errors: int = 0
    skipped: int = 0
    details: Dict[str, Any] = field(default_factory=dict)

    def bump(self, key: str, amount: int = 1) -> None:
        self.details[key] = self.details.get(key, 0) + amount

    def merge(self, other: "RunReport") -> "RunReport":
        self.processed += other.processed
        self.errors += other.errors
        self.skipped += other.skipped
        for key, value in other.details.items():
            if isinstance(value, int) and isinstance(self.details.get(key, 0), int):
                self.bump(key, value)
            else:
                self.details[key] = value
        return self
