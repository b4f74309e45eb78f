from .dedup import CreateOutcome, DedupGuard, SourceReference, SourceTag
from .gating import GateDecision, GateVerdict, NotificationGate, NotificationRequest
from .recurrence import RecurrenceExpander, next_occurrence
from .dispatcher import DeliveryDispatcher
from .report import RunReport

__all__ = [
    "CreateOutcome",
    "DedupGuard",
    "SourceReference",
    "SourceTag",
    "GateDecision",
    "GateVerdict",
    "NotificationGate",
    "NotificationRequest",
    "RecurrenceExpander",
    "next_occurrence",
    "DeliveryDispatcher",
    "RunReport",
]
