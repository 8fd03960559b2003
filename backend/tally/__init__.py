"""Rolling tally backfill: fills unknown counts and rolling totals on a timeline."""

from tally.errors import (
    PropagationError,
    StorageError,
    StorageReadError,
    StorageWriteError,
    TallyError,
    TaskFailure,
)
from tally.propagator import PropagationResult, Propagator
from tally.queue import WorkQueue
from tally.records import UNKNOWN, TimelineRecord
from tally.rules import DerivationTask, Role
from tally.storage import (
    InMemoryTimelineStorage,
    JsonFileTimelineStorage,
    TimelineStorage,
)

__all__ = [
    "UNKNOWN",
    "DerivationTask",
    "InMemoryTimelineStorage",
    "JsonFileTimelineStorage",
    "PropagationError",
    "PropagationResult",
    "Propagator",
    "Role",
    "StorageError",
    "StorageReadError",
    "StorageWriteError",
    "TallyError",
    "TaskFailure",
    "TimelineRecord",
    "TimelineStorage",
    "WorkQueue",
]
