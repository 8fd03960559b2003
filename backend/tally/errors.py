"""Error types raised by the propagation engine.

There is no "derivation failed" error: a task whose inputs are still
unknown is a no-op, not a failure. Only storage problems are errors.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from tally.rules import DerivationTask


class TallyError(Exception):
    """Base class for tally errors."""


class StorageError(TallyError):
    """A storage call failed for a specific index."""

    operation = "access"

    def __init__(self, index: int, cause: BaseException):
        self.index = index
        self.cause = cause
        super().__init__(f"failed to {self.operation} index {index}: {cause}")


class StorageReadError(StorageError):
    operation = "read"


class StorageWriteError(StorageError):
    operation = "write"


@dataclass
class TaskFailure:
    """A task that aborted, with the error that aborted it."""

    task: DerivationTask
    error: Exception

    def __str__(self) -> str:
        return f"{self.task}: {self.error}"


class PropagationError(TallyError):
    """All task failures from one propagation run."""

    def __init__(self, failures: list[TaskFailure]):
        self.failures = list(failures)
        lines = "; ".join(str(f) for f in self.failures)
        super().__init__(f"{len(self.failures)} task(s) failed: {lines}")
