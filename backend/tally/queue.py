"""FIFO work queue of pending derivation tasks."""

from __future__ import annotations

from collections import deque
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from tally.rules import DerivationTask


class WorkQueue:
    """First-in first-out queue of DerivationTasks.

    With ``dedupe=True`` a task equal to one still waiting in the queue is
    dropped on enqueue. Once a task has been dequeued it may be enqueued
    again, since it re-reads storage every time it runs.
    """

    def __init__(self, dedupe: bool = False) -> None:
        self.dedupe = dedupe
        self._items: deque[DerivationTask] = deque()
        self._pending: set[DerivationTask] = set()
        self.enqueued = 0
        self.dropped = 0

    def enqueue(self, *tasks: DerivationTask) -> None:
        for task in tasks:
            if self.dedupe:
                if task in self._pending:
                    self.dropped += 1
                    continue
                self._pending.add(task)
            self._items.append(task)
            self.enqueued += 1

    def dequeue(self) -> DerivationTask | None:
        if not self._items:
            return None
        task = self._items.popleft()
        self._pending.discard(task)
        return task

    def is_empty(self) -> bool:
        return not self._items

    def __len__(self) -> int:
        return len(self._items)
