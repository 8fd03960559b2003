"""Worklist propagation engine.

Seeds the work queue around a target index, then drains it: each task
re-reads storage and either writes one value (scheduling the tasks that
value could unblock), does nothing, or fails. Failures are collected
per task and the drain continues until the queue is empty.

Every successful derivation fixes one previously unknown value for good,
and a task whose target is already known is a no-op, so the drain always
terminates.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from tally.errors import PropagationError, StorageError, TaskFailure
from tally.queue import WorkQueue
from tally.rules import Derivation, execute, follow_ups, seed_tasks
from tally.storage import TimelineStorage

logger = logging.getLogger(__name__)


@dataclass
class PropagationResult:
    """Summary of one propagation run."""

    index: int
    tasks_executed: int = 0
    noops: int = 0
    tasks_dropped: int = 0
    derivations: list[Derivation] = field(default_factory=list)
    failures: list[TaskFailure] = field(default_factory=list)
    elapsed_seconds: float = 0.0

    @property
    def error(self) -> PropagationError | None:
        """All task failures as one error, or None if nothing failed."""
        if not self.failures:
            return None
        return PropagationError(self.failures)

    @property
    def ok(self) -> bool:
        return not self.failures

    def raise_for_failures(self) -> None:
        error = self.error
        if error is not None:
            raise error


class Propagator:
    """Fills unknown counts and totals reachable from a target index.

    Each instance carries its own spans and storage handle; runs on the same
    instance share nothing but those.
    """

    def __init__(
        self,
        spans: Sequence[int],
        storage: TimelineStorage,
        *,
        dedupe: bool = False,
    ):
        self.spans = _normalize_spans(spans)
        self.storage = storage
        self.dedupe = dedupe

    async def run(self, index: int) -> PropagationResult:
        """Propagate from ``index`` until nothing more can be derived.

        Storage writes made before a failure are kept. Cancellation is
        not treated as a task failure: it propagates to the caller.
        """
        start = time.monotonic()
        result = PropagationResult(index=index)

        queue = WorkQueue(dedupe=self.dedupe)
        queue.enqueue(*seed_tasks(index, self.spans))

        while not queue.is_empty():
            task = queue.dequeue()
            if task is None:
                break
            result.tasks_executed += 1

            try:
                derivation = await execute(task, self.storage)
            except StorageError as e:
                logger.warning(f"Task {task} failed: {e}")
                result.failures.append(TaskFailure(task=task, error=e))
                continue

            if derivation is None:
                result.noops += 1
                continue

            logger.debug(
                f"{task}: {derivation.field.value}[{derivation.index}] = {derivation.value}"
            )
            result.derivations.append(derivation)
            queue.enqueue(*follow_ups(derivation, self.spans))

        result.tasks_dropped = queue.dropped
        result.elapsed_seconds = time.monotonic() - start

        logger.info(
            f"Propagated from index {index}: {len(result.derivations)} derived, "
            f"{result.tasks_executed} tasks run ({result.noops} no-op, "
            f"{len(result.failures)} failed, {result.tasks_dropped} deduplicated) "
            f"in {result.elapsed_seconds:.3f}s"
        )
        return result

    async def run_many(self, indices: Iterable[int]) -> list[PropagationResult]:
        """Run once per index, one after another."""
        return [await self.run(index) for index in indices]


def _normalize_spans(spans: Sequence[int]) -> tuple[int, ...]:
    """Validate spans and drop duplicates, keeping first-seen order."""
    if not spans:
        raise ValueError("At least one span is required")
    seen: dict[int, None] = {}
    for span in spans:
        if isinstance(span, bool) or not isinstance(span, int) or span < 1:
            raise ValueError(f"Span must be a positive integer, got {span!r}")
        seen.setdefault(span, None)
    return tuple(seen)
