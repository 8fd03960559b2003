"""Derivation rules for the rolling-total recurrence.

For a span ``s`` every index ``n`` satisfies::

    count(n) = total_s(n) - total_s(n-1) + count(n-s)

Four values take part, so there are four rules, each solving for one of
them once the other three are known:

    count_from_right   count(n)      from total_s(n), total_s(n-1), count(n-s)
    total_from_right   total_s(n)    from count(n), total_s(n-1), count(n-s)
    count_from_left    count(n-s)    from total_s(n), total_s(n-1), count(n)
    total_from_left    total_s(n-1)  from total_s(n), count(n), count(n-s)

A task names the index of the value it solves for, so ``count_from_left``
runs at ``n-s`` and ``total_from_left`` at ``n-1``.

Each rule re-reads storage when it runs. A rule returns ``None`` when its
target is already known, when its target is a boundary record, or when an
input is still unknown. Otherwise it writes the value and returns a
``Derivation`` describing the write.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from tally.errors import StorageReadError, StorageWriteError

if TYPE_CHECKING:
    from tally.records import TimelineRecord
    from tally.storage import TimelineStorage


class Role(StrEnum):
    """Which term of the recurrence a task solves for."""

    COUNT_FROM_RIGHT = "count_from_right"
    TOTAL_FROM_RIGHT = "total_from_right"
    COUNT_FROM_LEFT = "count_from_left"
    TOTAL_FROM_LEFT = "total_from_left"


class DerivedField(StrEnum):
    COUNT = "count"
    TOTAL = "total"


@dataclass(frozen=True)
class DerivationTask:
    """A deferred rule application: solve ``role`` at ``index`` for ``span``."""

    role: Role
    index: int
    span: int

    def __str__(self) -> str:
        return f"{self.role.value}@{self.index}/span={self.span}"


@dataclass(frozen=True)
class Derivation:
    """A value written by a rule."""

    field: DerivedField
    index: int
    span: int
    value: int


# =============================================================================
# Storage access
# =============================================================================


async def _read(storage: TimelineStorage, index: int) -> TimelineRecord:
    try:
        return await storage.get(index)
    except Exception as e:
        raise StorageReadError(index, e) from e


async def _write(storage: TimelineStorage, index: int, record: TimelineRecord) -> None:
    try:
        await storage.set(index, record)
    except Exception as e:
        raise StorageWriteError(index, e) from e


# =============================================================================
# Rules
# =============================================================================


async def derive_count_from_right(
    storage: TimelineStorage, index: int, span: int
) -> Derivation | None:
    """count(n) = total_s(n) - total_s(n-1) + count(n-s)"""
    this = await _read(storage, index)
    if this.boundary or this.has_count:
        return None

    prev = await _read(storage, index - 1)
    back = await _read(storage, index - span)
    if not (this.has_total(span) and prev.has_total(span) and back.has_count):
        return None

    this.count = this.totals[span] - prev.totals[span] + back.count
    await _write(storage, index, this)
    return Derivation(DerivedField.COUNT, index, span, this.count)


async def derive_total_from_right(
    storage: TimelineStorage, index: int, span: int
) -> Derivation | None:
    """total_s(n) = count(n) + total_s(n-1) - count(n-s)"""
    this = await _read(storage, index)
    if this.boundary or this.has_total(span):
        return None

    prev = await _read(storage, index - 1)
    back = await _read(storage, index - span)
    if not (this.has_count and prev.has_total(span) and back.has_count):
        return None

    this.totals[span] = this.count + prev.totals[span] - back.count
    await _write(storage, index, this)
    return Derivation(DerivedField.TOTAL, index, span, this.totals[span])


async def derive_count_from_left(
    storage: TimelineStorage, index: int, span: int
) -> Derivation | None:
    """count(m) = total_s(m+s-1) - total_s(m+s) + count(m+s)"""
    this = await _read(storage, index)
    if this.boundary or this.has_count:
        return None

    ahead = await _read(storage, index + span)
    ahead_prev = await _read(storage, index + span - 1)
    if not (ahead.has_total(span) and ahead_prev.has_total(span) and ahead.has_count):
        return None

    this.count = ahead_prev.totals[span] - ahead.totals[span] + ahead.count
    await _write(storage, index, this)
    return Derivation(DerivedField.COUNT, index, span, this.count)


async def derive_total_from_left(
    storage: TimelineStorage, index: int, span: int
) -> Derivation | None:
    """total_s(m) = total_s(m+1) - count(m+1) + count(m+1-s)"""
    this = await _read(storage, index)
    if this.boundary or this.has_total(span):
        return None

    nxt = await _read(storage, index + 1)
    nxt_back = await _read(storage, index + 1 - span)
    if not (nxt.has_total(span) and nxt.has_count and nxt_back.has_count):
        return None

    this.totals[span] = nxt.totals[span] - nxt.count + nxt_back.count
    await _write(storage, index, this)
    return Derivation(DerivedField.TOTAL, index, span, this.totals[span])


Rule = Callable[["TimelineStorage", int, int], Awaitable[Derivation | None]]

RULES: dict[Role, Rule] = {
    Role.COUNT_FROM_RIGHT: derive_count_from_right,
    Role.TOTAL_FROM_RIGHT: derive_total_from_right,
    Role.COUNT_FROM_LEFT: derive_count_from_left,
    Role.TOTAL_FROM_LEFT: derive_total_from_left,
}


async def execute(task: DerivationTask, storage: TimelineStorage) -> Derivation | None:
    """Run the rule for ``task`` against current storage state."""
    return await RULES[task.role](storage, task.index, task.span)


# =============================================================================
# Seeding and follow-up expansion
# =============================================================================


def seed_tasks(index: int, spans: Iterable[int]) -> list[DerivationTask]:
    """Tasks that could resolve something at or around ``index``."""
    tasks: list[DerivationTask] = []
    for span in spans:
        tasks += [
            DerivationTask(Role.COUNT_FROM_RIGHT, index, span),
            DerivationTask(Role.TOTAL_FROM_RIGHT, index, span),
            DerivationTask(Role.TOTAL_FROM_LEFT, index - 1, span),
            DerivationTask(Role.COUNT_FROM_LEFT, index - span, span),
        ]
    return tasks


def expand_after_count(index: int, spans: Iterable[int]) -> list[DerivationTask]:
    """Tasks that may become solvable once count(index) is known.

    Counts are linked ``span`` apart, so the new count is tried both as the
    left end (``a``) of a window ending at ``index+s`` and as the right end
    (``b``) of the window ending at ``index``.
    """
    tasks: list[DerivationTask] = []
    for s in spans:
        tasks += [
            # index as count-left
            DerivationTask(Role.COUNT_FROM_RIGHT, index + s, s),
            DerivationTask(Role.TOTAL_FROM_LEFT, index + s - 1, s),
            DerivationTask(Role.TOTAL_FROM_RIGHT, index + s, s),
            # index as count-right
            DerivationTask(Role.COUNT_FROM_LEFT, index - s, s),
            DerivationTask(Role.TOTAL_FROM_LEFT, index - 1, s),
            DerivationTask(Role.TOTAL_FROM_RIGHT, index, s),
        ]
    return tasks


def expand_after_total(index: int, spans: Iterable[int]) -> list[DerivationTask]:
    """Tasks that may become solvable once a total at ``index`` is known.

    Consecutive totals are linked one index apart, so the new total is tried
    as ``c`` of the window ending at ``index+1`` and as ``d`` of the window
    ending at ``index``.
    """
    tasks: list[DerivationTask] = []
    for s in spans:
        tasks += [
            # index as total-left
            DerivationTask(Role.COUNT_FROM_RIGHT, index + 1, s),
            DerivationTask(Role.COUNT_FROM_LEFT, index + 1 - s, s),
            DerivationTask(Role.TOTAL_FROM_RIGHT, index + 1, s),
            # index as total-right
            DerivationTask(Role.COUNT_FROM_RIGHT, index, s),
            DerivationTask(Role.COUNT_FROM_LEFT, index - s, s),
            DerivationTask(Role.TOTAL_FROM_LEFT, index - 1, s),
        ]
    return tasks


def follow_ups(derivation: Derivation, spans: Iterable[int]) -> list[DerivationTask]:
    if derivation.field is DerivedField.COUNT:
        return expand_after_count(derivation.index, spans)
    return expand_after_total(derivation.index, spans)
