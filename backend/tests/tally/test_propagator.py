"""Tests for tally.propagator: Propagator runs end to end."""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from tally.errors import PropagationError, StorageReadError, StorageWriteError
from tally.propagator import PropagationResult, Propagator
from tally.records import UNKNOWN, TimelineRecord
from tally.rules import DerivationTask, Role
from tally.storage import InMemoryTimelineStorage

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _rec(count: int = UNKNOWN, totals: dict[int, int] | None = None) -> TimelineRecord:
    return TimelineRecord(count=count, totals=dict(totals or {}))


def _zero(*spans: int) -> TimelineRecord:
    return _rec(0, {s: 0 for s in spans})


class BrokenStorage(InMemoryTimelineStorage):
    """Storage that fails reads or writes at chosen indices."""

    def __init__(self, records, fail_reads=(), fail_writes=(), cancel_reads=()):
        super().__init__(records)
        self.fail_reads = set(fail_reads)
        self.fail_writes = set(fail_writes)
        self.cancel_reads = set(cancel_reads)

    async def get(self, index: int) -> TimelineRecord:
        if index in self.cancel_reads:
            raise asyncio.CancelledError()
        if index in self.fail_reads:
            raise ConnectionError("read timed out")
        return await super().get(index)

    async def set(self, index: int, record: TimelineRecord) -> None:
        if index in self.fail_writes:
            raise ConnectionError("write rejected")
        await super().set(index, record)


def _ground_truth(counts: list[int], spans: tuple[int, ...]) -> dict[int, TimelineRecord]:
    """Fully known, consistent records for the given counts."""
    records = {}
    for n, count in enumerate(counts):
        totals = {s: sum(counts[max(0, n - s + 1) : n + 1]) for s in spans}
        records[n] = _rec(count, totals)
    return records


def _assert_recurrence_holds(
    records: dict[int, TimelineRecord], spans: tuple[int, ...]
) -> None:
    """count(n) = total_s(n) - total_s(n-1) + count(n-s) wherever all are known."""

    def count_at(i: int) -> int:
        if i < 0:
            return 0
        return records[i].count if i in records else UNKNOWN

    for n, record in records.items():
        for s in spans:
            prev = records.get(n - 1)
            if not (record.has_count and record.has_total(s)):
                continue
            if prev is None or not prev.has_total(s) or count_at(n - s) == UNKNOWN:
                continue
            assert record.count == record.totals[s] - prev.totals[s] + count_at(n - s), (
                f"recurrence broken at index {n}, span {s}"
            )


# ---------------------------------------------------------------------------
# Scenarios
# ---------------------------------------------------------------------------


class TestScenarios:
    @pytest.mark.asyncio
    async def test_direct_fill(self) -> None:
        """Count at the target is solved from its own window."""
        storage = InMemoryTimelineStorage(
            {0: _zero(2), 1: _zero(2), 2: _zero(2), 3: _rec(UNKNOWN, {2: 3})}
        )

        result = await Propagator([2], storage).run(3)

        assert result.ok
        assert result.error is None
        assert storage.records == {
            0: _zero(2),
            1: _zero(2),
            2: _zero(2),
            3: _rec(3, {2: 3}),
        }

    @pytest.mark.asyncio
    async def test_left_back_fill(self) -> None:
        """An unknown index left of the target gets both its total and count."""
        storage = InMemoryTimelineStorage(
            {
                0: _zero(2, 5, 8),
                1: _zero(2, 5, 8),
                2: _rec(),
                3: _rec(2, {2: 3}),
            }
        )

        result = await Propagator([2], storage).run(3)

        assert result.ok
        assert storage.records[2] == _rec(1, {2: 1})
        assert storage.records[3] == _rec(2, {2: 3})

    @pytest.mark.asyncio
    async def test_total_from_right(self) -> None:
        storage = InMemoryTimelineStorage(
            {0: _zero(2), 1: _zero(2), 2: _rec(1, {2: 1}), 3: _rec(2)}
        )

        await Propagator([2], storage).run(3)

        assert storage.records[3] == _rec(2, {2: 3})

    @pytest.mark.asyncio
    async def test_total_from_left(self) -> None:
        storage = InMemoryTimelineStorage(
            {0: _zero(2), 1: _zero(2), 2: _rec(1), 3: _rec(2, {2: 3})}
        )

        await Propagator([2], storage).run(3)

        assert storage.records[2] == _rec(1, {2: 1})

    @pytest.mark.asyncio
    async def test_chained_multi_span(self) -> None:
        """Index 2 and index 7 both resolve in one run through chained steps."""
        storage = InMemoryTimelineStorage(
            {
                0: _zero(2, 5),
                1: _zero(2, 5),
                2: _rec(),
                3: _rec(0, {2: 1, 5: 1}),
                4: _zero(2, 5),
                5: _zero(2, 5),
                6: _rec(0, {2: 0, 5: 1}),
                7: _rec(UNKNOWN, {2: 2, 5: 2}),
            }
        )

        result = await Propagator([2, 5], storage).run(7)

        assert result.ok
        assert storage.records == {
            0: _zero(2, 5),
            1: _zero(2, 5),
            2: _rec(1, {2: 1, 5: 1}),
            3: _rec(0, {2: 1, 5: 1}),
            4: _zero(2, 5),
            5: _zero(2, 5),
            6: _rec(0, {2: 0, 5: 1}),
            7: _rec(2, {2: 2, 5: 2}),
        }


# ---------------------------------------------------------------------------
# Properties
# ---------------------------------------------------------------------------

COUNTS = [3, 1, 4, 1, 5, 9, 2, 6, 5, 3, 5, 8]
SPANS = (2, 3)


def _partially_known() -> dict[int, TimelineRecord]:
    records = _ground_truth(COUNTS, SPANS)
    records[4].count = UNKNOWN
    records[7].count = UNKNOWN
    records[5].totals = {}
    del records[8].totals[3]
    return records


class TestProperties:
    @pytest.mark.asyncio
    async def test_derived_values_match_ground_truth(self) -> None:
        storage = InMemoryTimelineStorage(_partially_known())

        result = await Propagator(SPANS, storage).run(4)

        truth = _ground_truth(COUNTS, SPANS)
        assert storage.records[4].count == truth[4].count
        assert storage.records[7].count == truth[7].count
        assert storage.records[5].totals[2] == truth[5].totals[2]
        for d in result.derivations:
            stored = storage.records[d.index]
            expected = truth[d.index]
            if d.field.value == "count":
                assert stored.count == expected.count
            else:
                assert stored.totals[d.span] == expected.totals[d.span]
        _assert_recurrence_holds(storage.records, SPANS)

    @pytest.mark.asyncio
    async def test_run_many_recovers_everything(self) -> None:
        storage = InMemoryTimelineStorage(_partially_known())

        results = await Propagator(SPANS, storage).run_many(range(len(COUNTS)))

        assert all(r.ok for r in results)
        assert storage.records == _ground_truth(COUNTS, SPANS)

    @pytest.mark.asyncio
    async def test_idempotent(self) -> None:
        storage = InMemoryTimelineStorage(_partially_known())
        propagator = Propagator(SPANS, storage)

        await propagator.run(4)
        after_first = storage.snapshot()
        second = await propagator.run(4)

        assert second.derivations == []
        assert storage.records == after_first

    @pytest.mark.asyncio
    async def test_known_values_never_overwritten(self) -> None:
        """Inconsistent known values are left alone, not repaired."""
        records = _partially_known()
        records[6].count = 100
        before = {i: r.copy() for i, r in records.items()}
        storage = InMemoryTimelineStorage(records)

        await Propagator(SPANS, storage).run_many(range(len(COUNTS)))

        for index, original in before.items():
            stored = storage.records[index]
            if original.has_count:
                assert stored.count == original.count
            for span, total in original.totals.items():
                assert stored.totals[span] == total

    @pytest.mark.asyncio
    async def test_no_writes_outside_populated_range(self) -> None:
        storage = InMemoryTimelineStorage(_ground_truth([2, 0, 1], (2,)))
        storage.records[0].totals = {}

        await Propagator([2], storage).run(0)

        assert set(storage.records) == {0, 1, 2}
        assert (await storage.get(-1)) == TimelineRecord(count=0, boundary=True)
        assert (await storage.get(3)).count == UNKNOWN


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestFailures:
    @pytest.mark.asyncio
    async def test_write_failure_aborts_only_that_task(self) -> None:
        storage = BrokenStorage(
            {0: _zero(2), 1: _zero(2), 2: _zero(2), 3: _rec(UNKNOWN, {2: 3})},
            fail_writes={3},
        )

        result = await Propagator([2], storage).run(3)

        # All four seeds ran; the failed one scheduled nothing.
        assert result.tasks_executed == 4
        assert len(result.failures) == 1
        failure = result.failures[0]
        assert failure.task == DerivationTask(Role.COUNT_FROM_RIGHT, 3, 2)
        assert isinstance(failure.error, StorageWriteError)
        assert storage.records[3].count == UNKNOWN

    @pytest.mark.asyncio
    async def test_read_failure_keeps_earlier_writes(self) -> None:
        storage = BrokenStorage(
            {0: _zero(2), 1: _zero(2), 2: _zero(2), 3: _rec(UNKNOWN, {2: 3})},
            fail_reads={5},
        )

        result = await Propagator([2], storage).run(3)

        assert storage.records[3].count == 3
        assert result.failures
        for failure in result.failures:
            assert isinstance(failure.error, StorageReadError)
            assert failure.error.index == 5

    @pytest.mark.asyncio
    async def test_error_aggregates_failures(self) -> None:
        storage = BrokenStorage(
            {0: _zero(2), 1: _zero(2), 2: _zero(2), 3: _rec(UNKNOWN, {2: 3})},
            fail_reads={5},
        )

        result = await Propagator([2], storage).run(3)

        error = result.error
        assert isinstance(error, PropagationError)
        assert error.failures == result.failures
        assert "index 5" in str(error)
        with pytest.raises(PropagationError):
            result.raise_for_failures()

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self) -> None:
        storage = BrokenStorage(
            {0: _zero(2), 1: _zero(2), 2: _zero(2), 3: _rec(UNKNOWN, {2: 3})},
            cancel_reads={5},
        )

        with pytest.raises(asyncio.CancelledError):
            await Propagator([2], storage).run(3)

        # Writes made before cancellation stay
        assert storage.records[3].count == 3

    @pytest.mark.asyncio
    async def test_non_storage_error_propagates(self) -> None:
        """Only storage errors become task failures; other bugs surface."""
        storage = InMemoryTimelineStorage({0: _zero(2), 1: _rec(UNKNOWN, {2: 1})})

        with patch(
            "tally.propagator.execute", new_callable=AsyncMock, side_effect=KeyError(2)
        ):
            with pytest.raises(KeyError):
                await Propagator([2], storage).run(1)


# ---------------------------------------------------------------------------
# Configuration and deduplication
# ---------------------------------------------------------------------------


class TestConfiguration:
    def test_rejects_empty_spans(self) -> None:
        with pytest.raises(ValueError):
            Propagator([], InMemoryTimelineStorage())

    @pytest.mark.parametrize("span", [0, -3, True, 2.5])
    def test_rejects_invalid_span(self, span: object) -> None:
        with pytest.raises(ValueError):
            Propagator([2, span], InMemoryTimelineStorage())  # type: ignore[list-item]

    def test_collapses_duplicate_spans(self) -> None:
        propagator = Propagator([5, 2, 5], InMemoryTimelineStorage())
        assert propagator.spans == (5, 2)

    @pytest.mark.asyncio
    async def test_empty_storage(self) -> None:
        result = await Propagator([2], InMemoryTimelineStorage()).run(0)
        assert result == PropagationResult(
            index=0,
            tasks_executed=4,
            noops=4,
            elapsed_seconds=result.elapsed_seconds,
        )


class TestDedupeStress:
    """Densely overlapping spans schedule the same task many times."""

    SPANS = (1, 2, 3, 4, 5, 6)
    COUNTS = [(7 * n) % 5 for n in range(20)]

    def _records(self) -> dict[int, TimelineRecord]:
        records = _ground_truth(self.COUNTS, self.SPANS)
        for n in range(6, len(self.COUNTS)):
            records[n].count = UNKNOWN
        return records

    @pytest.mark.asyncio
    async def test_same_result_with_fewer_tasks(self) -> None:
        plain_storage = InMemoryTimelineStorage(self._records())
        dedupe_storage = InMemoryTimelineStorage(self._records())

        plain = await Propagator(self.SPANS, plain_storage).run(6)
        deduped = await Propagator(self.SPANS, dedupe_storage, dedupe=True).run(6)

        truth = _ground_truth(self.COUNTS, self.SPANS)
        assert plain_storage.records == truth
        assert dedupe_storage.records == truth
        assert deduped.tasks_dropped > 0
        assert deduped.tasks_executed < plain.tasks_executed
        assert len(deduped.derivations) == len(plain.derivations)
