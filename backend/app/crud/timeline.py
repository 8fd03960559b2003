"""PostgreSQL-backed timeline storage and record CRUD helpers."""

from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.timeline import TimelineEntry
from tally.records import TimelineRecord, before_start, past_end

logger = logging.getLogger(__name__)


def entry_to_record(entry: TimelineEntry) -> TimelineRecord:
    return TimelineRecord.from_dict(
        {"count": entry.count, "totals": entry.rolling_totals}
    )


class SQLTimelineStorage:
    """TimelineStorage over the ``timeline_entry`` table.

    The populated range is ``0..max(entry_index)``, read once per instance
    and advanced on writes. Each write is flushed in its own savepoint,
    not committed; the caller owns the transaction.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self._last_index: int | None = None

    async def last_index(self) -> int:
        if self._last_index is None:
            result = await self.session.execute(
                select(func.max(TimelineEntry.entry_index))
            )
            last = result.scalar_one_or_none()
            self._last_index = -1 if last is None else last
        return self._last_index

    async def _get_entry(self, index: int) -> TimelineEntry | None:
        result = await self.session.execute(
            select(TimelineEntry).where(TimelineEntry.entry_index == index)
        )
        return result.scalar_one_or_none()

    async def get(self, index: int) -> TimelineRecord:
        if index < 0:
            return before_start()
        if index > await self.last_index():
            return past_end()
        entry = await self._get_entry(index)
        if entry is None:
            return TimelineRecord()
        return entry_to_record(entry)

    async def set(self, index: int, record: TimelineRecord) -> None:
        """Upsert one entry inside a savepoint.

        A failed flush rolls back only this write; earlier writes in the
        caller's transaction stay and the session remains usable.
        """
        data = record.to_dict()
        entry = await self._get_entry(index)
        async with self.session.begin_nested():
            if entry is None:
                entry = TimelineEntry(entry_index=index)
                self.session.add(entry)
            entry.count = data["count"]
            entry.rolling_totals = data["totals"]
            await self.session.flush()

        if self._last_index is not None and index > self._last_index:
            self._last_index = index

    async def list_indices(self) -> list[int]:
        result = await self.session.execute(
            select(TimelineEntry.entry_index).order_by(TimelineEntry.entry_index)
        )
        return list(result.scalars().all())

    async def get_range(self, start: int, end: int) -> dict[int, TimelineRecord]:
        """Stored records with ``start <= index <= end`` (no boundary synthesis)."""
        result = await self.session.execute(
            select(TimelineEntry)
            .where(TimelineEntry.entry_index >= start)
            .where(TimelineEntry.entry_index <= end)
            .order_by(TimelineEntry.entry_index)
        )
        return {e.entry_index: entry_to_record(e) for e in result.scalars().all()}
