"""Storage contract for the propagation engine, plus file and memory backends.

The engine only talks to storage through ``TimelineStorage``. Backends must
never raise for a missing record; they synthesize boundary records instead:

- index < 0: count 0, no totals (nothing happened before the timeline).
- index beyond the populated range: count unknown, no totals.

The PostgreSQL backend lives in ``app.crud.timeline``.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Protocol

from tally.records import TimelineRecord, before_start, past_end

logger = logging.getLogger(__name__)


class TimelineStorage(Protocol):
    """Read-after-write consistent record store keyed by integer index."""

    async def get(self, index: int) -> TimelineRecord:
        """Return the record at ``index`` (a copy the caller may modify)."""
        ...

    async def set(self, index: int, record: TimelineRecord) -> None:
        """Insert or replace the full record at ``index``."""
        ...


class InMemoryTimelineStorage:
    """Dict-backed storage. The populated range is ``0..max(index)``."""

    def __init__(self, records: dict[int, TimelineRecord] | None = None) -> None:
        self.records: dict[int, TimelineRecord] = dict(records or {})

    @property
    def last_index(self) -> int:
        return max(self.records, default=-1)

    async def get(self, index: int) -> TimelineRecord:
        if index < 0:
            return before_start()
        if index > self.last_index:
            return past_end()
        record = self.records.get(index)
        if record is None:
            # Gap inside the populated range
            return TimelineRecord()
        return record.copy()

    async def set(self, index: int, record: TimelineRecord) -> None:
        stored = record.copy()
        stored.boundary = False
        self.records[index] = stored

    def snapshot(self) -> dict[int, TimelineRecord]:
        return {index: record.copy() for index, record in self.records.items()}


class JsonFileTimelineStorage(InMemoryTimelineStorage):
    """In-memory storage loaded from and saved to a JSON file.

    File layout::

        {"records": {"0": {"count": 3, "totals": {"7": 10}}, ...}}

    A count of -1 (or null) means unknown.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        super().__init__(self._load())

    def _load(self) -> dict[int, TimelineRecord]:
        if not self.path.exists():
            logger.info(f"{self.path} does not exist, starting with an empty timeline")
            return {}
        data = json.loads(self.path.read_text())
        records = {
            int(index): TimelineRecord.from_dict(raw)
            for index, raw in (data.get("records") or {}).items()
        }
        logger.debug(f"Loaded {len(records)} records from {self.path}")
        return records

    def save(self) -> None:
        data = {
            "records": {
                str(index): self.records[index].to_dict()
                for index in sorted(self.records)
            }
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2) + "\n")
        logger.debug(f"Saved {len(self.records)} records to {self.path}")
