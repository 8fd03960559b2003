"""Timeline record value type and boundary records."""

from __future__ import annotations

from dataclasses import dataclass, field

# Count value meaning "not known yet"
UNKNOWN = -1


@dataclass
class TimelineRecord:
    """The state of one index on the timeline.

    ``count`` is the per-index value (``UNKNOWN`` when not known).
    ``totals`` maps a span to the rolling total of counts over the trailing
    window of that length ending at this index, inclusive. A span missing
    from ``totals`` means the total for that span is unknown.

    ``boundary`` marks records synthesized by storage for indices outside
    the populated range. Boundary records are never written back.
    """

    count: int = UNKNOWN
    totals: dict[int, int] = field(default_factory=dict)
    boundary: bool = False

    @property
    def has_count(self) -> bool:
        return self.count != UNKNOWN

    def has_total(self, span: int) -> bool:
        return span in self.totals

    def copy(self) -> TimelineRecord:
        return TimelineRecord(
            count=self.count, totals=dict(self.totals), boundary=self.boundary
        )

    def to_dict(self) -> dict:
        """JSON-friendly form (span keys as strings)."""
        return {
            "count": self.count,
            "totals": {str(span): total for span, total in sorted(self.totals.items())},
        }

    @classmethod
    def from_dict(cls, data: dict) -> TimelineRecord:
        count = data.get("count", UNKNOWN)
        count = UNKNOWN if count is None else int(count)
        if count < UNKNOWN:
            raise ValueError(f"Invalid count {count}: must be >= 0, or -1 for unknown")
        totals = {int(span): int(total) for span, total in (data.get("totals") or {}).items()}
        return cls(count=count, totals=totals)


def before_start() -> TimelineRecord:
    """Boundary record for indices below zero: nothing has happened yet."""
    return TimelineRecord(count=0, boundary=True)


def past_end() -> TimelineRecord:
    """Boundary record for indices beyond the populated range."""
    return TimelineRecord(count=UNKNOWN, boundary=True)
