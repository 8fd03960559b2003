"""TimelineEntry model: one index of the rolling tally timeline."""

from typing import Any

from sqlalchemy import JSON, Integer
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, TimestampMixin


class TimelineEntry(Base, TimestampMixin):
    """The count and rolling totals recorded at one timeline index.

    ``count`` of -1 means the count is unknown. ``rolling_totals`` maps a
    span (as a string key, since JSON object keys are strings) to the
    rolling total ending at this index; missing spans are unknown.
    """

    __tablename__ = "timeline_entry"

    entry_index: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=False
    )
    count: Mapped[int] = mapped_column(Integer, nullable=False, default=-1)
    rolling_totals: Mapped[dict[str, Any]] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"), nullable=False, default=dict
    )

    def __repr__(self) -> str:
        return (
            f"<TimelineEntry(index={self.entry_index}, count={self.count}, "
            f"totals={self.rolling_totals})>"
        )
