"""SQLAlchemy models for the rolling tally timeline."""

from app.models.base import (
    Base,
    TimestampMixin,
    async_session_maker,
    create_tables,
    get_async_session,
)
from app.models.timeline import TimelineEntry

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "async_session_maker",
    "create_tables",
    "get_async_session",
    # Timeline
    "TimelineEntry",
]
