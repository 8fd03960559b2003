"""Pydantic schemas module.

This module contains Pydantic models used for API request/response
validation. Schema suffix distinguishes them from SQLAlchemy models.
"""

from app.schemas.timeline import (
    DerivationSchema,
    FillRequestSchema,
    FillResultSchema,
    TaskFailureSchema,
    TimelineRecordSchema,
)

__all__ = [
    "DerivationSchema",
    "FillRequestSchema",
    "FillResultSchema",
    "TaskFailureSchema",
    "TimelineRecordSchema",
]
