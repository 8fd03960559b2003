"""Timeline endpoints: read and upsert records, run propagation."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.crud.timeline import SQLTimelineStorage
from app.models.base import get_async_session
from app.schemas.timeline import (
    FillRequestSchema,
    FillResultSchema,
    TimelineRecordSchema,
)
from tally.propagator import Propagator

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/{index}")
async def get_record(
    index: int,
    session: AsyncSession = Depends(get_async_session),
) -> TimelineRecordSchema:
    """Get the record at an index (boundary semantics apply out of range)."""
    storage = SQLTimelineStorage(session)
    record = await storage.get(index)
    return TimelineRecordSchema.from_record(index, record)


@router.put("/{index}")
async def put_record(
    index: int,
    body: TimelineRecordSchema,
    session: AsyncSession = Depends(get_async_session),
) -> TimelineRecordSchema:
    """Insert or replace the record at an index."""
    if index < 0:
        raise HTTPException(status_code=422, detail="Index must be non-negative")
    storage = SQLTimelineStorage(session)
    await storage.set(index, body.to_record())
    await session.commit()
    return TimelineRecordSchema.from_record(index, body.to_record())


@router.post("/fill")
async def fill(
    body: FillRequestSchema,
    session: AsyncSession = Depends(get_async_session),
) -> FillResultSchema:
    """Propagate known values outward from an index.

    Writes made before any task failure are committed; failures are listed
    in the response.
    """
    spans = body.spans or settings.default_spans
    try:
        propagator = Propagator(
            spans, SQLTimelineStorage(session), dedupe=settings.dedupe_tasks
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e

    result = await propagator.run(body.index)
    await session.commit()

    if result.error is not None:
        logger.warning(f"Fill at index {body.index} finished with errors: {result.error}")
    return FillResultSchema.from_result(result)
