"""Pydantic schemas for timeline endpoints."""

from pydantic import BaseModel, Field, field_validator

from tally.propagator import PropagationResult
from tally.records import UNKNOWN, TimelineRecord


class TimelineRecordSchema(BaseModel):
    """One timeline index. ``count`` of -1 means unknown."""

    index: int | None = None
    count: int = Field(default=UNKNOWN, ge=UNKNOWN)
    totals: dict[int, int] = Field(
        default_factory=dict,
        description="Span -> rolling total ending at this index",
    )

    @field_validator("totals")
    @classmethod
    def spans_positive(cls, v: dict[int, int]) -> dict[int, int]:
        if any(span < 1 for span in v):
            raise ValueError("spans must be positive")
        return v

    @classmethod
    def from_record(cls, index: int, record: TimelineRecord) -> "TimelineRecordSchema":
        return cls(index=index, count=record.count, totals=dict(record.totals))

    def to_record(self) -> TimelineRecord:
        return TimelineRecord(count=self.count, totals=dict(self.totals))


class FillRequestSchema(BaseModel):
    """Request body for a propagation run."""

    index: int = Field(ge=0)
    spans: list[int] | None = Field(
        default=None, description="Window lengths (default: configured spans)"
    )


class DerivationSchema(BaseModel):
    field: str
    index: int
    span: int
    value: int


class TaskFailureSchema(BaseModel):
    task: str
    error: str


class FillResultSchema(BaseModel):
    """Summary of a propagation run."""

    index: int
    tasks_executed: int
    noops: int
    tasks_dropped: int
    derivations: list[DerivationSchema]
    failures: list[TaskFailureSchema]
    elapsed_seconds: float

    @classmethod
    def from_result(cls, result: PropagationResult) -> "FillResultSchema":
        return cls(
            index=result.index,
            tasks_executed=result.tasks_executed,
            noops=result.noops,
            tasks_dropped=result.tasks_dropped,
            derivations=[
                DerivationSchema(
                    field=d.field.value, index=d.index, span=d.span, value=d.value
                )
                for d in result.derivations
            ],
            failures=[
                TaskFailureSchema(task=str(f.task), error=str(f.error))
                for f in result.failures
            ],
            elapsed_seconds=result.elapsed_seconds,
        )
