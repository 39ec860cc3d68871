"""Queue job definitions."""

from datetime import datetime
from enum import StrEnum
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from eloquentlog.core.domain.base_entity import utc_now


class JobKind(StrEnum):
    IDENTIFICATION_EMAIL = "identification_email"


class IdentificationEmailPayload(BaseModel):
    """Snapshot taken when the token was issued."""

    model_config = ConfigDict(frozen=True)

    record_id: int = Field(..., description="UserEmail ID")
    email: str = Field(..., description="收件地址")
    token: str = Field(..., description="验证 token")
    record_version: int | None = Field(
        default=None, description="发放 token 后记录的 lock_version"
    )


class Job(BaseModel):
    """A unit of work held by the job queue."""

    job_id: str = Field(default_factory=lambda: uuid4().hex)
    kind: JobKind = Field(default=JobKind.IDENTIFICATION_EMAIL)
    payload: IdentificationEmailPayload
    enqueued_at: datetime = Field(default_factory=utc_now)
    attempt_count: int = Field(default=0, ge=0)
    last_error: str | None = Field(default=None)
    dead_lettered_at: datetime | None = Field(default=None)

    def __repr__(self) -> str:
        # keep the token out of logs
        return (
            f"Job(job_id={self.job_id!r}, kind={self.kind.value!r}, "
            f"record_id={self.payload.record_id}, attempt_count={self.attempt_count})"
        )

    __str__ = __repr__
