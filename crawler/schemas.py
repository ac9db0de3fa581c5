"""
Request and response models for the producer-facing crawler API.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any
from urllib.parse import urlparse

from pydantic import AfterValidator, BaseModel, Field

from crawler.domain.jobs import ScrapeJob


def _check_url(value: str) -> str:
    value = value.strip()
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError("url must be an absolute http(s) URL")
    return value


def _check_brand(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("brand must not be empty")
    return value


HttpURL = Annotated[str, AfterValidator(_check_url)]
BrandName = Annotated[str, AfterValidator(_check_brand)]


class JobRequest(BaseModel):
    url: HttpURL
    brand: BrandName
    priority: int = Field(default=0, ge=0, le=100)
    max_retries: int = Field(default=3, ge=1, le=5)
    metadata: dict[str, Any] = Field(default_factory=dict)


class BulkJobItem(BaseModel):
    url: HttpURL
    brand: BrandName
    metadata: dict[str, Any] = Field(default_factory=dict)


class CatalogRequest(BaseModel):
    brand: BrandName
    urls: list[str] = Field(default_factory=list)
    priority: int = Field(default=10, ge=0, le=100)


class JobSummary(BaseModel):
    id: str
    url: str
    brand: str
    status: str
    priority: int
    attempts: int
    max_attempts: int
    progress: dict[str, Any] = Field(default_factory=dict)
    last_error: str | None = None
    enqueued_at: datetime | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
    delay_until: datetime | None = None
    result: dict[str, Any] | None = None

    @classmethod
    def from_job(cls, job: ScrapeJob) -> "JobSummary":
        return cls(
            id=job.id,
            url=job.url,
            brand=job.brand,
            status=job.status,
            priority=job.priority,
            attempts=job.attempt_count,
            max_attempts=job.max_attempts,
            progress=dict(job.progress),
            last_error=job.last_error,
            enqueued_at=job.enqueued_at,
            started_at=job.started_at,
            finished_at=job.finished_at,
            delay_until=job.delay_until,
            result=job.result,
        )
