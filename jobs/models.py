"""Data models describing image generation jobs and batches."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from config import PROMPT_PREVIEW_CHARS

ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def utcnow() -> datetime:
    """Return a timezone-aware UTC datetime."""

    return datetime.now(timezone.utc)


def format_ts(value: Optional[datetime]) -> Optional[str]:
    return value.strftime(ISO_FORMAT) if value else None


def preview(text: str, limit: int = PROMPT_PREVIEW_CHARS) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


class JobStatus(str, Enum):
    """Lifecycle states for a generation job."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})

# The only edges the dispatcher may take.
ALLOWED_TRANSITIONS = {
    JobStatus.PENDING: frozenset({JobStatus.PROCESSING}),
    JobStatus.PROCESSING: frozenset({JobStatus.COMPLETED, JobStatus.FAILED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
}


class BatchStatus(str, Enum):
    """Aggregate state derived from the member jobs of a batch."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass(frozen=True)
class GenerationOptions:
    aspect_ratio: str
    model: str


@dataclass
class Job:
    """One tracked unit of asynchronous image generation."""

    id: str
    prompt: str
    aspect_ratio: str
    model: str
    status: JobStatus = JobStatus.PENDING
    payload: Optional[str] = None
    error: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def options(self) -> GenerationOptions:
        return GenerationOptions(aspect_ratio=self.aspect_ratio, model=self.model)

    def mark_processing(self) -> None:
        self.status = JobStatus.PROCESSING
        self.started_at = self.started_at or utcnow()

    def mark_completed(self, payload: str) -> None:
        self.payload = payload
        self.completed_at = self.completed_at or utcnow()
        self.status = JobStatus.COMPLETED

    def mark_failed(self, error: str) -> None:
        self.error = error or "Unknown error"
        self.completed_at = self.completed_at or utcnow()
        self.status = JobStatus.FAILED

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "jobId": self.id,
            "status": self.status.value,
            "prompt": self.prompt,
            "aspectRatio": self.aspect_ratio,
            "model": self.model,
            "createdAt": format_ts(self.created_at),
        }
        if self.started_at:
            payload["startedAt"] = format_ts(self.started_at)
        if self.completed_at:
            payload["completedAt"] = format_ts(self.completed_at)
        if self.status == JobStatus.COMPLETED:
            payload["hasResult"] = True
            payload["message"] = "Image generation completed. Use save_job_result to save the result."
        elif self.status == JobStatus.FAILED:
            payload["error"] = self.error
        else:
            payload["message"] = f"Image generation is {self.status.value}. Please check again later."
        return payload

    def to_summary(self) -> Dict[str, Any]:
        return {
            "jobId": self.id,
            "status": self.status.value,
            "prompt": preview(self.prompt),
            "createdAt": format_ts(self.created_at),
            "completedAt": format_ts(self.completed_at),
        }


@dataclass
class Batch:
    """An ordered group of jobs submitted together."""

    id: str
    job_ids: Tuple[str, ...]
    aspect_ratio: str
    model: str
    created_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    @property
    def total_count(self) -> int:
        return len(self.job_ids)


@dataclass(frozen=True)
class AggregateStatus:
    status: BatchStatus
    pending: int
    processing: int
    completed: int
    failed: int
    total: int

    @property
    def all_done(self) -> bool:
        return self.completed + self.failed == self.total

    def counts(self) -> Dict[str, int]:
        return {
            "pending": self.pending,
            "processing": self.processing,
            "completed": self.completed,
            "failed": self.failed,
        }


__all__ = [
    "ALLOWED_TRANSITIONS",
    "AggregateStatus",
    "Batch",
    "BatchStatus",
    "GenerationOptions",
    "ISO_FORMAT",
    "Job",
    "JobStatus",
    "TERMINAL_STATUSES",
    "format_ts",
    "preview",
    "utcnow",
]
