"""Job management primitives for asynchronous image generation."""

from .models import AggregateStatus, Batch, BatchStatus, GenerationOptions, Job, JobStatus  # noqa: F401
from .store import BatchStore, JobStore  # noqa: F401
from .runner import JobRunner  # noqa: F401

__all__ = [
    "AggregateStatus",
    "Batch",
    "BatchStatus",
    "BatchStore",
    "GenerationOptions",
    "Job",
    "JobRunner",
    "JobStatus",
    "JobStore",
]
