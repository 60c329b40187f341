from __future__ import annotations

import base64
import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from jobs.models import GenerationOptions, JobStatus  # noqa: E402
from jobs.store import BatchStore, JobStore  # noqa: E402

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"fake-image-body"
PNG_B64 = base64.b64encode(PNG_BYTES).decode("ascii")
OPTIONS = GenerationOptions(aspect_ratio="1:1", model="gemini-3-pro-image-preview")


@pytest.fixture
def job_store() -> JobStore:
    return JobStore()


@pytest.fixture
def batch_store(job_store) -> BatchStore:
    return BatchStore(job_store)


def make_job(store: JobStore, status: JobStatus = JobStatus.PENDING, *, prompt: str = "a red fox"):
    """Create a job and walk it through legal transitions up to ``status``."""

    job = store.create(prompt, OPTIONS)
    if status == JobStatus.PENDING:
        return job
    job = store.transition(job.id, JobStatus.PROCESSING)
    if status == JobStatus.COMPLETED:
        job = store.transition(job.id, JobStatus.COMPLETED, payload=PNG_B64)
    elif status == JobStatus.FAILED:
        job = store.transition(job.id, JobStatus.FAILED, error="Gemini API error: HTTP 500")
    return job
