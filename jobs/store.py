"""In-memory registries for jobs and batches."""
from __future__ import annotations

import threading
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from .errors import JobStateError, NotFoundError
from .ids import new_id
from .models import ALLOWED_TRANSITIONS, Batch, GenerationOptions, Job, JobStatus, utcnow


class JobStore:
    """Thread-safe in-memory storage for jobs.

    Records live for the lifetime of the process. Every read returns a copy
    taken under the lock, so a reader never sees a half-applied transition.
    """

    def __init__(self) -> None:
        self._jobs: Dict[str, Job] = {}
        self._lock = threading.RLock()

    def create(self, prompt: str, options: GenerationOptions) -> Job:
        with self._lock:
            job_id = new_id("job")
            while job_id in self._jobs:
                job_id = new_id("job")
            job = Job(
                id=job_id,
                prompt=prompt,
                aspect_ratio=options.aspect_ratio,
                model=options.model,
            )
            self._jobs[job_id] = job
            return replace(job)

    def get(self, job_id: str) -> Optional[Job]:
        with self._lock:
            job = self._jobs.get(job_id)
            return replace(job) if job else None

    def require(self, job_id: str) -> Job:
        job = self.get(job_id)
        if job is None:
            raise NotFoundError(f"Job {job_id} not found")
        return job

    def transition(
        self,
        job_id: str,
        status: JobStatus,
        *,
        payload: Optional[str] = None,
        error: Optional[str] = None,
    ) -> Job:
        """Apply one state-machine edge atomically.

        Only pending->processing and processing->{completed, failed} are
        legal; anything else raises :class:`JobStateError`.
        """

        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobStateError(f"transition of unknown job {job_id}")
            if status not in ALLOWED_TRANSITIONS[job.status]:
                raise JobStateError(
                    f"illegal transition for job {job_id}: {job.status.value} -> {status.value}"
                )
            if status == JobStatus.PROCESSING:
                job.mark_processing()
            elif status == JobStatus.COMPLETED:
                if not payload:
                    raise JobStateError(f"job {job_id} cannot complete without a payload")
                job.mark_completed(payload)
            else:
                job.mark_failed(error or "")
            return replace(job)

    def list(self) -> List[Job]:
        with self._lock:
            return [replace(job) for job in self._jobs.values()]

    def __len__(self) -> int:  # pragma: no cover - trivial
        with self._lock:
            return len(self._jobs)


class BatchStore:
    """Thread-safe in-memory storage for batches of jobs."""

    def __init__(self, job_store: JobStore) -> None:
        self._job_store = job_store
        self._batches: Dict[str, Batch] = {}
        self._lock = threading.RLock()

    def create(self, job_ids: Sequence[str], options: GenerationOptions) -> Batch:
        missing = [job_id for job_id in job_ids if self._job_store.get(job_id) is None]
        if missing:
            raise JobStateError(f"batch references unknown jobs: {', '.join(missing)}")
        with self._lock:
            batch_id = new_id("batch")
            while batch_id in self._batches:
                batch_id = new_id("batch")
            batch = Batch(
                id=batch_id,
                job_ids=tuple(job_ids),
                aspect_ratio=options.aspect_ratio,
                model=options.model,
            )
            self._batches[batch_id] = batch
            return replace(batch)

    def get(self, batch_id: str) -> Optional[Batch]:
        with self._lock:
            batch = self._batches.get(batch_id)
            return replace(batch) if batch else None

    def require(self, batch_id: str) -> Batch:
        batch = self.get(batch_id)
        if batch is None:
            raise NotFoundError(f"Batch {batch_id} not found")
        return batch

    def mark_completed(self, batch_id: str, when: Optional[datetime] = None) -> datetime:
        """Stamp ``completed_at`` unless already set; return the stored value."""

        with self._lock:
            batch = self._batches.get(batch_id)
            if batch is None:
                raise NotFoundError(f"Batch {batch_id} not found")
            if batch.completed_at is None:
                batch.completed_at = when or utcnow()
            return batch.completed_at

    def list(self) -> List[Batch]:
        with self._lock:
            return [replace(batch) for batch in self._batches.values()]

    def __len__(self) -> int:  # pragma: no cover - trivial
        with self._lock:
            return len(self._batches)
