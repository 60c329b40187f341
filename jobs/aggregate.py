"""Batch status aggregation over member job states."""
from __future__ import annotations

from typing import Iterable, List, Tuple

from observability.logger import get_logger

from .errors import JobStateError
from .models import AggregateStatus, Batch, BatchStatus, Job, JobStatus, utcnow
from .store import BatchStore, JobStore

LOGGER = get_logger("imagegen.jobs.aggregate")


def summarize(statuses: Iterable[JobStatus], total: int) -> AggregateStatus:
    """Derive the batch status from member statuses.

    A batch is failed only when every member failed; any success turns an
    all-done batch into partial; while anything is outstanding the batch is
    processing (once work has started or finished) or pending.
    """

    tally = {status: 0 for status in JobStatus}
    for status in statuses:
        tally[JobStatus(status)] += 1

    pending = tally[JobStatus.PENDING]
    processing = tally[JobStatus.PROCESSING]
    completed = tally[JobStatus.COMPLETED]
    failed = tally[JobStatus.FAILED]
    all_done = completed + failed == total

    if all_done and failed == total:
        status = BatchStatus.FAILED
    elif all_done and failed > 0:
        status = BatchStatus.PARTIAL
    elif all_done:
        status = BatchStatus.COMPLETED
    elif processing > 0 or completed > 0:
        status = BatchStatus.PROCESSING
    else:
        status = BatchStatus.PENDING

    return AggregateStatus(
        status=status,
        pending=pending,
        processing=processing,
        completed=completed,
        failed=failed,
        total=total,
    )


def collect_members(batch: Batch, job_store: JobStore) -> List[Job]:
    members: List[Job] = []
    for job_id in batch.job_ids:
        job = job_store.get(job_id)
        if job is None:
            raise JobStateError(f"batch {batch.id} references missing job {job_id}")
        members.append(job)
    return members


def aggregate(batch: Batch, job_store: JobStore, batch_store: BatchStore) -> Tuple[AggregateStatus, Batch, List[Job]]:
    """Aggregate ``batch`` and stamp its completion time on first observation.

    Returns the aggregate, the batch as stored after stamping, and the member
    snapshots the aggregate was computed from.
    """

    members = collect_members(batch, job_store)
    result = summarize((job.status for job in members), batch.total_count)
    if result.all_done and batch.completed_at is None:
        observed_at = utcnow()
        stamped_at = batch_store.mark_completed(batch.id, observed_at)
        batch = batch_store.require(batch.id)
        if stamped_at == observed_at:
            LOGGER.info(
                "batch_completed",
                extra={"batch_id": batch.id, "batch_status": result.status.value, **result.counts()},
            )
    return result, batch, members


__all__ = ["aggregate", "collect_members", "summarize"]
