from __future__ import annotations

import threading

import pytest

from conftest import OPTIONS, PNG_B64, make_job
from jobs.errors import JobStateError, NotFoundError
from jobs.models import JobStatus


def test_create_starts_pending(job_store):
    job = job_store.create("a lighthouse at dusk", OPTIONS)

    assert job.status == JobStatus.PENDING
    assert job.prompt == "a lighthouse at dusk"
    assert job.payload is None and job.error is None
    assert job.completed_at is None
    assert job_store.get(job.id).status == JobStatus.PENDING


def test_require_unknown_job_raises_not_found(job_store):
    assert job_store.get("job_missing") is None
    with pytest.raises(NotFoundError):
        job_store.require("job_missing")


def test_successful_lifecycle_sets_payload_and_completion(job_store):
    job = job_store.create("a cat", OPTIONS)
    processing = job_store.transition(job.id, JobStatus.PROCESSING)
    assert processing.started_at is not None
    assert processing.completed_at is None

    done = job_store.transition(job.id, JobStatus.COMPLETED, payload=PNG_B64)
    assert done.status == JobStatus.COMPLETED
    assert done.payload == PNG_B64
    assert done.error is None
    assert done.completed_at is not None


def test_failed_lifecycle_records_error(job_store):
    job = make_job(job_store, JobStatus.FAILED)
    assert job.status == JobStatus.FAILED
    assert job.error == "Gemini API error: HTTP 500"
    assert job.payload is None
    assert job.completed_at is not None


@pytest.mark.parametrize(
    "start,target",
    [
        (JobStatus.PENDING, JobStatus.COMPLETED),
        (JobStatus.PENDING, JobStatus.FAILED),
        (JobStatus.PENDING, JobStatus.PENDING),
        (JobStatus.PROCESSING, JobStatus.PROCESSING),
        (JobStatus.PROCESSING, JobStatus.PENDING),
        (JobStatus.COMPLETED, JobStatus.FAILED),
        (JobStatus.COMPLETED, JobStatus.PROCESSING),
        (JobStatus.FAILED, JobStatus.COMPLETED),
        (JobStatus.FAILED, JobStatus.PENDING),
    ],
)
def test_illegal_transitions_are_rejected(job_store, start, target):
    job = make_job(job_store, start)
    before = job_store.get(job.id)

    with pytest.raises(JobStateError):
        job_store.transition(job.id, target, payload=PNG_B64, error="nope")

    assert job_store.get(job.id) == before


def test_completion_requires_payload(job_store):
    job = make_job(job_store, JobStatus.PROCESSING)
    with pytest.raises(JobStateError):
        job_store.transition(job.id, JobStatus.COMPLETED, payload=None)
    assert job_store.get(job.id).status == JobStatus.PROCESSING


def test_transition_of_unknown_job_is_a_state_error(job_store):
    with pytest.raises(JobStateError):
        job_store.transition("job_missing", JobStatus.PROCESSING)


def test_snapshots_are_isolated_from_later_updates(job_store):
    job = make_job(job_store, JobStatus.PROCESSING)
    snapshot = job_store.get(job.id)

    job_store.transition(job.id, JobStatus.COMPLETED, payload=PNG_B64)

    assert snapshot.status == JobStatus.PROCESSING
    assert snapshot.payload is None
    assert job_store.get(job.id).status == JobStatus.COMPLETED


def test_list_preserves_creation_order(job_store):
    ids = [job_store.create(f"prompt {index}", OPTIONS).id for index in range(5)]
    assert [job.id for job in job_store.list()] == ids


def test_readers_never_observe_terminal_status_without_result(job_store):
    jobs = [make_job(job_store, JobStatus.PROCESSING) for _ in range(50)]
    violations = []
    stop = threading.Event()

    def _reader():
        while not stop.is_set():
            for job in job_store.list():
                if job.status == JobStatus.COMPLETED and not job.payload:
                    violations.append(job.id)
                if job.status == JobStatus.FAILED and not job.error:
                    violations.append(job.id)

    reader = threading.Thread(target=_reader)
    reader.start()
    for index, job in enumerate(jobs):
        if index % 2:
            job_store.transition(job.id, JobStatus.COMPLETED, payload=PNG_B64)
        else:
            job_store.transition(job.id, JobStatus.FAILED, error="boom")
    stop.set()
    reader.join(timeout=5)

    assert violations == []


def test_batch_store_requires_existing_members(job_store, batch_store):
    job = make_job(job_store)
    with pytest.raises(JobStateError):
        batch_store.create([job.id, "job_missing"], OPTIONS)
    assert batch_store.list() == []


def test_batch_store_mark_completed_is_set_once(job_store, batch_store):
    job = make_job(job_store, JobStatus.COMPLETED)
    batch = batch_store.create([job.id], OPTIONS)

    first = batch_store.mark_completed(batch.id)
    second = batch_store.mark_completed(batch.id)

    assert first == second
    assert batch_store.get(batch.id).completed_at == first


def test_batch_store_unknown_batch(batch_store):
    assert batch_store.get("batch_missing") is None
    with pytest.raises(NotFoundError):
        batch_store.require("batch_missing")
