from __future__ import annotations

import threading

import pytest

from conftest import OPTIONS, PNG_B64
from jobs.errors import UnavailableError, UpstreamError
from jobs.models import JobStatus
from jobs.runner import JobRunner


@pytest.fixture
def make_runner(job_store):
    runners = []

    def _factory(generator, **kwargs):
        runner = JobRunner(job_store, generator, **kwargs)
        runners.append(runner)
        return runner

    yield _factory
    for runner in runners:
        runner.shutdown(wait=True)


def _submit(job_store, runner, prompt="a blue whale"):
    job = job_store.create(prompt, OPTIONS)
    runner.submit(job.id, prompt, OPTIONS)
    return job


def test_job_runner_success(job_store, make_runner):
    calls = []

    def _fake_generate(prompt, aspect_ratio, model):
        calls.append((prompt, aspect_ratio, model))
        return PNG_B64

    runner = make_runner(_fake_generate)
    job = _submit(job_store, runner)

    assert runner.wait(job.id, timeout=5) is True
    snapshot = job_store.get(job.id)
    assert snapshot.status == JobStatus.COMPLETED
    assert snapshot.payload == PNG_B64
    assert snapshot.started_at is not None
    assert snapshot.completed_at is not None
    assert calls == [("a blue whale", "1:1", "gemini-3-pro-image-preview")]


def test_job_runner_records_upstream_error(job_store, make_runner):
    def _raise_generate(*_args):
        raise UpstreamError("Gemini API error: HTTP 429: quota exceeded")

    runner = make_runner(_raise_generate)
    job = _submit(job_store, runner)

    runner.wait(job.id, timeout=5)
    snapshot = job_store.get(job.id)
    assert snapshot.status == JobStatus.FAILED
    assert snapshot.error == "Gemini API error: HTTP 429: quota exceeded"
    assert snapshot.payload is None


def test_job_runner_collapses_unexpected_exceptions(job_store, make_runner):
    def _raise_generate(*_args):
        raise RuntimeError("boom")

    runner = make_runner(_raise_generate)
    job = _submit(job_store, runner)

    runner.wait(job.id, timeout=5)
    assert job_store.get(job.id).error == "boom"


@pytest.mark.parametrize("payload", [None, "", "not base64 at all!"])
def test_job_runner_treats_unusable_payload_as_failure(job_store, make_runner, payload):
    runner = make_runner(lambda *_args: payload)
    job = _submit(job_store, runner)

    runner.wait(job.id, timeout=5)
    snapshot = job_store.get(job.id)
    assert snapshot.status == JobStatus.FAILED
    assert snapshot.error


def test_submit_returns_before_generation_resolves(job_store, make_runner):
    release = threading.Event()
    started = threading.Event()

    def _slow_generate(*_args):
        started.set()
        release.wait(timeout=5)
        return PNG_B64

    runner = make_runner(_slow_generate)
    job = _submit(job_store, runner)

    assert job_store.get(job.id).status in {JobStatus.PENDING, JobStatus.PROCESSING}
    assert started.wait(timeout=5)
    assert job_store.get(job.id).status == JobStatus.PROCESSING
    assert runner.wait(job.id, timeout=0.05) is False

    release.set()
    assert runner.wait(job.id, timeout=5) is True
    assert job_store.get(job.id).status == JobStatus.COMPLETED


def test_generator_called_exactly_once_per_job(job_store, make_runner):
    calls = []
    lock = threading.Lock()

    def _counting_generate(prompt, *_args):
        with lock:
            calls.append(prompt)
        raise UpstreamError("fail")

    runner = make_runner(_counting_generate, max_workers=4)
    jobs = [_submit(job_store, runner, prompt=f"prompt {index}") for index in range(10)]
    for job in jobs:
        runner.wait(job.id, timeout=5)

    assert sorted(calls) == sorted(f"prompt {index}" for index in range(10))
    assert all(job_store.get(job.id).status == JobStatus.FAILED for job in jobs)


def test_wait_on_unknown_job_returns_false(job_store, make_runner):
    runner = make_runner(lambda *_args: PNG_B64)
    assert runner.wait("job_missing", timeout=0.1) is False


def test_submit_after_shutdown_fails_the_job(job_store, make_runner):
    calls = []
    runner = make_runner(lambda *args: calls.append(args) or PNG_B64)
    runner.shutdown(wait=True)
    assert runner.accepting is False

    job = job_store.create("too late", OPTIONS)
    with pytest.raises(UnavailableError):
        runner.submit(job.id, "too late", OPTIONS)

    stored = job_store.get(job.id)
    assert stored.status == JobStatus.FAILED
    assert "shut down" in stored.error
    assert calls == []
    assert runner.in_flight() == 0
