"""Background dispatch of generation jobs onto a worker pool."""
from __future__ import annotations

import base64
import binascii
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import wait as wait_futures
from typing import Callable, Dict, Optional

from config import GENERATION_MAX_WORKERS
from observability.logger import get_logger, log_transition
from observability.metrics import JOBS_COMPLETED, JOBS_FAILED, JOBS_IN_FLIGHT, get_registry

from .errors import UnavailableError, UpstreamError
from .models import GenerationOptions, JobStatus
from .store import JobStore

LOGGER = get_logger("imagegen.jobs.runner")
REGISTRY = get_registry()
IN_FLIGHT_GAUGE = REGISTRY.gauge(JOBS_IN_FLIGHT)
COMPLETED_COUNTER = REGISTRY.counter(JOBS_COMPLETED)
FAILED_COUNTER = REGISTRY.counter(JOBS_FAILED)


def describe_failure(exc: BaseException) -> str:
    message = str(exc).strip()
    if isinstance(exc, UpstreamError):
        return message or "Image generation service failed"
    if not message:
        return exc.__class__.__name__
    return message


def _validate_payload(payload: object) -> str:
    if not isinstance(payload, str) or not payload.strip():
        raise UpstreamError("No image data in response")
    try:
        base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise UpstreamError("Image data in response is not valid base64") from exc
    return payload


class JobRunner:
    """Fire-and-forget dispatcher: one pooled task per job.

    Each task moves its job to processing, calls the generator exactly once
    and records either the payload or a failure message. ``submit`` returns
    as soon as the task is queued.
    """

    def __init__(
        self,
        store: JobStore,
        generator: Callable[[str, str, str], str],
        *,
        max_workers: int = GENERATION_MAX_WORKERS,
    ) -> None:
        self._store = store
        self._generator = generator
        self._executor = ThreadPoolExecutor(max_workers=max(1, max_workers), thread_name_prefix="job-runner")
        self._futures: Dict[str, Future] = {}
        self._futures_lock = threading.Lock()
        self._closed = False

    @property
    def accepting(self) -> bool:
        with self._futures_lock:
            return not self._closed

    def submit(self, job_id: str, prompt: str, options: GenerationOptions) -> Future:
        """Queue the job; a closed runner fails the job and raises UnavailableError."""

        with self._futures_lock:
            if self._closed:
                future = None
            else:
                future = self._executor.submit(self._run_job, job_id, prompt, options)
                self._futures[job_id] = future
        if future is None:
            self._fail_unscheduled(job_id)
            raise UnavailableError("Job runner is shut down; no new jobs are accepted")
        future.add_done_callback(lambda done, job_id=job_id: self._on_done(job_id, done))
        LOGGER.info("job_enqueued", extra={"job_id": job_id, "model": options.model})
        return future

    def wait(self, job_id: str, timeout: Optional[float] = None) -> bool:
        """Block until the job's task finishes; True when the job is terminal."""

        with self._futures_lock:
            future = self._futures.get(job_id)
        if future is not None:
            wait_futures([future], timeout=timeout)
        job = self._store.get(job_id)
        return bool(job and job.status.is_terminal)

    def shutdown(self, wait: bool = True) -> None:
        with self._futures_lock:
            self._closed = True
        self._executor.shutdown(wait=wait)

    def in_flight(self) -> int:
        with self._futures_lock:
            return len(self._futures)

    def _fail_unscheduled(self, job_id: str) -> None:
        error = "Job was not started: runner is shut down"
        self._store.transition(job_id, JobStatus.PROCESSING)
        self._store.transition(job_id, JobStatus.FAILED, error=error)
        FAILED_COUNTER.inc()
        log_transition(LOGGER, job_id=job_id, status=JobStatus.FAILED.value, error=error)

    def _on_done(self, job_id: str, future: Future) -> None:
        with self._futures_lock:
            self._futures.pop(job_id, None)
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            LOGGER.critical(
                "job_state_violation",
                exc_info=(type(exc), exc, exc.__traceback__),
                extra={"job_id": job_id},
            )

    def _run_job(self, job_id: str, prompt: str, options: GenerationOptions) -> None:
        self._store.transition(job_id, JobStatus.PROCESSING)
        log_transition(LOGGER, job_id=job_id, status=JobStatus.PROCESSING.value, model=options.model)

        IN_FLIGHT_GAUGE.add(1)
        try:
            payload = _validate_payload(self._generator(prompt, options.aspect_ratio, options.model))
        except Exception as exc:  # noqa: BLE001
            error = describe_failure(exc)
            self._store.transition(job_id, JobStatus.FAILED, error=error)
            FAILED_COUNTER.inc()
            log_transition(LOGGER, job_id=job_id, status=JobStatus.FAILED.value, error=error)
            return
        finally:
            IN_FLIGHT_GAUGE.add(-1)

        self._store.transition(job_id, JobStatus.COMPLETED, payload=payload)
        COMPLETED_COUNTER.inc()
        log_transition(LOGGER, job_id=job_id, status=JobStatus.COMPLETED.value, payload_chars=len(payload))


__all__ = ["JobRunner", "describe_failure"]
