"""Tool-level operations over the job engine."""
from __future__ import annotations

from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from artifacts_store import ResultPersister
from config import (
    ASPECT_RATIOS,
    AVAILABLE_MODELS,
    BATCH_MAX_ITEMS,
    BATCH_MIN_ITEMS,
    DEFAULT_ASPECT_RATIO,
    DEFAULT_FILENAME_PREFIX,
    DEFAULT_MODEL,
    GENERATION_MAX_WORKERS,
)
from observability.logger import get_logger
from observability.metrics import BATCHES_SUBMITTED, JOBS_SUBMITTED, get_registry

from .aggregate import aggregate
from .errors import UnavailableError, ValidationError
from .models import GenerationOptions, JobStatus, format_ts, preview
from .runner import JobRunner
from .store import BatchStore, JobStore

LOGGER = get_logger("imagegen.jobs.service")
REGISTRY = get_registry()
JOBS_COUNTER = REGISTRY.counter(JOBS_SUBMITTED)
BATCHES_COUNTER = REGISTRY.counter(BATCHES_SUBMITTED)

PromptSpec = Union[str, Mapping[str, Any]]


def _require_prompt(value: Any, *, label: str = "prompt") -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{label} must be a non-empty string")
    return value


def resolve_options(
    aspect_ratio: Optional[str],
    model: Optional[str],
    *,
    defaults: Optional[GenerationOptions] = None,
    label: str = "",
) -> GenerationOptions:
    """Apply defaults and reject values outside the supported enums."""

    base = defaults or GenerationOptions(aspect_ratio=DEFAULT_ASPECT_RATIO, model=DEFAULT_MODEL)
    ratio = aspect_ratio if aspect_ratio is not None else base.aspect_ratio
    chosen_model = model if model is not None else base.model
    where = f" ({label})" if label else ""
    if ratio not in ASPECT_RATIOS:
        raise ValidationError(f"aspectRatio{where} must be one of {', '.join(ASPECT_RATIOS)}; got {ratio!r}")
    if chosen_model not in AVAILABLE_MODELS:
        raise ValidationError(f"model{where} must be one of {', '.join(AVAILABLE_MODELS)}; got {chosen_model!r}")
    return GenerationOptions(aspect_ratio=ratio, model=chosen_model)


class JobService:
    """Submission, status, listing and save operations exposed as tools."""

    def __init__(
        self,
        job_store: JobStore,
        batch_store: BatchStore,
        runner: JobRunner,
        persister: ResultPersister,
    ) -> None:
        self.job_store = job_store
        self.batch_store = batch_store
        self.runner = runner
        self.persister = persister

    @classmethod
    def create(
        cls,
        generator: Callable[[str, str, str], str],
        *,
        max_workers: int = GENERATION_MAX_WORKERS,
    ) -> "JobService":
        job_store = JobStore()
        batch_store = BatchStore(job_store)
        runner = JobRunner(job_store, generator, max_workers=max_workers)
        persister = ResultPersister(job_store, batch_store)
        return cls(job_store, batch_store, runner, persister)

    def shutdown(self, wait: bool = True) -> None:
        self.runner.shutdown(wait=wait)

    # -- jobs -----------------------------------------------------------

    def submit_job(
        self,
        prompt: str,
        aspect_ratio: Optional[str] = None,
        model: Optional[str] = None,
    ) -> Dict[str, Any]:
        prompt = _require_prompt(prompt)
        options = resolve_options(aspect_ratio, model)
        self._require_accepting()
        job_id = self._create_and_dispatch(prompt, options)
        return {
            "jobId": job_id,
            "status": JobStatus.PENDING.value,
            "message": "Image generation started. Use get_job_status to monitor progress.",
        }

    def get_job_status(self, job_id: str) -> Dict[str, Any]:
        return self.job_store.require(job_id).to_dict()

    def save_job_result(self, job_id: str, file_path: str) -> Dict[str, Any]:
        written = self.persister.save_one(job_id, file_path)
        return {
            "success": True,
            "message": f"Image saved successfully to {written}",
            "filePath": str(written),
        }

    def list_jobs(self) -> Dict[str, Any]:
        jobs = [job.to_summary() for job in self.job_store.list()]
        return {"totalJobs": len(jobs), "jobs": jobs}

    # -- batches --------------------------------------------------------

    def submit_batch(
        self,
        prompts: Sequence[PromptSpec],
        aspect_ratio: Optional[str] = None,
        model: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Validate every item, then create and dispatch one job per item.

        Nothing is created when any item is invalid or the batch size is out
        of range.
        """

        if not isinstance(prompts, (list, tuple)):
            raise ValidationError("prompts must be a list")
        if len(prompts) < BATCH_MIN_ITEMS:
            raise ValidationError(f"A batch needs at least {BATCH_MIN_ITEMS} prompt")
        if len(prompts) > BATCH_MAX_ITEMS:
            raise ValidationError(f"A batch accepts at most {BATCH_MAX_ITEMS} prompts; got {len(prompts)}")

        defaults = resolve_options(aspect_ratio, model)
        planned: List[tuple] = []
        for index, spec in enumerate(prompts, start=1):
            label = f"item {index}"
            if isinstance(spec, str):
                planned.append((_require_prompt(spec, label=f"prompt of {label}"), defaults))
                continue
            if not isinstance(spec, Mapping):
                raise ValidationError(f"{label} must be a string or an object with a prompt")
            item_prompt = _require_prompt(spec.get("prompt"), label=f"prompt of {label}")
            item_options = resolve_options(
                spec.get("aspectRatio"),
                spec.get("model"),
                defaults=defaults,
                label=label,
            )
            planned.append((item_prompt, item_options))

        self._require_accepting()
        job_ids = [self._create_and_dispatch(item_prompt, item_options) for item_prompt, item_options in planned]
        batch = self.batch_store.create(job_ids, defaults)
        BATCHES_COUNTER.inc()
        LOGGER.info("batch_submitted", extra={"batch_id": batch.id, "total_jobs": batch.total_count})
        return {
            "batchId": batch.id,
            "jobIds": list(batch.job_ids),
            "totalJobs": batch.total_count,
            "status": JobStatus.PENDING.value,
            "message": (
                f"Batch of {batch.total_count} image(s) started. "
                "Use get_batch_status to monitor progress."
            ),
        }

    def get_batch_status(self, batch_id: str) -> Dict[str, Any]:
        batch = self.batch_store.require(batch_id)
        result, batch, members = aggregate(batch, self.job_store, self.batch_store)
        summaries: List[Dict[str, Any]] = []
        for index, job in enumerate(members, start=1):
            entry: Dict[str, Any] = {
                "index": index,
                "jobId": job.id,
                "status": job.status.value,
                "prompt": preview(job.prompt),
            }
            if job.status == JobStatus.FAILED:
                entry["error"] = job.error
            summaries.append(entry)
        return {
            "batchId": batch.id,
            "status": result.status.value,
            "counts": result.counts(),
            "totalJobs": result.total,
            "createdAt": format_ts(batch.created_at),
            "completedAt": format_ts(batch.completed_at),
            "jobs": summaries,
        }

    def save_batch_results(
        self,
        batch_id: str,
        directory: str,
        filename_prefix: str = DEFAULT_FILENAME_PREFIX,
    ) -> Dict[str, Any]:
        return self.persister.save_batch(batch_id, directory, filename_prefix).to_dict()

    def list_batches(self) -> Dict[str, Any]:
        entries: List[Dict[str, Any]] = []
        for batch in self.batch_store.list():
            result, batch, _members = aggregate(batch, self.job_store, self.batch_store)
            entries.append(
                {
                    "batchId": batch.id,
                    "status": result.status.value,
                    "counts": result.counts(),
                    "totalJobs": result.total,
                    "createdAt": format_ts(batch.created_at),
                    "completedAt": format_ts(batch.completed_at),
                }
            )
        return {"totalBatches": len(entries), "batches": entries}

    def _require_accepting(self) -> None:
        if not self.runner.accepting:
            raise UnavailableError("Job runner is shut down; no new jobs are accepted")

    def _create_and_dispatch(self, prompt: str, options: GenerationOptions) -> str:
        job = self.job_store.create(prompt, options)
        JOBS_COUNTER.inc()
        LOGGER.info("job_submitted", extra={"job_id": job.id, "model": options.model, "aspect_ratio": options.aspect_ratio})
        self.runner.submit(job.id, prompt, options)
        return job.id


__all__ = ["JobService", "resolve_options"]
