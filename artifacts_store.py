"""Writing generated images of completed jobs to the filesystem."""
from __future__ import annotations

import base64
import binascii
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List

from config import DEFAULT_FILENAME_PREFIX, OUTPUT_EXTENSION
from jobs.errors import InvalidStateError, JobError, PersistenceError, ValidationError
from jobs.models import JobStatus
from jobs.store import BatchStore, JobStore
from observability.metrics import RESULTS_FAILED, RESULTS_SAVED, get_registry

LOGGER = logging.getLogger("imagegen.artifacts")
REGISTRY = get_registry()
SAVED_COUNTER = REGISTRY.counter(RESULTS_SAVED)
FAILED_COUNTER = REGISTRY.counter(RESULTS_FAILED)


@dataclass
class SavedItem:
    index: int
    job_id: str
    file_path: str

    def to_dict(self) -> Dict[str, Any]:
        return {"index": self.index, "jobId": self.job_id, "filePath": self.file_path}


@dataclass
class FailedItem:
    index: int
    job_id: str
    error: str
    code: str

    def to_dict(self) -> Dict[str, Any]:
        return {"index": self.index, "jobId": self.job_id, "error": self.error, "code": self.code}


@dataclass
class BatchSaveReport:
    batch_id: str
    directory: str
    saved: List[SavedItem] = field(default_factory=list)
    failed: List[FailedItem] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return bool(self.saved)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "batchId": self.batch_id,
            "directory": self.directory,
            "saved": [item.to_dict() for item in self.saved],
            "failed": [item.to_dict() for item in self.failed],
            "totalSaved": len(self.saved),
            "totalFailed": len(self.failed),
        }


def _absolute(raw_path: str | Path, *, label: str) -> Path:
    # os.path rejects NUL bytes with ValueError, not OSError.
    if "\x00" in str(raw_path):
        raise ValidationError(f"Invalid {label}: embedded null byte")
    try:
        return Path(os.path.expanduser(str(raw_path))).resolve()
    except ValueError as exc:
        raise ValidationError(f"Invalid {label}: {exc}") from exc


def resolve_output_path(raw_path: str | Path) -> Path:
    """Return the absolute destination, requiring the image extension."""

    candidate = _absolute(raw_path, label="file path")
    if not str(candidate).endswith(OUTPUT_EXTENSION):
        raise ValidationError(f"File path must end in {OUTPUT_EXTENSION}")
    return candidate


def _validate_prefix(prefix: str) -> str:
    if not prefix or not prefix.strip():
        raise ValidationError("Filename prefix must not be empty")
    if prefix != prefix.strip():
        raise ValidationError(f"Filename prefix must not start or end with whitespace: {prefix!r}")
    if "\x00" in prefix:
        raise ValidationError("Filename prefix must not contain NUL characters")
    if "/" in prefix or "\\" in prefix or prefix in {".", ".."}:
        raise ValidationError("Filename prefix must not contain path separators")
    return prefix


def _decode_payload(job_id: str, payload: str) -> bytes:
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise PersistenceError(f"Job {job_id} has corrupt image data") from exc


class ResultPersister:
    """Saves completed job payloads under caller-chosen paths."""

    def __init__(self, job_store: JobStore, batch_store: BatchStore) -> None:
        self._job_store = job_store
        self._batch_store = batch_store

    def save_one(self, job_id: str, destination: str | Path) -> Path:
        job = self._job_store.require(job_id)
        if job.status != JobStatus.COMPLETED:
            raise InvalidStateError(f"Job {job_id} is not completed (status: {job.status.value})")
        if not job.payload:
            raise InvalidStateError(f"Job {job_id} has no result data")

        target = resolve_output_path(destination)
        data = _decode_payload(job_id, job.payload)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as exc:
            FAILED_COUNTER.inc()
            raise PersistenceError(f"Failed to write {target}: {exc.strerror or exc}") from exc

        SAVED_COUNTER.inc()
        LOGGER.info("result_saved", extra={"job_id": job_id, "path": str(target), "bytes": len(data)})
        return target

    def save_batch(
        self,
        batch_id: str,
        directory: str | Path,
        filename_prefix: str = DEFAULT_FILENAME_PREFIX,
    ) -> BatchSaveReport:
        """Save every member of a batch as ``<prefix>_<n>.png``.

        Members are attempted independently in submission order; a failure
        is recorded on the report and does not stop the remaining items.
        """

        batch = self._batch_store.require(batch_id)
        prefix = _validate_prefix(filename_prefix)
        target_dir = _absolute(directory, label="directory")
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise PersistenceError(f"Failed to create directory {target_dir}: {exc.strerror or exc}") from exc

        report = BatchSaveReport(batch_id=batch.id, directory=str(target_dir))
        for index, job_id in enumerate(batch.job_ids, start=1):
            destination = target_dir / f"{prefix}_{index}{OUTPUT_EXTENSION}"
            try:
                written = self.save_one(job_id, destination)
            except JobError as exc:
                report.failed.append(FailedItem(index=index, job_id=job_id, error=exc.message, code=exc.code))
                continue
            report.saved.append(SavedItem(index=index, job_id=job_id, file_path=str(written)))

        LOGGER.info(
            "batch_results_saved",
            extra={"batch_id": batch.id, "saved": len(report.saved), "failed": len(report.failed)},
        )
        return report


__all__ = ["BatchSaveReport", "FailedItem", "ResultPersister", "SavedItem", "resolve_output_path"]
