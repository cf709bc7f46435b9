"""
Fine-tuning run orchestrator.

State machine over RunStatus:

    pending -> uploading -> submitted -> running -> completed
                   |            |          |    -> failed
                   +-> failed   +-> failed +-----> cancelled

Notes:
- start() is strictly sequential (upload, then submit, then persist) and
  creates the run record exactly once, at the end of the attempt.
- Upload and submission failures are fatal to the attempt and are persisted
  as a failed run with no provider job id.
- reconcile() never moves a run backward. Poll failures are transient: the
  run is left as is and the failure is counted.
- Scheduling (poll cadence, retry backoff) belongs to the caller.
"""

from __future__ import annotations

import logging
import tempfile
import threading
import weakref
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

from aitelier.core.config import config
from aitelier.core.exceptions import (
    AnomalousTransitionError,
    CancellationError,
    InsufficientDataError,
    JobStatusError,
    ProviderError,
    SubmissionError,
    TrainingRunError,
    TransientPollError,
    UploadError,
)
from aitelier.data.project import ProjectConfig
from aitelier.data.serialization import write_training_file
from aitelier.data.store import ExampleStore
from aitelier.providers.base import FineTuneRequest, Provider, RemoteJobState

from .schema import Run, RunStatus, is_forward_transition
from .store import RunStore

logger = logging.getLogger(__name__)

REMOTE_TO_LOCAL: Dict[RemoteJobState, RunStatus] = {
    RemoteJobState.PENDING: RunStatus.SUBMITTED,
    RemoteJobState.RUNNING: RunStatus.RUNNING,
    RemoteJobState.COMPLETED: RunStatus.COMPLETED,
    RemoteJobState.FAILED: RunStatus.FAILED,
    RemoteJobState.CANCELLED: RunStatus.CANCELLED,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _message(exc: BaseException) -> str:
    return str(exc) or exc.__class__.__name__


class RunOrchestrator:
    """
    Starts, reconciles and cancels training runs for a single provider.

    Args:
        provider: adapter used for every remote call
        example_store: source of train/val examples
        run_store: persistence for run records
        timeout: default timeout for provider calls, in seconds
    """

    def __init__(
        self,
        provider: Provider,
        example_store: ExampleStore,
        run_store: RunStore,
        timeout: Optional[float] = None,
    ) -> None:
        self.provider = provider
        self.example_store = example_store
        self.run_store = run_store
        self.timeout = timeout if timeout is not None else config.provider.request_timeout_seconds
        self.alert_threshold = config.provider.poll_failure_alert_threshold

        self.poll_failures: Counter = Counter()
        self.anomalies: Counter = Counter()

        # Entries vanish once no caller holds the lock.
        self._locks: weakref.WeakValueDictionary = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    # ------------------------------------------------------------------
    # start
    # ------------------------------------------------------------------

    def start(self, project: ProjectConfig, timeout: Optional[float] = None) -> Run:
        """
        Upload the project's splits, submit a job and persist the run.

        Raises:
            InsufficientDataError: no training examples; no run is created
            UploadError: upload failed; a failed run is persisted and attached
            SubmissionError: submission failed; a failed run is persisted and attached
        """
        timeout = self._timeout(timeout)
        train = self.example_store.list_train(project.project_id)
        if not train:
            raise InsufficientDataError(
                f"No training examples found for project {project.project_id}. Run split first."
            )
        val = self.example_store.list_val(project.project_id)

        run = Run(
            project_id=project.project_id,
            provider=self.provider.name,
            base_model=project.base_model,
            training_config=project.training_config,
            train_count=len(train),
            val_count=len(val),
        )
        logger.info(
            "Starting run %s for project %s (%d train, %d val) on %s",
            run.id,
            project.project_id,
            len(train),
            len(val),
            self.provider.name,
        )

        with tempfile.TemporaryDirectory(prefix="aitelier_") as tmp:
            train_path = Path(tmp) / "train.jsonl"
            write_training_file(train, train_path, project.system_prompt)
            val_path = None
            if val:
                val_path = Path(tmp) / "val.jsonl"
                write_training_file(val, val_path, project.system_prompt)

            run = self._advance(run, RunStatus.UPLOADING)
            try:
                training_file = self.provider.upload_training_file(train_path, timeout=timeout)
                validation_file = None
                if val_path is not None:
                    validation_file = self.provider.upload_training_file(val_path, timeout=timeout)
            except UploadError as exc:
                self._fail(run, exc)
                raise
            except (ProviderError, TimeoutError) as exc:
                raise self._fail(run, UploadError(_message(exc))) from exc

            run = self._advance(run, RunStatus.SUBMITTED)
            cfg = project.training_config
            request = FineTuneRequest(
                model=project.base_model,
                training_file=training_file,
                validation_file=validation_file,
                epochs=cfg.epochs,
                batch_size=cfg.batch_size,
                learning_rate=cfg.learning_rate,
                lora_r=cfg.lora_r,
                lora_alpha=cfg.lora_alpha,
                lora_dropout=cfg.lora_dropout,
            )
            try:
                job_id = self.provider.create_fine_tune_job(request, timeout=timeout)
            except SubmissionError as exc:
                self._fail(run, exc)
                raise
            except (ProviderError, TimeoutError) as exc:
                raise self._fail(run, SubmissionError(_message(exc))) from exc

        run = run.model_copy(update={"provider_job_id": job_id, "updated_at": _utcnow()})
        stored = self.run_store.create(run)
        logger.info("Run %s submitted as provider job %s", stored.id, job_id)
        return stored

    def _advance(self, run: Run, status: RunStatus) -> Run:
        logger.debug("Run %s: %s -> %s", run.id, run.status.value, status.value)
        return run.model_copy(update={"status": status, "updated_at": _utcnow()})

    def _fail(self, run: Run, error: TrainingRunError) -> TrainingRunError:
        """Persist ``run`` as failed and attach the stored record to ``error``."""
        message = _message(error)
        now = _utcnow()
        failed = run.model_copy(
            update={
                "status": RunStatus.FAILED,
                "error": message,
                "provider_job_id": None,
                "updated_at": now,
                "completed_at": now,
            }
        )
        stored = self.run_store.create(failed)
        logger.error("Run %s failed while %s: %s", stored.id, run.status.value, message)
        error.run = stored
        return error

    # ------------------------------------------------------------------
    # reconcile
    # ------------------------------------------------------------------

    def reconcile(self, run: Run, timeout: Optional[float] = None) -> Run:
        """
        Refresh a run from the provider's job status.

        Writes only when status, result model or error actually change.

        Raises:
            TransientPollError: provider unreachable; run left unchanged
        """
        with self._lock_for(run.id):
            current = self.run_store.get(run.id)
            if current.is_terminal:
                return current
            if not current.provider_job_id:
                logger.warning("Run %s has no provider job id; nothing to reconcile", current.id)
                return current

            try:
                remote = self.provider.get_job_status(
                    current.provider_job_id, timeout=self._timeout(timeout)
                )
            except (JobStatusError, TimeoutError) as exc:
                failures = self._record_poll_failure(current, exc)
                raise TransientPollError(
                    f"Could not poll job {current.provider_job_id}: {exc}",
                    run=current,
                    consecutive_failures=failures,
                ) from exc
            self.poll_failures.pop(current.id, None)

            target = REMOTE_TO_LOCAL[remote.status]
            if not is_forward_transition(current.status, target):
                self._record_anomaly(current, target)
                return current

            fields = {}
            if target != current.status:
                fields["status"] = target
            if target == RunStatus.COMPLETED and remote.model_id != current.result_model_id:
                fields["result_model_id"] = remote.model_id
            if target == RunStatus.FAILED:
                error = remote.error or "Fine-tune job failed"
                if error != current.error:
                    fields["error"] = error

            if not fields:
                return current
            if target.is_terminal:
                fields["completed_at"] = _utcnow()

            try:
                updated = self.run_store.update(current.id, **fields)
            except AnomalousTransitionError as exc:
                self.anomalies[current.id] += 1
                logger.warning("Run %s: %s", current.id, exc)
                return self.run_store.get(current.id)

            logger.info(
                "Run %s: %s -> %s", updated.id, current.status.value, updated.status.value
            )
            return updated

    def _record_poll_failure(self, run: Run, exc: BaseException) -> int:
        self.poll_failures[run.id] += 1
        failures = self.poll_failures[run.id]
        level = logging.ERROR if failures >= self.alert_threshold else logging.WARNING
        logger.log(
            level,
            "Polling run %s (job %s) failed %d time(s) in a row: %s",
            run.id,
            run.provider_job_id,
            failures,
            exc,
        )
        return failures

    def _record_anomaly(self, run: Run, target: RunStatus) -> None:
        self.anomalies[run.id] += 1
        error = AnomalousTransitionError(
            f"Ignoring backward transition {run.status.value} -> {target.value}",
            run=run,
        )
        logger.warning("Run %s (job %s): %s", run.id, run.provider_job_id, error)

    # ------------------------------------------------------------------
    # cancel
    # ------------------------------------------------------------------

    def cancel(self, run: Run, timeout: Optional[float] = None) -> Run:
        """
        Cancel a run. Idempotent for runs that are already terminal.

        Raises:
            CancellationError: the provider refused or could not be reached
        """
        with self._lock_for(run.id):
            current = self.run_store.get(run.id)
            if current.is_terminal:
                logger.info("Run %s already %s; cancel is a no-op", current.id, current.status.value)
                return current

            if current.provider_job_id:
                try:
                    self.provider.cancel_job(current.provider_job_id, timeout=self._timeout(timeout))
                except (CancellationError, TimeoutError) as exc:
                    raise CancellationError(str(exc), run=current) from exc

            try:
                updated = self.run_store.update(
                    current.id, status=RunStatus.CANCELLED, completed_at=_utcnow()
                )
            except AnomalousTransitionError as exc:
                logger.warning("Run %s: %s", current.id, exc)
                return self.run_store.get(current.id)
            logger.info("Run %s cancelled", updated.id)
            return updated

    def _timeout(self, timeout: Optional[float]) -> float:
        return timeout if timeout is not None else self.timeout

    def _lock_for(self, run_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(run_id)
            if lock is None:
                lock = self._locks[run_id] = threading.Lock()
            return lock
