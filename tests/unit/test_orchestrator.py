"""
Unit tests for the run orchestrator state machine.
"""

import threading

import pytest

from aitelier.core.exceptions import (
    CancellationError,
    InsufficientDataError,
    JobStatusError,
    ProviderError,
    SubmissionError,
    TransientPollError,
    UploadError,
)
from aitelier.data.project import TrainingConfig
from aitelier.data.serialization import parse_training_record
from aitelier.data.schema import Split
from aitelier.providers.base import RemoteJobState
from aitelier.training.orchestrator import RunOrchestrator
from aitelier.training.schema import Run, RunStatus
from aitelier.training.store import JsonRunStore


@pytest.fixture
def orchestrator(fake_provider, ready_dataset, run_store):
    return RunOrchestrator(fake_provider, ready_dataset, run_store, timeout=15.0)


@pytest.fixture
def submitted_run(orchestrator, project):
    return orchestrator.start(project)


class TestStart:
    def test_happy_path(self, orchestrator, project, fake_provider, run_store):
        run = orchestrator.start(project)

        assert run.status == RunStatus.SUBMITTED
        assert run.provider_job_id == "job-1"
        assert run.provider == "fake"
        assert (run.train_count, run.val_count) == (12, 3)
        assert run.completed_at is None
        assert run_store.creates == 1
        assert run_store.updates == 0
        assert run_store.get(run.id) == run

    def test_uploads_train_then_val(self, orchestrator, project, fake_provider):
        orchestrator.start(project)

        train_file, val_file = fake_provider.uploaded
        assert len(train_file.splitlines()) == 12
        assert len(val_file.splitlines()) == 3
        assert parse_training_record(train_file.splitlines()[0]).output.startswith("answer")
        assert '"You are concise."' in train_file

    def test_request_carries_training_config(self, orchestrator, project, fake_provider):
        orchestrator.start(project)

        (request,) = fake_provider.requests
        assert request.model == "meta-llama/Llama-3-8b"
        assert request.training_file == "file-1"
        assert request.validation_file == "file-2"
        assert request.epochs == 3
        assert request.batch_size == 4
        assert request.learning_rate == 1e-5
        assert request.lora_r == 16

    def test_timeout_passed_to_provider(self, orchestrator, project, fake_provider):
        orchestrator.start(project, timeout=3.0)

        assert fake_provider.timeouts == [3.0, 3.0, 3.0]

    def test_zero_timeout_is_kept(self, orchestrator, project, fake_provider):
        orchestrator.start(project, timeout=0)

        assert fake_provider.timeouts == [0, 0, 0]

    def test_zero_default_timeout_is_kept(self, fake_provider, ready_dataset, run_store, project):
        RunOrchestrator(fake_provider, ready_dataset, run_store, timeout=0.0).start(project)

        assert fake_provider.timeouts == [0.0, 0.0, 0.0]

    def test_without_validation_split(self, fake_provider, example_store, run_store, project, seed_examples):
        seed_examples(4, split=Split.TRAIN, rating=9)

        run = RunOrchestrator(fake_provider, example_store, run_store).start(project)

        assert run.val_count == 0
        assert len(fake_provider.uploaded) == 1
        assert fake_provider.requests[0].validation_file is None

    def test_no_training_examples(self, fake_provider, example_store, run_store, project, seed_examples):
        seed_examples(3, split=Split.VAL, rating=9)

        with pytest.raises(InsufficientDataError):
            RunOrchestrator(fake_provider, example_store, run_store).start(project)

        assert run_store.creates == 0
        assert fake_provider.uploaded == []

    def test_upload_failure_persists_failed_run(self, orchestrator, project, fake_provider, run_store):
        fake_provider.upload_error = UploadError("network down")

        with pytest.raises(UploadError) as excinfo:
            orchestrator.start(project)

        failed = excinfo.value.run
        assert failed.status == RunStatus.FAILED
        assert failed.error == "network down"
        assert failed.provider_job_id is None
        assert failed.completed_at is not None
        assert run_store.creates == 1
        assert run_store.get(failed.id) == failed
        assert fake_provider.requests == []

    def test_upload_timeout_becomes_upload_error(self, orchestrator, project, fake_provider):
        fake_provider.upload_error = TimeoutError("read timed out")

        with pytest.raises(UploadError) as excinfo:
            orchestrator.start(project)

        assert excinfo.value.run.error == "read timed out"
        assert isinstance(excinfo.value.__cause__, TimeoutError)

    def test_submission_failure(self, orchestrator, project, fake_provider, run_store):
        fake_provider.submit_error = SubmissionError("invalid model")

        with pytest.raises(SubmissionError) as excinfo:
            orchestrator.start(project)

        failed = excinfo.value.run
        assert failed.status == RunStatus.FAILED
        assert failed.error == "invalid model"
        assert failed.provider_job_id is None
        assert len(fake_provider.uploaded) == 2
        assert run_store.creates == 1

    def test_other_provider_error_on_submit(self, orchestrator, project, fake_provider):
        fake_provider.submit_error = ProviderError("quota exceeded")

        with pytest.raises(SubmissionError, match="quota exceeded") as excinfo:
            orchestrator.start(project)

        assert excinfo.value.run.status == RunStatus.FAILED

    def test_each_start_creates_new_run(self, orchestrator, project, run_store):
        first = orchestrator.start(project)
        second = orchestrator.start(project)

        assert first.id != second.id
        assert run_store.creates == 2


class TestReconcile:
    def test_full_lifecycle(self, orchestrator, submitted_run, fake_provider):
        fake_provider.set_remote(RemoteJobState.RUNNING)
        running = orchestrator.reconcile(submitted_run)
        assert running.status == RunStatus.RUNNING

        fake_provider.set_remote(RemoteJobState.COMPLETED, model_id="m1")
        completed = orchestrator.reconcile(running)
        assert completed.status == RunStatus.COMPLETED
        assert completed.result_model_id == "m1"
        assert completed.completed_at is not None

    def test_pending_remote_keeps_submitted(self, orchestrator, submitted_run, run_store):
        run = orchestrator.reconcile(submitted_run)

        assert run.status == RunStatus.SUBMITTED
        assert run_store.updates == 0

    def test_unchanged_status_writes_nothing(self, orchestrator, submitted_run, fake_provider, run_store):
        fake_provider.set_remote(RemoteJobState.RUNNING)
        orchestrator.reconcile(submitted_run)
        orchestrator.reconcile(submitted_run)
        orchestrator.reconcile(submitted_run)

        assert run_store.updates == 1

    def test_terminal_run_is_not_polled(self, orchestrator, submitted_run, fake_provider):
        fake_provider.set_remote(RemoteJobState.COMPLETED, model_id="m1")
        orchestrator.reconcile(submitted_run)
        calls = fake_provider.status_calls

        fake_provider.set_remote(RemoteJobState.RUNNING)
        run = orchestrator.reconcile(submitted_run)

        assert run.status == RunStatus.COMPLETED
        assert run.result_model_id == "m1"
        assert fake_provider.status_calls == calls

    def test_failed_remote_records_error(self, orchestrator, submitted_run, fake_provider):
        fake_provider.set_remote(RemoteJobState.FAILED, error="CUDA out of memory")

        run = orchestrator.reconcile(submitted_run)

        assert run.status == RunStatus.FAILED
        assert run.error == "CUDA out of memory"

    def test_failed_remote_without_message(self, orchestrator, submitted_run, fake_provider):
        fake_provider.set_remote(RemoteJobState.FAILED)

        assert orchestrator.reconcile(submitted_run).error == "Fine-tune job failed"

    def test_remote_cancellation(self, orchestrator, submitted_run, fake_provider):
        fake_provider.set_remote(RemoteJobState.CANCELLED)

        assert orchestrator.reconcile(submitted_run).status == RunStatus.CANCELLED

    def test_backward_transition_is_ignored(self, orchestrator, submitted_run, fake_provider, run_store):
        fake_provider.set_remote(RemoteJobState.RUNNING)
        orchestrator.reconcile(submitted_run)
        updates = run_store.updates

        fake_provider.set_remote(RemoteJobState.PENDING)
        run = orchestrator.reconcile(submitted_run)

        assert run.status == RunStatus.RUNNING
        assert orchestrator.anomalies[submitted_run.id] == 1
        assert run_store.updates == updates

    def test_poll_failures_are_transient(self, orchestrator, submitted_run, fake_provider):
        fake_provider.status_error = JobStatusError("connection reset")

        with pytest.raises(TransientPollError) as first:
            orchestrator.reconcile(submitted_run)
        with pytest.raises(TransientPollError) as second:
            orchestrator.reconcile(submitted_run)

        assert first.value.consecutive_failures == 1
        assert second.value.consecutive_failures == 2
        assert second.value.run.status == RunStatus.SUBMITTED

        fake_provider.status_error = None
        fake_provider.set_remote(RemoteJobState.RUNNING)
        assert orchestrator.reconcile(submitted_run).status == RunStatus.RUNNING
        assert submitted_run.id not in orchestrator.poll_failures

    def test_poll_timeout_is_transient(self, orchestrator, submitted_run, fake_provider, run_store):
        fake_provider.status_error = TimeoutError()

        with pytest.raises(TransientPollError):
            orchestrator.reconcile(submitted_run)

        assert run_store.get(submitted_run.id).status == RunStatus.SUBMITTED

    def test_repeated_failures_escalate(self, orchestrator, submitted_run, fake_provider, caplog):
        orchestrator.alert_threshold = 2
        fake_provider.status_error = JobStatusError("down")

        for _ in range(2):
            with pytest.raises(TransientPollError):
                orchestrator.reconcile(submitted_run)

        levels = [r.levelname for r in caplog.records if "Polling run" in r.getMessage()]
        assert levels == ["WARNING", "ERROR"]

    def test_run_without_job_id(self, orchestrator, run_store, fake_provider):
        run = run_store.create(
            Run(
                project_id="proj-1",
                provider="fake",
                base_model="m",
                training_config=TrainingConfig(),
                status=RunStatus.SUBMITTED,
            )
        )

        assert orchestrator.reconcile(run).status == RunStatus.SUBMITTED
        assert fake_provider.status_calls == 0

    def test_concurrent_reconciles_write_once(self, orchestrator, submitted_run, fake_provider, run_store):
        fake_provider.set_remote(RemoteJobState.COMPLETED, model_id="m1")
        threads = [
            threading.Thread(target=orchestrator.reconcile, args=(submitted_run,)) for _ in range(8)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert run_store.updates == 1
        assert run_store.get(submitted_run.id).status == RunStatus.COMPLETED

    def test_run_locks_are_released(self, orchestrator, submitted_run, fake_provider):
        fake_provider.set_remote(RemoteJobState.COMPLETED, model_id="m1")

        orchestrator.reconcile(submitted_run)
        orchestrator.cancel(submitted_run)

        assert len(orchestrator._locks) == 0


class TestCancel:
    def test_cancel_submitted_run(self, orchestrator, submitted_run, fake_provider):
        run = orchestrator.cancel(submitted_run)

        assert run.status == RunStatus.CANCELLED
        assert run.completed_at is not None
        assert fake_provider.cancelled == ["job-1"]

    def test_cancel_is_idempotent(self, orchestrator, submitted_run, fake_provider, run_store):
        orchestrator.cancel(submitted_run)
        updates = run_store.updates

        run = orchestrator.cancel(submitted_run)

        assert run.status == RunStatus.CANCELLED
        assert fake_provider.cancelled == ["job-1"]
        assert run_store.updates == updates

    def test_cancel_completed_run_is_noop(self, orchestrator, submitted_run, fake_provider):
        fake_provider.set_remote(RemoteJobState.COMPLETED, model_id="m1")
        orchestrator.reconcile(submitted_run)

        assert orchestrator.cancel(submitted_run).status == RunStatus.COMPLETED
        assert fake_provider.cancelled == []

    def test_provider_refuses(self, orchestrator, submitted_run, fake_provider, run_store):
        fake_provider.cancel_error = CancellationError("job already finishing")

        with pytest.raises(CancellationError) as excinfo:
            orchestrator.cancel(submitted_run)

        assert excinfo.value.run.status == RunStatus.SUBMITTED
        assert run_store.get(submitted_run.id).status == RunStatus.SUBMITTED

    def test_run_completed_elsewhere_during_cancel(self, fake_provider, ready_dataset, project, tmp_path):
        path = tmp_path / "runs.json"
        orchestrator = RunOrchestrator(fake_provider, ready_dataset, JsonRunStore(path))
        run = orchestrator.start(project)
        other_process = JsonRunStore(path)

        def cancel_job(job_id, timeout=None):
            other_process.update(run.id, status=RunStatus.COMPLETED, result_model_id="m1")

        fake_provider.cancel_job = cancel_job

        result = orchestrator.cancel(run)

        assert result.status == RunStatus.COMPLETED
        assert result.result_model_id == "m1"
        assert JsonRunStore(path).get(run.id).status == RunStatus.COMPLETED
