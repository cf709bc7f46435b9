"""
Caller-facing training service.

Thin layer used by UI and CLI code: it resolves providers, maps fatal
errors to StartResult values and builds run history rows. All state
transitions happen in RunOrchestrator.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, List, Optional, Sequence

from aitelier.core.config import PreflightThresholds
from aitelier.core.exceptions import (
    ConfigurationError,
    InferenceError,
    InsufficientDataError,
    SubmissionError,
    TrainingRunError,
    TransientPollError,
    UploadError,
)
from aitelier.data.project import ProjectConfig
from aitelier.data.schema import Example, Message, Role
from aitelier.data.store import ExampleStore
from aitelier.preflight.evaluator import PreflightEvaluator
from aitelier.preflight.schema import PreflightReport
from aitelier.providers.base import Provider
from aitelier.providers.registry import get_provider

from .evaluation import EvalResult, EvalSummary, summarize
from .orchestrator import RunOrchestrator
from .schema import Comparison, Run, RunStatus, RunSummary, StartResult
from .store import RunStore

logger = logging.getLogger(__name__)


class TrainingService:
    """
    Entry point for preflight, start, status, reconcile and cancel.

    Args:
        example_store: project examples
        run_store: run records
        providers: pre-built providers by name; missing names are resolved
            through the provider registry on first use
        thresholds: readiness thresholds, defaults to config.preflight
        timeout: default provider timeout, in seconds
    """

    def __init__(
        self,
        example_store: ExampleStore,
        run_store: RunStore,
        providers: Optional[Dict[str, Provider]] = None,
        thresholds: Optional[PreflightThresholds] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.example_store = example_store
        self.run_store = run_store
        self.evaluator = PreflightEvaluator(example_store, thresholds)
        self.timeout = timeout
        self._providers: Dict[str, Provider] = dict(providers or {})
        self._orchestrators: Dict[str, RunOrchestrator] = {}
        self._cache_lock = threading.Lock()

    def orchestrator_for(self, provider_name: str) -> RunOrchestrator:
        """One orchestrator per provider, so per-run locks are shared by every caller."""
        with self._cache_lock:
            orchestrator = self._orchestrators.get(provider_name)
            if orchestrator is None:
                provider = self._providers.get(provider_name)
                if provider is None:
                    provider = self._providers[provider_name] = get_provider(provider_name)
                orchestrator = RunOrchestrator(
                    provider, self.example_store, self.run_store, timeout=self.timeout
                )
                self._orchestrators[provider_name] = orchestrator
            return orchestrator

    def get_preflight_report(self, project: ProjectConfig) -> PreflightReport:
        return self.evaluator.evaluate(project)

    def start_training(self, project: ProjectConfig) -> StartResult:
        """
        Start a run and report the outcome.

        A failed attempt is never retried; the caller retries by starting
        a new run.
        """
        try:
            orchestrator = self.orchestrator_for(project.provider)
            run = orchestrator.start(project)
        except InsufficientDataError as exc:
            logger.warning("Not starting run for %s: %s", project.project_id, exc)
            return StartResult(success=False, error=str(exc))
        except (UploadError, SubmissionError) as exc:
            return StartResult(
                success=False,
                error=str(exc),
                run_id=exc.run.id if exc.run is not None else None,
            )
        except ConfigurationError as exc:
            logger.error("Cannot start run for %s: %s", project.project_id, exc)
            return StartResult(success=False, error=str(exc))
        return StartResult(success=True, run_id=run.id)

    def get_run_status(self, run_id: str) -> Run:
        return self.run_store.get(run_id)

    def reconcile_run(self, run_id: str) -> Run:
        """
        Refresh one run from its provider.

        Raises:
            TransientPollError: provider unreachable; retry on the next poll
        """
        run = self.run_store.get(run_id)
        if run.is_terminal:
            return run
        return self.orchestrator_for(run.provider).reconcile(run)

    def reconcile_active_runs(self, project_id: str) -> List[Run]:
        """
        Sweep every non-terminal run of a project.

        Transient poll failures are logged by the orchestrator and the
        unchanged run is returned in place of a refreshed one.
        """
        results: List[Run] = []
        for run in self.run_store.list_for_project(project_id):
            if run.is_terminal:
                continue
            try:
                results.append(self.reconcile_run(run.id))
            except TransientPollError as exc:
                results.append(exc.run or run)
        return results

    def cancel_run(self, run_id: str) -> Run:
        run = self.run_store.get(run_id)
        if run.is_terminal:
            return run
        return self.orchestrator_for(run.provider).cancel(run)

    def list_runs(self, project_id: str) -> List[RunSummary]:
        runs = self.run_store.list_for_project(project_id)
        rows: List[RunSummary] = []
        for index, run in enumerate(runs):
            duration = None
            if run.completed_at is not None:
                duration = round((run.completed_at - run.created_at).total_seconds() / 60)
            rows.append(
                RunSummary(
                    id=run.id,
                    version=len(runs) - index,
                    status=run.status,
                    result_model_id=run.result_model_id,
                    example_count=run.train_count + run.val_count,
                    duration_minutes=duration,
                    created_at=run.created_at,
                    completed_at=run.completed_at,
                )
            )
        return rows

    def _completed_run(self, run_id: str) -> Run:
        run = self.run_store.get(run_id)
        if run.status != RunStatus.COMPLETED or not run.result_model_id:
            raise TrainingRunError(
                f"Run {run_id} has no fine-tuned model (status: {run.status.value})", run=run
            )
        return run

    def latest_completed_run(self, project_id: str) -> Optional[Run]:
        for run in self.run_store.list_for_project(project_id):
            if run.status == RunStatus.COMPLETED and run.result_model_id:
                return run
        return None

    def compare_models(self, run_id: str, messages: Sequence[Message]) -> Comparison:
        """
        Run the same conversation against the base and fine-tuned models.
        """
        run = self._completed_run(run_id)
        provider = self.orchestrator_for(run.provider).provider
        timeout = self.timeout
        return Comparison(
            base_model=run.base_model,
            fine_tuned_model=run.result_model_id,
            base_output=provider.run_inference(run.base_model, messages, timeout=timeout),
            fine_tuned_output=provider.run_inference(run.result_model_id, messages, timeout=timeout),
        )

    def evaluate_run(
        self,
        run_id: str,
        examples: Sequence[Example],
        system_prompt: Optional[str] = None,
        compare: bool = False,
        scorer: Optional[Callable[[EvalResult], Optional[int]]] = None,
    ) -> EvalSummary:
        """
        Replay validation examples against a completed run's model.

        Examples whose inference fails are skipped and counted. ``scorer``
        returns a 1-5 score, or None to leave a result unscored.
        """
        run = self._completed_run(run_id)
        provider = self.orchestrator_for(run.provider).provider

        results: List[EvalResult] = []
        skipped = 0
        for example in examples:
            messages = []
            if system_prompt:
                messages.append(Message(role=Role.SYSTEM, content=system_prompt))
            messages.append(Message(role=Role.USER, content=example.input))
            try:
                actual = provider.run_inference(run.result_model_id, messages, timeout=self.timeout)
                base = (
                    provider.run_inference(run.base_model, messages, timeout=self.timeout)
                    if compare
                    else None
                )
            except InferenceError as exc:
                logger.warning("Skipping example %s: %s", example.id, exc)
                skipped += 1
                continue

            result = EvalResult(
                example_id=example.id,
                input=example.input,
                expected_output=example.output,
                actual_output=actual,
                base_output=base,
            )
            if scorer is not None:
                result = EvalResult(**{**result.model_dump(), "score": scorer(result)})
            results.append(result)

        return summarize(run.id, run.result_model_id, run.base_model, results, skipped=skipped)
