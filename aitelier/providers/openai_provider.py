"""
OpenAI provider adapter built on the official SDK.

The SDK's own retry loop is disabled (max_retries=0): retrying failed
uploads or submissions is the caller's decision.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Union

import openai
from openai import OpenAI

from aitelier.core.config import config
from aitelier.core.exceptions import (
    CancellationError,
    ConfigurationError,
    InferenceError,
    JobStatusError,
    SubmissionError,
    UploadError,
)
from aitelier.data.schema import Message

from .base import FineTuneRequest, JobStatus, Provider, RemoteJobState

logger = logging.getLogger(__name__)

_STATUS_MAP: Dict[str, RemoteJobState] = {
    "validating_files": RemoteJobState.PENDING,
    "queued": RemoteJobState.PENDING,
    "running": RemoteJobState.RUNNING,
    "succeeded": RemoteJobState.COMPLETED,
    "failed": RemoteJobState.FAILED,
    "cancelled": RemoteJobState.CANCELLED,
}


class OpenAIProvider(Provider):
    """
    OpenAI fine-tuning backend.

    Args:
        api_key: OpenAI API key; defaults to AITELIER_OPENAI_API_KEY
        timeout: default per-request timeout in seconds
        client: pre-built client (used by tests)

    Notes:
    - OpenAI takes a learning-rate multiplier rather than a learning rate,
      and manages LoRA settings itself; those fields are not forwarded.
    """

    name = "openai"

    def __init__(
        self,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[Any] = None,
    ) -> None:
        self.timeout = timeout if timeout is not None else config.provider.request_timeout_seconds
        if client is None:
            api_key = api_key or config.openai_api_key
            if not api_key:
                raise ConfigurationError(
                    "OpenAI API key not configured. Set AITELIER_OPENAI_API_KEY."
                )
            client = OpenAI(api_key=api_key, timeout=self.timeout, max_retries=0)
        self._client = client

    def _with_timeout(self, timeout: Optional[float]) -> Any:
        return self._client.with_options(timeout=timeout if timeout is not None else self.timeout)

    @property
    def supports_cancellation(self) -> bool:
        return True

    def upload_training_file(self, path: Union[str, Path], timeout: Optional[float] = None) -> str:
        path = Path(path)
        try:
            with open(path, "rb") as fh:
                file_obj = self._with_timeout(timeout).files.create(file=fh, purpose="fine-tune")
        except openai.OpenAIError as exc:
            raise UploadError(f"Failed to upload training file {path.name}: {exc}") from exc
        except OSError as exc:
            raise UploadError(f"Failed to read training file {path}: {exc}") from exc
        logger.info("Uploaded %s to OpenAI as %s", path.name, file_obj.id)
        return file_obj.id

    def create_fine_tune_job(self, request: FineTuneRequest, timeout: Optional[float] = None) -> str:
        params: Dict[str, Any] = {
            "model": request.model,
            "training_file": request.training_file,
        }
        if request.validation_file:
            params["validation_file"] = request.validation_file
        hyperparameters = {
            k: v
            for k, v in {"n_epochs": request.epochs, "batch_size": request.batch_size}.items()
            if v is not None
        }
        if hyperparameters:
            params["hyperparameters"] = hyperparameters

        try:
            job = self._with_timeout(timeout).fine_tuning.jobs.create(**params)
        except openai.OpenAIError as exc:
            raise SubmissionError(f"Failed to create fine-tune job: {exc}") from exc
        logger.info("Created OpenAI fine-tune job %s on %s", job.id, request.model)
        return job.id

    def get_job_status(self, job_id: str, timeout: Optional[float] = None) -> JobStatus:
        try:
            job = self._with_timeout(timeout).fine_tuning.jobs.retrieve(job_id)
        except openai.OpenAIError as exc:
            raise JobStatusError(f"Failed to get job status for {job_id}: {exc}") from exc

        state = _STATUS_MAP.get(str(job.status))
        if state is None:
            raise JobStatusError(f"Unrecognised OpenAI job status '{job.status}' for {job_id}")

        error = getattr(job, "error", None)
        message = getattr(error, "message", None) if error is not None else None
        return JobStatus(
            id=job.id,
            status=state,
            model_id=job.fine_tuned_model,
            error=message,
        )

    def cancel_job(self, job_id: str, timeout: Optional[float] = None) -> None:
        try:
            self._with_timeout(timeout).fine_tuning.jobs.cancel(job_id)
        except openai.OpenAIError as exc:
            raise CancellationError(f"Failed to cancel job {job_id}: {exc}") from exc
        logger.info("Cancelled OpenAI fine-tune job %s", job_id)

    def run_inference(
        self,
        model: str,
        messages: Sequence[Message],
        timeout: Optional[float] = None,
    ) -> str:
        try:
            response = self._with_timeout(timeout).chat.completions.create(
                model=model,
                messages=[m.model_dump(mode="json") for m in messages],
                temperature=0.7,
            )
        except openai.OpenAIError as exc:
            raise InferenceError(f"OpenAI inference failed for {model}: {exc}") from exc
        return response.choices[0].message.content or ""
