"""
Together.ai provider adapter.

Talks to the Together REST API with httpx. Every request carries a bounded
timeout; transport and HTTP errors are translated into ProviderError
subclasses and never retried here.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Union

import httpx

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
    "pending": RemoteJobState.PENDING,
    "queued": RemoteJobState.PENDING,
    "running": RemoteJobState.RUNNING,
    "compressing": RemoteJobState.RUNNING,
    "uploading": RemoteJobState.RUNNING,
    "completed": RemoteJobState.COMPLETED,
    "succeeded": RemoteJobState.COMPLETED,
    "error": RemoteJobState.FAILED,
    "failed": RemoteJobState.FAILED,
    "cancel_requested": RemoteJobState.CANCELLED,
    "cancelled": RemoteJobState.CANCELLED,
}


def _describe(exc: httpx.HTTPError) -> str:
    if isinstance(exc, httpx.HTTPStatusError):
        return f"HTTP {exc.response.status_code}: {exc.response.text}"
    if isinstance(exc, httpx.TimeoutException):
        return f"timed out ({exc.__class__.__name__})"
    return str(exc) or exc.__class__.__name__


def _error_text(error: Any) -> Optional[str]:
    if error is None or isinstance(error, str):
        return error
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    return str(error)


class TogetherProvider(Provider):
    """
    Together.ai fine-tuning backend.

    Args:
        api_key: Together API key; defaults to AITELIER_TOGETHER_API_KEY
        base_url: API root; defaults to config.provider.together_base_url
        timeout: default per-request timeout in seconds
        transport: optional httpx transport (used by tests)
    """

    name = "together"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        api_key = api_key or config.together_api_key
        if not api_key:
            raise ConfigurationError(
                "Together API key not configured. Set AITELIER_TOGETHER_API_KEY."
            )
        self.timeout = timeout if timeout is not None else config.provider.request_timeout_seconds
        self._client = httpx.Client(
            base_url=base_url or config.provider.together_base_url,
            headers={"Authorization": f"Bearer {api_key}"},
            timeout=self.timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def _timeout(self, timeout: Optional[float]) -> float:
        return timeout if timeout is not None else self.timeout

    @property
    def supports_cancellation(self) -> bool:
        return True

    def upload_training_file(self, path: Union[str, Path], timeout: Optional[float] = None) -> str:
        path = Path(path)
        try:
            with open(path, "rb") as fh:
                resp = self._client.post(
                    "/files",
                    files={"file": (path.name, fh, "application/jsonl")},
                    data={"purpose": "fine-tune"},
                    timeout=self._timeout(timeout),
                )
            resp.raise_for_status()
            file_id = resp.json()["id"]
        except httpx.HTTPError as exc:
            raise UploadError(f"Failed to upload training file {path.name}: {_describe(exc)}") from exc
        except (OSError, KeyError, ValueError) as exc:
            raise UploadError(f"Failed to upload training file {path.name}: {exc}") from exc
        logger.info("Uploaded %s to Together as %s", path.name, file_id)
        return file_id

    def create_fine_tune_job(self, request: FineTuneRequest, timeout: Optional[float] = None) -> str:
        body: Dict[str, Any] = {
            "model": request.model,
            "training_file": request.training_file,
        }
        optional = {
            "validation_file": request.validation_file,
            "n_epochs": request.epochs,
            "batch_size": request.batch_size,
            "learning_rate": request.learning_rate,
            "lora_r": request.lora_r,
            "lora_alpha": request.lora_alpha,
            "lora_dropout": request.lora_dropout,
        }
        body.update({k: v for k, v in optional.items() if v is not None})

        try:
            resp = self._client.post("/fine-tunes", json=body, timeout=self._timeout(timeout))
            resp.raise_for_status()
            job_id = resp.json()["id"]
        except httpx.HTTPError as exc:
            raise SubmissionError(f"Failed to create fine-tune job: {_describe(exc)}") from exc
        except (KeyError, ValueError) as exc:
            raise SubmissionError(f"Unexpected fine-tune response: {exc}") from exc
        logger.info("Created Together fine-tune job %s on %s", job_id, request.model)
        return job_id

    def get_job_status(self, job_id: str, timeout: Optional[float] = None) -> JobStatus:
        try:
            resp = self._client.get(f"/fine-tunes/{job_id}", timeout=self._timeout(timeout))
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPError as exc:
            raise JobStatusError(f"Failed to get job status for {job_id}: {_describe(exc)}") from exc
        except ValueError as exc:
            raise JobStatusError(f"Invalid job status payload for {job_id}: {exc}") from exc

        raw_status = str(data.get("status", "")).lower()
        state = _STATUS_MAP.get(raw_status)
        if state is None:
            raise JobStatusError(f"Unrecognised Together job status '{raw_status}' for {job_id}")

        return JobStatus(
            id=data.get("id", job_id),
            status=state,
            model_id=data.get("output_name") or data.get("fine_tuned_model"),
            error=_error_text(data.get("error")),
        )

    def cancel_job(self, job_id: str, timeout: Optional[float] = None) -> None:
        try:
            resp = self._client.post(f"/fine-tunes/{job_id}/cancel", timeout=self._timeout(timeout))
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise CancellationError(f"Failed to cancel job {job_id}: {_describe(exc)}") from exc
        logger.info("Cancelled Together fine-tune job %s", job_id)

    def run_inference(
        self,
        model: str,
        messages: Sequence[Message],
        timeout: Optional[float] = None,
    ) -> str:
        body = {
            "model": model,
            "messages": [m.model_dump(mode="json") for m in messages],
            "temperature": 0.7,
            "max_tokens": 1024,
        }
        try:
            resp = self._client.post("/chat/completions", json=body, timeout=self._timeout(timeout))
            resp.raise_for_status()
            return resp.json()["choices"][0]["message"]["content"]
        except httpx.HTTPError as exc:
            raise InferenceError(f"Together inference failed for {model}: {_describe(exc)}") from exc
        except (KeyError, IndexError, ValueError) as exc:
            raise InferenceError(f"Unexpected inference response for {model}: {exc}") from exc
