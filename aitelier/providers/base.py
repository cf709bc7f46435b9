"""
Provider adapter interface.

Every fine-tuning backend implements the same capability set: upload a
training file, submit a job, read job status, run inference and, where the
backend allows it, cancel a job. The run orchestrator is written against
this interface only.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import Optional, Sequence, Union

from pydantic import BaseModel, Field

from aitelier.core.exceptions import CancellationError
from aitelier.data.schema import Message


class RemoteJobState(str, Enum):
    """Normalised remote job states shared by every provider."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class JobStatus(BaseModel):
    """
    Provider's view of a fine-tune job.

    Fields:
    - id: remote job id
    - status: normalised state
    - model_id: resulting model, set once the job completes
    - error: provider error message for failed jobs
    """

    id: str
    status: RemoteJobState
    model_id: Optional[str] = None
    error: Optional[str] = None


class FineTuneRequest(BaseModel):
    """
    Fine-tune job submission.

    Hyperparameters left as None fall back to the provider's defaults.
    """

    model: str
    training_file: str
    validation_file: Optional[str] = None
    epochs: Optional[int] = Field(None, gt=0)
    batch_size: Optional[int] = Field(None, gt=0)
    learning_rate: Optional[float] = Field(None, gt=0.0)
    lora_r: Optional[int] = Field(None, gt=0)
    lora_alpha: Optional[int] = Field(None, gt=0)
    lora_dropout: Optional[float] = Field(None, ge=0.0, lt=1.0)


class Provider(ABC):
    """
    Abstract fine-tuning backend.

    Every call takes an optional ``timeout`` in seconds; None uses the
    adapter's default. Adapters translate their transport errors into the
    matching ProviderError subclass and never retry internally.
    """

    name: str = ""

    @abstractmethod
    def upload_training_file(self, path: Union[str, Path], timeout: Optional[float] = None) -> str:
        """
        Upload a JSONL training file.

        Returns:
            Remote file id

        Raises:
            UploadError: on network, auth or timeout failure
        """
        pass

    @abstractmethod
    def create_fine_tune_job(self, request: FineTuneRequest, timeout: Optional[float] = None) -> str:
        """
        Submit a fine-tune job.

        Returns:
            Remote job id

        Raises:
            SubmissionError: on rejection (invalid model, quota) or transport failure
        """
        pass

    @abstractmethod
    def get_job_status(self, job_id: str, timeout: Optional[float] = None) -> JobStatus:
        """
        Read the current job status. Safe to call repeatedly.

        Raises:
            JobStatusError: on transport failure
        """
        pass

    @abstractmethod
    def run_inference(
        self,
        model: str,
        messages: Sequence[Message],
        timeout: Optional[float] = None,
    ) -> str:
        """
        Run a chat completion and return the assistant text.

        Raises:
            InferenceError: on failure
        """
        pass

    @property
    def supports_cancellation(self) -> bool:
        return False

    def cancel_job(self, job_id: str, timeout: Optional[float] = None) -> None:
        raise CancellationError(f"Provider '{self.name}' does not support job cancellation")
