"""
Custom exceptions for aitelier.

These exceptions provide clear error semantics across the run lifecycle.
Use them to distinguish fatal run failures from transient polling problems,
and provider faults from data or configuration issues.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from aitelier.training.schema import Run


class AitelierError(Exception):
    """Base exception for aitelier failures."""
    pass


class ConfigurationError(AitelierError):
    """Raised when configuration is invalid or missing (e.g. no API key)."""
    pass


class DataValidationError(AitelierError):
    """Raised when stored examples or training files fail validation."""
    pass


class ExampleNotFoundError(AitelierError):
    """Raised when an example id does not exist in the store."""
    pass


class RunNotFoundError(AitelierError):
    """Raised when a run id does not exist in the run store."""
    pass


class StorageLockError(AitelierError):
    """Raised when a store file lock cannot be acquired in time."""
    pass


class TrainingRunError(AitelierError):
    """
    Base exception for run-lifecycle failures.

    The run involved, when there is one, is attached as ``run``.
    """

    def __init__(self, message: str, run: Optional["Run"] = None) -> None:
        super().__init__(message)
        self.run = run


class ProviderError(AitelierError):
    """Base exception for provider adapter failures."""
    pass


class InsufficientDataError(TrainingRunError):
    """Raised when a project has no training examples to train on."""
    pass


class UploadError(TrainingRunError, ProviderError):
    """Raised when a training file upload fails. Fatal to the run attempt."""
    pass


class SubmissionError(TrainingRunError, ProviderError):
    """Raised when the provider rejects a fine-tune job. Fatal to the run attempt."""
    pass


class JobStatusError(ProviderError):
    """Raised when a job status request fails at the transport level."""
    pass


class InferenceError(ProviderError):
    """Raised when a chat completion request fails."""
    pass


class CancellationError(TrainingRunError, ProviderError):
    """Raised when a provider cannot cancel a job."""
    pass


class TransientPollError(TrainingRunError):
    """
    Raised when reconciliation could not reach the provider.

    The run is left unchanged and should be polled again on the next cycle.
    """

    def __init__(
        self,
        message: str,
        run: Optional["Run"] = None,
        consecutive_failures: int = 1,
    ) -> None:
        super().__init__(message, run=run)
        self.consecutive_failures = consecutive_failures


class AnomalousTransitionError(TrainingRunError):
    """Raised when a status update would move a run backward or out of a terminal state."""
    pass
