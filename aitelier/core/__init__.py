"""
Core module: Configuration, logging, and exception handling.
"""

from .config import Config, config
from .exceptions import (
    AitelierError,
    AnomalousTransitionError,
    CancellationError,
    ConfigurationError,
    DataValidationError,
    ExampleNotFoundError,
    InferenceError,
    InsufficientDataError,
    JobStatusError,
    ProviderError,
    RunNotFoundError,
    StorageLockError,
    SubmissionError,
    TrainingRunError,
    TransientPollError,
    UploadError,
)
from .logging_config import setup_logging

__all__ = [
    "Config",
    "config",
    "setup_logging",
    "AitelierError",
    "AnomalousTransitionError",
    "CancellationError",
    "ConfigurationError",
    "DataValidationError",
    "ExampleNotFoundError",
    "InferenceError",
    "InsufficientDataError",
    "JobStatusError",
    "ProviderError",
    "RunNotFoundError",
    "StorageLockError",
    "SubmissionError",
    "TrainingRunError",
    "TransientPollError",
    "UploadError",
]
