"""
Provider adapters for hosted fine-tuning backends.
"""

from .base import FineTuneRequest, JobStatus, Provider, RemoteJobState
from .openai_provider import OpenAIProvider
from .registry import PROVIDERS, get_provider
from .together import TogetherProvider

__all__ = [
    "Provider",
    "FineTuneRequest",
    "JobStatus",
    "RemoteJobState",
    "TogetherProvider",
    "OpenAIProvider",
    "PROVIDERS",
    "get_provider",
]
