"""
Pytest configuration and shared fixtures.

Provides a scriptable fake provider, in-memory stores, a project config and
helpers for seeding examples.
"""

from pathlib import Path
from typing import List, Optional

import pytest

from aitelier.data.project import ProjectConfig, TrainingConfig
from aitelier.data.schema import Example, Split
from aitelier.data.store import InMemoryExampleStore
from aitelier.providers.base import JobStatus, Provider, RemoteJobState
from aitelier.training.store import InMemoryRunStore


PROJECT_ID = "proj-1"


class FakeProvider(Provider):
    """
    In-process provider used by unit and integration tests.

    Behaviour is scripted through attributes:
    - upload_error / submit_error / status_error / cancel_error: raised when set
    - inference_error: raised for prompts containing inference_error_on
    - remote: the JobStatus returned by get_job_status
    """

    name = "fake"

    def __init__(self) -> None:
        self.uploaded: List[str] = []
        self.requests = []
        self.status_calls = 0
        self.cancelled: List[str] = []
        self.inference_calls = []
        self.timeouts: List[Optional[float]] = []

        self.upload_error: Optional[Exception] = None
        self.submit_error: Optional[Exception] = None
        self.status_error: Optional[Exception] = None
        self.cancel_error: Optional[Exception] = None
        self.inference_error: Optional[Exception] = None
        self.inference_error_on = ""
        self.remote = JobStatus(id="job-1", status=RemoteJobState.PENDING)

    def set_remote(self, status: RemoteJobState, model_id=None, error=None) -> None:
        self.remote = JobStatus(id="job-1", status=status, model_id=model_id, error=error)

    def upload_training_file(self, path, timeout=None):
        self.timeouts.append(timeout)
        if self.upload_error is not None:
            raise self.upload_error
        # Read now: the orchestrator's temp directory is gone after start().
        self.uploaded.append(Path(path).read_text(encoding="utf-8"))
        return f"file-{len(self.uploaded)}"

    def create_fine_tune_job(self, request, timeout=None):
        self.timeouts.append(timeout)
        if self.submit_error is not None:
            raise self.submit_error
        self.requests.append(request)
        return "job-1"

    def get_job_status(self, job_id, timeout=None):
        self.status_calls += 1
        if self.status_error is not None:
            raise self.status_error
        return self.remote

    def run_inference(self, model, messages, timeout=None):
        self.inference_calls.append((model, list(messages)))
        if self.inference_error is not None and self.inference_error_on in messages[-1].content:
            raise self.inference_error
        return f"{model} says hi"

    @property
    def supports_cancellation(self) -> bool:
        return True

    def cancel_job(self, job_id, timeout=None):
        if self.cancel_error is not None:
            raise self.cancel_error
        self.cancelled.append(job_id)


class CountingRunStore(InMemoryRunStore):
    """Run store that records how many writes reach it."""

    def __init__(self) -> None:
        super().__init__()
        self.creates = 0
        self.updates = 0

    def create(self, run):
        self.creates += 1
        return super().create(run)

    def update(self, run_id, **fields):
        self.updates += 1
        return super().update(run_id, **fields)


def add_examples(
    store: InMemoryExampleStore,
    count: int,
    split: Optional[Split] = None,
    rating: Optional[int] = None,
    project_id: str = PROJECT_ID,
) -> List[Example]:
    """Seed ``count`` examples with the given split and rating."""
    created = []
    for i in range(count):
        kwargs = {}
        if rating is not None:
            kwargs = {"rating": rating, "rated_by": "rater", "rated_at": "2025-02-07T12:00:00Z"}
        example = Example(
            project_id=project_id,
            input=f"question {split.value if split else 'none'} {i}",
            output=f"answer {i}",
            split=split,
            created_by="author",
            **kwargs,
        )
        created.append(store.add(example))
    return created


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def example_store() -> InMemoryExampleStore:
    return InMemoryExampleStore()


@pytest.fixture
def run_store() -> CountingRunStore:
    return CountingRunStore()


@pytest.fixture
def project() -> ProjectConfig:
    return ProjectConfig(
        project_id=PROJECT_ID,
        base_model="meta-llama/Llama-3-8b",
        provider="fake",
        quality_threshold=8,
        training_config=TrainingConfig(),
        system_prompt="You are concise.",
    )


@pytest.fixture
def ready_dataset(example_store):
    """12 train / 3 val / 25 quality-rated examples."""
    add_examples(example_store, 12, split=Split.TRAIN, rating=9)
    add_examples(example_store, 3, split=Split.VAL, rating=9)
    add_examples(example_store, 10, rating=8)
    return example_store


def pytest_configure(config):
    """
    Pytest hook for custom configuration.

    Registers custom markers used throughout tests.
    """
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )


@pytest.fixture
def seed_examples(example_store):
    """Return a helper that seeds the shared example store."""

    def _seed(count, split=None, rating=None, project_id=PROJECT_ID):
        return add_examples(example_store, count, split=split, rating=rating, project_id=project_id)

    return _seed
