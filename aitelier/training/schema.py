"""
Run schema and status ordering.

A Run is one attempt to fine-tune a model. Status only ever moves forward
along STATUS_RANK; terminal statuses are final.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, FrozenSet, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from aitelier.data.project import TrainingConfig


class RunStatus(str, Enum):
    """Local lifecycle states of a run."""

    PENDING = "pending"
    UPLOADING = "uploading"
    SUBMITTED = "submitted"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES: FrozenSet[RunStatus] = frozenset(
    {RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.CANCELLED}
)

STATUS_RANK: Dict[RunStatus, int] = {
    RunStatus.PENDING: 0,
    RunStatus.UPLOADING: 1,
    RunStatus.SUBMITTED: 2,
    RunStatus.RUNNING: 3,
    RunStatus.COMPLETED: 4,
    RunStatus.FAILED: 4,
    RunStatus.CANCELLED: 4,
}


def is_forward_transition(current: RunStatus, new: RunStatus) -> bool:
    """True if moving from ``current`` to ``new`` never goes backward or leaves a terminal state."""
    if current.is_terminal:
        return new == current
    return STATUS_RANK[new] >= STATUS_RANK[current]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Run(BaseModel):
    """
    Local record of a fine-tuning attempt.

    Fields:
    - provider_job_id: weak reference to the remote job, None until submitted
    - train_count / val_count: examples materialised for this attempt
    - result_model_id: fine-tuned model, set on completion
    - error: failure reason for failed runs
    - completed_at: set when a terminal status is reached
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    project_id: str
    provider: str
    provider_job_id: Optional[str] = None
    status: RunStatus = RunStatus.PENDING
    base_model: str
    training_config: TrainingConfig
    train_count: int = Field(0, ge=0)
    val_count: int = Field(0, ge=0)
    result_model_id: Optional[str] = None
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    completed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


class StartResult(BaseModel):
    """Outcome of a start request as reported to UI/CLI callers."""

    success: bool
    run_id: Optional[str] = None
    error: Optional[str] = None


class RunSummary(BaseModel):
    """Row of the run history table."""

    id: str
    version: int
    status: RunStatus
    result_model_id: Optional[str] = None
    example_count: int
    duration_minutes: Optional[int] = None
    created_at: datetime
    completed_at: Optional[datetime] = None


class Comparison(BaseModel):
    """Side-by-side base vs fine-tuned output for the same conversation."""

    base_model: str
    fine_tuned_model: str
    base_output: str
    fine_tuned_output: str
