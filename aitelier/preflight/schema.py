"""
Preflight report schema.

Derived on every readiness check and never persisted.
"""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field

from aitelier.data.project import TrainingConfig


class PreflightReport(BaseModel):
    """
    Dataset readiness snapshot for one project.

    Fields:
    - train_count / val_count: examples assigned to each split
    - quality_count: examples rated at or above quality_threshold
    - unassigned_count: examples without a split
    - warnings: advisory messages in fixed order (train, val, quality)
    - ready: every readiness threshold is met
    - estimated_cost_usd / estimated_duration: rough run estimates
    """

    project_id: str
    train_count: int = Field(ge=0)
    val_count: int = Field(ge=0)
    quality_count: int = Field(ge=0)
    unassigned_count: int = Field(0, ge=0)
    quality_threshold: int
    warnings: List[str] = Field(default_factory=list)
    ready: bool
    base_model: str
    training_config: TrainingConfig
    estimated_cost_usd: float = Field(0.0, ge=0.0)
    estimated_duration: str = ""

    @property
    def is_ready(self) -> bool:
        return self.ready

    @property
    def can_start(self) -> bool:
        """An empty training split is the only hard blocker."""
        return self.train_count > 0
