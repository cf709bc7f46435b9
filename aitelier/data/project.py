"""
Project-level configuration passed explicitly into preflight and training.

Conservative defaults mirror the values a new project starts with.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class TrainingConfig(BaseModel):
    """
    Hyperparameters forwarded to the provider.

    Treated as opaque configuration; frozen so a submitted run cannot be
    altered after the fact.
    """

    model_config = ConfigDict(frozen=True)

    epochs: int = Field(3, gt=0)
    batch_size: int = Field(4, gt=0)
    learning_rate: float = Field(1e-5, gt=0.0)
    lora_r: int = Field(16, gt=0)
    lora_alpha: int = Field(32, gt=0)
    lora_dropout: float = Field(0.05, ge=0.0, lt=1.0)


class ProjectConfig(BaseModel):
    """
    Settings of a single project.

    Notes:
    - quality_threshold: minimum rating for an example to count as quality.
    - provider: registry name of the provider adapter ("together", "openai").
    - system_prompt: optional system message prepended to every training record.
    """

    model_config = ConfigDict(frozen=True)

    project_id: str
    base_model: str
    provider: str = "together"
    quality_threshold: int = Field(8, ge=1, le=10)
    training_config: TrainingConfig = TrainingConfig()
    system_prompt: Optional[str] = None
