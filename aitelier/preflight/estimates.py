"""
Rough training cost and duration estimates.

Assumes an average token count per example and a fixed throughput; good
enough to flag an unexpectedly expensive run before it starts.
"""

from __future__ import annotations

import math
from typing import Optional

from aitelier.core.config import EstimateSettings, config
from aitelier.data.project import TrainingConfig


def estimate_training_cost(
    train_count: int,
    val_count: int,
    training_config: TrainingConfig,
    settings: Optional[EstimateSettings] = None,
) -> float:
    settings = settings or config.estimates
    total_tokens = (train_count + val_count) * settings.tokens_per_example
    return round(
        total_tokens / 1000 * settings.cost_per_thousand_tokens * training_config.epochs, 4
    )


def estimate_training_duration(
    train_count: int,
    training_config: TrainingConfig,
    settings: Optional[EstimateSettings] = None,
) -> str:
    settings = settings or config.estimates
    minutes = math.ceil(train_count * training_config.epochs / settings.examples_per_minute)

    if minutes < 60:
        return f"~{minutes} min"

    hours, remaining = divmod(minutes, 60)
    if hours == 1:
        return f"~1 hr {remaining} min" if remaining else "~1 hr"
    return f"~{hours} hrs {remaining} min" if remaining else f"~{hours} hrs"
