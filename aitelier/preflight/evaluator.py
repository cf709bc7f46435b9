"""
Dataset readiness evaluator.

Counts a project's train, validation and quality examples and turns them
into an advisory report. Readiness never blocks a run on its own; only an
empty training split does, and that check belongs to the orchestrator.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from aitelier.core.config import PreflightThresholds, config
from aitelier.data.project import ProjectConfig
from aitelier.data.schema import Split
from aitelier.data.store import ExampleStore

from .estimates import estimate_training_cost, estimate_training_duration
from .schema import PreflightReport

logger = logging.getLogger(__name__)


class PreflightEvaluator:
    """
    Computes PreflightReport objects from an example store.

    Warnings are returned in full; truncating them for display is left to
    the caller.
    """

    def __init__(
        self,
        example_store: ExampleStore,
        thresholds: Optional[PreflightThresholds] = None,
    ) -> None:
        self.example_store = example_store
        self.thresholds = thresholds or config.preflight

    def evaluate(self, project: ProjectConfig) -> PreflightReport:
        store = self.example_store
        train_count = store.count(project.project_id, split=Split.TRAIN)
        val_count = store.count(project.project_id, split=Split.VAL)
        quality_count = store.count(project.project_id, rating_gte=project.quality_threshold)
        unassigned_count = store.count(project.project_id, split=None)

        warnings = self._warnings(train_count, val_count, quality_count)
        ready = not warnings

        logger.debug(
            "Preflight %s: train=%d val=%d quality=%d ready=%s",
            project.project_id,
            train_count,
            val_count,
            quality_count,
            ready,
        )

        return PreflightReport(
            project_id=project.project_id,
            train_count=train_count,
            val_count=val_count,
            quality_count=quality_count,
            unassigned_count=unassigned_count,
            quality_threshold=project.quality_threshold,
            warnings=warnings,
            ready=ready,
            base_model=project.base_model,
            training_config=project.training_config,
            estimated_cost_usd=estimate_training_cost(
                train_count, val_count, project.training_config
            ),
            estimated_duration=estimate_training_duration(train_count, project.training_config),
        )

    def _warnings(self, train_count: int, val_count: int, quality_count: int) -> List[str]:
        t = self.thresholds
        warnings: List[str] = []
        if train_count < t.min_train_examples:
            warnings.append(f"Fewer than {t.min_train_examples} training examples.")
        if val_count < t.min_val_examples:
            warnings.append(f"Fewer than {t.min_val_examples} validation examples.")
        if quality_count < t.min_quality_examples:
            warnings.append(f"Fewer than {t.min_quality_examples} quality-rated examples.")
        return warnings
