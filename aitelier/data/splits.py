"""
Train/validation split assignment.

Only quality examples (rating >= threshold) are split. Splitting is
stratified by rating so both sides see the same rating mix. An existing
validation set is locked: its examples stay in val and new quality examples
all go to train, which keeps evaluation comparable across runs.
"""

from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass
from typing import Dict, List, Optional

from aitelier.core.exceptions import InsufficientDataError

from .schema import Example, Split
from .store import ExampleStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SplitResult:
    train_count: int
    val_count: int
    val_locked: bool


def stratified_split(
    examples: List[Example],
    ratio: float = 0.8,
    rng: Optional[random.Random] = None,
) -> Dict[Split, List[str]]:
    """
    Partition example ids per rating group.

    Each group contributes ceil(len(group) * ratio) examples to train.
    """
    if not 0.0 < ratio < 1.0:
        raise ValueError("ratio must be between 0 and 1 (exclusive)")
    rng = rng or random.Random()

    groups: Dict[int, List[Example]] = {}
    for example in examples:
        groups.setdefault(example.rating or 0, []).append(example)

    assignment: Dict[Split, List[str]] = {Split.TRAIN: [], Split.VAL: []}
    for rating in sorted(groups):
        group = list(groups[rating])
        rng.shuffle(group)
        train_size = math.ceil(len(group) * ratio)
        assignment[Split.TRAIN].extend(e.id for e in group[:train_size])
        assignment[Split.VAL].extend(e.id for e in group[train_size:])
    return assignment


def auto_split(
    store: ExampleStore,
    project_id: str,
    quality_threshold: int,
    ratio: float = 0.8,
    seed: Optional[int] = None,
    reshuffle: bool = False,
) -> SplitResult:
    """
    Assign quality examples to train/val.

    With ``reshuffle`` every split assignment of the project is cleared
    first, which also releases a locked validation set.
    """
    if not 0.0 < ratio < 1.0:
        raise ValueError("ratio must be between 0 and 1 (exclusive)")
    examples = store.list_examples(project_id)
    quality = [
        e
        for e in examples
        if e.rating is not None and e.rating >= quality_threshold
    ]
    if not quality:
        raise InsufficientDataError(
            f"No examples meet quality threshold ({quality_threshold}/10). Rate examples first."
        )

    if reshuffle:
        released = unlock_validation_set(store, project_id)
        cleared = store.assign_split(project_id, [e.id for e in examples if e.split == Split.TRAIN], None)
        logger.info(
            "Reshuffling project %s: released %d val and %d train assignments",
            project_id,
            released,
            cleared,
        )
        quality = [e.model_copy(update={"split": None}) for e in quality]

    locked_val = [e for e in quality if e.split == Split.VAL]
    val_locked = bool(locked_val)
    to_split = [e for e in quality if e.split != Split.VAL] if val_locked else quality

    rng = random.Random(seed)
    if val_locked:
        train_ids = [e.id for e in to_split]
        val_ids: List[str] = []
    else:
        assignment = stratified_split(to_split, ratio=ratio, rng=rng)
        train_ids = assignment[Split.TRAIN]
        val_ids = assignment[Split.VAL]

    store.assign_split(project_id, train_ids, Split.TRAIN)
    store.assign_split(project_id, val_ids, Split.VAL)

    val_count = len(locked_val) if val_locked else len(val_ids)
    logger.info(
        "Split project %s: %d train, %d val (val locked=%s)",
        project_id,
        len(train_ids),
        val_count,
        val_locked,
    )
    return SplitResult(train_count=len(train_ids), val_count=val_count, val_locked=val_locked)


def unlock_validation_set(store: ExampleStore, project_id: str) -> int:
    """Return every validation example to the unassigned pool."""
    ids = [e.id for e in store.list_val(project_id)]
    return store.assign_split(project_id, ids, None)
