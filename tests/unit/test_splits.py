"""
Unit tests for train/validation split assignment.
"""

import random

import pytest

from aitelier.core.exceptions import InsufficientDataError
from aitelier.data.schema import Split
from aitelier.data.splits import auto_split, stratified_split, unlock_validation_set


def test_stratified_split_rounds_train_up_per_rating(seed_examples):
    examples = seed_examples(5, rating=9) + seed_examples(3, rating=10)

    assignment = stratified_split(examples, ratio=0.8, rng=random.Random(1))

    # ceil(5 * 0.8) = 4 and ceil(3 * 0.8) = 3
    assert len(assignment[Split.TRAIN]) == 7
    assert len(assignment[Split.VAL]) == 1


def test_stratified_split_rejects_bad_ratio(seed_examples):
    with pytest.raises(ValueError):
        stratified_split(seed_examples(2, rating=9), ratio=0.0)
    with pytest.raises(ValueError):
        stratified_split(seed_examples(2, rating=9), ratio=1.0)


@pytest.mark.parametrize("ratio", [1.0, 1.5, -0.2])
def test_auto_split_rejects_ratio_outside_open_interval(example_store, seed_examples, ratio):
    seed_examples(4, rating=9)

    with pytest.raises(ValueError):
        auto_split(example_store, "proj-1", quality_threshold=8, ratio=ratio)
    assert example_store.count("proj-1", split=None) == 4


def test_auto_split_only_uses_quality_examples(example_store, seed_examples):
    seed_examples(10, rating=9)
    low = seed_examples(4, rating=3)
    unrated = seed_examples(2)

    result = auto_split(example_store, "proj-1", quality_threshold=8, seed=7)

    assert result.train_count == 8
    assert result.val_count == 2
    assert not result.val_locked
    for example in low + unrated:
        assert example_store.get(example.id).split is None


def test_existing_validation_set_is_locked(example_store, seed_examples):
    locked = seed_examples(2, split=Split.VAL, rating=9)
    seed_examples(6, rating=9)

    result = auto_split(example_store, "proj-1", quality_threshold=8, seed=7)

    assert result.val_locked
    assert result.val_count == 2
    assert result.train_count == 6
    assert {e.id for e in example_store.list_val("proj-1")} == {e.id for e in locked}


def test_auto_split_without_quality_examples(example_store, seed_examples):
    seed_examples(3, rating=2)
    with pytest.raises(InsufficientDataError):
        auto_split(example_store, "proj-1", quality_threshold=8)


def test_unlock_validation_set(example_store, seed_examples):
    seed_examples(3, split=Split.VAL, rating=9)

    assert unlock_validation_set(example_store, "proj-1") == 3
    assert example_store.count("proj-1", split=None) == 3


def test_reshuffle_releases_locked_validation_set(example_store, seed_examples):
    seed_examples(2, split=Split.VAL, rating=9)
    seed_examples(6, rating=9)
    demoted = seed_examples(2, split=Split.TRAIN, rating=3)

    result = auto_split(example_store, "proj-1", quality_threshold=8, seed=7, reshuffle=True)

    # ceil(8 * 0.8) = 7
    assert not result.val_locked
    assert (result.train_count, result.val_count) == (7, 1)
    assert example_store.count("proj-1", split=Split.VAL) == 1
    for example in demoted:
        assert example_store.get(example.id).split is None
