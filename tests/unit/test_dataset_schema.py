"""
Unit tests for dataset and project schema validation.
"""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from aitelier.data.project import ProjectConfig, TrainingConfig
from aitelier.data.schema import Example, Split


class TestExample:
    """Rating fields move together."""

    def test_unrated_example(self):
        example = Example(project_id="p", input="q", output="a", created_by="u")

        assert example.rating is None
        assert example.split is None
        assert example.created_at.tzinfo is not None

    def test_rated_example_requires_rater_and_timestamp(self):
        with pytest.raises(ValidationError):
            Example(project_id="p", input="q", output="a", created_by="u", rating=9)

    def test_rater_without_rating_rejected(self):
        with pytest.raises(ValidationError):
            Example(project_id="p", input="q", output="a", created_by="u", rated_by="r")

    def test_rating_bounds(self):
        now = datetime.now(timezone.utc)
        with pytest.raises(ValidationError):
            Example(
                project_id="p", input="q", output="a", created_by="u",
                rating=11, rated_by="r", rated_at=now,
            )

    def test_split_parsed_from_string(self):
        example = Example(project_id="p", input="q", output="a", created_by="u", split="val")
        assert example.split == Split.VAL


class TestTrainingConfig:
    def test_defaults(self):
        cfg = TrainingConfig()
        assert (cfg.epochs, cfg.batch_size, cfg.lora_r, cfg.lora_alpha) == (3, 4, 16, 32)
        assert cfg.learning_rate == pytest.approx(1e-5)

    @pytest.mark.parametrize(
        "field,value",
        [("epochs", 0), ("batch_size", -1), ("learning_rate", 0.0), ("lora_dropout", 1.0)],
    )
    def test_invalid_values(self, field, value):
        with pytest.raises(ValidationError):
            TrainingConfig(**{field: value})

    def test_frozen(self):
        cfg = TrainingConfig()
        with pytest.raises(ValidationError):
            cfg.epochs = 5


def test_project_config_defaults():
    project = ProjectConfig(project_id="p", base_model="m")
    assert project.quality_threshold == 8
    assert project.provider == "together"
    assert project.system_prompt is None
