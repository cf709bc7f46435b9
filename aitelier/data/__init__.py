"""
Data module: example schema, storage, split assignment, statistics and
training-file serialization.

    Examples (ExampleStore)
        ↓
    Rating + split assignment (splits.py)
        ↓
    Training files (serialization.py) → provider upload
"""

from aitelier.data.project import ProjectConfig, TrainingConfig
from aitelier.data.schema import Example, Message, Role, Split, TrainingPair
from aitelier.data.serialization import (
    format_training_record,
    parse_training_record,
    read_training_file,
    serialize_examples,
    write_training_file,
)
from aitelier.data.splits import SplitResult, auto_split, stratified_split, unlock_validation_set
from aitelier.data.stats import DatasetStats, dataset_stats
from aitelier.data.store import UNSET, ExampleStore, InMemoryExampleStore, JsonlExampleStore

__all__ = [
    # Schema
    "Example",
    "Message",
    "Role",
    "Split",
    "TrainingPair",
    "ProjectConfig",
    "TrainingConfig",

    # Storage
    "ExampleStore",
    "InMemoryExampleStore",
    "JsonlExampleStore",
    "UNSET",

    # Serialization
    "format_training_record",
    "parse_training_record",
    "read_training_file",
    "serialize_examples",
    "write_training_file",

    # Splits and stats
    "SplitResult",
    "auto_split",
    "stratified_split",
    "unlock_validation_set",
    "DatasetStats",
    "dataset_stats",
]
