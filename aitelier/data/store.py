"""
Example storage.

The run lifecycle only needs counts and the train/val listings; curation
tools additionally add, rate and move examples between splits.

Design:
- ExampleStore is the narrow interface the core consumes
- InMemoryExampleStore backs tests and short-lived processes
- JsonlExampleStore persists one example per line for the CLI
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from pydantic import ValidationError

from aitelier.core.exceptions import DataValidationError, ExampleNotFoundError
from aitelier.core.locking import FileSyncMixin

from .schema import Example, Split

logger = logging.getLogger(__name__)


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"


# Distinguishes "any split" from split=None (unassigned).
UNSET = _Unset()


class ExampleStore(ABC):
    """
    Abstract example store.

    ``count`` filters combine with AND; ``split=None`` selects unassigned
    examples while leaving ``split`` at UNSET selects every split.
    """

    @abstractmethod
    def count(
        self,
        project_id: str,
        split: Union[Split, None, _Unset] = UNSET,
        rating_gte: Optional[int] = None,
    ) -> int:
        pass

    @abstractmethod
    def list_examples(self, project_id: str) -> List[Example]:
        """All examples of a project, oldest first."""
        pass

    @abstractmethod
    def add(self, example: Example) -> Example:
        pass

    @abstractmethod
    def get(self, example_id: str) -> Example:
        pass

    @abstractmethod
    def rate(self, example_id: str, rating: Optional[int], rated_by: Optional[str] = None) -> Example:
        pass

    @abstractmethod
    def assign_split(self, project_id: str, example_ids: Iterable[str], split: Optional[Split]) -> int:
        pass

    @abstractmethod
    def delete(self, example_id: str) -> None:
        pass

    def list_train(self, project_id: str) -> List[Example]:
        return [e for e in self.list_examples(project_id) if e.split == Split.TRAIN]

    def list_val(self, project_id: str) -> List[Example]:
        return [e for e in self.list_examples(project_id) if e.split == Split.VAL]


class InMemoryExampleStore(ExampleStore):
    """Thread-safe dictionary-backed store."""

    def __init__(self, examples: Optional[Iterable[Example]] = None) -> None:
        self._lock = threading.RLock()
        self._examples: Dict[str, Example] = {}
        for example in examples or []:
            self._examples[example.id] = example

    def count(
        self,
        project_id: str,
        split: Union[Split, None, _Unset] = UNSET,
        rating_gte: Optional[int] = None,
    ) -> int:
        total = 0
        for example in self.list_examples(project_id):
            if split is not UNSET and example.split != split:
                continue
            if rating_gte is not None and (example.rating is None or example.rating < rating_gte):
                continue
            total += 1
        return total

    def list_examples(self, project_id: str) -> List[Example]:
        with self._lock:
            items = [e for e in self._examples.values() if e.project_id == project_id]
        return sorted(items, key=lambda e: e.created_at)

    def add(self, example: Example) -> Example:
        with self._lock:
            self._examples[example.id] = example
            self._save()
        return example

    def get(self, example_id: str) -> Example:
        with self._lock:
            example = self._examples.get(example_id)
        if example is None:
            raise ExampleNotFoundError(f"Example not found: {example_id}")
        return example

    def rate(self, example_id: str, rating: Optional[int], rated_by: Optional[str] = None) -> Example:
        """
        Set or clear a rating.

        Clearing (rating=None) also clears rated_by/rated_at so the rating
        fields stay consistent.
        """
        with self._lock:
            current = self.get(example_id)
            if rating is None:
                fields = {"rating": None, "rated_by": None, "rated_at": None}
            else:
                if not rated_by:
                    raise DataValidationError("rated_by is required when setting a rating")
                fields = {
                    "rating": rating,
                    "rated_by": rated_by,
                    "rated_at": datetime.now(timezone.utc),
                }
            try:
                updated = Example(**{**current.model_dump(), **fields})
            except ValidationError as exc:
                raise DataValidationError(str(exc)) from exc
            self._examples[example_id] = updated
            self._save()
        return updated

    def assign_split(self, project_id: str, example_ids: Iterable[str], split: Optional[Split]) -> int:
        moved = 0
        with self._lock:
            for example_id in example_ids:
                example = self._examples.get(example_id)
                if example is None or example.project_id != project_id:
                    continue
                self._examples[example_id] = example.model_copy(update={"split": split})
                moved += 1
            if moved:
                self._save()
        return moved

    def delete(self, example_id: str) -> None:
        with self._lock:
            if self._examples.pop(example_id, None) is None:
                raise ExampleNotFoundError(f"Example not found: {example_id}")
            self._save()

    def _save(self) -> None:
        """Persistence hook; in-memory stores have nothing to write."""
        return None


class JsonlExampleStore(FileSyncMixin, InMemoryExampleStore):
    """
    File-backed store holding one JSON object per line.

    Every operation takes the file lock and re-reads the file, so edits made
    by other processes are never lost. The whole file is rewritten atomically
    after each mutation. Blank lines are skipped on load; malformed lines
    raise DataValidationError.
    """

    def __init__(self, path: Union[str, Path], encoding: str = "utf-8") -> None:
        self.path = Path(path)
        self.encoding = encoding
        super().__init__(self._load())

    def count(
        self,
        project_id: str,
        split: Union[Split, None, _Unset] = UNSET,
        rating_gte: Optional[int] = None,
    ) -> int:
        with self._synced():
            return super().count(project_id, split=split, rating_gte=rating_gte)

    def list_examples(self, project_id: str) -> List[Example]:
        with self._synced():
            return super().list_examples(project_id)

    def add(self, example: Example) -> Example:
        with self._synced():
            return super().add(example)

    def get(self, example_id: str) -> Example:
        with self._synced():
            return super().get(example_id)

    def rate(self, example_id: str, rating: Optional[int], rated_by: Optional[str] = None) -> Example:
        with self._synced():
            return super().rate(example_id, rating, rated_by=rated_by)

    def assign_split(self, project_id: str, example_ids: Iterable[str], split: Optional[Split]) -> int:
        with self._synced():
            return super().assign_split(project_id, example_ids, split)

    def delete(self, example_id: str) -> None:
        with self._synced():
            super().delete(example_id)

    def _reload(self) -> None:
        self._examples = {e.id: e for e in self._load()}

    def _load(self) -> List[Example]:
        if not self.path.exists():
            return []
        examples: List[Example] = []
        with open(self.path, "r", encoding=self.encoding) as f:
            for line_num, line in enumerate(f, start=1):
                if not line.strip():
                    continue
                try:
                    examples.append(Example(**json.loads(line)))
                except (json.JSONDecodeError, ValidationError) as exc:
                    raise DataValidationError(
                        f"{self.path}:{line_num}: invalid example record: {exc}"
                    ) from exc
        logger.debug("Loaded %d examples from %s", len(examples), self.path)
        return examples

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        lines = [e.model_dump_json() for e in sorted(self._examples.values(), key=lambda e: e.created_at)]
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".examples_", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding=self.encoding) as fh:
                fh.write("".join(line + "\n" for line in lines))
            Path(tmp_name).replace(self.path)
        except Exception:
            Path(tmp_name).unlink(missing_ok=True)
            raise
