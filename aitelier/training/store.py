"""
Run record storage.

Stores refuse any status change that moves a run backward or out of a
terminal state, so a stale writer can never resurrect a finished run.
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
from typing import Any, Dict, List, Union

from pydantic import ValidationError

from aitelier.core.exceptions import (
    AnomalousTransitionError,
    DataValidationError,
    RunNotFoundError,
)
from aitelier.core.locking import FileSyncMixin

from .schema import Run, RunStatus, is_forward_transition

logger = logging.getLogger(__name__)


class RunStore(ABC):
    """Abstract run store."""

    @abstractmethod
    def create(self, run: Run) -> Run:
        pass

    @abstractmethod
    def update(self, run_id: str, **fields: Any) -> Run:
        """
        Apply a partial update and return the stored run.

        Raises:
            RunNotFoundError: unknown run id
            AnomalousTransitionError: backward status change or a change on a terminal run
        """
        pass

    @abstractmethod
    def get(self, run_id: str) -> Run:
        pass

    @abstractmethod
    def list_for_project(self, project_id: str) -> List[Run]:
        """Runs of a project, newest first."""
        pass


class InMemoryRunStore(RunStore):
    """Thread-safe dictionary-backed store."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._runs: Dict[str, Run] = {}

    def create(self, run: Run) -> Run:
        with self._lock:
            if run.id in self._runs:
                raise DataValidationError(f"Run already exists: {run.id}")
            self._runs[run.id] = run
            self._save()
        return run

    def update(self, run_id: str, **fields: Any) -> Run:
        with self._lock:
            current = self.get(run_id)
            new_status = fields.get("status")
            if new_status is not None and not is_forward_transition(
                current.status, RunStatus(new_status)
            ):
                raise AnomalousTransitionError(
                    f"Run {run_id} is {current.status.value}; refusing status {RunStatus(new_status).value}",
                    run=current,
                )
            fields.setdefault("updated_at", datetime.now(timezone.utc))
            try:
                updated = Run(**{**current.model_dump(), **fields})
            except ValidationError as exc:
                raise DataValidationError(str(exc)) from exc
            self._runs[run_id] = updated
            self._save()
        return updated

    def get(self, run_id: str) -> Run:
        with self._lock:
            run = self._runs.get(run_id)
        if run is None:
            raise RunNotFoundError(f"Training run not found: {run_id}")
        return run

    def list_for_project(self, project_id: str) -> List[Run]:
        with self._lock:
            runs = [r for r in self._runs.values() if r.project_id == project_id]
        return sorted(runs, key=lambda r: r.created_at, reverse=True)

    def _save(self) -> None:
        return None


class JsonRunStore(FileSyncMixin, InMemoryRunStore):
    """
    File-backed store keeping every run in a single JSON document.

    Every operation takes the file lock and re-reads the document first, so
    the terminal-status check always sees what other processes wrote. Writes
    go through a temp file and an atomic rename.
    """

    def __init__(self, path: Union[str, Path]) -> None:
        super().__init__()
        self.path = Path(path)
        self._reload()

    def create(self, run: Run) -> Run:
        with self._synced():
            return super().create(run)

    def update(self, run_id: str, **fields: Any) -> Run:
        with self._synced():
            return super().update(run_id, **fields)

    def get(self, run_id: str) -> Run:
        with self._synced():
            return super().get(run_id)

    def list_for_project(self, project_id: str) -> List[Run]:
        with self._synced():
            return super().list_for_project(project_id)

    def _reload(self) -> None:
        self._runs = {run.id: run for run in self._load()}

    def _load(self) -> List[Run]:
        if not self.path.exists():
            return []
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
            return [Run(**item) for item in payload.get("runs", [])]
        except (ValueError, TypeError, AttributeError) as exc:
            raise DataValidationError(f"Invalid run store {self.path}: {exc}") from exc

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "runs": [
                r.model_dump(mode="json")
                for r in sorted(self._runs.values(), key=lambda r: r.created_at)
            ]
        }
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".runs_", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(json.dumps(payload, indent=2) + "\n")
            Path(tmp_name).replace(self.path)
        except Exception:
            Path(tmp_name).unlink(missing_ok=True)
            raise
