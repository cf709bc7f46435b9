"""
Evaluation of a fine-tuned model on the validation split.

Each validation example is replayed against the fine-tuned model (and the
base model when comparing). Scores on a 1-5 scale come from a caller
supplied scorer, typically a person at the CLI; a score of 4 or more counts
as "sendable". Summaries are written as JSON under ``<data_dir>/evals``.
"""

from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Union

from pydantic import BaseModel, Field

SENDABLE_SCORE = 4


class EvalResult(BaseModel):
    """Outputs for one validation example."""

    example_id: str
    input: str
    expected_output: str
    actual_output: str
    base_output: Optional[str] = None
    score: Optional[int] = Field(None, ge=1, le=5)


class EvalSummary(BaseModel):
    """
    Aggregate of an evaluation session.

    average_score and sendable_rate (percent) cover scored results only and
    are None when nothing was scored.
    """

    run_id: str
    model_id: str
    base_model: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    total_examples: int = Field(ge=0)
    scored: int = Field(ge=0)
    skipped: int = Field(ge=0)
    average_score: Optional[float] = None
    sendable_rate: Optional[float] = None
    results: List[EvalResult] = Field(default_factory=list)


def summarize(
    run_id: str,
    model_id: str,
    base_model: str,
    results: List[EvalResult],
    skipped: int = 0,
) -> EvalSummary:
    scores = [r.score for r in results if r.score is not None]
    average = round(sum(scores) / len(scores), 2) if scores else None
    sendable = (
        round(100.0 * sum(1 for s in scores if s >= SENDABLE_SCORE) / len(scores), 1)
        if scores
        else None
    )
    return EvalSummary(
        run_id=run_id,
        model_id=model_id,
        base_model=base_model,
        total_examples=len(results) + skipped,
        scored=len(scores),
        skipped=skipped,
        average_score=average,
        sendable_rate=sendable,
        results=results,
    )


def eval_filename(model_id: str, when: datetime) -> str:
    safe_model = re.sub(r"[/\\:]", "_", model_id)
    return f"eval-{safe_model}-{when.strftime('%Y-%m-%d')}.json"


def write_eval_summary(summary: EvalSummary, evals_dir: Union[str, Path]) -> Path:
    evals_dir = Path(evals_dir)
    evals_dir.mkdir(parents=True, exist_ok=True)
    path = evals_dir / eval_filename(summary.model_id, summary.timestamp)
    path.write_text(json.dumps(summary.model_dump(mode="json"), indent=2) + "\n", encoding="utf-8")
    return path
