"""
Dataset health statistics.

Summarises a project's examples with pandas: rating coverage, the rating
distribution and per-split averages.
"""

from __future__ import annotations

from typing import Dict, Iterable, Optional

import pandas as pd
from pydantic import BaseModel, Field

from .schema import Example


class DatasetStats(BaseModel):
    total: int = Field(ge=0)
    rated: int = Field(ge=0)
    unrated: int = Field(ge=0)
    quality: int = Field(ge=0)
    train: int = Field(ge=0)
    val: int = Field(ge=0)
    unassigned: int = Field(ge=0)
    rating_histogram: Dict[int, int] = Field(default_factory=dict)
    avg_rating: Optional[float] = None
    avg_rating_by_split: Dict[str, Optional[float]] = Field(default_factory=dict)


def _mean_or_none(series: pd.Series) -> Optional[float]:
    series = series.dropna()
    if series.empty:
        return None
    return round(float(series.mean()), 2)


def dataset_stats(examples: Iterable[Example], quality_threshold: int) -> DatasetStats:
    rows = [
        {
            "rating": e.rating,
            "split": e.split.value if e.split is not None else "unassigned",
        }
        for e in examples
    ]
    df = pd.DataFrame(rows, columns=["rating", "split"])
    if df.empty:
        return DatasetStats(
            total=0, rated=0, unrated=0, quality=0, train=0, val=0, unassigned=0,
            avg_rating_by_split={"train": None, "val": None, "unassigned": None},
        )

    ratings = pd.to_numeric(df["rating"], errors="coerce")
    histogram = ratings.dropna().astype(int).value_counts().sort_index()
    split_counts = df["split"].value_counts()

    return DatasetStats(
        total=len(df),
        rated=int(ratings.notna().sum()),
        unrated=int(ratings.isna().sum()),
        quality=int((ratings >= quality_threshold).sum()),
        train=int(split_counts.get("train", 0)),
        val=int(split_counts.get("val", 0)),
        unassigned=int(split_counts.get("unassigned", 0)),
        rating_histogram={int(k): int(v) for k, v in histogram.items()},
        avg_rating=_mean_or_none(ratings),
        avg_rating_by_split={
            name: _mean_or_none(ratings[df["split"] == name])
            for name in ("train", "val", "unassigned")
        },
    )
