"""
Canonical dataset schema.

An Example is one curated input/output pair owned by a project. Ratings and
split assignments are mutated by curation; everything else is fixed at
creation time.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator


class Split(str, Enum):
    """Partition label used to build training and validation files."""

    TRAIN = "train"
    VAL = "val"


class Role(str, Enum):
    """Chat message roles understood by every provider."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class Message(BaseModel):
    """Single chat message."""

    role: Role
    content: str


class Example(BaseModel):
    """
    Single curated example.

    Attributes:
        id: Unique identifier
        project_id: Owning project
        input: Prompt text (becomes the user message)
        output: Target completion (becomes the assistant message)
        rating: Quality rating in [1, 10], None if unrated
        rated_by: Who rated it, set iff rating is set
        rated_at: When it was rated, set iff rating is set
        split: train / val assignment, None if unassigned
        created_by: Author reference
        created_at: Creation timestamp (UTC)
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    project_id: str
    input: str
    output: str
    rating: Optional[int] = Field(None, ge=1, le=10)
    rated_by: Optional[str] = None
    rated_at: Optional[datetime] = None
    split: Optional[Split] = None
    created_by: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @model_validator(mode="after")
    def _check_rating_fields(self) -> "Example":
        rated = self.rating is not None
        if rated != (self.rated_by is not None) or rated != (self.rated_at is not None):
            raise ValueError("rated_by and rated_at must be set if and only if rating is set")
        return self


class TrainingPair(BaseModel):
    """The {input, output} shape carried by each training-file record."""

    input: str
    output: str
