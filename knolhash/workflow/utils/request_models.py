from __future__ import annotations

import datetime as dt
from typing import Any, Optional

from pydantic import BaseModel, Field


class ReviewRequest(BaseModel):
    hash: str = Field(..., description="Content hash of the reviewed card")
    # Left untyped so booleans and floats reach Rating.parse unconverted.
    rating: Any = Field(..., description="Again/Hard/Good/Easy, by name or as 1..4")


class SourceRequest(BaseModel):
    path: str = Field(..., description="Local directory or git clone URL holding Markdown cards")


class MemoryStateModel(BaseModel):
    stability: float
    difficulty: float
    last_reviewed: Optional[dt.datetime] = None
    due_at: Optional[dt.datetime] = None


class CardFront(BaseModel):
    hash: str
    question: str
    context: str = ""
    due_at: Optional[dt.datetime] = None


class CardDetail(CardFront):
    answer: str = ""
    state: int = 0
    source_id: Optional[int] = None
    source_path: Optional[str] = None
    memory: MemoryStateModel
    preview: dict[str, MemoryStateModel] = Field(default_factory=dict)


class SourceModel(BaseModel):
    id: int
    path: str
    kind: str
    last_scanned: Optional[dt.datetime] = None
