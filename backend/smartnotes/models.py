# @TASK P1-T1.1 - Note value model shared by search and API layers

"""Note model as seen by the AI engine.

The engine never persists notes.  It receives them from the caller,
reads ``id``, ``title`` and ``content`` (plus a previously stored
``embedding`` when one exists) and treats them as immutable for the
duration of a single search call.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class Note(BaseModel):
    """A note from the external note store."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str = ""
    content: str = ""
    tags: list[str] = Field(default_factory=list)
    embedding: list[float] | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
