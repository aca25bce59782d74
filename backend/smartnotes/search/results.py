"""Search result model shared by the lexical, semantic and hybrid paths."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field


class SearchType(StrEnum):
    SEMANTIC = "semantic"
    TEXT = "text"
    HYBRID = "hybrid"


class SearchResult(BaseModel):
    """A single ranked search result.

    Attributes:
        note_id: ID of the matching note.
        title: Title of the note.
        snippet: First 200 characters of the note content.
        score: Relevance score (never negative).
        search_type: Origin of the score (semantic, text or hybrid).
    """

    note_id: str
    title: str
    snippet: str
    score: float = Field(ge=0)
    search_type: SearchType = SearchType.TEXT
