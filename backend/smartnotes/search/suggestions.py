# @TASK P2-T2.11 - Writing suggestions with the same fallback discipline as search
# @TEST tests/test_suggestions.py

"""Best-effort writing suggestions for the note editor.

With a ready engine and a note collection, suggests links to notes that
are semantically close to the text being written.  Otherwise falls back
to simple structural heuristics.  Never raises.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable
from enum import StrEnum

from pydantic import BaseModel, Field

from smartnotes.models import Note
from smartnotes.search.lifecycle import EngineLifecycle
from smartnotes.search.provider import EmbeddingProvider
from smartnotes.search.vectors import cosine_similarity

logger = logging.getLogger(__name__)

LONG_PARAGRAPH_CHARS = 100
MIN_CONNECTION_SIMILARITY = 0.5
MAX_CONNECTIONS = 3


class SuggestionType(StrEnum):
    COMPLETION = "completion"
    CONNECTION = "connection"


class Suggestion(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    text: str
    type: SuggestionType
    confidence: float = Field(ge=0, le=1)
    note_id: str | None = None


class SuggestionService:
    """Generate suggestions for a piece of note text."""

    def __init__(self, lifecycle: EngineLifecycle, provider: EmbeddingProvider) -> None:
        self._lifecycle = lifecycle
        self._provider = provider

    async def generate(self, text: str, notes: Iterable[Note] | None = None) -> list[Suggestion]:
        try:
            if self._lifecycle.semantic_available and notes is not None:
                return await self._connection_suggestions(text, list(notes))
            return self.basic_suggestions(text)
        except Exception:
            logger.warning("Suggestions generation failed", exc_info=True)
            return []

    @staticmethod
    def basic_suggestions(text: str) -> list[Suggestion]:
        """Heuristic suggestions that need no embeddings."""
        suggestions: list[Suggestion] = []
        if len(text) > LONG_PARAGRAPH_CHARS and "\n\n" not in text:
            suggestions.append(
                Suggestion(
                    text="Consider splitting this paragraph into sections",
                    type=SuggestionType.COMPLETION,
                    confidence=0.6,
                )
            )
        return suggestions

    async def _connection_suggestions(self, text: str, notes: list[Note]) -> list[Suggestion]:
        if not text.strip():
            return []

        text_embedding = await self._provider.generate_embedding(text)
        candidates: list[tuple[float, Note]] = []
        for note in notes:
            embedding = note.embedding or await self._provider.generate_embedding(note.content)
            similarity = cosine_similarity(text_embedding, embedding)
            if similarity >= MIN_CONNECTION_SIMILARITY:
                candidates.append((similarity, note))

        candidates.sort(key=lambda item: item[0], reverse=True)
        return [
            Suggestion(
                text=f"Maybe add a link to “{note.title or note.id}”",
                type=SuggestionType.CONNECTION,
                confidence=round(min(similarity, 1.0), 4),
                note_id=note.id,
            )
            for similarity, note in candidates[:MAX_CONNECTIONS]
        ]
