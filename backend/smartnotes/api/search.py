# @TASK P4-T4.1 - AI engine API endpoints
# @TEST tests/test_api_search.py

"""AI engine API endpoints.

Provides:
- ``POST /search`` -- Hybrid (semantic + text) search over supplied notes.
- ``POST /embeddings`` -- Embedding for a piece of text.
- ``POST /suggestions`` -- Writing suggestions for a piece of text.
- ``GET /engine/status`` -- Lifecycle status, config and cache stats.
- ``GET /metrics`` -- Performance report.

The engine does not own notes; callers send the collection to search.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from smartnotes.models import Note
from smartnotes.search.ai_engine import AIEngine
from smartnotes.search.results import SearchResult
from smartnotes.search.suggestions import Suggestion

logger = logging.getLogger(__name__)

router = APIRouter(tags=["ai"])


# ---------------------------------------------------------------------------
# Request & Response schemas
# ---------------------------------------------------------------------------


class SearchRequest(BaseModel):
    query: str = Field(..., min_length=1, max_length=500)
    notes: list[Note] = Field(default_factory=list)


class SearchResponse(BaseModel):
    results: list[SearchResult]
    query: str
    total: int
    engine_status: str


class EmbeddingRequest(BaseModel):
    text: str = Field(..., max_length=20000)


class EmbeddingResponse(BaseModel):
    embedding: list[float]
    dimensions: int


class SuggestionRequest(BaseModel):
    text: str = Field(..., max_length=20000)
    notes: list[Note] | None = None


class SuggestionResponse(BaseModel):
    suggestions: list[Suggestion]


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def get_ai_engine(request: Request) -> AIEngine:
    """Return the engine created during application startup."""
    return request.app.state.ai_engine


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post("/search", response_model=SearchResponse)
async def search_notes(
    body: SearchRequest,
    engine: AIEngine = Depends(get_ai_engine),
) -> SearchResponse:
    """Search the supplied notes with the hybrid engine."""
    results = await engine.search(body.query, body.notes)
    return SearchResponse(
        results=results,
        query=body.query,
        total=len(results),
        engine_status=str(engine.lifecycle.status),
    )


@router.post("/embeddings", response_model=EmbeddingResponse)
async def create_embedding(
    body: EmbeddingRequest,
    engine: AIEngine = Depends(get_ai_engine),
) -> EmbeddingResponse:
    embedding = await engine.generate_embedding(body.text)
    return EmbeddingResponse(embedding=embedding, dimensions=len(embedding))


@router.post("/suggestions", response_model=SuggestionResponse)
async def create_suggestions(
    body: SuggestionRequest,
    engine: AIEngine = Depends(get_ai_engine),
) -> SuggestionResponse:
    suggestions = await engine.generate_suggestions(body.text, body.notes)
    return SuggestionResponse(suggestions=suggestions)


@router.get("/engine/status")
async def engine_status(engine: AIEngine = Depends(get_ai_engine)) -> dict[str, Any]:
    return engine.status()


@router.get("/metrics")
async def performance_metrics(engine: AIEngine = Depends(get_ai_engine)) -> dict[str, Any]:
    return engine.metrics.get_report()
