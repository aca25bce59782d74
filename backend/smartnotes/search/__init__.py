# @TASK P2-T2.1 - AI search engine package

"""Hybrid semantic + lexical search engine with an embedding cache."""

from smartnotes.search.ai_engine import AIEngine, build_ai_engine
from smartnotes.search.cache import EmbeddingCache
from smartnotes.search.capability import EngineConfig, select_engine_config
from smartnotes.search.dispatch import DispatchChannel
from smartnotes.search.engine import HybridSearchEngine
from smartnotes.search.lexical import LexicalScorer
from smartnotes.search.lifecycle import EngineLifecycle, EngineStatus
from smartnotes.search.provider import EmbeddingProvider
from smartnotes.search.results import SearchResult, SearchType

__all__ = [
    "AIEngine",
    "DispatchChannel",
    "EmbeddingCache",
    "EmbeddingProvider",
    "EngineConfig",
    "EngineLifecycle",
    "EngineStatus",
    "HybridSearchEngine",
    "LexicalScorer",
    "SearchResult",
    "SearchType",
    "build_ai_engine",
    "select_engine_config",
]
