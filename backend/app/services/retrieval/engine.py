from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from app.config import Settings
from app.services.embeddings import EmbeddingProvider
from app.services.event_store import EventStore

logger = logging.getLogger(__name__)

# (event_id, query, limit) -> chunk texts, or None to fall through
RetrievalStrategy = Callable[[int, str, int], Optional[List[str]]]


@dataclass
class RetrievalResult:
    chunks: List[str] = field(default_factory=list)
    strategy: str = "empty"

    @property
    def empty(self) -> bool:
        return not self.chunks


class RetrievalEngine:
    """
    Picks context chunks for a chat question.

    Strategies are tried in order until one returns a non-empty list:
    vector similarity, then most recent chunks. An unexpected error in any
    of them skips straight to ``any_chunks``. An event with no chunks at all
    returns an empty result with strategy ``empty``.
    """

    def __init__(self, settings: Settings, store: EventStore, embedder: EmbeddingProvider) -> None:
        self.settings = settings
        self.store = store
        self.embedder = embedder
        self.strategies: List[Tuple[str, RetrievalStrategy]] = [
            ("vector_search", self._vector_search),
            ("recent_chunks", self._recent_chunks),
        ]
        self.last_resort: Tuple[str, RetrievalStrategy] = ("any_chunks", self._any_chunks)

    def find_relevant_content(self, event_id: int, query: str, limit: Optional[int] = None) -> List[str]:
        return self.retrieve(event_id, query, limit).chunks

    def retrieve(self, event_id: int, query: str, limit: Optional[int] = None) -> RetrievalResult:
        effective_limit = max(1, int(limit or self.settings.chat_context_limit))
        try:
            if self.store.count_chunks(event_id) == 0:
                return RetrievalResult(chunks=[], strategy="empty")
            for name, strategy in self.strategies:
                chunks = strategy(event_id, query, effective_limit)
                if chunks:
                    logger.debug("Retrieved %d chunks for event %s via %s", len(chunks), event_id, name)
                    return RetrievalResult(chunks=chunks, strategy=name)
        except Exception:
            logger.exception("Retrieval failed for event %s, using last-resort strategy", event_id)
            self.store.session.rollback()

        name, strategy = self.last_resort
        try:
            chunks = strategy(event_id, query, effective_limit) or []
        except Exception:
            logger.exception("Last-resort retrieval failed for event %s", event_id)
            self.store.session.rollback()
            chunks = []
        return RetrievalResult(chunks=chunks, strategy=name if chunks else "empty")

    def _vector_search(self, event_id: int, query: str, limit: int) -> Optional[List[str]]:
        if self.store.count_embedded_chunks(event_id) == 0:
            return None
        embedding = self.embedder.embed(query)
        if embedding is None:
            logger.info("Query embedding unavailable for event %s, falling back", event_id)
            return None
        try:
            matches = self.store.match_chunks(
                event_id,
                embedding.vector,
                embedding.model,
                self.settings.retrieval_similarity_threshold,
                limit,
            )
        except SQLAlchemyError as exc:
            logger.warning("Similarity search failed for event %s: %s", event_id, exc)
            self.store.session.rollback()
            return None
        return [chunk.content for chunk, _score in matches] or None

    def _recent_chunks(self, event_id: int, query: str, limit: int) -> Optional[List[str]]:
        return [chunk.content for chunk in self.store.recent_chunks(event_id, limit)] or None

    def _any_chunks(self, event_id: int, query: str, limit: int) -> Optional[List[str]]:
        return [chunk.content for chunk in self.store.any_chunks(event_id, limit)] or None
