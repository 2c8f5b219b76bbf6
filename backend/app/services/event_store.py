"""Persistence access for events, crawled pages, chunks and chat messages."""
from __future__ import annotations

import math
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models.event import Event, EventStatus, CrawledPage, ContentChunk
from app.models.chat import ChatSession, ChatMessage
from app.services.errors import ChatSessionNotFoundError, EventNotFoundError


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    if not a or not b or len(a) != len(b):
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


class EventStore:
    """Thin repository over a sync SQLAlchemy session. Every write commits."""

    def __init__(self, session: Session) -> None:
        self.session = session

    # ------------------------------------------------------------------ events

    def get_event(self, event_id: int) -> Optional[Event]:
        return self.session.query(Event).filter(Event.id == event_id).first()

    def require_event(self, event_id: int) -> Event:
        event = self.get_event(event_id)
        if event is None:
            raise EventNotFoundError(event_id)
        return event

    def create_event(self, name: str, url: str, model_id: Optional[str] = None) -> Event:
        event = Event(
            name=name,
            original_url=url,
            model_id=model_id,
            status=EventStatus.pending,
            crawl_data={},
        )
        self.session.add(event)
        self.session.commit()
        self.session.refresh(event)
        return event

    def mark_crawling(self, event: Event, model_id: str, config: Dict[str, Any]) -> None:
        event.status = EventStatus.crawling
        event.model_id = model_id
        event.crawl_data = {
            "started_at": datetime.utcnow().isoformat(),
            "processed": 0,
            "queued": 1,
            "config": config,
        }
        self.session.commit()

    def update_progress(self, event: Event, processed: int, queued: int) -> None:
        # Reassign so the JSON column is flagged dirty
        event.crawl_data = {**(event.crawl_data or {}), "processed": processed, "queued": queued}
        self.session.commit()

    def finish_crawl(self, event: Event, status: EventStatus, summary: Dict[str, Any]) -> None:
        event.status = status
        event.crawl_data = {**(event.crawl_data or {}), **summary}
        self.session.commit()

    # ------------------------------------------------------------------- pages

    def get_page(self, event_id: int, url: str) -> Optional[CrawledPage]:
        return (
            self.session.query(CrawledPage)
            .filter(CrawledPage.event_id == event_id, CrawledPage.url == url)
            .first()
        )

    def add_page(
        self,
        event_id: int,
        url: str,
        title: str,
        content: str,
        metadata: Dict[str, Any],
    ) -> Tuple[CrawledPage, bool]:
        """Get-or-create by URL. Returns (page, created)."""
        existing = self.get_page(event_id, url)
        if existing is not None:
            return existing, False
        page = CrawledPage(
            event_id=event_id,
            url=url,
            title=title,
            content=content,
            page_metadata=metadata,
            crawl_status="completed",
        )
        self.session.add(page)
        self.session.commit()
        self.session.refresh(page)
        return page, True

    # ------------------------------------------------------------------ chunks

    def add_chunk(
        self,
        event_id: int,
        page_id: Optional[int],
        content: str,
        chunk_index: int,
        metadata: Dict[str, Any],
        embedding: Optional[List[float]] = None,
        embedding_model: Optional[str] = None,
    ) -> ContentChunk:
        chunk = ContentChunk(
            event_id=event_id,
            page_id=page_id,
            content=content,
            chunk_index=chunk_index,
            chunk_metadata=metadata,
            embedding=embedding,
            embedding_model=embedding_model if embedding else None,
            embedding_dim=len(embedding) if embedding else None,
        )
        self.session.add(chunk)
        self.session.commit()
        return chunk

    def count_chunks(self, event_id: int) -> int:
        return int(
            self.session.query(func.count(ContentChunk.id))
            .filter(ContentChunk.event_id == event_id)
            .scalar()
            or 0
        )

    def count_embedded_chunks(self, event_id: int, model: Optional[str] = None) -> int:
        query = self.session.query(func.count(ContentChunk.id)).filter(
            ContentChunk.event_id == event_id,
            ContentChunk.embedding_model.isnot(None),
        )
        if model:
            query = query.filter(ContentChunk.embedding_model == model)
        return int(query.scalar() or 0)

    def match_chunks(
        self,
        event_id: int,
        vector: Sequence[float],
        model: str,
        threshold: float,
        limit: int,
    ) -> List[Tuple[ContentChunk, float]]:
        """Cosine search over this event's chunks embedded by the same model and dimension."""
        candidates = (
            self.session.query(ContentChunk)
            .filter(
                ContentChunk.event_id == event_id,
                ContentChunk.embedding_model == model,
                ContentChunk.embedding_dim == len(vector),
            )
            .all()
        )
        scored: List[Tuple[ContentChunk, float]] = []
        for chunk in candidates:
            score = cosine_similarity(vector, chunk.embedding or [])
            if score >= threshold:
                scored.append((chunk, score))
        scored.sort(key=lambda item: item[1], reverse=True)
        return scored[: max(0, limit)]

    def recent_chunks(self, event_id: int, limit: int) -> List[ContentChunk]:
        return (
            self.session.query(ContentChunk)
            .filter(ContentChunk.event_id == event_id)
            .order_by(ContentChunk.created_at.desc(), ContentChunk.id.desc())
            .limit(max(0, limit))
            .all()
        )

    def any_chunks(self, event_id: int, limit: int) -> List[ContentChunk]:
        return (
            self.session.query(ContentChunk)
            .filter(ContentChunk.event_id == event_id)
            .limit(max(0, limit))
            .all()
        )

    # -------------------------------------------------------------------- chat

    def create_session(self, event_id: int, title: Optional[str] = None) -> ChatSession:
        self.require_event(event_id)
        chat_session = ChatSession(event_id=event_id, title=title)
        self.session.add(chat_session)
        self.session.commit()
        self.session.refresh(chat_session)
        return chat_session

    def require_session(self, session_id: int, event_id: Optional[int] = None) -> ChatSession:
        query = self.session.query(ChatSession).filter(ChatSession.id == session_id)
        if event_id is not None:
            query = query.filter(ChatSession.event_id == event_id)
        chat_session = query.first()
        if chat_session is None:
            raise ChatSessionNotFoundError(session_id)
        return chat_session

    def add_message(
        self,
        session_id: int,
        role: str,
        content: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ChatMessage:
        message = ChatMessage(
            session_id=session_id,
            role=role,
            content=content,
            message_metadata=metadata or {},
        )
        self.session.add(message)
        self.session.commit()
        self.session.refresh(message)
        return message
