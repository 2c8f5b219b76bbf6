from app.models.base import Base
from app.models.event import Event, EventStatus, CrawledPage, ContentChunk
from app.models.chat import ChatSession, ChatMessage

__all__ = [
    "Base",
    "Event", "EventStatus", "CrawledPage", "ContentChunk",
    "ChatSession", "ChatMessage",
]
