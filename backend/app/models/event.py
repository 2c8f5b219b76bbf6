"""Event ingestion models - events, crawled pages and their content chunks."""
from sqlalchemy import Column, Integer, String, DateTime, JSON, Text, ForeignKey, Enum, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from app.models.base import Base


class EventStatus(enum.Enum):
    pending = "pending"
    crawling = "crawling"
    completed = "completed"
    failed = "failed"


class Event(Base):
    """An event site submitted for ingestion. Status is owned by the crawler."""
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    original_url = Column(Text, nullable=False)
    model_id = Column(String(255), nullable=True)
    status = Column(Enum(EventStatus), default=EventStatus.pending, nullable=False)

    # Summary: counters, timestamps, live progress and last error
    crawl_data = Column(JSON, default=dict)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    pages = relationship("CrawledPage", back_populates="event", cascade="all, delete-orphan")
    chunks = relationship("ContentChunk", back_populates="event", cascade="all, delete-orphan")
    chat_sessions = relationship("ChatSession", back_populates="event", cascade="all, delete-orphan")


class CrawledPage(Base):
    """One visited URL. Written once per event and never updated."""
    __tablename__ = "event_urls"
    __table_args__ = (UniqueConstraint("event_id", "url", name="uq_event_urls_event_url"),)

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    url = Column(Text, nullable=False)
    title = Column(String(500), nullable=True)
    content = Column(Text, nullable=True)

    # word_count, link counts, structured info, crawled_at
    page_metadata = Column("metadata", JSON, default=dict)
    crawl_status = Column(String(50), default="completed")

    created_at = Column(DateTime, default=datetime.utcnow)

    event = relationship("Event", back_populates="pages")
    chunks = relationship("ContentChunk", back_populates="page")


class ContentChunk(Base):
    """Retrieval unit. The vector is optional and tagged with the model that produced it."""
    __tablename__ = "content_chunks"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    page_id = Column(Integer, ForeignKey("event_urls.id"), nullable=True)
    content = Column(Text, nullable=False)
    chunk_index = Column(Integer, default=0)

    embedding = Column(JSON(none_as_null=True), nullable=True)  # list[float]
    embedding_model = Column(String(255), nullable=True)
    embedding_dim = Column(Integer, nullable=True)

    # url, order, word_count, char_count
    chunk_metadata = Column(JSON, default=dict)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    event = relationship("Event", back_populates="chunks")
    page = relationship("CrawledPage", back_populates="chunks")
