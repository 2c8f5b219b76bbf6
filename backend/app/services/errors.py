from __future__ import annotations

from typing import Optional


class PipelineError(RuntimeError):
    """Base class for errors raised by the ingestion and chat services."""


class CrawlConfigurationError(PipelineError):
    """A crawl request cannot start, e.g. no model id resolves for the event."""


class EventNotFoundError(PipelineError):
    def __init__(self, event_id: int) -> None:
        super().__init__(f"Event {event_id} not found")
        self.event_id = event_id


class ChatSessionNotFoundError(PipelineError):
    def __init__(self, session_id: int) -> None:
        super().__init__(f"Chat session {session_id} not found")
        self.session_id = session_id


class ChatGenerationError(PipelineError):
    def __init__(self, message: str, *, model: Optional[str] = None) -> None:
        super().__init__(message)
        self.model = model


class PageFetchError(PipelineError):
    """A single page could not be fetched. The crawl skips it and continues."""
