"""Event API routes - create events, trigger crawls, preview sites, open chat sessions."""
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from typing import Optional, Dict, Any
from datetime import datetime
import logging

from app.api.deps import CrawlRunner, get_app_settings, get_crawl_runner, get_previewer, get_store
from app.config import Settings
from app.models.event import EventStatus
from app.services.crawler import CrawlRequest, EventCrawler, SitePreviewer, preview_payload
from app.services.errors import CrawlConfigurationError, EventNotFoundError
from app.services.event_store import EventStore

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================================================
# Pydantic Schemas
# ============================================================================

class EventCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    url: str = Field(min_length=1)
    model_id: Optional[str] = None


class EventResponse(BaseModel):
    id: int
    name: str
    original_url: str
    model_id: Optional[str] = None
    status: EventStatus
    crawl_data: Optional[Dict[str, Any]] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CrawlTrigger(BaseModel):
    url: Optional[str] = None
    max_depth: Optional[int] = Field(default=None, ge=0, le=5)
    max_pages: Optional[int] = Field(default=None, ge=1, le=200)
    include_external: Optional[bool] = None
    model_id: Optional[str] = None
    async_process: bool = True


class CrawlResult(BaseModel):
    success: bool
    chunks_created: int
    words_processed: int
    urls_processed: int


class PreviewRequest(BaseModel):
    url: str = Field(min_length=1)


class ChatSessionCreate(BaseModel):
    title: Optional[str] = None


class ChatSessionResponse(BaseModel):
    id: int
    event_id: int
    title: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


# ============================================================================
# Routes
# ============================================================================

@router.post("", response_model=EventResponse, status_code=201)
def create_event(payload: EventCreate, store: EventStore = Depends(get_store)):
    """Register an event site. The crawl is triggered separately."""
    event = store.create_event(payload.name, payload.url.strip(), payload.model_id)
    return EventResponse.model_validate(event)


@router.get("/{event_id}", response_model=EventResponse)
def get_event(event_id: int, store: EventStore = Depends(get_store)):
    event = store.get_event(event_id)
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")
    return EventResponse.model_validate(event)


@router.post("/{event_id}/crawl")
def trigger_crawl(
    event_id: int,
    payload: CrawlTrigger,
    store: EventStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
    run_crawl: CrawlRunner = Depends(get_crawl_runner),
):
    """Queue a crawl, or run it inline when ``async_process`` is false."""
    event = store.get_event(event_id)
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")

    request = CrawlRequest(
        event_id=event_id,
        url=payload.url,
        max_depth=payload.max_depth if payload.max_depth is not None else settings.crawl_default_max_depth,
        max_pages=payload.max_pages if payload.max_pages is not None else settings.crawl_default_max_pages,
        include_external=(
            payload.include_external if payload.include_external is not None else settings.crawl_include_external
        ),
        model_id=payload.model_id,
    )

    # Reject before anything is queued or fetched
    try:
        request.model_id = EventCrawler.resolve_model_id(request, event)
    except CrawlConfigurationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    if payload.async_process:
        from app.workers.tasks import crawl_event

        task = crawl_event.delay(
            event_id=request.event_id,
            url=request.url,
            max_depth=request.max_depth,
            max_pages=request.max_pages,
            include_external=request.include_external,
            model_id=request.model_id,
        )
        logger.info("Queued crawl for event %s as task %s", event_id, task.id)
        return JSONResponse(
            status_code=202,
            content={"status": "queued", "event_id": event_id, "task_id": task.id},
        )

    try:
        summary = run_crawl(request)
    except CrawlConfigurationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except EventNotFoundError:
        raise HTTPException(status_code=404, detail="Event not found")
    except Exception:
        logger.exception("Inline crawl failed for event %s", event_id)
        raise HTTPException(status_code=500, detail="Crawl failed")
    return CrawlResult(**summary.to_payload())


@router.post("/preview")
async def preview_site(payload: PreviewRequest, previewer: SitePreviewer = Depends(get_previewer)):
    """Shallow crawl of a single page: title and link counts. Never a 5xx for unreachable pages."""
    try:
        preview = await previewer.preview(payload.url)
    finally:
        await previewer.close()
    return preview_payload(preview)


@router.post("/{event_id}/sessions", response_model=ChatSessionResponse, status_code=201)
def create_chat_session(
    event_id: int,
    payload: Optional[ChatSessionCreate] = None,
    store: EventStore = Depends(get_store),
):
    try:
        chat_session = store.create_session(event_id, payload.title if payload else None)
    except EventNotFoundError:
        raise HTTPException(status_code=404, detail="Event not found")
    return ChatSessionResponse.model_validate(chat_session)
