import asyncio
import logging
from typing import Optional

from app.workers.celery_app import celery_app
from app.config import get_settings
from app.models.base import SessionLocal
from app.services.crawler import CrawlRequest, EventCrawler, PageFetcher
from app.services.embeddings import EmbeddingProvider
from app.services.errors import PipelineError
from app.services.event_store import EventStore

logger = logging.getLogger(__name__)


async def _crawl(store: EventStore, embedder: EmbeddingProvider, request: CrawlRequest):
    settings = get_settings()
    async with PageFetcher(settings) as fetcher:
        crawler = EventCrawler(settings, store, embedder, fetcher=fetcher)
        return await crawler.crawl(request)


@celery_app.task(name="app.workers.tasks.crawl_event")
def crawl_event(
    event_id: int,
    url: Optional[str] = None,
    max_depth: int = 2,
    max_pages: int = 20,
    include_external: bool = False,
    model_id: Optional[str] = None,
):
    """Crawl an event site, chunk and embed its pages, and record the outcome on the event."""
    settings = get_settings()
    request = CrawlRequest(
        event_id=event_id,
        url=url,
        max_depth=max_depth,
        max_pages=max_pages,
        include_external=include_external,
        model_id=model_id,
    )

    db = SessionLocal()
    embedder = EmbeddingProvider(settings)
    try:
        summary = asyncio.run(_crawl(EventStore(db), embedder, request))
        return summary.to_payload()
    except PipelineError as e:
        logger.warning("Crawl rejected for event %s: %s", event_id, e)
        return {"error": str(e)}
    except Exception as e:
        logger.exception("Crawl task failed for event %s", event_id)
        return {"error": str(e)}
    finally:
        embedder.close()
        db.close()
