"""Request-scoped service wiring for the API routes."""
import asyncio
from typing import Callable, Generator

from fastapi import Depends
from sqlalchemy.orm import Session

from app.config import Settings, get_settings
from app.models.base import get_db
from app.services.chat.orchestrator import ChatOrchestrator
from app.services.crawler import CrawlRequest, CrawlSummary, EventCrawler, PageFetcher, SitePreviewer
from app.services.embeddings import EmbeddingProvider
from app.services.event_store import EventStore
from app.services.llm.orchestrator import LLMOrchestrator
from app.services.retrieval.engine import RetrievalEngine

CrawlRunner = Callable[[CrawlRequest], CrawlSummary]


def get_app_settings() -> Settings:
    return get_settings()


def get_store(db: Session = Depends(get_db)) -> EventStore:
    return EventStore(db)


def get_embedder(settings: Settings = Depends(get_app_settings)) -> Generator[EmbeddingProvider, None, None]:
    embedder = EmbeddingProvider(settings)
    try:
        yield embedder
    finally:
        embedder.close()


def get_llm(settings: Settings = Depends(get_app_settings)) -> LLMOrchestrator:
    return LLMOrchestrator(settings)


def get_chat_orchestrator(
    settings: Settings = Depends(get_app_settings),
    store: EventStore = Depends(get_store),
    embedder: EmbeddingProvider = Depends(get_embedder),
    llm: LLMOrchestrator = Depends(get_llm),
) -> ChatOrchestrator:
    retrieval = RetrievalEngine(settings, store, embedder)
    return ChatOrchestrator(settings, store, retrieval, llm)


def get_crawl_runner(
    settings: Settings = Depends(get_app_settings),
    store: EventStore = Depends(get_store),
    embedder: EmbeddingProvider = Depends(get_embedder),
) -> CrawlRunner:
    """Runs a crawl to completion in the calling thread."""

    async def _crawl(request: CrawlRequest) -> CrawlSummary:
        async with PageFetcher(settings) as fetcher:
            crawler = EventCrawler(settings, store, embedder, fetcher=fetcher)
            return await crawler.crawl(request)

    def run(request: CrawlRequest) -> CrawlSummary:
        return asyncio.run(_crawl(request))

    return run


def get_previewer(settings: Settings = Depends(get_app_settings)) -> SitePreviewer:
    return SitePreviewer(settings)
