"""Bounded BFS crawl of an event site: fetch, extract, chunk, embed, persist."""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Deque, List, Optional, Set, Tuple
from urllib.parse import urlparse

from sqlalchemy.exc import SQLAlchemyError

from app.config import Settings
from app.models.event import Event, EventStatus
from app.services.embeddings import Embedding, EmbeddingProvider
from app.services.errors import CrawlConfigurationError, PageFetchError
from app.services.event_store import EventStore

from .models import CrawlRequest, CrawlSummary, FetchedPage
from .chunking import TextChunker
from .extraction import normalize_url, split_links, word_count
from .fetch import PageFetcher

logger = logging.getLogger(__name__)

NO_CONTENT_ERROR = "No content chunks were created during crawl"


@dataclass
class PageOutcome:
    chunks_created: int = 0
    embedded_chunks: int = 0
    words: int = 0


class EventCrawler:
    """
    Crawls one event site and owns the event's status transitions.

    pending -> crawling -> completed | failed. The run ends ``completed`` only
    when the event has at least one stored chunk.
    """

    def __init__(
        self,
        settings: Settings,
        store: EventStore,
        embedder: EmbeddingProvider,
        fetcher: Optional[PageFetcher] = None,
        chunker: Optional[TextChunker] = None,
        progress_callback: Optional[Callable[[str], None]] = None,
    ):
        self.settings = settings
        self.store = store
        self.embedder = embedder
        self.fetcher = fetcher or PageFetcher(settings)
        self.chunker = chunker or TextChunker(settings.chunk_max_chars, settings.chunk_min_chars)
        self.progress_callback = progress_callback

    def _log(self, message: str) -> None:
        """Log progress, and forward it to the callback if one is set."""
        logger.info(message)
        if self.progress_callback:
            self.progress_callback(message)

    @staticmethod
    def resolve_model_id(request: CrawlRequest, event: Event) -> str:
        model_id = str(request.model_id or "").strip() or str(event.model_id or "").strip()
        if not model_id:
            raise CrawlConfigurationError(
                f"No model id provided for event {event.id} and none stored on the event"
            )
        return model_id

    async def crawl(self, request: CrawlRequest) -> CrawlSummary:
        """
        Run one crawl. Configuration problems raise before any fetch or status
        change; single-page failures are logged and skipped.
        """
        event = self.store.require_event(request.event_id)
        model_id = self.resolve_model_id(request, event)
        root_url = normalize_url(request.url or event.original_url)
        if not root_url:
            raise CrawlConfigurationError(f"Invalid crawl URL: {request.url or event.original_url}")

        max_depth = max(0, int(request.max_depth))
        max_pages = max(1, int(request.max_pages))
        config = {
            "url": root_url,
            "max_depth": max_depth,
            "max_pages": max_pages,
            "include_external": bool(request.include_external),
        }
        self.store.mark_crawling(event, model_id, config)
        self._log(f"Starting crawl of {root_url} for event {event.id} (depth {max_depth}, pages {max_pages})")

        try:
            return await self._run(event, root_url, max_depth, max_pages, bool(request.include_external))
        except Exception as exc:
            logger.exception("Crawl failed for event %s", event.id)
            self.store.session.rollback()
            self.store.finish_crawl(
                event,
                EventStatus.failed,
                {"error": str(exc), "failed_at": datetime.utcnow().isoformat()},
            )
            raise

    async def _run(
        self,
        event: Event,
        root_url: str,
        max_depth: int,
        max_pages: int,
        include_external: bool,
    ) -> CrawlSummary:
        root_host = urlparse(root_url).hostname or ""
        queue: Deque[Tuple[str, int]] = deque([(root_url, 0)])
        queued: Set[str] = {root_url}
        visited: Set[str] = set()
        # Post-redirect URLs of fetched pages, never fetched again
        aliases: Set[str] = set()
        failed_urls: List[str] = []
        totals = PageOutcome()

        while queue and len(visited) < max_pages:
            url, depth = queue.popleft()
            queued.discard(url)
            if url in visited or depth > max_depth:
                continue
            visited.add(url)
            self._log(f"Crawling {url} (depth {depth}, {len(visited)}/{max_pages})")

            try:
                page = await self.fetcher.fetch(url, root_host)
            except PageFetchError as exc:
                self._log(f"Skipping {url}: {exc}")
                failed_urls.append(url)
                self.store.update_progress(event, len(visited), len(queue))
                continue

            final_url = normalize_url(page.final_url) if page.final_url else None
            if final_url and final_url != url:
                aliases.add(final_url)
                final_host = urlparse(final_url).hostname or ""
                # A root redirect to another host (apex -> www) moves the crawl there
                if depth == 0 and final_host and final_host != root_host:
                    self._log(f"{url} redirected to {final_url}, crawling {final_host}")
                    root_host = final_host
                    page.links = split_links(page.links.internal + page.links.external, root_host)

            outcome = await self._process_page(event.id, page)
            totals.chunks_created += outcome.chunks_created
            totals.embedded_chunks += outcome.embedded_chunks
            totals.words += outcome.words

            if depth < max_depth:
                candidates = list(page.links.internal)
                if include_external:
                    candidates.extend(page.links.external)
                for link in candidates:
                    if len(queue) + len(visited) >= max_pages:
                        break
                    if link in visited or link in queued or link in aliases:
                        continue
                    queue.append((link, depth + 1))
                    queued.add(link)

            self.store.update_progress(event, len(visited), len(queue))

        return self._finish(event, visited, failed_urls, totals)

    async def _process_page(self, event_id: int, page: FetchedPage) -> PageOutcome:
        outcome = PageOutcome()
        crawled_at = datetime.utcnow().isoformat()
        try:
            record, created = self.store.add_page(
                event_id,
                page.url,
                page.title,
                page.text,
                page.metadata(crawled_at),
            )
        except SQLAlchemyError as exc:
            self.store.session.rollback()
            self._log(f"Could not store page {page.url}: {exc}")
            return outcome

        if not created:
            self._log(f"{page.url} already stored for event {event_id}, following links only")
            return outcome

        outcome.words = page.word_count
        chunks = self.chunker.split(page.text)
        if not chunks:
            self._log(f"No chunks extracted from {page.url}")
            return outcome

        embeddings = await self._embed_chunks(chunks)
        for index, (content, embedding) in enumerate(zip(chunks, embeddings)):
            metadata = {
                "url": page.url,
                "order": index,
                "word_count": word_count(content),
                "char_count": len(content),
            }
            try:
                self.store.add_chunk(
                    event_id,
                    record.id,
                    content,
                    index,
                    metadata,
                    embedding=embedding.vector if embedding else None,
                    embedding_model=embedding.model if embedding else None,
                )
            except SQLAlchemyError as exc:
                self.store.session.rollback()
                self._log(f"Could not store chunk {index} of {page.url}: {exc}")
                continue
            outcome.chunks_created += 1
            if embedding:
                outcome.embedded_chunks += 1

        self._log(
            f"Stored {outcome.chunks_created} chunks ({outcome.embedded_chunks} embedded) from {page.url}"
        )
        return outcome

    async def _embed_chunks(self, chunks: List[str]) -> List[Optional[Embedding]]:
        """Embed in small concurrent batches; a failed chunk yields None."""
        results: List[Optional[Embedding]] = []
        batch_size = max(1, int(self.settings.embedding_batch_size))

        for i in range(0, len(chunks), batch_size):
            batch = chunks[i:i + batch_size]
            tasks = [asyncio.to_thread(self.embedder.embed, chunk) for chunk in batch]
            outcomes = await asyncio.gather(*tasks, return_exceptions=True)
            for outcome in outcomes:
                if isinstance(outcome, Exception):
                    logger.warning("Embedding raised unexpectedly: %s", outcome)
                    results.append(None)
                else:
                    results.append(outcome)

        return results

    def _finish(
        self,
        event: Event,
        visited: Set[str],
        failed_urls: List[str],
        totals: PageOutcome,
    ) -> CrawlSummary:
        chunk_count = self.store.count_chunks(event.id)
        embedded_count = self.store.count_embedded_chunks(event.id)
        success = chunk_count > 0
        error = None if success else NO_CONTENT_ERROR

        self.store.finish_crawl(
            event,
            EventStatus.completed if success else EventStatus.failed,
            {
                "crawled_at": datetime.utcnow().isoformat(),
                "processed": len(visited),
                "queued": 0,
                "urls_processed": len(visited),
                "failed_urls": failed_urls,
                "chunks_created": totals.chunks_created,
                "total_chunks": chunk_count,
                "chunk_count": chunk_count,
                "embedded_chunk_count": embedded_count,
                "total_words": totals.words,
                "error": error,
            },
        )
        self._log(
            f"Crawl of event {event.id} {'completed' if success else 'failed'}: "
            f"{len(visited)} URLs, {totals.chunks_created} new chunks, {chunk_count} total"
        )

        return CrawlSummary(
            event_id=event.id,
            success=success,
            chunks_created=totals.chunks_created,
            embedded_chunks=totals.embedded_chunks,
            words_processed=totals.words,
            urls_processed=len(visited),
            failed_urls=failed_urls,
            error=error,
        )
