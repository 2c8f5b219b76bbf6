import asyncio
import threading
import time

import httpx
import pytest
from sqlalchemy.exc import SQLAlchemyError

from app.models.event import ContentChunk, CrawledPage, EventStatus
from app.services.crawler import CrawlRequest, EventCrawler, PageFetcher
from app.services.crawler.event_crawler import NO_CONTENT_ERROR
from app.services.embeddings import Embedding, EmbeddingProvider
from app.services.errors import CrawlConfigurationError

ROOT = "https://event.test/"

FILLER = "This paragraph describes the hackathon schedule, judging and prizes in some detail."


def _page(title, links=(), paragraphs=(FILLER,)):
    anchors = "".join(f'<a href="{href}">{href}</a>' for href in links)
    body = "".join(f"<p>{text}</p>" for text in paragraphs)
    return f"<html><head><title>{title}</title></head><body>{body}{anchors}</body></html>"


class SiteTransport:
    """Serves a fixed map of path -> HTML and records every requested URL."""

    def __init__(self, pages):
        self.pages = pages
        self.requested = []

    def __call__(self, request):
        self.requested.append(str(request.url))
        html = self.pages.get(request.url.path)
        if html is None:
            return httpx.Response(404, text="not found")
        return httpx.Response(200, html=html)


def _run_crawl(settings, store, embedder, site, request):
    async def go():
        client = httpx.AsyncClient(transport=httpx.MockTransport(site), follow_redirects=True)
        try:
            fetcher = PageFetcher(settings, client=client)
            crawler = EventCrawler(settings, store, embedder, fetcher=fetcher)
            return await crawler.crawl(request)
        finally:
            await client.aclose()

    return asyncio.run(go())


def test_cyclic_links_are_fetched_once(settings, store, fake_embedder):
    site = SiteTransport({
        "/": _page("Home", links=["/a", "/b"]),
        "/a": _page("A", links=["/", "/b", "#top"]),
        "/b": _page("B", links=["/a", "https://event.test/?utm_source=x"]),
    })
    event = store.create_event("Cycle Jam", ROOT, model_id="gpt-4o")

    summary = _run_crawl(settings, store, fake_embedder, site, CrawlRequest(event_id=event.id, max_depth=5, max_pages=10))

    assert sorted(site.requested) == sorted(set(site.requested))
    assert set(site.requested) == {ROOT, "https://event.test/a", "https://event.test/b"}
    assert summary.success is True
    assert summary.urls_processed == 3
    assert event.status == EventStatus.completed


def test_depth_one_visits_root_and_direct_links_only(settings, store, fake_embedder):
    site = SiteTransport({
        "/": _page("Home", links=["/a", "/b", "/c"]),
        "/a": _page("A", links=["/deep-a"]),
        "/b": _page("B", links=["/deep-b"]),
        "/c": _page("C", links=["/deep-c"]),
        "/deep-a": _page("Deep"),
    })
    event = store.create_event("Depth Jam", ROOT, model_id="gpt-4o")

    summary = _run_crawl(settings, store, fake_embedder, site, CrawlRequest(event_id=event.id, max_depth=1, max_pages=10))

    assert summary.urls_processed == 4
    assert set(site.requested) == {ROOT, "https://event.test/a", "https://event.test/b", "https://event.test/c"}
    pages = store.session.query(CrawledPage).filter(CrawledPage.event_id == event.id).all()
    assert len(pages) == 4


def test_max_pages_bounds_the_crawl(settings, store, fake_embedder):
    site = SiteTransport({
        "/": _page("Home", links=[f"/p{i}" for i in range(10)]),
        **{f"/p{i}": _page(f"P{i}") for i in range(10)},
    })
    event = store.create_event("Busy Jam", ROOT, model_id="gpt-4o")

    summary = _run_crawl(settings, store, fake_embedder, site, CrawlRequest(event_id=event.id, max_depth=2, max_pages=3))

    assert summary.urls_processed == 3
    assert len(site.requested) == 3


def test_external_links_followed_only_when_requested(settings, store, fake_embedder):
    site = SiteTransport({
        "/": _page("Home", links=["https://sponsor.example/deal"]),
        "/deal": _page("Sponsor"),
    })
    event = store.create_event("Sponsor Jam", ROOT, model_id="gpt-4o")

    _run_crawl(settings, store, fake_embedder, site, CrawlRequest(event_id=event.id, max_depth=1, max_pages=5))
    assert "https://sponsor.example/deal" not in site.requested

    other = store.create_event("Sponsor Jam 2", ROOT, model_id="gpt-4o")
    _run_crawl(
        settings,
        store,
        fake_embedder,
        site,
        CrawlRequest(event_id=other.id, max_depth=1, max_pages=5, include_external=True),
    )
    assert "https://sponsor.example/deal" in site.requested


def test_embedding_failure_keeps_chunk_without_vector(settings, store):
    def embed_handler(request):
        if b"EMBEDFAIL" in request.content:
            return httpx.Response(500, text="provider down")
        return httpx.Response(200, json={"data": [{"embedding": [0.1, 0.2, 0.3]}]})

    embedder = EmbeddingProvider(settings, client=httpx.Client(transport=httpx.MockTransport(embed_handler)))
    site = SiteTransport({
        "/": _page(
            "Home",
            paragraphs=[
                FILLER,
                "EMBEDFAIL marks this paragraph so that its embedding request is rejected upstream.",
            ],
        ),
    })
    event = store.create_event("Flaky Jam", ROOT, model_id="gpt-4o")

    summary = _run_crawl(settings, store, embedder, site, CrawlRequest(event_id=event.id, max_depth=0, max_pages=1))

    chunks = (
        store.session.query(ContentChunk)
        .filter(ContentChunk.event_id == event.id)
        .order_by(ContentChunk.chunk_index)
        .all()
    )
    assert len(chunks) == 2
    assert chunks[0].embedding == [0.1, 0.2, 0.3]
    assert chunks[0].embedding_dim == 3
    assert chunks[1].embedding is None
    assert chunks[1].embedding_model is None
    assert summary.success is True
    assert summary.embedded_chunks == 1
    assert event.status == EventStatus.completed
    assert event.crawl_data["embedded_chunk_count"] == 1


def test_crawl_without_chunks_ends_failed(settings, store, fake_embedder):
    site = SiteTransport({"/": _page("Empty", paragraphs=["too short"])})
    event = store.create_event("Empty Jam", ROOT, model_id="gpt-4o")

    summary = _run_crawl(settings, store, fake_embedder, site, CrawlRequest(event_id=event.id))

    assert summary.success is False
    assert summary.error == NO_CONTENT_ERROR
    assert event.status == EventStatus.failed
    assert event.crawl_data["error"] == NO_CONTENT_ERROR


def test_unreachable_root_ends_failed(settings, store, fake_embedder):
    site = SiteTransport({})
    event = store.create_event("Gone Jam", ROOT, model_id="gpt-4o")

    summary = _run_crawl(settings, store, fake_embedder, site, CrawlRequest(event_id=event.id))

    assert summary.success is False
    assert summary.failed_urls == [ROOT]
    assert event.status == EventStatus.failed


def test_missing_model_rejects_before_any_fetch(settings, store, fake_embedder):
    site = SiteTransport({"/": _page("Home")})
    event = store.create_event("No Model Jam", ROOT)

    with pytest.raises(CrawlConfigurationError):
        _run_crawl(settings, store, fake_embedder, site, CrawlRequest(event_id=event.id))

    assert site.requested == []
    assert event.status == EventStatus.pending


def test_request_model_overrides_and_is_stored(settings, store, fake_embedder):
    site = SiteTransport({"/": _page("Home")})
    event = store.create_event("Model Jam", ROOT)

    _run_crawl(settings, store, fake_embedder, site, CrawlRequest(event_id=event.id, model_id="claude-sonnet"))

    assert event.model_id == "claude-sonnet"
    assert event.crawl_data["config"]["url"] == ROOT


def test_recrawl_does_not_duplicate_pages_or_chunks(settings, store, fake_embedder):
    site = SiteTransport({"/": _page("Home")})
    event = store.create_event("Again Jam", ROOT, model_id="gpt-4o")

    first = _run_crawl(settings, store, fake_embedder, site, CrawlRequest(event_id=event.id))
    second = _run_crawl(settings, store, fake_embedder, site, CrawlRequest(event_id=event.id))

    assert first.chunks_created == 1
    assert second.chunks_created == 0
    assert second.success is True
    assert store.count_chunks(event.id) == 1


def test_fetcher_falls_back_to_crawl_api_when_direct_fetch_fails(settings):
    settings.crawl_fallback_enabled = True
    posted = []

    def handler(request):
        if request.method == "POST":
            posted.append(request)
            return httpx.Response(
                200,
                json={
                    "title": "Hosted Render",
                    "text": FILLER,
                    "links": {"internal": ["https://event.test/rules#top"], "external": ["https://sponsor.example/"]},
                },
            )
        return httpx.Response(403, text="blocked")

    async def go():
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler), follow_redirects=True)
        try:
            return await PageFetcher(settings, client=client).fetch(ROOT, "event.test")
        finally:
            await client.aclose()

    page = asyncio.run(go())

    assert page.source == "crawl_api"
    assert page.title == "Hosted Render"
    assert page.text == FILLER
    assert page.links.internal == ["https://event.test/rules"]
    assert page.links.external == ["https://sponsor.example/"]
    assert str(posted[0].url) == settings.aiml_crawl_url
    assert posted[0].headers["Authorization"] == "Bearer test-aiml-key"


def test_root_redirect_to_another_host_crawls_the_new_host(settings, store, fake_embedder):
    www_pages = {
        "/": _page("Home", links=["/rules", "/prizes", "/"]),
        "/rules": _page("Rules"),
        "/prizes": _page("Prizes"),
    }
    requested = []

    def handler(request):
        requested.append(str(request.url))
        if request.url.host == "event.test":
            return httpx.Response(301, headers={"Location": f"https://www.event.test{request.url.path}"})
        html = www_pages.get(request.url.path)
        if html is None:
            return httpx.Response(404, text="not found")
        return httpx.Response(200, html=html)

    event = store.create_event("Apex Jam", ROOT, model_id="gpt-4o")

    summary = _run_crawl(settings, store, fake_embedder, handler, CrawlRequest(event_id=event.id, max_depth=1, max_pages=10))

    assert summary.urls_processed == 3
    assert requested == [
        ROOT,
        "https://www.event.test/",
        "https://www.event.test/rules",
        "https://www.event.test/prizes",
    ]
    assert event.status == EventStatus.completed


class TrackingEmbedder:
    """Counts concurrent embed calls; text containing EXPLODE raises."""

    def __init__(self):
        self.lock = threading.Lock()
        self.in_flight = 0
        self.peak = 0

    def embed(self, text):
        with self.lock:
            self.in_flight += 1
            self.peak = max(self.peak, self.in_flight)
        try:
            time.sleep(0.05)
            if "EXPLODE" in text:
                raise RuntimeError("embedding backend crashed")
            return Embedding(vector=[float(len(text))], model="fake-embed", provider="fake")
        finally:
            with self.lock:
                self.in_flight -= 1


class IdleFetcher:
    pass


def test_embed_chunks_bounds_concurrency_and_keeps_order(settings, store):
    settings.embedding_batch_size = 3
    embedder = TrackingEmbedder()
    chunks = ["a" * (i + 1) for i in range(7)]
    chunks[4] = "EXPLODE"
    crawler = EventCrawler(settings, store, embedder, fetcher=IdleFetcher())

    results = asyncio.run(crawler._embed_chunks(chunks))

    assert len(results) == 7
    assert results[4] is None
    for index, result in enumerate(results):
        if index != 4:
            assert result.vector == [float(len(chunks[index]))]
    assert 1 < embedder.peak <= 3


def test_embedder_exception_does_not_fail_the_page(settings, store):
    site = SiteTransport({
        "/": _page(
            "Home",
            paragraphs=[
                FILLER,
                "EXPLODE marks this paragraph so that the embedding backend raises while handling it.",
            ],
        ),
    })
    event = store.create_event("Crash Jam", ROOT, model_id="gpt-4o")

    summary = _run_crawl(settings, store, TrackingEmbedder(), site, CrawlRequest(event_id=event.id, max_depth=0))

    chunks = (
        store.session.query(ContentChunk)
        .filter(ContentChunk.event_id == event.id)
        .order_by(ContentChunk.chunk_index)
        .all()
    )
    assert len(chunks) == 2
    assert chunks[0].embedding == [float(len(chunks[0].content))]
    assert chunks[1].embedding is None
    assert summary.embedded_chunks == 1
    assert event.status == EventStatus.completed


def test_chunk_write_failure_skips_only_that_chunk(settings, store, fake_embedder, monkeypatch):
    real_add_chunk = store.add_chunk

    def add_chunk(event_id, page_id, content, chunk_index, metadata, **kwargs):
        if "BROKEN" in content:
            raise SQLAlchemyError("disk full")
        return real_add_chunk(event_id, page_id, content, chunk_index, metadata, **kwargs)

    monkeypatch.setattr(store, "add_chunk", add_chunk)
    site = SiteTransport({
        "/": _page(
            "Home",
            paragraphs=[
                FILLER,
                "BROKEN marks this paragraph so that writing its chunk to the database fails.",
                "The venue opens at nine and registration for every team closes at noon sharp.",
            ],
        ),
    })
    event = store.create_event("Disk Jam", ROOT, model_id="gpt-4o")

    summary = _run_crawl(settings, store, fake_embedder, site, CrawlRequest(event_id=event.id, max_depth=0))

    contents = [
        chunk.content
        for chunk in store.session.query(ContentChunk).filter(ContentChunk.event_id == event.id).all()
    ]
    assert len(contents) == 2
    assert not any("BROKEN" in content for content in contents)
    assert store.count_chunks(event.id) == 2
    assert summary.chunks_created == 2
    assert summary.success is True
    assert store.get_event(event.id).status == EventStatus.completed


def test_page_write_failure_skips_only_that_page(settings, store, fake_embedder, monkeypatch):
    real_add_page = store.add_page

    def add_page(event_id, url, title, content, metadata):
        if url.endswith("/broken"):
            raise SQLAlchemyError("disk full")
        return real_add_page(event_id, url, title, content, metadata)

    monkeypatch.setattr(store, "add_page", add_page)
    site = SiteTransport({
        "/": _page("Home", links=["/broken", "/rules"]),
        "/broken": _page("Broken"),
        "/rules": _page("Rules"),
    })
    event = store.create_event("Half Jam", ROOT, model_id="gpt-4o")

    summary = _run_crawl(settings, store, fake_embedder, site, CrawlRequest(event_id=event.id, max_depth=1))

    urls = {page.url for page in store.session.query(CrawledPage).filter(CrawledPage.event_id == event.id).all()}
    assert urls == {ROOT, "https://event.test/rules"}
    assert summary.urls_processed == 3
    assert summary.chunks_created == 2
    assert event.status == EventStatus.completed
