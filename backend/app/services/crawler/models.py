"""Data models for the event crawler."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class PageLinks:
    """Links found on a page, split by the crawl root's hostname."""
    internal: List[str] = field(default_factory=list)
    external: List[str] = field(default_factory=list)


@dataclass
class StructuredInfo:
    """Best-effort event facts pulled from a page. Every field may be empty."""
    title: str = ""
    dates: List[str] = field(default_factory=list)
    prizes: List[str] = field(default_factory=list)
    deadlines: List[str] = field(default_factory=list)
    location: str = ""
    technologies: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        for key in ("title", "dates", "prizes", "deadlines", "location", "technologies"):
            value = getattr(self, key)
            if value:
                payload[key] = value
        return payload


@dataclass
class FetchedPage:
    """A page fetched and extracted, ready to persist and chunk."""
    url: str
    title: str
    text: str
    html: str = ""
    links: PageLinks = field(default_factory=PageLinks)
    info: StructuredInfo = field(default_factory=StructuredInfo)
    source: str = "direct"  # direct, crawl_api
    final_url: str = ""  # after redirects; empty when unknown

    @property
    def word_count(self) -> int:
        return len(self.text.split())

    def metadata(self, crawled_at: str) -> Dict[str, Any]:
        return {
            "url": self.url,
            "crawled_at": crawled_at,
            "word_count": self.word_count,
            "internal_links": len(self.links.internal),
            "external_links": len(self.links.external),
            "structured_info": self.info.to_dict(),
            "source": self.source,
        }


@dataclass
class CrawlRequest:
    """Ingestion trigger for one event."""
    event_id: int
    url: Optional[str] = None  # defaults to the event's original URL
    max_depth: int = 2
    max_pages: int = 20
    include_external: bool = False
    model_id: Optional[str] = None


@dataclass
class CrawlSummary:
    """Outcome of one crawl run."""
    event_id: int
    success: bool
    chunks_created: int = 0
    embedded_chunks: int = 0
    words_processed: int = 0
    urls_processed: int = 0
    failed_urls: List[str] = field(default_factory=list)
    error: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "chunks_created": self.chunks_created,
            "words_processed": self.words_processed,
            "urls_processed": self.urls_processed,
        }


@dataclass
class SitePreview:
    """Shallow, single-page look at a site before a full crawl."""
    url: str
    title: str = ""
    internal: List[str] = field(default_factory=list)
    external: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def link_count(self) -> int:
        return len(self.internal) + len(self.external)
