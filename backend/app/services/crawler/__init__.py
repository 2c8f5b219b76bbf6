"""Event crawler package: extraction, chunking and the BFS ingestion run."""

from .models import (
    PageLinks,
    StructuredInfo,
    FetchedPage,
    CrawlRequest,
    CrawlSummary,
    SitePreview,
)
from .extraction import html_to_text, extract_links, normalize_url
from .structured_info import extract_structured_info, extract_title
from .chunking import TextChunker
from .fetch import PageFetcher
from .event_crawler import EventCrawler
from .preview import SitePreviewer, preview_payload

__all__ = [
    # Main entry points
    "EventCrawler",
    "SitePreviewer",
    "preview_payload",

    # Components
    "PageFetcher",
    "TextChunker",
    "html_to_text",
    "extract_links",
    "normalize_url",
    "extract_structured_info",
    "extract_title",

    # Data models
    "PageLinks",
    "StructuredInfo",
    "FetchedPage",
    "CrawlRequest",
    "CrawlSummary",
    "SitePreview",
]
