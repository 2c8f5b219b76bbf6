"""Page fetching with a hosted crawl API fallback."""

import logging
from typing import Any, List, Optional, Set
from urllib.parse import urlparse

import httpx

from app.config import Settings
from app.services.errors import PageFetchError

from .models import FetchedPage, PageLinks
from .extraction import html_to_text, extract_links, normalize_url
from .structured_info import extract_structured_info

logger = logging.getLogger(__name__)

_HTML_CONTENT_TYPES = ("text/html", "application/xhtml", "text/plain")


class PageFetcher:
    """Fetches and extracts one page at a time over a shared async client."""

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            follow_redirects=True,
            timeout=settings.crawl_request_timeout_seconds,
            headers={"User-Agent": settings.crawl_user_agent},
        )

    async def __aenter__(self) -> "PageFetcher":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    @property
    def fallback_available(self) -> bool:
        return bool(
            self.settings.crawl_fallback_enabled
            and self.settings.aiml_api_key
            and self.settings.aiml_crawl_url
        )

    async def fetch(self, url: str, root_host: str) -> FetchedPage:
        """Fetch ``url`` directly, falling back to the crawl API. Raises PageFetchError."""
        try:
            return await self._fetch_direct(url, root_host)
        except (httpx.HTTPError, PageFetchError) as exc:
            if not self.fallback_available:
                raise PageFetchError(f"Failed to fetch {url}: {exc}") from exc
            logger.warning("Direct fetch failed for %s, trying crawl API: %s", url, exc)

        try:
            return await self._fetch_via_crawl_api(url, root_host)
        except httpx.HTTPError as exc:
            raise PageFetchError(f"Crawl API request failed for {url}: {exc}") from exc

    async def _fetch_direct(self, url: str, root_host: str) -> FetchedPage:
        response = await self.client.get(
            url,
            headers={"User-Agent": self.settings.crawl_user_agent},
            timeout=self.settings.crawl_request_timeout_seconds,
        )
        if response.status_code != 200:
            raise PageFetchError(f"HTTP {response.status_code}")

        content_type = response.headers.get("content-type", "").lower()
        if content_type and not any(kind in content_type for kind in _HTML_CONTENT_TYPES):
            raise PageFetchError(f"Unsupported content type: {content_type}")

        html = response.text
        text = html_to_text(html)
        info = extract_structured_info(html, text)
        links = extract_links(html, str(response.url), root_host)
        return FetchedPage(
            url=url,
            title=info.title or (urlparse(url).hostname or url),
            text=text,
            html=html,
            links=links,
            info=info,
            source="direct",
            final_url=str(response.url),
        )

    async def _fetch_via_crawl_api(self, url: str, root_host: str) -> FetchedPage:
        response = await self.client.post(
            self.settings.aiml_crawl_url,
            headers={"Authorization": f"Bearer {self.settings.aiml_api_key}"},
            json={
                "url": url,
                "wait_for": 2000,
                "extract": ["title", "text", "links", "metadata"],
                "options": {
                    "user_agent": self.settings.crawl_user_agent,
                    "block_ads": True,
                    "block_trackers": True,
                    "remove_duplicates": True,
                },
            },
        )
        if response.status_code != 200:
            raise PageFetchError(f"Crawl API failed with status {response.status_code}")
        try:
            result = response.json()
        except ValueError as exc:
            raise PageFetchError("Crawl API returned a non-JSON body") from exc
        if not isinstance(result, dict):
            raise PageFetchError("Crawl API returned an unexpected payload")

        html = str(result.get("html") or "")
        text = str(result.get("text") or "").strip()
        if not text and html:
            text = html_to_text(html)

        info = extract_structured_info(html, text)
        title = str(result.get("title") or "").strip() or info.title or (urlparse(url).hostname or url)
        info.title = info.title or title

        if html:
            links = extract_links(html, url, root_host)
        else:
            links = self._links_from_payload(result.get("links"), root_host)

        return FetchedPage(
            url=url,
            title=title,
            text=text,
            html=html,
            links=links,
            info=info,
            source="crawl_api",
        )

    def _links_from_payload(self, raw: Any, root_host: str) -> PageLinks:
        links = PageLinks()
        if not isinstance(raw, dict):
            return links
        candidates: List[str] = []
        for key in ("internal", "external"):
            values = raw.get(key)
            if isinstance(values, list):
                candidates.extend(str(value) for value in values)
        seen: Set[str] = set()
        for candidate in candidates:
            normalized = normalize_url(candidate)
            if not normalized or normalized in seen:
                continue
            seen.add(normalized)
            if urlparse(normalized).hostname == root_host:
                links.internal.append(normalized)
            else:
                links.external.append(normalized)
        return links
