"""Shallow crawl: fetch a single page and report its title and links."""

import logging
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import httpx

from app.config import Settings

from .models import SitePreview
from .constants import PREVIEW_LINK_LIMIT
from .extraction import extract_links, normalize_url
from .structured_info import extract_title

logger = logging.getLogger(__name__)


class SitePreviewer:
    """Looks at one page before a full crawl. Failures come back on ``error``."""

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            follow_redirects=True,
            timeout=settings.crawl_request_timeout_seconds,
            headers={"User-Agent": settings.crawl_user_agent},
        )

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def preview(self, url: str) -> SitePreview:
        normalized = normalize_url(url)
        if not normalized:
            return SitePreview(url=url, error="Invalid URL")

        try:
            response = await self.client.get(normalized)
        except httpx.HTTPError as exc:
            logger.warning("Preview fetch failed for %s: %s", normalized, exc)
            return SitePreview(url=normalized, error=str(exc) or exc.__class__.__name__)

        if response.status_code != 200:
            return SitePreview(url=normalized, error=f"HTTP {response.status_code}")

        html = response.text
        final_url = str(response.url)
        links = extract_links(html, final_url, urlparse(final_url).hostname or urlparse(normalized).hostname)
        return SitePreview(
            url=normalized,
            title=extract_title(html),
            internal=links.internal,
            external=links.external,
        )


def preview_payload(preview: SitePreview) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "url": preview.url,
        "title": preview.title,
        "link_count": preview.link_count,
        "internal": len(preview.internal),
        "external": len(preview.external),
        "links": {
            "internal": preview.internal[:PREVIEW_LINK_LIMIT],
            "external": preview.external[:PREVIEW_LINK_LIMIT],
        },
    }
    if preview.error:
        payload["error"] = preview.error
    return payload
