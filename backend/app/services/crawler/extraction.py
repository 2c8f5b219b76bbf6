"""HTML to normalized text, plus link discovery and URL normalization."""

import html as html_lib
import logging
import re
from typing import Iterable, List, Optional, Set
from urllib.parse import parse_qsl, urlencode, urljoin, urlparse, urlunparse

import trafilatura
from selectolax.parser import HTMLParser, Node

from .models import PageLinks
from .constants import (
    STRIP_TAGS,
    HEADING_TAGS,
    BOLD_TAGS,
    ITALIC_TAGS,
    BLOCK_TAGS,
    STRIP_PARAMS,
    SKIP_EXTENSIONS,
)

logger = logging.getLogger(__name__)

_INLINE_WS_RE = re.compile(r"\s+")
_HSPACE_RE = re.compile(r"[ \t\f\v\r\xa0]+")
_BLANK_RUN_RE = re.compile(r"\n{3,}")
_STRIP_BLOCK_RE = re.compile(
    r"<(script|style|nav|footer|noscript|template)\b[^>]*>.*?</\1\s*>",
    re.IGNORECASE | re.DOTALL,
)
_TAG_RE = re.compile(r"<[^>]+>")

# Nesting beyond this is flattened to plain text
_MAX_RENDER_DEPTH = 200


def html_to_text(html: str) -> str:
    """
    Convert raw HTML into lightweight markdown-like plain text.

    Headings get their own line, bold and italic become ``**x**`` and ``*x*``,
    list items become ``• x`` lines. Script, style, nav and footer content is
    dropped. Never raises: a failed render falls back to trafilatura and then
    to a plain tag strip.
    """
    if not html:
        return ""

    text = ""
    try:
        text = _render_document(html)
    except Exception as exc:
        logger.debug("selectolax render failed, falling back: %s", exc)

    if not text.strip():
        try:
            text = trafilatura.extract(
                html,
                include_links=False,
                include_images=False,
                include_tables=True,
                no_fallback=False,
            ) or ""
        except Exception as exc:
            logger.debug("trafilatura extraction failed: %s", exc)
            text = ""

    if not text.strip():
        text = _strip_tags(html)

    return normalize_whitespace(text)


def normalize_whitespace(text: str) -> str:
    """Collapse horizontal whitespace per line and runs of blank lines."""
    lines = [_HSPACE_RE.sub(" ", line).strip() for line in str(text or "").split("\n")]
    return _BLANK_RUN_RE.sub("\n\n", "\n".join(lines)).strip()


def _render_document(html: str) -> str:
    tree = HTMLParser(html)
    for tag in STRIP_TAGS:
        for node in tree.css(tag):
            node.decompose()

    root = tree.body or tree.root
    if root is None:
        return ""
    return _render_node(root, 0)


def _render_node(node: Node, depth: int) -> str:
    tag = node.tag or ""
    if tag == "-text":
        return _INLINE_WS_RE.sub(" ", node.text(deep=False) or "")
    if not tag or tag[0] in "_!-" or tag in STRIP_TAGS:
        return ""
    if depth > _MAX_RENDER_DEPTH:
        return _INLINE_WS_RE.sub(" ", node.text(deep=True) or "")

    inner = "".join(_render_node(child, depth + 1) for child in node.iter(include_text=True))

    if tag in HEADING_TAGS:
        heading = inner.strip()
        return f"\n\n{heading}\n" if heading else ""
    if tag in BOLD_TAGS:
        bold = inner.strip()
        return f"**{bold}**" if bold else ""
    if tag in ITALIC_TAGS:
        italic = inner.strip()
        return f"*{italic}*" if italic else ""
    if tag == "li":
        item = inner.strip()
        return f"\n• {item}\n" if item else ""
    if tag == "p":
        return f"\n{inner}\n\n"
    if tag == "br":
        return "\n"
    if tag in BLOCK_TAGS:
        return f"\n{inner}\n"
    return inner


def _strip_tags(html: str) -> str:
    text = _STRIP_BLOCK_RE.sub(" ", html)
    text = re.sub(r"<br\s*/?>", "\n", text, flags=re.IGNORECASE)
    text = re.sub(r"</(p|div|li|h[1-6])\s*>", "\n", text, flags=re.IGNORECASE)
    text = _TAG_RE.sub(" ", text)
    return html_lib.unescape(text)


def normalize_url(url: str) -> Optional[str]:
    """
    Canonical form used for visited-set identity.

    Lowercases scheme and host, drops fragments, tracking params and default
    ports, and strips trailing slashes. Returns None for non-http(s) URLs.
    """
    raw = str(url or "").strip()
    if not raw:
        return None
    try:
        parsed = urlparse(raw)
        port = parsed.port
    except ValueError:
        return None

    scheme = parsed.scheme.lower()
    if scheme not in ("http", "https"):
        return None
    host = (parsed.hostname or "").lower()
    if not host:
        return None

    netloc = host
    if port and not ((scheme == "http" and port == 80) or (scheme == "https" and port == 443)):
        netloc = f"{host}:{port}"

    path = parsed.path or "/"
    if len(path) > 1:
        path = path.rstrip("/") or "/"

    params = [
        (key, value)
        for key, value in parse_qsl(parsed.query, keep_blank_values=True)
        if key.lower() not in STRIP_PARAMS
    ]
    return urlunparse((scheme, netloc, path, "", urlencode(params), ""))


def is_crawlable_url(url: str) -> bool:
    path = urlparse(url).path.lower()
    return not any(path.endswith(ext) for ext in SKIP_EXTENSIONS)


def extract_links(html: str, page_url: str, root_host: Optional[str] = None) -> PageLinks:
    """Collect anchors, resolved and normalized, split internal vs external by hostname."""
    links = PageLinks()
    if not html:
        return links

    host = (root_host or urlparse(page_url).hostname or "").lower()
    seen: Set[str] = set()
    try:
        tree = HTMLParser(html)
        anchors = tree.css("a[href]")
    except Exception as exc:
        logger.debug("Link extraction failed for %s: %s", page_url, exc)
        return links

    resolved: List[str] = []
    for anchor in anchors:
        href = str(anchor.attributes.get("href") or "").strip()
        if not href or href.startswith(("#", "mailto:", "tel:", "javascript:", "data:")):
            continue
        absolute = normalize_url(urljoin(page_url, href))
        if not absolute or absolute in seen or not is_crawlable_url(absolute):
            continue
        seen.add(absolute)
        resolved.append(absolute)
    return split_links(resolved, host)


def split_links(urls: Iterable[str], host: str) -> PageLinks:
    """Classify normalized URLs as internal when their hostname equals ``host``."""
    links = PageLinks()
    host = (host or "").lower()
    for url in urls:
        if urlparse(url).hostname == host:
            links.internal.append(url)
        else:
            links.external.append(url)
    return links


def word_count(text: str) -> int:
    return len(str(text or "").split())


def dedupe_preserving_order(values: Iterable[str]) -> List[str]:
    """Case-insensitive dedupe that keeps the first spelling seen."""
    seen: Set[str] = set()
    result: List[str] = []
    for value in values:
        cleaned = str(value or "").strip()
        key = cleaned.lower()
        if not cleaned or key in seen:
            continue
        seen.add(key)
        result.append(cleaned)
    return result
