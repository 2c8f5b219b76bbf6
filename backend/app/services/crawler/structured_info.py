"""Heuristic event facts: title, dates, prizes, deadlines, location, tech stack.

Each extractor is an independent function returning a partial result. A
category with no match is left empty.
"""

import logging
import re
from typing import Callable, List, Optional, Pattern, Tuple

from selectolax.parser import HTMLParser

from .models import StructuredInfo
from .constants import MAX_TITLE_LENGTH
from .extraction import dedupe_preserving_order

logger = logging.getLogger(__name__)

_NUMERIC_DATE = r"\d{1,2}[/-]\d{1,2}[/-]\d{2,4}|\d{4}[/-]\d{1,2}[/-]\d{1,2}"
_MONTH_SHORT = r"jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec"
_MONTH_ANY = (
    r"january|february|march|april|may|june|july|august|september|october|"
    r"november|december|jan|feb|mar|apr|jun|jul|aug|sept|sep|oct|nov|dec"
)

DATE_PATTERNS: List[Pattern[str]] = [
    re.compile(rf"(?:date|when|starts?|ends?|begins?)[\s:]*(?:{_NUMERIC_DATE})", re.IGNORECASE),
    re.compile(
        rf"(?:{_NUMERIC_DATE})\s*(?:to|until|till|-|–)\s*(?:{_NUMERIC_DATE})",
        re.IGNORECASE,
    ),
    re.compile(rf"\b(?:{_MONTH_ANY})\b\.?[ \t]+\d{{1,2}}(?:[ \t,\d-]{{0,20}}\d)?", re.IGNORECASE),
]

PRIZE_PATTERNS: List[Pattern[str]] = [
    re.compile(
        r"(?:prize pool|prize|award|reward|winning)s?[\s:]*\$?\d[\d,]*(?:\s*(?:usd|dollars?|cash))?",
        re.IGNORECASE,
    ),
    re.compile(r"\$\d[\d,]*(?:\s*(?:in prizes?|awards?|cash))?", re.IGNORECASE),
    re.compile(r"(?:first|second|third|1st|2nd|3rd)\s+place[\s:]*\$?\d[\d,]*", re.IGNORECASE),
]

DEADLINE_PATTERNS: List[Pattern[str]] = [
    re.compile(
        rf"(?:register|registration|sign.?up)[\s:]*(?:{_NUMERIC_DATE}|\b(?:{_MONTH_SHORT})[a-z]*\.?[ \t]+\d{{1,2}}(?:,?[ \t]*\d{{4}})?)",
        re.IGNORECASE,
    ),
    re.compile(
        rf"(?:deadline|due|submit)[\s:]*(?:{_NUMERIC_DATE}|\b(?:{_MONTH_SHORT})[a-z]*\.?[ \t]+\d{{1,2}}(?:,?[ \t]*\d{{4}})?)",
        re.IGNORECASE,
    ),
]

# Ordered; the first match wins
LOCATION_PATTERNS: List[Pattern[str]] = [
    re.compile(r"(?:location|venue|where)[ \t]*:[ \t]*([^\n\r]{3,100})", re.IGNORECASE),
    re.compile(r"\b(?:virtual|online|remote)\b", re.IGNORECASE),
    re.compile(r"\b\d+\s+[A-Za-z][A-Za-z ]+,\s*[A-Za-z][A-Za-z ]+"),
]

TECH_KEYWORDS = [
    "react", "vue", "angular", "node.js", "nodejs", "python", "javascript", "typescript",
    "java", "swift", "kotlin", "flutter", "docker", "kubernetes", "aws", "azure", "gcp",
    "firebase", "mongodb", "postgresql", "mysql", "graphql", "rest api", "solidity",
    "ethereum", "tensorflow", "pytorch", "openai", "rust",
]
TECH_PATTERN = re.compile(
    r"(?<![\w.])(?:" + "|".join(re.escape(k) for k in TECH_KEYWORDS) + r")(?![\w])",
    re.IGNORECASE,
)

TITLE_CLASS_HINTS = ("title", "event-title", "hackathon")


def _first_text(tree: HTMLParser, selector: str) -> str:
    node = tree.css_first(selector)
    if node is None:
        return ""
    return re.sub(r"\s+", " ", node.text(strip=True) or "").strip()


def extract_title(html: str) -> str:
    """First match of: hinted h1, <title>, first <h1>, og:title."""
    if not html:
        return ""
    try:
        tree = HTMLParser(html)
        for node in tree.css("h1[class]"):
            classes = str(node.attributes.get("class") or "").lower()
            if any(hint in classes for hint in TITLE_CLASS_HINTS):
                text = re.sub(r"\s+", " ", node.text(strip=True) or "").strip()
                if text:
                    return text[:MAX_TITLE_LENGTH]
        for selector in ("title", "h1"):
            text = _first_text(tree, selector)
            if text:
                return text[:MAX_TITLE_LENGTH]
        og = tree.css_first('meta[property="og:title"]')
        if og is not None:
            return str(og.attributes.get("content") or "").strip()[:MAX_TITLE_LENGTH]
    except Exception as exc:
        logger.debug("Title extraction failed: %s", exc)
    return ""


def _collect(patterns: List[Pattern[str]], text: str) -> List[str]:
    matches: List[str] = []
    for pattern in patterns:
        matches.extend(m.group(0) for m in pattern.finditer(text or ""))
    return dedupe_preserving_order(m.strip(" \t:-,") for m in matches)


def extract_dates(text: str) -> List[str]:
    return _collect(DATE_PATTERNS, text)


def extract_prizes(text: str) -> List[str]:
    return _collect(PRIZE_PATTERNS, text)


def extract_deadlines(text: str) -> List[str]:
    return _collect(DEADLINE_PATTERNS, text)


def extract_location(text: str) -> str:
    for pattern in LOCATION_PATTERNS:
        match = pattern.search(text or "")
        if match:
            value = match.group(1) if match.groups() else match.group(0)
            return value.strip()
    return ""


def extract_technologies(text: str) -> List[str]:
    return dedupe_preserving_order(m.group(0) for m in TECH_PATTERN.finditer(text or ""))


TEXT_EXTRACTORS: List[Tuple[str, Callable[[str], object]]] = [
    ("dates", extract_dates),
    ("prizes", extract_prizes),
    ("deadlines", extract_deadlines),
    ("location", extract_location),
    ("technologies", extract_technologies),
]


def extract_structured_info(html: str, text: str, fallback_title: Optional[str] = None) -> StructuredInfo:
    info = StructuredInfo(title=extract_title(html) or (fallback_title or ""))
    for field_name, extractor in TEXT_EXTRACTORS:
        try:
            setattr(info, field_name, extractor(text))
        except Exception as exc:
            logger.debug("Structured extractor %s failed: %s", field_name, exc)
    return info
