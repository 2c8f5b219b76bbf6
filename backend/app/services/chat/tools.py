"""Chat tools: declarations sent to the model and their local implementations.

Every tool is a pure function over the already-retrieved context text.
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from app.services.llm.types import ToolCallRequest

logger = logging.getLogger(__name__)

EVENT_INFO_TYPES = ("rules", "timeline", "prizes", "participation", "judging", "all")
FOCUS_AREAS = ("registration", "submission", "teams", "technical", "all")

TOOL_DEFINITIONS: List[Dict[str, Any]] = [
    {
        "type": "function",
        "function": {
            "name": "get_event_info",
            "description": "Get detailed information about the event including rules, timeline, prizes, and participation details",
            "parameters": {
                "type": "object",
                "properties": {
                    "info_type": {
                        "type": "string",
                        "enum": list(EVENT_INFO_TYPES),
                        "description": "Type of information to retrieve",
                    }
                },
                "required": [],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "search_content",
            "description": "Search for specific content within the event information",
            "parameters": {
                "type": "object",
                "properties": {
                    "query": {
                        "type": "string",
                        "description": "Search query to find specific information",
                    }
                },
                "required": ["query"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "get_participation_guide",
            "description": "Get a step-by-step guide on how to participate in this event",
            "parameters": {
                "type": "object",
                "properties": {
                    "focus_area": {
                        "type": "string",
                        "enum": list(FOCUS_AREAS),
                        "description": "Specific area of participation to focus on",
                    }
                },
                "required": [],
            },
        },
    },
]


@dataclass(frozen=True)
class LineFilter:
    heading: str
    keywords: tuple = ()
    pattern: Optional[re.Pattern] = None
    empty_message: str = ""

    def matches(self, line: str) -> bool:
        lowered = line.lower()
        if self.pattern is not None and self.pattern.search(line):
            return True
        return any(keyword in lowered for keyword in self.keywords)

    def apply(self, text: str) -> str:
        lines = [line for line in text.split("\n") if line.strip() and self.matches(line)]
        if not lines:
            return self.empty_message
        return f"{self.heading}:\n\n" + "\n".join(lines)


_TIMELINE_PATTERN = re.compile(
    r"\b(?:jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec|january|february|march|april|june|"
    r"july|august|september|october|november|december|\d{1,2}/\d{1,2}/\d{4}|\d{4}-\d{2}-\d{2})\b",
    re.IGNORECASE,
)

EVENT_INFO_FILTERS: Dict[str, LineFilter] = {
    "rules": LineFilter(
        "Event Rules",
        ("rule", "guideline", "requirement", "criteria", "must", "should"),
        empty_message="No specific rules found in the event information.",
    ),
    "timeline": LineFilter(
        "Event Timeline",
        pattern=_TIMELINE_PATTERN,
        empty_message="No specific timeline found in the event information.",
    ),
    "prizes": LineFilter(
        "Prizes and Awards",
        ("prize", "award", "win", "reward", "cash", "money", "$"),
        empty_message="No specific prize information found in the event information.",
    ),
    "participation": LineFilter(
        "Participation Information",
        ("participate", "join", "enter", "register", "sign up", "who can"),
        empty_message="No specific participation information found in the event information.",
    ),
    "judging": LineFilter(
        "Judging Information",
        ("judge", "judging", "criteria", "evaluation", "score", "assessment"),
        empty_message="No specific judging information found in the event information.",
    ),
}

GUIDE_FILTERS: Dict[str, LineFilter] = {
    "registration": LineFilter(
        "Registration Guide",
        ("register", "registration", "sign up", "enroll"),
        empty_message="No specific registration information found. Please check the event website for registration details.",
    ),
    "submission": LineFilter(
        "Submission Guide",
        ("submit", "submission", "deadline", "deliverable"),
        empty_message="No specific submission information found. Please check the event website for submission guidelines.",
    ),
    "teams": LineFilter(
        "Team Information",
        ("team", "group", "collaborate", "member"),
        empty_message="No specific team information found. Please check the event website for team guidelines.",
    ),
    "technical": LineFilter(
        "Technical Information",
        ("technology", "tech stack", "api", "framework", "library", "tool"),
        empty_message="No specific technical information found. Please check the event website for technical requirements.",
    ),
}


# ---------------------------------------------------------------------------
# Tool call variants
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class GetEventInfoCall:
    call_id: str
    info_type: str = "all"


@dataclass(frozen=True)
class SearchContentCall:
    call_id: str
    query: str = ""


@dataclass(frozen=True)
class ParticipationGuideCall:
    call_id: str
    focus_area: str = "all"


@dataclass(frozen=True)
class UnknownToolCall:
    call_id: str
    name: str


ToolCall = Union[GetEventInfoCall, SearchContentCall, ParticipationGuideCall, UnknownToolCall]


@dataclass
class ToolResult:
    call_id: str
    output: str


def _parse_arguments(raw: str) -> Dict[str, Any]:
    try:
        parsed = json.loads(raw or "{}")
    except (TypeError, ValueError):
        logger.warning("Unparseable tool arguments: %r", raw)
        return {}
    return parsed if isinstance(parsed, dict) else {}


def parse_tool_call(request: ToolCallRequest) -> ToolCall:
    args = _parse_arguments(request.arguments)
    if request.name == "get_event_info":
        return GetEventInfoCall(request.id, str(args.get("info_type") or "all"))
    if request.name == "search_content":
        return SearchContentCall(request.id, str(args.get("query") or ""))
    if request.name == "get_participation_guide":
        return ParticipationGuideCall(request.id, str(args.get("focus_area") or "all"))
    return UnknownToolCall(request.id, request.name)


def get_event_info(context: List[str], info_type: str) -> str:
    text = "\n\n".join(context)
    line_filter = EVENT_INFO_FILTERS.get(info_type)
    if line_filter is None:
        return f"Event Information:\n\n{text}"
    return line_filter.apply(text)


def search_content(context: List[str], query: str) -> str:
    cleaned = query.strip()
    if not cleaned:
        return "Error: Search query is required"
    text = "\n\n".join(context)
    needle = cleaned.lower()
    matching = [line for line in text.split("\n") if needle in line.lower()]
    if not matching:
        return f'No specific information found for "{cleaned}". Here\'s the general event information:\n\n{text}'
    return f'Search results for "{cleaned}":\n\n' + "\n".join(matching)


def get_participation_guide(context: List[str], focus_area: str) -> str:
    text = "\n\n".join(context)
    line_filter = GUIDE_FILTERS.get(focus_area)
    if line_filter is None:
        return f"Complete Participation Guide:\n\n{text}"
    return line_filter.apply(text)


def run_tool(call: ToolCall, context: List[str]) -> ToolResult:
    if isinstance(call, GetEventInfoCall):
        output = get_event_info(context, call.info_type)
    elif isinstance(call, SearchContentCall):
        output = search_content(context, call.query)
    elif isinstance(call, ParticipationGuideCall):
        output = get_participation_guide(context, call.focus_area)
    else:
        output = f"Unknown tool: {call.name}"
    return ToolResult(call_id=call.call_id, output=output)
