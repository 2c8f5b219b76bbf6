"""Canned replies for events that have no indexed content yet."""

from typing import Optional

from app.models.event import EventStatus

CRAWLING_MESSAGE = """I'm still crawling and indexing the content for this event, so I don't have the details yet.

Ask me again soon. Once crawling completes I'll be able to answer with specifics from the event pages."""

PENDING_MESSAGE = """The crawl hasn't started yet for this event. It usually starts automatically; if it's taking too long, check the event URL or start the crawl again.

Until then I can only answer general questions, not specifics about this event."""

FAILED_MESSAGE = """Unfortunately, the crawl failed for this event. Possible causes:
- The URL is inaccessible or behind a login
- Network issues during crawling
- The page structure isn't compatible with the crawler

You can retry the crawl with the event URL, or ask me general questions in the meantime."""

NO_CONTENT_MESSAGE = """I couldn't find any indexed content for this event yet. The crawl may not have extracted readable text from the page, or it may still be processing.

Things to try:
- Check that the event URL is publicly accessible and not behind a login.
- Run the crawl again and make sure it completes.
- If the page is mostly images or scripts, I may not be able to read the details."""

_STATUS_MESSAGES = {
    EventStatus.crawling: CRAWLING_MESSAGE,
    EventStatus.pending: PENDING_MESSAGE,
    EventStatus.failed: FAILED_MESSAGE,
}


def status_message(status: Optional[EventStatus]) -> str:
    return _STATUS_MESSAGES.get(status, NO_CONTENT_MESSAGE)
