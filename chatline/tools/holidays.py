"""Holiday calendar tool backed by an iCalendar feed."""

import os
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Any

import httpx
from icalendar import Calendar
from pydantic import BaseModel, field_validator

from chatline.config import get_config
from chatline.exceptions import HolidayFeedError
from chatline.logging import get_logger
from chatline.tools.registry import Tool, ToolResult

log = get_logger(__name__)

DEFAULT_CALENDAR_URL = "https://www.officeholidays.com/ics/spain/catalonia"


@dataclass(frozen=True)
class HolidayEvent:
    """One all-day calendar entry."""

    date: date
    name: str

    def as_line(self) -> str:
        return f"{self.date.isoformat()}: {self.name}"


def _start_date(value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return None


def parse_calendar(text: str) -> list[HolidayEvent]:
    """Extract VEVENT start dates and summaries, in feed order.

    Events without a start date are skipped.

    Raises:
        HolidayFeedError if the text is not a valid iCalendar document
    """
    try:
        calendar = Calendar.from_ical(text)
    except ValueError as e:
        raise HolidayFeedError(f"invalid calendar data: {e}") from e

    events: list[HolidayEvent] = []
    for component in calendar.walk("VEVENT"):
        start = component.get("DTSTART")
        if start is None:
            continue
        start_date = _start_date(start.dt)
        if start_date is None:
            continue
        summary = str(component.get("SUMMARY", ""))
        events.append(HolidayEvent(date=start_date, name=summary.replace("\n", " ").strip()))
    return events


def _event_start(event: HolidayEvent, reference: datetime) -> datetime:
    start = datetime.combine(event.date, time.min)
    if reference.tzinfo is not None:
        start = start.replace(tzinfo=reference.tzinfo)
    return start


def filter_holidays(
    events: Iterable[HolidayEvent],
    before_date: datetime | None = None,
    after_date: datetime | None = None,
    max_count: int | None = None,
) -> list[str]:
    """Select events not after ``before_date`` and not before ``after_date``.

    Feed order is preserved and the output is truncated at ``max_count``
    when it is positive.
    """
    lines: list[str] = []
    for event in events:
        if max_count and max_count > 0 and len(lines) >= max_count:
            break
        if before_date is not None and _event_start(event, before_date) > before_date:
            continue
        if after_date is not None and _event_start(event, after_date) < after_date:
            continue
        lines.append(event.as_line())
    return lines


class HolidayFeed:
    """Loads holiday events from an iCalendar URL."""

    def __init__(self, url: str, timeout: float = 10.0, client: httpx.AsyncClient | None = None):
        self.url = url
        self.client = client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)

    async def load_events(self) -> list[HolidayEvent]:
        try:
            response = await self.client.get(self.url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise HolidayFeedError(f"failed to fetch calendar {self.url}: {e}")
        return parse_calendar(response.text)

    async def close(self) -> None:
        await self.client.aclose()


class HolidaysArguments(BaseModel):
    before_date: datetime | None = None
    after_date: datetime | None = None
    max_count: int | None = None

    @field_validator("before_date", "after_date", mode="before")
    @classmethod
    def _parse_timestamp(cls, value: Any) -> Any:
        if isinstance(value, str):
            cleaned = value.strip()
            if not cleaned:
                return None
            return datetime.fromisoformat(cleaned)
        return value


class HolidaysTool(Tool):
    """Local bank and public holidays from the configured calendar feed."""

    name = "get_holidays"
    description = (
        "Gets local bank and public holidays. Each line is a single holiday "
        "in the format 'YYYY-MM-DD: Holiday Name'."
    )
    parameters = {
        "type": "object",
        "properties": {
            "before_date": {
                "type": "string",
                "description": (
                    "Optional date in RFC3339 format to get holidays before this date. "
                    "If not provided, all holidays will be returned."
                ),
            },
            "after_date": {
                "type": "string",
                "description": (
                    "Optional date in RFC3339 format to get holidays after this date. "
                    "If not provided, all holidays will be returned."
                ),
            },
            "max_count": {
                "type": "integer",
                "description": (
                    "Optional maximum number of holidays to return. "
                    "If not provided, all holidays will be returned."
                ),
            },
        },
    }
    arguments_model = HolidaysArguments

    def __init__(self, feed: HolidayFeed):
        self.feed = feed

    @classmethod
    def from_config(cls) -> "HolidaysTool":
        cfg = get_config().holidays
        url = (
            cfg.calendar_url.strip()
            or os.environ.get("HOLIDAY_CALENDAR_LINK", "").strip()
            or DEFAULT_CALENDAR_URL
        )
        return cls(HolidayFeed(url, timeout=cfg.timeout))

    async def execute(
        self,
        before_date: datetime | None = None,
        after_date: datetime | None = None,
        max_count: int | None = None,
        **kwargs: Any,
    ) -> ToolResult:
        try:
            events = await self.feed.load_events()
        except HolidayFeedError as e:
            log.error("Holiday feed failed", url=self.feed.url, error=str(e))
            return ToolResult(success=False, error="failed to load holiday events")

        lines = filter_holidays(events, before_date=before_date, after_date=after_date, max_count=max_count)
        return ToolResult(success=True, content="\n".join(lines))

    async def close(self) -> None:
        await self.feed.close()
