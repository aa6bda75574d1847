from datetime import date, datetime, timezone

import httpx
import pytest

from chatline.exceptions import HolidayFeedError
from chatline.tools.holidays import (
    HolidayEvent,
    HolidayFeed,
    HolidaysTool,
    filter_holidays,
    parse_calendar,
)

CALENDAR = """BEGIN:VCALENDAR\r
VERSION:2.0\r
PRODID:-//Test//Holidays//EN\r
BEGIN:VEVENT\r
DTSTART;VALUE=DATE:20240101\r
SUMMARY:New Year's Day\r
END:VEVENT\r
BEGIN:VEVENT\r
DTSTART;VALUE=DATE:20240615\r
SUMMARY:Midsummer\r
 Festival\r
END:VEVENT\r
BEGIN:VEVENT\r
SUMMARY:No start date\r
END:VEVENT\r
BEGIN:VEVENT\r
DTSTART;VALUE=DATE:20241225\r
SUMMARY:Christmas Day\\, observed\r
END:VEVENT\r
END:VCALENDAR\r
"""


def _events() -> list[HolidayEvent]:
    return [
        HolidayEvent(date(2024, 1, 1), "New Year's Day"),
        HolidayEvent(date(2024, 6, 15), "Midsummer"),
        HolidayEvent(date(2024, 12, 25), "Christmas Day"),
    ]


def test_parse_calendar_reads_events_in_feed_order():
    events = parse_calendar(CALENDAR)

    assert [e.date for e in events] == [date(2024, 1, 1), date(2024, 6, 15), date(2024, 12, 25)]
    assert events[1].name == "MidsummerFestival"
    assert events[2].name == "Christmas Day, observed"


def test_parse_calendar_decodes_escaped_backslash():
    text = (
        "BEGIN:VCALENDAR\r\nVERSION:2.0\r\nBEGIN:VEVENT\r\n"
        "DTSTART;VALUE=DATE:20240501\r\nSUMMARY:a\\\\nb\r\n"
        "END:VEVENT\r\nEND:VCALENDAR\r\n"
    )

    events = parse_calendar(text)

    assert events == [HolidayEvent(date(2024, 5, 1), "a\\nb")]


def test_parse_calendar_rejects_non_calendar_text():
    with pytest.raises(HolidayFeedError):
        parse_calendar("<html>not a calendar</html>")


def test_filter_after_date_with_max_count():
    lines = filter_holidays(_events(), after_date=datetime(2024, 2, 1), max_count=1)

    assert lines == ["2024-06-15: Midsummer"]


def test_filter_before_date_is_inclusive():
    lines = filter_holidays(_events(), before_date=datetime(2024, 6, 15))

    assert lines == ["2024-01-01: New Year's Day", "2024-06-15: Midsummer"]


def test_filter_with_aware_bounds():
    after = datetime(2024, 6, 1, tzinfo=timezone.utc)
    before = datetime(2024, 12, 31, tzinfo=timezone.utc)

    assert filter_holidays(_events(), before_date=before, after_date=after) == [
        "2024-06-15: Midsummer",
        "2024-12-25: Christmas Day",
    ]


def test_filter_without_bounds_returns_everything():
    assert len(filter_holidays(_events(), max_count=0)) == 3


class StaticFeed:
    url = "memory://holidays"

    def __init__(self, events=None, error=None):
        self.events = events or []
        self.error = error

    async def load_events(self):
        if self.error:
            raise self.error
        return self.events

    async def close(self) -> None:
        return None


@pytest.mark.asyncio
async def test_holidays_tool_parses_rfc3339_arguments():
    tool = HolidaysTool(StaticFeed(_events()))

    args = tool.parse_arguments('{"after_date": "2024-02-01T00:00:00Z", "max_count": 1}')
    result = await tool.execute(**args)

    assert result.success
    assert result.content == "2024-06-15: Midsummer"


@pytest.mark.asyncio
async def test_holidays_tool_reports_feed_failure_as_text():
    tool = HolidaysTool(StaticFeed(error=HolidayFeedError("unreachable")))

    result = await tool.execute()

    assert not result.success
    assert result.as_text() == "failed to load holiday events"


@pytest.mark.asyncio
async def test_holiday_feed_fetches_and_parses():
    client = httpx.AsyncClient(
        transport=httpx.MockTransport(lambda request: httpx.Response(200, text=CALENDAR))
    )
    feed = HolidayFeed("https://example.com/holidays.ics", client=client)

    events = await feed.load_events()
    await feed.close()

    assert len(events) == 3


def test_from_config_uses_environment_link(monkeypatch):
    monkeypatch.setenv("HOLIDAY_CALENDAR_LINK", "https://example.com/custom.ics")

    tool = HolidaysTool.from_config()

    assert tool.feed.url == "https://example.com/custom.ics"
