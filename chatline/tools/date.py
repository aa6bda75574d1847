"""Current date/time tool."""

from collections.abc import Callable
from datetime import datetime
from typing import Any

from chatline.tools.registry import Tool, ToolResult


def _local_now() -> datetime:
    return datetime.now().astimezone()


class DateTool(Tool):
    """Report the current instant as an RFC 3339 timestamp."""

    name = "get_today_date"
    description = "Get today's date and time in RFC3339 format"

    def __init__(self, clock: Callable[[], datetime] = _local_now):
        self._clock = clock

    async def execute(self, **kwargs: Any) -> ToolResult:
        return ToolResult(success=True, content=self._clock().isoformat(timespec="seconds"))
