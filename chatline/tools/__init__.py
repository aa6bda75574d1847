"""Tools package for Chatline."""

from chatline.tools.registry import Tool, ToolRegistry, ToolResult
from chatline.tools.date import DateTool
from chatline.tools.holidays import HolidayEvent, HolidayFeed, HolidaysTool, filter_holidays
from chatline.tools.weather import WeatherClient, WeatherTool


def create_default_registry() -> ToolRegistry:
    """Registry with the weather, date and holiday capabilities."""
    registry = ToolRegistry()
    registry.register(WeatherTool.from_config())
    registry.register(DateTool())
    registry.register(HolidaysTool.from_config())
    return registry


__all__ = [
    "Tool",
    "ToolRegistry",
    "ToolResult",
    "create_default_registry",
    "DateTool",
    "HolidayEvent",
    "HolidayFeed",
    "HolidaysTool",
    "filter_holidays",
    "WeatherClient",
    "WeatherTool",
]
