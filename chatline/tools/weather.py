"""Weather tool powered by WeatherAPI.com."""

import os
from datetime import date
from typing import Any

import httpx
from pydantic import BaseModel

from chatline.config import get_config
from chatline.exceptions import WeatherServiceError
from chatline.logging import get_logger
from chatline.tools.registry import Tool, ToolResult

log = get_logger(__name__)

NOT_CONFIGURED_MESSAGE = (
    "Weather service is not configured. Please set WEATHER_API_KEY environment variable."
)


class WeatherClient:
    """Thin async client for the WeatherAPI.com current/forecast endpoints."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "http://api.weatherapi.com/v1",
        timeout: float = 10.0,
        default_forecast_days: int = 3,
        max_forecast_days: int = 14,
        client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.default_forecast_days = default_forecast_days
        self.max_forecast_days = max_forecast_days
        self.client = client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)

    def clamp_days(self, days: int) -> int:
        """Out-of-range requests fall back to the default forecast length."""
        if days < 1 or days > self.max_forecast_days:
            return self.default_forecast_days
        return days

    async def _get(self, endpoint: str, params: dict[str, Any]) -> dict[str, Any]:
        query = {"key": self.api_key, "aqi": "no", **params}
        try:
            response = await self.client.get(f"{self.base_url}/{endpoint}", params=query)
        except httpx.HTTPError as e:
            raise WeatherServiceError(f"failed to make request: {e}")

        if response.status_code != 200:
            message = ""
            try:
                message = str((response.json().get("error") or {}).get("message") or "")
            except ValueError:
                message = ""
            if message:
                raise WeatherServiceError(f"weather API error: {message}")
            raise WeatherServiceError(
                f"weather API returned status {response.status_code}: {response.text}"
            )

        try:
            return response.json()
        except ValueError as e:
            raise WeatherServiceError(f"failed to parse weather response: {e}")

    async def current(self, location: str) -> str:
        """Current conditions for a location, formatted for the model."""
        data = await self._get("current.json", {"q": location})
        return format_current_weather(data)

    async def forecast(self, location: str, days: int) -> str:
        """Multi-day forecast for a location, formatted for the model."""
        data = await self._get(
            "forecast.json",
            {"q": location, "days": self.clamp_days(days), "alerts": "no"},
        )
        return format_forecast(data)

    async def close(self) -> None:
        await self.client.aclose()


def _location_header(location: dict[str, Any]) -> list[str]:
    return [
        f"**{location.get('name', '')}, {location.get('country', '')}**",
        f"Coordinates: {float(location.get('lat', 0)):.2f}, {float(location.get('lon', 0)):.2f}",
        f"Local Time: {location.get('localtime', '')}",
        "",
    ]


def format_current_weather(data: dict[str, Any]) -> str:
    """Render a current.json payload as readable text."""
    current = data.get("current") or {}
    condition = (current.get("condition") or {}).get("text", "")
    lines = _location_header(data.get("location") or {})
    lines += [
        "**Current Weather Conditions:**",
        f"**Temperature:** {current.get('temp_c', 0):.1f}°C ({current.get('temp_f', 0):.1f}°F)",
        f"**Conditions:** {condition}",
        (
            f"**Wind:** {current.get('wind_kph', 0):.1f} km/h "
            f"({current.get('wind_mph', 0):.1f} mph) {current.get('wind_dir', '')}"
        ),
        f"**Humidity:** {current.get('humidity', 0)}%",
        (
            f"**Feels Like:** {current.get('feelslike_c', 0):.1f}°C "
            f"({current.get('feelslike_f', 0):.1f}°F)"
        ),
        f"**UV Index:** {current.get('uv', 0):.1f}",
        f"**Visibility:** {current.get('vis_km', 0):.1f} km",
    ]
    return "\n".join(lines) + "\n"


def format_forecast(data: dict[str, Any]) -> str:
    """Render a forecast.json payload as readable text."""
    days = (data.get("forecast") or {}).get("forecastday") or []
    lines = _location_header(data.get("location") or {})
    lines += [f"**{len(days)}-Day Weather Forecast:**", ""]

    for idx, entry in enumerate(days):
        day = entry.get("day") or {}
        try:
            when = date.fromisoformat(str(entry.get("date", "")))
            label = f"{when:%A}, {when:%B} {when.day}" if idx == 0 else f"{when:%A}"
            detail = f"{when:%B} {when.day}"
        except ValueError:
            label = detail = str(entry.get("date", ""))

        if idx == 0:
            lines.append(f"**Today** ({label})")
        else:
            lines.append(f"**{label}** ({detail})")
        lines += [
            (
                f"   **High:** {day.get('maxtemp_c', 0):.1f}°C ({day.get('maxtemp_f', 0):.1f}°F) | "
                f"**Low:** {day.get('mintemp_c', 0):.1f}°C ({day.get('mintemp_f', 0):.1f}°F)"
            ),
            f"   **Conditions:** {(day.get('condition') or {}).get('text', '')}",
            (
                f"   **Wind:** {day.get('maxwind_kph', 0):.1f} km/h "
                f"({day.get('maxwind_mph', 0):.1f} mph)"
            ),
            (
                f"   **Precipitation:** {day.get('totalprecip_mm', 0):.1f} mm "
                f"({day.get('totalprecip_in', 0):.1f} in)"
            ),
            "",
        ]
    return "\n".join(lines) + "\n"


class WeatherArguments(BaseModel):
    location: str
    forecast_days: int | None = None


class WeatherTool(Tool):
    """Current weather and forecasts for a location."""

    name = "get_weather"
    description = (
        "ALWAYS use this function when users ask about weather, temperature, forecast, "
        "or climate conditions. Do NOT generate weather information from training data. "
        "This function provides real-time weather data from WeatherAPI."
    )
    parameters = {
        "type": "object",
        "properties": {
            "location": {
                "type": "string",
                "description": (
                    "City name, coordinates, or location query "
                    "(e.g., 'Barcelona', 'London,UK', '40.7128,-74.0060')"
                ),
            },
            "forecast_days": {
                "type": "integer",
                "description": "Number of forecast days (1-14). If not provided, returns only current weather.",
            },
        },
        "required": ["location"],
    }
    arguments_model = WeatherArguments

    def __init__(self, client: WeatherClient | None = None):
        self.client = client

    @classmethod
    def from_config(cls) -> "WeatherTool":
        """Build the tool from config; no API key leaves it unconfigured."""
        cfg = get_config().weather
        api_key = cfg.api_key.strip() or os.environ.get("WEATHER_API_KEY", "").strip()
        if not api_key:
            log.warning("Weather service is NOT configured - WEATHER_API_KEY may not be set")
            return cls(client=None)
        return cls(
            client=WeatherClient(
                api_key=api_key,
                base_url=cfg.base_url,
                timeout=cfg.timeout,
                default_forecast_days=cfg.default_forecast_days,
                max_forecast_days=cfg.max_forecast_days,
            )
        )

    async def execute(self, location: str, forecast_days: int | None = None, **kwargs: Any) -> ToolResult:
        if self.client is None:
            return ToolResult(success=False, error=NOT_CONFIGURED_MESSAGE)

        try:
            if forecast_days is not None and forecast_days > 0:
                text = await self.client.forecast(location, forecast_days)
            else:
                text = await self.client.current(location)
        except WeatherServiceError as e:
            log.error("Weather lookup failed", location=location, error=str(e))
            return ToolResult(success=False, error=f"Failed to get weather information: {e}")
        return ToolResult(success=True, content=text)

    async def close(self) -> None:
        if self.client is not None:
            await self.client.close()
