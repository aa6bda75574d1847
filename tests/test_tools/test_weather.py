import httpx
import pytest

from chatline.exceptions import ToolArgumentError, WeatherServiceError
from chatline.tools.weather import (
    NOT_CONFIGURED_MESSAGE,
    WeatherClient,
    WeatherTool,
    format_current_weather,
    format_forecast,
)

LOCATION = {
    "name": "Barcelona",
    "country": "Spain",
    "lat": 41.3833,
    "lon": 2.1833,
    "localtime": "2024-06-15 10:00",
}

CURRENT = {
    "location": LOCATION,
    "current": {
        "temp_c": 24.0,
        "temp_f": 75.2,
        "condition": {"text": "Sunny"},
        "wind_kph": 11.2,
        "wind_mph": 7.0,
        "wind_dir": "SE",
        "humidity": 60,
        "feelslike_c": 25.1,
        "feelslike_f": 77.2,
        "uv": 7.0,
        "vis_km": 10.0,
    },
}

FORECAST = {
    "location": LOCATION,
    "forecast": {
        "forecastday": [
            {
                "date": "2024-06-15",
                "day": {
                    "maxtemp_c": 27.0, "maxtemp_f": 80.6, "mintemp_c": 19.0, "mintemp_f": 66.2,
                    "condition": {"text": "Sunny"}, "maxwind_kph": 14.0, "maxwind_mph": 8.7,
                    "totalprecip_mm": 0.0, "totalprecip_in": 0.0,
                },
            },
            {
                "date": "2024-06-16",
                "day": {
                    "maxtemp_c": 26.0, "maxtemp_f": 78.8, "mintemp_c": 18.5, "mintemp_f": 65.3,
                    "condition": {"text": "Patchy rain"}, "maxwind_kph": 18.0, "maxwind_mph": 11.2,
                    "totalprecip_mm": 2.3, "totalprecip_in": 0.09,
                },
            },
        ]
    },
}


def _client(handler) -> WeatherClient:
    return WeatherClient(
        api_key="test-key",
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


def test_out_of_range_days_fall_back_to_default():
    client = WeatherClient(api_key="k")

    assert client.clamp_days(0) == 3
    assert client.clamp_days(15) == 3
    assert client.clamp_days(-2) == 3
    assert client.clamp_days(1) == 1
    assert client.clamp_days(14) == 14


def test_format_current_weather():
    text = format_current_weather(CURRENT)

    assert "**Barcelona, Spain**" in text
    assert "Coordinates: 41.38, 2.18" in text
    assert "**Temperature:** 24.0°C (75.2°F)" in text
    assert "**Conditions:** Sunny" in text
    assert "**Humidity:** 60%" in text


def test_format_forecast_labels_today_and_following_days():
    text = format_forecast(FORECAST)

    assert "**2-Day Weather Forecast:**" in text
    assert "**Today** (Saturday, June 15)" in text
    assert "**Sunday** (June 16)" in text
    assert "**Low:** 18.5°C (65.3°F)" in text
    assert "Patchy rain" in text


@pytest.mark.asyncio
async def test_forecast_request_clamps_days():
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json=FORECAST)

    client = _client(handler)
    text = await client.forecast("Barcelona", 30)
    await client.close()

    assert seen["path"].endswith("/forecast.json")
    assert seen["params"]["days"] == "3"
    assert seen["params"]["key"] == "test-key"
    assert seen["params"]["q"] == "Barcelona"
    assert "Weather Forecast" in text


@pytest.mark.asyncio
async def test_provider_error_message_is_surfaced():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": {"code": 1006, "message": "No matching location found."}})

    client = _client(handler)
    with pytest.raises(WeatherServiceError, match="weather API error: No matching location found."):
        await client.current("Atlantis")
    await client.close()


@pytest.mark.asyncio
async def test_unconfigured_tool_reports_configuration_problem():
    result = await WeatherTool(client=None).execute(location="Barcelona")

    assert not result.success
    assert result.as_text() == NOT_CONFIGURED_MESSAGE


@pytest.mark.asyncio
async def test_tool_uses_current_conditions_without_forecast_days():
    paths: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        return httpx.Response(200, json=CURRENT)

    tool = WeatherTool(client=_client(handler))
    result = await tool.execute(location="Barcelona", forecast_days=0)
    await tool.close()

    assert result.success
    assert paths[0].endswith("/current.json")


@pytest.mark.asyncio
async def test_tool_wraps_service_errors_as_text():
    tool = WeatherTool(client=_client(lambda request: httpx.Response(503, text="maintenance")))

    result = await tool.execute(location="Barcelona", forecast_days=2)
    await tool.close()

    assert not result.success
    assert result.as_text().startswith("Failed to get weather information: weather API returned status 503")


def test_tool_arguments_require_location():
    with pytest.raises(ToolArgumentError):
        WeatherTool(client=None).parse_arguments('{"forecast_days": 2}')
    assert WeatherTool(client=None).parse_arguments('{"location": "Paris"}') == {
        "location": "Paris",
        "forecast_days": None,
    }
