"""OpenWeather 5-day forecast client."""

from __future__ import annotations

import logging

import httpx

from steward.ports.integration_port import IntegrationError

logger = logging.getLogger(__name__)

FORECAST_URL = "https://api.openweathermap.org/data/2.5/forecast"
# Forecast entries are 3 hours apart
_ITEMS_PER_DAY = 8


class OpenWeatherClient:
    def __init__(self, http: httpx.AsyncClient, api_key: str) -> None:
        self._http = http
        self._api_key = api_key

    async def forecast(self, location: str, days: int) -> str:
        if not self._api_key:
            raise IntegrationError("OpenWeather not configured")

        response = await self._http.get(
            FORECAST_URL,
            params={"q": location, "appid": self._api_key, "units": "imperial"},
        )
        if response.status_code >= 400:
            raise IntegrationError(f"OpenWeather request failed ({response.status_code})")

        days = max(1, days)
        try:
            data = response.json()
            items = list(data.get("list") or [])[: days * _ITEMS_PER_DAY]
            city = (data.get("city") or {}).get("name") or location
        except (ValueError, AttributeError, TypeError) as exc:
            raise IntegrationError("OpenWeather returned a malformed response") from exc

        if not items:
            return f"No forecast available for {location}."

        lines = [f"Forecast for {city}:"]
        for item in items[::_ITEMS_PER_DAY][:days]:
            weather = item.get("weather") or [{}]
            desc = weather[0].get("description") or "conditions unavailable"
            day = str(item.get("dt_txt", "")).split(" ")[0]
            temp = round(float(item.get("main", {}).get("temp", 0)))
            lines.append(f"{day}: {temp}F, {desc}")
        return "\n".join(lines)
