"""Weather lookups against wttr.in's JSON format."""

import asyncio
import logging
import os
import random
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote

import aiohttp
from pydantic import ValidationError

from .constants import WEATHER_BASE_URL, WEATHER_REQUEST_TIMEOUT
from .livetypes import WeatherData, WeatherError, WttrResponse

logger = logging.getLogger(__name__)

KMH_PER_MS = 3.6

# Checked in order; first substring match wins
CONDITION_ICONS: list[tuple[tuple[str, ...], str]] = [
    (("sunny", "clear"), "01d"),
    (("cloudy",), "03d"),
    (("rain",), "10d"),
    (("snow",), "13d"),
    (("thunder",), "11d"),
    (("mist", "fog"), "50d"),
]
DEFAULT_ICON = "01d"


@dataclass(frozen=True)
class WeatherConfig:
    """Configuration for the weather endpoint."""

    base_url: str = WEATHER_BASE_URL
    request_timeout: float = WEATHER_REQUEST_TIMEOUT

    @classmethod
    def from_env(cls) -> "WeatherConfig":
        return cls(base_url=os.getenv("PET_WEATHER_URL", WEATHER_BASE_URL))


def icon_for_condition(condition: str) -> str:
    """Map a condition description to an icon code.

    Examples:
        >>> icon_for_condition("Light rain shower")
        '10d'
        >>> icon_for_condition("Haze")
        '01d'
    """
    lowered = condition.lower()
    for needles, icon in CONDITION_ICONS:
        if any(needle in lowered for needle in needles):
            return icon
    return DEFAULT_ICON


def parse_wttr(payload: dict) -> WeatherData:
    """Convert a wttr.in ``format=j1`` payload to WeatherData.

    Raises:
        WeatherError: If required fields are missing or malformed
    """
    try:
        data = WttrResponse.model_validate(payload)
    except ValidationError as e:
        raise WeatherError(f"Unexpected weather response: {e.error_count()} invalid fields") from e

    current = data.current_condition[0]
    nearest = data.nearest_area[0]
    condition = current.weatherDesc[0].value if current.weatherDesc else ""

    return WeatherData(
        temperature=current.temp_C,
        condition=condition,
        description=condition.lower(),
        city=nearest.areaName[0].value if nearest.areaName else "",
        country=nearest.country[0].value if nearest.country else "",
        humidity=current.humidity,
        wind_speed=current.windspeedKmph / KMH_PER_MS,
        icon=icon_for_condition(condition),
    )


def demo_weather(rng: Optional[random.Random] = None) -> WeatherData:
    """Plausible sample weather for demo mode."""
    rng = rng or random.Random()
    return WeatherData(
        temperature=rng.randint(15, 29),
        condition="Sunny",
        description="clear sky",
        city="Demo Location",
        country="Demo",
        humidity=rng.randint(50, 79),
        wind_speed=rng.uniform(2, 12),
        icon="01d",
    )


class WeatherClient:
    """Fetches current conditions from wttr.in."""

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        base_url: Optional[str] = None,
        config: Optional[WeatherConfig] = None,
    ):
        self.config = config or WeatherConfig()
        self.base_url = (base_url or self.config.base_url).rstrip("/")
        self._session = session
        self._owns_session = session is None

    async def by_coordinates(self, lat: float, lon: float) -> WeatherData:
        return await self._fetch(f"{lat},{lon}")

    async def by_city(self, name: str) -> WeatherData:
        if not name or not name.strip():
            raise WeatherError("City name is required")
        return await self._fetch(quote(name.strip(), safe=""))

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> "WeatherClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _fetch(self, location: str) -> WeatherData:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True

        url = f"{self.base_url}/{location}"
        logger.info(f"Fetching weather for {location}")
        try:
            async with self._session.get(
                url,
                params={"format": "j1"},
                timeout=aiohttp.ClientTimeout(total=self.config.request_timeout),
            ) as resp:
                if resp.status != 200:
                    raise WeatherError(f"Failed to fetch weather data: HTTP {resp.status}")
                payload = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.warning(f"Weather request failed: {e}")
            raise WeatherError("Failed to fetch weather data") from e

        if not isinstance(payload, dict):
            raise WeatherError("Unexpected weather response")
        return parse_wttr(payload)
