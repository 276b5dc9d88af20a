"""
Weather Service
OpenWeather forecast lookups for rain day detection
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Optional

import httpx

from ..config import OPENWEATHER_API_KEY, RAIN_PRECIPITATION_AMOUNT, RAIN_PRECIPITATION_CHANCE

logger = logging.getLogger(__name__)

GEOCODE_URL = "https://api.openweathermap.org/geo/1.0/zip"
ONECALL_URL = "https://api.openweathermap.org/data/3.0/onecall"
MM_PER_INCH = 25.4
BAD_WEATHER_WIND_MPH = 25


class WeatherLookupError(Exception):
    """Forecast could not be fetched or parsed"""


@dataclass
class DailyForecast:
    date: date
    high_f: int
    low_f: int
    humidity: int
    precipitation_chance: int  # percent
    precipitation_amount: float  # inches
    wind_speed_mph: int
    conditions: str
    description: str

    @property
    def is_rain_day(self) -> bool:
        return (
            self.precipitation_chance >= RAIN_PRECIPITATION_CHANCE
            or self.precipitation_amount >= RAIN_PRECIPITATION_AMOUNT
        )

    @property
    def is_bad_weather(self) -> bool:
        return self.is_rain_day or self.wind_speed_mph >= BAD_WEATHER_WIND_MPH

    @property
    def summary(self) -> str:
        parts = [self.conditions, f"High {self.high_f}°F"]
        if self.precipitation_chance >= 30:
            parts.append(f"{self.precipitation_chance}% chance of rain")
        if self.wind_speed_mph >= 15:
            parts.append(f"Wind {self.wind_speed_mph} mph")
        return ", ".join(parts)

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "high": self.high_f,
            "low": self.low_f,
            "precipitation_chance": self.precipitation_chance,
            "precipitation_amount": self.precipitation_amount,
            "wind_speed": self.wind_speed_mph,
            "conditions": self.conditions,
            "is_rain_day": self.is_rain_day,
            "summary": self.summary,
        }


def kelvin_to_fahrenheit(kelvin: float) -> int:
    return round((kelvin - 273.15) * 9 / 5 + 32)


def meters_per_sec_to_mph(mps: float) -> int:
    return round(mps * 2.237)


def parse_daily(entry: dict) -> DailyForecast:
    weather = (entry.get("weather") or [{}])[0]
    precip_mm = (entry.get("rain") or 0) + (entry.get("snow") or 0)
    return DailyForecast(
        date=datetime.fromtimestamp(entry["dt"], tz=timezone.utc).date(),
        high_f=kelvin_to_fahrenheit(entry["temp"]["max"]),
        low_f=kelvin_to_fahrenheit(entry["temp"]["min"]),
        humidity=entry.get("humidity", 0),
        precipitation_chance=round((entry.get("pop") or 0) * 100),
        precipitation_amount=round(precip_mm / MM_PER_INCH, 2),
        wind_speed_mph=meters_per_sec_to_mph(entry.get("wind_speed", 0)),
        conditions=weather.get("main", "Unknown"),
        description=weather.get("description", ""),
    )


async def get_forecast_by_zip(zip_code: str) -> list[DailyForecast]:
    """Daily forecast for a US ZIP code"""
    if not OPENWEATHER_API_KEY:
        raise WeatherLookupError("OPENWEATHER_API_KEY not configured")

    try:
        async with httpx.AsyncClient() as client:
            geo = await client.get(
                GEOCODE_URL, params={"zip": f"{zip_code},US", "appid": OPENWEATHER_API_KEY}, timeout=10.0
            )
            if geo.status_code != 200:
                raise WeatherLookupError(f"Failed to geocode ZIP {zip_code}: {geo.status_code}")
            location = geo.json()

            response = await client.get(
                ONECALL_URL,
                params={
                    "lat": location["lat"],
                    "lon": location["lon"],
                    "exclude": "minutely,hourly,alerts",
                    "appid": OPENWEATHER_API_KEY,
                },
                timeout=10.0,
            )
            if response.status_code != 200:
                raise WeatherLookupError(f"Failed to fetch weather: {response.status_code}")
            data = response.json()
    except httpx.HTTPError as e:
        raise WeatherLookupError(str(e)) from e
    except (KeyError, TypeError, ValueError) as e:
        raise WeatherLookupError(f"Unexpected weather response for ZIP {zip_code}: {e}") from e

    try:
        return [parse_daily(entry) for entry in data.get("daily", [])]
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise WeatherLookupError(f"Unexpected forecast payload: {e}") from e


class OpenWeatherClient:
    """Weather lookup used by the rain day check"""

    async def is_rain_day(self, zip_code: str, day: date) -> tuple[bool, Optional[DailyForecast]]:
        forecast = await get_forecast_by_zip(zip_code)
        for entry in forecast:
            if entry.date == day:
                logger.info(f"🌦️ Forecast for {day} ({zip_code}): {entry.summary}")
                return entry.is_rain_day, entry
        logger.warning(f"⚠️ No forecast entry for {day} ({zip_code})")
        return False, None
