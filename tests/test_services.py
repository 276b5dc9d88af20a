from datetime import date, datetime, time
from unittest.mock import AsyncMock

import httpx
import pytest
from freezegun import freeze_time

from crewflow import config
from crewflow.models import CleanerAssignment, Tenant
from crewflow.services import telegram_service, twilio_service, weather_service
from crewflow.services.credentials import decrypt_credential, encrypt_credential, try_decrypt
from crewflow.services.eligibility import NearestAvailableCleanerResolver, calculate_distance
from crewflow.services.notification_service import Notifier, notify_owner
from crewflow.services.weather_service import OpenWeatherClient, WeatherLookupError, parse_daily
from crewflow.shared.cron_security import constant_time_compare
from crewflow.shared.timeutils import format_date_human, local_to_utc, local_today, utcnow
from crewflow.shared.validators import to_e164, validate_us_phone

from .fakes import FakeNotifier

# 2025-03-10 12:00 UTC
MARCH_10_NOON = 1741608000


def _daily(pop=0.8, rain=5.08, wind=5.0, dt=MARCH_10_NOON):
    return {
        "dt": dt,
        "temp": {"max": 293.15, "min": 283.15},
        "humidity": 70,
        "pop": pop,
        "rain": rain,
        "wind_speed": wind,
        "weather": [{"main": "Rain", "description": "moderate rain"}],
    }


def mock_weather_transport(monkeypatch, handler):
    """Route the weather client's HTTP calls through handler"""
    real_client = httpx.AsyncClient
    monkeypatch.setattr(
        weather_service.httpx, "AsyncClient", lambda **kwargs: real_client(transport=httpx.MockTransport(handler))
    )


class TestWeather:
    def test_parse_daily_converts_units(self):
        forecast = parse_daily(_daily())

        assert forecast.date == date(2025, 3, 10)
        assert forecast.high_f == 68
        assert forecast.low_f == 50
        assert forecast.precipitation_chance == 80
        assert forecast.precipitation_amount == 0.2
        assert forecast.wind_speed_mph == 11
        assert forecast.is_rain_day is True
        assert forecast.summary == "Rain, High 68°F, 80% chance of rain"

    def test_light_drizzle_is_not_a_rain_day(self):
        forecast = parse_daily(_daily(pop=0.1, rain=1.0))
        assert forecast.is_rain_day is False

    def test_heavy_amount_alone_is_a_rain_day(self):
        assert parse_daily(_daily(pop=0.2, rain=5.0)).is_rain_day is True

    def test_high_wind_is_bad_weather(self):
        forecast = parse_daily(_daily(pop=0.0, rain=0, wind=15.0))
        assert forecast.is_rain_day is False
        assert forecast.is_bad_weather is True

    async def test_missing_api_key_raises(self, monkeypatch):
        monkeypatch.setattr(weather_service, "OPENWEATHER_API_KEY", None)
        with pytest.raises(WeatherLookupError):
            await weather_service.get_forecast_by_zip("90001")

    async def test_client_picks_requested_day(self, monkeypatch):
        async def fake_forecast(zip_code):
            return [parse_daily(_daily(pop=0.0, rain=0)), parse_daily(_daily(dt=MARCH_10_NOON + 86400))]

        monkeypatch.setattr(weather_service, "get_forecast_by_zip", fake_forecast)
        client = OpenWeatherClient()

        is_rain, forecast = await client.is_rain_day("90001", date(2025, 3, 11))
        assert is_rain is True
        assert forecast.date == date(2025, 3, 11)

        assert await client.is_rain_day("90001", date(2025, 3, 20)) == (False, None)

    @pytest.mark.parametrize(
        "geocode",
        [
            httpx.Response(200, json={"zip": "90001"}),
            httpx.Response(200, text="<html>maintenance</html>"),
        ],
    )
    async def test_malformed_geocode_raises_lookup_error(self, monkeypatch, geocode):
        monkeypatch.setattr(weather_service, "OPENWEATHER_API_KEY", "test-key")
        mock_weather_transport(monkeypatch, lambda request: geocode)

        with pytest.raises(WeatherLookupError):
            await weather_service.get_forecast_by_zip("90001")

    async def test_forecast_without_daily_list_raises_lookup_error(self, monkeypatch):
        monkeypatch.setattr(weather_service, "OPENWEATHER_API_KEY", "test-key")

        def handler(request):
            if "geo" in request.url.path:
                return httpx.Response(200, json={"lat": 34.05, "lon": -118.25})
            return httpx.Response(200, json=[])

        mock_weather_transport(monkeypatch, handler)

        with pytest.raises(WeatherLookupError):
            await weather_service.get_forecast_by_zip("90001")


class TestEligibility:
    def test_distance(self):
        assert calculate_distance(34.05, -118.25, 34.05, -118.25) == 0
        assert 340 < calculate_distance(34.05, -118.25, 37.77, -122.42) < 355

    def test_nearest_active_cleaner_with_capacity(self, db, make_cleaner, make_job):
        make_cleaner("Retired", lat=34.05, lng=-118.25, active=False)
        busy = make_cleaner("Busy", lat=34.051, lng=-118.25, max_jobs_per_day=1)
        near = make_cleaner("Near", lat=34.07, lng=-118.25)
        make_cleaner("Far", lat=34.5, lng=-118.25)

        other_job = make_job()
        db.add(CleanerAssignment(job_id=other_job.id, cleaner_id=busy.id, status="confirmed"))
        db.commit()
        job = make_job()

        candidate = NearestAvailableCleanerResolver().next_candidate(db, job, set())

        assert candidate.cleaner.id == near.id
        assert candidate.distance_miles == pytest.approx(1.38, abs=0.05)

    def test_exclusions_and_unknown_location_last(self, db, make_cleaner, make_job):
        nowhere = make_cleaner("Nowhere")
        near = make_cleaner("Near", lat=34.06, lng=-118.25)
        job = make_job()
        resolver = NearestAvailableCleanerResolver()

        assert resolver.next_candidate(db, job, set()).cleaner.id == near.id
        fallback = resolver.next_candidate(db, job, {near.id})
        assert fallback.cleaner.id == nowhere.id
        assert fallback.distance_miles is None
        assert resolver.next_candidate(db, job, {near.id, nowhere.id}) is None

    def test_candidate_subset(self, db, make_cleaner, make_job):
        make_cleaner("Near", lat=34.06, lng=-118.25)
        far = make_cleaner("Far", lat=34.5, lng=-118.25)
        job = make_job()

        candidate = NearestAvailableCleanerResolver().next_candidate(db, job, set(), candidate_ids=[far.id])
        assert candidate.cleaner.id == far.id


class TestOwnerNotification:
    async def test_chat_preferred(self, tenant):
        notifier = FakeNotifier()
        assert await notify_owner(notifier, tenant, "hello") == (True, None)
        assert notifier.chats[0]["chat_id"] == "owner-chat"
        assert notifier.sms == []

    async def test_no_contact_configured(self, db, monkeypatch):
        monkeypatch.setattr(config, "OWNER_PHONE", None)
        monkeypatch.setattr(config, "OWNER_TELEGRAM_CHAT_ID", None)
        tenant = Tenant(slug="quiet", name="Quiet Co")
        db.add(tenant)
        db.commit()

        ok, error = await notify_owner(FakeNotifier(), tenant, "hello")

        assert ok is False
        assert "No owner contact" in error


def test_credentials_round_trip():
    token = encrypt_credential("AC123secret")
    assert token != "AC123secret"
    assert decrypt_credential(token) == "AC123secret"


@pytest.mark.parametrize("value", [None, "", "not-a-fernet-token"])
def test_try_decrypt_rejects_bad_values(value):
    assert try_decrypt(value) is None


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("(555) 555-0122", "+15555550122"),
        ("1-555-555-0122", "+15555550122"),
        ("+44 20 7946 0958", "+44 20 7946 0958"),
        ("12345", None),
        (None, None),
    ],
)
def test_to_e164(raw, expected):
    assert to_e164(raw) == expected


def test_validate_us_phone_rejects_short_numbers():
    with pytest.raises(ValueError):
        validate_us_phone("555-0122")


def test_constant_time_compare():
    assert constant_time_compare("abc", "abc") is True
    assert constant_time_compare("abc", "abd") is False
    assert constant_time_compare("", "") is False


def test_time_helpers():
    assert format_date_human(date(2025, 3, 10)) == "Monday, March 10"
    assert format_date_human("2025-03-10T08:00:00") == "Monday, March 10"
    assert local_to_utc(date(2025, 1, 15), time(9), "America/Chicago") == datetime(2025, 1, 15, 15, 0)
    assert local_today(datetime(2025, 3, 9, 3, 0), "America/Los_Angeles") == date(2025, 3, 8)


class TestNotifier:
    async def test_sms_normalizes_number_before_sending(self, db, monkeypatch):
        send = AsyncMock(return_value=(True, None))
        monkeypatch.setattr(twilio_service, "send_sms", send)

        ok, error = await Notifier(db).send_sms("(555) 555-0111", "hi", message_type="test")

        assert (ok, error) == (True, None)
        assert send.await_args.kwargs["to_phone"] == "+15555550111"

    async def test_invalid_number_is_not_sent(self, db, monkeypatch):
        send = AsyncMock(return_value=(True, None))
        monkeypatch.setattr(twilio_service, "send_sms", send)

        assert await Notifier(db).send_sms("123", "hi") == (False, "Invalid phone number format")
        send.assert_not_awaited()

    async def test_provider_exception_becomes_failure(self, db, monkeypatch):
        monkeypatch.setattr(telegram_service, "send_message", AsyncMock(side_effect=RuntimeError("timeout")))

        assert await Notifier(db).send_chat("42", "hi") == (False, "timeout")

    async def test_call_without_number_is_refused(self, db):
        assert await Notifier(db).place_call(None) == (False, "Invalid phone number format")


@freeze_time("2025-03-08 18:00:00")
def test_utcnow_is_naive_utc():
    assert utcnow() == datetime(2025, 3, 8, 18, 0)
    assert utcnow().tzinfo is None
