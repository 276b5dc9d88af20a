"""Hand-written stand-ins for the outbound adapters"""

from datetime import date
from typing import Optional

from crewflow.services.eligibility import Candidate
from crewflow.services.weather_service import WeatherLookupError


class FakeNotifier:
    """Records every send; individual channels or recipients can be made to fail"""

    def __init__(self):
        self.sms = []
        self.chats = []
        self.calls = []
        self.fail_sms = False
        self.fail_chat = False
        self.fail_calls = False
        self.failing_recipients = set()

    async def send_sms(self, to, body, message_type="general", tenant=None, entity_type=None, entity_id=None):
        if self.fail_sms or to in self.failing_recipients:
            return False, "sms failed"
        self.sms.append({"to": to, "body": body, "type": message_type, "entity_id": entity_id})
        return True, None

    async def send_chat(self, chat_id, body, message_type="general", tenant=None, entity_type=None, entity_id=None):
        if self.fail_chat or chat_id in self.failing_recipients:
            return False, "chat failed"
        self.chats.append({"chat_id": chat_id, "body": body, "type": message_type, "entity_id": entity_id})
        return True, None

    async def place_call(self, phone, name=None, context=None):
        if self.fail_calls:
            return False, "call failed"
        self.calls.append({"phone": phone, "name": name, "context": context})
        return True, None

    def sms_of_type(self, message_type):
        return [m for m in self.sms if m["type"] == message_type]

    def chats_of_type(self, message_type):
        return [m for m in self.chats if m["type"] == message_type]


class FakeForecast:
    def __init__(self, day: date, rain: bool):
        self.day = day
        self.rain = rain
        self.summary = "Rain, High 58°F, 80% chance of rain" if rain else "Clear, High 72°F"

    def to_dict(self):
        return {"date": self.day.isoformat(), "is_rain_day": self.rain, "summary": self.summary}


class FakeWeather:
    def __init__(self, rain: bool = True, error: Optional[str] = None):
        self.rain = rain
        self.error = error
        self.lookups = []

    async def is_rain_day(self, zip_code, day):
        self.lookups.append((zip_code, day))
        if self.error:
            raise WeatherLookupError(self.error)
        return self.rain, FakeForecast(day, self.rain)


class OrderedResolver:
    """Offers cleaners in a fixed order, honouring the exclusion set"""

    def __init__(self, cleaners):
        self.cleaners = list(cleaners)

    def next_candidate(self, db, job, excluded_ids, candidate_ids=None):
        for cleaner in self.cleaners:
            if cleaner.id in excluded_ids:
                continue
            if candidate_ids is not None and cleaner.id not in candidate_ids:
                continue
            return Candidate(cleaner=cleaner)
        return None
