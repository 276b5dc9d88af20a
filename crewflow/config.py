import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

# Local SQLite fallback so the worker and tests can import without Postgres
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./crewflow.db")

# Security - CRITICAL: No default secret key in production
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

# Bearer token external cron triggers must present (unset = open in development)
CRON_SECRET = os.getenv("CRON_SECRET")
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")

# Twilio SMS (global fallback when a tenant has no credentials of its own)
TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID")
TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN")
TWILIO_FROM_NUMBER = os.getenv("TWILIO_FROM_NUMBER")
TWILIO_MESSAGING_SERVICE_SID = os.getenv("TWILIO_MESSAGING_SERVICE_SID")

# Telegram bot used for crew and owner chat messages
TELEGRAM_BOT_TOKEN = os.getenv("TELEGRAM_BOT_TOKEN")

# VAPI outbound voice calls (lead follow-up call stages)
VAPI_API_KEY = os.getenv("VAPI_API_KEY")
VAPI_ASSISTANT_ID = os.getenv("VAPI_ASSISTANT_ID")
VAPI_PHONE_ID = os.getenv("VAPI_PHONE_ID")

# OpenWeather (rain day detection)
OPENWEATHER_API_KEY = os.getenv("OPENWEATHER_API_KEY")
SERVICE_AREA_ZIP = os.getenv("SERVICE_AREA_ZIP", "90001")
RAIN_PRECIPITATION_CHANCE = int(os.getenv("RAIN_PRECIPITATION_CHANCE", "50"))  # percent
RAIN_PRECIPITATION_AMOUNT = float(os.getenv("RAIN_PRECIPITATION_AMOUNT", "0.1"))  # inches

# Business defaults
DEFAULT_TIMEZONE = os.getenv("DEFAULT_TIMEZONE", "America/Los_Angeles")
DEFAULT_BUSINESS_NAME = os.getenv("DEFAULT_BUSINESS_NAME", "Our team")
OWNER_PHONE = os.getenv("OWNER_PHONE")
OWNER_TELEGRAM_CHAT_ID = os.getenv("OWNER_TELEGRAM_CHAT_ID")
REVIEW_LINK = os.getenv("REVIEW_LINK", "")

# Scheduler tuning
TASK_MAX_ATTEMPTS = int(os.getenv("TASK_MAX_ATTEMPTS", "3"))
TASK_POLL_LIMIT = int(os.getenv("TASK_POLL_LIMIT", "50"))
# 0 keeps the original due time on retry (task is picked up by the next poll)
TASK_RETRY_BACKOFF_SECONDS = int(os.getenv("TASK_RETRY_BACKOFF_SECONDS", "0"))
STALE_TASK_MINUTES = int(os.getenv("STALE_TASK_MINUTES", "15"))
TASK_POLL_INTERVAL_SECONDS = int(os.getenv("TASK_POLL_INTERVAL_SECONDS", "60"))

# Follow-up sequencing
DOUBLE_CALL_GAP_SECONDS = float(os.getenv("DOUBLE_CALL_GAP_SECONDS", "30"))
DAY_BEFORE_REMINDER_HOUR = int(os.getenv("DAY_BEFORE_REMINDER_HOUR", "16"))
POST_SERVICE_FOLLOWUP_DELAY_HOURS = int(os.getenv("POST_SERVICE_FOLLOWUP_DELAY_HOURS", "2"))

# Rain day automation
RAIN_DAY_CHECK_HOUR = int(os.getenv("RAIN_DAY_CHECK_HOUR", "1"))  # UTC hour for the daily check
RAIN_DAY_SPREAD_DAYS = int(os.getenv("RAIN_DAY_SPREAD_DAYS", "14"))
RAIN_DAY_TENANT_ID = os.getenv("RAIN_DAY_TENANT_ID")
