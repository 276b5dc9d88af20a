"""
SMS and chat message templates
Plain text builders; senders live in notification_service
"""

from typing import Optional

from ..config import DEFAULT_BUSINESS_NAME, REVIEW_LINK


def business_name(tenant) -> str:
    if tenant is None:
        return DEFAULT_BUSINESS_NAME
    return tenant.business_name_short or tenant.name or DEFAULT_BUSINESS_NAME


def first_name(name: Optional[str], fallback: str = "there") -> str:
    if not name:
        return fallback
    return name.strip().split(" ")[0] or fallback


# Lead follow-up
def lead_first_text(name: Optional[str], business: str) -> str:
    return (
        f"Hi {first_name(name)}! Thanks for reaching out to {business}. "
        f"We'd love to get you a quote. When is a good time for a quick call?"
    )


def lead_nudge_text(name: Optional[str], business: str) -> str:
    return (
        f"Hi {first_name(name)}, just following up from {business}. "
        f"Reply here or give us a call and we'll get your cleaning booked."
    )


# Customer notices
def day_before_reminder(name: Optional[str], business: str, date_str: str, time_str: Optional[str]) -> str:
    at = f" at {time_str}" if time_str else ""
    return (
        f"Hi {first_name(name)}! Reminder: your {business} cleaning is tomorrow, {date_str}{at}. "
        f"Reply if you need to make any changes. See you soon!"
    )


def cleaner_assigned(
    name: Optional[str], cleaner_name: str, date_str: str, time_str: Optional[str], cleaner_phone: Optional[str]
) -> str:
    contact = f" Contact them at {cleaner_phone} if needed." if cleaner_phone else ""
    return (
        f"Hi {first_name(name)}! {cleaner_name} will be your cleaner on {date_str} "
        f"at {time_str or 'the scheduled time'}.{contact} See you soon!"
    )


def no_cleaners_available(name: Optional[str], date_str: str) -> str:
    return (
        f"Hi {first_name(name)}, we're sorry but we don't have availability for {date_str}. "
        f"Can we find you another date that works? Reply with your preferred times."
    )


def weather_reschedule(
    name: Optional[str], business: str, old_date: str, new_date: str, time_str: Optional[str]
) -> str:
    return (
        f"Hi {first_name(name)}! Due to weather conditions, your {business} cleaning originally "
        f"scheduled for {old_date} has been rescheduled to {new_date}. "
        f"Same time: {time_str or 'TBD'}. Reply with any questions!"
    )


def general_reschedule(
    name: Optional[str], business: str, old_date: str, new_date: str, time_str: Optional[str]
) -> str:
    return (
        f"Hi {first_name(name)}! Your {business} cleaning has moved from {old_date} to {new_date}. "
        f"Same time: {time_str or 'TBD'}. Reply with any questions!"
    )


def review_request(name: Optional[str], business: str) -> str:
    link = f" {REVIEW_LINK}" if REVIEW_LINK else ""
    return (
        f"Hi {first_name(name)}! Thanks for choosing {business} today. "
        f"How did we do? We'd really appreciate a quick review.{link}"
    )


# Crew messages
def job_offer(job, date_str: str) -> str:
    lines = [
        "<b>New job available</b>",
        f"Date: {date_str}",
        f"Time: {job.scheduled_at or 'TBD'}",
        f"Address: {job.address or 'TBD'}",
        f"Service: {job.service_type or 'Cleaning'}",
    ]
    if job.hours:
        lines.append(f"Est. hours: {job.hours:g}")
    lines.append("Reply ACCEPT or DECLINE.")
    return "\n".join(lines)


def urgent_offer_nudge(job, date_str: str) -> str:
    return (
        f"⏰ Still need an answer on the {date_str} job at {job.address or 'TBD'}. "
        f"Please reply ACCEPT or DECLINE."
    )


def cleaner_confirmed(job, date_str: str) -> str:
    return f"✅ You're confirmed for {date_str} at {job.scheduled_at or 'TBD'}: {job.address or 'TBD'}."


def cleaner_decline_ack() -> str:
    return "Got it, thanks for letting us know. We'll offer the job to someone else."


def crew_schedule_change(job, old_date: str, new_date: str, reason: str) -> str:
    because = " due to weather" if reason == "weather" else ""
    return (
        f"📅 Schedule change{because}: the job at {job.address or 'TBD'} moved from "
        f"{old_date} to {new_date}, same time {job.scheduled_at or 'TBD'}."
    )


def crew_job_reminder(job, reminder_type: str, date_str: str) -> str:
    if reminder_type == "one_hour":
        return f"⏰ Reminder: job starts in 1 hour at {job.address or 'TBD'} ({job.scheduled_at or 'TBD'})."
    return f"🚀 Your job at {job.address or 'TBD'} is starting now ({date_str})."


# Owner messages
def owner_escalation(job, date_str: str, reason: str, customer_name: Optional[str]) -> str:
    return (
        f"🚨 Action needed: job #{job.id} for {customer_name or 'a customer'} on {date_str} "
        f"has no cleaner. Reason: {reason}."
    )


def owner_rain_day_summary(affected_date: str, result) -> str:
    lines = [
        f"🌧️ Rain day: {affected_date}",
        f"Jobs affected: {result.jobs_affected}",
        f"Rescheduled: {result.jobs_rescheduled}",
        f"Customers notified: {result.notifications_sent}",
    ]
    if result.jobs_failed:
        lines.append(f"Failed: {', '.join(result.jobs_failed)}")
    for day, count in sorted(result.spread_summary.items()):
        lines.append(f"  {day}: {count} job(s)")
    return "\n".join(lines)
