from datetime import date, datetime, time
import re

HH_MM_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def parse_time_str(t: str) -> time:
    return datetime.strptime(t, "%H:%M").time()


def validate_hhmm(value: str) -> str:
    """Return ``value`` unchanged if it is a 24h ``HH:MM`` string, else raise ValueError."""
    if not isinstance(value, str) or not HH_MM_PATTERN.match(value):
        raise ValueError(f"Invalid time '{value}'. Use HH:MM (24h)")
    return value


def minutes_of_day(t: str) -> int:
    parsed = parse_time_str(t)
    return parsed.hour * 60 + parsed.minute


def at_time(day: date, t: str) -> datetime:
    """Combine a calendar day with an HH:MM string into a naive datetime."""
    return datetime.combine(day, parse_time_str(t))
