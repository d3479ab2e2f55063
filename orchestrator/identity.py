"""
Interview Dispatch: Identity & validation helpers
Date parsing, email/URL checks, idempotency keys and turnaround time.

Idempotency key = SHA-256(source_identifier | round_name | candidate_email).
The source identifier is derived from row content and row position only,
so re-running the same input always produces the same keys.
"""
import hashlib
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional
from urllib.parse import urlparse
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dateutil import parser as date_parser

from orchestrator.models import InputRow

logger = logging.getLogger("dispatch.identity")

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_DAY_MON_TIME_RE = re.compile(r"(\d{1,2})\s+([A-Za-z]{3})\s+(\d{1,2}):(\d{2})(?:\s*([ap]m)\b)?", re.IGNORECASE)
# Fuzzy parsing only runs when the text carries a time, a numeric date or a month name
_DATE_HINT_RE = re.compile(
    r"\d{1,2}:\d{2}|\d{1,4}[/.-]\d{1,2}|\b(?:jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)[a-z]*\b",
    re.IGNORECASE,
)
_MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}

DEFAULT_ALLOWED_DOMAINS = ("calendly.com", "cal.com", "forms.gle")

# Zone abbreviations dateutil does not resolve on its own. IST is India Standard
# Time and CST is US Central; the standard/daylight pairs are fixed offsets.
ZONE_ABBREVIATIONS = {
    "IST": ZoneInfo("Asia/Kolkata"),
    "UTC": ZoneInfo("UTC"),
    "GMT": ZoneInfo("UTC"),
    "EST": -5 * 3600,
    "EDT": -4 * 3600,
    "CST": -6 * 3600,
    "CDT": -5 * 3600,
    "MST": -7 * 3600,
    "MDT": -6 * 3600,
    "PST": -8 * 3600,
    "PDT": -7 * 3600,
    "CET": 1 * 3600,
    "CEST": 2 * 3600,
    "SGT": 8 * 3600,
    "JST": 9 * 3600,
}


# -------------------------------------------------------
# Dates
# -------------------------------------------------------

def resolve_timezone(name: str) -> ZoneInfo:
    """ZoneInfo for `name`, falling back to UTC if the name is unknown."""
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone '{name}', falling back to UTC")
        return ZoneInfo("UTC")


def parse_added_on(raw: Optional[str], timezone_name: str = "Asia/Kolkata",
                   now: Optional[datetime] = None) -> Optional[datetime]:
    """
    Parse a human-entered "Added On" value into an aware datetime.
    Handles e.g. "03 Nov 6:15", "3/11/2025 06:15 AM", "2025-11-03 06:15",
    "03 Nov 6:15 pm (IST)".

    Strategy:
      1. dateutil's parser, strict first and then fuzzy (surrounding words
         ignored) when the text looks like it holds a date or time. A missing
         year becomes the current year; zone abbreviations in ZONE_ABBREVIATIONS
         are honoured; values without a zone are read in `timezone_name`.
      2. "DD Mon HH:MM [am|pm]" match anywhere in the string, current year.
    Returns None if neither works.
    """
    if not raw or not raw.strip():
        return None

    tz = resolve_timezone(timezone_name)
    now = now or datetime.now(tz)
    text = raw.strip()
    default = datetime(now.year, 1, 1)

    parsed = _dateutil_parse(text, default)
    if parsed is None and _DATE_HINT_RE.search(text):
        parsed = _dateutil_parse(text, default, fuzzy=True)

    if parsed is not None:
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=tz)
        return parsed

    match = _DAY_MON_TIME_RE.search(text)
    if match:
        day, month, hour, minute, meridiem = match.groups()
        month_num = _MONTHS.get(month.lower())
        hour = int(hour)
        if meridiem:
            hour = hour % 12 + (12 if meridiem.lower() == "pm" else 0)
        if month_num is not None:
            try:
                return datetime(now.year, month_num, int(day), hour, int(minute), tzinfo=tz)
            except ValueError:
                return None

    return None


def _dateutil_parse(text: str, default: datetime, fuzzy: bool = False) -> Optional[datetime]:
    try:
        return date_parser.parse(text, default=default, fuzzy=fuzzy, tzinfos=ZONE_ABBREVIATIONS)
    except (ValueError, OverflowError):
        return None


def calculate_tat(mail_sent_at: datetime, added_on: datetime) -> int:
    """Seconds between added-on and send, rounded. Negative on clock skew."""
    return round((mail_sent_at - added_on).total_seconds())


def is_in_future(value: datetime, now: Optional[datetime] = None) -> bool:
    return value > (now or datetime.now(timezone.utc))


# -------------------------------------------------------
# Email / URL
# -------------------------------------------------------

def is_valid_email(email: Optional[str]) -> bool:
    """Syntactic local@domain.tld check. No deliverability lookup."""
    if not email or not isinstance(email, str):
        return False
    return bool(_EMAIL_RE.match(email.strip()))


@dataclass(frozen=True)
class UrlCheck:
    valid: bool
    unverified_domain: bool = False


def validate_url(url: Optional[str], allowed_domains: Iterable[str] = DEFAULT_ALLOWED_DOMAINS) -> UrlCheck:
    """
    Syntax check plus allow-list classification.
    Only malformed or non-http(s) URLs are invalid; a domain outside the
    allow-list is valid but flagged as unverified.
    """
    if not url or not isinstance(url, str):
        return UrlCheck(valid=False)

    candidate = url.strip()
    if any(ch.isspace() for ch in candidate):
        return UrlCheck(valid=False)

    try:
        parsed = urlparse(candidate)
        hostname = (parsed.hostname or "").lower()
        parsed.port  # raises ValueError when out of range
    except ValueError:
        return UrlCheck(valid=False)

    if parsed.scheme.lower() not in ("http", "https") or not hostname:
        return UrlCheck(valid=False)

    allowed = any(
        hostname == domain or hostname.endswith(f".{domain}")
        for domain in (d.lower() for d in allowed_domains)
    )
    return UrlCheck(valid=True, unverified_domain=not allowed)


# -------------------------------------------------------
# Identity
# -------------------------------------------------------

def create_source_identifier(row: InputRow) -> str:
    """Stable identifier for a source row: content fields plus row position."""
    return f"{row.company}_{row.candidate}_{row.candidate_email}_{row.added_on_raw}_{row.index}"


def generate_idempotency_key(source_identifier: str, round_name: str, candidate_email: str) -> str:
    """SHA-256 hex digest of source_identifier|round_name|candidate_email."""
    data = f"{source_identifier}|{round_name}|{candidate_email}"
    return hashlib.sha256(data.encode("utf-8")).hexdigest()
