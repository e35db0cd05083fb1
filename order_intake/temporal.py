"""Free-text pickup/delivery window parsing.

Turns values such as ``"2025-10-22 09:00 - 11:00"``, ``"10/22 9am-11am"`` or
``"Oct 22, 2025 9:00 AM"`` into UTC ISO instants.  Wall-clock values are
interpreted in the caller's IANA zone, so ``09:00`` in ``America/Chicago``
becomes ``14:00Z`` in October.

Date recognition is an ordered list of ``(name, pattern, extractor)``
strategies evaluated top to bottom; the first full match wins.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Callable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .utils import collapse_whitespace

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Regex building blocks
# ---------------------------------------------------------------------------

_TIME = (
    r"(?P<hour>\d{1,2})(?::(?P<minute>\d{2}))?(?::(?P<second>\d{2}))?"
    r"\s*(?P<period>[ap]\.?\s?m\.?)?"
)
# Between a date and its time: a comma and/or whitespace, optionally "at"/"@".
_DT_SEP = r"(?:\s*,\s*|\s+)(?:(?:at|@)\s*)?"
_OPT_TIME = rf"(?:{_DT_SEP}{_TIME})?"
_MONTH = (
    r"(?P<mon>jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?"
    r"|aug(?:ust)?|sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)\.?"
)
_WEEKDAY = r"(?:(?:mon|tue|wed|thu|fri|sat|sun)[a-z]*\.?,?\s+)?"
_ORDINAL = r"(?:st|nd|rd|th)?"
_OFFSET = r"(?P<offset>z|[+-]\d{2}:?\d{2})?"
# Without the "T" only "Z" is an offset; "09:00-11:00" is a range, not UTC-11.
_ZULU = r"(?P<offset>z)?"

_MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}

_SPACED_SEPARATOR_RE = re.compile(r"\s+(?:-|–|—|to)\s+", re.IGNORECASE)
_TIME_ONLY_RE = re.compile(_TIME, re.IGNORECASE)

# Regions that write numeric dates month-first.
_MONTH_FIRST_REGIONS = frozenset({"US", "PH", "FM", "MH", "PW", "AS", "GU", "MP", "PR", "VI"})


@dataclass(frozen=True)
class TemporalRange:
    """Start/end of a parsed window as UTC ISO strings."""

    start: str | None = None
    end: str | None = None

    @property
    def is_empty(self) -> bool:
        return self.start is None and self.end is None


@dataclass(frozen=True)
class DateContext:
    """Ambient facts a date extractor may need."""

    reference_year: int
    day_first: bool = False


Extractor = Callable[[re.Match, DateContext], Optional[datetime]]


# ---------------------------------------------------------------------------
# Small helpers
# ---------------------------------------------------------------------------


def normalize_year(year: int) -> int:
    """Pivot two-digit years: 70-99 -> 19xx, 00-69 -> 20xx."""
    if year < 100:
        return year + (1900 if year >= 70 else 2000)
    return year


def _clock(
    hour: str | None,
    minute: str | None,
    second: str | None,
    period: str | None,
    require_minutes: bool = True,
) -> time | None:
    if hour is None:
        return time(0, 0)
    if require_minutes and minute is None and not period:
        # A bare number after a date is more likely noise than an hour.
        return None
    h = int(hour)
    m = int(minute or 0)
    s = int(second or 0)
    if period:
        marker = period.strip()[0].lower()
        if marker == "p" and h < 12:
            h += 12
        elif marker == "a" and h == 12:
            h = 0
    if h > 23 or m > 59 or s > 59:
        return None
    return time(h, m, s)


def _offset(raw: str | None) -> tzinfo | None:
    if not raw:
        return None
    if raw.lower() == "z":
        return timezone.utc
    sign = -1 if raw[0] == "-" else 1
    digits = raw[1:].replace(":", "")
    delta = timedelta(hours=int(digits[:2]), minutes=int(digits[2:4]))
    return timezone(sign * delta)


def _build(
    year: int,
    month: int,
    day: int,
    clock: time | None,
    tz: tzinfo | None = None,
) -> datetime | None:
    if clock is None:
        return None
    try:
        return datetime.combine(date(year, month, day), clock, tzinfo=tz)
    except ValueError:
        return None


def _time_groups(match: re.Match[str]) -> time | None:
    groups = match.groupdict()
    return _clock(groups.get("hour"), groups.get("minute"), groups.get("second"), groups.get("period"))


def _month_day(first: str, second: str, ctx: DateContext) -> tuple[int, int]:
    a, b = int(first), int(second)
    return (b, a) if ctx.day_first else (a, b)


# ---------------------------------------------------------------------------
# Extractors (one per recognized date shape)
# ---------------------------------------------------------------------------


def _extract_iso_full(match: re.Match[str], ctx: DateContext) -> datetime | None:
    clock = _clock(match["hour"], match["minute"], match["second"], None)
    return _build(
        int(match["year"]), int(match["month"]), int(match["day"]), clock, _offset(match["offset"])
    )


def _extract_iso_date(match: re.Match[str], ctx: DateContext) -> datetime | None:
    return _build(int(match["year"]), int(match["month"]), int(match["day"]), time(0, 0))


def _extract_iso_space(match: re.Match[str], ctx: DateContext) -> datetime | None:
    return _build(
        int(match["year"]),
        int(match["month"]),
        int(match["day"]),
        _time_groups(match),
        _offset(match["offset"]),
    )


def _extract_numeric(match: re.Match[str], ctx: DateContext) -> datetime | None:
    month, day = _month_day(match["a"], match["b"], ctx)
    year = normalize_year(int(match["year"])) if match["year"] else ctx.reference_year
    return _build(year, month, day, _time_groups(match))


def _extract_month_name(match: re.Match[str], ctx: DateContext) -> datetime | None:
    month = _MONTHS[match["mon"][:3].lower()]
    year = int(match["year"]) if match["year"] else ctx.reference_year
    return _build(year, month, int(match["day"]), _time_groups(match))


def _compile(pattern: str) -> re.Pattern[str]:
    return re.compile(pattern, re.IGNORECASE)


# Priority order matters: the first full match wins.
DATE_PATTERNS: list[tuple[str, re.Pattern[str], Extractor]] = [
    (
        "iso_full",
        _compile(
            r"(?P<year>\d{4})-(?P<month>\d{1,2})-(?P<day>\d{1,2})"
            r"T(?P<hour>\d{1,2}):(?P<minute>\d{2})(?::(?P<second>\d{2})(?:\.\d+)?)?"
            + _OFFSET
        ),
        _extract_iso_full,
    ),
    (
        "iso_date",
        _compile(r"(?P<year>\d{4})-(?P<month>\d{1,2})-(?P<day>\d{1,2})"),
        _extract_iso_date,
    ),
    (
        "iso_space",
        _compile(
            r"(?P<year>\d{4})-(?P<month>\d{1,2})-(?P<day>\d{1,2})" + _DT_SEP + _TIME + r"\s*" + _ZULU
        ),
        _extract_iso_space,
    ),
    (
        "slash",
        _compile(r"(?P<a>\d{1,2})/(?P<b>\d{1,2})(?:/(?P<year>\d{4}|\d{2}))?" + _OPT_TIME),
        _extract_numeric,
    ),
    (
        "dashed",
        _compile(r"(?P<a>\d{1,2})-(?P<b>\d{1,2})-(?P<year>\d{4}|\d{2})" + _OPT_TIME),
        _extract_numeric,
    ),
    (
        "month_name",
        _compile(
            _WEEKDAY + _MONTH + r"\s*(?P<day>\d{1,2})" + _ORDINAL
            + r"(?:,?\s+(?P<year>\d{4}))?" + _OPT_TIME
        ),
        _extract_month_name,
    ),
    (
        "day_month_name",
        _compile(
            _WEEKDAY + r"(?P<day>\d{1,2})" + _ORDINAL + r"\s+" + _MONTH
            + r",?(?:\s+(?P<year>\d{4}))?" + _OPT_TIME
        ),
        _extract_month_name,
    ),
]


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def is_day_first(locale: str | None) -> bool:
    """Whether numeric dates in ``locale`` are written day-first (``22/10``)."""
    if not locale or not locale.strip():
        return False
    parts = re.split(r"[-_]", locale.strip())
    language = parts[0].lower()
    region = next((p.upper() for p in parts[1:] if len(p) == 2 and p.isalpha()), None)
    if region is None:
        return language != "en"
    if region == "CA":
        return language != "en"
    return region not in _MONTH_FIRST_REGIONS


def resolve_zone(tz: str | tzinfo | None) -> tzinfo:
    """Return a tzinfo for an IANA name; ``None`` or blank means UTC.

    Raises ``ValueError`` for unknown zone names.
    """
    if tz is None:
        return timezone.utc
    if isinstance(tz, tzinfo):
        return tz
    name = tz.strip()
    if not name:
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown time zone: {name}") from exc


def normalize_datetime(value: str | None, ctx: DateContext) -> datetime | None:
    """Parse a standalone date/time; naive results are wall-clock times."""
    cleaned = collapse_whitespace(value)
    if not cleaned:
        return None
    for name, pattern, extractor in DATE_PATTERNS:
        match = pattern.fullmatch(cleaned)
        if match is None:
            continue
        parsed = extractor(match, ctx)
        if parsed is not None:
            logger.debug("Parsed %r with %s strategy", cleaned, name)
            return parsed
    return None


def parse_time_only(value: str | None) -> time | None:
    """Parse ``11``, ``11:00``, ``11:00:30``, ``11am`` or ``11:30 p.m.``."""
    cleaned = collapse_whitespace(value)
    if not cleaned:
        return None
    match = _TIME_ONLY_RE.fullmatch(cleaned)
    if match is None:
        return None
    return _clock(
        match["hour"], match["minute"], match["second"], match["period"], require_minutes=False
    )


def split_range(value: str, ctx: DateContext) -> tuple[str, str | None]:
    """Split a window value into ``(start, end)`` raw text.

    A spaced dash or ``to`` is a definite separator.  Without one, a value
    that already parses as a single date/time is not split; otherwise the
    first dash after a colon, then the last hyphen, are tried as
    progressively weaker boundary guesses.
    """
    cleaned = collapse_whitespace(value)
    spaced = _SPACED_SEPARATOR_RE.search(cleaned)
    if spaced:
        return cleaned[: spaced.start()].strip(), cleaned[spaced.end():].strip() or None

    if normalize_datetime(cleaned, ctx) is not None:
        return cleaned, None

    dashed = cleaned.replace("–", "-").replace("—", "-")
    colon = dashed.find(":")
    index = dashed.find("-", colon) if colon >= 0 else -1
    if index < 0:
        index = dashed.rfind("-")
    if 0 < index < len(dashed) - 1:
        return dashed[:index].strip(), dashed[index + 1:].strip() or None
    return cleaned, None


def to_utc_iso(value: datetime, zone: tzinfo) -> str:
    """Render ``value`` as ``YYYY-MM-DDTHH:MM:SS.mmmZ``.

    Naive values are wall-clock times in ``zone``.
    """
    aware = value if value.tzinfo is not None else value.replace(tzinfo=zone)
    utc = aware.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S") + f".{utc.microsecond // 1000:03d}Z"


def parse_temporal_value(
    value: str | None,
    tz: str | tzinfo | None = None,
    locale: str | None = None,
    now: datetime | None = None,
) -> TemporalRange:
    """Parse a window value into UTC ISO start/end.  Never raises.

    An end side that is only a time (``"09:00 - 11:00"``) takes the start
    side's date.  Unrecognized input yields an empty range.
    """
    cleaned = collapse_whitespace(value)
    if not cleaned:
        return TemporalRange()
    try:
        zone = resolve_zone(tz)
    except ValueError:
        logger.warning("Unknown time zone %r, interpreting %r as UTC", tz, cleaned)
        zone = timezone.utc

    reference = now or datetime.now(zone)
    ctx = DateContext(reference_year=reference.year, day_first=is_day_first(locale))

    raw_start, raw_end = split_range(cleaned, ctx)
    start = normalize_datetime(raw_start, ctx)
    if start is None:
        return TemporalRange()

    end: datetime | None = None
    if raw_end:
        end = normalize_datetime(raw_end, ctx)
        if end is None:
            clock = parse_time_only(raw_end)
            if clock is not None:
                end = datetime.combine(start.date(), clock, tzinfo=start.tzinfo)

    return TemporalRange(
        start=to_utc_iso(start, zone),
        end=to_utc_iso(end, zone) if end is not None else None,
    )
