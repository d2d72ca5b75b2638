"""Natural-language date/time parsing for spoken appointment requests.

Callers say things like "next Tuesday at 3 PM", "June fifth at 9 in the
morning" or "tomorrow afternoon".  ``parse_datetime`` turns such a phrase
into an absolute datetime relative to a reference "now", or returns
``None`` when no date or time can be recognized.  It never guesses "now"
on failure.

Resolution policy:

  * no time of day          → ``default_hour``:00 (9:00 unless configured)
  * month-day without year  → first year whose resolved instant (date and
                              time) is not before the reference
  * "next <weekday>"        → first such weekday strictly after today
  * "<weekday>"             → nearest occurrence, today only if the
                              resolved time has not passed yet
  * time without a date     → today, or tomorrow if that time has passed
  * unreadable time after "at" → ``None``, never the default hour

All results carry the reference's tzinfo; timezones are not converted.
"""

from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta
from typing import Optional, Union

from dateutil.parser import isoparse
from dateutil.relativedelta import FR, MO, SA, SU, TH, TU, WE, relativedelta

DEFAULT_HOUR = 9

_WEEKDAYS = {
    "monday": MO,
    "tuesday": TU,
    "tues": TU,
    "wednesday": WE,
    "weds": WE,
    "thursday": TH,
    "thurs": TH,
    "friday": FR,
    "saturday": SA,
    "sunday": SU,
}

_MONTHS = {
    "january": 1, "jan": 1,
    "february": 2, "feb": 2,
    "march": 3, "mar": 3,
    "april": 4, "apr": 4,
    "may": 5,
    "june": 6, "jun": 6,
    "july": 7, "jul": 7,
    "august": 8, "aug": 8,
    "september": 9, "sept": 9, "sep": 9,
    "october": 10, "oct": 10,
    "november": 11, "nov": 11,
    "december": 12, "dec": 12,
}

_HOUR_WORDS = {
    "one": 1, "two": 2, "three": 3, "four": 4, "five": 5, "six": 6,
    "seven": 7, "eight": 8, "nine": 9, "ten": 10, "eleven": 11, "twelve": 12,
}

_MINUTE_WORDS = {"fifteen": 15, "thirty": 30, "forty five": 45}

_PERIOD_HOURS = {"morning": 9, "afternoon": 14, "evening": 18, "tonight": 18}


def _build_ordinals() -> dict[str, int]:
    units = [
        "first", "second", "third", "fourth", "fifth",
        "sixth", "seventh", "eighth", "ninth",
    ]
    ordinals = {word: i + 1 for i, word in enumerate(units)}
    ordinals.update({
        "tenth": 10, "eleventh": 11, "twelfth": 12, "thirteenth": 13,
        "fourteenth": 14, "fifteenth": 15, "sixteenth": 16,
        "seventeenth": 17, "eighteenth": 18, "nineteenth": 19,
        "twentieth": 20, "thirtieth": 30,
    })
    for i, word in enumerate(units):
        ordinals[f"twenty {word}"] = 21 + i
    ordinals["thirty first"] = 31
    return ordinals


_ORDINALS = _build_ordinals()


def _alternation(words) -> str:
    # Longest first so "twenty first" wins over "first"
    return "|".join(sorted((re.escape(w) for w in words), key=len, reverse=True))


_MONTH_RE = _alternation(_MONTHS)
# "may 3 pm" is a time, not May 3rd
_NOT_A_TIME = r"(?!\s*(?:am|pm|oclock)\b)(?![:.]\d)"
_DAY_RE = rf"\d{{1,2}}(?:st|nd|rd|th)?|{_alternation(_ORDINALS)}"

_MONTH_FIRST = re.compile(
    rf"\b(?P<month>{_MONTH_RE})\s+(?:the\s+)?(?P<day>{_DAY_RE})\b"
    rf"{_NOT_A_TIME}"
    rf"(?:\s+(?P<year>\d{{4}})\b)?"
)
_DAY_FIRST = re.compile(
    rf"\b(?:the\s+)?(?P<day>{_DAY_RE})\s+(?:of\s+)?(?P<month>{_MONTH_RE})\b"
    rf"(?:\s+(?P<year>\d{{4}})\b)?"
)
_ISO_DATE = re.compile(r"\b(?P<year>\d{4})-(?P<month>\d{1,2})-(?P<day>\d{1,2})\b")
_SLASH_DATE = re.compile(
    r"\b(?P<month>\d{1,2})/(?P<day>\d{1,2})(?:/(?P<year>\d{4}|\d{2}))?\b"
)
_RELATIVE = re.compile(r"\b(?P<rel>day after tomorrow|tomorrow|today|tonight)\b")
_WEEKDAY = re.compile(
    r"\b(?:(?P<qual>next|this coming|this|coming)\s+)?"
    rf"(?P<day>{_alternation(_WEEKDAYS)})\b"
)

_FULL_ISO = re.compile(r"^\d{4}-\d{2}-\d{2}[t ]\d{2}:\d{2}(:\d{2})?")

_HOUR_RE = rf"\d{{1,2}}|{_alternation(_HOUR_WORDS)}"
_CLOCK = re.compile(
    rf"\b(?P<hour>{_HOUR_RE})"
    rf"(?:(?P<sep>[:.])(?P<minute>[0-5]\d)|\s+(?P<wminute>{_alternation(_MINUTE_WORDS)}))?"
    r"(?:\s*(?P<oclock>oclock))?"
    r"(?:\s*(?P<meridiem>am|pm))?\b"
)
# "half past two", "quarter to three"
_FRACTION = re.compile(
    rf"\b(?P<fraction>half|quarter)\s+(?P<rel>past|to)\s+(?P<hour>{_HOUR_RE})"
    r"(?:\s*(?P<meridiem>am|pm))?\b"
)
# "at" followed by something that reads like a time of day
_STATED_TIME = re.compile(rf"\bat\s+(?:{_HOUR_RE}|half|quarter)\b")
_PERIOD_AFTER = re.compile(
    r"\s*(?:oclock\s+)?(?:in\s+the\s+(?P<period>morning|afternoon|evening)|at\s+night|tonight)\b"
)
_PERIOD_WORD = re.compile(r"\b(morning|afternoon|evening|tonight|night)\b")
_AT_BEFORE = re.compile(r"\bat\s*$")
_NOON = re.compile(r"\b(?:noon|midday)\b")
_MIDNIGHT = re.compile(r"\bmidnight\b")


def _normalize(text: str) -> str:
    text = text.lower()
    text = re.sub(r"(?<![a-z])([ap])\.\s?m\b\.?", r"\1m", text)  # p.m. / a. m.
    text = re.sub(r"\bo[’']?\s?clock\b", "oclock", text)
    text = re.sub(r"(?<=[a-z])-(?=[a-z])", " ", text)  # twenty-first
    text = re.sub(r"[,!?;]", " ", text)
    text = re.sub(r"(?<!\d)\.|\.(?!\d)", " ", text)
    return re.sub(r"\s+", " ", text).strip()


def _day_value(token: str) -> int:
    if token in _ORDINALS:
        return _ORDINALS[token]
    return int(re.sub(r"(st|nd|rd|th)$", "", token))


def _hour_value(token: str) -> int:
    if token in _HOUR_WORDS:
        return _HOUR_WORDS[token]
    return int(token)


def _parse_time(text: str) -> Optional[tuple[int, int]]:
    """Extract an (hour, minute) pair from text with any date removed."""
    if _NOON.search(text):
        return 12, 0
    if _MIDNIGHT.search(text):
        return 0, 0

    period_word = _PERIOD_WORD.search(text)
    period = period_word.group(1) if period_word else None

    fraction = _FRACTION.search(text)
    if fraction:
        hour = _hour_value(fraction.group("hour"))
        if fraction.group("rel") == "to":
            minute = 60 - (30 if fraction.group("fraction") == "half" else 15)
            hour = hour - 1 or 12
        else:
            minute = 30 if fraction.group("fraction") == "half" else 15
        hour = _resolve_hour(hour, fraction.group("meridiem"), period)
        if hour is not None:
            return hour, minute

    for match in _CLOCK.finditer(text):
        hour = _hour_value(match.group("hour"))
        if match.group("minute"):
            minute = int(match.group("minute"))
        elif match.group("wminute"):
            minute = _MINUTE_WORDS[match.group("wminute")]
        else:
            minute = 0
        meridiem = match.group("meridiem")

        # A lone number only counts as a clock time with some anchor
        preceded_by_at = (
            _AT_BEFORE.search(text, max(0, match.start() - 8), match.start()) is not None
        )
        followed_by_period = _PERIOD_AFTER.match(text, match.end()) is not None
        anchored = (
            meridiem
            or match.group("sep") == ":"
            or match.group("oclock")
            or preceded_by_at
            or followed_by_period
        )
        if not anchored:
            continue

        hour = _resolve_hour(hour, meridiem, period)
        if hour is None:
            continue
        return hour, minute

    if period in _PERIOD_HOURS:
        return _PERIOD_HOURS[period], 0
    return None


def _resolve_hour(hour: int, meridiem: Optional[str], period: Optional[str]) -> Optional[int]:
    """24-hour value of a spoken hour, or None if it cannot be one."""
    if meridiem:
        if not 1 <= hour <= 12:
            return None
        return hour % 12 + (12 if meridiem == "pm" else 0)
    if period == "morning":
        return hour % 12 if 1 <= hour <= 12 else None
    if period in ("afternoon", "evening", "tonight", "night"):
        return hour % 12 + 12 if 1 <= hour <= 12 else None
    if 1 <= hour <= 7:
        # "at 3" means mid-afternoon, not the small hours
        return hour + 12
    if hour > 23:
        return None
    return hour


def _time_or_default(text: str, default_clock: tuple[int, int]) -> Optional[tuple[int, int]]:
    """The time stated in ``text``, the default if none is stated.

    None when a time is stated after "at" but cannot be read, so the
    caller is asked again instead of being booked at the default hour.
    """
    clock = _parse_time(text)
    if clock is not None:
        return clock
    if _STATED_TIME.search(text):
        return None
    return default_clock


def _at(day: date, clock: tuple[int, int], reference: datetime) -> datetime:
    return datetime.combine(day, time(clock[0], clock[1]), tzinfo=reference.tzinfo)


def _blank(text: str, match: re.Match) -> str:
    return text[: match.start()] + " " + text[match.end():]


def _month_day(match: re.Match, clock, reference: datetime) -> Optional[datetime]:
    month = match.group("month")
    month = _MONTHS[month] if month in _MONTHS else int(month)
    day = _day_value(match.group("day"))
    year = match.group("year")

    if year:
        year = int(year)
        if year < 100:
            year += 2000
        try:
            return _at(date(year, month, day), clock, reference)
        except ValueError:
            return None

    # Roll forward to the next occurrence; Feb 29 may need a few years
    for year in range(reference.year, reference.year + 9):
        try:
            candidate = _at(date(year, month, day), clock, reference)
        except ValueError:
            continue
        if candidate >= reference:
            return candidate
    return None


def _weekday(match: re.Match, clock, reference: datetime) -> datetime:
    target = _WEEKDAYS[match.group("day")]
    today = reference.date()
    if match.group("qual") == "next":
        return _at(today + relativedelta(days=+1, weekday=target(+1)), clock, reference)

    candidate = _at(today + relativedelta(weekday=target(+1)), clock, reference)
    if candidate < reference:
        candidate += relativedelta(weeks=+1)
    return candidate


def _relative(match: re.Match, clock, reference: datetime) -> datetime:
    offset = {"today": 0, "tonight": 0, "tomorrow": 1, "day after tomorrow": 2}
    day = reference.date() + timedelta(days=offset[match.group("rel")])
    return _at(day, clock, reference)


def parse_datetime(
    text: str,
    reference: datetime,
    default_hour: int = DEFAULT_HOUR,
) -> Optional[datetime]:
    """Parse a spoken date/time phrase relative to ``reference``.

    Returns the resolved datetime, or ``None`` if the phrase contains no
    recognizable date or time.
    """
    if not isinstance(text, str) or not text.strip():
        return None

    if _FULL_ISO.match(text.strip().lower()):
        try:
            parsed = isoparse(text.strip())
        except (ValueError, OverflowError):
            parsed = None
        if parsed is not None:
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=reference.tzinfo)
            return parsed

    normalized = _normalize(text)
    default_clock = (default_hour, 0)

    for pattern in (_MONTH_FIRST, _DAY_FIRST, _ISO_DATE, _SLASH_DATE):
        match = pattern.search(normalized)
        if match:
            clock = _time_or_default(_blank(normalized, match), default_clock)
            return _month_day(match, clock, reference) if clock else None

    match = _RELATIVE.search(normalized)
    if match:
        # "tonight" doubles as a period word, so keep it for time parsing
        clock = _time_or_default(normalized, default_clock)
        return _relative(match, clock, reference) if clock else None

    match = _WEEKDAY.search(normalized)
    if match:
        clock = _time_or_default(_blank(normalized, match), default_clock)
        return _weekday(match, clock, reference) if clock else None

    clock = _parse_time(normalized)
    if clock is None:
        return None
    candidate = _at(reference.date(), clock, reference)
    if candidate < reference:
        candidate += timedelta(days=1)
    return candidate


_DAY_ABBR = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
_MONTH_ABBR = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)


def format_human_readable(value: Union[datetime, str]) -> str:
    """Render an instant for display, e.g. ``"Tue, Jun 16 at 3:00 PM"``.

    Uses fixed English names so output does not depend on the process locale.
    """
    if isinstance(value, str):
        value = isoparse(value)
    hour = value.hour % 12 or 12
    meridiem = "AM" if value.hour < 12 else "PM"
    return (
        f"{_DAY_ABBR[value.weekday()]}, {_MONTH_ABBR[value.month - 1]} "
        f"{value.day} at {hour}:{value.minute:02d} {meridiem}"
    )
