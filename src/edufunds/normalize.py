from __future__ import annotations

import math
import re
import unicodedata
from datetime import date, datetime, time
from zoneinfo import ZoneInfo

from edufunds.domain import (
    DEADLINE_ALL,
    DEADLINE_THIS_MONTH,
    DEADLINE_THIS_QUARTER,
    DEADLINE_THIS_YEAR,
    DEADLINE_URGENT,
)

BERLIN = ZoneInfo("Europe/Berlin")

ONGOING_MARKER = "laufend"
MILLION_MARKERS = ("mio", "million")
THOUSAND_MARKERS = ("tsd", "tausend")

_SPACE_PATTERN = re.compile(r"\s+")
# Order matters: grouped German notation first, then comma decimals, then bare digits.
_BUDGET_PATTERNS = (
    re.compile(r"\d{1,3}(?:\.\d{3})+(?:,\d+)?"),
    re.compile(r"\d+,\d+"),
    re.compile(r"\d+"),
)
_DEADLINE_PATTERN = re.compile(r"(?P<day>\d{1,2})\.(?P<month>\d{1,2})\.(?P<year>\d{4})")

# Narrowest bucket first.
DEADLINE_THRESHOLDS = (
    (DEADLINE_URGENT, 14),
    (DEADLINE_THIS_MONTH, 30),
    (DEADLINE_THIS_QUARTER, 90),
    (DEADLINE_THIS_YEAR, 365),
)


def normalize_text(value: str | None) -> str:
    normalized = unicodedata.normalize("NFKC", value or "").lower()
    return _SPACE_PATTERN.sub(" ", normalized).strip()


def parse_budget(raw: str | None) -> float:
    """Parse a German budget string such as ``"Max. 10.000 €"`` or ``"1,5 Mio €"``.

    Never raises. Text without digits yields ``0``.
    """
    text = raw or ""
    lowered = text.lower()
    is_million = any(marker in lowered for marker in MILLION_MARKERS)
    is_thousand = any(marker in lowered for marker in THOUSAND_MARKERS)

    number_text: str | None = None
    for pattern in _BUDGET_PATTERNS:
        match = pattern.search(text)
        if match:
            number_text = match.group(0).replace(".", "").replace(",", ".")
            break
    if number_text is None:
        return 0

    try:
        value = float(number_text)
    except ValueError:
        return 0
    if math.isnan(value):
        return 0

    if is_million:
        return value * 1_000_000
    if is_thousand:
        return value * 1_000
    return value


def parse_deadline(raw: str | None) -> date | None:
    """Return the first valid ``D.M.YYYY`` date in ``raw``.

    ``None`` means either "laufend" (no fixed deadline) or unparsable text;
    callers cannot tell the two apart. Impossible calendar dates such as
    ``31.02.2026`` are skipped, never rolled over into the next month, and the
    next ``D.M.YYYY`` occurrence is tried instead.
    """
    text = raw or ""
    if ONGOING_MARKER in text.lower():
        return None
    for match in _DEADLINE_PATTERN.finditer(text):
        try:
            return date(
                int(match.group("year")),
                int(match.group("month")),
                int(match.group("day")),
            )
        except ValueError:
            continue
    return None


def deadline_start(deadline: date) -> datetime:
    return datetime.combine(deadline, time.min, tzinfo=BERLIN)


def _as_instant(reference: datetime | date | None) -> datetime:
    if reference is None:
        return datetime.now(BERLIN)
    if isinstance(reference, datetime):
        if reference.tzinfo is None:
            return reference.replace(tzinfo=BERLIN)
        return reference
    return deadline_start(reference)


def get_days_until_deadline(raw: str | None, reference: datetime | date | None = None) -> int | None:
    deadline = parse_deadline(raw)
    if deadline is None:
        return None
    delta = deadline_start(deadline) - _as_instant(reference)
    return math.ceil(delta.total_seconds() / 86400)


def categorize_deadline(days_until: int | None) -> str:
    if days_until is None or days_until < 0:
        return DEADLINE_ALL
    for bucket, threshold in DEADLINE_THRESHOLDS:
        if days_until <= threshold:
            return bucket
    return DEADLINE_ALL


def format_deadline(value: date) -> str:
    return f"{value.day:02d}.{value.month:02d}.{value.year}"


def _format_german_number(value: float, max_fraction_digits: int) -> str:
    text = f"{value:,.{max_fraction_digits}f}"
    if max_fraction_digits:
        text = text.rstrip("0").rstrip(".")
    return text.replace(",", "_").replace(".", ",").replace("_", ".")


def format_budget(value: float) -> str:
    if value >= 1_000_000:
        return f"{_format_german_number(value / 1_000_000, 1)} Mio €"
    if value >= 1_000:
        return f"{_format_german_number(value, 0)} €"
    if float(value).is_integer():
        return f"{int(value)} €"
    return f"{_format_german_number(value, 2)} €"
