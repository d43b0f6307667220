"""
Date normalization for timeline events.

Oracle output reports dates in whatever form the source document used.
ISO dates are tried first; everything else is read day-first, matching
UK tribunal paperwork ("05/01/2024" is 5 January 2024).
"""

import re
from datetime import date, datetime

_DAY_FIRST_FORMATS = (
    "%d/%m/%Y",
    "%d-%m-%Y",
    "%d.%m.%Y",
    "%d/%m/%y",
    "%Y/%m/%d",
    "%d %B %Y",
    "%d %b %Y",
    "%B %d, %Y",
    "%b %d, %Y",
    "%B %d %Y",
    "%b %d %Y",
)

_ORDINAL_SUFFIX = re.compile(r'(\d{1,2})(st|nd|rd|th)\b', re.IGNORECASE)


def parse_event_date(value: str | None) -> date | None:
    """
    Parse a reported event date.

    Args:
        value: Date text such as "2024-01-05", "05/01/2024" or "5th Jan 2024".

    Returns:
        The calendar date, or None if the text is not a recognisable date.
    """
    if not value:
        return None
    text = str(value).strip()
    if not text:
        return None

    # ISO first ("2024-01-05", "2024-01-05T09:30:00")
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        pass

    text = _ORDINAL_SUFFIX.sub(r'\1', text)
    text = re.sub(r'\s+', ' ', text)
    for fmt in _DAY_FIRST_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def normalize_event_date(value: str | None) -> str:
    """Return the ISO form of a parseable date, otherwise the stripped input."""
    parsed = parse_event_date(value)
    if parsed is not None:
        return parsed.isoformat()
    return str(value or "").strip()
