"""Caption parsing for photo messages."""

import re
from datetime import date

from reel_maker.domain.errors import FormatError
from reel_maker.domain.posts import CaptionFields

REQUIRED_LABELS = ("title", "content", "hashtags")

_LABEL_PATTERN = re.compile(
    r"^[ \t]*(title|content|hashtags|date)[ \t]*:",
    re.IGNORECASE | re.MULTILINE,
)
_MONTHS = (
    "JAN",
    "FEB",
    "MAR",
    "APR",
    "MAY",
    "JUN",
    "JUL",
    "AUG",
    "SEP",
    "OCT",
    "NOV",
    "DEC",
)

CAPTION_FORMAT_HINT = (
    "Title : Your Title\n"
    "Content : Your Content\n"
    "Hashtags : #hashtag1 #hashtag2\n"
    "(Optional) Date : DD MMM YYYY"
)


def parse_caption(raw: str, today: date) -> CaptionFields:
    """Extract title, content, hashtags and date from a caption.

    Each label starts a line and is followed by ``:``; its value runs until the
    next recognized label or the end of the text. Raises ``FormatError`` naming
    the first mandatory field that is missing or blank.
    """
    segments = _split_segments(raw)
    for label in REQUIRED_LABELS:
        if not segments.get(label):
            raise FormatError(label)
    return CaptionFields(
        title=segments["title"],
        content=segments["content"],
        hashtags=segments["hashtags"],
        date=segments.get("date") or format_display_date(today),
    )


def format_display_date(value: date) -> str:
    """Format a date as ``DD MMM YYYY`` in upper case."""
    return f"{value.day:02d} {_MONTHS[value.month - 1]} {value.year:04d}"


def _split_segments(raw: str) -> dict[str, str]:
    matches = list(_LABEL_PATTERN.finditer(raw))
    segments: dict[str, str] = {}
    for index, match in enumerate(matches):
        end = matches[index + 1].start() if index + 1 < len(matches) else len(raw)
        label = match.group(1).lower()
        # First occurrence of a label wins.
        segments.setdefault(label, raw[match.end() : end].strip())
    return segments
