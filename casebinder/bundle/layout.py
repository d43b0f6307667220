"""
Layout arithmetic for the binder.

Pure functions with no PDF library dependency, so the pagination rules
can be reasoned about (and tested) on plain integers:

- wrap_text: greedy word wrap against a font-metric width function
- scale_to_fit: aspect-preserving image scaling into a box
- compute_index_page_count / assign_start_pages: the index arithmetic
  that pass 2 of the compiler relies on
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Sequence


class EntryKind(str, Enum):
    SECTION_HEADER = "section_header"
    DOCUMENT = "document"


# Vertical index lines consumed per entry; headers get a spacer line
INDEX_LINE_UNITS = {
    EntryKind.SECTION_HEADER: 2,
    EntryKind.DOCUMENT: 1,
}


@dataclass
class IndexEntry:
    """
    One row of the binder index, recorded during pass 1.

    Attributes:
        kind: Section header or document row.
        label: Section name or document filename.
        page_count: Pages the item occupies in the arena (always >= 1).
        date: Date shown in the index ("" for headers).
        start_page: First page of the item in the final binder, assigned in pass 2.
    """
    kind: EntryKind
    label: str
    page_count: int = 1
    date: str = ""
    start_page: int | None = None

    @property
    def line_units(self) -> int:
        return INDEX_LINE_UNITS[self.kind]


def wrap_text(text: str, width_fn: Callable[[str], float], max_width: float) -> list[str]:
    """
    Greedy word wrap.

    Each source line is wrapped independently; blank source lines are kept
    as blank output lines so paragraph breaks survive. A single word wider
    than max_width is placed on its own line unbroken.

    Args:
        text: Source text, possibly multi-line.
        width_fn: Returns the rendered width of a string.
        max_width: Available line width.
    """
    wrapped: list[str] = []
    for paragraph in text.split('\n'):
        words = paragraph.split()
        if not words:
            wrapped.append('')
            continue

        current = words[0]
        for word in words[1:]:
            candidate = f"{current} {word}"
            if width_fn(candidate) < max_width:
                current = candidate
            else:
                wrapped.append(current)
                current = word
        wrapped.append(current)
    return wrapped


def scale_to_fit(width: float, height: float, max_width: float, max_height: float) -> tuple[float, float]:
    """Scale (width, height) to fit the box, preserving aspect ratio."""
    if width <= 0 or height <= 0:
        raise ValueError(f"Invalid image dimensions: {width}x{height}")
    scale = min(max_width / width, max_height / height)
    return width * scale, height * scale


def compute_index_page_count(entries: Sequence[IndexEntry], lines_per_page: int) -> int:
    """Pages needed by the index: ceil(line units / lines per page), at least 1."""
    units = sum(entry.line_units for entry in entries)
    return max(1, math.ceil(units / lines_per_page))


def assign_start_pages(entries: Sequence[IndexEntry], index_page_count: int) -> int:
    """
    Set start_page on every entry.

    The counter starts after the cover and the index pages and advances by
    each entry's recorded page count.

    Returns:
        Total number of pages in the binder.
    """
    current = 1 + index_page_count + 1
    for entry in entries:
        entry.start_page = current
        current += entry.page_count
    return current - 1
