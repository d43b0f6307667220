"""
Timeline Merger - Folds newly extracted events into the canonical timeline.

Two documents often describe the same incident in slightly different words
("Verbal warning issued" vs "verbal warning issued by manager"). Events are
matched on a coarse signature of (normalized date, casefolded description
prefix); the first event for a signature is kept and later duplicates only
add their source documents.

Properties:
    - Idempotent: merge_timeline(merge_timeline(x)) == merge_timeline(x)
    - Order-independent: any arrival order yields the same signatures,
      sources and output order
    - Lossless: a source document reference is never dropped

Usage:
    from casebinder.timeline import merge_timeline

    timeline = merge_timeline(timeline, analysis.timeline_events)
"""

from __future__ import annotations

import dataclasses
import re
from datetime import date
from typing import Iterable

from casebinder.config import TIMELINE_SIGNATURE_PREFIX, get_setting
from casebinder.logging_config import debug_log
from casebinder.models import TimelineEvent

from .dates import normalize_event_date, parse_event_date

_WHITESPACE = re.compile(r'\s+')


def event_signature(
    event: TimelineEvent,
    prefix_length: int = TIMELINE_SIGNATURE_PREFIX,
) -> tuple[str, str]:
    """
    Compute the merge identity of an event.

    Args:
        event: The event to fingerprint.
        prefix_length: Number of description characters that take part.

    Returns:
        (normalized date, casefolded description prefix)
    """
    description = _WHITESPACE.sub(' ', event.description or '').strip().casefold()
    return (
        normalize_event_date(event.date).casefold(),
        description[:prefix_length],
    )


def _sort_key(event: TimelineEvent, signature: tuple[str, str]) -> tuple:
    parsed = parse_event_date(event.date)
    # Unparsable dates sort after every real date
    return (parsed is None, parsed or date.max, signature)


def merge_timeline(
    existing: Iterable[TimelineEvent],
    new_events: Iterable[TimelineEvent] = (),
    prefix_length: int | None = None,
) -> list[TimelineEvent]:
    """
    Merge a batch of events into the canonical timeline.

    Neither input is modified; a new list of events is returned, sorted by
    date with unparsable dates last.

    Args:
        existing: Current canonical timeline.
        new_events: Newly extracted events.
        prefix_length: Description prefix used for matching. Defaults to
                       the configured timeline_signature_prefix.

    Returns:
        Deduplicated canonical timeline.
    """
    if prefix_length is None:
        prefix_length = get_setting('timeline_signature_prefix')

    keyed = []
    for event in [*existing, *new_events]:
        signature = event_signature(event, prefix_length)
        keyed.append((_sort_key(event, signature), signature, event))
    keyed.sort(key=lambda item: item[0])

    canonical: dict[tuple[str, str], TimelineEvent] = {}
    merged_count = 0
    for _, signature, event in keyed:
        current = canonical.get(signature)
        if current is None:
            canonical[signature] = dataclasses.replace(
                event, date=normalize_event_date(event.date)
            )
            continue
        merged_count += 1
        if not event.sources <= current.sources:
            canonical[signature] = dataclasses.replace(
                current, sources=current.sources | event.sources
            )

    if merged_count:
        debug_log(f"[TIMELINE] Merged {merged_count} duplicate events into {len(canonical)} canonical events")

    # dict preserves first-seen order, which is the sorted order
    return list(canonical.values())
