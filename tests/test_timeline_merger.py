"""
Tests for timeline date normalization and event merging.

Tests cover:
- parse_event_date / normalize_event_date formats
- event_signature construction
- merge_timeline idempotence, order independence and source preservation
- The verbal-warning merge across ISO and day-first dates
"""

import random
import sys
from datetime import date
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from casebinder.models import Severity, TimelineEvent
from casebinder.timeline import (
    event_signature,
    merge_timeline,
    normalize_event_date,
    parse_event_date,
)


def make_event(date_text, description, *sources, **kwargs):
    return TimelineEvent(date=date_text, description=description, sources=frozenset(sources), **kwargs)


def summarize(timeline):
    """Comparable view of a merged timeline: (date, signature, sources) per event."""
    return [(event.date, event_signature(event, 20), event.sources) for event in timeline]


class TestParseEventDate:
    """Test date parsing used for normalization and sorting."""

    @pytest.mark.parametrize("text, expected", [
        ("2024-01-05", date(2024, 1, 5)),
        ("2024-01-05T09:30:00", date(2024, 1, 5)),
        ("05/01/2024", date(2024, 1, 5)),
        ("5 Jan 2024", date(2024, 1, 5)),
        ("5th January 2024", date(2024, 1, 5)),
        ("January 5, 2024", date(2024, 1, 5)),
        ("2024/01/05", date(2024, 1, 5)),
        ("05.01.2024", date(2024, 1, 5)),
    ])
    def test_recognised_formats(self, text, expected):
        assert parse_event_date(text) == expected

    @pytest.mark.parametrize("text", ["", None, "sometime in spring", "31/02/2024"])
    def test_unrecognised_returns_none(self, text):
        assert parse_event_date(text) is None

    def test_normalize_keeps_unparsable_text(self):
        assert normalize_event_date("  Early 2023 ") == "Early 2023"
        assert normalize_event_date("05/01/2024") == "2024-01-05"


class TestEventSignature:
    """Test the merge identity of events."""

    def test_casefolds_and_collapses_whitespace(self):
        a = make_event("2024-01-05", "Verbal   Warning\nissued", "A")
        b = make_event("2024-01-05", "verbal warning issued", "B")
        assert event_signature(a) == event_signature(b)

    def test_prefix_length_limits_description(self):
        event = make_event("2024-01-05", "Meeting with HR about the grievance", "A")
        assert event_signature(event, prefix_length=7) == ("2024-01-05", "meeting")

    def test_date_is_normalized(self):
        event = make_event("05/01/2024", "Meeting", "A")
        assert event_signature(event)[0] == "2024-01-05"


class TestMergeTimeline:
    """Test merge_timeline properties."""

    @pytest.fixture
    def events(self):
        return [
            make_event("2024-01-05", "Verbal warning issued", "A", severity=Severity.HIGH),
            make_event("05/01/2024", "verbal warning issued by manager", "B"),
            make_event("2024-02-10", "Grievance submitted to HR", "A"),
            make_event("10 February 2024", "Grievance submitted to HR department", "C"),
            make_event("2023-11-20", "Occupational health referral", "B"),
            make_event("unknown", "Comment made in team meeting", "C"),
            make_event("2024-03-01", "Dismissal letter received", "D"),
        ]

    def test_verbal_warning_scenario(self):
        first = make_event("2024-01-05", "Verbal warning issued", "A")
        second = make_event("05/01/2024", "verbal warning issued by manager", "B")

        merged = merge_timeline([first], [second])

        assert len(merged) == 1
        assert merged[0].date == "2024-01-05"
        assert merged[0].sources == frozenset({"A", "B"})

    def test_idempotent(self, events):
        once = merge_timeline(events)
        twice = merge_timeline(once)
        assert twice == once

    def test_merging_again_with_same_batch_is_stable(self, events):
        once = merge_timeline(events)
        assert summarize(merge_timeline(once, events)) == summarize(once)

    def test_order_independent(self, events):
        expected = summarize(merge_timeline(events))
        rng = random.Random(1234)
        for _ in range(20):
            shuffled = events[:]
            rng.shuffle(shuffled)
            assert summarize(merge_timeline(shuffled)) == expected

    def test_split_between_existing_and_new_is_irrelevant(self, events):
        expected = summarize(merge_timeline(events))
        assert summarize(merge_timeline(events[:3], events[3:])) == expected
        assert summarize(merge_timeline(events[4:], events[:4])) == expected

    def test_sorted_with_unparsable_last(self, events):
        merged = merge_timeline(events)
        dates = [event.date for event in merged]
        assert dates == ["2023-11-20", "2024-01-05", "2024-02-10", "2024-03-01", "unknown"]

    def test_never_drops_a_source(self, events):
        merged = merge_timeline(events)
        all_sources = set().union(*(event.sources for event in events))
        assert set().union(*(event.sources for event in merged)) == all_sources

    def test_sources_only_grow(self, events):
        timeline = []
        previous = {}
        for event in events:
            timeline = merge_timeline(timeline, [event])
            for merged in timeline:
                signature = event_signature(merged, 20)
                assert previous.get(signature, frozenset()) <= merged.sources
                previous[signature] = merged.sources

    def test_inputs_not_mutated(self, events):
        snapshot = list(events)
        merge_timeline(events[:2], events[2:])
        assert events == snapshot

    def test_first_sorted_event_is_canonical(self):
        first = make_event("2024-01-05", "Verbal warning issued", "A", severity=Severity.HIGH)
        second = make_event("05/01/2024", "verbal warning issued by manager", "B")

        merged = merge_timeline([first, second])

        assert merged[0].description == "Verbal warning issued"
        assert merged[0].severity == Severity.HIGH

    def test_prefix_length_override(self):
        first = make_event("2024-01-05", "Meeting with HR", "A")
        second = make_event("2024-01-05", "Meeting with union rep", "B")

        assert len(merge_timeline([first, second], prefix_length=7)) == 1
        assert len(merge_timeline([first, second], prefix_length=20)) == 2

    def test_empty_input(self):
        assert merge_timeline([], []) == []

    def test_event_requires_a_source(self):
        with pytest.raises(ValueError):
            TimelineEvent(date="2024-01-05", description="x", sources=frozenset())
