"""
Timeline Package

Deduplicating merge of timeline events reported by independent documents.
"""

from .dates import normalize_event_date, parse_event_date
from .merger import event_signature, merge_timeline

__all__ = [
    'event_signature',
    'merge_timeline',
    'normalize_event_date',
    'parse_event_date',
]
