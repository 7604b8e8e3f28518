"""
Signal extraction and aggregation.

- signals.py: per-page facts (title, description, headings, text, contacts, social links)
- aggregator.py: deterministic merge of page signals into one domain profile
"""

from .aggregator import aggregate_signals
from .signals import MAX_HEADINGS, MAX_TEXT_LENGTH, MIN_TEXT_LENGTH, extract_signals

__all__ = [
    "aggregate_signals",
    "extract_signals",
    "MAX_HEADINGS",
    "MAX_TEXT_LENGTH",
    "MIN_TEXT_LENGTH",
]
