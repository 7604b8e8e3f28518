"""
Deterministic merge of per-page signals into one domain profile.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Sequence

from domainresearch.extractor.signals import MAX_HEADINGS, MAX_TEXT_LENGTH
from domainresearch.protocols import AggregatedSignals, PageSignals


def _longest(values: Iterable[str]) -> str:
    # max() keeps the first of equally long candidates.
    return max((value for value in values if value), key=len, default="")


def _ordered_union(groups: Iterable[Iterable[str]], limit: int | None = None) -> List[str]:
    merged: List[str] = []
    seen: set[str] = set()
    for group in groups:
        for value in group:
            if value in seen:
                continue
            if limit is not None and len(merged) >= limit:
                return merged
            seen.add(value)
            merged.append(value)
    return merged


def _join_bounded(texts: Iterable[str], limit: int = MAX_TEXT_LENGTH) -> str:
    body = ""
    for text in texts:
        if not text:
            continue
        separator = " " if body else ""
        remaining = limit - len(body) - len(separator)
        if remaining <= 0:
            break
        body += separator + text[:remaining]
    return body


def aggregate_signals(pages: Sequence[PageSignals]) -> AggregatedSignals:
    """
    Merge page signals in list order.

    Title and description take the longest non-empty value, headings and
    contacts are de-duplicated unions, body text is concatenated up to
    ``MAX_TEXT_LENGTH`` and the first page to name a social platform wins.
    An empty sequence yields ``AggregatedSignals.empty()``.
    """
    if not pages:
        return AggregatedSignals.empty()

    social_links: Dict[str, str] = {}
    for page in pages:
        for platform, link in page.social_links.items():
            social_links.setdefault(platform, link)

    return AggregatedSignals(
        title=_longest(page.title for page in pages),
        description=_longest(page.meta_description for page in pages),
        headings=_ordered_union((page.headings for page in pages), limit=MAX_HEADINGS),
        body_text=_join_bounded(page.cleaned_text for page in pages),
        emails=_ordered_union(page.emails for page in pages),
        phones=_ordered_union(page.phones for page in pages),
        social_links=social_links,
    )
