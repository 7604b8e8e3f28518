"""
Candidate URL construction for a research domain.
"""

from __future__ import annotations

from typing import List, Sequence

from domainresearch.config.config import DEFAULT_CANDIDATE_PATHS

CANDIDATE_PATHS: tuple[str, ...] = tuple(DEFAULT_CANDIDATE_PATHS)


def build_urls(domain: str, paths: Sequence[str] = CANDIDATE_PATHS) -> List[str]:
    """Return the site root followed by each well-known path, in fetch priority order.

    Args:
        domain: Bare domain without scheme, e.g. ``example.com``
        paths: Relative paths to probe after the root

    Returns:
        ``https://{domain}/`` then ``https://{domain}{path}`` for every path
    """
    base = f"https://{domain}"
    return [base + "/"] + [base + path for path in paths]
