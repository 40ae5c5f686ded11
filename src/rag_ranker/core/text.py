"""
Query term helpers shared by the retriever explanations and keyword scoring.
"""

from __future__ import annotations

import re
from typing import List, Tuple

_WHITESPACE = re.compile(r"\s+")


def query_terms(query: str, min_length: int = 3) -> List[str]:
    """
    Split a query into lowercase whitespace-separated terms of at least
    ``min_length`` characters.
    """
    return [t for t in _WHITESPACE.split(query.lower()) if len(t) >= min_length]


def match_terms(terms: List[str], text: str) -> Tuple[List[str], float]:
    """
    Return the terms that literally occur in ``text`` and the match ratio.

    The ratio is 0.0 when there are no terms.
    """
    haystack = (text or "").lower()
    matched = [t for t in terms if t in haystack]
    ratio = len(matched) / len(terms) if terms else 0.0
    return matched, ratio
