"""Span location: find a fix's original text inside a document.

Three strategies, each strictly more tolerant than the one before it:

* exact substring containment
* whitespace-tolerant regex (token content and order preserved, spacing free)
* fuzzy tokens (significant tokens in order, separated by short arbitrary gaps)

``locate`` tries them in that order and returns the first match, so a loose
strategy only runs once the stricter ones have failed.
"""

from __future__ import annotations

import re

from docpatch.core.config import MatchConfig
from docpatch.core.models import MatchStrategy, SpanMatch


def find_exact(document: str, original: str, config: MatchConfig | None = None) -> SpanMatch | None:
    """Plain substring search."""
    if not original:
        return None
    start = document.find(original)
    if start == -1:
        return None
    return SpanMatch(
        strategy=MatchStrategy.EXACT,
        start=start,
        end=start + len(original),
        text=original,
    )


def whitespace_pattern(original: str) -> re.Pattern[str] | None:
    """Escape the candidate and let every whitespace run match ``\\s+``."""
    tokens = original.strip().split()
    if not tokens:
        return None
    return re.compile(r"\s+".join(re.escape(token) for token in tokens))


def find_whitespace_tolerant(
    document: str, original: str, config: MatchConfig | None = None
) -> SpanMatch | None:
    pattern = whitespace_pattern(original)
    if pattern is None:
        return None
    return _search(pattern, document, MatchStrategy.WHITESPACE_TOLERANT)


def fuzzy_pattern(original: str, config: MatchConfig | None = None) -> re.Pattern[str] | None:
    """Anchor on the significant tokens, allowing a bounded gap between them.

    Returns None when too few tokens survive the length filter to make a
    trustworthy anchor.
    """
    config = config or MatchConfig()
    tokens = [t for t in original.strip().split() if len(t) >= config.min_token_length]
    if len(tokens) < config.min_tokens:
        return None
    gap = f".{{0,{config.max_gap}}}?"
    return re.compile(gap.join(re.escape(t) for t in tokens), re.DOTALL)


def find_fuzzy_tokens(
    document: str, original: str, config: MatchConfig | None = None
) -> SpanMatch | None:
    pattern = fuzzy_pattern(original, config)
    if pattern is None:
        return None
    return _search(pattern, document, MatchStrategy.FUZZY_TOKEN)


# Order matters: precision first, recall last.
STRATEGIES = (
    find_exact,
    find_whitespace_tolerant,
    find_fuzzy_tokens,
)


def locate(document: str, original: str, config: MatchConfig | None = None) -> SpanMatch | None:
    """Return the first strategy's match for ``original``, or None."""
    for strategy in STRATEGIES:
        match = strategy(document, original, config)
        if match is not None:
            return match
    return None


def _search(pattern: re.Pattern[str], document: str, strategy: MatchStrategy) -> SpanMatch | None:
    m = pattern.search(document)
    if m is None:
        return None
    return SpanMatch(
        strategy=strategy,
        start=m.start(),
        end=m.end(),
        text=m.group(0),
        pattern=pattern,
    )
