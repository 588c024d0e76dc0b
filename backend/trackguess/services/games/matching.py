"""Fuzzy comparison of free-text guesses against track artist/title strings."""

import re
import unicodedata

DEFAULT_MATCH_THRESHOLD = 0.70

_PUNCTUATION = re.compile(r'[^\w\s]')
_WHITESPACE = re.compile(r'\s+')


def normalize(text: str) -> str:
    """Lowercase, strip accents and punctuation, collapse whitespace."""
    if not text:
        return ''
    t = unicodedata.normalize('NFD', text.lower())
    t = ''.join(ch for ch in t if not unicodedata.combining(ch))
    t = _PUNCTUATION.sub('', t)
    return _WHITESPACE.sub(' ', t).strip()


def matches(guess: str, target: str, threshold: float = DEFAULT_MATCH_THRESHOLD) -> bool:
    """True when ``guess`` names ``target`` closely enough.

    Exact match after normalization, or one string containing the other with
    the shorter being at least ``threshold`` of the longer's length.
    """
    g = normalize(guess)
    t = normalize(target)
    if not g or not t:
        return False
    if g == t:
        return True
    if g in t or t in g:
        shorter, longer = sorted((len(g), len(t)))
        return shorter / longer >= threshold
    return False
