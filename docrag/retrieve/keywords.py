from __future__ import annotations

import re
from typing import List, Tuple

STOP_WORDS = frozenset(
    """
    the a an and or but in on at to for of with by from
    is are was were be been being have has had do does did
    will would could should may might must can
    this that these those i you he she it we they
    what which who when where why how
    """.split()
)

MIN_KEYWORD_LEN = 3
PHRASE_BONUS = 1.5

_WORD_RE = re.compile(r"\w+")


def extract_keywords(query: str) -> List[str]:
    """Lower-cased content words of `query`, in order, without duplicates."""
    out: List[str] = []
    for w in _WORD_RE.findall((query or "").lower()):
        if len(w) >= MIN_KEYWORD_LEN and w not in STOP_WORDS and w not in out:
            out.append(w)
    return out


def keyword_score(text: str, keywords: List[str]) -> Tuple[float, List[str], bool]:
    """
    Fraction of `keywords` found in `text` (case-insensitive substring match).

    Returns (score, matched, phrase_match). `phrase_match` is set when every
    keyword matched and the keywords also appear verbatim as one phrase.
    The score itself never exceeds 1.0.
    """
    if not keywords:
        return 0.0, [], False
    low = (text or "").lower()
    matched = [k for k in keywords if k in low]
    score = len(matched) / len(keywords)
    phrase = len(matched) == len(keywords) and " ".join(keywords) in low
    if phrase:
        score = min(1.0, score * PHRASE_BONUS)
    return score, matched, phrase
