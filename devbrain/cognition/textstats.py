# devbrain/cognition/textstats.py
from __future__ import annotations

import re
from typing import List, Set

_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")
_WORD = re.compile(r"[a-z0-9_']+")
_FENCE = re.compile(r"```.*?```", re.DOTALL)

STOPWORDS: Set[str] = {
    "about", "after", "again", "also", "because", "been", "before", "being", "could",
    "does", "doing", "from", "have", "here", "into", "just", "like", "make", "more",
    "need", "only", "please", "should", "some", "than", "that", "their", "them", "then",
    "there", "these", "they", "this", "those", "want", "what", "when", "where", "which",
    "while", "with", "would", "your",
}


def sentences(text: str) -> List[str]:
    return [s for s in (p.strip() for p in _SENTENCE_SPLIT.split(text.strip())) if s]


def prose(text: str) -> str:
    """`text` with fenced code blocks blanked out."""
    return _FENCE.sub(" ", text)


def words(text: str) -> List[str]:
    return _WORD.findall(text.lower())


def query_terms(query: str) -> Set[str]:
    return {w for w in words(query) if len(w) > 3 and w not in STOPWORDS}


def term_overlap(query: str, text: str) -> float:
    """Fraction of meaningful query terms present in `text`; None-safe, 0..1."""
    terms = query_terms(query or "")
    if not terms:
        return 1.0
    present = set(words(text or ""))
    return len(terms & present) / len(terms)


def avg_sentence_words(text: str) -> float:
    parts = sentences(text)
    if not parts:
        return 0.0
    return sum(len(words(p)) for p in parts) / len(parts)


def has_structure(text: str) -> bool:
    return bool(re.search(r"^\s*(?:[-*•]|\d+[.)])\s+", text, re.MULTILINE)) or "\n\n" in text
