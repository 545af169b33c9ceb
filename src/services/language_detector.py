"""Heuristic English / Dutch language detection.

Two entry points:

- :func:`detect_language` -- classifies a document for chunk metadata.
  Scores a bounded sample (the first 200 words longer than two
  characters) against common-word lexicons, Dutch digraphs and Dutch
  morphology patterns.
- :func:`detect_preferred_language` -- picks the best language for a chat
  query among the languages a workspace allows.

Both are pure functions; no model download, no network.
"""

from __future__ import annotations

import re
from typing import Sequence

from src.models.chunk import DocumentLanguage
from src.utils.errors import ValidationError

_SAMPLE_WORDS = 200
_MIN_TEXT_LENGTH = 10

_DUTCH_COMMON_WORDS = frozenset(
    {
        "de", "het", "een", "van", "in", "is", "dat", "en", "te", "op", "met",
        "voor", "zijn", "worden", "als", "om", "wordt", "naar", "er", "bij",
        "aan", "ook", "maar", "niet", "deze", "door", "kan", "ze", "uit",
        "meer", "heeft", "of", "dit", "zij", "kunnen", "moet", "welke", "andere",
    }
)

_ENGLISH_COMMON_WORDS = frozenset(
    {
        "the", "be", "to", "of", "and", "a", "in", "that", "have", "i", "it",
        "for", "not", "on", "with", "he", "as", "you", "do", "at", "this",
        "but", "his", "by", "from", "they", "we", "say", "her", "she", "or",
        "an", "will", "my", "one", "all", "would", "there", "their",
    }
)

_DUTCH_DIGRAPHS = ("ij", "aa", "ee", "oo", "uu", "ou", "ei", "au", "eu", "ui")

_DUTCH_PATTERNS = (
    re.compile(r"\b(de|het|een|van|voor|naar|met|aan)\b"),
    re.compile(r"\b\w+(heid|schap|ing|lijk|tje|je)\b"),
    re.compile(r"\b(wordt|kunnen|moeten|zullen|hebben|zijn)\b"),
)

_WORD_SPLIT = re.compile(r"[\s\W]+")

# Query-side scoring used to choose among a workspace's languages.
_QUERY_KEYWORDS: dict[DocumentLanguage, tuple[str, ...]] = {
    DocumentLanguage.EN: ("the", "please", "support", "hello", "thanks", "help", "provide"),
    DocumentLanguage.NL: (
        "de", "het", "een", "hoi", "bedankt", "alsjeblieft", "gebruik", "waarom", "kunt",
    ),
}

_QUERY_PATTERNS: dict[DocumentLanguage, tuple[re.Pattern[str], ...]] = {
    DocumentLanguage.EN: (re.compile(r"ing\b"), re.compile(r"should"), re.compile(r"issue")),
    DocumentLanguage.NL: (
        re.compile(r"\bje\b"),
        re.compile(r"\bgeen\b"),
        re.compile(r"\bworden\b"),
        re.compile(r"\bwij\b"),
    ),
}


def detect_language(text: str) -> DocumentLanguage:
    """Classify *text* as English, Dutch or unknown.

    Returns ``UNKNOWN`` for blank or very short text and when no scoring
    rule fires at all.  A tie between the two scores resolves to English.
    """
    normalised = text.strip().lower()
    if len(normalised) < _MIN_TEXT_LENGTH:
        return DocumentLanguage.UNKNOWN

    words = [w for w in _WORD_SPLIT.split(normalised) if len(w) > 2][:_SAMPLE_WORDS]
    if not words:
        return DocumentLanguage.UNKNOWN

    sample = " ".join(words)
    dutch_score = 0.0
    english_score = 0.0

    for word in words:
        if word in _DUTCH_COMMON_WORDS:
            dutch_score += 2
        if word in _ENGLISH_COMMON_WORDS:
            english_score += 2

    for digraph in _DUTCH_DIGRAPHS:
        dutch_score += sample.count(digraph) * 0.5

    for pattern in _DUTCH_PATTERNS:
        dutch_score += len(pattern.findall(sample))

    if dutch_score + english_score == 0:
        return DocumentLanguage.UNKNOWN
    return DocumentLanguage.NL if dutch_score > english_score else DocumentLanguage.EN


def _query_score(text: str, language: DocumentLanguage) -> int:
    score = 0
    for keyword in _QUERY_KEYWORDS.get(language, ()):
        score += len(re.findall(rf"\b{keyword}\b", text)) * 2
    for pattern in _QUERY_PATTERNS.get(language, ()):
        score += len(pattern.findall(text))
    if language == DocumentLanguage.NL and "ij" in text:
        score += 1
    return score


def detect_preferred_language(
    text: str, allowed: Sequence[DocumentLanguage]
) -> DocumentLanguage:
    """Pick the best-scoring language for *text* among *allowed*.

    A single allowed language is returned as-is; blank text falls back to
    the first allowed language, as do ties.

    Raises
    ------
    ValidationError
        If *allowed* is empty.
    """
    if not allowed:
        raise ValidationError("At least one allowed language is required")
    if len(allowed) == 1:
        return allowed[0]

    normalised = text.strip().lower()
    if not normalised:
        return allowed[0]

    best, best_score = allowed[0], -1
    for language in allowed:
        score = _query_score(normalised, language)
        if score > best_score:
            best, best_score = language, score
    return best
