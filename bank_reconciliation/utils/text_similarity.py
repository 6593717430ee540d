"""
Text normalization and name matching for bank labels.
"""

import re
import unicodedata
from dataclasses import dataclass, field
from typing import List, Optional

from rapidfuzz import fuzz

from ..config import Settings, get_settings


_NON_ALNUM = re.compile(r"[^0-9a-z]+")

# Legal forms and filler words that carry no identity
NAME_STOPWORDS = frozenset({
    "sarl", "sarlau", "ste", "societe", "soc", "ets", "etablissements",
    "cie", "groupe", "les", "des", "and", "the", "ltd", "inc",
})


def strip_accents(text: str) -> str:
    """Remove diacritics: 'Société' -> 'Societe'."""
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_text(text: Optional[str]) -> str:
    """Lowercase, accent-free, punctuation collapsed to single spaces."""
    if not text:
        return ""
    cleaned = _NON_ALNUM.sub(" ", strip_accents(text).lower())
    return cleaned.strip()


def compact_text(text: Optional[str]) -> str:
    """Normalized text with all separators removed, for reference codes."""
    return normalize_text(text).replace(" ", "")


def tokenize(text: Optional[str]) -> List[str]:
    normalized = normalize_text(text)
    return normalized.split() if normalized else []


@dataclass
class NameOverlap:
    """Result of comparing a client name with a bank label."""
    ratio: float = 0.0  # matched / significant client tokens
    matched_tokens: List[str] = field(default_factory=list)
    significant_tokens: List[str] = field(default_factory=list)


class TokenOverlapMatcher:
    """
    Matches client names against free-text bank labels.

    A client token counts as present when some label token is equal to it
    or close enough under rapidfuzz's ratio (absorbs plural and truncation
    differences such as CIMENT / CIMENTS).
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.min_length = self.settings.min_name_token_length
        self.similarity = self.settings.name_token_similarity

    def significant_tokens(self, name: str) -> List[str]:
        """Distinct tokens long enough to identify a client, in order."""
        seen = []
        for token in tokenize(name):
            if len(token) < self.min_length or token in NAME_STOPWORDS:
                continue
            if token not in seen:
                seen.append(token)
        return seen

    def overlap(self, client_name: str, label: str) -> NameOverlap:
        client_tokens = self.significant_tokens(client_name)
        if not client_tokens:
            return NameOverlap()

        label_tokens = set(tokenize(label))
        matched = [
            token for token in client_tokens
            if self._token_present(token, label_tokens)
        ]

        return NameOverlap(
            ratio=len(matched) / len(client_tokens),
            matched_tokens=matched,
            significant_tokens=client_tokens,
        )

    def _token_present(self, token: str, label_tokens: set) -> bool:
        if token in label_tokens:
            return True
        return any(
            fuzz.ratio(token, candidate) >= self.similarity
            for candidate in label_tokens
            if len(candidate) >= self.min_length
        )


def contains_reference(
    reference_code: Optional[str],
    *haystacks: Optional[str],
    min_length: int = 4,
) -> bool:
    """
    Check whether a reference code appears in any of the given texts.
    Comparison ignores case, accents and separators ('FAC-2024/001' == 'fac 2024 001').
    """
    needle = compact_text(reference_code)
    if len(needle) < min_length:
        return False
    return any(needle in compact_text(text) for text in haystacks if text)
