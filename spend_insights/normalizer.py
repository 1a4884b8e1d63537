"""
normalizer.py — Vendor Name Normalisation and String Similarity.

Two raw vendor strings that normalise to the same value are treated as the
same underlying supplier. Residual typographic variation inside a normalised
bucket is scored with a Levenshtein-based similarity in [0, 1].
"""

import re

# Legal-entity suffixes removed as whole words
LEGAL_SUFFIXES = ("inc", "corp", "corporation", "llc", "ltd", "limited", "co", "company")

_PUNCTUATION_RE = re.compile(r"[^\w\s]")
_SUFFIX_RE = re.compile(r"\b(" + "|".join(LEGAL_SUFFIXES) + r")\b")
_WHITESPACE_RE = re.compile(r"\s+")


def normalize_vendor_name(name) -> str:
    """Reduce a raw vendor string to its matching key.

    Lower-cases, strips punctuation, drops legal suffix tokens and collapses
    whitespace. Non-string or empty input yields an empty string.

    Args:
        name: Raw vendor name as it appeared in the source data.

    Returns:
        Normalised vendor key, e.g. 'ACME Corporation' -> 'acme'.
    """
    if not isinstance(name, str) or not name:
        return ""
    normalized = _PUNCTUATION_RE.sub("", name.lower())
    normalized = _SUFFIX_RE.sub("", normalized)
    return _WHITESPACE_RE.sub(" ", normalized).strip()


def levenshtein_distance(a: str, b: str) -> int:
    """Wagner-Fischer edit distance using two rolling rows."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    prev_row = list(range(len(b) + 1))
    curr_row = [0] * (len(b) + 1)
    for i in range(1, len(a) + 1):
        curr_row[0] = i
        for j in range(1, len(b) + 1):
            cost = 0 if a[i - 1] == b[j - 1] else 1
            curr_row[j] = min(
                prev_row[j] + 1,
                curr_row[j - 1] + 1,
                prev_row[j - 1] + cost,
            )
        prev_row, curr_row = curr_row, prev_row
    return prev_row[len(b)]


def string_similarity(a: str, b: str) -> float:
    """Edit-distance similarity normalised by the longer string's length.

    Returns:
        1 - distance / len(longer), so identical strings score 1.0.
    """
    if a == b:
        return 1.0
    longer = max(len(a), len(b))
    return (longer - levenshtein_distance(a, b)) / longer
