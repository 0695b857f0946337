"""Name Normalization Utilities.

This module provides functions to normalize customer/vendor names
for consistent matching. The normalization process:
1. Unicode NFKC + case folding
2. Drops a trailing parenthetical abbreviation ("(ACCA)")
3. Removes punctuation (periods/apostrophes join, the rest split)
4. Collapses whitespace
5. Canonicalizes trailing legal suffixes ("Limited" -> "ltd")

Only formatting noise is removed: every word of the input survives,
so token comparisons on the result stay meaningful.

Examples:
    "Accounting and Corporate Authority (ACCA)" -> "accounting and corporate authority"
    "Nobody Business Pte. Ltd."                -> "nobody business pte ltd"
    "ACME Private Limited"                     -> "acme pte ltd"
    "O'Brien & Sons, L.L.C."                   -> "obrien and sons llc"
"""

import re
import unicodedata
from typing import Iterable, List


# Trailing "(ABC)" written in capitals, checked before case folding
_TRAILING_ABBREVIATION = re.compile(r"\s*\(\s*[A-Z][A-Z0-9&.]{1,9}\s*\)\s*$")

# Joined inside words: "L.L.C." -> "LLC", "O'Brien" -> "OBrien"
_JOINING_PUNCTUATION = re.compile(r"[.'’`]")

_NON_WORD = re.compile(r"[^\w\s]|_")
_WHITESPACE = re.compile(r"\s+")

# Long legal-suffix spellings and their canonical short form
LEGAL_SUFFIX_CANONICAL = {
    "limited": "ltd",
    "private": "pte",
    "incorporated": "inc",
    "corporation": "corp",
    "company": "co",
    "ltd": "ltd",
    "pte": "pte",
    "inc": "inc",
    "corp": "corp",
    "co": "co",
    "llc": "llc",
    "llp": "llp",
    "lp": "lp",
    "plc": "plc",
    "pllc": "pllc",
    "gmbh": "gmbh",
    "bhd": "bhd",
    "sdn": "sdn",
    "pty": "pty",
}


def normalize_name(raw: str) -> str:
    """Normalize a customer/vendor name for matching.

    Total and idempotent: normalize_name(normalize_name(x)) == normalize_name(x).

    Args:
        raw: Raw name from extraction

    Returns:
        Normalized name string (may be empty)

    Examples:
        >>> normalize_name("Accounting and Corporate Authority (ACCA)")
        'accounting and corporate authority'
        >>> normalize_name("  Nobody   Pte. Ltd. ")
        'nobody pte ltd'
    """
    if not raw:
        return ""

    text = unicodedata.normalize("NFKC", raw).strip()

    # Abbreviation in parentheses restates the name; drop it
    text = _TRAILING_ABBREVIATION.sub("", text)

    text = unicodedata.normalize("NFKC", text.casefold())
    text = text.replace("&", " and ")
    text = _JOINING_PUNCTUATION.sub("", text)
    text = _NON_WORD.sub(" ", text)
    text = _WHITESPACE.sub(" ", text).strip()

    if not text:
        return ""

    return " ".join(_canonicalize_suffixes(text.split(" ")))


def _canonicalize_suffixes(tokens: List[str]) -> List[str]:
    """Rewrite the trailing run of legal-suffix words to canonical form."""
    result = list(tokens)
    i = len(result) - 1
    # Never rewrite the first token: "Company Secretaries Ltd" keeps "company"
    while i > 0 and result[i] in LEGAL_SUFFIX_CANONICAL:
        result[i] = LEGAL_SUFFIX_CANONICAL[result[i]]
        i -= 1
    return result


def tokenize_name(normalized: str) -> List[str]:
    """Split a normalized name into whitespace-delimited tokens."""
    if not normalized:
        return []
    return normalized.split()


def significant_tokens(normalized: str, insignificant: Iterable[str] = ()) -> List[str]:
    """Tokens that identify the entity.

    Removes insignificant tokens (legal suffixes, connectives) and
    returns unique tokens preserving order.

    Examples:
        >>> significant_tokens("nobody business pte ltd", {"pte", "ltd"})
        ['nobody', 'business']
    """
    skip = set(insignificant)
    seen = set()
    result = []
    for token in tokenize_name(normalized):
        if token in skip or token in seen:
            continue
        seen.add(token)
        result.append(token)
    return result
