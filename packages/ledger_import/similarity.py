"""String similarity kernel used by duplicate detection and entity resolution.

All functions are pure. Scores are floats in ``[0, 1]`` except
:func:`levenshtein_distance`, which returns an edit count.

``normalize_text`` is the single case/whitespace normalization shared by the
duplicate detectors and the resolver; ``normalize_business_name`` additionally
drops punctuation and legal-form suffixes for name comparison.
"""

from __future__ import annotations

import re
import unicodedata

_WS_RE = re.compile(r"\s+")
_PUNCT_RE = re.compile(r"[^\w\s]")
_SUFFIX_RE = re.compile(r"\b(?:inc|llc|corp|company|co|construction|const|ltd|limited)\b")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")


def normalize_text(s: str | None) -> str:
    """NFKC-normalize, collapse internal whitespace, trim and casefold."""

    if not s:
        return ""
    s = unicodedata.normalize("NFKC", s)
    return _WS_RE.sub(" ", s).strip().casefold()


def normalize_business_name(s: str | None) -> str:
    """Lowercase, strip punctuation and common legal-form/trade suffixes.

    ``"Jon's Plumbing Co."`` and ``"Jons Plumbing"`` both become
    ``"jons plumbing"``.
    """

    s = normalize_text(s)
    s = _PUNCT_RE.sub("", s)
    s = _SUFFIX_RE.sub("", s)
    return _WS_RE.sub(" ", s).strip()


def normalize_code(s: str | None) -> str:
    """Lowercase alphanumerics only; used to compare project/work-order codes."""

    return _NON_ALNUM_RE.sub("", normalize_text(s))


def levenshtein_distance(a: str, b: str) -> int:
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    # Two-row dynamic programming; keep the shorter string in the inner loop
    if len(a) < len(b):
        a, b = b, a
    prev = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        cur = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            cur.append(min(prev[j] + 1, cur[j - 1] + 1, prev[j - 1] + cost))
        prev = cur
    return prev[-1]


def edit_similarity(a: str, b: str) -> float:
    """``(maxLen - distance) / maxLen``; two empty strings are identical."""

    max_len = max(len(a), len(b))
    if max_len == 0:
        return 1.0
    return (max_len - levenshtein_distance(a, b)) / max_len


def jaro_winkler(a: str, b: str) -> float:
    """Jaro-Winkler similarity with a 0.1 prefix scale over at most 4 chars."""

    if a == b:
        return 1.0
    len_a, len_b = len(a), len(b)
    if len_a == 0 or len_b == 0:
        return 0.0

    window = max(len_a, len_b) // 2 - 1
    if window < 0:
        return 0.0

    a_matched = [False] * len_a
    b_matched = [False] * len_b
    matches = 0
    for i, ch in enumerate(a):
        lo = max(0, i - window)
        hi = min(i + window + 1, len_b)
        for j in range(lo, hi):
            if b_matched[j] or b[j] != ch:
                continue
            a_matched[i] = b_matched[j] = True
            matches += 1
            break
    if matches == 0:
        return 0.0

    transpositions = 0
    k = 0
    for i in range(len_a):
        if not a_matched[i]:
            continue
        while not b_matched[k]:
            k += 1
        if a[i] != b[k]:
            transpositions += 1
        k += 1

    jaro = (
        matches / len_a + matches / len_b + (matches - transpositions / 2) / matches
    ) / 3

    prefix = 0
    for ca, cb in zip(a[:4], b[:4]):
        if ca != cb:
            break
        prefix += 1
    return jaro + 0.1 * prefix * (1 - jaro)


def tokenize(s: str | None) -> set[str]:
    return {t for t in normalize_business_name(s).split() if len(t) > 1}


def token_similarity(a: str | None, b: str | None) -> float:
    """Jaccard similarity of the business-normalized token sets."""

    ta, tb = tokenize(a), tokenize(b)
    union = ta | tb
    if not union:
        return 0.0
    return len(ta & tb) / len(union)


def name_confidence(query: str, candidate: str) -> float:
    """Blend of the three metrics on a 0-100 scale, rounded to 2 decimals.

    ``max(0.4*JW + 0.3*edit + 0.3*token, 0.6*token + 0.4*JW)``: Jaro-Winkler on
    business-normalized names, edit similarity on case/whitespace-normalized
    names and token Jaccard.
    """

    jw = jaro_winkler(normalize_business_name(query), normalize_business_name(candidate)) * 100
    edit = edit_similarity(normalize_text(query), normalize_text(candidate)) * 100
    tok = token_similarity(query, candidate) * 100
    score = max(jw * 0.4 + edit * 0.3 + tok * 0.3, tok * 0.6 + jw * 0.4)
    return round(score, 2)


__all__ = [
    "normalize_text",
    "normalize_business_name",
    "normalize_code",
    "levenshtein_distance",
    "edit_similarity",
    "jaro_winkler",
    "tokenize",
    "token_similarity",
    "name_confidence",
]
