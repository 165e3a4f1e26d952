import re
from typing import Callable, Iterable, Optional

from rapidfuzz import fuzz, process

from spendsort.models import MerchantKnowledgeEntry, MerchantResolution
from spendsort.preprocessing.aliases import CANONICAL_NAMES
from spendsort.utils.logger import get_logger

log = get_logger("preprocessing")

UNKNOWN_MERCHANT = "Unknown Merchant"

_PROVINCES = "ab|bc|mb|nb|nl|nt|ns|nu|on|pe|qc|sk|yt"
_POSTAL = r"[a-z]\d[a-z]\s*\d[a-z]\d"

# Applied in order; later patterns assume the earlier ones already ran.
_STRIP_PATTERNS = (
    # ref#123, trans-9876, id 555, #3421
    re.compile(r"(?:\b(?:ref|trans|transaction|id|no|num)|#)\s*[:#-]?\s*\d+\b"),
    # 2024-01-15, 01/15/2024
    re.compile(r"\b\d{1,4}[/-]\d{1,2}[/-]\d{1,4}\b"),
    # 14:30, 08:15:30
    re.compile(r"\b\d{1,2}:\d{2}(?::\d{2})?\b"),
    # store #123, location 456
    re.compile(r"\b(?:store|location|branch|unit)\s*#?\s*\d+\b"),
    # ", toronto, on" / " - scarborough, on" at the end, optionally before a postal code
    re.compile(
        rf"[,\-]\s*[a-z][a-z\s]*?\s*,?\s*\b(?:{_PROVINCES})\b"
        rf"(?=(?:\s*{_POSTAL})?[^a-z0-9]*$)"
    ),
    # " toronto on m5v3a8"; without separators the postal code is required
    re.compile(rf"\s+[a-z]+\s+(?:{_PROVINCES})\b(?=\s*{_POSTAL}[^a-z0-9]*$)"),
    re.compile(rf"\b{_POSTAL}\b"),
    re.compile(r"\b\d{3}[-.\s]?\d{3}[-.\s]?\d{4}\b"),
    re.compile(r"https?://\S+"),
    re.compile(r"www\.\S+"),
    re.compile(r"[a-z0-9._%+-]+@[a-z0-9.-]+\.[a-z]{2,}"),
)
_DISALLOWED_CHARS = re.compile(r"[^a-z0-9\s&']")
_WHITESPACE = re.compile(r"\s+")


def _clean_once(text: str) -> str:
    text = text.lower()
    for pattern in _STRIP_PATTERNS:
        text = pattern.sub("", text)
    text = _DISALLOWED_CHARS.sub(" ", text)
    return _WHITESPACE.sub(" ", text).strip()


def normalize(raw: Optional[str]) -> str:
    """
    Clean a raw bank-statement merchant string into a comparable form.

    Steps:
    1. Lowercase
    2. Remove reference ids, dates, times, store numbers
    3. Remove trailing city/province, postal codes, phone numbers, URLs, emails
    4. Replace special characters, collapse whitespace

    The cleaning pass is repeated until it no longer changes the text, so the
    function is idempotent. Inputs shorter than two characters after cleaning
    map to "Unknown Merchant".
    """
    if not isinstance(raw, str) or raw == UNKNOWN_MERCHANT:
        return UNKNOWN_MERCHANT

    text = raw
    while True:
        cleaned = _clean_once(text)
        if len(cleaned) < 2:
            return UNKNOWN_MERCHANT
        if cleaned == text:
            return cleaned
        text = cleaned


def _capitalize_words(text: str) -> str:
    return " ".join(word[:1].upper() + word[1:] for word in text.split(" "))


def canonicalize(normalized: str) -> str:
    """Map a normalized merchant name to its display name, e.g. "tims" -> "Tim Hortons"."""
    if not normalized:
        return UNKNOWN_MERCHANT
    canonical = CANONICAL_NAMES.get(normalized.lower().strip())
    if canonical is not None:
        return canonical
    return _capitalize_words(normalized)


def resolve_merchant(
    raw: Optional[str],
    known_merchants: Optional[Callable[[], Iterable[MerchantKnowledgeEntry]]] = None,
    threshold: float = 0.7,
) -> MerchantResolution:
    """
    Full display-name resolution used by the import flow.

    Order: alias table, then fuzzy match against the knowledge base
    (`known_merchants` is called lazily), then capitalized fallback.
    """
    original = raw if isinstance(raw, str) else ""
    preprocessed = normalize(raw)

    canonical = CANONICAL_NAMES.get(preprocessed.lower())
    if canonical is not None:
        return MerchantResolution(
            original=original,
            preprocessed=preprocessed,
            normalized=canonical,
            confidence=0.95,
            source="canonical_map",
        )

    if known_merchants is not None and preprocessed != UNKNOWN_MERCHANT:
        try:
            match = _fuzzy_match(preprocessed, list(known_merchants()), threshold)
        except Exception as e:
            log.warning("Knowledge base lookup failed", extra={"error": str(e)})
            match = None
        if match is not None:
            entry, score = match
            return MerchantResolution(
                original=original,
                preprocessed=preprocessed,
                normalized=entry.normalized_name,
                matched_from=entry.merchant_name,
                confidence=score * 0.9,
                source="knowledge_base",
            )

    return MerchantResolution(
        original=original,
        preprocessed=preprocessed,
        normalized=_capitalize_words(preprocessed),
        confidence=0.6,
        source="preprocessing",
    )


def _fuzzy_match(query: str, entries: list[MerchantKnowledgeEntry], threshold: float):
    """Best entry by token-sort ratio over raw and normalized names, or None."""
    if not entries:
        return None
    choices: list[str] = []
    owners: list[MerchantKnowledgeEntry] = []
    for entry in entries:
        for name in (entry.merchant_name, entry.normalized_name):
            if name:
                choices.append(name.lower())
                owners.append(entry)
    result = process.extractOne(
        query,
        choices,
        scorer=fuzz.token_sort_ratio,
        score_cutoff=threshold * 100.0,
    )
    if result is None:
        return None
    _, score, index = result
    return owners[index], score / 100.0


__all__ = ["UNKNOWN_MERCHANT", "normalize", "canonicalize", "resolve_merchant"]
