import re
import unicodedata
from typing import Iterable, Mapping, Optional

from qcm.shared.constants import (
    CATEGORY_KEYWORDS,
    ELABORATION_KEYWORDS,
    SHORT_RESPONSE_THRESHOLD,
    VAGUE_RESPONSES,
)

EMAIL_REGEX = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def _normalize_text(text: str) -> str:
    """Normalizes a string by removing accents, converting to lowercase, and stripping whitespace."""
    s = "".join(
        c
        for c in unicodedata.normalize("NFD", text)
        if unicodedata.category(c) != "Mn"
    )
    return s.lower().strip()


def is_valid_email(email: str) -> bool:
    return bool(email) and EMAIL_REGEX.match(email.strip()) is not None


def is_short_response(
    response: str, threshold: int = SHORT_RESPONSE_THRESHOLD
) -> bool:
    return len(response.strip()) < threshold


def is_vague_response(
    response: str, vague_responses: Iterable[str] = VAGUE_RESPONSES
) -> bool:
    """
    True when the whole answer is one of the vague responses ("oui", "ok",
    "je ne sais pas"...). Accents and case are ignored.
    """
    normalized = _normalize_text(response)
    return any(normalized == _normalize_text(vague) for vague in vague_responses)


def needs_elaboration(
    response: str, keywords: Iterable[str] = ELABORATION_KEYWORDS
) -> bool:
    """
    True when the answer hints at ambiguity or complexity ("ça dépend",
    "c'est compliqué"...), matched as a substring.
    """
    normalized = _normalize_text(response)
    return any(_normalize_text(keyword) in normalized for keyword in keywords)


def detect_question_category(
    text: str,
    category_keywords: Mapping[str, Iterable[str]] = CATEGORY_KEYWORDS,
) -> Optional[str]:
    """
    Tags a generated question with the first category whose keyword list
    matches a substring of the lower-cased text.

    Accents are kept: "âge" must not match "usage" or "message".

    Returns:
        The category value, or None when no keyword matches.
    """
    lowered = text.lower()
    for category, keywords in category_keywords.items():
        if any(keyword in lowered for keyword in keywords):
            return getattr(category, "value", category)
    return None
