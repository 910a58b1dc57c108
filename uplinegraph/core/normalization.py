"""Value normalisation helpers shared by the record normaliser and indexes."""

from __future__ import annotations

import math
import re
from collections.abc import Sequence
from decimal import Decimal
from typing import Any

__all__ = [
    "first_value",
    "format_display_name",
    "is_truthy",
    "join_name_parts",
    "looks_like_auto_cased_name",
    "normalize_digits",
    "normalize_email",
    "normalize_text",
    "safe_trim",
    "smart_title_case",
]

_NON_DIGITS = re.compile(r"\D+")
_NON_ALNUM = re.compile(r"[^a-z0-9]+")
_DASHES = re.compile(r"[–—]")
_WORD = re.compile(r"^(\W*)(\w[\w'’.-]*?)(\.*)([^\w.]*)$")
_APOSTROPHES = re.compile(r"(['’])")
_TRUTHY_STRINGS = frozenset({"yes", "true", "1", "on", "checked"})
_LOWER_PARTICLES = frozenset(
    {"van", "von", "der", "den", "de", "da", "del", "la", "le"}
)
_ROMAN_NUMERALS = frozenset({"ii", "iii", "iv", "vi", "vii", "viii"})


def first_value(value: Any) -> Any:
    """Unwrap single-element (or longer) list values to their first entry."""

    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


def normalize_digits(value: Any) -> str:
    """Strip every non-digit character; non-text values normalise to ``""``."""

    value = first_value(value)
    if isinstance(value, bool) or value is None:
        return ""
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return ""
        if value.is_integer():
            value = int(value)
    if isinstance(value, (int, Decimal)):
        value = str(value)
    if not isinstance(value, str):
        return ""
    return _NON_DIGITS.sub("", value)


def normalize_email(value: Any) -> str:
    value = first_value(value)
    if not isinstance(value, str):
        return ""
    return value.strip().lower()


def normalize_text(value: Any) -> str:
    """Case-fold and collapse punctuation so free text can be compared."""

    text = _DASHES.sub("-", str(value or "")).lower()
    return _NON_ALNUM.sub(" ", text).strip()


def safe_trim(value: Any) -> str:
    value = first_value(value)
    return value.strip() if isinstance(value, str) else ""


def is_truthy(value: Any) -> bool:
    """Interpret CRM checkbox values (strings, numbers, lists) as booleans."""

    if isinstance(value, (list, tuple)):
        return any(is_truthy(entry) for entry in value)
    if isinstance(value, str):
        return value.strip().lower() in _TRUTHY_STRINGS
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0 and not (isinstance(value, float) and math.isnan(value))
    return bool(value)


def looks_like_auto_cased_name(value: str) -> bool:
    """Return True when a name was entered entirely upper- or lower-case."""

    if not any(char.isalpha() for char in value):
        return False
    return value == value.upper() or value == value.lower()


def _title_token(token: str, is_first: bool) -> str:
    lowered = token.lower()
    if lowered in _ROMAN_NUMERALS:
        return lowered.upper()
    if not is_first and lowered in _LOWER_PARTICLES:
        return lowered
    return lowered[:1].upper() + lowered[1:]


def smart_title_case(value: Any) -> str:
    """Title-case a name while respecting hyphens, apostrophes and particles."""

    text = safe_trim(value)
    if not text:
        return ""

    words: list[str] = []
    for word_index, word in enumerate(text.split()):
        match = _WORD.match(word)
        if match is None:
            words.append(word)
            continue
        prefix, core, dots, suffix = match.groups()
        if not any(char.isalpha() for char in core):
            words.append(word)
            continue
        hyphen_parts: list[str] = []
        for hyphen_index, hyphen_part in enumerate(core.split("-")):
            rendered = ""
            for part_index, part in enumerate(_APOSTROPHES.split(hyphen_part)):
                if not part:
                    continue
                if _APOSTROPHES.fullmatch(part):
                    rendered += part
                    continue
                is_first = word_index == 0 and hyphen_index == 0 and part_index == 0
                rendered += _title_token(part, is_first)
            hyphen_parts.append(rendered)
        words.append(f"{prefix}{'-'.join(hyphen_parts)}{dots}{suffix}")
    return " ".join(words)


def format_display_name(value: Any) -> str:
    trimmed = safe_trim(value)
    if not trimmed:
        return ""
    if not looks_like_auto_cased_name(trimmed):
        return trimmed
    return smart_title_case(trimmed)


def join_name_parts(parts: Sequence[Any]) -> str:
    return " ".join(safe_trim(part) for part in parts if safe_trim(part)).strip()
