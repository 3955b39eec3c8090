"""Normalization functions for membership form answers.

All functions accept str | None.  Unlike database-bound helpers, the
directory-facing normalizers return "" (not None) for unusable input so the
result can be written straight into a directory cell.
"""

from __future__ import annotations

import re
from typing import NamedTuple

LABEL_KEY_PREFIX = "custom."
LEADERSHIP_MARKER = "chapter head"

_PHONE_SEPARATORS_RE = re.compile(r"[-() ]")
_PHONE_DIGITS_RE = re.compile(r"[0-9]{10}")
_LABEL_STRIP_RE = re.compile(r"[^a-z0-9_ ]+")
_LABEL_CAMEL_RE = re.compile(r"\s+(\w)")


# ---------------------------------------------------------------------------
# Rule 1: trim
# ---------------------------------------------------------------------------

def trim(value: str | None) -> str | None:
    """Strip leading/trailing whitespace; treat empty string as None."""
    if value is None:
        return None
    v = value.strip()
    return v if v else None


# ---------------------------------------------------------------------------
# Rule 2: normalize_space
# ---------------------------------------------------------------------------

def normalize_space(value: str | None) -> str | None:
    """Collapse internal runs of whitespace to single spaces, then trim."""
    v = trim(value)
    if v is None:
        return None
    return re.sub(r"\s+", " ", v)


# ---------------------------------------------------------------------------
# Rule 3: normalize_email
# ---------------------------------------------------------------------------

def normalize_email(value: str | None) -> str:
    """Lowercase and trim an email address ("" when blank)."""
    v = trim(value)
    if v is None:
        return ""
    return v.lower()


# ---------------------------------------------------------------------------
# Rule 4: normalize_phone
# ---------------------------------------------------------------------------

def normalize_phone(value: str | None) -> str:
    """Return a phone number as ddd-ddd-dddd, or "" if it is not 10 ASCII digits.

    Hyphens, parentheses and spaces are separators and are dropped.  Any
    other character left over (letters, '+', '.') makes the number unusable.

    Example: "(123) 456 7890" -> "123-456-7890"
    """
    if not value:
        return ""
    digits = _PHONE_SEPARATORS_RE.sub("", value).strip()
    if not _PHONE_DIGITS_RE.fullmatch(digits):
        return ""
    return f"{digits[:3]}-{digits[3:6]}-{digits[6:]}"


# ---------------------------------------------------------------------------
# Rule 5: normalize_name  (display form written to the directory)
# ---------------------------------------------------------------------------

def normalize_name(value: str | None) -> str:
    """Capitalize each word of a name and drop emoji / non-Latin glyphs.

    Characters above code point 255 are removed, not substituted.  Internal
    whitespace is kept as entered; only the ends are trimmed.

    Example: "fInn KElly" -> "Finn Kelly"
    """
    if not value:
        return ""
    out: list[str] = []
    capitalize_next = True
    for ch in value:
        if ord(ch) > 0xFF:
            continue
        if ch.isspace():
            out.append(ch)
            capitalize_next = True
        elif capitalize_next:
            out.append(ch.upper())
            capitalize_next = False
        else:
            out.append(ch.lower())
    return "".join(out).strip()


# ---------------------------------------------------------------------------
# Helper: split_name
# ---------------------------------------------------------------------------

class NameParts(NamedTuple):
    first: str
    last: str


def split_name(full_name: str | None) -> NameParts:
    """Split a full name into first and last name.

    - "John Smith Jr." -> ("John", "Smith Jr.")
    - "Madonna"        -> ("Madonna", "")
    - blank            -> ("", "")
    """
    v = normalize_space(full_name)
    if not v:
        return NameParts("", "")
    first, _, rest = v.partition(" ")
    return NameParts(first, rest)


# ---------------------------------------------------------------------------
# Helper: normalize_label_key  (contact-store label keys)
# ---------------------------------------------------------------------------

def normalize_label_key(label: str | None) -> str | None:
    """Convert a label into a contact-store custom label key.

    Example: "Chapter Head" -> "custom.chapterHead"
    """
    if not label:
        return None
    v = label.lower().strip()
    v = _LABEL_STRIP_RE.sub("", v)
    v = _LABEL_CAMEL_RE.sub(lambda m: m.group(1).upper(), v)
    v = v.replace(" ", "")
    return LABEL_KEY_PREFIX + v


def detect_leadership_role(title: str | None) -> bool:
    """True if any comma-separated part of a title names a chapter head.

    Example: "Strategy, Chapter Head" -> True
    """
    if not title:
        return False
    return any(LEADERSHIP_MARKER in part.strip().lower() for part in title.split(","))
