"""Normalization and hashing for identity/location fields sent to Meta.

Values are normalized before hashing so that "São Paulo" and "sao paulo", or
"01310-100" and "01310100", produce the same digest. Hashing is plain
SHA-256 with no secret key: the digest has to match what Meta computes on
its side.
"""

import hashlib
import re
import unicodedata
from typing import Any, Iterable, Mapping, Sequence

_COMBINING_MARKS = re.compile("[\u0300-\u036f]")
_NON_ALPHANUMERIC = re.compile(r"[^0-9a-z]")


def normalize(value: Any, strip_non_alphanumeric: bool = False) -> str | None:
    """Canonical form of a value for hashing.

    Trims, lowercases, folds accents (NFD then drops combining marks) and
    optionally drops every character outside ``[0-9a-z]``.

    Args:
        value: Raw value. Non-strings are converted with ``str()``.
        strip_non_alphanumeric: Drop punctuation and spaces (postal codes).

    Returns:
        Normalized string, or None for None/empty input.
    """
    if value is None:
        return None
    text = str(value).strip().lower()
    if not text:
        return None

    normalized = _COMBINING_MARKS.sub("", unicodedata.normalize("NFD", text))
    if strip_non_alphanumeric:
        normalized = _NON_ALPHANUMERIC.sub("", normalized)
    return normalized


def hash_value(value: str | None) -> str | None:
    """SHA-256 hex digest of the UTF-8 bytes of value. None for None/empty."""
    if not value:
        return None
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def hash_normalized(value: Any, strip_non_alphanumeric: bool = False) -> str | None:
    """normalize() then hash_value(); None when nothing survives normalization."""
    return hash_value(normalize(value, strip_non_alphanumeric=strip_non_alphanumeric))


def pick_first_present(
    sources: Sequence[Mapping[str, Any] | None],
    keys: Iterable[str],
) -> Any:
    """Return the first present value, scanning sources then keys in order.

    A value is present when it is neither None nor the empty string. Sources
    that are None or not mappings are skipped.
    """
    keys = tuple(keys)
    for source in sources:
        if not isinstance(source, Mapping):
            continue
        for key in keys:
            val = source.get(key)
            if val is not None and val != "":
                return val
    return None
