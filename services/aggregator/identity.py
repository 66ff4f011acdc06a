"""
Identity Key Construction

Every Posting carries an identity key of the form ``<source>_<native id>``.
It is the only thing the dedup gateway compares, so it must be stable across
runs for the same upstream record.

When a provider record has no native id, the key falls back to an MD5 hash of
the normalized source, title, company and location:

    jsearch_h3f2c...  (``h`` prefix marks a derived key)

The fallback is deterministic: re-fetching the same upstream record yields the
same key instead of a fresh random value.
"""

import hashlib
import re
from typing import Any, Optional

from .errors import ParseError

FALLBACK_PREFIX = "h"


def normalize_whitespace(text: Optional[str]) -> str:
    """
    Collapse runs of whitespace into single spaces and strip the ends.

    Examples:
        >>> normalize_whitespace("  Data   Engineer  ")
        'Data Engineer'
        >>> normalize_whitespace(None)
        ''
    """
    if not text:
        return ""
    return re.sub(r"\s+", " ", text.strip())


def native_id_to_str(native_id: Any) -> Optional[str]:
    """Coerce a provider id (string or number) to text, None when absent.

    Raises:
        ParseError: If the id is an object or a list
    """
    if native_id is None or isinstance(native_id, bool):
        return None
    if not isinstance(native_id, (str, int, float)):
        raise ParseError(f"Provider id is not a scalar: {type(native_id).__name__}")
    text = str(native_id).strip()
    return text or None


def fallback_identity_key(source: str, title: str, company: str, location: str) -> str:
    """
    Build a deterministic key for records without a native id.

    Case and whitespace differences do not change the key:

        >>> a = fallback_identity_key("adzuna", "Data  Engineer", "ACME", "Pune")
        >>> b = fallback_identity_key("adzuna", "data engineer", "acme", "pune")
        >>> a == b
        True
    """
    parts = [normalize_whitespace(value).lower() for value in (source, title, company, location)]
    digest = hashlib.md5("|".join(parts).encode("utf-8")).hexdigest()
    return f"{source}_{FALLBACK_PREFIX}{digest}"


def build_identity_key(
    source: str,
    native_id: Any,
    title: str = "",
    company: str = "",
    location: str = "",
) -> str:
    """
    Return ``<source>_<native id>``, or the hashed fallback if the id is missing.

    Args:
        source: Adapter source tag (e.g. "jsearch")
        native_id: Provider's own id for the record (str, int or None)
        title, company, location: Used only for the fallback key

    Raises:
        ValueError: If source is empty
        ParseError: If native_id is not a scalar
    """
    if not source:
        raise ValueError("source cannot be empty")

    native = native_id_to_str(native_id)
    if native is None:
        return fallback_identity_key(source, title, company, location)
    return f"{source}_{native}"
