"""
HTTP helper shared by the provider adapters.

Turns a ``requests`` call into either a decoded JSON object or one of the
aggregator's provider errors, so adapters never look at status codes.
"""

import logging
from typing import Any, Optional

import requests

from ..errors import ClientError, RateLimited, TransportError

logger = logging.getLogger(__name__)

API_TIMEOUT_SECONDS = 30


def _parse_retry_after(value: Any) -> Optional[float]:
    """Parse a Retry-After header given in seconds (HTTP-date form is ignored)."""
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def request_json(
    url: str,
    params: Optional[dict[str, Any]] = None,
    headers: Optional[dict[str, str]] = None,
    timeout: float = API_TIMEOUT_SECONDS,
) -> dict[str, Any]:
    """
    GET ``url`` and return the decoded JSON object.

    Status mapping:
        429         -> RateLimited (retry_after from the Retry-After header)
        other 4xx   -> ClientError
        5xx         -> TransportError
        no response -> TransportError (connection error, timeout, ...)
        non-object or invalid JSON body -> TransportError

    Raises:
        RateLimited, ClientError, TransportError
    """
    try:
        response = requests.get(url, headers=headers, params=params, timeout=timeout)
    except requests.exceptions.RequestException as e:
        raise TransportError(f"Request to {url} failed: {e}") from e

    status = response.status_code
    if status == 429:
        raise RateLimited(
            "Rate limit exceeded - too many API calls",
            retry_after=_parse_retry_after(response.headers.get("Retry-After")),
        )
    if 400 <= status < 500:
        raise ClientError(f"Client error {status}", status_code=status)
    if status >= 500:
        raise TransportError(f"Server error {status}", status_code=status)

    try:
        data = response.json()
    except ValueError as e:
        raise TransportError(f"Response body is not valid JSON: {e}", status_code=status) from e

    if not isinstance(data, dict):
        raise TransportError(
            f"Expected a JSON object, got {type(data).__name__}", status_code=status
        )

    return data


def records_from(data: dict[str, Any], key: str) -> list[Any]:
    """
    Extract the top-level array of raw postings.

    A missing or null array is treated as an empty page; anything other than a
    list makes the whole page unusable.
    """
    records = data.get(key)
    if records is None:
        logger.warning("Response has no '%s' array, treating page as empty", key)
        return []
    if not isinstance(records, list):
        raise TransportError(f"Expected '{key}' to be a list, got {type(records).__name__}")
    return records
