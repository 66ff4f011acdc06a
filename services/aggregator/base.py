"""Source Adapter Base Class.

This module defines the normalized Posting record and the abstract interface
that every job provider adapter implements. The pagination loop lives here too,
so every provider pages, throttles, retries and stops the same way.
"""

import logging
import math
import time
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional

from .errors import (
    ClientError,
    ParseError,
    PostingStoreError,
    RateLimited,
    TransportError,
)
from .retry import RetryPolicy, call_with_retry

if TYPE_CHECKING:
    from .gateway import DedupGateway

logger = logging.getLogger(__name__)

MAX_QUERY_LENGTH = 100
MAX_LOCATION_LENGTH = 100
DEFAULT_QUOTA = 50

# Reasons a source's pagination loop ended
STOP_QUOTA_REACHED = "quota_reached"
STOP_EXHAUSTED = "exhausted"
STOP_MAX_PAGES = "max_pages"
STOP_RATE_LIMITED = "rate_limited"
STOP_CLIENT_ERROR = "client_error"
STOP_TRANSPORT_ERROR = "transport_error"
STOP_NOT_CONFIGURED = "not_configured"
STOP_NO_QUOTA = "no_quota"
STOP_FAILED = "failed"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Posting:
    """One normalized job posting.

    ``identity_key`` is the only dedup key: ``<source>_<provider id>``.
    """

    identity_key: str
    source: str
    title: str = ""
    company: str = ""
    location: str = ""
    salary_min: Optional[int] = None
    salary_max: Optional[int] = None
    is_remote: bool = False
    skills: list[str] = field(default_factory=list)
    description: str = ""
    posting_url: str = ""
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class IngestionRequest:
    """Parameters of one aggregation run."""

    query: str
    location: str = ""
    total_quota: int = DEFAULT_QUOTA

    def __post_init__(self) -> None:
        self.query = (self.query or "").strip()
        self.location = (self.location or "").strip()

        if not self.query:
            raise ValueError("query must not be empty")
        if len(self.query) > MAX_QUERY_LENGTH:
            raise ValueError(f"query must be at most {MAX_QUERY_LENGTH} characters")
        if len(self.location) > MAX_LOCATION_LENGTH:
            raise ValueError(f"location must be at most {MAX_LOCATION_LENGTH} characters")
        if isinstance(self.total_quota, bool) or not isinstance(self.total_quota, int):
            raise ValueError("total_quota must be an integer")
        if self.total_quota <= 0:
            raise ValueError("total_quota must be positive")


@dataclass
class SourceResult:
    """Outcome of one source's pagination loop."""

    source: str
    quota: int
    postings: list[Posting] = field(default_factory=list)
    pages_fetched: int = 0
    duplicates: int = 0
    skipped_records: int = 0
    stop_reason: Optional[str] = None


# ---------------------------------------------------------------------------
# Field coercion helpers shared by the provider mapping tables
# ---------------------------------------------------------------------------


def text_field(record: Mapping[str, Any], key: str) -> str:
    """Read a scalar field as text; missing or null becomes ``""``."""
    value = record.get(key)
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    raise ParseError(f"Field '{key}' is not a scalar: {type(value).__name__}")


def nested_text_field(record: Mapping[str, Any], key: str, inner_key: str) -> str:
    """Read ``record[key][inner_key]`` as text (e.g. Adzuna's company.display_name)."""
    value = record.get(key)
    if value is None:
        return ""
    if not isinstance(value, Mapping):
        raise ParseError(f"Field '{key}' is not an object: {type(value).__name__}")
    return text_field(value, inner_key)


def optional_int_field(record: Mapping[str, Any], key: str) -> Optional[int]:
    """Read a numeric field as int; missing or null stays None."""
    value = record.get(key)
    if value is None:
        return None
    if isinstance(value, bool):
        raise ParseError(f"Field '{key}' is a boolean, expected a number")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return _finite_int(value, key)
    if isinstance(value, str):
        if not value.strip():
            return None
        try:
            number = float(value)
        except ValueError as exc:
            raise ParseError(f"Field '{key}' is not numeric: {value!r}") from exc
        return _finite_int(number, key)
    raise ParseError(f"Field '{key}' is not numeric: {type(value).__name__}")


def _finite_int(number: float, key: str) -> int:
    # NaN and infinity (JSON NaN/Infinity, "1e400") have no int value
    if not math.isfinite(number):
        raise ParseError(f"Field '{key}' is not a finite number: {number!r}")
    return int(number)


def bool_field(record: Mapping[str, Any], key: str) -> bool:
    """Read a boolean field; missing or null becomes False."""
    value = record.get(key)
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in {"true", "1", "yes"}
    raise ParseError(f"Field '{key}' is not a boolean: {type(value).__name__}")


def string_list_field(record: Mapping[str, Any], key: str) -> list[str]:
    """Read a list of strings; missing or null becomes an empty list."""
    value = record.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ParseError(f"Field '{key}' is not a list: {type(value).__name__}")
    return [str(item) for item in value if item is not None]


class SourceAdapter(ABC):
    """Abstract base class for job provider adapters.

    Subclasses implement two things:
    - ``fetch_records``: one HTTP (or synthetic) call returning the raw records
      of a page
    - ``map_to_posting``: the provider's field-mapping table

    Everything else (page normalization, the pagination loop, throttling,
    retries and dedup routing) is shared.

    Usage:
        class MyProviderAdapter(SourceAdapter):
            def __init__(self, api_key: str):
                super().__init__(source_name="my_provider", page_size=20)
                self.api_key = api_key

            def fetch_records(self, query, location, page_number):
                ...

            def map_to_posting(self, record):
                ...
    """

    def __init__(
        self,
        source_name: str,
        page_size: int = 10,
        retry_policy: Optional[RetryPolicy] = None,
        inter_page_delay: float = 0.0,
        max_pages: Optional[int] = None,
    ):
        """Initialize the adapter.

        Args:
            source_name: Tag stored on every Posting (e.g. "jsearch")
            page_size: Fixed number of records the provider returns for a full page
            retry_policy: Policy applied to each page fetch
                (defaults to wait_and_retry, 3 attempts)
            inter_page_delay: Seconds to sleep before every page after the first
            max_pages: Upper bound on pages per run. None means
                ``ceil(quota / page_size)``.
        """
        if page_size <= 0:
            raise ValueError("page_size must be positive")
        if inter_page_delay < 0:
            raise ValueError("inter_page_delay must not be negative")
        if max_pages is not None and max_pages <= 0:
            raise ValueError("max_pages must be positive")

        self.source_name = source_name
        self.page_size = page_size
        self.retry_policy = retry_policy or RetryPolicy.wait_and_retry()
        self.inter_page_delay = inter_page_delay
        self.max_pages = max_pages

    @property
    def is_configured(self) -> bool:
        """False when the adapter lacks credentials and must not call out."""
        return True

    @abstractmethod
    def fetch_records(
        self, query: str, location: str, page_number: int
    ) -> list[Any]:
        """Fetch the raw records of one page.

        Args:
            query: Search text (job title, keywords)
            location: Location filter, "" for none
            page_number: 1-based page number

        Returns:
            The provider's raw records for the page (usually dicts)

        Raises:
            RateLimited: Provider answered 429
            ClientError: Provider rejected the request (other 4xx)
            TransportError: Network failure, 5xx or unusable body
        """
        pass

    @abstractmethod
    def map_to_posting(self, record: Any) -> Posting:
        """Map one provider record to a Posting.

        Raises:
            ParseError: If the record cannot be mapped
        """
        pass

    def normalize_page(self, records: list[Any]) -> tuple[list[Posting], int]:
        """Map every record of a page, skipping malformed ones.

        Returns:
            Tuple of (postings, number of skipped records)
        """
        postings = []
        skipped = 0
        for index, record in enumerate(records):
            try:
                postings.append(self.map_to_posting(record))
            except ParseError as e:
                skipped += 1
                logger.warning(
                    "Skipping malformed record",
                    extra={
                        "source": self.source_name,
                        "record_index": index,
                        "error": str(e),
                    },
                )
        return postings, skipped

    def fetch_page(
        self, query: str, location: str, page_number: int
    ) -> tuple[list[Posting], bool]:
        """Fetch and normalize one page.

        Returns:
            Tuple of (postings, page_was_full). A page is full when the provider
            returned ``page_size`` records, malformed ones included.
        """
        postings, page_was_full, _ = self.fetch_page_counted(query, location, page_number)
        return postings, page_was_full

    def fetch_page_counted(
        self, query: str, location: str, page_number: int
    ) -> tuple[list[Posting], bool, int]:
        """Like ``fetch_page``, plus the number of malformed records skipped."""
        records = self.fetch_records(query, location, page_number)
        postings, skipped = self.normalize_page(records)
        return postings, len(records) >= self.page_size, skipped

    def collect(
        self,
        query: str,
        location: str,
        quota: int,
        gateway: "DedupGateway",
    ) -> SourceResult:
        """Page through the provider until the quota or a stop signal is reached.

        Pages 1, 2, 3, ... are requested until:
        - ``quota`` new postings were admitted by the gateway
        - a page comes back short (fewer than ``page_size`` records)
        - ``max_pages`` pages were requested
        - an unrecoverable error occurs (postings admitted so far are kept)

        Args:
            query: Search text
            location: Location filter, "" for none
            quota: Maximum number of new postings to accept from this source
            gateway: Dedup gateway every posting is routed through

        Returns:
            SourceResult with the newly persisted postings
        """
        result = SourceResult(source=self.source_name, quota=quota)

        if quota <= 0:
            result.stop_reason = STOP_NO_QUOTA
            return result

        if not self.is_configured:
            logger.warning(
                "Provider credentials not configured, skipping source",
                extra={"source": self.source_name},
            )
            result.stop_reason = STOP_NOT_CONFIGURED
            return result

        max_pages = self.max_pages or max(1, math.ceil(quota / self.page_size))

        logger.info(
            "Starting fetch",
            extra={
                "source": self.source_name,
                "query": query,
                "location": location,
                "quota": quota,
                "max_pages": max_pages,
            },
        )

        try:
            self._page_through(query, location, quota, gateway, max_pages, result)
        except Exception as e:
            logger.error(
                "Unexpected error, stopping source",
                extra={
                    "source": self.source_name,
                    "pages_fetched": result.pages_fetched,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
                exc_info=True,
            )
            result.stop_reason = STOP_FAILED

        logger.info(
            "Fetched new postings",
            extra={
                "source": self.source_name,
                "new_postings": len(result.postings),
                "duplicates": result.duplicates,
                "skipped_records": result.skipped_records,
                "pages_fetched": result.pages_fetched,
                "stop_reason": result.stop_reason,
            },
        )
        return result

    def _page_through(
        self,
        query: str,
        location: str,
        quota: int,
        gateway: "DedupGateway",
        max_pages: int,
        result: SourceResult,
    ) -> None:
        """Pagination loop of ``collect``; fills ``result`` in place."""
        page = 1
        while True:
            if page > max_pages:
                result.stop_reason = STOP_MAX_PAGES
                break

            if page > 1 and self.inter_page_delay > 0:
                logger.debug(
                    "Throttling before next page",
                    extra={"source": self.source_name, "page": page, "delay_seconds": self.inter_page_delay},
                )
                time.sleep(self.inter_page_delay)

            try:
                postings, page_was_full, skipped = call_with_retry(
                    self.fetch_page_counted, self.retry_policy, query, location, page
                )
            except RateLimited as e:
                logger.warning(
                    "Rate limit hit, stopping further requests for this source",
                    extra={
                        "source": self.source_name,
                        "page": page,
                        "retry_after": e.retry_after,
                        "error": str(e),
                    },
                )
                result.stop_reason = STOP_RATE_LIMITED
                break
            except ClientError as e:
                logger.error(
                    "Client error from provider, stopping source",
                    extra={
                        "source": self.source_name,
                        "page": page,
                        "status_code": e.status_code,
                        "error": str(e),
                    },
                )
                result.stop_reason = STOP_CLIENT_ERROR
                break
            except TransportError as e:
                logger.error(
                    "Transport error from provider, stopping source",
                    extra={
                        "source": self.source_name,
                        "page": page,
                        "status_code": e.status_code,
                        "error": str(e),
                    },
                )
                result.stop_reason = STOP_TRANSPORT_ERROR
                break

            result.pages_fetched += 1
            result.skipped_records += skipped

            try:
                for posting in postings:
                    if len(result.postings) >= quota:
                        break
                    stored = gateway.admit(posting)
                    if stored is None:
                        result.duplicates += 1
                    else:
                        result.postings.append(stored)
            except PostingStoreError as e:
                logger.error(
                    "Failed to persist postings, stopping source",
                    extra={"source": self.source_name, "page": page, "error": str(e)},
                )
                result.stop_reason = STOP_FAILED
                break

            logger.info(
                "Processed page",
                extra={
                    "source": self.source_name,
                    "page": page,
                    "postings_in_page": len(postings),
                    "new_so_far": len(result.postings),
                    "duplicates_so_far": result.duplicates,
                },
            )

            if len(result.postings) >= quota:
                result.stop_reason = STOP_QUOTA_REACHED
                break

            if not page_was_full:
                logger.info(
                    "Short page, no more results",
                    extra={"source": self.source_name, "page": page},
                )
                result.stop_reason = STOP_EXHAUSTED
                break

            page += 1

    def __repr__(self) -> str:
        """String representation of the adapter."""
        return f"{self.__class__.__name__}(source='{self.source_name}')"
