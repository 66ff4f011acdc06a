"""
JSearch API Adapter (RapidAPI).

JSearch aggregates listings from LinkedIn, Indeed, Glassdoor and others.
One page holds up to 10 postings under the top-level ``data`` array.
"""

import logging
import os
from typing import Any, Optional

from dotenv import load_dotenv

from ..base import (
    Posting,
    SourceAdapter,
    bool_field,
    optional_int_field,
    string_list_field,
    text_field,
    utcnow,
)
from ..errors import ParseError
from ..identity import build_identity_key
from ..retry import RetryPolicy
from .http_client import API_TIMEOUT_SECONDS, records_from, request_json

# Load environment variables from .env
load_dotenv()

logger = logging.getLogger(__name__)

SOURCE_NAME = "jsearch"
DEFAULT_HOST = "jsearch.p.rapidapi.com"
DEFAULT_PAGE_SIZE = 10
DEFAULT_DATE_POSTED = "all"
DEFAULT_INTER_PAGE_DELAY = 2.0


class JSearchAdapter(SourceAdapter):
    """
    Adapter for the JSearch API on RapidAPI.

    Environment Variables:
        RAPIDAPI_KEY: RapidAPI key. Without it the adapter returns no postings.
        RAPIDAPI_HOST: RapidAPI host header (default: jsearch.p.rapidapi.com)
        JSEARCH_BASE_URL: Override of the API base URL
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_host: Optional[str] = None,
        base_url: Optional[str] = None,
        date_posted: str = DEFAULT_DATE_POSTED,
        page_size: int = DEFAULT_PAGE_SIZE,
        retry_policy: Optional[RetryPolicy] = None,
        inter_page_delay: float = DEFAULT_INTER_PAGE_DELAY,
        max_pages: Optional[int] = None,
        timeout: float = API_TIMEOUT_SECONDS,
    ):
        super().__init__(
            source_name=SOURCE_NAME,
            page_size=page_size,
            retry_policy=retry_policy,
            inter_page_delay=inter_page_delay,
            max_pages=max_pages,
        )

        self.api_key = api_key if api_key is not None else os.getenv("RAPIDAPI_KEY", "")
        self.api_host = api_host or os.getenv("RAPIDAPI_HOST", DEFAULT_HOST)
        self.base_url = (
            base_url or os.getenv("JSEARCH_BASE_URL") or f"https://{self.api_host}"
        ).rstrip("/")
        self.date_posted = date_posted
        self.timeout = timeout

        self.api_call_count = 0

        logger.info(
            "JSearch adapter initialized",
            extra={
                "source": self.source_name,
                "base_url": self.base_url,
                "api_key_configured": self.is_configured,
            },
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    @staticmethod
    def build_query(query: str, location: str) -> str:
        """JSearch takes one free-text query: "<role> jobs in <location>"."""
        if location:
            return f"{query} jobs in {location}"
        return query

    def fetch_records(self, query: str, location: str, page_number: int) -> list[Any]:
        params = {
            "query": self.build_query(query, location),
            "page": page_number,
            "num_pages": 1,
            "date_posted": self.date_posted,
        }
        headers = {
            "x-rapidapi-key": self.api_key,
            "x-rapidapi-host": self.api_host,
        }

        # Count before the request so retries are included
        self.api_call_count += 1

        logger.debug(
            "Making JSearch API call",
            extra={"params": params, "call_count": self.api_call_count},
        )

        data = request_json(
            f"{self.base_url}/search", params=params, headers=headers, timeout=self.timeout
        )
        records = records_from(data, "data")

        logger.info(
            "JSearch API call successful",
            extra={
                "page": page_number,
                "jobs_returned": len(records),
                "total_api_calls": self.api_call_count,
            },
        )
        return records

    def map_to_posting(self, record: Any) -> Posting:
        """
        Map one JSearch record.

        Field table:
            job_id                          -> identity key
            job_title                       -> title
            employer_name                   -> company
            job_city, job_state, job_country -> location (joined with ", ")
            job_min_salary / job_max_salary -> salary_min / salary_max
            job_is_remote                   -> is_remote
            job_required_skills             -> skills
            job_description                 -> description
            job_apply_link                  -> posting_url
        """
        if not isinstance(record, dict):
            raise ParseError(f"Expected a JSON object, got {type(record).__name__}")

        title = text_field(record, "job_title")
        company = text_field(record, "employer_name")
        location_parts = [
            text_field(record, key) for key in ("job_city", "job_state", "job_country")
        ]
        location = ", ".join(part for part in location_parts if part)

        now = utcnow()
        return Posting(
            identity_key=build_identity_key(
                self.source_name, record.get("job_id"), title, company, location
            ),
            source=self.source_name,
            title=title,
            company=company,
            location=location,
            salary_min=optional_int_field(record, "job_min_salary"),
            salary_max=optional_int_field(record, "job_max_salary"),
            is_remote=bool_field(record, "job_is_remote"),
            skills=string_list_field(record, "job_required_skills"),
            description=text_field(record, "job_description"),
            posting_url=text_field(record, "job_apply_link"),
            created_at=now,
            updated_at=now,
        )

    def __repr__(self) -> str:
        """String representation of the adapter."""
        return (
            f"JSearchAdapter(source='{self.source_name}', "
            f"page_size={self.page_size}, "
            f"api_calls={self.api_call_count})"
        )
