"""
Adzuna API Adapter.

Adzuna pages are addressed in the URL path (``/search/{page}``) and carry up
to ``results_per_page`` postings under the top-level ``results`` array.
Adzuna does not flag remote roles or list skills.
"""

import logging
import os
from typing import Any, Optional

from dotenv import load_dotenv

from ..base import (
    Posting,
    SourceAdapter,
    nested_text_field,
    optional_int_field,
    text_field,
    utcnow,
)
from ..errors import ParseError
from ..identity import build_identity_key
from ..retry import RetryPolicy
from .http_client import API_TIMEOUT_SECONDS, records_from, request_json

load_dotenv()

logger = logging.getLogger(__name__)

SOURCE_NAME = "adzuna"
DEFAULT_BASE_URL = "https://api.adzuna.com"
DEFAULT_COUNTRY = "in"
DEFAULT_PAGE_SIZE = 50
DEFAULT_INTER_PAGE_DELAY = 2.0


class AdzunaAdapter(SourceAdapter):
    """
    Adapter for the Adzuna job search API.

    Environment Variables:
        ADZUNA_APP_ID: Application id. Without it the adapter returns no postings.
        ADZUNA_APP_KEY: Application key. Without it the adapter returns no postings.
        ADZUNA_BASE_URL: Override of the API base URL
    """

    def __init__(
        self,
        app_id: Optional[str] = None,
        app_key: Optional[str] = None,
        base_url: Optional[str] = None,
        country: str = DEFAULT_COUNTRY,
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

        self.app_id = app_id if app_id is not None else os.getenv("ADZUNA_APP_ID", "")
        self.app_key = app_key if app_key is not None else os.getenv("ADZUNA_APP_KEY", "")
        self.base_url = (
            base_url or os.getenv("ADZUNA_BASE_URL") or DEFAULT_BASE_URL
        ).rstrip("/")
        self.country = country.lower()
        self.timeout = timeout

        self.api_call_count = 0

    @property
    def is_configured(self) -> bool:
        return bool(self.app_id) and bool(self.app_key)

    def search_url(self, page_number: int) -> str:
        return f"{self.base_url}/v1/api/jobs/{self.country}/search/{page_number}"

    def fetch_records(self, query: str, location: str, page_number: int) -> list[Any]:
        params: dict[str, Any] = {
            "app_id": self.app_id,
            "app_key": self.app_key,
            "results_per_page": self.page_size,
            "what": query,
            "content-type": "application/json",
        }
        if location:
            params["where"] = location

        self.api_call_count += 1

        data = request_json(self.search_url(page_number), params=params, timeout=self.timeout)
        records = records_from(data, "results")

        logger.info(
            "Adzuna API call successful",
            extra={
                "page": page_number,
                "jobs_returned": len(records),
                "total_api_calls": self.api_call_count,
            },
        )
        return records

    def map_to_posting(self, record: Any) -> Posting:
        """
        Map one Adzuna record.

        Field table:
            id                    -> identity key
            title                 -> title
            company.display_name  -> company
            location.display_name -> location
            salary_min/salary_max -> salary_min/salary_max
            description           -> description
            redirect_url          -> posting_url
        """
        if not isinstance(record, dict):
            raise ParseError(f"Expected a JSON object, got {type(record).__name__}")

        title = text_field(record, "title")
        company = nested_text_field(record, "company", "display_name")
        location = nested_text_field(record, "location", "display_name")

        now = utcnow()
        return Posting(
            identity_key=build_identity_key(
                self.source_name, record.get("id"), title, company, location
            ),
            source=self.source_name,
            title=title,
            company=company,
            location=location,
            salary_min=optional_int_field(record, "salary_min"),
            salary_max=optional_int_field(record, "salary_max"),
            is_remote=False,
            skills=[],
            description=text_field(record, "description"),
            posting_url=text_field(record, "redirect_url"),
            created_at=now,
            updated_at=now,
        )

    def __repr__(self) -> str:
        return (
            f"AdzunaAdapter(source='{self.source_name}', country='{self.country}', "
            f"api_calls={self.api_call_count})"
        )
