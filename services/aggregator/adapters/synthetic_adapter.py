"""Synthetic Adapter.

Stands in for a real provider when no credentials are available (local
development, demos, CI). It never makes HTTP requests but follows the same
adapter contract: paged raw records, a field-mapping table, and a random
artificial delay in place of network latency.

Records are derived from the query so that re-running the same search yields
the same identity keys, and therefore no new rows on the second run.
"""

import hashlib
import logging
import random
import time
from typing import Any, Optional

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

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10
DEFAULT_MAX_RESULTS = 15

# Vocabularies per provider flavour. "{role}" is replaced with the query.
SYNTHETIC_POOLS: dict[str, dict[str, Any]] = {
    "jsearch": {
        "companies": [
            "TCS", "Infosys", "Wipro", "HCL Technologies", "Tech Mahindra",
            "Cognizant", "Accenture India", "IBM India", "Microsoft India",
            "Amazon India", "Flipkart", "Swiggy", "Zomato", "Ola", "Paytm",
        ],
        "locations": [
            "Bangalore, Karnataka", "Mumbai, Maharashtra", "Pune, Maharashtra",
            "Hyderabad, Telangana", "Chennai, Tamil Nadu", "Gurgaon, Haryana",
            "Noida, Uttar Pradesh", "Kolkata, West Bengal",
        ],
        "titles": [
            "{role} - Technology", "Senior {role}", "{role} - Product Development",
            "Lead {role}", "{role} - Operations", "{role} - Digital Transformation",
            "{role} - Analytics", "Associate {role}",
        ],
        "descriptions": [
            "Join our dynamic team and lead innovative projects in a fast-paced environment.",
            "We are looking for an experienced professional to drive strategic initiatives.",
            "Work with cutting-edge technology and make an impact on our business operations.",
            "Lead and mentor a team while driving operational excellence.",
            "Work on challenging projects with global impact alongside talented teams.",
        ],
        "skills": ["leadership", "teamwork", "communication", "project management", "analytics"],
        "salary_base": (800000, 2800000),
        "salary_spread": (500000, 1500000),
        "remote_percent": 30,
        "url": "https://example.com/jsearch/jobs/{id}",
    },
    "adzuna": {
        "companies": [
            "Reliance Industries", "Tata Group", "Mahindra Group", "Aditya Birla Group",
            "Godrej Group", "L&T", "ITC Limited", "Bajaj Group", "Asian Paints",
            "HDFC Bank", "ICICI Bank", "Kotak Mahindra",
        ],
        "locations": [
            "Mumbai, Maharashtra", "Delhi, Delhi", "Bangalore, Karnataka",
            "Chennai, Tamil Nadu", "Kolkata, West Bengal", "Pune, Maharashtra",
            "Ahmedabad, Gujarat", "Jaipur, Rajasthan",
        ],
        "titles": [
            "{role} - Business Operations", "Deputy {role}", "{role} - Strategic Planning",
            "Regional {role}", "{role} - Business Development", "Assistant {role}",
        ],
        "descriptions": [
            "Excellent opportunity with one of India's leading organizations.",
            "Join our leadership team and contribute to strategic decision-making.",
            "Lead business initiatives and foster growth in a collaborative environment.",
            "Take on challenging responsibilities in a growth-oriented company.",
        ],
        "skills": ["business management", "strategic planning", "stakeholder management", "finance"],
        "salary_base": (600000, 2400000),
        "salary_spread": (400000, 1200000),
        "remote_percent": 15,
        "url": "https://example.com/adzuna/jobs/{id}",
    },
}


class SyntheticAdapter(SourceAdapter):
    """Adapter generating schema-valid postings from fixed vocabularies.

    Example:
        adapter = SyntheticAdapter("jsearch", max_results=15, page_size=10,
                                   min_delay=0, max_delay=0)
        postings, full = adapter.fetch_page("Manager", "Bangalore", 1)
        assert len(postings) == 10 and full

        postings, full = adapter.fetch_page("Manager", "Bangalore", 2)
        assert len(postings) == 5 and not full
    """

    def __init__(
        self,
        source_name: str,
        max_results: int = DEFAULT_MAX_RESULTS,
        page_size: int = DEFAULT_PAGE_SIZE,
        min_delay: float = 1.0,
        max_delay: float = 3.0,
        retry_policy: Optional[RetryPolicy] = None,
        inter_page_delay: float = 0.0,
        max_pages: Optional[int] = None,
        flavour: Optional[str] = None,
    ):
        """Initialize the synthetic adapter.

        Args:
            source_name: Source tag written on postings (usually the real provider's)
            max_results: Total postings available per query
            page_size: Postings per full page
            min_delay, max_delay: Bounds of the random per-page delay in seconds
            flavour: Vocabulary to use; defaults to ``source_name`` when known
        """
        super().__init__(
            source_name=source_name,
            page_size=page_size,
            retry_policy=retry_policy or RetryPolicy.abort(),
            inter_page_delay=inter_page_delay,
            max_pages=max_pages,
        )
        if max_results < 0:
            raise ValueError("max_results must not be negative")
        if min_delay < 0 or max_delay < min_delay:
            raise ValueError("delay bounds must satisfy 0 <= min_delay <= max_delay")

        self.max_results = max_results
        self.min_delay = min_delay
        self.max_delay = max_delay
        self.flavour = flavour or (source_name if source_name in SYNTHETIC_POOLS else "jsearch")
        self.pools = SYNTHETIC_POOLS[self.flavour]

    def fetch_records(self, query: str, location: str, page_number: int) -> list[Any]:
        """Generate one page of fake raw records."""
        delay = random.uniform(self.min_delay, self.max_delay)
        if delay > 0:
            time.sleep(delay)

        start_idx = (page_number - 1) * self.page_size
        end_idx = min(start_idx + self.page_size, self.max_results)

        records = [
            self._generate_fake_job(query, location, index)
            for index in range(start_idx, end_idx)
        ]

        logger.debug(
            "Generated synthetic page",
            extra={
                "source": self.source_name,
                "page": page_number,
                "jobs_returned": len(records),
                "delay_seconds": round(delay, 3),
            },
        )
        return records

    def map_to_posting(self, record: Any) -> Posting:
        if not isinstance(record, dict):
            raise ParseError(f"Expected a dict, got {type(record).__name__}")

        title = text_field(record, "title")
        company = text_field(record, "company")
        location = text_field(record, "location")

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
            is_remote=bool_field(record, "remote"),
            skills=string_list_field(record, "skills"),
            description=text_field(record, "description"),
            posting_url=text_field(record, "url"),
            created_at=now,
            updated_at=now,
        )

    def _generate_fake_job(self, query: str, location: str, index: int) -> dict[str, Any]:
        """Generate a fake raw record, stable for the same (query, location, index)."""
        seed = f"{self.source_name}|{query.lower()}|{location.lower()}|{index}"
        rng = random.Random(seed)
        pools = self.pools

        native_id = "synthetic_" + hashlib.md5(seed.encode("utf-8")).hexdigest()[:16]
        salary_min = rng.randint(*pools["salary_base"])
        salary_max = salary_min + rng.randint(*pools["salary_spread"])

        return {
            "id": native_id,
            "title": rng.choice(pools["titles"]).format(role=query),
            "company": rng.choice(pools["companies"]),
            "location": location or rng.choice(pools["locations"]),
            "salary_min": salary_min,
            "salary_max": salary_max,
            "remote": rng.randint(0, 99) < pools["remote_percent"],
            "skills": [query.lower()] + list(pools["skills"]),
            "description": rng.choice(pools["descriptions"]),
            "url": pools["url"].format(id=native_id),
        }

    def __repr__(self) -> str:
        return (
            f"SyntheticAdapter(source='{self.source_name}', "
            f"max_results={self.max_results}, page_size={self.page_size})"
        )
