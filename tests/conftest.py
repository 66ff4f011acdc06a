"""
Pytest configuration and shared fixtures

This file contains test fixtures that can be used across all tests.
Fixtures are reusable components that set up test preconditions.

Learn more: https://docs.pytest.org/en/stable/fixture.html
"""

import time
from typing import Any, Callable, Optional

import pytest

from services.aggregator.base import Posting, SourceAdapter, text_field, utcnow
from services.aggregator.errors import ParseError
from services.aggregator.gateway import DedupGateway
from services.aggregator.identity import build_identity_key
from services.aggregator.retry import RetryPolicy
from services.aggregator.storage import InMemoryPostingStore


class StaticAdapter(SourceAdapter):
    """Deterministic adapter serving a fixed list of raw records.

    ``errors`` maps a page number to a list of exceptions raised, one per call,
    before the page is served normally.
    """

    def __init__(
        self,
        source_name: str,
        records: list[Any],
        page_size: int = 10,
        errors: Optional[dict[int, list[Exception]]] = None,
        retry_policy: Optional[RetryPolicy] = None,
        max_pages: Optional[int] = None,
        always_full: bool = False,
        configured: bool = True,
    ):
        super().__init__(
            source_name=source_name,
            page_size=page_size,
            retry_policy=retry_policy or RetryPolicy.abort(),
            max_pages=max_pages,
        )
        self.records = records
        self.errors = {page: list(errs) for page, errs in (errors or {}).items()}
        self.always_full = always_full
        self.configured = configured
        self.requested_pages: list[int] = []

    @property
    def is_configured(self) -> bool:
        return self.configured

    def fetch_records(self, query: str, location: str, page_number: int) -> list[Any]:
        self.requested_pages.append(page_number)
        pending = self.errors.get(page_number)
        if pending:
            raise pending.pop(0)

        if self.always_full:
            # Endless provider: every page is full and unique
            start = (page_number - 1) * self.page_size
            return [{"id": f"p{start + i}", "title": f"Job {start + i}"} for i in range(self.page_size)]

        start = (page_number - 1) * self.page_size
        return self.records[start:start + self.page_size]

    def map_to_posting(self, record: Any) -> Posting:
        if not isinstance(record, dict):
            raise ParseError("record is not a dict")
        title = text_field(record, "title")
        company = text_field(record, "company")
        now = utcnow()
        return Posting(
            identity_key=build_identity_key(self.source_name, record.get("id"), title, company, ""),
            source=self.source_name,
            title=title,
            company=company,
            created_at=now,
            updated_at=now,
        )


class ExplodingAdapter(SourceAdapter):
    """Adapter whose every fetch raises an unexpected error."""

    def __init__(self, source_name: str = "broken"):
        super().__init__(source_name=source_name, retry_policy=RetryPolicy.abort())
        self.calls = 0

    def fetch_records(self, query: str, location: str, page_number: int) -> list[Any]:
        self.calls += 1
        raise RuntimeError("provider exploded")

    def map_to_posting(self, record: Any) -> Posting:
        raise AssertionError("never reached")


@pytest.fixture
def memory_store() -> InMemoryPostingStore:
    """Fresh in-memory posting store."""
    return InMemoryPostingStore()


@pytest.fixture
def gateway(memory_store: InMemoryPostingStore) -> DedupGateway:
    """Dedup gateway over the in-memory store."""
    return DedupGateway(memory_store)


@pytest.fixture
def sleeps(monkeypatch) -> list[float]:
    """
    Replace time.sleep with a recorder so throttling and backoff are instant.

    Returns:
        list[float]: Every duration passed to time.sleep, in call order
    """
    recorded: list[float] = []
    monkeypatch.setattr(time, "sleep", lambda seconds: recorded.append(seconds))
    return recorded


@pytest.fixture
def make_static_adapter() -> Callable[..., StaticAdapter]:
    """Factory for StaticAdapter instances."""
    return StaticAdapter


@pytest.fixture
def make_exploding_adapter() -> Callable[..., ExplodingAdapter]:
    """Factory for ExplodingAdapter instances."""
    return ExplodingAdapter


@pytest.fixture
def mock_records() -> list[dict]:
    """
    Eight fixed raw records: {"id": "s1"} .. {"id": "s8"}.

    Scope: function (created fresh for each test)
    """
    return [
        {"id": f"s{i}", "title": f"Manager {i}", "company": "Acme Corp"}
        for i in range(1, 9)
    ]


@pytest.fixture
def sample_posting() -> Posting:
    """A typical normalized posting."""
    return Posting(
        identity_key="jsearch_abc123",
        source="jsearch",
        title="Data Engineer",
        company="Acme Corp",
        location="Bangalore, Karnataka, IN",
        salary_min=800000,
        salary_max=1400000,
        is_remote=True,
        skills=["python", "sql"],
        description="We are seeking a Data Engineer.",
        posting_url="https://example.com/apply/1",
    )


# Mark tests based on their type for selective running
def pytest_configure(config):
    """
    Register custom pytest markers.

    This allows us to run specific test categories:
    - pytest -m unit        (run only unit tests)
    - pytest -m integration (run only integration tests)
    - pytest -m "not slow"  (skip slow tests)
    """
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test (isolated, fast)"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test (requires services)"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running (>1 second)"
    )
