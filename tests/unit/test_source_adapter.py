"""Contract and pagination tests for SourceAdapter implementations.

The contract tests run against the SyntheticAdapter; the pagination loop
(SourceAdapter.collect) is exercised with deterministic fake adapters from
conftest.py.
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from services.aggregator.adapters.synthetic_adapter import SyntheticAdapter
from services.aggregator.base import (
    STOP_CLIENT_ERROR,
    STOP_EXHAUSTED,
    STOP_FAILED,
    STOP_MAX_PAGES,
    STOP_NO_QUOTA,
    STOP_NOT_CONFIGURED,
    STOP_QUOTA_REACHED,
    STOP_RATE_LIMITED,
    STOP_TRANSPORT_ERROR,
    IngestionRequest,
    Posting,
    SourceAdapter,
    bool_field,
    nested_text_field,
    optional_int_field,
    string_list_field,
    text_field,
)
from services.aggregator.errors import ClientError, ParseError, RateLimited, TransportError
from services.aggregator.retry import RetryPolicy


class TestFieldHelpers:
    """Missing scalars -> "", missing numbers -> None, missing booleans -> False."""

    def test_text_field(self):
        assert text_field({"a": "x"}, "a") == "x"
        assert text_field({}, "a") == ""
        assert text_field({"a": None}, "a") == ""
        assert text_field({"a": 42}, "a") == "42"

    def test_text_field_rejects_objects(self):
        with pytest.raises(ParseError):
            text_field({"a": {"nested": 1}}, "a")

    def test_nested_text_field(self):
        assert nested_text_field({"company": {"display_name": "Acme"}}, "company", "display_name") == "Acme"
        assert nested_text_field({}, "company", "display_name") == ""
        assert nested_text_field({"company": {}}, "company", "display_name") == ""
        with pytest.raises(ParseError):
            nested_text_field({"company": "Acme"}, "company", "display_name")

    def test_optional_int_field(self):
        assert optional_int_field({"s": 1200}, "s") == 1200
        assert optional_int_field({"s": 1200.9}, "s") == 1200
        assert optional_int_field({"s": "1500"}, "s") == 1500
        assert optional_int_field({}, "s") is None
        assert optional_int_field({"s": None}, "s") is None
        assert optional_int_field({"s": ""}, "s") is None

    @pytest.mark.parametrize(
        "bad", ["lots", True, [1], "1e400", "nan", "-inf", float("inf"), float("nan")]
    )
    def test_optional_int_field_rejects_garbage(self, bad):
        with pytest.raises(ParseError):
            optional_int_field({"s": bad}, "s")

    def test_bool_field(self):
        assert bool_field({"r": True}, "r") is True
        assert bool_field({}, "r") is False
        assert bool_field({"r": None}, "r") is False
        assert bool_field({"r": "true"}, "r") is True
        assert bool_field({"r": 0}, "r") is False

    def test_string_list_field(self):
        assert string_list_field({"k": ["python", None, "sql"]}, "k") == ["python", "sql"]
        assert string_list_field({}, "k") == []
        with pytest.raises(ParseError):
            string_list_field({"k": "python"}, "k")


class TestIngestionRequest:

    def test_strips_and_defaults(self):
        request = IngestionRequest(query="  Manager ", location=None, total_quota=5)
        assert request.query == "Manager"
        assert request.location == ""

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"query": "", "total_quota": 5},
            {"query": "   ", "total_quota": 5},
            {"query": "Manager", "total_quota": 0},
            {"query": "Manager", "total_quota": -3},
            {"query": "x" * 101, "total_quota": 5},
            {"query": "Manager", "location": "y" * 101, "total_quota": 5},
        ],
    )
    def test_invalid_requests(self, kwargs):
        with pytest.raises(ValueError):
            IngestionRequest(**kwargs)


class TestSourceAdapterContract:
    """Contract tests that all SourceAdapter implementations must pass."""

    @pytest.fixture
    def adapter(self) -> SourceAdapter:
        return SyntheticAdapter("jsearch", max_results=25, page_size=10, min_delay=0, max_delay=0)

    def test_adapter_has_source_name(self, adapter):
        assert isinstance(adapter.source_name, str)
        assert len(adapter.source_name) > 0

    def test_fetch_page_returns_postings_and_fullness(self, adapter):
        postings, page_was_full = adapter.fetch_page("Manager", "Bangalore", 1)

        assert isinstance(postings, list)
        assert all(isinstance(p, Posting) for p in postings)
        assert len(postings) == 10
        assert page_was_full is True

    def test_last_page_is_short(self, adapter):
        postings, page_was_full = adapter.fetch_page("Manager", "Bangalore", 3)
        assert len(postings) == 5
        assert page_was_full is False

    def test_fetch_page_is_stateless(self, adapter):
        first, _ = adapter.fetch_page("Manager", "Bangalore", 2)
        again, _ = adapter.fetch_page("Manager", "Bangalore", 2)
        assert [p.identity_key for p in first] == [p.identity_key for p in again]

    def test_pages_hold_different_postings(self, adapter):
        page1, _ = adapter.fetch_page("Manager", "", 1)
        page2, _ = adapter.fetch_page("Manager", "", 2)
        keys1 = {p.identity_key for p in page1}
        keys2 = {p.identity_key for p in page2}
        assert len(keys1) == 10
        assert keys1.isdisjoint(keys2)

    def test_posting_fields_are_never_none(self, adapter):
        postings, _ = adapter.fetch_page("Manager", "Bangalore", 1)
        for posting in postings:
            for attr in ("identity_key", "title", "company", "location", "description", "posting_url"):
                assert isinstance(getattr(posting, attr), str)
            assert isinstance(posting.is_remote, bool)
            assert isinstance(posting.skills, list)
            assert posting.identity_key.startswith("jsearch_")
            assert posting.source == "jsearch"
            assert posting.created_at == posting.updated_at

    def test_synthetic_uses_requested_location(self, adapter):
        postings, _ = adapter.fetch_page("Manager", "Bangalore", 1)
        assert {p.location for p in postings} == {"Bangalore"}

    def test_synthetic_titles_mention_query(self, adapter):
        postings, _ = adapter.fetch_page("Manager", "", 1)
        assert all("Manager" in p.title for p in postings)
        assert all(p.skills[0] == "manager" for p in postings)

    def test_synthetic_delay_is_applied(self, sleeps):
        adapter = SyntheticAdapter("adzuna", min_delay=0.8, max_delay=2.3)
        adapter.fetch_page("Manager", "", 1)
        assert len(sleeps) == 1
        assert 0.8 <= sleeps[0] <= 2.3

    def test_synthetic_rejects_bad_delay_bounds(self):
        with pytest.raises(ValueError):
            SyntheticAdapter("jsearch", min_delay=2, max_delay=1)


class TestPaginationLoop:
    """SourceAdapter.collect: termination, quota, throttling and error handling."""

    def test_stops_on_short_page(self, gateway, make_static_adapter, mock_records, sleeps):
        adapter = make_static_adapter("mocksource", mock_records, page_size=10)

        result = adapter.collect("Manager", "Bangalore", 10, gateway)

        assert len(result.postings) == 8
        assert adapter.requested_pages == [1]
        assert result.stop_reason == STOP_EXHAUSTED

    def test_stops_requesting_after_first_short_page(self, gateway, make_static_adapter, sleeps):
        records = [{"id": f"r{i}"} for i in range(25)]
        adapter = make_static_adapter("src", records, page_size=10, max_pages=10)

        result = adapter.collect("q", "", 100, gateway)

        assert adapter.requested_pages == [1, 2, 3]
        assert len(result.postings) == 25
        assert result.stop_reason == STOP_EXHAUSTED

    def test_quota_bound_on_endless_source(self, gateway, make_static_adapter, sleeps):
        adapter = make_static_adapter("src", [], page_size=10, always_full=True, max_pages=50)

        result = adapter.collect("q", "", 23, gateway)

        assert len(result.postings) == 23
        assert adapter.requested_pages == [1, 2, 3]
        assert result.stop_reason == STOP_QUOTA_REACHED
        # Postings beyond the quota are never offered to the store
        assert gateway.store.count() == 23

    def test_default_max_pages_from_quota(self, gateway, make_static_adapter, sleeps):
        adapter = make_static_adapter("src", [], page_size=10, always_full=True)
        # Every posting is a duplicate on the second run, so only max_pages stops it
        adapter.collect("q", "", 20, gateway)
        adapter.requested_pages.clear()

        result = adapter.collect("q", "", 20, gateway)

        assert adapter.requested_pages == [1, 2]
        assert result.postings == []
        assert result.duplicates == 20
        assert result.stop_reason == STOP_MAX_PAGES

    def test_inter_page_delay_before_every_page_after_first(self, gateway, sleeps):
        adapter = SyntheticAdapter(
            "jsearch", max_results=30, page_size=10, min_delay=0, max_delay=0, inter_page_delay=2.0
        )

        adapter.collect("Manager", "", 30, gateway)

        assert sleeps == [2.0, 2.0]

    def test_malformed_records_are_skipped(self, gateway, make_static_adapter, sleeps):
        records = [{"id": "a"}, "garbage", {"id": "b", "title": {"bad": 1}}, {"id": "c"}]
        adapter = make_static_adapter("src", records, page_size=10)

        result = adapter.collect("q", "", 10, gateway)

        assert [p.identity_key for p in result.postings] == ["src_a", "src_c"]
        assert result.skipped_records == 2

    def test_normalize_page_reports_skip_count(self, make_static_adapter):
        adapter = make_static_adapter("src", [])

        postings, skipped = adapter.normalize_page([{"id": "a"}, "garbage", None])

        assert [p.identity_key for p in postings] == ["src_a"]
        assert skipped == 2

    def test_skip_counts_are_per_run_under_concurrency(self, gateway, make_static_adapter, sleeps):
        records = [{"id": "a"}, "bad-1", {"id": "b"}, "bad-2", "bad-3"]
        adapter = make_static_adapter("src", records, page_size=10)
        barrier = threading.Barrier(2)

        def run(query):
            barrier.wait()
            return adapter.collect(query, "", 10, gateway)

        with ThreadPoolExecutor(max_workers=2) as executor:
            results = list(executor.map(run, ["Manager", "Engineer"]))

        assert [r.skipped_records for r in results] == [3, 3]

    def test_unexpected_error_keeps_admitted_postings(self, gateway, make_static_adapter, sleeps):
        records = [{"id": f"r{i}"} for i in range(30)]
        adapter = make_static_adapter("src", records, page_size=10, errors={2: [RuntimeError("boom")]})

        result = adapter.collect("q", "", 30, gateway)

        assert len(result.postings) == 10
        assert result.pages_fetched == 1
        assert result.stop_reason == STOP_FAILED
        assert gateway.store.count() == 10

    def test_malformed_records_still_count_toward_full_page(self, make_static_adapter):
        records = [{"id": "a"}, None, {"id": "c"}]
        adapter = make_static_adapter("src", records, page_size=3)

        postings, page_was_full = adapter.fetch_page("q", "", 1)

        assert len(postings) == 2
        assert page_was_full is True

    def test_rate_limit_abort_keeps_collected_postings(self, gateway, make_static_adapter, sleeps):
        records = [{"id": f"r{i}"} for i in range(30)]
        adapter = make_static_adapter(
            "src", records, page_size=10, errors={2: [RateLimited("429")]},
            retry_policy=RetryPolicy.abort(),
        )

        result = adapter.collect("q", "", 30, gateway)

        assert len(result.postings) == 10
        assert adapter.requested_pages == [1, 2]
        assert result.stop_reason == STOP_RATE_LIMITED

    def test_rate_limit_wait_and_retry_retries_same_page(self, gateway, make_static_adapter, sleeps):
        records = [{"id": f"r{i}"} for i in range(15)]
        adapter = make_static_adapter(
            "src", records, page_size=10,
            errors={2: [RateLimited("429"), RateLimited("429")]},
            retry_policy=RetryPolicy.wait_and_retry(max_attempts=3, backoff_seconds=60),
        )

        result = adapter.collect("q", "", 15, gateway)

        assert adapter.requested_pages == [1, 2, 2, 2]
        assert len(result.postings) == 15
        assert sleeps == [60.0, 60.0]
        assert result.stop_reason == STOP_QUOTA_REACHED

    def test_rate_limit_retries_are_bounded(self, gateway, make_static_adapter, sleeps):
        adapter = make_static_adapter(
            "src", [{"id": "x"}], page_size=10,
            errors={1: [RateLimited("429")] * 10},
            retry_policy=RetryPolicy.wait_and_retry(max_attempts=3, backoff_seconds=1),
        )

        result = adapter.collect("q", "", 5, gateway)

        assert adapter.requested_pages == [1, 1, 1]
        assert result.postings == []
        assert result.stop_reason == STOP_RATE_LIMITED

    @pytest.mark.parametrize(
        "error, reason",
        [
            (ClientError("bad request", status_code=400), STOP_CLIENT_ERROR),
            (TransportError("connection reset"), STOP_TRANSPORT_ERROR),
        ],
    )
    def test_client_and_transport_errors_stop_without_retry(
        self, gateway, make_static_adapter, sleeps, error, reason
    ):
        records = [{"id": f"r{i}"} for i in range(30)]
        adapter = make_static_adapter(
            "src", records, page_size=10, errors={2: [error]},
            retry_policy=RetryPolicy.wait_and_retry(max_attempts=3, backoff_seconds=60),
        )

        result = adapter.collect("q", "", 30, gateway)

        assert adapter.requested_pages == [1, 2]
        assert len(result.postings) == 10
        assert result.stop_reason == reason
        assert sleeps == []

    def test_unconfigured_adapter_makes_no_calls(self, gateway, make_static_adapter):
        adapter = make_static_adapter("src", [{"id": "a"}], configured=False)

        result = adapter.collect("q", "", 10, gateway)

        assert result.postings == []
        assert adapter.requested_pages == []
        assert result.stop_reason == STOP_NOT_CONFIGURED

    def test_zero_quota_makes_no_calls(self, gateway, make_static_adapter):
        adapter = make_static_adapter("src", [{"id": "a"}])

        result = adapter.collect("q", "", 0, gateway)

        assert adapter.requested_pages == []
        assert result.stop_reason == STOP_NO_QUOTA

    def test_duplicates_are_not_counted_as_new(self, gateway, make_static_adapter, mock_records):
        adapter = make_static_adapter("src", mock_records + mock_records[:3], page_size=20)

        result = adapter.collect("q", "", 20, gateway)

        assert len(result.postings) == 8
        assert result.duplicates == 3

    def test_invalid_constructor_arguments(self, make_static_adapter):
        with pytest.raises(ValueError):
            make_static_adapter("src", [], page_size=0)
        with pytest.raises(ValueError):
            make_static_adapter("src", [], max_pages=0)


pytestmark = pytest.mark.unit
