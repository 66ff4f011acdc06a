"""
Ingestion Service

Caller-facing entry points of the aggregator:

- ``submit_ingestion(query, location, quota)`` validates the request, hands it
  to a background worker and returns an Acknowledgment immediately
- ``get_ingestion_stats()`` reports what completed runs have stored so far

The adapter set (real providers or synthetic stand-ins) is chosen once, when
the service is built from configuration. Nothing downstream of
``build_adapters`` knows which set is in use.
"""

import logging
import os
import threading
import uuid
from collections import OrderedDict
from collections.abc import Iterable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from .adapters import ADAPTER_REGISTRY, SyntheticAdapter
from .base import (
    DEFAULT_QUOTA,
    IngestionRequest,
    Posting,
    SourceAdapter,
    SourceResult,
    utcnow,
)
from .errors import ConfigurationError
from .gateway import DedupGateway
from .orchestrator import AggregationOrchestrator
from .source_config import (
    MODE_LIVE,
    MODE_SYNTHETIC,
    AggregatorConfig,
    ProviderConfig,
    load_aggregator_config,
)
from .storage import (
    DEFAULT_PAGE_SIZE,
    PostingFilters,
    PostingPage,
    PostingStore,
    create_store,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_FINISHED_TASKS = 100


@dataclass
class Acknowledgment:
    """Returned by submit_ingestion; the run itself continues in the background."""

    task_id: str
    message: str
    mode: str
    submitted_at: datetime = field(default_factory=utcnow)


@dataclass
class IngestionStats:
    """Stored posting counts, eventually consistent with submitted runs."""

    total: int
    per_source: dict[str, int]
    mode: str


class IngestionService:
    """Dispatches ingestion runs to a thread pool and answers read queries."""

    def __init__(
        self,
        orchestrator: AggregationOrchestrator,
        store: PostingStore,
        mode: str = MODE_LIVE,
        max_workers: int = 2,
        max_finished_tasks: int = DEFAULT_MAX_FINISHED_TASKS,
    ):
        """
        Args:
            orchestrator: Runs each submitted request
            store: Store answering the read queries
            mode: "live" or "synthetic", echoed in acknowledgments and stats
            max_workers: Ingestion runs executing at the same time
            max_finished_tasks: Finished tasks whose results are kept for
                wait_for / get_task_result. Older ones are forgotten.
        """
        if max_finished_tasks < 0:
            raise ValueError("max_finished_tasks must not be negative")

        self.orchestrator = orchestrator
        self.store = store
        self.mode = mode
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="ingestion"
        )
        self.max_finished_tasks = max_finished_tasks
        self._tasks: "OrderedDict[str, Future]" = OrderedDict()
        self._lock = threading.Lock()

    def submit_ingestion(
        self,
        query: str,
        location: str = "",
        quota: int = DEFAULT_QUOTA,
        sources: Optional[Iterable[str]] = None,
    ) -> Acknowledgment:
        """
        Start an ingestion run in the background.

        Args:
            query: Search text
            location: Location filter, "" for none
            quota: Total number of new postings wanted
            sources: Restrict the run to these source names (None = all).
                The selected sources share the whole quota.

        Returns:
            Acknowledgment with the task id; results land in the store later

        Raises:
            ValueError: If the request is invalid (empty query, quota <= 0,
                unknown source, ...)
        """
        request = IngestionRequest(query=query, location=location, total_quota=quota)
        if sources is not None:
            sources = [sources] if isinstance(sources, str) else list(sources)
            self.orchestrator.select(sources)
        task_id = uuid.uuid4().hex

        future = self._executor.submit(self._run_task, task_id, request, sources)
        with self._lock:
            self._forget_finished()
            self._tasks[task_id] = future

        logger.info(
            "Ingestion task submitted",
            extra={
                "task_id": task_id,
                "query": request.query,
                "location": request.location,
                "quota": request.total_quota,
                "sources": sources,
                "mode": self.mode,
            },
        )
        return Acknowledgment(
            task_id=task_id,
            message=f"{self.mode.upper()} job fetch started. Results will be available shortly.",
            mode=self.mode,
        )

    def _forget_finished(self) -> None:
        """Drop the oldest finished tasks beyond max_finished_tasks. Caller holds the lock."""
        finished = [task_id for task_id, future in self._tasks.items() if future.done()]
        for task_id in finished[:max(0, len(finished) - self.max_finished_tasks)]:
            del self._tasks[task_id]

    def _run_task(
        self, task_id: str, request: IngestionRequest, sources: Optional[list[str]] = None
    ) -> list[SourceResult]:
        """Background body: never raises, failures end up in the log."""
        try:
            results = self.orchestrator.aggregate_detailed(request, sources)
        except Exception as e:
            logger.error(
                "Ingestion task failed",
                extra={"task_id": task_id, "error": str(e), "error_type": type(e).__name__},
                exc_info=True,
            )
            return []

        logger.info(
            "Ingestion task completed",
            extra={
                "task_id": task_id,
                "new_postings": sum(len(r.postings) for r in results),
            },
        )
        return results

    def wait_for_results(
        self, task_id: str, timeout: Optional[float] = None
    ) -> list[SourceResult]:
        """
        Block until a task finishes and return its per-source results.

        Raises:
            KeyError: If the task id is unknown or was already forgotten
            concurrent.futures.TimeoutError: If the task is still running after timeout
        """
        with self._lock:
            future = self._tasks[task_id]
        return future.result(timeout=timeout)

    def wait_for(self, task_id: str, timeout: Optional[float] = None) -> list[Posting]:
        """Block until a task finishes and return its new postings."""
        return _flatten(self.wait_for_results(task_id, timeout=timeout))

    def get_task_result(self, task_id: str) -> Optional[list[Posting]]:
        """New postings of a finished task, None while it is running, unknown or forgotten."""
        with self._lock:
            future = self._tasks.get(task_id)
        if future is None or not future.done():
            return None
        return _flatten(future.result())

    def get_ingestion_stats(self) -> IngestionStats:
        """Total stored postings and a per-source breakdown for every configured source."""
        sources = list(dict.fromkeys(self.orchestrator.source_names))
        return IngestionStats(
            total=self.store.count(),
            per_source={source: self.store.count_by_source(source) for source in sources},
            mode=self.mode,
        )

    def list_postings(
        self, filters: Optional[PostingFilters] = None, page: int = 0, size: int = DEFAULT_PAGE_SIZE
    ) -> PostingPage:
        return self.store.list_postings(filters, page=page, size=size)

    def distinct_locations(self) -> list[str]:
        return self.store.distinct_locations()

    def distinct_companies(self) -> list[str]:
        return self.store.distinct_companies()

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "IngestionService":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown(wait=True)
        return False


def _flatten(results: list[SourceResult]) -> list[Posting]:
    return [posting for result in results for posting in result.postings]


def create_adapter(name: str, provider: ProviderConfig, synthetic: bool = False) -> SourceAdapter:
    """
    Build the adapter for one configured provider.

    In synthetic mode the provider's real adapter is replaced by a
    SyntheticAdapter carrying the same source tag.

    Raises:
        ConfigurationError: On an unknown adapter name or invalid params
    """
    adapter_cls = ADAPTER_REGISTRY.get(provider.adapter)
    if adapter_cls is None:
        raise ConfigurationError(
            f"Provider '{name}' uses unknown adapter '{provider.adapter}'. "
            f"Known adapters: {sorted(ADAPTER_REGISTRY)}"
        )

    try:
        if synthetic:
            return SyntheticAdapter(
                source_name=provider.adapter,
                retry_policy=provider.retry_policy,
                **provider.synthetic,
            )
        return adapter_cls(retry_policy=provider.retry_policy, **provider.params)
    except TypeError as e:
        raise ConfigurationError(f"Invalid settings for provider '{name}': {e}") from e


def build_adapters(config: AggregatorConfig) -> list[SourceAdapter]:
    """Select the adapter set once, from the configured mode."""
    synthetic = config.mode == MODE_SYNTHETIC
    adapters = [
        create_adapter(name, provider, synthetic=synthetic)
        for name, provider in config.enabled_providers.items()
    ]

    if synthetic:
        logger.info(
            "SYNTHETIC MODE: provider calls are simulated, no API keys required",
            extra={"sources": [a.source_name for a in adapters]},
        )
    else:
        logger.info(
            "LIVE MODE: using real provider APIs, rate limits and API keys apply",
            extra={"sources": [a.source_name for a in adapters]},
        )
    return adapters


def build_service(
    config: Optional[AggregatorConfig] = None,
    store: Optional[PostingStore] = None,
    database_url: Optional[str] = None,
) -> IngestionService:
    """
    Wire configuration, adapters, store and orchestrator into a service.

    Args:
        config: Loaded configuration (defaults to config/sources.yml)
        store: Posting store (defaults to DATABASE_URL, or in-memory when unset)
        database_url: Overrides DATABASE_URL when no store is given

    Raises:
        FileNotFoundError, ConfigurationError: On invalid configuration
        PostingStoreError: If the database cannot be reached
    """
    config = config or load_aggregator_config()
    adapters = build_adapters(config)

    if store is None:
        store = create_store(database_url or os.getenv("DATABASE_URL"))

    # One weight per enabled provider, in adapter order
    weights = [provider.weight for provider in config.enabled_providers.values()]
    orchestrator = AggregationOrchestrator(
        adapters,
        DedupGateway(store),
        allocation=config.quota_allocation,
        weights=weights,
        inter_source_delay=config.inter_source_delay_seconds,
    )
    return IngestionService(
        orchestrator, store, mode=config.mode, max_workers=config.max_workers
    )
