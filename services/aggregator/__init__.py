"""Aggregator Service.

This service fetches job postings from external provider APIs, normalizes
them into one Posting format, and stores only postings whose identity key
has not been seen before.

Main components:
- SourceAdapter: Abstract base class for all provider adapters (base.py)
- Posting / IngestionRequest: Data classes for normalized postings and runs
- RetryPolicy: Finite rate-limit retry policy (retry.py)
- DedupGateway: Insert-if-absent persistence front (gateway.py)
- AggregationOrchestrator: Sequential, failure-isolated runs (orchestrator.py)
- IngestionService: Background submission and stats (service.py)
- Adapters: Provider-specific implementations (in adapters/ directory)
"""

from .base import IngestionRequest, Posting, SourceAdapter, SourceResult
from .gateway import DedupGateway
from .orchestrator import AggregationOrchestrator, allocate_quotas
from .retry import RetryPolicy, call_with_retry, retry_with_backoff
from .service import Acknowledgment, IngestionService, IngestionStats, build_service
from .source_config import (
    AggregatorConfig,
    ProviderConfig,
    load_aggregator_config,
    load_sources_config,
)
from .storage import InMemoryPostingStore, PostgresPostingStore, PostingFilters

__all__ = [
    "Acknowledgment",
    "AggregationOrchestrator",
    "AggregatorConfig",
    "DedupGateway",
    "InMemoryPostingStore",
    "IngestionRequest",
    "IngestionService",
    "IngestionStats",
    "Posting",
    "PostgresPostingStore",
    "PostingFilters",
    "ProviderConfig",
    "RetryPolicy",
    "SourceAdapter",
    "SourceResult",
    "allocate_quotas",
    "build_service",
    "call_with_retry",
    "load_aggregator_config",
    "load_sources_config",
    "retry_with_backoff",
]
__version__ = "0.1.0"
