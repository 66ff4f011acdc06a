"""
Aggregation Orchestrator

Runs one ingestion request across every configured adapter:

1. Split the request's total quota into per-source quotas
   (``equal`` or ``weighted`` allocation).
2. Invoke the adapters one at a time, sleeping ``inter_source_delay`` seconds
   between them so independent providers are not hit simultaneously.
3. Catch and log any failure of a single source; the other sources still run.
4. Return the concatenation of the new postings, in invocation order.

``aggregate`` never raises.
"""

import logging
import math
import time
from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime, timezone
from typing import Optional, Union

from .base import (
    STOP_FAILED,
    STOP_NO_QUOTA,
    IngestionRequest,
    Posting,
    SourceAdapter,
    SourceResult,
)
from .gateway import DedupGateway

logger = logging.getLogger(__name__)

ALLOCATION_EQUAL = "equal"
ALLOCATION_WEIGHTED = "weighted"
VALID_ALLOCATIONS = {ALLOCATION_EQUAL, ALLOCATION_WEIGHTED}

DEFAULT_INTER_SOURCE_DELAY = 2.0


def allocate_quotas(
    total_quota: int,
    source_count: int,
    strategy: str = ALLOCATION_EQUAL,
    weights: Optional[Sequence[float]] = None,
) -> list[int]:
    """
    Split ``total_quota`` across ``source_count`` sources.

    equal:
        Even split; the remainder goes to the first sources in order.
        allocate_quotas(10, 3) -> [4, 3, 3]
    weighted:
        Proportional to ``weights`` using the largest remainder method, so the
        parts always sum to ``total_quota``.
        allocate_quotas(10, 2, "weighted", [0.7, 0.3]) -> [7, 3]

    Raises:
        ValueError: On an unknown strategy or unusable weights
    """
    if source_count <= 0:
        return []
    if total_quota < 0:
        raise ValueError("total_quota must not be negative")

    if strategy == ALLOCATION_EQUAL:
        base, remainder = divmod(total_quota, source_count)
        return [base + (1 if index < remainder else 0) for index in range(source_count)]

    if strategy != ALLOCATION_WEIGHTED:
        raise ValueError(f"Unknown quota allocation strategy: {strategy}")

    if weights is None or len(weights) != source_count:
        raise ValueError("weighted allocation needs one weight per source")
    if any(w < 0 for w in weights):
        raise ValueError("weights must not be negative")
    weight_sum = sum(weights)
    if weight_sum <= 0:
        raise ValueError("at least one weight must be positive")

    exact = [total_quota * w / weight_sum for w in weights]
    quotas = [math.floor(value) for value in exact]
    leftover = total_quota - sum(quotas)

    # Largest fractional part first; earlier sources win ties
    by_fraction = sorted(
        range(source_count), key=lambda i: (-(exact[i] - quotas[i]), i)
    )
    for index in by_fraction[:leftover]:
        quotas[index] += 1
    return quotas


class AggregationOrchestrator:
    """Sequential, failure-isolated aggregation across adapters."""

    def __init__(
        self,
        adapters: Sequence[SourceAdapter],
        gateway: DedupGateway,
        allocation: str = ALLOCATION_EQUAL,
        weights: Optional[Union[Mapping[str, float], Sequence[float]]] = None,
        inter_source_delay: float = DEFAULT_INTER_SOURCE_DELAY,
    ):
        """
        Args:
            adapters: Adapters in invocation order
            gateway: Dedup gateway shared by all adapters
            allocation: "equal" or "weighted"
            weights: Used by "weighted". Either one weight per adapter, in
                adapter order, or source name -> weight (missing = 1.0)
            inter_source_delay: Seconds to sleep between two adapter invocations
        """
        if allocation not in VALID_ALLOCATIONS:
            raise ValueError(f"Unknown quota allocation strategy: {allocation}")
        if inter_source_delay < 0:
            raise ValueError("inter_source_delay must not be negative")

        self.adapters = list(adapters)
        self.gateway = gateway
        self.allocation = allocation
        self.adapter_weights = self._align_weights(weights)
        self.inter_source_delay = inter_source_delay

    def _align_weights(
        self, weights: Optional[Union[Mapping[str, float], Sequence[float]]]
    ) -> list[float]:
        if weights is None:
            return [1.0] * len(self.adapters)
        if isinstance(weights, Mapping):
            return [float(weights.get(a.source_name, 1.0)) for a in self.adapters]
        if len(weights) != len(self.adapters):
            raise ValueError("weights must hold one value per adapter")
        return [float(w) for w in weights]

    @property
    def source_names(self) -> list[str]:
        return [adapter.source_name for adapter in self.adapters]

    def select(self, sources: Optional[Iterable[str]] = None) -> list[int]:
        """
        Indices of the adapters a run uses, in invocation order.

        Args:
            sources: Source names to restrict the run to. None means all.

        Raises:
            ValueError: If ``sources`` is empty or names an unknown source
        """
        if sources is None:
            return list(range(len(self.adapters)))
        if isinstance(sources, str):
            sources = [sources]

        wanted = set(sources)
        if not wanted:
            raise ValueError("sources must name at least one source")
        unknown = wanted - set(self.source_names)
        if unknown:
            raise ValueError(
                f"Unknown sources: {sorted(unknown)}. Configured: {sorted(set(self.source_names))}"
            )
        return [i for i, adapter in enumerate(self.adapters) if adapter.source_name in wanted]

    def quotas_for(self, total_quota: int, sources: Optional[Iterable[str]] = None) -> list[int]:
        """Per-adapter quotas for a request, aligned with ``select(sources)``."""
        indices = self.select(sources)
        weights = None
        if self.allocation == ALLOCATION_WEIGHTED:
            weights = [self.adapter_weights[i] for i in indices]
        return allocate_quotas(total_quota, len(indices), self.allocation, weights)

    def aggregate(
        self, request: IngestionRequest, sources: Optional[Iterable[str]] = None
    ) -> list[Posting]:
        """
        Run the request against every adapter, or only those in ``sources``.

        Returns:
            Newly persisted postings, grouped by adapter in invocation order
        """
        postings: list[Posting] = []
        for result in self.aggregate_detailed(request, sources):
            postings.extend(result.postings)
        return postings

    def aggregate_detailed(
        self, request: IngestionRequest, sources: Optional[Iterable[str]] = None
    ) -> list[SourceResult]:
        """Run the request and return one SourceResult per selected adapter."""
        start_time = datetime.now(timezone.utc)
        results: list[SourceResult] = []

        try:
            if sources is not None and not isinstance(sources, str):
                sources = list(sources)
            adapters = [self.adapters[i] for i in self.select(sources)]
            quotas = self.quotas_for(request.total_quota, sources)
        except Exception as e:
            logger.error(
                "Failed to allocate quotas, nothing fetched",
                extra={"error": str(e), "error_type": type(e).__name__},
            )
            return results

        logger.info(
            "Starting job aggregation",
            extra={
                "query": request.query,
                "location": request.location,
                "total_quota": request.total_quota,
                "quotas": [(a.source_name, q) for a, q in zip(adapters, quotas)],
            },
        )

        invoked = 0
        for adapter, quota in zip(adapters, quotas):
            if quota <= 0:
                results.append(
                    SourceResult(source=adapter.source_name, quota=quota, stop_reason=STOP_NO_QUOTA)
                )
                continue

            if invoked > 0 and self.inter_source_delay > 0:
                time.sleep(self.inter_source_delay)
            invoked += 1

            try:
                result = adapter.collect(request.query, request.location, quota, self.gateway)
            except Exception as e:
                logger.error(
                    "Source fetch failed",
                    extra={
                        "source": adapter.source_name,
                        "error": str(e),
                        "error_type": type(e).__name__,
                    },
                    exc_info=True,
                )
                result = SourceResult(source=adapter.source_name, quota=quota, stop_reason=STOP_FAILED)

            results.append(result)
            logger.info(
                "Source fetch completed",
                extra={
                    "source": result.source,
                    "new_postings": len(result.postings),
                    "stop_reason": result.stop_reason,
                },
            )

        duration = (datetime.now(timezone.utc) - start_time).total_seconds()
        logger.info(
            "Completed job aggregation. Total new jobs: %d",
            sum(len(r.postings) for r in results),
            extra={
                "duration_seconds": duration,
                "per_source": {r.source: len(r.postings) for r in results},
            },
        )
        return results
