"""Job Provider Adapters.

This package contains concrete implementations of the SourceAdapter interface
for different job posting APIs, plus the synthetic stand-in.

Available adapters:
- JSearchAdapter: JSearch API on RapidAPI (jsearch_adapter.py)
- AdzunaAdapter: Adzuna API (adzuna_adapter.py)
- SyntheticAdapter: Generated postings, no network (synthetic_adapter.py)
"""

from .adzuna_adapter import AdzunaAdapter
from .jsearch_adapter import JSearchAdapter
from .synthetic_adapter import SyntheticAdapter

# Adapter names accepted in the `adapter` key of config/sources.yml
ADAPTER_REGISTRY = {
    "jsearch": JSearchAdapter,
    "adzuna": AdzunaAdapter,
}

__all__ = ["ADAPTER_REGISTRY", "AdzunaAdapter", "JSearchAdapter", "SyntheticAdapter"]
