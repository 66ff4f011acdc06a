"""Error taxonomy for the aggregator service.

Adapters raise these while fetching or mapping a page; the pagination loop in
``SourceAdapter.collect`` decides which of them end a source's run. None of
them is allowed to escape the orchestrator.
"""

from typing import Optional


class AggregatorError(Exception):
    """Base class for all aggregator errors."""

    pass


class ConfigurationError(AggregatorError, ValueError):
    """Raised when the sources configuration or a provider's settings are invalid."""

    pass


class ProviderError(AggregatorError):
    """Base class for errors reported while talking to a provider API."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimited(ProviderError):
    """Provider answered with HTTP 429 (too many requests)."""

    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message, status_code=429)
        self.retry_after = retry_after


class ClientError(ProviderError):
    """Provider rejected the request with a non rate-limit 4xx status."""

    pass


class TransportError(ProviderError):
    """Network failure, 5xx status or an unusable response body."""

    pass


class ParseError(AggregatorError):
    """A single provider record could not be mapped to a Posting."""

    pass


class PostingStoreError(AggregatorError):
    """Raised when the persistence store fails."""

    pass
