"""Job Aggregator Services Package.

This package contains the services of the job aggregator:
- aggregator: Fetches job postings from external provider APIs, deduplicates
  them by identity key and stores the new ones
"""

__version__ = "0.1.0"
