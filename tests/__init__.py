"""Job Aggregator Test Suite.

This package contains unit and integration tests for the job aggregator.

Test Structure:
- unit/: Unit tests for individual functions and classes
- integration/: Tests against a real PostgreSQL database
"""

__version__ = "0.1.0"
