"""
Aggregator Service - Main Entry Point

Command-line interface for the aggregator service. It can be called directly
from the terminal or from a scheduler task.

Usage:
    python -m services.aggregator.main [GLOBAL OPTIONS] COMMAND [OPTIONS]

Commands:
    ingest    Fetch postings from all configured providers and store new ones
    stats     Show stored posting counts per source

Global Options:
    --config PATH   Path to sources.yml (default: config/sources.yml)
    --synthetic     Use synthetic adapters instead of the real providers
    --verbose       Enable debug logging

Examples:
    # Fetch up to 20 new "Manager" postings in Bangalore:
    python -m services.aggregator.main ingest --query Manager --location Bangalore --quota 20

    # Same, without API keys:
    python -m services.aggregator.main --synthetic ingest --query Manager

    # JSearch only:
    python -m services.aggregator.main ingest --query Manager --source jsearch --quota 20

    # Counts per source:
    python -m services.aggregator.main stats

Exit Codes:
    0: Success
    1: At least one source stopped on an error (other sources may have succeeded)
    2: Fatal error (configuration, database connection, etc.)
"""

import argparse
import logging
import sys
from typing import Optional

from dotenv import load_dotenv

from .base import (
    DEFAULT_QUOTA,
    STOP_CLIENT_ERROR,
    STOP_FAILED,
    STOP_TRANSPORT_ERROR,
)
from .errors import PostingStoreError
from .service import IngestionService, build_service
from .source_config import MODE_SYNTHETIC, load_aggregator_config

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

ERROR_STOP_REASONS = {STOP_CLIENT_ERROR, STOP_TRANSPORT_ERROR, STOP_FAILED}


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        description='Aggregate job postings from external providers',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument('--config', type=str, default=None, help='Path to sources.yml')
    parser.add_argument(
        '--synthetic',
        action='store_true',
        help='Use synthetic adapters (no API calls, no credentials needed)',
    )
    parser.add_argument('--verbose', action='store_true', help='Enable debug logging')

    subparsers = parser.add_subparsers(dest='command', required=True)

    ingest = subparsers.add_parser('ingest', help='Fetch and store new postings')
    ingest.add_argument('--query', type=str, required=True, help='Job title or keywords')
    ingest.add_argument('--location', type=str, default='', help='Location filter (optional)')
    ingest.add_argument(
        '--quota',
        type=int,
        default=DEFAULT_QUOTA,
        help=f'Maximum number of new postings across all sources (default: {DEFAULT_QUOTA})',
    )
    ingest.add_argument(
        '--source',
        dest='sources',
        action='append',
        default=None,
        help='Only fetch from this source (repeatable, default: all enabled sources)',
    )

    subparsers.add_parser('stats', help='Show stored posting counts')

    return parser.parse_args(argv)


def run_ingest(
    service: IngestionService,
    query: str,
    location: str,
    quota: int,
    sources: Optional[list[str]] = None,
) -> int:
    """Submit one ingestion run, wait for it and print a summary."""
    ack = service.submit_ingestion(query, location, quota, sources=sources)
    print(f"[{ack.task_id}] {ack.message}")

    results = service.wait_for_results(ack.task_id)

    for result in results:
        print(
            f"  {result.source:<12} new={len(result.postings):<4} "
            f"duplicates={result.duplicates:<4} pages={result.pages_fetched:<3} "
            f"stop={result.stop_reason}"
        )
    total_new = sum(len(result.postings) for result in results)
    print(f"Total new postings: {total_new}")

    failed = [r.source for r in results if r.stop_reason in ERROR_STOP_REASONS]
    if failed:
        logger.warning(f"Completed with errors in sources: {', '.join(failed)}")
        return 1
    return 0


def run_stats(service: IngestionService) -> int:
    stats = service.get_ingestion_stats()
    print(f"Mode: {stats.mode}")
    print(f"Total postings: {stats.total}")
    for source, count in stats.per_source.items():
        print(f"  {source:<12} {count}")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """
    Main entry point for the aggregator service.

    Returns:
        Exit code (0 = success, 1 = partial failure, 2 = fatal error)
    """
    args = parse_args(argv)
    configure_logging(args.verbose)

    try:
        config = load_aggregator_config(args.config)
        if args.synthetic:
            config.mode = MODE_SYNTHETIC
        service = build_service(config)
    except (FileNotFoundError, ValueError) as e:
        logger.error(f"Configuration error: {e}")
        return 2
    except PostingStoreError as e:
        logger.error(f"Database error: {e}")
        return 2

    try:
        with service:
            if args.command == 'ingest':
                return run_ingest(service, args.query, args.location, args.quota, args.sources)
            return run_stats(service)

    except ValueError as e:
        logger.error(f"Invalid request: {e}")
        return 2

    except PostingStoreError as e:
        logger.error(f"Database error: {e}")
        return 2

    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        return 130  # Standard Unix exit code for SIGINT

    except Exception as e:
        logger.error(
            "Unexpected fatal error",
            extra={'error': str(e), 'error_type': type(e).__name__},
            exc_info=True,
        )
        return 2


if __name__ == '__main__':
    sys.exit(main())
