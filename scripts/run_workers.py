#!/usr/bin/env python3
"""Entrypoint for running the notification delivery workers.

Usage:
    # Single run (deliver due notifications and clean up expired ones once)
    python scripts/run_workers.py --once

    # Continuous loop (Ctrl+C to stop)
    python scripts/run_workers.py --loop

    # Loop with custom interval
    python scripts/run_workers.py --loop --interval 10

    # Limit iterations
    python scripts/run_workers.py --loop --max-iterations 5

Environment variables:
    WORKER_BATCH_SIZE: Notifications per batch (default: 50)
    WORKER_MAX_RETRIES: Default retry budget per notification (default: 3)
    WORKER_POLL_INTERVAL_SECONDS: Seconds between cycles (default: 30)
    DELIVERY_SEND_TIMEOUT_SECONDS: Seconds before a channel send fails (default: 10)
    DELIVERY_CLAIM_LEASE_SECONDS: Claim lease duration (default: 120)
"""

import argparse
import logging
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from visa_notifications.workers import (
    configure_worker_logging,
    run_worker_loop,
    run_worker_once,
)


def main() -> int:
    """Main entrypoint for the worker runner."""
    parser = argparse.ArgumentParser(
        description="Run notification delivery workers for the visa portal",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    mode = parser.add_mutually_exclusive_group(required=True)
    mode.add_argument("--once", action="store_true", help="Run workers once and exit")
    mode.add_argument("--loop", action="store_true", help="Run workers continuously in a loop")

    parser.add_argument(
        "--interval",
        type=int,
        default=None,
        help="Seconds between cycles (loop mode only)",
    )
    parser.add_argument(
        "--max-iterations",
        type=int,
        default=None,
        help="Maximum iterations before stopping (loop mode only)",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help="Notifications to process per batch",
    )
    parser.add_argument(
        "--max-retries",
        type=int,
        default=None,
        help="Default retry budget per notification",
    )

    parser.add_argument("--verbose", "-v", action="store_true", help="Enable DEBUG logging")
    parser.add_argument("--quiet", "-q", action="store_true", help="Log warnings only")

    args = parser.parse_args()

    if args.verbose:
        configure_worker_logging(logging.DEBUG)
    elif args.quiet:
        configure_worker_logging(logging.WARNING)
    else:
        configure_worker_logging(logging.INFO)

    logger = logging.getLogger(__name__)

    try:
        if args.once:
            logger.info("Running workers once...")
            result = run_worker_once(
                batch_size=args.batch_size,
                max_retries=args.max_retries,
            )

            print("\n--- Worker Run Summary ---")
            print(f"Workers run: {result.workers_run}")
            print(f"Total processed: {result.total_processed}")
            print(f"Total failed: {result.total_failed}")
            print(f"Total skipped: {result.total_skipped}")

            if result.errors:
                print(f"Errors: {len(result.errors)}")
                for err in result.errors:
                    print(f"  - {err}")

            for name, worker_result in result.worker_results.items():
                print(f"\n{name}:")
                print(f"  Processed: {worker_result.processed_count}")
                print(f"  Failed: {worker_result.failed_count}")
                print(f"  Skipped: {worker_result.skipped_count}")

            return 0 if not result.errors else 1

        logger.info("Starting worker loop (Ctrl+C to stop)...")
        run_worker_loop(
            interval_seconds=args.interval,
            max_iterations=args.max_iterations,
            batch_size=args.batch_size,
            max_retries=args.max_retries,
        )
        return 0

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0
    except Exception as e:
        logger.error(f"Worker failed: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
