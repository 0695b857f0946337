"""Worker for counterparty resolution.

Listens on the contact-resolution task queue and executes the resolution
activities on behalf of document-ingestion workflows. Run several workers
against the same database; provisioning stays race-safe across them.

Usage:
    python workers/worker.py [--queue contact-resolution] [--max-concurrent 20]
"""

import argparse
import asyncio
import sys
from pathlib import Path

from temporalio.worker import Worker

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from temporal_client import get_temporal_client
from activities.resolve import (
    TASK_QUEUE,
    DB_PATH,
    resolve_counterparty,
    provision_counterparty,
    learn_counterparty_alias,
)
from contact_resolver.db import init_contact_resolver_db
from core.observability.logging import configure_logging, get_logger


logger = get_logger(__name__)

RESOLUTION_ACTIVITIES = [
    resolve_counterparty,
    provision_counterparty,
    learn_counterparty_alias,
]


async def run_worker(task_queue: str = TASK_QUEUE, max_concurrent: int = 20):
    """Start a worker polling the resolution task queue.

    Args:
        task_queue: Queue to poll
        max_concurrent: Max activities executed at once by this worker
    """
    init_contact_resolver_db(DB_PATH)

    client = await get_temporal_client()
    logger.info(f"Connected to Temporal namespace: {client.namespace}")

    worker = Worker(
        client,
        task_queue=task_queue,
        activities=RESOLUTION_ACTIVITIES,
        max_concurrent_activities=max_concurrent,
    )

    logger.info(
        f"Worker running on '{task_queue}' with {len(RESOLUTION_ACTIVITIES)} activities "
        f"(db={DB_PATH})... (Ctrl+C to stop)"
    )
    await worker.run()


def main():
    """Entry point for worker with CLI args."""
    parser = argparse.ArgumentParser(description="Contact Resolution Temporal Worker")
    parser.add_argument(
        "--queue", "-q",
        default=TASK_QUEUE,
        help=f"Task queue to poll (default: {TASK_QUEUE})"
    )
    parser.add_argument(
        "--max-concurrent",
        type=int,
        default=20,
        help="Max concurrent activities (default: 20)"
    )

    args = parser.parse_args()
    configure_logging()

    try:
        asyncio.run(run_worker(task_queue=args.queue, max_concurrent=args.max_concurrent))
    except KeyboardInterrupt:
        logger.info("Worker interrupted by user")


if __name__ == "__main__":
    main()
