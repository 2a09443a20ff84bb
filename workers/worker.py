"""Worker for delivery-note validation.

Listens on the configured task queue and executes the validation workflow
and its reconciliation activity.

Run with --queue <name> to poll another task queue.
"""

import argparse
import asyncio
import sys
from pathlib import Path

from temporalio.worker import Worker

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from core import config
from core.observability.logging import configure_logging, get_logger
from temporal_client import get_temporal_client
from workflows.delivery_note_workflow import DeliveryNoteValidationWorkflow
from activities.reconcile import reconcile_delivery_note


logger = get_logger(__name__)

WORKFLOWS = [DeliveryNoteValidationWorkflow]
ACTIVITIES = [reconcile_delivery_note]


def build_worker(client, task_queue: str = None) -> Worker:
    """Create a worker with the validation workflow and activity registered."""
    return Worker(
        client,
        task_queue=task_queue or config.TASK_QUEUE,
        workflows=WORKFLOWS,
        activities=ACTIVITIES,
    )


async def run_worker(queue: str = None):
    """Start worker listening on the task queue.

    Args:
        queue: Task queue to poll (defaults to TEMPORAL_TASK_QUEUE)

    Raises:
        Exception: If connection to Temporal fails
    """
    client = await get_temporal_client()
    logger.info(f"Connected to Temporal: {client.namespace}")

    worker = build_worker(client, queue)
    logger.info(
        "Worker created",
        extra_fields={
            "task_queue": queue or config.TASK_QUEUE,
            "workflows": len(WORKFLOWS),
            "activities": len(ACTIVITIES),
        },
    )

    try:
        logger.info("Worker running... (Ctrl+C to stop)")
        await worker.run()
    except Exception as e:
        logger.error(f"Worker error: {e}", exc_info=True)
        raise


def main():
    """Entry point for worker with CLI args."""
    parser = argparse.ArgumentParser(description="Delivery Control Temporal Worker")
    parser.add_argument(
        "--queue", "-q",
        default=config.TASK_QUEUE,
        help=f"Task queue to poll (default: {config.TASK_QUEUE})"
    )

    args = parser.parse_args()
    configure_logging()
    try:
        asyncio.run(run_worker(queue=args.queue))
    except KeyboardInterrupt:
        logger.info("Worker interrupted by user")


if __name__ == "__main__":
    main()
