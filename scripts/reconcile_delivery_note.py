"""Validate a stored delivery note and print the reconciliation outcome.

Runs the validation in-process by default, or starts a
DeliveryNoteValidationWorkflow on Temporal with --temporal.

Usage:
    python scripts/reconcile_delivery_note.py 42 --user alice
    python scripts/reconcile_delivery_note.py 42 --temporal
"""

import argparse
import asyncio
import json
import sys
from dataclasses import asdict
from pathlib import Path

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from core import config
from core.observability.logging import configure_logging, get_logger
from core.observability.metrics import get_metrics
from activities.reconcile import ReconcileDeliveryNoteInput, validate_delivery_note
from models.delivery import ControlStatus, DeliveryNoteStatus
from price_catalog.lookup import SqlitePriceCatalog
from storage.delivery_notes import DeliveryNoteStore


logger = get_logger(__name__)


def run_local(note_id: int, validated_by: str = None, db_path: Path = None) -> dict:
    """Validate the note in this process."""
    store = DeliveryNoteStore(db_path)
    catalog = SqlitePriceCatalog(store.db_path)
    outcome = validate_delivery_note(note_id, store, catalog, validated_by=validated_by)
    return asdict(outcome)


async def run_on_temporal(note_id: int, validated_by: str = None, db_path: Path = None) -> dict:
    """Start the validation workflow and wait for its result."""
    from temporal_client import get_temporal_client
    from workflows.delivery_note_workflow import DeliveryNoteValidationWorkflow

    client = await get_temporal_client()
    logger.info(f"Connected to Temporal: {client.namespace}")

    result = await client.execute_workflow(
        DeliveryNoteValidationWorkflow.run,
        ReconcileDeliveryNoteInput(
            note_id=note_id,
            validated_by=validated_by,
            db_path=str(db_path) if db_path else None,
        ),
        id=f"delivery-note-{note_id}-validation",
        task_queue=config.TASK_QUEUE,
    )
    return asdict(result)


def format_outcome(result: dict) -> str:
    """Operator-facing text for a validation result."""
    status = DeliveryNoteStatus(result["status"])
    lines = [result["summary"], f"Status: {status.label}"]
    for value, count in sorted(result["line_statuses"].items()):
        lines.append(f"  {ControlStatus(value).label}: {count} line(s)")
    return "\n".join(lines)


def main():
    parser = argparse.ArgumentParser(description="Validate and reconcile a delivery note")
    parser.add_argument("note_id", type=int, help="Delivery note ID")
    parser.add_argument("--user", "-u", default=None, help="User validating the note")
    parser.add_argument("--db", type=Path, default=None, help=f"SQLite database (default: {config.DB_PATH})")
    parser.add_argument("--temporal", action="store_true", help="Run through the Temporal workflow")
    parser.add_argument("--json", action="store_true", help="Print the raw result as JSON")
    parser.add_argument("--metrics", action="store_true", help="Print the metrics summary afterwards")

    args = parser.parse_args()
    configure_logging()

    if args.temporal:
        result = asyncio.run(run_on_temporal(args.note_id, args.user, args.db))
    else:
        result = run_local(args.note_id, args.user, args.db)

    if args.json:
        print(json.dumps(result, indent=2))
    else:
        print(format_outcome(result))

    if args.metrics:
        print(json.dumps(get_metrics().get_summary(), indent=2))


if __name__ == "__main__":
    main()
