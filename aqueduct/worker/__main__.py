"""Worker CLI: drain the Events Queue once or on an interval.

Usage:
    python -m aqueduct.worker --once
    python -m aqueduct.worker --interval 60
    python -m aqueduct.worker --once --sweep-stale --stale-after-minutes 30
"""

from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
import threading

from aqueduct.config import settings
from aqueduct.errors import ConfigurationError, UpstreamError
from aqueduct.logging_setup import setup_logging
from aqueduct.queue import get_event_queue
from aqueduct.worker.drain import QueueDrainWorker

logger = logging.getLogger("aqueduct.worker")

_stop_event = threading.Event()


def _stop(signum, frame) -> None:
    logger.info("Worker received signal %d, stopping after current run", signum)
    _stop_event.set()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="aqueduct-worker",
        description="Drain the Notion Events Queue",
    )
    parser.add_argument("--once", action="store_true", help="Run a single pass and exit")
    parser.add_argument(
        "--interval",
        type=float,
        default=settings.aqueduct_worker_interval,
        help="Seconds between passes in loop mode",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=settings.aqueduct_worker_batch_size,
        help="Rows pulled per pass",
    )
    parser.add_argument(
        "--sweep-stale",
        action="store_true",
        help="Requeue rows stuck In Progress before draining",
    )
    parser.add_argument(
        "--stale-after-minutes",
        type=int,
        default=settings.aqueduct_stale_after_minutes,
        help="Age after which an In Progress row counts as stale",
    )
    return parser


def run_pass(worker: QueueDrainWorker, args: argparse.Namespace) -> dict:
    result = {}
    if args.sweep_stale:
        sweep = worker.sweep_stale(args.stale_after_minutes)
        result["sweep"] = {"found": sweep.found, "requeued": sweep.requeued, "errors": sweep.errors}
    result["drain"] = worker.run_once().as_dict()
    return result


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(settings.aqueduct_log_level, settings.aqueduct_log_json)

    try:
        worker = QueueDrainWorker(get_event_queue(), batch_size=args.batch_size)
    except ConfigurationError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    if args.once:
        try:
            print(json.dumps(run_pass(worker, args)))
        except ConfigurationError as e:
            print(f"ERROR: {e}", file=sys.stderr)
            return 2
        except UpstreamError as e:
            logger.error("Worker pass failed: Notion API error %d", e.status, exc_info=True)
            print(f"ERROR: Notion API error {e.status}", file=sys.stderr)
            return 1
        return 0

    _stop_event.clear()
    signal.signal(signal.SIGTERM, _stop)
    signal.signal(signal.SIGINT, _stop)
    logger.info("Worker started (interval=%.1fs)", args.interval)
    while not _stop_event.is_set():
        try:
            run_pass(worker, args)
        except ConfigurationError:
            logger.exception("Worker misconfigured")
            return 2
        except Exception:
            logger.exception("Worker pass failed")
        # Returns early once a stop signal sets the event
        _stop_event.wait(args.interval)
    logger.info("Worker stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
