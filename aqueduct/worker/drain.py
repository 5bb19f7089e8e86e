"""Events Queue drain worker.

One run:
- Pull up to N rows with Status=New, oldest first
- For each row, sequentially:
    New -> In Progress                  (best-effort marker, not transactional)
    re-check dedup by Event ID          (earliest created row is the keeper)
    non-keeper -> Deduped
    keeper     -> handler outcome       (default: Needs human review)
- Any failure on a row -> Error (review flag set, message in the log); the
  batch always continues and returns a summary.

Rows left In Progress by a crash are requeued by ``sweep_stale()``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from aqueduct.events import (
    EventRecord,
    EventStatus,
    append_log,
    build_transition_properties,
)
from aqueduct.queue import EventQueue
from aqueduct.worker.dispatch import HandlerRegistry, get_registry

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 25
DEDUP_PAGE_SIZE = 10
MAX_ERROR_CHARS = 500


@dataclass
class DrainSummary:
    """Outcome counts for one worker run."""

    found: int = 0
    deduped: int = 0
    needs_review: int = 0
    errors: int = 0
    other: int = 0
    failed_rows: list[str] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return self.deduped + self.needs_review + self.other

    def as_dict(self) -> dict:
        return {
            "found": self.found,
            "processed": self.processed,
            "deduped": self.deduped,
            "needs_review": self.needs_review,
            "errors": self.errors,
            "other": self.other,
            "failed_rows": list(self.failed_rows),
        }


@dataclass
class SweepSummary:
    """Outcome counts for one stale sweep."""

    found: int = 0
    requeued: int = 0
    errors: int = 0


def _created_key(record: EventRecord) -> tuple[str, str]:
    return (record.created_at, record.row_id or "")


def find_keeper(duplicates: list[EventRecord]) -> EventRecord | None:
    """Earliest-created record (row id breaks ties)."""
    if not duplicates:
        return None
    return sorted(duplicates, key=_created_key)[0]


class QueueDrainWorker:
    """Advances queued rows through the status state machine."""

    def __init__(
        self,
        queue: EventQueue,
        registry: HandlerRegistry | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        self._queue = queue
        self._registry = registry or get_registry()
        self._batch_size = batch_size

    def run_once(self) -> DrainSummary:
        """Drain one page of New rows. Raises only if the initial query fails."""
        rows = self._queue.query_by_status(EventStatus.NEW, page_size=self._batch_size)
        summary = DrainSummary(found=len(rows))
        logger.info("Found %d new events", len(rows))

        for record in rows:
            try:
                status = self.process(record)
            except Exception as e:
                logger.exception("Error processing %s", record.row_id)
                summary.errors += 1
                summary.failed_rows.append(record.row_id or "")
                self._mark_error(record, e)
                continue

            if status == EventStatus.DEDUPED:
                summary.deduped += 1
            elif status == EventStatus.NEEDS_HUMAN_REVIEW:
                summary.needs_review += 1
            else:
                summary.other += 1
            logger.info("Processed %s -> %s", record.row_id, status.value)

        logger.info("Drain complete: %s", summary.as_dict())
        return summary

    def process(self, record: EventRecord) -> EventStatus:
        """Advance one row to a terminal status and return it."""
        row_id = record.row_id
        if not row_id:
            raise ValueError("Queue row has no id")

        self._queue.patch(row_id, build_transition_properties(EventStatus.IN_PROGRESS))

        if record.event_id:
            duplicates = self._queue.find_by_event_id(record.event_id, page_size=DEDUP_PAGE_SIZE)
            if len(duplicates) > 1:
                keeper = find_keeper(duplicates)
                if keeper is not None and keeper.row_id and keeper.row_id != row_id:
                    self._transition(
                        record,
                        EventStatus.DEDUPED,
                        needs_human_review=False,
                        line=f"Worker: deduped (keeper={keeper.row_id}) for eventId={record.event_id}",
                    )
                    return EventStatus.DEDUPED

        handler = self._registry.resolve(record.type)
        outcome = handler(record)
        self._transition(
            record,
            outcome.status,
            needs_human_review=outcome.needs_human_review,
            line=outcome.log,
        )
        return outcome.status

    def sweep_stale(self, older_than_minutes: int) -> SweepSummary:
        """Requeue rows stuck In Progress since before now - threshold."""
        cutoff = datetime.now(timezone.utc) - timedelta(minutes=older_than_minutes)
        rows = self._queue.query_stale(
            EventStatus.IN_PROGRESS, cutoff.isoformat(), page_size=self._batch_size
        )
        summary = SweepSummary(found=len(rows))

        for record in rows:
            try:
                self._transition(
                    record,
                    EventStatus.NEW,
                    needs_human_review=None,
                    line=f"Worker: requeued stale In Progress row (last edited {record.last_edited_at or 'unknown'})",
                )
                summary.requeued += 1
            except Exception:
                logger.exception("Failed to requeue stale row %s", record.row_id)
                summary.errors += 1

        logger.info(
            "Stale sweep: found=%d requeued=%d errors=%d",
            summary.found,
            summary.requeued,
            summary.errors,
        )
        return summary

    def _transition(
        self,
        record: EventRecord,
        status: EventStatus,
        *,
        needs_human_review: bool | None,
        line: str,
    ) -> None:
        log = append_log(record.log, line)
        self._queue.patch(
            record.row_id,
            build_transition_properties(status, needs_human_review=needs_human_review, log=log),
        )
        record.status = status
        record.log = log
        if needs_human_review is not None:
            record.needs_human_review = needs_human_review

    def _mark_error(self, record: EventRecord, exc: Exception) -> None:
        # Best-effort: the row may already be unreachable
        if not record.row_id:
            return
        try:
            self._transition(
                record,
                EventStatus.ERROR,
                needs_human_review=True,
                line=f"Worker: error: {str(exc)[:MAX_ERROR_CHARS]}",
            )
        except Exception:
            logger.exception("Failed to mark %s as Error", record.row_id)
