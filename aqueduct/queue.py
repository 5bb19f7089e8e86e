"""Events Queue store operations on top of the Notion client.

The queue database has exactly one data source; every query and write targets
it. The data source id is resolved once per EventQueue instance.
"""

from __future__ import annotations

import logging
from typing import Any

from aqueduct.config import require, settings
from aqueduct.events import (
    PROP_EVENT_ID,
    PROP_STATUS,
    EventRecord,
    EventStatus,
    build_create_properties,
    parse_row,
)
from aqueduct.upstream import NotionClient, get_notion_client

logger = logging.getLogger(__name__)

CREATED_ASCENDING = [{"timestamp": "created_time", "direction": "ascending"}]


class EventQueue:
    """query / createRow / patchRow over the Events Queue database."""

    def __init__(self, client: NotionClient, database_id: str):
        self._client = client
        self.database_id = database_id
        self._data_source_id: str | None = None

    @property
    def data_source_id(self) -> str:
        if self._data_source_id is None:
            self._data_source_id = self._client.resolve_data_source_id(self.database_id)
        return self._data_source_id

    def query(
        self,
        filter: dict | None = None,
        sorts: list[dict] | None = None,
        page_size: int = 25,
    ) -> list[dict[str, Any]]:
        """Return raw page objects matching ``filter``."""
        body: dict[str, Any] = {"page_size": page_size}
        if filter is not None:
            body["filter"] = filter
        if sorts is not None:
            body["sorts"] = sorts
        result = self._client.request(
            f"/data_sources/{self.data_source_id}/query", method="POST", body=body
        )
        rows = result.get("results") if isinstance(result, dict) else None
        return rows if isinstance(rows, list) else []

    def find_by_event_id(self, event_id: str, page_size: int = 10) -> list[EventRecord]:
        """Rows sharing ``event_id``, oldest first (the first row is the global earliest)."""
        pages = self.query(
            filter={"property": PROP_EVENT_ID, "rich_text": {"equals": event_id}},
            sorts=CREATED_ASCENDING,
            page_size=page_size,
        )
        return [parse_row(p) for p in pages]

    def event_exists(self, event_id: str) -> bool:
        return len(self.find_by_event_id(event_id, page_size=1)) > 0

    def query_by_status(self, status: EventStatus, page_size: int = 25) -> list[EventRecord]:
        """Rows in ``status``, oldest first."""
        pages = self.query(
            filter={"property": PROP_STATUS, "select": {"equals": status.value}},
            sorts=CREATED_ASCENDING,
            page_size=page_size,
        )
        return [parse_row(p) for p in pages]

    def query_stale(self, status: EventStatus, edited_before: str, page_size: int = 25) -> list[EventRecord]:
        """Rows in ``status`` not edited since ``edited_before`` (ISO timestamp)."""
        pages = self.query(
            filter={
                "and": [
                    {"property": PROP_STATUS, "select": {"equals": status.value}},
                    {"timestamp": "last_edited_time", "last_edited_time": {"before": edited_before}},
                ]
            },
            sorts=[{"timestamp": "last_edited_time", "direction": "ascending"}],
            page_size=page_size,
        )
        return [parse_row(p) for p in pages]

    def create(self, record: EventRecord) -> dict:
        page = {
            "parent": {"database_id": self.database_id},
            "properties": build_create_properties(record),
        }
        return self._client.request("/pages", method="POST", body=page)

    def patch(self, row_id: str, properties: dict[str, Any]) -> dict:
        return self._client.request(
            f"/pages/{row_id}", method="PATCH", body={"properties": properties}
        )


def get_event_queue() -> EventQueue:
    """EventQueue for the configured database (raises ConfigurationError if unset)."""
    database_id = require(settings.notion_events_queue_db_id, "NOTION_EVENTS_QUEUE_DB_ID")
    return EventQueue(get_notion_client(), database_id)
