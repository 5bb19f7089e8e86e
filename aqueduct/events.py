"""Event Record model and its mapping onto the Events Queue database schema.

Property names must match the Notion database. Notion rejects properties whose
value is null/undefined, so builders omit absent values entirely.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

# Notion property names
PROP_NAME = "Name"
PROP_EVENT_ID = "Event ID"
PROP_TYPE = "Type"
PROP_OBJECT_TYPE = "Notion object type"
PROP_OBJECT_ID = "Notion object id"
PROP_SOURCE_URL = "Source URL"
PROP_STATUS = "Status"
PROP_NEEDS_REVIEW = "Needs human review"
PROP_PAYLOAD = "Payload (json)"
PROP_CREATED = "Created"
PROP_LOG = "Scipio log"

DEFAULT_EVENT_TYPE = "Other"

# Size caps (Notion rich_text content is limited to 2000 chars per block)
MAX_NAME_CHARS = 200
MAX_PAYLOAD_CHARS = 1900
MAX_LOG_CHARS = 2000


class EventStatus(str, Enum):  # noqa: UP042
    """Lifecycle of a queued event."""

    NEW = "New"
    IN_PROGRESS = "In Progress"
    DEDUPED = "Deduped"
    NEEDS_HUMAN_REVIEW = "Needs human review"
    ERROR = "Error"


@dataclass
class EventRecord:
    """One row of the Events Queue."""

    event_id: str
    type: str = DEFAULT_EVENT_TYPE
    object_type: str | None = None
    object_id: str | None = None
    source_url: str | None = None
    payload: str = ""
    status: EventStatus = EventStatus.NEW
    needs_human_review: bool = False
    log: str = ""
    created_at: str = ""
    row_id: str | None = None
    last_edited_at: str = ""

    @property
    def name(self) -> str:
        label = f"{self.type} • {self.object_type or 'object'}:{self.object_id or ''}".strip()
        return label[:MAX_NAME_CHARS]


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Property value builders
# ---------------------------------------------------------------------------


def rich_text(content: str) -> dict:
    return {"rich_text": [{"type": "text", "text": {"content": content}}]}


def select(name: str) -> dict:
    return {"select": {"name": name}}


def checkbox(value: bool) -> dict:
    return {"checkbox": value}


def append_log(existing: str, line: str) -> str:
    """Append a line to the audit trail, dropping the oldest text past the cap."""
    combined = f"{existing}\n{line}" if existing else line
    if len(combined) > MAX_LOG_CHARS:
        combined = combined[-MAX_LOG_CHARS:]
    return combined


def strip_absent(properties: dict[str, Any]) -> dict[str, Any]:
    """Drop properties whose value is None."""
    return {k: v for k, v in properties.items() if v is not None}


def build_create_properties(record: EventRecord) -> dict[str, Any]:
    """Notion properties for a freshly ingested Event Record."""
    properties = {
        PROP_NAME: {"title": [{"type": "text", "text": {"content": record.name}}]},
        PROP_EVENT_ID: rich_text(record.event_id),
        PROP_TYPE: select(record.type),
        PROP_OBJECT_TYPE: select(record.object_type) if record.object_type else None,
        PROP_OBJECT_ID: rich_text(record.object_id) if record.object_id else None,
        PROP_SOURCE_URL: {"url": record.source_url} if record.source_url else None,
        PROP_STATUS: select(record.status.value),
        PROP_NEEDS_REVIEW: checkbox(record.needs_human_review),
        PROP_PAYLOAD: rich_text(record.payload[:MAX_PAYLOAD_CHARS]),
        PROP_CREATED: {"date": {"start": record.created_at}} if record.created_at else None,
        PROP_LOG: rich_text(record.log[-MAX_LOG_CHARS:]) if record.log else None,
    }
    return strip_absent(properties)


def build_transition_properties(
    status: EventStatus,
    *,
    needs_human_review: bool | None = None,
    log: str | None = None,
) -> dict[str, Any]:
    """Partial properties for a status transition patch."""
    return strip_absent(
        {
            PROP_STATUS: select(status.value),
            PROP_NEEDS_REVIEW: checkbox(needs_human_review) if needs_human_review is not None else None,
            PROP_LOG: rich_text(log) if log is not None else None,
        }
    )


# ---------------------------------------------------------------------------
# Row parsing
# ---------------------------------------------------------------------------


def _plain_text(prop: dict | None) -> str:
    if not isinstance(prop, dict):
        return ""
    parts = prop.get("rich_text") or prop.get("title") or []
    if not isinstance(parts, list):
        return ""
    out = []
    for part in parts:
        if not isinstance(part, dict):
            continue
        text = part.get("plain_text")
        if text is None:
            text = (part.get("text") or {}).get("content", "")
        out.append(text or "")
    return "".join(out).strip()


def _select_name(prop: dict | None) -> str | None:
    if not isinstance(prop, dict):
        return None
    sel = prop.get("select")
    return sel.get("name") if isinstance(sel, dict) else None


def parse_row(page: dict) -> EventRecord:
    """Build an EventRecord from a Notion page object."""
    props = page.get("properties") or {}

    status_name = _select_name(props.get(PROP_STATUS))
    try:
        status = EventStatus(status_name)
    except ValueError:
        status = EventStatus.NEW

    created_at = page.get("created_time") or ""
    if not created_at:
        created_prop = props.get(PROP_CREATED) or {}
        created_at = ((created_prop.get("date") or {}).get("start")) or ""

    source = props.get(PROP_SOURCE_URL) or {}

    return EventRecord(
        event_id=_plain_text(props.get(PROP_EVENT_ID)),
        type=_select_name(props.get(PROP_TYPE)) or DEFAULT_EVENT_TYPE,
        object_type=_select_name(props.get(PROP_OBJECT_TYPE)),
        object_id=_plain_text(props.get(PROP_OBJECT_ID)) or None,
        source_url=source.get("url"),
        payload=_plain_text(props.get(PROP_PAYLOAD)),
        status=status,
        needs_human_review=bool((props.get(PROP_NEEDS_REVIEW) or {}).get("checkbox", False)),
        log=_plain_text(props.get(PROP_LOG)),
        created_at=created_at,
        row_id=page.get("id"),
        last_edited_at=page.get("last_edited_time") or "",
    )
