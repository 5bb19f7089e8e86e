"""Webhook receiver — verify, dedup and enqueue one Notion delivery.

Steps:
1. Verification handshake ({"verification_token": ...}) -> store and echo
2. Verify X-Notion-Signature (HMAC-SHA256 over the raw body)
3. Parse the event envelope {id, type, entity: {type, id}}
4. Skip if a row with the same Event ID already exists
5. Create a New row in the Events Queue

The existence check is racy across concurrent deliveries; the drain worker
re-checks and collapses duplicates after the fact.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable

from aqueduct.errors import AuthenticationError, ConfigurationError, MalformedPayload, MissingField
from aqueduct.events import DEFAULT_EVENT_TYPE, EventRecord, EventStatus, utc_now_iso
from aqueduct.queue import EventQueue
from aqueduct.verification_token import VerificationTokenChannel
from aqueduct.webhooks.verification import redact_token, verify_signature

logger = logging.getLogger(__name__)


def _log_webhook(event_type: str, event_id: str, status: str) -> None:
    """Audit log for webhook activity."""
    logger.info("WEBHOOK_AUDIT event=%s id=%s status=%s", event_type, event_id, status)


def _try_json(raw_body: bytes) -> Any:
    try:
        return json.loads(raw_body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None


class WebhookReceiver:
    """Turns a raw Notion delivery into at most one new Events Queue row."""

    def __init__(
        self,
        signing_secret: str,
        queue_factory: Callable[[], EventQueue],
        token_channel: VerificationTokenChannel,
    ):
        self._signing_secret = signing_secret
        self._queue_factory = queue_factory
        self._tokens = token_channel

    def receive(self, raw_body: bytes, signature: str | None) -> dict[str, Any]:
        """Process one delivery and return the JSON response body.

        Raises:
            ConfigurationError: signing secret or queue database not configured
            AuthenticationError: signature missing or wrong
            MalformedPayload: body is not a JSON object
            MissingField: event id absent
            UpstreamError: Notion rejected the dedup query or the write
        """
        # 1) Subscription verification (one-time, before any secret exists)
        parsed = _try_json(raw_body)
        if isinstance(parsed, dict) and parsed.get("verification_token"):
            token = str(parsed["verification_token"])
            self._tokens.store(token)
            logger.info("Notion verification_token received: %s", redact_token(token))
            return {"verification_token": parsed["verification_token"]}

        # 2) Signature
        if not self._signing_secret:
            raise ConfigurationError("Missing NOTION_WEBHOOK_VERIFICATION_TOKEN")
        if not verify_signature(self._signing_secret, raw_body, signature):
            _log_webhook("unknown", "unknown", "signature_failed")
            raise AuthenticationError("Invalid signature")

        # 3) Envelope
        if parsed is None:
            _log_webhook("unknown", "unknown", "invalid_json")
            raise MalformedPayload("Invalid JSON")
        if not isinstance(parsed, dict):
            _log_webhook("unknown", "unknown", "invalid_json")
            raise MalformedPayload("Event payload must be a JSON object")

        event_id = parsed.get("id")
        event_type = parsed.get("type") or DEFAULT_EVENT_TYPE
        if not event_id:
            _log_webhook(str(event_type), "", "missing_id")
            raise MissingField("id")
        event_id = str(event_id)
        entity = parsed.get("entity") if isinstance(parsed.get("entity"), dict) else {}

        # 4) Dedup
        queue = self._queue_factory()
        if queue.event_exists(event_id):
            _log_webhook(str(event_type), event_id, "duplicate")
            return {"ok": True, "deduped": True}

        # 5) Enqueue
        now = utc_now_iso()
        record = EventRecord(
            event_id=event_id,
            type=str(event_type),
            object_type=entity.get("type"),
            object_id=entity.get("id"),
            source_url=None,
            payload=json.dumps(parsed, ensure_ascii=False),
            status=EventStatus.NEW,
            needs_human_review=False,
            log=f"Aqueduct: queued event {event_id} ({event_type}) at {now}",
            created_at=now,
        )
        queue.create(record)
        _log_webhook(str(event_type), event_id, "queued")
        return {"ok": True}
