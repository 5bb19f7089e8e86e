"""Webhook HTTP handlers — FastAPI routes for Notion deliveries and token retrieval.

Status codes:
- 200 verification echo, {"ok": true} or {"ok": true, "deduped": true}
- 400 malformed JSON / missing event id
- 401 bad signature / bad admin secret
- 404 no verification token available
- 500 required configuration missing
- 502 Notion API failure

Security contract:
- Error bodies carry a short reason only, never upstream response text
- Admin secret compared in constant time
- Admin endpoint is rate limited per client IP (slowapi)
"""

from __future__ import annotations

import hmac
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.concurrency import run_in_threadpool

from aqueduct.config import settings
from aqueduct.errors import (
    AuthenticationError,
    ConfigurationError,
    MalformedPayload,
    MissingField,
    UpstreamError,
)
from aqueduct.queue import get_event_queue
from aqueduct.verification_token import VerificationTokenChannel, get_token_channel
from aqueduct.webhooks.receiver import WebhookReceiver
from aqueduct.webhooks.verification import SIGNATURE_HEADER

logger = logging.getLogger(__name__)

ADMIN_SECRET_HEADER = "x-aqueduct-admin-secret"

limiter = Limiter(key_func=get_remote_address)

router = APIRouter(tags=["webhooks"])


def get_webhook_receiver() -> WebhookReceiver:
    return WebhookReceiver(
        signing_secret=settings.notion_webhook_verification_token,
        queue_factory=get_event_queue,
        token_channel=get_token_channel(),
    )


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


@router.post("/api/webhook/notion")
async def notion_webhook(
    request: Request,
    receiver: WebhookReceiver = Depends(get_webhook_receiver),
):
    """Receive a Notion webhook delivery (signature-verified)."""
    body = await request.body()
    signature = request.headers.get(SIGNATURE_HEADER)

    try:
        # Blocking: upstream calls and rate-limit waits
        result = await run_in_threadpool(receiver.receive, body, signature)
    except ConfigurationError as e:
        logger.error("Webhook misconfigured: %s", e)
        return _error(str(e), 500)
    except AuthenticationError:
        return _error("Invalid signature", 401)
    except MissingField:
        return _error("Missing event id", 400)
    except MalformedPayload:
        return _error("Invalid JSON", 400)
    except UpstreamError as e:
        logger.error("Webhook upstream failure: HTTP %d", e.status, exc_info=True)
        return _error("Upstream error", 502)

    return JSONResponse(result)


@router.get("/api/admin/notion/verification-token")
@limiter.limit(lambda: settings.aqueduct_admin_rate_limit)
async def admin_verification_token(
    request: Request,
    tokens: VerificationTokenChannel = Depends(get_token_channel),
):
    """Hand out the stored verification token once (shared-secret protected)."""
    expected = settings.aqueduct_admin_secret
    if not expected:
        return _error("Missing AQUEDUCT_ADMIN_SECRET", 500)

    provided = request.headers.get(ADMIN_SECRET_HEADER, "")
    if not hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8")):
        logger.warning("Admin token retrieval rejected: bad secret")
        return _error("Unauthorized", 401)

    token = await run_in_threadpool(tokens.consume)
    if not token:
        return _error("No token available", 404)

    logger.info("Verification token handed to admin")
    return JSONResponse({"verification_token": token})
