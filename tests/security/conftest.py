"""Security test fixtures.

- ``app``: the FastAPI app with receiver/token-channel dependencies pointed at
  the in-memory Notion and Redis doubles
- ``client``: TestClient without lifespan (no logging reconfiguration)
- Admin endpoint rate-limit storage is reset per test
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from aqueduct.config import settings
from aqueduct.serve import create_app
from aqueduct.verification_token import VerificationTokenChannel, get_token_channel
from aqueduct.webhooks.handlers import get_webhook_receiver, limiter
from aqueduct.webhooks.receiver import WebhookReceiver

WEBHOOK_SECRET = "whsec-test"
ADMIN_SECRET = "admin-test-secret"


@pytest.fixture
def token_channel(fake_redis):
    return VerificationTokenChannel(fake_redis)


@pytest.fixture
def app(event_queue, token_channel, monkeypatch):
    monkeypatch.setattr(settings, "notion_webhook_verification_token", WEBHOOK_SECRET)
    monkeypatch.setattr(settings, "aqueduct_admin_secret", ADMIN_SECRET)
    monkeypatch.setattr(settings, "aqueduct_admin_rate_limit", "100/minute")

    application = create_app()
    application.dependency_overrides[get_webhook_receiver] = lambda: WebhookReceiver(
        settings.notion_webhook_verification_token, lambda: event_queue, token_channel
    )
    application.dependency_overrides[get_token_channel] = lambda: token_channel
    return application


@pytest.fixture
def client(app):
    """Unauthenticated TestClient (attacker perspective)."""
    limiter.reset()
    return TestClient(app, raise_server_exceptions=False)
