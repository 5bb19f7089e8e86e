"""Error taxonomy shared by the webhook receiver, upstream client and worker."""

from __future__ import annotations


class AqueductError(Exception):
    """Base exception for Aqueduct errors."""

    pass


class ConfigurationError(AqueductError):
    """A required setting is absent. Fatal for the request or run."""

    pass


class AuthenticationError(AqueductError):
    """Bad or missing webhook signature or admin secret."""

    pass


class MalformedPayload(AqueductError):
    """Request body is not a usable JSON event."""

    pass


class MissingField(MalformedPayload):
    """A required field is absent from the event envelope."""

    def __init__(self, field: str) -> None:
        super().__init__(f"Missing event {field}")
        self.field = field


class UpstreamError(AqueductError):
    """Non-2xx response (or transport failure, status 0) from the Notion API."""

    def __init__(self, status: int, body: str = "", retry_after: str | None = None) -> None:
        super().__init__(f"Notion API error {status}: {body}")
        self.status = status
        self.body = body
        self.retry_after = retry_after
