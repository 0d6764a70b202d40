from __future__ import annotations


class ZendeskError(Exception):
    """Base class for Zendesk API errors."""


class AuthError(ZendeskError):
    """Authentication/authorization failed (HTTP 401/403)."""


class NotFoundError(ZendeskError):
    """Requested resource was not found (HTTP 404)."""


class RateLimitError(ZendeskError):
    """Request was rate limited (HTTP 429)."""


class ServerError(ZendeskError):
    """Server-side failure, timeout or transport error."""


class ClientError(ZendeskError):
    """Any other 4xx, or a response body that is not the expected JSON."""
