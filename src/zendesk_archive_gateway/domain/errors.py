from __future__ import annotations


class GatewayError(Exception):
    """
    Base class for errors that terminate a request at one of the processing gates.

    `public_message` is what the caller sees; the exception text itself may carry
    internal detail and is only ever logged.
    """

    status_code: int = 500
    code: str = "internal_error"
    default_public_message: str = "internal error"

    def __init__(self, message: str | None = None, *, public_message: str | None = None):
        super().__init__(message or public_message or self.default_public_message)
        self.public_message = public_message or self.default_public_message


class AuthenticationFailure(GatewayError):
    """Bad or missing signature, stale/future timestamp, bad API key."""

    status_code = 401
    code = "unauthorized"
    default_public_message = "unauthorized"


class ValidationFailure(GatewayError):
    """Malformed input. The message is short and safe to return to the caller."""

    status_code = 400
    code = "validation_error"
    default_public_message = "invalid request"

    def __init__(self, message: str):
        super().__init__(message, public_message=message)


class AuthorizationFailure(GatewayError):
    """The caller is authenticated but not allowed to act on this resource."""

    status_code = 403
    code = "forbidden"
    default_public_message = "forbidden"


class BrandMismatchError(AuthorizationFailure):
    pass


class BrandUnverifiableError(AuthorizationFailure):
    pass


class TenantNotFound(GatewayError):
    status_code = 404
    code = "not_found"
    default_public_message = "not found"


class DependencyFailure(GatewayError):
    """Zendesk or the archive backend failed; detail is logged, never returned."""

    status_code = 500
    code = "internal_error"
    default_public_message = "internal error"


def wrap_exception(exc: BaseException) -> GatewayError:
    """
    Wrap an arbitrary exception in a gateway error.

    Gateway errors are returned as-is; anything else becomes a DependencyFailure
    (fail-safe default) with the original exception attached as the cause.
    """
    if isinstance(exc, GatewayError):
        return exc

    message = f"{exc.__class__.__name__}: {exc}".strip()
    wrapped = DependencyFailure(message or exc.__class__.__name__)
    wrapped.__cause__ = exc
    return wrapped
