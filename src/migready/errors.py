"""Exception hierarchy shared by the transport, fetchers and orchestrator."""

from __future__ import annotations


class MigReadyError(Exception):
    """Base class for all migready errors."""


class TransportError(MigReadyError):
    """An upstream HTTP call failed with a non-authentication error."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        path: str = "",
        error_code: str = "",
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.path = path
        self.error_code = error_code

    def __str__(self) -> str:
        parts = [self.message]
        if self.error_code:
            parts.append(f"({self.error_code})")
        if self.status_code is not None:
            parts.append(f"[HTTP {self.status_code}]")
        return " ".join(parts)


class AuthenticationError(TransportError):
    """The upstream API rejected the access token (HTTP 401)."""

    def __init__(self, message: str = "Access token expired or invalid", path: str = "") -> None:
        super().__init__(message, status_code=401, path=path)


class AuthenticationExpired(MigReadyError):
    """Scan aborted because the credentials were rejected."""

    def __init__(self, trace_id: str, message: str = "") -> None:
        super().__init__(
            message
            or "Access token expired or invalid. Please reconnect to the org."
        )
        self.trace_id = trace_id


class ScanFailed(MigReadyError):
    """Scan aborted by an unexpected internal error."""

    def __init__(self, trace_id: str, cause: BaseException | None = None) -> None:
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Scan failed (trace {trace_id}){detail}")
        self.trace_id = trace_id
        self.cause = cause


class CategoryUnavailable(MigReadyError):
    """A category could not be retrieved; recorded as that category's note, never raised."""

    def __init__(self, category: str, reason: str) -> None:
        super().__init__(f"{category} unavailable: {reason}")
        self.category = category
        self.reason = reason


class TimeoutExceeded(MigReadyError):
    """A single cascade attempt exceeded its time bound."""

    def __init__(self, strategy: str, seconds: float) -> None:
        super().__init__(f"{strategy} timed out after {seconds:g}s")
        self.strategy = strategy
        self.seconds = seconds


def is_auth_error(exc: BaseException) -> bool:
    """Whether an exception signals rejected credentials."""
    return isinstance(exc, (AuthenticationError, AuthenticationExpired))
