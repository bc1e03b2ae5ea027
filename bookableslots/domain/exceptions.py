"""
Domain-specific exception hierarchy for the bookable slots application.
"""

from __future__ import annotations

from typing import Optional, Sequence


class BookableSlotsError(Exception):
    """Base class for all application-level errors."""


class MissingCredentialsError(BookableSlotsError):
    """Raised when the upstream or token collaborator is not configured."""

    def __init__(self, missing: Sequence[str]):
        self.missing = list(missing)
        super().__init__(
            f"Missing upstream credentials: {', '.join(self.missing)}. "
            "Set them in config.yaml or via environment variables."
        )


class AuthError(BookableSlotsError):
    """Raised when acquiring an access token fails."""

    def __init__(
        self,
        message: str,
        http_status: Optional[int] = None,
        upstream_code: Optional[str] = None,
    ):
        self.http_status = http_status
        self.upstream_code = upstream_code
        self.message = message
        super().__init__(message)


class MissingParamsError(BookableSlotsError):
    """Raised when a required filter parameter is absent."""

    def __init__(self, missing: Sequence[str], message: Optional[str] = None):
        self.missing = list(missing)
        super().__init__(message or f"Missing required parameter(s): {', '.join(self.missing)}")


class UpstreamError(BookableSlotsError):
    """Raised when the scheduling API fails or returns a malformed payload."""

    def __init__(
        self,
        http_status: Optional[int],
        upstream_code: Optional[str],
        message: str,
    ):
        self.http_status = http_status
        self.upstream_code = upstream_code
        self.message = message
        super().__init__(f"Upstream error ({http_status or 'n/a'}, {upstream_code or 'unknown'}): {message}")
