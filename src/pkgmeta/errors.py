from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    UPSTREAM_UNAVAILABLE = "UPSTREAM_UNAVAILABLE"
    RATE_LIMITED = "RATE_LIMITED"
    PACKAGE_NOT_FOUND = "PACKAGE_NOT_FOUND"
    MALFORMED_UPSTREAM_RESPONSE = "MALFORMED_UPSTREAM_RESPONSE"
    UNKNOWN_PACKAGE_TYPE = "UNKNOWN_PACKAGE_TYPE"
    INVALID_INPUT = "INVALID_INPUT"


class PkgMetaError(Exception):
    """Raised by fetchers for all expected upstream failure conditions.

    Handlers catch it at their boundary and turn it into a ``Result``
    (see ``pkgmeta.models.results``). ``status`` carries the upstream HTTP
    status code when one was received.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        status: int | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status = status

