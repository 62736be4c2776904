"""Exception types raised by the ingestion pipeline."""
from typing import Optional


class InfrawatchError(Exception):
    """Base class for infrawatch errors."""


class SourceClientError(InfrawatchError):
    """An upstream monitoring API call failed.

    ``status_code`` and ``body`` are set when the upstream answered with a
    non-2xx response; both are None for timeouts and connection errors.
    """

    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body

    def __str__(self) -> str:
        base = super().__str__()
        if self.status_code is not None:
            return f"{base} (HTTP {self.status_code})"
        return base


class SourceUnavailableError(InfrawatchError):
    """The upstream monitoring source cannot be reached; the sync run is aborted."""
