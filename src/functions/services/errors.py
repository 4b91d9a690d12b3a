"""Error taxonomy shared by the HTTP triggers.

Client errors map to 4xx with a machine-readable code. Upstream errors carry
the remote service's status code and payload for diagnosis.
"""

from typing import Any


class ClientError(Exception):
    """Raised when the caller sent malformed or unsupported input."""

    def __init__(self, code: str, message: str, status_code: int = 400) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class InvalidRequestError(ClientError):
    """Raised when an analysis request cannot be submitted as given."""

    def __init__(self, message: str) -> None:
        super().__init__("invalid_request", message)


class UnsupportedTypeError(ClientError):
    """Raised when an upload's file extension is not on the allow-list."""

    def __init__(self, extension: str, allowed: list[str]) -> None:
        self.extension = extension
        self.allowed = allowed
        super().__init__(
            "unsupported_type",
            f"Unsupported file type .{extension}. Allowed: {', '.join(allowed)}",
        )


class UpstreamError(Exception):
    """Raised when Document Intelligence rejects or fails a request."""

    def __init__(
        self,
        status_code: int,
        code: str,
        details: dict[str, Any] | None = None,
        message: str | None = None,
    ) -> None:
        self.status_code = status_code
        self.code = code
        self.details = details
        self.message = message or f"Upstream request failed ({code}, HTTP {status_code})"
        super().__init__(self.message)
