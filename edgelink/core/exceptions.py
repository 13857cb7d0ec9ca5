"""
Custom Exceptions

Every failure the edge handler reports to a client is one of these.
Each class carries the HTTP status it maps to, so a single exception
handler in main.py renders them all the same way.

Benefits:
- Validation, auth and rate-limit failures short-circuit before any store write
- Internal detail never leaks: unexpected errors become InternalServiceError
"""

from typing import Optional


class EdgeLinkError(Exception):
    """Base exception for the edge handler."""

    status_code = 500
    public_message = "Server error"

    def __init__(self, message: Optional[str] = None, hint: Optional[str] = None):
        self.message = message or self.public_message
        self.hint = hint
        super().__init__(self.message)

    def to_payload(self) -> dict:
        payload = {"error": self.message}
        if self.hint:
            payload["hint"] = self.hint
        return payload


class InvalidRequestError(EdgeLinkError):
    """Raised for malformed JSON, invalid URLs or codes."""
    status_code = 400
    public_message = "Invalid request"


class InvalidURLError(InvalidRequestError):
    """Raised when URL validation fails."""

    def __init__(self, url: object, reason: str = "Invalid URL"):
        self.url = url
        super().__init__(reason, hint="URL must be a link to this application's origin")


class InvalidShortCodeError(InvalidRequestError):
    """Raised when a short code has none of the accepted shapes."""

    def __init__(self, short_code: object):
        self.short_code = short_code
        super().__init__("Invalid short code")


class PayloadTooLargeError(EdgeLinkError):
    status_code = 413
    public_message = "Payload too large"


class ForbiddenOriginError(EdgeLinkError):
    """Raised when a mutating request does not look same-origin."""
    status_code = 403
    public_message = "Forbidden origin"


class UnauthorizedError(EdgeLinkError):
    status_code = 403
    public_message = "Unauthorized"


class ShortCodeNotFoundError(EdgeLinkError):
    """Raised when a short code is not found in the link store."""
    status_code = 404

    def __init__(self, short_code: str):
        self.short_code = short_code
        super().__init__(f"Short code '{short_code}' not found")


class RateLimitedError(EdgeLinkError):
    status_code = 429
    public_message = "Too many requests"

    def __init__(self, bucket: str):
        self.bucket = bucket
        super().__init__(hint="Slow down and retry in a minute")


class StoreNotConfiguredError(EdgeLinkError):
    """Raised when a store binding is absent from configuration."""
    status_code = 500

    def __init__(self, binding: str):
        self.binding = binding
        super().__init__(
            "KV namespace not configured",
            hint=f"Bind the {binding} namespace (set {binding} in the environment)",
        )


class StoreUnavailableError(EdgeLinkError):
    """Raised when a store operation still fails after all retries."""
    status_code = 500

    def __init__(self, operation: str, original_error: Optional[Exception] = None):
        self.operation = operation
        self.original_error = original_error
        super().__init__("Storage temporarily unavailable")


class CodeGenerationExhaustedError(EdgeLinkError):
    status_code = 500
    public_message = "Failed to generate unique code"


class InternalServiceError(EdgeLinkError):
    status_code = 500
    public_message = "Server error"
