from __future__ import annotations


class ProviderError(Exception):
    """Raised by provider clients on non-200, transport or malformed payloads."""

    def __init__(self, provider: str, reason: str) -> None:
        super().__init__(f"{provider}: {reason}")
        self.provider = provider
        self.reason = reason


class ApiError(Exception):
    status_code = 500
    error = "internal_error"

    def __init__(self, error: str | None = None, message: str | None = None, *, status_code: int | None = None) -> None:
        self.error = error or self.error
        self.message = message or self.error
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)

    def to_payload(self) -> dict:
        return {"error": self.error, "message": self.message}


class BadRequestError(ApiError):
    status_code = 400
    error = "bad_request"


class PayloadTooLargeError(ApiError):
    status_code = 413
    error = "payload_too_large"


class ConfigurationError(ApiError):
    status_code = 500
    error = "server_misconfigured"


class UpstreamError(ApiError):
    status_code = 502
    error = "upstream_failed"
