"""
Custom exception hierarchy for esploracli.

Each exception maps to a specific CLI exit code and JSON error_code field.
cli.py catches all EsploraError subclasses and writes them as JSON to stderr.

Exit code mapping:
  1 — EsploraError (generic CLI error)
  2 — HttpStatusError / UnsupportedEndpointError (upstream answered, but badly)
  3 — FetchError (timeout, connection refused, reset)
  4 — InvalidResponseError (response has the wrong shape)
  5 — ConfigError (missing/malformed config)

ExhaustedRetriesError takes the exit code of the last attempt's error.
"""

from __future__ import annotations

BODY_PREVIEW_CHARS = 200


class EsploraError(Exception):
    """Base exception for all esploracli errors."""

    exit_code: int = 1
    error_code: str = "unknown_error"

    def __init__(self, message: str, details: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class FetchError(EsploraError):
    """A single logical HTTP GET did not produce a usable response."""

    exit_code = 3
    error_code = "fetch_error"


class TransportError(FetchError):
    """Connection-level failure: DNS, refused, reset."""

    error_code = "transport_error"


class RequestTimeoutError(TransportError):
    """Per-attempt deadline exceeded before the response arrived."""

    error_code = "request_timeout"


class HttpStatusError(FetchError):
    """Upstream answered with a non-2xx status."""

    exit_code = 2
    error_code = "http_status"

    def __init__(self, status_code: int, body: str = "", url: str = "") -> None:
        preview = body[:BODY_PREVIEW_CHARS]
        super().__init__(
            f"HTTP {status_code} from {url}" + (f" - {preview}" if preview else ""),
            details={"status_code": status_code, "body": preview, "url": url},
        )
        self.status_code = status_code
        self.body = preview


class ExhaustedRetriesError(FetchError):
    """Every attempt in the retry budget failed; wraps the last error."""

    error_code = "exhausted_retries"

    def __init__(self, url: str, attempts: int, last_error: FetchError) -> None:
        super().__init__(
            f"Gave up on {url} after {attempts} attempts: {last_error.message}",
            details={
                "url": url,
                "attempts": attempts,
                "last_error": last_error.to_dict(),
            },
        )
        self.url = url
        self.attempts = attempts
        self.last_error = last_error
        self.exit_code = last_error.exit_code


class UnsupportedEndpointError(FetchError):
    """Optional endpoint is missing or broken on this deployment."""

    exit_code = 2
    error_code = "unsupported_endpoint"


class InvalidResponseError(EsploraError):
    """Response arrived but does not have the expected structure. Never retried."""

    exit_code = 4
    error_code = "invalid_response"


class UnexpectedShapeError(InvalidResponseError):
    """A JSON array was expected (transaction page) but something else came back."""

    error_code = "unexpected_shape"


class ConfigError(EsploraError):
    """Config file is missing or malformed."""

    exit_code = 5
    error_code = "config_error"


class ConfigInvalidError(ConfigError):
    """Config file exists but contains invalid TOML or invalid values."""

    error_code = "config_invalid"
