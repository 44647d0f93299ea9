"""
Error types for tagged_api.
"""
from typing import Any, Dict, Optional


class TaggedApiError(Exception):
    """Base class for all tagged_api errors."""

    pass


class ApiValidationError(TaggedApiError, ValueError):
    """Raised synchronously when a call is rejected before joining a batch."""

    pass


class ParamEncodingError(ApiValidationError):
    """Raised when a parameter value has a kind that cannot be put on the wire."""

    def __init__(self, key: str, kind: str) -> None:
        self.key = key
        self.kind = kind
        super().__init__(f"Unable to parameterize key {key} with type {kind}")


class TransportError(TaggedApiError):
    """Raised when the network exchange for a batch fails as a whole."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class ResponseParseError(TransportError):
    """Raised when the response body does not follow the batch response format."""

    pass


class ApiCallError(TaggedApiError):
    """
    Application-level failure for a single call.

    The full result object returned by the API is kept on ``result``.
    """

    def __init__(self, result: Dict[str, Any], method: Optional[str] = None) -> None:
        self.result = result
        self.stat = result.get("stat")
        self.method = method
        super().__init__(f"API call {method or '<unknown>'} failed with stat={self.stat!r}")


class ConfigurationError(TaggedApiError):
    """Raised when settings cannot be loaded or validated."""

    pass
