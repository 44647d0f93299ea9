"""
Configuration for tagged_api.
"""
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional
import base64
import logging
import random

logger = logging.getLogger("tagged_api.config")

DEFAULT_TIMEOUT_MS = 10000


def _mask_sensitive(value: Optional[str], visible_chars: int = 4) -> str:
    """Mask sensitive value for safe logging."""
    if value is None:
        return "<None>"
    if len(value) <= visible_chars:
        return "*" * len(value)
    return value[:visible_chars] + "*" * (len(value) - visible_chars)


@dataclass(frozen=True)
class ApiConfig:
    """Client configuration. Treat as immutable once passed to a client."""

    endpoint: str
    query: Mapping[str, Any] = field(default_factory=dict)
    """Appended to the endpoint as a query string."""

    params: Mapping[str, Any] = field(default_factory=dict)
    """Merged into the params of every call; call params win."""

    timeout_ms: Any = DEFAULT_TIMEOUT_MS
    client_id: Optional[str] = None
    secret: Optional[str] = None
    cookies: Optional[str] = None
    """Raw ``Cookie`` header of the request this client acts for."""

    headers: Mapping[str, str] = field(default_factory=dict)
    max_queue_size: Optional[int] = None
    """Flush as soon as this many calls are queued. ``None`` means no limit."""

    batch_delay_seconds: float = 0.0
    """Delay before the scheduled flush. ``0`` flushes on the next loop iteration."""

    def __repr__(self) -> str:
        """Safe repr that masks sensitive values."""
        return (
            f"ApiConfig(endpoint={self.endpoint!r}, "
            f"query={dict(self.query)!r}, "
            f"params={dict(self.params)!r}, "
            f"timeout_ms={self.timeout_ms!r}, "
            f"client_id={self.client_id!r}, "
            f"secret={_mask_sensitive(self.secret)!r}, "
            f"has_cookies={self.cookies is not None}, "
            f"headers={list(self.headers)!r}, "
            f"max_queue_size={self.max_queue_size!r}, "
            f"batch_delay_seconds={self.batch_delay_seconds!r})"
        )


def generate_track_id() -> str:
    """Generate a random track ID.

    The API server uses it to group calls made by one client instance.
    """
    return base64.b64encode(str(random.random() * 100000000).encode()).decode()[:10]


def merge_params(
    base: Mapping[str, Any],
    override: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Merge call params over base params.

    Nested mappings are merged recursively; any other value in ``override``
    replaces the base value wholesale. Neither input is mutated.
    """
    result: Dict[str, Any] = {}
    for key, value in base.items():
        result[key] = _copy_value(value)

    if not override:
        return result

    for key, value in override.items():
        current = result.get(key)
        if isinstance(value, Mapping) and isinstance(current, Mapping):
            result[key] = merge_params(current, value)
        else:
            result[key] = _copy_value(value)
    return result


def _copy_value(value: Any) -> Any:
    if isinstance(value, Mapping):
        return merge_params(value)
    if isinstance(value, list):
        return list(value)
    return value


def normalize_timeout(timeout_ms: Any) -> int:
    """Parse a timeout in milliseconds, falling back to the default."""
    try:
        timeout = int(timeout_ms)
    except (TypeError, ValueError):
        logger.debug(f"normalize_timeout: invalid timeout {timeout_ms!r}, using default")
        return DEFAULT_TIMEOUT_MS
    if timeout <= 0:
        return DEFAULT_TIMEOUT_MS
    return timeout


def build_query_string(query: Mapping[str, Any]) -> str:
    """Join query pairs as ``key=value``. Values are sent as given."""
    return "&".join(f"{key}={value}" for key, value in query.items())


def build_endpoint_url(endpoint: str, query: Mapping[str, Any]) -> str:
    """Build the URL batches are posted to."""
    return f"{endpoint}?{build_query_string(query)}"


def validate_config(config: ApiConfig) -> None:
    """Validate client configuration."""
    if not config.endpoint or not isinstance(config.endpoint, str):
        raise ValueError("endpoint is required")

    if config.max_queue_size is not None:
        if isinstance(config.max_queue_size, bool) or not isinstance(config.max_queue_size, int):
            raise ValueError(f"max_queue_size must be an integer, got {config.max_queue_size!r}")
        if config.max_queue_size < 1:
            raise ValueError(f"max_queue_size must be positive, got {config.max_queue_size}")

    if config.batch_delay_seconds < 0:
        raise ValueError(f"batch_delay_seconds must not be negative, got {config.batch_delay_seconds}")


def resolve_config(config: ApiConfig) -> ApiConfig:
    """Resolve client configuration with defaults."""
    validate_config(config)

    params = merge_params({"track": generate_track_id()}, config.params)

    resolved = replace(
        config,
        query=MappingProxyType(dict(config.query)),
        params=MappingProxyType(params),
        timeout_ms=normalize_timeout(config.timeout_ms),
        headers=MappingProxyType(dict(config.headers)),
    )
    logger.debug(f"resolve_config: {resolved!r}")
    return resolved
