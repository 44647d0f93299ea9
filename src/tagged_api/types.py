"""
Types for tagged_api.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple, Union
import asyncio


ApiResult = Dict[str, Any]
"""A single parsed result object, e.g. ``{"stat": "ok", "result": ...}``."""

CacheDirective = Union[bool, int, float, str, None]
"""Per-call cache control: seconds to keep the outcome, or ``True``/``"forever"``."""

SUCCESS_STAT = "ok"
"""The ``stat`` value that marks a successful call."""


class ParamKind(str, Enum):
    """Kinds of parameter values that can be put on the wire."""

    PRIMITIVE = "primitive"
    ABSENT = "absent"
    ARRAY = "array"
    MAPPING = "mapping"


@dataclass(frozen=True)
class ParamValue:
    """
    A parameter value with its kind resolved.

    ``value`` holds the rendered string for PRIMITIVE, ``None`` for ABSENT,
    a tuple of ParamValue for ARRAY and a tuple of ``(subkey, ParamValue)``
    pairs for MAPPING.
    """

    kind: ParamKind
    value: Any = None


@dataclass
class CallRecord:
    """A single queued API call."""

    method: str
    """API method name."""

    params: Dict[str, Any]
    """Merged parameters (instance params overridden by call params)."""

    future: "asyncio.Future[ApiResult]"
    """Result handle returned to the caller."""

    enqueued_at: float
    """Clock reading at enqueue time. Only used for latency reporting."""

    fields: Tuple[Tuple[str, ParamValue], ...] = ()
    """Params classified at enqueue time, in wire order."""


@dataclass
class CacheEntry:
    """A cached outcome shared by every identical call."""

    expires_at: float
    """Clock reading after which the entry is stale (``math.inf`` for never)."""

    outcome: "asyncio.Future[ApiResult]"
    """The shared result handle."""


@dataclass
class TransportRequest:
    """Everything a transport needs to perform one batch exchange."""

    url: str
    body: str
    headers: Dict[str, str] = field(default_factory=dict)
    cookies: Optional[str] = None
    client_id: Optional[str] = None
    secret: Optional[str] = None
    timeout_ms: int = 10000
    started_at: Optional[float] = None
    """Enqueue time of the oldest call in the batch."""


@dataclass
class TransportResponse:
    """Raw response of a batch exchange."""

    body: str
    status_code: int = 200
    headers: Dict[str, str] = field(default_factory=dict)


class Transport(ABC):
    """Performs the network exchange for a serialized batch."""

    @abstractmethod
    async def post(self, request: TransportRequest) -> TransportResponse:
        """Send the batch body and return the raw response, or raise."""
        pass

    async def aclose(self) -> None:
        """Release resources held by the transport."""
        pass


EventCallback = Callable[[CallRecord, ApiResult], None]
"""Subscriber called with the originating call and its result."""
