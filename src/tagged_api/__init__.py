"""
Batching client for the Tagged API.

Calls made during one pass of the event loop are sent as a single POST and
each caller gets its own result back. Identical calls can share one
outcome for a time-to-live.
"""
from .types import (
    ApiResult,
    CacheDirective,
    CacheEntry,
    CallRecord,
    EventCallback,
    ParamKind,
    ParamValue,
    SUCCESS_STAT,
    Transport,
    TransportRequest,
    TransportResponse,
)
from .errors import (
    TaggedApiError,
    ApiValidationError,
    ParamEncodingError,
    TransportError,
    ResponseParseError,
    ApiCallError,
    ConfigurationError,
)
from .config import (
    ApiConfig,
    DEFAULT_TIMEOUT_MS,
    build_endpoint_url,
    build_query_string,
    generate_track_id,
    merge_params,
    resolve_config,
)
from .encoder import (
    DecodedCall,
    classify_param,
    decode_batch,
    encode_batch,
    encode_call,
    encode_param,
)
from .cache import CACHE_FOREVER, ResponseCache, caller_handle, generate_signature
from .events import EventHub
from .batch_queue import BatchQueue
from .dispatcher import Dispatcher, parse_response_body
from .transport import HttpxTransport
from .client import TaggedApi, create_api
from .settings import ApiSettings, load_settings

__all__ = [
    # Types
    "ApiResult",
    "CacheDirective",
    "CacheEntry",
    "CallRecord",
    "EventCallback",
    "ParamKind",
    "ParamValue",
    "SUCCESS_STAT",
    "Transport",
    "TransportRequest",
    "TransportResponse",
    # Errors
    "TaggedApiError",
    "ApiValidationError",
    "ParamEncodingError",
    "TransportError",
    "ResponseParseError",
    "ApiCallError",
    "ConfigurationError",
    # Config
    "ApiConfig",
    "DEFAULT_TIMEOUT_MS",
    "build_endpoint_url",
    "build_query_string",
    "generate_track_id",
    "merge_params",
    "resolve_config",
    # Encoding
    "DecodedCall",
    "classify_param",
    "decode_batch",
    "encode_batch",
    "encode_call",
    "encode_param",
    # Cache
    "CACHE_FOREVER",
    "ResponseCache",
    "caller_handle",
    "generate_signature",
    # Events
    "EventHub",
    # Queue and dispatch
    "BatchQueue",
    "Dispatcher",
    "parse_response_body",
    # Transport
    "HttpxTransport",
    # Client
    "TaggedApi",
    "create_api",
    # Settings
    "ApiSettings",
    "load_settings",
]

__version__ = "1.0.0"
