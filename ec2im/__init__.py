"""Fetch EC2 instance metadata over IMDSv2 and emit it as JSON lines."""

from .client import (
    MetadataClient,
    MetadataError,
    PathNotFound,
    Token,
    TokenUnavailable,
    TransportError,
    UndecodableValue,
    UpstreamError,
)
from .envelope import (
    Envelope,
    TimestampFormat,
    build_error,
    build_success,
    render_timestamp,
    write_envelope,
)
from .poller import PollConfig, PollConfigError, Poller, PollerState, fetch_envelope
from .transport import AiohttpTransport, HttpResponse, HttpTransport, TransportFailure
from .version import __version__

__all__ = [
    "AiohttpTransport",
    "Envelope",
    "HttpResponse",
    "HttpTransport",
    "MetadataClient",
    "MetadataError",
    "PathNotFound",
    "PollConfig",
    "PollConfigError",
    "Poller",
    "PollerState",
    "TimestampFormat",
    "Token",
    "TokenUnavailable",
    "TransportError",
    "TransportFailure",
    "UndecodableValue",
    "UpstreamError",
    "__version__",
    "build_error",
    "build_success",
    "fetch_envelope",
    "render_timestamp",
    "write_envelope",
]
