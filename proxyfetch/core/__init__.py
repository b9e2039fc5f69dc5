"""
ProxyFetch Core Module
"""

from proxyfetch.core.client import ProxyClient
from proxyfetch.core.errors import (
    ConfigError,
    DialError,
    FetchTimeout,
    ProxyAuthError,
    ProxyFetchError,
    ReadError,
    RequestError,
    TLSError,
)
from proxyfetch.core.request import OutboundRequest, build_request
from proxyfetch.core.response import Response
from proxyfetch.core.target import Credentials, Destination, FetchTarget, ProxyTarget, resolve
from proxyfetch.core.transport import TunnelingTransport

__all__ = [
    "ProxyClient",
    "TunnelingTransport",
    "OutboundRequest",
    "Response",
    "ProxyTarget",
    "Destination",
    "Credentials",
    "FetchTarget",
    "build_request",
    "resolve",
    "ProxyFetchError",
    "ConfigError",
    "DialError",
    "ProxyAuthError",
    "TLSError",
    "RequestError",
    "ReadError",
    "FetchTimeout",
]
