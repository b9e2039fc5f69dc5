"""
ProxyFetch Request Builder
==========================
Builds the single GET request of an invocation. The ``Proxy-Authorization``
header is attached here, before the transport takes the request, because the
transport copies the request's headers onto the CONNECT preamble.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple

from proxyfetch import __version__
from proxyfetch.core.target import Credentials, Destination

DEFAULT_USER_AGENT = f"proxyfetch/{__version__}"
PROXY_AUTHORIZATION = "Proxy-Authorization"

Header = Tuple[str, str]


def basic_auth_value(credentials: Credentials) -> str:
    """``Basic <base64(username:password)>``."""
    return f"Basic {credentials.token()}"


@dataclass(frozen=True)
class OutboundRequest:
    """An immutable GET request addressed to the destination."""
    destination: Destination
    headers: Tuple[Header, ...] = ()
    method: str = "GET"

    def header(self, name: str) -> Optional[str]:
        """First value of a header, case-insensitive."""
        wanted = name.lower()
        for key, value in self.headers:
            if key.lower() == wanted:
                return value
        return None

    def has_header(self, name: str) -> bool:
        return self.header(name) is not None

    def proxy_headers(self) -> List[Header]:
        """Headers addressed to the proxy itself (``Proxy-*``)."""
        return [(k, v) for k, v in self.headers if k.lower().startswith("proxy-")]

    def origin_headers(self) -> List[Header]:
        """Headers meant for the destination server."""
        return [(k, v) for k, v in self.headers if not k.lower().startswith("proxy-")]

    def header_names(self) -> List[str]:
        return [k for k, _ in self.headers]


def build_request(
    destination: Destination,
    credentials: Optional[Credentials] = None,
    user_agent: str = DEFAULT_USER_AGENT,
) -> OutboundRequest:
    """Build the outbound GET request for ``destination``."""
    headers: List[Header] = [
        ("Host", destination.host_header),
        ("User-Agent", user_agent or DEFAULT_USER_AGENT),
        ("Accept", "*/*"),
    ]
    if credentials is not None:
        headers.append((PROXY_AUTHORIZATION, basic_auth_value(credentials)))
    return OutboundRequest(destination=destination, headers=tuple(headers))
