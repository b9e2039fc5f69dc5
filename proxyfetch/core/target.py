"""
ProxyFetch Config Resolver
==========================
Turns the already-parsed CLI/config values into validated targets:

  • ``ProxyTarget``  – where the proxy lives (``scheme://host:port``)
  • ``Destination``  – the absolute URL to fetch
  • ``Credentials``  – optional proxy username/password

Nothing here touches the network; every failure is a ``ConfigError``.
"""

from __future__ import annotations

import base64
import logging
import re
import urllib.parse
from dataclasses import dataclass
from typing import Optional

from proxyfetch.core.errors import ConfigError

logger = logging.getLogger(__name__)

SCHEME_DELIMITER = "://"
SUPPORTED_SCHEMES = ("http", "https")
DEFAULT_PORTS = {"http": 80, "https": 443}

# Anything that would break the request line or header framing
_UNSAFE_URL_CHARS = re.compile(r"[\x00-\x20\x7f]")

# Reserved characters and existing %-escapes pass through quote() untouched
_PATH_SAFE = "!#$%&'()*+,/:;=?@[]~"


def _bracket(host: str) -> str:
    return f"[{host}]" if ":" in host else host


def _hostname(parts: urllib.parse.SplitResult) -> str:
    """Host as written (urlsplit().hostname lowercases it)."""
    hostport = parts.netloc.rpartition("@")[2]
    if hostport.startswith("["):
        return hostport[1:hostport.find("]")]
    return hostport.partition(":")[0]


# ── Data Models ──────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ProxyTarget:
    """The forward proxy endpoint."""
    scheme: str
    host: str
    port: int

    @property
    def is_tls(self) -> bool:
        """Whether the connection to the proxy itself is TLS-wrapped."""
        return self.scheme == "https"

    @property
    def address(self) -> tuple:
        return (self.host, self.port)

    def __str__(self) -> str:
        return f"{self.scheme}://{_bracket(self.host)}:{self.port}"


@dataclass(frozen=True)
class Credentials:
    """Proxy credentials, sent as HTTP Basic."""
    username: str
    password: str

    def token(self) -> str:
        raw = f"{self.username}:{self.password}".encode("utf-8")
        return base64.b64encode(raw).decode("ascii")

    def __repr__(self) -> str:
        return f"Credentials(username={self.username!r}, password='***')"


@dataclass(frozen=True)
class Destination:
    """An absolute http(s) URL split into the parts the transport needs."""
    url: str
    scheme: str
    host: str
    port: int
    path: str = "/"

    @property
    def is_tls(self) -> bool:
        return self.scheme == "https"

    @property
    def authority(self) -> str:
        """``host:port`` as used on the CONNECT line."""
        return f"{_bracket(self.host)}:{self.port}"

    @property
    def host_header(self) -> str:
        """Host header value, without the port when it is the scheme default."""
        if self.port == DEFAULT_PORTS[self.scheme]:
            return _bracket(self.host)
        return self.authority


@dataclass(frozen=True)
class FetchTarget:
    """Everything a single fetch needs, fully validated."""
    proxy: ProxyTarget
    destination: Destination
    credentials: Optional[Credentials] = None


# ── Parsing ──────────────────────────────────────────────────────────────────

def _split(value: str, what: str) -> urllib.parse.SplitResult:
    if _UNSAFE_URL_CHARS.search(value):
        raise ConfigError(f"{what} contains whitespace or control characters")
    try:
        parts = urllib.parse.urlsplit(value)
        # .port validates lazily
        parts.port
    except ValueError as e:
        raise ConfigError(f"Invalid {what} {value!r}: {e}") from e
    return parts


def parse_proxy(spec: str) -> ProxyTarget:
    """Parse ``scheme://host:port`` into a ``ProxyTarget``.

    The port is mandatory: a specifier without one is rejected rather than
    given a guessed default.
    """
    spec = (spec or "").strip()
    if not spec:
        raise ConfigError("No proxy given (expected scheme://host:port)")
    if SCHEME_DELIMITER not in spec:
        raise ConfigError(f"Proxy {spec!r} has no scheme (expected scheme://host:port)")

    parts = _split(spec, "proxy")
    scheme = parts.scheme.lower()
    if scheme not in SUPPORTED_SCHEMES:
        raise ConfigError(
            f"Unsupported proxy scheme {parts.scheme!r} (use one of: {', '.join(SUPPORTED_SCHEMES)})"
        )
    if not parts.hostname:
        raise ConfigError(f"Proxy {spec!r} has no host")
    if parts.port is None:
        raise ConfigError(f"Proxy {spec!r} has no port (expected scheme://host:port)")
    if not 0 < parts.port < 65536:
        raise ConfigError(f"Proxy port {parts.port} out of range")
    if parts.path not in ("", "/") or parts.query or parts.fragment:
        raise ConfigError(f"Proxy {spec!r} must not contain a path, query or fragment")

    return ProxyTarget(scheme=scheme, host=_hostname(parts), port=parts.port)


def parse_destination(url: str) -> Destination:
    """Validate an absolute http(s) URL."""
    url = (url or "").strip()
    if not url:
        raise ConfigError("No destination URL given")

    parts = _split(url, "destination URL")
    scheme = parts.scheme.lower()
    if not scheme or not parts.netloc:
        raise ConfigError(f"Destination {url!r} is not an absolute URL")
    if scheme not in SUPPORTED_SCHEMES:
        raise ConfigError(f"Unsupported destination scheme {parts.scheme!r}")
    if not parts.hostname:
        raise ConfigError(f"Destination {url!r} has no host")

    port = parts.port if parts.port is not None else DEFAULT_PORTS[scheme]
    if not 0 < port < 65536:
        raise ConfigError(f"Destination port {port} out of range")

    host = _hostname(parts)
    try:
        host.encode("ascii")
    except UnicodeEncodeError:
        try:
            host = host.encode("idna").decode("ascii")
        except UnicodeError as e:
            raise ConfigError(f"Invalid destination host {host!r}: {e}") from e

    path = urllib.parse.quote(parts.path or "/", safe=_PATH_SAFE)
    if parts.query:
        path += "?" + urllib.parse.quote(parts.query, safe=_PATH_SAFE)

    return Destination(url=url, scheme=scheme, host=host, port=port, path=path)


def resolve_credentials(
    username: Optional[str], password: Optional[str]
) -> Optional[Credentials]:
    """Pair up username and password.

    Both must be non-empty; half a pair means "no credentials" rather than a
    malformed ``Proxy-Authorization`` header.
    """
    if username and password:
        return Credentials(username=username, password=password)
    if username or password:
        logger.warning("Only one of username/password given; sending no proxy credentials")
    return None


def credentials_from_proxy_url(spec: str) -> Optional[Credentials]:
    """Extract ``user:pass@`` from a proxy URL, if present."""
    parts = urllib.parse.urlsplit((spec or "").strip())
    if parts.username is None:
        return None
    return resolve_credentials(
        urllib.parse.unquote(parts.username),
        urllib.parse.unquote(parts.password or ""),
    )


def resolve(
    proxy: str,
    destination: str,
    username: Optional[str] = None,
    password: Optional[str] = None,
) -> FetchTarget:
    """Resolve raw configuration values into a ``FetchTarget``.

    Explicit credentials take precedence over any embedded in the proxy URL.
    """
    target = parse_proxy(proxy)
    dest = parse_destination(destination)

    creds = resolve_credentials(username, password)
    if creds is None and not (username or password):
        creds = credentials_from_proxy_url(proxy)

    logger.debug(
        f"Resolved proxy={target} destination={dest.url} "
        f"credentials={'yes' if creds else 'no'}"
    )
    return FetchTarget(proxy=target, destination=dest, credentials=creds)
