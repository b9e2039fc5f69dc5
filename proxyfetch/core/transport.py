"""
ProxyFetch Tunneling Transport
==============================
Routes a single request through a forward proxy.

  • http destinations   – the request is written to the proxy in
                          absolute-URI form (``GET http://host/path``)
  • https destinations  – ``CONNECT host:port`` is sent first, carrying
                          every header of the request (notably
                          ``Proxy-Authorization``); on a 2xx reply the socket
                          becomes the base of a TLS session with the
                          destination and the request is written inside it

Many client stacks send CONNECT with no headers at all, so an authenticated
proxy answers 407 and the tunnel never opens. Here the CONNECT preamble is
built from the request's own headers.

Architecture:
  Uses Python's ``socket`` + ``ssl`` for the connection and
  ``http.client.HTTPResponse`` for parsing the destination's reply.
  No external packages required.

Phases run strictly in order: dial → connect → tls → request → response →
read. Any failure closes the connection and is raised as the matching
``ProxyFetchError``; nothing is retried.
"""

from __future__ import annotations

import http.client
import logging
import re
import socket
import ssl
from typing import Dict, List, Optional, Tuple

from proxyfetch.core.deadline import Deadline
from proxyfetch.core.errors import (
    DialError,
    FetchTimeout,
    ProxyAuthError,
    RequestError,
    TLSError,
)
from proxyfetch.core.request import OutboundRequest
from proxyfetch.core.response import PendingResponse, Response, collect
from proxyfetch.core.target import ProxyTarget
from proxyfetch.core.tls import LayeredTLSSocket

logger = logging.getLogger(__name__)

_MAX_LINE = 65536
_MAX_HEADERS = 100

# Characters that break header framing
_LINE_BREAKERS = re.compile(r"[\r\n\x00]")


# ── TLS ──────────────────────────────────────────────────────────────────────

def make_ssl_context(insecure: bool = False) -> ssl.SSLContext:
    """Client context; ``insecure`` turns off hostname and chain checks."""
    ctx = ssl.create_default_context()
    if insecure:
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE
    return ctx


# ── Wire encoding ────────────────────────────────────────────────────────────

def _to_wire(lines: List[str], phase: str) -> bytes:
    for line in lines:
        if _LINE_BREAKERS.search(line):
            name = line.partition(":")[0].split(" ", 1)[0]
            raise RequestError(f"CR, LF or NUL in {name!r} rejected", phase=phase)
    try:
        return ("\r\n".join(lines) + "\r\n\r\n").encode("latin-1")
    except UnicodeEncodeError as e:
        raise RequestError(f"Request cannot be encoded: {e}", phase=phase) from e


def encode_connect(request: OutboundRequest) -> bytes:
    """CONNECT preamble for the request's destination.

    Every header of the request is repeated here; ``Host`` becomes the
    tunnel authority.
    """
    authority = request.destination.authority
    lines = [f"CONNECT {authority} HTTP/1.1", f"Host: {authority}"]
    for name, value in request.headers:
        if name.lower() != "host":
            lines.append(f"{name}: {value}")
    return _to_wire(lines, "connect")


def encode_request(request: OutboundRequest, absolute: bool) -> bytes:
    """The request itself.

    ``absolute`` selects the forward-proxy form (full URL on the request line,
    proxy headers included). Inside a tunnel the origin form is used and
    ``Proxy-*`` headers stay behind, since they are addressed to the proxy.
    """
    dest = request.destination
    if absolute:
        target = f"{dest.scheme}://{dest.host_header}{dest.path}"
        headers = list(request.headers)
    else:
        target = dest.path
        headers = request.origin_headers()

    lines = [f"{request.method} {target} HTTP/1.1"]
    lines.extend(f"{name}: {value}" for name, value in headers)
    if not request.has_header("Connection"):
        lines.append("Connection: close")
    return _to_wire(lines, "request")


# ── Proxy reply parsing ──────────────────────────────────────────────────────

def parse_status_line(line: str) -> Tuple[str, int, str]:
    """Split ``HTTP/1.1 200 Connection Established``."""
    parts = line.split(None, 2)
    if len(parts) < 2 or not parts[0].startswith("HTTP/"):
        raise RequestError(f"Malformed proxy reply: {line!r}", phase="connect")
    version, code = parts[0], parts[1]
    if len(code) != 3 or not code.isdigit():
        raise RequestError(f"Malformed proxy status code: {line!r}", phase="connect")
    reason = parts[2] if len(parts) > 2 else ""
    return version, int(code), reason


def _read_proxy_reply(sock: socket.socket) -> Tuple[str, Dict[str, str]]:
    """Read the CONNECT reply head byte-exactly.

    The reader is unbuffered: nothing past the blank line may be consumed,
    because the TLS session starts right after it.
    """
    reader = sock.makefile("rb", buffering=0)
    try:
        lines = []
        while True:
            raw = reader.readline(_MAX_LINE + 1)
            if len(raw) > _MAX_LINE:
                raise RequestError("Proxy reply line too long", phase="connect")
            if not raw:
                raise RequestError("Proxy closed the connection during CONNECT", phase="connect")
            if raw in (b"\r\n", b"\n"):
                break
            lines.append(raw.decode("latin-1").rstrip("\r\n"))
            if len(lines) > _MAX_HEADERS + 1:
                raise RequestError("Too many headers in proxy reply", phase="connect")
    finally:
        reader.close()

    headers: Dict[str, str] = {}
    for line in lines[1:]:
        name, _, value = line.partition(":")
        headers[name.strip().lower()] = value.strip()
    return lines[0], headers


# ── Transport ────────────────────────────────────────────────────────────────

class TunnelingTransport:
    """
    One-shot HTTP(S) transport through a forward proxy.

    Holds configuration only: no connection is cached between calls, and a
    transport can be shared freely. Certificate verification is on unless
    ``insecure=True`` is requested.
    """

    def __init__(
        self,
        insecure: bool = False,
        timeout: Optional[float] = None,
        ssl_context: Optional[ssl.SSLContext] = None,
        proxy_ssl_context: Optional[ssl.SSLContext] = None,
    ):
        self.insecure = insecure
        self.timeout = timeout
        self.ssl_context = ssl_context or make_ssl_context(insecure)
        self.proxy_ssl_context = proxy_ssl_context or self.ssl_context
        if insecure:
            logger.warning("TLS certificate verification is disabled (insecure mode)")

    # ── Public API ───────────────────────────────────────────────────────

    def send(self, request: OutboundRequest, proxy: ProxyTarget) -> Response:
        """Send ``request`` through ``proxy`` and return the full response."""
        deadline = Deadline(self.timeout)
        return collect(self.open(request, proxy, deadline))

    def open(
        self,
        request: OutboundRequest,
        proxy: ProxyTarget,
        deadline: Optional[Deadline] = None,
    ) -> PendingResponse:
        """Run every phase up to the response head.

        The returned ``PendingResponse`` owns the connection.
        """
        deadline = deadline or Deadline(self.timeout)
        dest = request.destination
        conn = self._dial(proxy, deadline)
        try:
            if dest.is_tls:
                self._open_tunnel(conn, request, deadline)
                conn = self._start_tls(conn, request, deadline)
                payload = encode_request(request, absolute=False)
            else:
                payload = encode_request(request, absolute=True)
            self._write(conn, payload, deadline)
            response = self._read_head(conn, request, deadline)
        except BaseException:
            conn.close()
            raise
        return PendingResponse(response, conn, deadline)

    # ── Phases ───────────────────────────────────────────────────────────

    def _dial(self, proxy: ProxyTarget, deadline: Deadline):
        logger.debug(f"Dialing proxy {proxy}")
        try:
            sock = socket.create_connection(proxy.address, timeout=deadline.remaining("dial"))
        except socket.timeout as e:
            raise FetchTimeout("dial", deadline.budget) from e
        except OSError as e:
            raise DialError(f"Cannot reach proxy {proxy}: {e}") from e

        if not proxy.is_tls:
            return sock

        try:
            sock.settimeout(deadline.remaining("proxy-tls"))
            tls = self.proxy_ssl_context.wrap_socket(sock, server_hostname=proxy.host)
        except socket.timeout as e:
            sock.close()
            raise FetchTimeout("proxy-tls", deadline.budget) from e
        except OSError as e:
            sock.close()
            raise TLSError(f"TLS handshake with proxy {proxy} failed: {e}", phase="proxy-tls") from e
        except BaseException:
            sock.close()
            raise
        logger.debug(f"TLS to proxy established: {tls.version()}")
        return tls

    def _open_tunnel(self, conn, request: OutboundRequest, deadline: Deadline) -> None:
        authority = request.destination.authority
        preamble = encode_connect(request)
        logger.debug(
            f"CONNECT {authority} with headers: "
            f"{', '.join(request.header_names()) or '(none)'}"
        )
        try:
            conn.settimeout(deadline.remaining("connect"))
            conn.sendall(preamble)
            status_line, headers = _read_proxy_reply(conn)
        except socket.timeout as e:
            raise FetchTimeout("connect", deadline.budget) from e
        except OSError as e:
            raise RequestError(f"CONNECT {authority} failed: {e}", phase="connect") from e

        _version, code, _reason = parse_status_line(status_line)
        logger.debug(f"Proxy replied to CONNECT: {status_line}")
        if not 200 <= code < 300:
            raise ProxyAuthError(
                f"Proxy refused CONNECT {authority}: {status_line}",
                status_code=code,
                status_line=status_line,
                challenge=headers.get("proxy-authenticate", ""),
            )

    def _start_tls(self, conn, request: OutboundRequest, deadline: Deadline):
        host = request.destination.host
        try:
            conn.settimeout(deadline.remaining("tls"))
            if isinstance(conn, ssl.SSLSocket):
                tls = LayeredTLSSocket(conn, self.ssl_context, server_hostname=host)
            else:
                tls = self.ssl_context.wrap_socket(conn, server_hostname=host)
        except socket.timeout as e:
            raise FetchTimeout("tls", deadline.budget) from e
        except ssl.SSLError as e:
            raise TLSError(f"TLS handshake with {host} failed: {e}") from e
        except OSError as e:
            raise TLSError(f"Connection lost during TLS handshake with {host}: {e}") from e
        logger.debug(f"TLS to {host} established: {tls.version()}")
        return tls

    def _write(self, conn, payload: bytes, deadline: Deadline) -> None:
        try:
            conn.settimeout(deadline.remaining("request"))
            conn.sendall(payload)
        except socket.timeout as e:
            raise FetchTimeout("request", deadline.budget) from e
        except OSError as e:
            raise RequestError(f"Error sending request: {e}") from e

    def _read_head(self, conn, request: OutboundRequest, deadline: Deadline) -> http.client.HTTPResponse:
        response = http.client.HTTPResponse(conn, method=request.method)
        try:
            conn.settimeout(deadline.remaining("response"))
            response.begin()
        except socket.timeout as e:
            response.close()
            raise FetchTimeout("response", deadline.budget) from e
        except (OSError, http.client.HTTPException) as e:
            response.close()
            raise RequestError(f"Invalid response from destination: {e}", phase="response") from e
        except BaseException:
            response.close()
            raise
        logger.debug(f"Response head: {response.status} {response.reason}")
        return response
